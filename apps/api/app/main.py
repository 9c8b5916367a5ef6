from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.errors import register_error_handlers
from .api.routes.balance import router as balance_router
from .api.routes.callbacks import router as callbacks_router
from .api.routes.transactions import router as transactions_router
from .api.routes.webhook_logs import router as webhook_logs_router
from .core.config import Settings, get_settings
from .core.logging import configure_logging
from .db import Database
from .telemetry import configure_tracing, setup_prometheus

logger = structlog.get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    http_client: httpx.AsyncClient | None = None,
    create_schema: bool = False,
) -> FastAPI:
    """Build the API application.

    ``database`` and ``http_client`` are created in the lifespan unless passed
    in; handles passed in are owned by the caller and not disposed here.
    """

    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned_database = database is None
        owned_client = http_client is None
        app.state.database = database or Database.from_settings(settings)
        app.state.http_client = http_client or httpx.AsyncClient()
        if create_schema:
            await app.state.database.create_all()
        logger.info("api.startup", gateway_configured=settings.gateway_configured)
        try:
            yield
        finally:
            if owned_client:
                await app.state.http_client.aclose()
            if owned_database:
                await app.state.database.dispose()
            logger.info("api.shutdown")

    app = FastAPI(title=settings.project_name, version="0.1.0", lifespan=lifespan)
    app.dependency_overrides[get_settings] = lambda: settings

    allow_origins = settings.cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in allow_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get("/healthz")
    def healthz() -> dict[str, str | bool]:
        return {"ok": True, "service": "api"}

    app.include_router(transactions_router, prefix=settings.api_v1_prefix)
    app.include_router(callbacks_router, prefix=settings.api_v1_prefix)
    app.include_router(balance_router, prefix=settings.api_v1_prefix)
    app.include_router(webhook_logs_router, prefix=settings.api_v1_prefix)

    if settings.enable_prometheus_metrics:
        setup_prometheus(app)
    configure_tracing(app)

    return app


app = create_app()
