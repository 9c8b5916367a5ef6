"""Pytest configuration and fixtures for PayBridge tests."""

from __future__ import annotations

import asyncio
from typing import Callable
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from apps.api.app.core.config import Settings
from apps.api.app.core.security import api_key_display_prefix, generate_api_key, hash_api_key
from apps.api.app.db import Database
from apps.api.app.domain.projects import ApiKey, Project
from apps.api.app.domain.transactions import Transaction, TransactionStatus
from apps.api.app.repositories.projects import SqlAlchemyProjectsRepository


def make_settings(**overrides) -> Settings:
    """Settings isolated from the developer's environment and ``.env`` file."""

    values = {
        "gateway_base_url": "https://gateway.test",
        "gateway_project": "depodomain",
        "gateway_api_key": "gw-secret-key",
        "app_base_url": "https://paybridge.test",
        "enable_prometheus_metrics": False,
        "log_json": False,
        "webhook_backoff_base_seconds": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_transaction(project_id, **overrides) -> Transaction:
    values = {
        "project_id": project_id,
        "external_id": "INV-0001",
        "gateway_order_id": f"toko-budi-{uuid4().hex[:10]}",
        "method": "bni_va",
        "status": TransactionStatus.PENDING,
        "amount": 150_000,
        "fee": 4_500,
        "provider_fee": 4_500,
        "total_payment": 150_000,
    }
    values.update(overrides)
    return Transaction(**values)


class FakeGateway:
    """Programmable stand-in for the gateway HTTP API, used via ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.create_body: dict = {"payment": {"status": "pending", "payment_number": "8808000011112222"}}
        self.detail_body: dict = {"transaction": {"status": "pending"}}
        self.create_status = 200
        self.detail_status = 200
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.startswith("/api/transactioncreate/"):
            return httpx.Response(self.create_status, json=self.create_body)
        if request.url.path == "/api/transactiondetail":
            return httpx.Response(self.detail_status, json=self.detail_body)
        return httpx.Response(404, json={"message": "not found"})

    def calls_to(self, prefix: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path.startswith(prefix)]


class WebhookReceiver:
    """Merchant endpoint returning a scripted sequence of status codes."""

    def __init__(self, statuses: list[int] | None = None) -> None:
        self.statuses = list(statuses or [200])
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return httpx.Response(status, text="ok" if status < 400 else "nope")


def routing_transport(
    gateway: FakeGateway, receiver: WebhookReceiver | None = None
) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "gateway.test":
            return gateway(request)
        if receiver is not None:
            return receiver(request)
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def database(tmp_path) -> Database:
    """File-backed SQLite database; NullPool keeps connections loop-agnostic."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'paybridge.db'}",
        poolclass=NullPool,
    )
    db = Database(engine)
    asyncio.run(db.create_all())
    return db


@pytest.fixture
def seed_project(database: Database) -> Callable[..., tuple[Project, str]]:
    """Create a project with an active API key and return it with the raw key."""

    def factory(**fields) -> tuple[Project, str]:
        async def run() -> tuple[Project, str]:
            async with database.sessionmaker() as session:
                repo = SqlAlchemyProjectsRepository(session)
                project = await repo.create(
                    Project(
                        name=fields.pop("name", "Toko Budi"),
                        app_slug=fields.pop("app_slug", "toko-budi"),
                        **fields,
                    )
                )
                raw_key = generate_api_key()
                await repo.add_api_key(
                    ApiKey(
                        project_id=project.id,
                        key_prefix=api_key_display_prefix(raw_key),
                        key_hash=hash_api_key(raw_key),
                    )
                )
                return project, raw_key

        return asyncio.run(run())

    return factory
