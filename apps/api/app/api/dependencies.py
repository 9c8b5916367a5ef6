from __future__ import annotations

from collections.abc import Callable

import httpx
from fastapi import Depends, Query, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, get_settings
from ..core.security import hash_api_key
from ..db import get_session
from ..domain.errors import GatewayNotConfiguredError, RateLimitedError, UnauthorizedError
from ..domain.pagination import PaginationParams
from ..domain.projects import Project
from ..domain.rate_limits import RateLimitStatus
from ..repositories.idempotency import IdempotencyRepository, SqlAlchemyIdempotencyRepository
from ..repositories.projects import ProjectsRepository, SqlAlchemyProjectsRepository
from ..repositories.rate_limits import RateLimitRepository, SqlAlchemyRateLimitRepository
from ..repositories.transactions import (
    SqlAlchemyTransactionsRepository,
    TransactionsRepository,
)
from ..repositories.webhooks import SqlAlchemyWebhookLogsRepository, WebhookLogsRepository
from ..repositories.withdrawals import SqlAlchemyWithdrawalsRepository, WithdrawalsRepository
from ..services.balance import BalanceLedger
from ..services.gateway import GatewayClient, GatewayConfigError
from ..services.idempotency import IdempotencyGuard
from ..services.reconciler import TransactionReconciler
from ..services.webhooks import WebhookDispatcher

MAX_PER_PAGE = 100

_http_bearer = HTTPBearer(auto_error=False)


async def get_projects_repository(
    session: AsyncSession = Depends(get_session),
) -> ProjectsRepository:
    return SqlAlchemyProjectsRepository(session)


async def get_transactions_repository(
    session: AsyncSession = Depends(get_session),
) -> TransactionsRepository:
    return SqlAlchemyTransactionsRepository(session)


async def get_rate_limit_repository(
    session: AsyncSession = Depends(get_session),
) -> RateLimitRepository:
    return SqlAlchemyRateLimitRepository(session)


async def get_idempotency_repository(
    session: AsyncSession = Depends(get_session),
) -> IdempotencyRepository:
    return SqlAlchemyIdempotencyRepository(session)


async def get_webhook_logs_repository(
    session: AsyncSession = Depends(get_session),
) -> WebhookLogsRepository:
    return SqlAlchemyWebhookLogsRepository(session)


async def get_withdrawals_repository(
    session: AsyncSession = Depends(get_session),
) -> WithdrawalsRepository:
    return SqlAlchemyWithdrawalsRepository(session)


async def get_pagination_params(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1),
) -> PaginationParams:
    return PaginationParams(page=page, per_page=min(per_page, MAX_PER_PAGE))


def get_http_client(request: Request) -> httpx.AsyncClient:
    client: httpx.AsyncClient | None = getattr(request.app.state, "http_client", None)
    if client is None:
        raise RuntimeError("HTTP client has not been initialised for this application")
    return client


async def get_gateway_client(
    http_client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> GatewayClient:
    try:
        return GatewayClient.from_settings(http_client, settings)
    except GatewayConfigError as exc:
        raise GatewayNotConfiguredError() from exc


async def get_webhook_dispatcher(
    http_client: httpx.AsyncClient = Depends(get_http_client),
    logs: WebhookLogsRepository = Depends(get_webhook_logs_repository),
    settings: Settings = Depends(get_settings),
) -> WebhookDispatcher:
    return WebhookDispatcher.from_settings(http_client, logs, settings)


async def get_reconciler(
    transactions: TransactionsRepository = Depends(get_transactions_repository),
    projects: ProjectsRepository = Depends(get_projects_repository),
    gateway: GatewayClient = Depends(get_gateway_client),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
    settings: Settings = Depends(get_settings),
) -> TransactionReconciler:
    return TransactionReconciler(
        transactions,
        projects,
        gateway,
        dispatcher,
        platform_fee_idr=settings.platform_fee_idr,
        max_cas_attempts=settings.reconcile_max_cas_attempts,
    )


async def get_idempotency_guard(
    repo: IdempotencyRepository = Depends(get_idempotency_repository),
    settings: Settings = Depends(get_settings),
) -> IdempotencyGuard:
    return IdempotencyGuard(repo, lease_seconds=settings.idempotency_lease_seconds)


async def get_balance_ledger(
    transactions: TransactionsRepository = Depends(get_transactions_repository),
    withdrawals: WithdrawalsRepository = Depends(get_withdrawals_repository),
    settings: Settings = Depends(get_settings),
) -> BalanceLedger:
    return BalanceLedger.from_settings(transactions, withdrawals, settings)


async def get_current_project(
    credentials: HTTPAuthorizationCredentials | None = Depends(_http_bearer),
    projects_repo: ProjectsRepository = Depends(get_projects_repository),
) -> Project:
    if credentials is None or not credentials.credentials.strip():
        raise UnauthorizedError()
    project = await projects_repo.authenticate(hash_api_key(credentials.credentials.strip()))
    if project is None:
        raise UnauthorizedError()
    return project


def enforce_rate_limit(
    route_key: str,
    limit_setting: str,
) -> Callable[..., RateLimitStatus]:
    """Dependency factory counting requests per project and route.

    The limit is read from the named settings attribute. Headers for the
    current window are attached to the response and kept on ``request.state``
    so error responses carry them as well.
    """

    async def dependency(
        request: Request,
        response: Response,
        project: Project = Depends(get_current_project),
        repo: RateLimitRepository = Depends(get_rate_limit_repository),
        settings: Settings = Depends(get_settings),
    ) -> RateLimitStatus:
        status = await repo.hit(
            project_id=project.id,
            route_key=route_key,
            limit=getattr(settings, limit_setting),
            window_seconds=settings.rate_limit_window_seconds,
        )
        headers = status.headers()
        request.state.rate_limit_headers = headers
        if not status.allowed:
            raise RateLimitedError()
        response.headers.update(headers)
        return status

    return dependency
