"""Scheduled reconciliation of pending transactions the gateway never called back about."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.app.core.config import Settings, get_settings
from apps.api.app.db.session import Database
from apps.api.app.repositories.projects import SqlAlchemyProjectsRepository
from apps.api.app.repositories.transactions import SqlAlchemyTransactionsRepository
from apps.api.app.repositories.webhooks import SqlAlchemyWebhookLogsRepository
from apps.api.app.services.gateway import GatewayClient, GatewayConfigError, GatewayError
from apps.api.app.services.reconciler import ReconcileConflictError, TransactionReconciler
from apps.api.app.services.webhooks import WebhookDispatcher

from ..start import celery_app
from ..telemetry import record_poll

logger = structlog.get_logger(__name__)


def build_reconciler(
    session: AsyncSession,
    http_client: httpx.AsyncClient,
    settings: Settings,
) -> TransactionReconciler:
    return TransactionReconciler(
        SqlAlchemyTransactionsRepository(session),
        SqlAlchemyProjectsRepository(session),
        GatewayClient.from_settings(http_client, settings),
        WebhookDispatcher.from_settings(
            http_client, SqlAlchemyWebhookLogsRepository(session), settings
        ),
        platform_fee_idr=settings.platform_fee_idr,
        max_cas_attempts=settings.reconcile_max_cas_attempts,
    )


@celery_app.task(name="reconcile.poll_pending")
def poll_pending_transactions() -> dict:
    """Celery entrypoint that bridges into the async poller coroutine."""

    return asyncio.run(run_poll())


async def run_poll(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict:
    settings = settings or get_settings()
    summary = {"scanned": 0, "changed": 0, "notified": 0, "failed": 0, "skipped": False}
    if not settings.gateway_configured:
        logger.warning("worker.reconcile.skipped", reason="gateway_not_configured")
        summary["skipped"] = True
        record_poll(summary, 0.0)
        return summary

    started = time.perf_counter()
    owned_database = database is None
    owned_client = http_client is None
    database = database or Database.from_settings(settings)
    http_client = http_client or httpx.AsyncClient()
    try:
        cutoff = datetime.utcnow() - timedelta(seconds=settings.reconcile_poll_min_age_seconds)
        async with database.sessionmaker() as session:
            stale = await SqlAlchemyTransactionsRepository(session).list_stale_pending(
                updated_before=cutoff, limit=settings.reconcile_poll_batch_size
            )
        summary["scanned"] = len(stale)
        logger.info("worker.reconcile.start", pending=len(stale))

        for transaction in stale:
            async with database.sessionmaker() as session:
                try:
                    reconciler = build_reconciler(session, http_client, settings)
                    result = await reconciler.reconcile(transaction.id, trigger="poller")
                except (GatewayError, GatewayConfigError, ReconcileConflictError) as exc:
                    summary["failed"] += 1
                    logger.warning(
                        "worker.reconcile.failed",
                        transaction_id=str(transaction.id),
                        error=str(exc),
                    )
                    continue
            if result.status_changed:
                summary["changed"] += 1
            if result.notified:
                summary["notified"] += 1
    finally:
        if owned_client:
            await http_client.aclose()
        if owned_database:
            await database.dispose()

    logger.info("worker.reconcile.complete", **{k: v for k, v in summary.items() if k != "skipped"})
    record_poll(summary, time.perf_counter() - started)
    return summary
