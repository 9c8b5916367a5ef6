"""Outbound merchant webhooks with bounded retries and a per-attempt audit log."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Awaitable, Callable

import httpx
import structlog

from ..core.config import Settings, get_settings
from ..core.security import sign_payload
from ..domain.projects import Project
from ..domain.transactions import Transaction, to_utc_iso
from ..domain.webhooks import WebhookDeliveryResult, WebhookEvent, WebhookLogEntry
from ..repositories.webhooks import WebhookLogsRepository
from ..telemetry import WEBHOOK_ATTEMPTS, WEBHOOK_EXHAUSTED

logger = structlog.get_logger(__name__)

RESPONSE_BODY_LIMIT = 4000
SIGNATURE_HEADER = "X-PayBridge-Signature"
EVENT_HEADER = "X-PayBridge-Event"
ATTEMPT_HEADER = "X-PayBridge-Delivery-Attempt"


def build_event(transaction: Transaction, *, created_at: datetime | None = None) -> WebhookEvent:
    return WebhookEvent(
        id=f"evt_{transaction.id.hex}",
        type=f"transaction.{transaction.status.value}",
        created_at=created_at or datetime.utcnow(),
        data={
            "transaction_id": str(transaction.id),
            "external_id": transaction.external_id,
            "status": transaction.status.value,
            "method": transaction.method,
            "amounts": {
                "amount": transaction.amount,
                "total_payment": transaction.gross_received,
            },
            "paid_at": to_utc_iso(transaction.paid_at) if transaction.paid_at else None,
        },
    )


class WebhookDispatcher:
    """POST a transaction event to the project's webhook URL.

    Attempt ``n`` (1-based) waits ``backoff_base * 2 ** (n - 2)`` seconds before
    sending, so the first attempt is immediate. Any 2xx stops the loop.
    Exhaustion is logged and counted, never raised.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        logs: WebhookLogsRepository,
        *,
        max_attempts: int = 3,
        backoff_base_seconds: float = 0.3,
        timeout_seconds: float = 10.0,
        user_agent: str = "PayBridge-Webhooks/0.1",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._http = http_client
        self._logs = logs
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base_seconds
        self._timeout = httpx.Timeout(timeout_seconds)
        self._user_agent = user_agent
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        http_client: httpx.AsyncClient,
        logs: WebhookLogsRepository,
        settings: Settings | None = None,
    ) -> "WebhookDispatcher":
        settings = settings or get_settings()
        return cls(
            http_client,
            logs,
            max_attempts=settings.webhook_max_attempts,
            backoff_base_seconds=settings.webhook_backoff_base_seconds,
            timeout_seconds=settings.webhook_timeout_seconds,
            user_agent=settings.webhook_user_agent,
        )

    def backoff_for(self, attempt_no: int) -> float:
        if attempt_no <= 1:
            return 0.0
        return self._backoff_base * (2 ** (attempt_no - 2))

    async def deliver(self, project: Project, transaction: Transaction) -> WebhookDeliveryResult:
        if not project.webhook_url:
            logger.info(
                "webhook.skipped.no_url",
                project_id=str(project.id),
                transaction_id=str(transaction.id),
            )
            return WebhookDeliveryResult(delivered=False, skipped=True)

        event = build_event(transaction)
        body = event.model_dump_json().encode("utf-8")
        base_headers = {
            "content-type": "application/json",
            "user-agent": self._user_agent,
            EVENT_HEADER: event.type,
        }
        if project.webhook_secret:
            base_headers[SIGNATURE_HEADER] = sign_payload(project.webhook_secret, body)

        last_status: int | None = None
        for attempt_no in range(1, self._max_attempts + 1):
            delay = self.backoff_for(attempt_no)
            if delay > 0:
                await self._sleep(delay)

            response_code: int | None = None
            response_body: str | None = None
            error_message: str | None = None
            is_success = False
            start = time.perf_counter()
            try:
                response = await self._http.post(
                    project.webhook_url,
                    content=body,
                    headers={**base_headers, ATTEMPT_HEADER: str(attempt_no)},
                    timeout=self._timeout,
                )
                response_code = response.status_code
                response_body = response.text[:RESPONSE_BODY_LIMIT]
                is_success = response.is_success
            except httpx.HTTPError as exc:
                error_message = (str(exc) or exc.__class__.__name__)[:RESPONSE_BODY_LIMIT]
            duration_ms = int((time.perf_counter() - start) * 1000)
            last_status = response_code

            await self._logs.append(
                WebhookLogEntry(
                    project_id=project.id,
                    transaction_id=transaction.id,
                    event_id=event.id,
                    event_type=event.type,
                    attempt_no=attempt_no,
                    target_url=project.webhook_url,
                    request_body=body.decode("utf-8"),
                    response_code=response_code,
                    response_body=response_body,
                    error_message=error_message,
                    is_success=is_success,
                    duration_ms=duration_ms,
                )
            )
            WEBHOOK_ATTEMPTS.labels(outcome="success" if is_success else "failure").inc()

            if is_success:
                logger.info(
                    "webhook.delivered",
                    project_id=str(project.id),
                    event_id=event.id,
                    attempt_no=attempt_no,
                    status_code=response_code,
                )
                return WebhookDeliveryResult(
                    delivered=True,
                    attempts=attempt_no,
                    event_id=event.id,
                    last_status_code=response_code,
                )

            logger.warning(
                "webhook.attempt.failed",
                project_id=str(project.id),
                event_id=event.id,
                attempt_no=attempt_no,
                status_code=response_code,
                error=error_message,
            )

        WEBHOOK_EXHAUSTED.inc()
        logger.error(
            "webhook.exhausted",
            project_id=str(project.id),
            event_id=event.id,
            attempts=self._max_attempts,
        )
        return WebhookDeliveryResult(
            delivered=False,
            attempts=self._max_attempts,
            event_id=event.id,
            last_status_code=last_status,
        )
