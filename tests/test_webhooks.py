"""Merchant webhook delivery, retries and audit rows."""

import asyncio
import json
from datetime import datetime
from uuid import uuid4

import httpx

from apps.api.app.core.security import verify_payload_signature
from apps.api.app.domain.projects import Project
from apps.api.app.domain.transactions import TransactionStatus
from apps.api.app.repositories.webhooks import InMemoryWebhookLogsRepository
from apps.api.app.services.webhooks import (
    ATTEMPT_HEADER,
    EVENT_HEADER,
    SIGNATURE_HEADER,
    WebhookDispatcher,
    build_event,
)
from conftest import WebhookReceiver, make_transaction


def make_project(**overrides) -> Project:
    values = {
        "name": "Toko Budi",
        "app_slug": "toko-budi",
        "webhook_url": "https://merchant.test/hooks",
        "webhook_secret": "whsec-123",
    }
    values.update(overrides)
    return Project(**values)


def build_dispatcher(receiver, logs, sleeps: list[float]) -> tuple[WebhookDispatcher, httpx.AsyncClient]:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(receiver))
    dispatcher = WebhookDispatcher(
        http_client,
        logs,
        max_attempts=3,
        backoff_base_seconds=0.3,
        sleep=fake_sleep,
    )
    return dispatcher, http_client


def test_build_event_shape():
    project_id = uuid4()
    transaction = make_transaction(
        project_id,
        status=TransactionStatus.PAID,
        paid_at=datetime(2025, 1, 1, 10, 0, 0),
    )
    event = build_event(transaction, created_at=datetime(2025, 1, 1, 10, 0, 5))
    payload = json.loads(event.model_dump_json())
    assert payload["id"] == f"evt_{transaction.id.hex}"
    assert payload["type"] == "transaction.paid"
    assert payload["created_at"] == "2025-01-01T10:00:05.000Z"
    assert payload["data"]["amounts"] == {"amount": 150_000, "total_payment": 150_000}
    assert payload["data"]["paid_at"] == "2025-01-01T10:00:00.000Z"


def test_three_failed_attempts_with_exponential_backoff():
    project = make_project()
    transaction = make_transaction(project.id, status=TransactionStatus.PAID)
    receiver = WebhookReceiver([500])
    logs = InMemoryWebhookLogsRepository()
    sleeps: list[float] = []

    async def run():
        dispatcher, http_client = build_dispatcher(receiver, logs, sleeps)
        async with http_client:
            return await dispatcher.deliver(project, transaction)

    result = asyncio.run(run())

    assert not result.delivered
    assert result.attempts == 3
    assert result.last_status_code == 500
    assert sleeps == [0.3, 0.6]
    rows = asyncio.run(logs.list_for_transaction(transaction.id))
    assert [row.attempt_no for row in rows] == [1, 2, 3]
    assert all(not row.is_success and row.response_code == 500 for row in rows)
    assert len({row.event_id for row in rows}) == 1
    assert [request.headers[ATTEMPT_HEADER] for request in receiver.requests] == ["1", "2", "3"]


def test_success_stops_retrying_and_signs_body():
    project = make_project()
    transaction = make_transaction(project.id, status=TransactionStatus.PAID)
    receiver = WebhookReceiver([503, 204])
    logs = InMemoryWebhookLogsRepository()
    sleeps: list[float] = []

    async def run():
        dispatcher, http_client = build_dispatcher(receiver, logs, sleeps)
        async with http_client:
            return await dispatcher.deliver(project, transaction)

    result = asyncio.run(run())

    assert result.delivered
    assert result.attempts == 2
    assert sleeps == [0.3]
    request = receiver.requests[-1]
    assert request.headers[EVENT_HEADER] == "transaction.paid"
    assert verify_payload_signature("whsec-123", request.content, request.headers[SIGNATURE_HEADER])
    rows = asyncio.run(logs.list_for_transaction(transaction.id))
    assert [row.is_success for row in rows] == [False, True]


def test_unsigned_when_project_has_no_secret():
    project = make_project(webhook_secret=None)
    transaction = make_transaction(project.id, status=TransactionStatus.EXPIRED)
    receiver = WebhookReceiver([200])

    async def run():
        dispatcher, http_client = build_dispatcher(receiver, InMemoryWebhookLogsRepository(), [])
        async with http_client:
            return await dispatcher.deliver(project, transaction)

    assert asyncio.run(run()).delivered
    assert SIGNATURE_HEADER not in receiver.requests[0].headers


def test_transport_errors_are_logged_per_attempt():
    project = make_project()
    transaction = make_transaction(project.id, status=TransactionStatus.PAID)
    logs = InMemoryWebhookLogsRepository()

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def run():
        dispatcher, http_client = build_dispatcher(refuse, logs, [])
        async with http_client:
            return await dispatcher.deliver(project, transaction)

    result = asyncio.run(run())
    assert not result.delivered
    rows = asyncio.run(logs.list_for_transaction(transaction.id))
    assert len(rows) == 3
    assert all(row.response_code is None and "refused" in row.error_message for row in rows)


def test_skipped_without_webhook_url():
    project = make_project(webhook_url=None)
    transaction = make_transaction(project.id, status=TransactionStatus.PAID)
    receiver = WebhookReceiver()
    logs = InMemoryWebhookLogsRepository()

    async def run():
        dispatcher, http_client = build_dispatcher(receiver, logs, [])
        async with http_client:
            return await dispatcher.deliver(project, transaction)

    result = asyncio.run(run())
    assert result.skipped and not result.delivered
    assert receiver.requests == []
    assert asyncio.run(logs.list_for_transaction(transaction.id)) == []
