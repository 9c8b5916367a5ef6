"""HTTP surface: auth, idempotent creation, rate limits, sync, callbacks and balance."""

import asyncio
from contextlib import contextmanager
from uuid import uuid4

import httpx
import pytest
from fastapi.testclient import TestClient

from apps.api.app.domain.transactions import TransactionCreateRequest
from apps.api.app.main import create_app
from apps.api.app.repositories.idempotency import SqlAlchemyIdempotencyRepository
from apps.api.app.services.idempotency import IdempotencyGuard, hash_payload
from conftest import FakeGateway, WebhookReceiver, make_settings, routing_transport

PREFIX = "/api/v1"
PAYLOAD = {"external_id": "INV-2025-0001", "method": "bni_va", "amount": 150000}


class Harness:
    def __init__(self, client: TestClient, gateway: FakeGateway, receiver: WebhookReceiver) -> None:
        self.client = client
        self.gateway = gateway
        self.receiver = receiver

    def create(self, key: str, *, payload=None, idempotency_key: str | None = "order-1"):
        headers = {"Authorization": f"Bearer {key}"}
        if idempotency_key is not None:
            headers["Idempotency-Key"] = idempotency_key
        return self.client.post(f"{PREFIX}/transactions", json=payload or PAYLOAD, headers=headers)


@pytest.fixture
def harness_factory(database):
    @contextmanager
    def factory(**overrides):
        gateway = FakeGateway()
        receiver = WebhookReceiver([200])
        http_client = httpx.AsyncClient(transport=routing_transport(gateway, receiver))
        app = create_app(make_settings(**overrides), database=database, http_client=http_client)
        with TestClient(app) as client:
            yield Harness(client, gateway, receiver)

    return factory


@pytest.fixture
def harness(harness_factory):
    with harness_factory() as value:
        yield value


def auth(key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {key}"}


def test_healthz(harness):
    assert harness.client.get("/healthz").json() == {"ok": True, "service": "api"}


def test_create_transaction_and_replay_byte_identical(harness, seed_project):
    _, key = seed_project()

    first = harness.create(key)
    second = harness.create(key)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.content == first.content
    body = first.json()
    assert body["success"] is True
    data = body["data"]
    assert data["status"] == "pending"
    assert data["amount"] == 150000
    assert data["total_payment"] == 150000
    assert data["payment_number"] == "8808000011112222"
    assert data["gateway_order_id"].startswith("toko-budi-")
    assert len(harness.gateway.calls_to("/api/transactioncreate/")) == 1
    assert "x-ratelimit-remaining" in first.headers


def test_create_passes_callback_url_with_token(harness_factory, seed_project):
    _, key = seed_project()
    with harness_factory(gateway_callback_token="cb-token") as harness:
        assert harness.create(key).status_code == 201
        request = harness.gateway.calls_to("/api/transactioncreate/")[0]
    assert b"/api/v1/internal/gateway/callback?token=cb-token" in request.content


def test_same_key_different_payload_conflicts(harness, seed_project):
    _, key = seed_project()
    assert harness.create(key).status_code == 201

    response = harness.create(key, payload={**PAYLOAD, "amount": 175000})

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "IDEMPOTENCY_CONFLICT"
    assert len(harness.gateway.calls_to("/api/transactioncreate/")) == 1


def test_request_still_in_flight_is_rejected(harness, database, seed_project):
    project, key = seed_project()
    request_hash = hash_payload(
        TransactionCreateRequest(**PAYLOAD).model_dump(mode="json", exclude_none=True)
    )

    async def hold_key():
        async with database.sessionmaker() as session:
            guard = IdempotencyGuard(SqlAlchemyIdempotencyRepository(session), lease_seconds=120)
            return await guard.begin(project.id, "order-1", request_hash)

    assert asyncio.run(hold_key()).record is not None

    response = harness.create(key)

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "IDEMPOTENCY_IN_PROGRESS"
    assert harness.gateway.calls_to("/api/transactioncreate/") == []


def test_missing_idempotency_key_is_rejected(harness, seed_project):
    _, key = seed_project()
    response = harness.create(key, idempotency_key=None)
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": {
            "code": "INVALID_REQUEST",
            "message": "Idempotency-Key header is required",
            "details": [],
        },
    }


@pytest.mark.parametrize(
    "payload",
    [
        {**PAYLOAD, "amount": "150000"},
        {**PAYLOAD, "amount": 0},
        {**PAYLOAD, "method": "bitcoin"},
        {**PAYLOAD, "external_id": "ab"},
    ],
)
def test_invalid_payload_returns_400_with_details(harness, seed_project, payload):
    _, key = seed_project()
    response = harness.create(key, payload=payload)
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "INVALID_REQUEST"
    assert error["details"]
    assert harness.gateway.calls_to("/api/transactioncreate/") == []


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer bq_live_unknown"}])
def test_unauthenticated_requests_are_rejected(harness, headers):
    response = harness.client.get(f"{PREFIX}/transactions", headers=headers)
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


def test_gateway_failure_returns_502_and_frees_the_key(harness, seed_project):
    _, key = seed_project()
    harness.gateway.create_status = 500
    harness.gateway.create_body = {"message": "upstream unavailable"}

    failed = harness.create(key)
    assert failed.status_code == 502
    assert failed.json()["error"] == {
        "code": "GATEWAY_ERROR",
        "message": "upstream unavailable",
        "details": [],
    }
    listed = harness.client.get(f"{PREFIX}/transactions", headers=auth(key)).json()
    assert listed["data"]["pagination"]["total"] == 0

    harness.gateway.create_status = 200
    harness.gateway.create_body = {"payment": {"status": "pending"}}
    assert harness.create(key).status_code == 201


def test_rate_limit_returns_429_with_headers(harness_factory, seed_project):
    _, key = seed_project()
    with harness_factory(rate_limit_list_per_window=2, rate_limit_window_seconds=3600) as harness:
        responses = [
            harness.client.get(f"{PREFIX}/transactions", headers=auth(key)) for _ in range(3)
        ]

    assert [response.status_code for response in responses] == [200, 200, 429]
    blocked = responses[-1]
    assert blocked.json()["error"]["code"] == "RATE_LIMITED"
    assert blocked.headers["x-ratelimit-limit"] == "2"
    assert blocked.headers["x-ratelimit-remaining"] == "0"
    assert int(blocked.headers["retry-after"]) > 0
    assert responses[0].headers["x-ratelimit-remaining"] == "1"


def test_gateway_not_configured(harness_factory, seed_project):
    _, key = seed_project()
    with harness_factory(gateway_project=None) as harness:
        response = harness.create(key)
    assert response.status_code == 500
    assert response.json()["error"]["code"] == "GATEWAY_NOT_CONFIGURED"


def test_list_filters_by_status_and_paginates(harness, seed_project):
    _, key = seed_project()
    for index in range(3):
        payload = {**PAYLOAD, "external_id": f"INV-{index:04d}"}
        assert harness.create(key, payload=payload, idempotency_key=f"k-{index}").status_code == 201

    page = harness.client.get(
        f"{PREFIX}/transactions", params={"per_page": 2}, headers=auth(key)
    ).json()["data"]
    assert len(page["items"]) == 2
    assert page["pagination"] == {"page": 1, "per_page": 2, "total": 3, "has_more": True}

    paid = harness.client.get(
        f"{PREFIX}/transactions", params={"status": "paid"}, headers=auth(key)
    ).json()["data"]
    assert paid["items"] == []
    assert paid["pagination"]["total"] == 0


def test_sync_marks_paid_and_sends_one_webhook(harness, seed_project):
    _, key = seed_project(webhook_url="https://merchant.test/hooks", webhook_secret="whsec")
    transaction_id = harness.create(key).json()["data"]["id"]
    harness.gateway.detail_body = {
        "transaction": {"status": "completed", "completed_at": "2025-01-01T10:00:00.123456789Z"}
    }

    first = harness.client.post(f"{PREFIX}/transactions/{transaction_id}/sync", headers=auth(key))
    second = harness.client.post(f"{PREFIX}/transactions/{transaction_id}/sync", headers=auth(key))

    assert first.status_code == 200
    data = first.json()["data"]
    assert data["status"] == "paid"
    assert data["gateway_status"] == "completed"
    assert data["paid_at"] == "2025-01-01T10:00:00.123Z"
    assert second.json()["data"]["status"] == "paid"
    assert len(harness.receiver.requests) == 1

    detail = harness.client.get(f"{PREFIX}/transactions/{transaction_id}", headers=auth(key))
    assert detail.json()["data"]["fee"] == 4500

    logs = harness.client.get(
        f"{PREFIX}/webhook-logs", params={"transaction_id": transaction_id}, headers=auth(key)
    ).json()["data"]
    assert [item["event_type"] for item in logs["items"]] == ["transaction.paid"]
    assert logs["items"][0]["is_success"] is True


def test_sync_gateway_failure_returns_502(harness, seed_project):
    _, key = seed_project()
    transaction_id = harness.create(key).json()["data"]["id"]
    harness.gateway.detail_status = 503

    response = harness.client.post(
        f"{PREFIX}/transactions/{transaction_id}/sync", headers=auth(key)
    )
    assert response.status_code == 502
    assert response.json()["error"]["code"] == "GATEWAY_ERROR"


def test_other_tenants_transactions_are_invisible(harness, seed_project):
    _, owner_key = seed_project()
    _, other_key = seed_project(name="Warung Sari", app_slug="warung-sari")
    transaction_id = harness.create(owner_key).json()["data"]["id"]

    detail = harness.client.get(f"{PREFIX}/transactions/{transaction_id}", headers=auth(other_key))
    sync = harness.client.post(
        f"{PREFIX}/transactions/{transaction_id}/sync", headers=auth(other_key)
    )
    missing = harness.client.get(f"{PREFIX}/transactions/{uuid4()}", headers=auth(owner_key))

    assert detail.status_code == sync.status_code == missing.status_code == 404
    assert harness.gateway.calls_to("/api/transactiondetail") == []


def test_callback_requires_token_and_reconciles(harness_factory, seed_project):
    _, key = seed_project(webhook_url="https://merchant.test/hooks")
    with harness_factory(gateway_callback_token="cb-token") as harness:
        created = harness.create(key).json()["data"]
        harness.gateway.detail_body = {"transaction": {"status": "completed"}}
        body = {"order_id": created["gateway_order_id"], "status": "completed", "amount": 150000}
        url = f"{PREFIX}/internal/gateway/callback"

        rejected = harness.client.post(url, params={"token": "wrong"}, json=body)
        unknown = harness.client.post(
            url, params={"token": "cb-token"}, json={**body, "order_id": "nope"}
        )
        accepted = harness.client.post(url, params={"token": "cb-token"}, json=body)

    assert rejected.status_code == 401
    assert unknown.status_code == 404
    assert accepted.status_code == 200
    assert accepted.json()["data"] == {"transaction_id": created["id"], "status": "paid"}
    assert len(harness.receiver.requests) == 1


def test_balance_and_withdrawal_rules(harness, seed_project):
    _, key = seed_project()

    balance = harness.client.get(f"{PREFIX}/balance", headers=auth(key))
    assert balance.json() == {
        "success": True,
        "data": {
            "total_balance": 0,
            "eligible_balance": 0,
            "reserved_balance": 0,
            "pending_balance": 0,
            "withdrawable_balance": 0,
        },
    }

    rejected = harness.client.post(
        f"{PREFIX}/withdrawals", json={"amount": 150000}, headers=auth(key)
    )
    assert rejected.status_code == 400
    assert rejected.json()["error"]["code"] == "PAYOUT_ACCOUNT_NOT_SET"

    listed = harness.client.get(f"{PREFIX}/withdrawals", headers=auth(key)).json()["data"]
    assert listed["items"] == []


def test_insufficient_balance_for_withdrawal(harness, seed_project):
    _, key = seed_project(
        payout_bank_name="BCA",
        payout_account_name="Budi Santoso",
        payout_account_number="1234567890",
    )
    response = harness.client.post(
        f"{PREFIX}/withdrawals", json={"amount": 150000}, headers=auth(key)
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INSUFFICIENT_BALANCE"


@pytest.mark.parametrize("amount", ["150000.00", 150000.5, "150.000"])
def test_callback_accepts_any_amount_format(harness, seed_project, amount):
    _, key = seed_project()
    created = harness.create(key).json()["data"]
    harness.gateway.detail_body = {"transaction": {"status": "completed"}}

    response = harness.client.post(
        f"{PREFIX}/internal/gateway/callback",
        json={"order_id": created["gateway_order_id"], "status": "completed", "amount": amount},
    )

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "paid"
    assert len(harness.gateway.calls_to("/api/transactiondetail")) == 1
