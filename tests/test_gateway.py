"""Gateway client contract and payload normalization."""

import asyncio
import json
import re
from datetime import datetime

import httpx
import pytest
from hypothesis import given, settings, strategies as st

from apps.api.app.domain.transactions import TransactionStatus
from apps.api.app.services.gateway import (
    GatewayClient,
    GatewayConfigError,
    GatewayError,
    extract_instrument,
    generate_order_id,
    normalize_status,
    parse_detail,
    parse_gateway_datetime,
    unwrap_payload,
)


def build_client(handler) -> tuple[GatewayClient, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = GatewayClient(
        http_client,
        base_url="https://gateway.test/",
        project="depodomain",
        api_key="gw-secret-key",
        timeout_seconds=5,
    )
    return client, http_client


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("completed", TransactionStatus.PAID),
        ("PAID", TransactionStatus.PAID),
        (" success ", TransactionStatus.PAID),
        ("expired", TransactionStatus.EXPIRED),
        ("cancelled", TransactionStatus.FAILED),
        ("canceled", TransactionStatus.FAILED),
        ("failed", TransactionStatus.FAILED),
        ("pending", TransactionStatus.PENDING),
        ("something-new", TransactionStatus.PENDING),
        (None, TransactionStatus.PENDING),
    ],
)
def test_normalize_status(raw, expected):
    assert normalize_status(raw) is expected


def test_extract_instrument_uses_first_non_empty_alias():
    instrument = extract_instrument(
        {
            "payment_number": "  ",
            "va_number": "8808123",
            "qris_string": "000201010212",
            "qr_url": "https://qr.test/img.png",
        }
    )
    assert instrument.payment_number == "8808123"
    assert instrument.qr_string == "000201010212"
    assert instrument.qr_image_url == "https://qr.test/img.png"


def test_extract_instrument_ignores_non_string_values():
    instrument = extract_instrument({"payment_number": 12345, "qr_string": None})
    assert instrument.payment_number is None
    assert instrument.qr_string is None


def test_unwrap_payload_prefers_known_envelopes():
    assert unwrap_payload({"payment": {"status": "pending"}}) == {"status": "pending"}
    assert unwrap_payload({"transaction": {"status": "completed"}}) == {"status": "completed"}
    assert unwrap_payload({"status": "pending", "amount": 1}) == {"status": "pending", "amount": 1}
    assert unwrap_payload(["not", "a", "dict"]) == {}


def test_parse_gateway_datetime_handles_nanoseconds_and_offsets():
    assert parse_gateway_datetime("2025-01-01T10:00:00.123456789Z") == datetime(
        2025, 1, 1, 10, 0, 0, 123456
    )
    assert parse_gateway_datetime("2025-01-01T17:00:00+07:00") == datetime(2025, 1, 1, 10, 0, 0)
    assert parse_gateway_datetime("2025-01-01 10:00:00") == datetime(2025, 1, 1, 10, 0, 0)
    assert parse_gateway_datetime("yesterday") is None
    assert parse_gateway_datetime("") is None
    assert parse_gateway_datetime(None) is None


def test_parse_detail_sets_paid_at_from_completion():
    detail = parse_detail(
        {
            "status": "completed",
            "amount": "150000",
            "fee": 4500,
            "total_payment": "154500",
            "completed_at": "2025-01-01T10:00:00Z",
        }
    )
    assert detail.status is TransactionStatus.PAID
    assert detail.raw_status == "completed"
    assert detail.amount == 150_000
    assert detail.total_payment == 154_500
    assert detail.paid_at == detail.completed_at == datetime(2025, 1, 1, 10, 0, 0)


@settings(max_examples=100)
@given(
    slug=st.from_regex(r"[a-z0-9-]{3,20}", fullmatch=True),
    now_ms=st.integers(min_value=0, max_value=10**14),
)
def test_generate_order_id_shape(slug: str, now_ms: int):
    order_id = generate_order_id(slug, now_ms=now_ms)
    assert order_id.startswith(f"{slug}-")
    stamp, suffix = order_id[len(slug) + 1:].split("-")
    assert int(stamp, 36) == now_ms
    assert re.fullmatch(r"[0-9a-z]{5}", suffix)


def test_client_requires_credentials():
    with pytest.raises(GatewayConfigError):
        GatewayClient(
            httpx.AsyncClient(),
            base_url="https://gateway.test",
            project=None,
            api_key="key",
        )


def test_create_posts_credentials_and_normalizes_response():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "payment": {
                    "status": "pending",
                    "va_number": "8808000011112222",
                    "expired_at": "2025-01-02T10:00:00Z",
                }
            },
        )

    async def run():
        client, http_client = build_client(handler)
        async with http_client:
            return await client.create(
                method="bni_va",
                amount=150_000,
                order_id="toko-budi-abc-12345",
                callback_url="https://paybridge.test/callback",
            )

    detail = asyncio.run(run())

    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/api/transactioncreate/bni_va"
    body = json.loads(request.content)
    assert body == {
        "project": "depodomain",
        "amount": 150_000,
        "order_id": "toko-budi-abc-12345",
        "api_key": "gw-secret-key",
        "payer_name": "Customer",
        "callback_url": "https://paybridge.test/callback",
    }
    assert detail.status is TransactionStatus.PENDING
    assert detail.instrument.payment_number == "8808000011112222"
    assert detail.expired_at == datetime(2025, 1, 2, 10, 0, 0)


def test_fetch_detail_sends_query_parameters():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"transaction": {"status": "expired"}})

    async def run():
        client, http_client = build_client(handler)
        async with http_client:
            return await client.fetch_detail(amount=150_000, order_id="toko-budi-abc-12345")

    detail = asyncio.run(run())

    params = seen[0].url.params
    assert seen[0].url.path == "/api/transactiondetail"
    assert params["project"] == "depodomain"
    assert params["amount"] == "150000"
    assert params["order_id"] == "toko-budi-abc-12345"
    assert params["api_key"] == "gw-secret-key"
    assert detail.status is TransactionStatus.EXPIRED


@pytest.mark.parametrize(
    "response, message",
    [
        (httpx.Response(500, json={"message": "upstream down"}), "upstream down"),
        (httpx.Response(200, json={"status": "failed", "msg": "invalid amount"}), "invalid amount"),
        (httpx.Response(422, text="<html>bad</html>"), "Gateway create request failed"),
    ],
)
def test_create_failures_raise_gateway_error(response: httpx.Response, message: str):
    async def run():
        client, http_client = build_client(lambda request: response)
        async with http_client:
            await client.create(method="qris", amount=10_000, order_id="toko-budi-x-1")

    with pytest.raises(GatewayError) as excinfo:
        asyncio.run(run())
    assert str(excinfo.value) == message
    assert excinfo.value.status_code == response.status_code


def test_timeouts_raise_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async def run():
        client, http_client = build_client(handler)
        async with http_client:
            await client.fetch_detail(amount=10_000, order_id="toko-budi-x-1")

    with pytest.raises(GatewayError, match="timed out"):
        asyncio.run(run())
