"""Pakasir-style payment gateway client and payload normalization."""

from __future__ import annotations

import re
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Mapping
from urllib.parse import quote

import httpx
import structlog

from ..core.config import Settings, get_settings
from ..domain.gateway import GatewayDetail, PaymentInstrument
from ..domain.transactions import TransactionStatus
from ..telemetry import GATEWAY_LATENCY, GATEWAY_REQUESTS

logger = structlog.get_logger(__name__)

PAYMENT_NUMBER_KEYS = (
    "payment_number",
    "va_number",
    "virtual_account",
    "virtual_account_number",
    "nomor_va",
    "va",
)
QR_STRING_KEYS = (
    "qr_string",
    "qris_string",
    "qr_content",
    "qr_code",
    "qr_text",
    "qris_payload",
    "payload",
)
QR_IMAGE_KEYS = ("qr_url", "qris_url", "qr_image", "qr_image_url", "qrcode_url")
ENVELOPE_KEYS = ("data", "payment", "transaction", "result", "response")

_BASE36 = string.digits + string.ascii_lowercase
_fraction_pattern = re.compile(r"\.(\d+)")


class GatewayError(RuntimeError):
    """Raised when the gateway cannot be reached or rejects a call."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GatewayConfigError(RuntimeError):
    """Raised when gateway credentials are missing."""


def normalize_status(raw: object) -> TransactionStatus:
    match str(raw or "").strip().lower():
        case "completed" | "paid" | "success":
            return TransactionStatus.PAID
        case "expired":
            return TransactionStatus.EXPIRED
        case "failed" | "cancelled" | "canceled":
            return TransactionStatus.FAILED
        case _:
            return TransactionStatus.PENDING


def _pick_first(raw: Mapping[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_instrument(raw: Mapping[str, Any]) -> PaymentInstrument:
    return PaymentInstrument(
        payment_number=_pick_first(raw, PAYMENT_NUMBER_KEYS),
        qr_string=_pick_first(raw, QR_STRING_KEYS),
        qr_image_url=_pick_first(raw, QR_IMAGE_KEYS),
    )


def parse_gateway_datetime(value: object) -> datetime | None:
    """Parse a gateway timestamp into naive UTC, or ``None`` if it is unusable."""

    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    # fromisoformat accepts at most microsecond precision
    text = _fraction_pattern.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(value.strip(), "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _coerce_int(value: object) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(float(str(value)))
    except (TypeError, ValueError, OverflowError):
        return 0


def unwrap_payload(body: object) -> dict[str, Any]:
    if not isinstance(body, dict):
        return {}
    for key in ENVELOPE_KEYS:
        value = body.get(key)
        if isinstance(value, dict):
            return value
    return body


def parse_detail(raw: Mapping[str, Any]) -> GatewayDetail:
    raw_status = raw.get("status")
    completed_at = parse_gateway_datetime(raw.get("completed_at"))
    return GatewayDetail(
        status=normalize_status(raw_status),
        raw_status=str(raw_status) if raw_status is not None else None,
        amount=_coerce_int(raw.get("amount")),
        fee=_coerce_int(raw.get("fee")),
        total_payment=_coerce_int(raw.get("total_payment")),
        instrument=extract_instrument(raw),
        expired_at=parse_gateway_datetime(raw.get("expired_at")),
        paid_at=completed_at,
        completed_at=completed_at,
        raw=dict(raw),
    )


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_order_id(app_slug: str, *, now_ms: int | None = None) -> str:
    """Build a never-reused gateway order id: ``<slug>-<base36 ms>-<5 base36 chars>``."""

    stamp = _to_base36(now_ms if now_ms is not None else int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"{app_slug}-{stamp}-{suffix}"


class GatewayClient:
    """Thin async wrapper around the gateway's create and detail endpoints."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str,
        project: str | None,
        api_key: str | None,
        timeout_seconds: float = 15.0,
    ) -> None:
        if not project or not api_key:
            raise GatewayConfigError("Gateway credentials are not configured")
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._project = project
        self._api_key = api_key
        self._timeout = httpx.Timeout(timeout_seconds)

    @classmethod
    def from_settings(
        cls, http_client: httpx.AsyncClient, settings: Settings | None = None
    ) -> "GatewayClient":
        settings = settings or get_settings()
        return cls(
            http_client,
            base_url=settings.gateway_base_url,
            project=settings.gateway_project,
            api_key=settings.gateway_api_key,
            timeout_seconds=settings.gateway_timeout_seconds,
        )

    async def create(
        self,
        *,
        method: str,
        amount: int,
        order_id: str,
        payer_name: str | None = None,
        callback_url: str | None = None,
    ) -> GatewayDetail:
        path_method = (method or "").strip().lower() or "qris"
        payload: dict[str, Any] = {
            "project": self._project,
            "amount": amount,
            "order_id": order_id,
            "api_key": self._api_key,
            "payer_name": payer_name or "Customer",
        }
        if callback_url:
            payload["callback_url"] = callback_url
        body = await self._request(
            "create",
            "POST",
            f"{self._base_url}/api/transactioncreate/{quote(path_method, safe='')}",
            order_id=order_id,
            json=payload,
        )
        return parse_detail(body)

    async def fetch_detail(self, *, amount: int, order_id: str) -> GatewayDetail:
        params = {
            "project": self._project,
            "amount": str(amount),
            "order_id": order_id,
            "api_key": self._api_key,
        }
        body = await self._request(
            "detail",
            "GET",
            f"{self._base_url}/api/transactiondetail",
            order_id=order_id,
            params=params,
        )
        return parse_detail(body)

    async def _request(
        self, operation: str, http_method: str, url: str, *, order_id: str, **kwargs: Any
    ) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            response = await self._http.request(
                http_method, url, timeout=self._timeout, **kwargs
            )
        except httpx.TimeoutException as exc:
            GATEWAY_REQUESTS.labels(operation=operation, outcome="timeout").inc()
            logger.warning("gateway.request.timeout", operation=operation, order_id=order_id)
            raise GatewayError(f"Gateway {operation} request timed out") from exc
        except httpx.HTTPError as exc:
            GATEWAY_REQUESTS.labels(operation=operation, outcome="transport_error").inc()
            logger.warning(
                "gateway.request.transport_error",
                operation=operation,
                order_id=order_id,
                error=str(exc),
            )
            raise GatewayError(f"Gateway {operation} request failed: {exc}") from exc
        finally:
            GATEWAY_LATENCY.labels(operation=operation).observe(time.perf_counter() - start)

        try:
            body = response.json()
        except ValueError:
            body = {}

        failed = isinstance(body, dict) and body.get("status") == "failed"
        if response.is_error or failed:
            reason = None
            if isinstance(body, dict):
                reason = body.get("msg") or body.get("message")
            reason = reason or f"Gateway {operation} request failed"
            GATEWAY_REQUESTS.labels(operation=operation, outcome="rejected").inc()
            logger.warning(
                f"gateway.{operation}.failed",
                order_id=order_id,
                status_code=response.status_code,
                reason=reason,
            )
            raise GatewayError(str(reason), status_code=response.status_code)

        GATEWAY_REQUESTS.labels(operation=operation, outcome="ok").inc()
        return unwrap_payload(body)
