"""Error taxonomy surfaced at the HTTP boundary."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping


class ErrorCode(str, Enum):
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    IDEMPOTENCY_CONFLICT = "IDEMPOTENCY_CONFLICT"
    IDEMPOTENCY_IN_PROGRESS = "IDEMPOTENCY_IN_PROGRESS"
    RATE_LIMITED = "RATE_LIMITED"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    GATEWAY_NOT_CONFIGURED = "GATEWAY_NOT_CONFIGURED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    PAYOUT_ACCOUNT_NOT_SET = "PAYOUT_ACCOUNT_NOT_SET"
    MIN_WITHDRAWAL = "MIN_WITHDRAWAL"
    AMOUNT_TOO_SMALL = "AMOUNT_TOO_SMALL"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"


class ApiError(Exception):
    """Base class for failures rendered as ``{"success": false, "error": ...}``."""

    status_code: int = 500
    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | None = None,
        details: list[Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        self.details = details or []
        self.headers = dict(headers or {})
        super().__init__(self.message)


class InvalidRequestError(ApiError):
    status_code = 400
    code = ErrorCode.INVALID_REQUEST
    default_message = "Invalid payload"


class UnauthorizedError(ApiError):
    status_code = 401
    code = ErrorCode.UNAUTHORIZED
    default_message = "Invalid API key"


class NotFoundError(ApiError):
    status_code = 404
    code = ErrorCode.NOT_FOUND
    default_message = "Resource not found"


class IdempotencyConflictError(ApiError):
    status_code = 409
    code = ErrorCode.IDEMPOTENCY_CONFLICT
    default_message = "Idempotency key already used with different payload"


class IdempotencyInFlightError(ApiError):
    status_code = 409
    code = ErrorCode.IDEMPOTENCY_IN_PROGRESS
    default_message = "Request with this idempotency key is still processing"


class RateLimitedError(ApiError):
    status_code = 429
    code = ErrorCode.RATE_LIMITED
    default_message = "Too many requests"


class GatewayFailureError(ApiError):
    status_code = 502
    code = ErrorCode.GATEWAY_ERROR
    default_message = "Gateway request failed"


class InternalError(ApiError):
    status_code = 500
    code = ErrorCode.INTERNAL_ERROR


class GatewayNotConfiguredError(ApiError):
    status_code = 500
    code = ErrorCode.GATEWAY_NOT_CONFIGURED
    default_message = "Gateway credentials are missing"
