"""Render every failure as ``{"success": false, "error": {...}}``."""

from __future__ import annotations

from typing import Any, Mapping

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..domain.errors import ApiError, ErrorCode

logger = structlog.get_logger(__name__)

_HTTP_STATUS_CODES = {
    400: ErrorCode.INVALID_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.INVALID_REQUEST,
    409: ErrorCode.IDEMPOTENCY_CONFLICT,
    429: ErrorCode.RATE_LIMITED,
}


def rate_limit_headers(request: Request) -> dict[str, str]:
    return dict(getattr(request.state, "rate_limit_headers", None) or {})


def error_response(
    request: Request,
    *,
    status_code: int,
    code: ErrorCode | str,
    message: str,
    details: list[Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    merged = rate_limit_headers(request)
    merged.update(headers or {})
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {
                "code": code.value if isinstance(code, ErrorCode) else code,
                "message": message,
                "details": jsonable_encoder(details or []),
            },
        },
        headers=merged,
    )


async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("api.error", code=exc.code.value, message=exc.message, path=request.url.path)
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
        headers=exc.headers,
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    issues = [
        {key: value for key, value in error.items() if key in ("type", "loc", "msg")}
        for error in exc.errors()
    ]
    return error_response(
        request,
        status_code=400,
        code=ErrorCode.INVALID_REQUEST,
        message="Invalid payload",
        details=issues,
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    return error_response(
        request,
        status_code=exc.status_code,
        code=code,
        message=str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("api.unhandled_error", path=request.url.path, method=request.method)
    return error_response(
        request,
        status_code=500,
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred",
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, handle_api_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected_error)
