from __future__ import annotations

"""
JSON exception handlers.

Every error leaves the API in one stable shape:

    {"error": true, "kind": "...", "errorCode": "...", "message": "...",
     "details": {...}?, "requestId": "..."}

Stack traces and store diagnostics never reach the response; they are logged
server-side with the request id bound by `RequestIDMiddleware`.
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mediavault.core.exceptions import (
    AppException,
    AuthenticationError,
    ErrorCode,
    InternalError,
    NotFoundError,
    ValidationError,
)
from mediavault.middleware.request_id import get_request_id

logger = logging.getLogger(__name__)


def _render(exc: AppException, request: Request) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_problem(request_id=get_request_id(request)),
        headers=getattr(exc, "headers", None),
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:  # type: ignore
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s details=%s", request.method, request.url.path, exc, exc.details)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return _render(exc, request)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # type: ignore
    # Routing-level errors (404 unknown path, 405 method) in the same shape.
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    if exc.status_code == 404:
        mapped: AppException = NotFoundError(detail)
    elif exc.status_code == 401:
        mapped = AuthenticationError(detail)
    else:
        mapped = ValidationError(detail, status_code=exc.status_code)
    return _render(mapped, request)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore
    errors = [
        {
            "target": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
            "message": err.get("msg", "invalid value"),
        }
        for err in exc.errors()
    ]
    mapped = ValidationError(
        "Request validation failed",
        code=ErrorCode.MISSING_REQUIRED_FIELD
        if all(e.get("type") == "missing" for e in exc.errors())
        else ErrorCode.INVALID_REQUEST,
        details={"validationErrors": errors},
    )
    return _render(mapped, request)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore
    # Hide internals; full detail goes to the log only.
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _render(InternalError(), request)


__all__ = [
    "app_exception_handler",
    "http_exception_handler",
    "validation_exception_handler",
    "global_exception_handler",
]
