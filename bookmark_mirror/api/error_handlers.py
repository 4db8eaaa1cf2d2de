"""Exception handlers mapping mirror errors onto HTTP responses."""

from __future__ import annotations

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from bookmark_mirror.api.responses import error_response
from bookmark_mirror.domain.exceptions import StoreError, TransientSourceError

logger = logging.getLogger(__name__)


def _correlation_id(request: Request) -> str | None:
    return getattr(request.state, "correlation_id", None)


async def store_error_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, StoreError):
        raise exc

    logger.error(
        "api_store_error",
        extra={
            "correlation_id": _correlation_id(request),
            "operation": exc.operation,
            "error": exc.message,
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=error_response("Database temporarily unavailable"),
    )


async def upstream_error_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, TransientSourceError):
        raise exc

    logger.warning(
        "api_upstream_error",
        extra={
            "correlation_id": _correlation_id(request),
            "status_code": exc.status_code,
            "error": exc.message,
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=error_response(f"Upstream request failed: {exc.message}"),
    )


async def validation_exception_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, RequestValidationError):
        raise exc

    fields = [".".join(str(loc) for loc in error["loc"]) for error in exc.errors()]
    logger.info(
        "api_request_invalid",
        extra={"correlation_id": _correlation_id(request), "fields": fields},
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response(f"Invalid request parameters: {', '.join(fields)}"),
    )


async def global_exception_handler(request: Request, exc: Exception) -> Response:
    """Catch-all handler for unexpected exceptions."""
    logger.error(
        "api_unhandled_exception",
        exc_info=exc,
        extra={"correlation_id": _correlation_id(request), "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response("An internal server error occurred"),
    )
