"""HTTP middleware for the read API."""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response


async def correlation_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every request with ``X-Correlation-ID``, generating one if the client sent none."""
    correlation_id = request.headers.get("X-Correlation-ID") or f"api-{uuid.uuid4().hex[:16]}"
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response
