"""Liveness endpoint with mirror and sync status."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends

from bookmark_mirror.api.dependencies import get_container
from bookmark_mirror.api.responses import success_response
from bookmark_mirror.core.time_utils import UTC
from bookmark_mirror.di.container import Container

router = APIRouter()


@router.get("/health")
async def health_check(container: Container = Depends(get_container)):
    runner = container.runner()
    last = runner.last_result
    payload: dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "bookmarks": await container.bookmark_repository().async_count(),
        "bootstrapped": runner.bootstrapped,
        "last_sync": None,
    }
    if last is not None:
        payload["last_sync"] = {
            "kind": last.kind,
            "correlation_id": last.correlation_id,
            "inserted": last.inserted,
            "deleted": last.deleted,
            "aborted": last.aborted,
        }
    return success_response(payload)
