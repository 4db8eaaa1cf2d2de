"""Response envelopes shared by the read API routers."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class BookmarkPage(BaseModel):
    works: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0


def success_response(data: BaseModel | Any) -> dict[str, Any]:
    """Wrap a payload as ``{"data": ...}``."""
    payload = data.model_dump() if isinstance(data, BaseModel) else data
    return {"data": payload}


def error_response(message: str) -> dict[str, Any]:
    return {"error": message}
