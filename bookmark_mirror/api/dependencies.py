"""FastAPI dependencies resolving components from the app's container."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from bookmark_mirror.di.container import Container


def get_container(request: Request) -> Container:
    return request.app.state.container
