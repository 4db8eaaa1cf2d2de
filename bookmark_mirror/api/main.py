"""
FastAPI application serving the bookmark mirror.

Usage:
    bookmark-mirror serve
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from bookmark_mirror import __version__
from bookmark_mirror.api.error_handlers import (
    global_exception_handler,
    store_error_handler,
    upstream_error_handler,
    validation_exception_handler,
)
from bookmark_mirror.api.middleware import correlation_id_middleware
from bookmark_mirror.api.routers import bookmark_tags, bookmarks, health
from bookmark_mirror.core.logging_utils import get_logger
from bookmark_mirror.domain.exceptions import StoreError, TransientSourceError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from bookmark_mirror.di.container import Container

logger = get_logger(__name__)


def create_app(container: Container, *, run_sync: bool = True) -> FastAPI:
    """Build the read API around an already configured container.

    Args:
        container: Component container shared with the sync loop
        run_sync: Start the background reconciliation loop for the app's lifetime
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await container.start()
        sync_task: asyncio.Task[None] | None = None
        if run_sync:
            sync_task = asyncio.create_task(
                container.runner().run_forever(), name="bookmark-mirror-sync"
            )
            logger.info("sync_task_started")
        try:
            yield
        finally:
            if sync_task is not None:
                container.runner().stop()
                sync_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sync_task
                logger.info("sync_task_stopped")
            await container.aclose()

    app = FastAPI(
        title="Bookmark Mirror API",
        description="Read access to the locally mirrored bookmark collection",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container

    app.middleware("http")(correlation_id_middleware)

    app.include_router(bookmarks.router, prefix="/api/bookmarks", tags=["Bookmarks"])
    app.include_router(bookmark_tags.router, prefix="/api/bookmark-tags", tags=["Tags"])
    app.include_router(health.router, tags=["Health"])

    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(TransientSourceError, upstream_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    return app
