"""On-demand check that a mirrored bookmark still exists upstream."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from bookmark_mirror.services.mirror_writer import MirrorWriter
    from bookmark_mirror.sync.protocols import BookmarkStore

logger = logging.getLogger(__name__)


class WorkProbe(Protocol):
    async def work_exists(self, work_id: str) -> bool: ...


class BookmarkValidator:
    def __init__(self, probe: WorkProbe, bookmarks: BookmarkStore, writer: MirrorWriter) -> None:
        self._probe = probe
        self._bookmarks = bookmarks
        self._writer = writer

    async def validate(self, bookmark_id: str) -> bool:
        """Return whether ``bookmark_id`` is mirrored and still exists upstream.

        A bookmark whose work is gone upstream is removed locally through the
        same delete path the reconciliation engine uses.

        Raises:
            TransientSourceError: If the upstream probe fails
            StoreError: If the mirror cannot be read or written
        """
        item = await self._bookmarks.async_get_by_id(bookmark_id)
        if item is None:
            return False

        if await self._probe.work_exists(bookmark_id):
            return True

        deleted = await self._writer.delete(item)
        logger.info(
            "bookmark_gone_upstream",
            extra={"bookmark_id": bookmark_id, "deleted": deleted},
        )
        return False
