"""Per-tag reference counting over the mirrored bookmark set."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bookmark_mirror.sync.protocols import TagStore

logger = logging.getLogger(__name__)


class TagReferenceCounter:
    """Keeps ``TagRecord.total`` equal to the number of mirrored bookmarks carrying a tag.

    Increments and decrements are single store statements; the check-then-delete
    of an exhausted record is a conditional delete, so a tag that is re-referenced
    between the decrement and the delete survives.
    """

    def __init__(self, tags: TagStore) -> None:
        self._tags = tags

    async def increment(self, tag_id: str) -> None:
        await self._tags.async_increment(tag_id)

    async def decrement(self, tag_id: str) -> bool:
        """Decrement an existing record; a missing record is a silent no-op."""
        return await self._tags.async_decrement(tag_id)

    async def release(self, tag_id: str) -> None:
        """Drop one reference and delete the record once nothing references it."""
        if not await self._tags.async_decrement(tag_id):
            logger.warning("tag_release_missing_record", extra={"tag": tag_id})
            return

        record = await self._tags.async_get_by_id(tag_id)
        if record is not None and record.total <= 0:
            if await self._tags.async_delete_if_exhausted(tag_id):
                logger.debug("tag_record_deleted", extra={"tag": tag_id})

    async def rebuild(self) -> int:
        """Recompute every total from the mirrored bookmarks."""
        count = await self._tags.async_rebuild_counts()
        logger.info("tag_counts_rebuilt", extra={"tags": count})
        return count
