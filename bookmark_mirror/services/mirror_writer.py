"""Insert and delete paths that keep bookmarks and tag counts in step."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bookmark_mirror.core.time_utils import SyncDateClock
from bookmark_mirror.domain.exceptions import StoreError
from bookmark_mirror.domain.models import BookmarkItem, normalize_tags

if TYPE_CHECKING:
    from bookmark_mirror.services.tag_counter import TagReferenceCounter
    from bookmark_mirror.sync.protocols import BookmarkStore

logger = logging.getLogger(__name__)


class MirrorWriter:
    """The only component that mutates mirrored bookmarks.

    Used by the reconciliation engine and by the validation path, so both
    go through the same increment/decrement bookkeeping.
    """

    def __init__(
        self,
        bookmarks: BookmarkStore,
        counter: TagReferenceCounter,
        clock: SyncDateClock | None = None,
    ) -> None:
        self._bookmarks = bookmarks
        self._counter = counter
        self._clock = clock or SyncDateClock()
        self._clock_seeded = False

    async def insert_batch(self, items: list[BookmarkItem]) -> list[BookmarkItem]:
        """Stamp and insert ``items`` (already oldest first), then count their tags.

        Each item gets a fresh, strictly increasing ``sync_date`` in list order.
        Items the store rejects are left out and their tags are not counted.
        Tag increments that fail are logged and skipped; the inserted rows stay.

        Returns:
            The stored items with normalised tags and their ``sync_date``

        Raises:
            StoreError: If the store itself fails (nothing was counted)
        """
        if not items:
            return []

        if not self._clock_seeded:
            self._clock.seed(await self._bookmarks.async_latest_sync_date())
            self._clock_seeded = True

        stamped = [
            item.model_copy(update={"tags": normalize_tags(item.tags), "sync_date": self._clock.next()})
            for item in items
        ]
        stored_ids = set(await self._bookmarks.async_insert_many(stamped))
        stored = [item for item in stamped if item.id in stored_ids]
        if len(stored) < len(stamped):
            logger.warning(
                "bookmarks_insert_partial",
                extra={
                    "requested": len(stamped),
                    "stored": len(stored),
                    "skipped_ids": [item.id for item in stamped if item.id not in stored_ids],
                },
            )

        for item in stored:
            for tag in item.tags:
                try:
                    await self._counter.increment(tag)
                except StoreError as exc:
                    logger.error(
                        "tag_increment_failed",
                        extra={"bookmark_id": item.id, "tag": tag, "error": str(exc)},
                    )
        return stored

    async def delete(self, item: BookmarkItem) -> bool:
        """Remove a mirrored bookmark and release each of its tags.

        The row is deleted first and the tags are released only by the caller
        that actually removed it, so racing deleters never decrement twice.

        Returns:
            True if this call deleted the bookmark
        """
        if not await self._bookmarks.async_delete_by_id(item.id):
            return False

        for tag in normalize_tags(item.tags):
            try:
                await self._counter.release(tag)
            except StoreError as exc:
                logger.error(
                    "tag_release_failed",
                    extra={"bookmark_id": item.id, "tag": tag, "error": str(exc)},
                )
        return True
