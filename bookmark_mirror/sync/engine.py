"""Reconciliation of the local mirror against the upstream bookmark list.

The upstream list has no cursor and no add-date: it is newest first and can
only be walked by position. Additions are found by paging from the newest end
until an already-mirrored bookmark shows up. Removals are found only inside a
bounded recent window, by comparing upstream page 1 with the same number of
most recently mirrored bookmarks. Bookmarks removed upstream outside that
window are never noticed.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import TYPE_CHECKING

from bookmark_mirror.core.logging_utils import generate_correlation_id
from bookmark_mirror.domain.exceptions import MirrorError, StoreError, TransientSourceError
from bookmark_mirror.domain.models import BookmarkItem, CycleResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from bookmark_mirror.services.mirror_writer import MirrorWriter
    from bookmark_mirror.sync.protocols import BookmarkStore, PagedSource

logger = logging.getLogger(__name__)

DEFAULT_BACKFILL_PAGE_DELAY = 0.5


class ReconciliationEngine:
    """Runs the one-off backfill and the repeating diff cycle.

    Every failure is caught where it happens, logged with the cycle's
    correlation id and recorded on the returned ``CycleResult``; nothing here
    raises out of ``backfill`` or ``run_cycle``.
    """

    def __init__(
        self,
        source: PagedSource,
        bookmarks: BookmarkStore,
        writer: MirrorWriter,
        *,
        backfill_page_delay: float = DEFAULT_BACKFILL_PAGE_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_inserted: Callable[[list[BookmarkItem]], Awaitable[None]] | None = None,
    ) -> None:
        self._source = source
        self._bookmarks = bookmarks
        self._writer = writer
        self._backfill_page_delay = backfill_page_delay
        self._sleep = sleep
        self._on_inserted = on_inserted

    @property
    def page_size(self) -> int:
        return self._source.page_size

    async def is_empty(self) -> bool:
        """Raises ``StoreError`` when the mirror cannot be counted."""
        return await self._bookmarks.async_count() == 0

    async def bootstrap_if_empty(self) -> CycleResult | None:
        """Backfill when the mirror holds nothing; ``None`` when it already has bookmarks."""
        if not await self.is_empty():
            return None
        logger.info("sync_mirror_empty_backfilling")
        return await self.backfill()

    async def backfill(self) -> CycleResult:
        """Import the whole upstream collection, oldest bookmark first.

        Every page is fetched before anything is written, so a failed fetch
        leaves the mirror empty and the next attempt starts over cleanly.
        """
        correlation_id = generate_correlation_id()
        start_time = time.time()
        result = CycleResult(kind="backfill", correlation_id=correlation_id)

        try:
            first_page = await self._source.fetch_page(1)
            result.pages_fetched = 1
            total_pages = math.ceil(first_page.total / self.page_size)
            logger.info(
                "sync_backfill_started",
                extra={
                    "correlation_id": correlation_id,
                    "total": first_page.total,
                    "total_pages": total_pages,
                },
            )

            pages: dict[int, list[BookmarkItem]] = {1: first_page.items}
            for page in range(total_pages, 1, -1):
                await self._sleep(self._backfill_page_delay)
                logger.info(
                    "sync_backfill_page",
                    extra={"correlation_id": correlation_id, "page": page, "total_pages": total_pages},
                )
                pages[page] = (await self._source.fetch_page(page)).items
                result.pages_fetched += 1
        except TransientSourceError as exc:
            return self._abort(result, start_time, "backfill_fetch_failed", exc)

        oldest_first = _dedupe(
            item
            for page in sorted(pages, reverse=True)
            for item in reversed(pages[page])
        )
        if oldest_first:
            try:
                stored = await self._writer.insert_batch(oldest_first)
            except StoreError as exc:
                return self._abort(result, start_time, "backfill_insert_failed", exc)
            result.inserted_ids = [item.id for item in stored]
            await self._notify_inserted(stored, correlation_id)

        result.duration_seconds = time.time() - start_time
        logger.info(
            "sync_backfill_completed",
            extra={
                "correlation_id": correlation_id,
                "pages_fetched": result.pages_fetched,
                "inserted": result.inserted,
                "duration_sec": round(result.duration_seconds, 3),
            },
        )
        return result

    async def run_cycle(self) -> CycleResult:
        """Run one diff cycle: page in new bookmarks, then check the recent window."""
        correlation_id = generate_correlation_id()
        start_time = time.time()
        result = CycleResult(kind="cycle", correlation_id=correlation_id)

        recent_window: list[str] = []
        staged: list[BookmarkItem] = []
        staged_ids: set[str] = set()
        page = 1

        while True:
            try:
                source_page = await self._source.fetch_page(page)
            except TransientSourceError as exc:
                return self._abort(result, start_time, "page_fetch_failed", exc, {"page": page})
            result.pages_fetched += 1

            if page == 1:
                recent_window = [item.id for item in source_page.items]
            else:
                logger.info(
                    "sync_catching_up",
                    extra={"correlation_id": correlation_id, "page": page},
                )

            if not source_page.items:
                logger.warning(
                    "sync_empty_page",
                    extra={"correlation_id": correlation_id, "page": page},
                )
                break

            reached_mirrored = False
            for item in source_page.items:
                try:
                    existing = await self._bookmarks.async_get_by_id(item.id)
                except StoreError as exc:
                    # Treated as "already mirrored"; the next cycle starts from page 1 again.
                    self._record_error(result, "lookup_failed", exc, {"bookmark_id": item.id})
                    reached_mirrored = True
                    break
                if existing is not None:
                    reached_mirrored = True
                elif item.id not in staged_ids:
                    staged_ids.add(item.id)
                    staged.append(item)

            if reached_mirrored or page * self.page_size >= source_page.total:
                break
            page += 1

        if staged:
            await self._insert_staged(staged, result)

        if recent_window:
            await self._reconcile_deletions(recent_window, result)

        result.duration_seconds = time.time() - start_time
        log = logger.info if result.inserted or result.deleted else logger.debug
        log(
            "sync_cycle_completed",
            extra={
                "correlation_id": correlation_id,
                "pages_fetched": result.pages_fetched,
                "inserted": result.inserted,
                "deleted": result.deleted,
                "errors": len(result.errors),
                "duration_sec": round(result.duration_seconds, 3),
            },
        )
        return result

    async def _insert_staged(self, staged: list[BookmarkItem], result: CycleResult) -> None:
        oldest_first = list(reversed(staged))
        try:
            stored = await self._writer.insert_batch(oldest_first)
        except StoreError as exc:
            self._record_error(result, "insert_failed", exc, {"count": len(oldest_first)})
            return

        result.inserted_ids = [item.id for item in stored]
        logger.info(
            "sync_bookmarks_inserted",
            extra={
                "correlation_id": result.correlation_id,
                "count": len(stored),
                "bookmark_ids": result.inserted_ids,
            },
        )
        await self._notify_inserted(stored, result.correlation_id)

    async def _reconcile_deletions(self, recent_window: list[str], result: CycleResult) -> None:
        upstream_ids = set(recent_window)
        try:
            local_recent = await self._bookmarks.async_find_recent(len(recent_window))
        except StoreError as exc:
            self._record_error(result, "recent_window_failed", exc)
            return

        for item in local_recent:
            if item.id in upstream_ids:
                continue
            try:
                deleted = await self._writer.delete(item)
            except StoreError as exc:
                self._record_error(result, "delete_failed", exc, {"bookmark_id": item.id})
                continue
            if deleted:
                result.deleted_ids.append(item.id)
                logger.info(
                    "sync_bookmark_removed_upstream",
                    extra={"correlation_id": result.correlation_id, "bookmark_id": item.id},
                )

    async def _notify_inserted(self, items: list[BookmarkItem], correlation_id: str | None) -> None:
        if self._on_inserted is None or not items:
            return
        try:
            await self._on_inserted(items)
        except MirrorError as exc:
            logger.warning(
                "sync_insert_hook_failed",
                extra={"correlation_id": correlation_id, "error": str(exc)},
            )

    @staticmethod
    def _record_error(
        result: CycleResult,
        operation: str,
        exc: Exception,
        context: dict[str, object] | None = None,
    ) -> None:
        message = f"{operation}: {exc}"
        result.errors.append(message)
        logger.error(
            f"sync_{operation}",
            extra={**(context or {}), "correlation_id": result.correlation_id, "error": str(exc)},
        )

    def _abort(
        self,
        result: CycleResult,
        start_time: float,
        operation: str,
        exc: MirrorError,
        context: dict[str, object] | None = None,
    ) -> CycleResult:
        self._record_error(result, operation, exc, {**exc.details, **(context or {})})
        result.aborted = True
        result.duration_seconds = time.time() - start_time
        return result


def _dedupe(items: Iterable[BookmarkItem]) -> list[BookmarkItem]:
    """Keep the first occurrence of each id; pages can overlap if the list shifts mid-walk."""
    seen: set[str] = set()
    unique: list[BookmarkItem] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique
