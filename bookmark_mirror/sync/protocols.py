"""Protocol definitions (ports) for the reconciliation engine.

Keeping these as Protocols isolates sync orchestration from the concrete
SQLite repositories and the upstream HTTP client.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from datetime import datetime

    from bookmark_mirror.domain.models import (
        BookmarkItem,
        SourcePage,
        TagFilter,
        TagRecord,
        TagVocabularyEntry,
    )


class PagedSource(Protocol):
    """The upstream collection, newest first, in fixed-size pages numbered from 1."""

    page_size: int

    async def fetch_page(self, page: int) -> SourcePage: ...

    async def fetch_tag_vocabulary(self) -> list[TagVocabularyEntry]: ...


class BookmarkStore(Protocol):
    async def async_get_by_id(self, bookmark_id: str) -> BookmarkItem | None: ...

    async def async_find_recent(self, limit: int) -> list[BookmarkItem]: ...

    async def async_find(
        self,
        tag_filter: TagFilter | None = None,
        *,
        offset: int = 0,
        limit: int = 30,
        descending: bool = True,
    ) -> list[BookmarkItem]: ...

    async def async_count(self, tag_filter: TagFilter | None = None) -> int: ...

    async def async_insert_many(self, items: list[BookmarkItem]) -> list[str]: ...

    async def async_delete_by_id(self, bookmark_id: str) -> bool: ...

    async def async_latest_sync_date(self) -> datetime | None: ...


class TagStore(Protocol):
    async def async_get_by_id(self, tag_id: str) -> TagRecord | None: ...

    async def async_increment(self, tag_id: str) -> None: ...

    async def async_decrement(self, tag_id: str) -> bool: ...

    async def async_delete_by_id(self, tag_id: str) -> bool: ...

    async def async_delete_if_exhausted(self, tag_id: str) -> bool: ...

    async def async_list_all(
        self, *, sort_by_total_desc: bool = True, limit: int | None = None
    ) -> list[TagRecord]: ...

    async def async_resolve_name_or_id(self, term: str) -> list[TagRecord]: ...

    async def async_rebuild_counts(self) -> int: ...
