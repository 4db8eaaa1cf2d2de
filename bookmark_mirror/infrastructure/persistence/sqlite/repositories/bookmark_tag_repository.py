"""SQLite implementation of the tag reference-count store.

Counter updates are single SQL statements so concurrent callers never lose an
increment or decrement.
"""

from __future__ import annotations

from collections import Counter

from peewee import chunked, fn

from bookmark_mirror.db.models import Bookmark, BookmarkTag
from bookmark_mirror.domain.models import TagRecord
from bookmark_mirror.infrastructure.persistence.sqlite.base import SqliteBaseRepository

DEFAULT_TAG_LIST_LIMIT = 50


def _to_record(row: BookmarkTag) -> TagRecord:
    return TagRecord(id=row.id, name=row.name, total=row.total)


class SqliteBookmarkTagRepositoryAdapter(SqliteBaseRepository):
    """Adapter for BookmarkTag operations."""

    async def async_get_by_id(self, tag_id: str) -> TagRecord | None:
        tag_id = tag_id.lower()

        def _query() -> TagRecord | None:
            row = BookmarkTag.get_or_none(BookmarkTag.id == tag_id)
            return _to_record(row) if row else None

        return await self._execute(_query, operation_name="get_tag", read_only=True)

    async def async_increment(self, tag_id: str) -> None:
        """Upsert the tag with ``total = 1`` or bump an existing total by one."""
        tag_id = tag_id.lower()

        def _upsert() -> None:
            (
                BookmarkTag.insert(id=tag_id, total=1)
                .on_conflict(
                    conflict_target=[BookmarkTag.id],
                    update={BookmarkTag.total: BookmarkTag.total + 1},
                )
                .execute()
            )

        await self._execute(_upsert, operation_name="increment_tag")

    async def async_decrement(self, tag_id: str) -> bool:
        """Decrement an existing tag; ``False`` when there was nothing to decrement."""
        tag_id = tag_id.lower()

        def _update() -> bool:
            updated = (
                BookmarkTag.update(total=BookmarkTag.total - 1)
                .where(BookmarkTag.id == tag_id)
                .execute()
            )
            return updated > 0

        return await self._execute(_update, operation_name="decrement_tag")

    async def async_delete_by_id(self, tag_id: str) -> bool:
        tag_id = tag_id.lower()

        def _delete() -> bool:
            return BookmarkTag.delete().where(BookmarkTag.id == tag_id).execute() > 0

        return await self._execute(_delete, operation_name="delete_tag")

    async def async_delete_if_exhausted(self, tag_id: str) -> bool:
        """Delete the tag only while its total is still at or below zero."""
        tag_id = tag_id.lower()

        def _delete() -> bool:
            deleted = (
                BookmarkTag.delete()
                .where((BookmarkTag.id == tag_id) & (BookmarkTag.total <= 0))
                .execute()
            )
            return deleted > 0

        return await self._execute(_delete, operation_name="delete_exhausted_tag")

    async def async_list_all(
        self,
        *,
        sort_by_total_desc: bool = True,
        limit: int | None = None,
    ) -> list[TagRecord]:
        def _query() -> list[TagRecord]:
            query = BookmarkTag.select()
            if sort_by_total_desc:
                query = query.order_by(BookmarkTag.total.desc(), BookmarkTag.id)
            else:
                query = query.order_by(BookmarkTag.id)
            if limit is not None:
                query = query.limit(limit)
            return [_to_record(row) for row in query]

        return await self._execute(_query, operation_name="list_tags", read_only=True)

    async def async_resolve_name_or_id(self, term: str) -> list[TagRecord]:
        """Tags whose id or display name equals ``term`` exactly."""
        term = term.lower()

        def _query() -> list[TagRecord]:
            query = (
                BookmarkTag.select()
                .where((BookmarkTag.id == term) | (BookmarkTag.name == term))
                .order_by(BookmarkTag.total.desc())
                .limit(DEFAULT_TAG_LIST_LIMIT)
            )
            return [_to_record(row) for row in query]

        return await self._execute(_query, operation_name="resolve_tag", read_only=True)

    async def async_search(
        self, terms: list[str], limit: int = DEFAULT_TAG_LIST_LIMIT
    ) -> list[TagRecord]:
        """Tags whose id or name contains any of ``terms``, most used first."""
        terms = [term.lower() for term in terms if term]
        if not terms:
            return await self.async_list_all(limit=limit)

        def _query() -> list[TagRecord]:
            condition = None
            for term in terms:
                clause = (fn.instr(BookmarkTag.id, term) > 0) | (
                    fn.instr(fn.coalesce(BookmarkTag.name, ""), term) > 0
                )
                condition = clause if condition is None else condition | clause
            query = (
                BookmarkTag.select()
                .where(condition)
                .order_by(BookmarkTag.total.desc(), BookmarkTag.id)
                .limit(limit)
            )
            return [_to_record(row) for row in query]

        return await self._execute(_query, operation_name="search_tags", read_only=True)

    async def async_set_name(self, tag_id: str, name: str) -> bool:
        tag_id = tag_id.lower()
        name = name.lower()

        def _update() -> bool:
            return BookmarkTag.update(name=name).where(BookmarkTag.id == tag_id).execute() > 0

        return await self._execute(_update, operation_name="set_tag_name")

    async def async_unnamed(self, tag_ids: list[str]) -> list[str]:
        """Subset of ``tag_ids`` that exist and have no name yet."""
        ids = sorted({tag_id.lower() for tag_id in tag_ids})
        if not ids:
            return []

        def _query() -> list[str]:
            found: list[str] = []
            for batch in chunked(ids, 500):
                query = BookmarkTag.select(BookmarkTag.id).where(
                    BookmarkTag.id.in_(batch), BookmarkTag.name.is_null()
                )
                found.extend(row.id for row in query)
            return found

        return await self._execute(_query, operation_name="unnamed_tags", read_only=True)

    async def async_rebuild_counts(self) -> int:
        """Recompute every total from the mirrored bookmarks, keeping names.

        Returns:
            Number of tag records after the rebuild
        """

        def _rebuild() -> int:
            counts: Counter[str] = Counter()
            for row in Bookmark.select(Bookmark.tags).iterator():
                counts.update({tag.lower() for tag in row.tags or []})

            names = {row.id: row.name for row in BookmarkTag.select() if row.name}
            BookmarkTag.delete().execute()
            rows = [
                {"id": tag, "name": names.get(tag), "total": total}
                for tag, total in counts.items()
            ]
            for batch in chunked(rows, 300):
                BookmarkTag.insert_many(batch).execute()
            return len(rows)

        return await self._execute(_rebuild, operation_name="rebuild_tag_counts", transaction=True)
