"""SQLite implementation of the bookmark mirror store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from peewee import SQL, EnclosedNodeList, IntegrityError, NodeList, Value, chunked

from bookmark_mirror.core.time_utils import UTC
from bookmark_mirror.db.models import Bookmark, coerce_datetime
from bookmark_mirror.domain.models import BookmarkItem
from bookmark_mirror.infrastructure.persistence.sqlite.base import SqliteBaseRepository

if TYPE_CHECKING:
    from datetime import datetime

    from peewee import Database

    from bookmark_mirror.domain.models import TagFilter

# The upstream page size; reads are never larger than one upstream page.
MAX_FIND_LIMIT = 100
INSERT_CHUNK_SIZE = 100

logger = logging.getLogger(__name__)


def _to_item(row: Bookmark) -> BookmarkItem:
    return BookmarkItem(
        id=row.id,
        tags=list(row.tags or []),
        sync_date=coerce_datetime(row.sync_date),
        payload=dict(row.payload or {}),
    )


def _group_clause(group: tuple[str, ...]) -> NodeList:
    if not group:
        # an OR over no targets is false
        return NodeList((SQL("0"),))
    return NodeList(
        (
            SQL("EXISTS (SELECT 1 FROM json_each("),
            Bookmark.tags,
            SQL(") AS tag_entry WHERE tag_entry.value IN"),
            EnclosedNodeList([Value(target) for target in group]),
            SQL(")"),
        )
    )


def tag_filter_expression(tag_filter: TagFilter) -> NodeList | None:
    """Render a tag filter as a WHERE clause over the JSON ``tags`` column.

    Each OR-group becomes ``EXISTS (SELECT 1 FROM json_each(tags) WHERE value IN (...))``;
    groups are joined with AND. An empty group matches nothing.
    """
    if not tag_filter.groups:
        return None
    clauses = [_group_clause(group) for group in tag_filter.groups]
    return NodeList(clauses, glue=" AND ", parens=True)


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _insert_rows(database: Database, rows: list[dict[str, Any]]) -> list[str]:
    stored: list[str] = []
    for row in rows:
        try:
            with database.atomic():
                Bookmark.insert(row).execute()
        except IntegrityError as exc:
            logger.warning(
                "bookmark_insert_skipped", extra={"bookmark_id": row["id"], "error": str(exc)}
            )
            continue
        stored.append(row["id"])
    return stored


class SqliteBookmarkRepositoryAdapter(SqliteBaseRepository):
    """Adapter for Bookmark document operations."""

    async def async_get_by_id(self, bookmark_id: str) -> BookmarkItem | None:
        def _query() -> BookmarkItem | None:
            row = Bookmark.get_or_none(Bookmark.id == str(bookmark_id))
            return _to_item(row) if row else None

        return await self._execute(_query, operation_name="get_bookmark", read_only=True)

    async def async_find_recent(self, limit: int) -> list[BookmarkItem]:
        """Return the ``limit`` most recently mirrored bookmarks, newest first."""
        if limit <= 0:
            return []

        def _query() -> list[BookmarkItem]:
            query = (
                Bookmark.select()
                .order_by(Bookmark.sync_date.desc(), Bookmark.id.desc())
                .limit(limit)
            )
            return [_to_item(row) for row in query]

        return await self._execute(_query, operation_name="find_recent_bookmarks", read_only=True)

    async def async_find(
        self,
        tag_filter: TagFilter | None = None,
        *,
        offset: int = 0,
        limit: int = 30,
        descending: bool = True,
    ) -> list[BookmarkItem]:
        """Page through bookmarks ordered by local insertion order.

        ``limit`` is capped at the upstream page size.
        """
        limit = max(0, min(limit, MAX_FIND_LIMIT))
        offset = max(0, offset)
        predicate = tag_filter_expression(tag_filter) if tag_filter else None

        def _query() -> list[BookmarkItem]:
            query = Bookmark.select()
            if predicate is not None:
                query = query.where(predicate)
            if descending:
                query = query.order_by(Bookmark.sync_date.desc(), Bookmark.id.desc())
            else:
                query = query.order_by(Bookmark.sync_date.asc(), Bookmark.id.asc())
            return [_to_item(row) for row in query.offset(offset).limit(limit)]

        return await self._execute(_query, operation_name="find_bookmarks", read_only=True)

    async def async_count(self, tag_filter: TagFilter | None = None) -> int:
        predicate = tag_filter_expression(tag_filter) if tag_filter else None

        def _query() -> int:
            query = Bookmark.select()
            if predicate is not None:
                query = query.where(predicate)
            return query.count()

        return await self._execute(_query, operation_name="count_bookmarks", read_only=True)

    async def async_insert_many(self, items: list[BookmarkItem]) -> list[str]:
        """Insert already-stamped bookmarks in one transaction.

        A chunk the database rejects is retried row by row; rows that still
        violate a constraint (an id that is already mirrored) are logged and
        skipped while the rest of the chunk is stored.

        Returns:
            Ids of the rows actually inserted, in input order
        """
        if not items:
            return []
        rows = [
            {
                "id": item.id,
                "sync_date": _naive_utc(item.sync_date),
                "tags": list(item.tags),
                "payload": dict(item.payload),
            }
            for item in items
        ]
        database = self._session.database

        def _insert() -> list[str]:
            stored: list[str] = []
            for batch in chunked(rows, INSERT_CHUNK_SIZE):
                try:
                    with database.atomic():
                        Bookmark.insert_many(batch).execute()
                except IntegrityError:
                    stored.extend(_insert_rows(database, batch))
                else:
                    stored.extend(row["id"] for row in batch)
            return stored

        return await self._execute(_insert, operation_name="insert_bookmarks", transaction=True)

    async def async_delete_by_id(self, bookmark_id: str) -> bool:
        """Delete a bookmark; ``True`` only for the caller that actually removed the row."""

        def _delete() -> bool:
            return Bookmark.delete().where(Bookmark.id == str(bookmark_id)).execute() > 0

        return await self._execute(_delete, operation_name="delete_bookmark")

    async def async_latest_sync_date(self) -> datetime | None:
        def _query() -> datetime | None:
            row = (
                Bookmark.select(Bookmark.sync_date)
                .where(Bookmark.sync_date.is_null(False))
                .order_by(Bookmark.sync_date.desc())
                .first()
            )
            return coerce_datetime(row.sync_date) if row else None

        return await self._execute(_query, operation_name="latest_sync_date", read_only=True)
