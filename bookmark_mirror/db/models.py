"""Peewee ORM models for the mirror database."""

from __future__ import annotations

import datetime as _dt
from typing import Any

import peewee
from playhouse.sqlite_ext import JSONField

from bookmark_mirror.core.time_utils import UTC

# A proxy that will be initialised with the concrete database instance at runtime.
database_proxy: peewee.Database = peewee.DatabaseProxy()


class BaseModel(peewee.Model):
    """Base Peewee model bound to the lazily initialised database proxy."""

    class Meta:
        database = database_proxy
        legacy_table_names = False


class Bookmark(BaseModel):
    """A mirrored bookmark; ``payload`` holds the opaque upstream fields."""

    id = peewee.TextField(primary_key=True)
    sync_date = peewee.DateTimeField(null=True, index=True)
    tags = JSONField(default=list)
    payload = JSONField(default=dict)

    class Meta:
        table_name = "bookmarks"


class BookmarkTag(BaseModel):
    """Reference count of mirrored bookmarks carrying a tag."""

    id = peewee.TextField(primary_key=True)
    name = peewee.TextField(null=True, index=True)
    total = peewee.IntegerField(default=0, index=True)

    class Meta:
        table_name = "bookmark_tags"


ALL_MODELS: tuple[type[BaseModel], ...] = (
    Bookmark,
    BookmarkTag,
)


def coerce_datetime(value: Any) -> _dt.datetime | None:
    """SQLite hands datetimes back as naive values or strings; normalise to aware UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = _dt.datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, _dt.datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
