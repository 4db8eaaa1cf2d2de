"""Domain models for mirrored bookmarks and derived tag records."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def normalize_tags(tags: list[str]) -> list[str]:
    """Lower-case tags for storage, dropping duplicates that only differed by case."""
    seen: set[str] = set()
    normalized: list[str] = []
    for tag in tags:
        lowered = tag.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        normalized.append(lowered)
    return normalized


class BookmarkItem(BaseModel):
    """One mirrored bookmark.

    ``payload`` carries every upstream field other than ``id`` and ``tags``
    unchanged (title, dimensions, urls, ...).
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    tags: list[str] = Field(default_factory=list)
    sync_date: datetime | None = Field(default=None, alias="syncDate")
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_upstream(cls, data: dict[str, Any]) -> BookmarkItem:
        payload = {k: v for k, v in data.items() if k not in ("id", "tags")}
        return cls(id=str(data["id"]), tags=list(data.get("tags") or []), payload=payload)

    def to_document(self) -> dict[str, Any]:
        """Flatten back into the upstream shape plus the local ``syncDate``."""
        document = dict(self.payload)
        document["id"] = self.id
        document["tags"] = list(self.tags)
        document["syncDate"] = self.sync_date.isoformat() if self.sync_date else None
        return document


class TagRecord(BaseModel):
    """Reference-counted tag, keyed by its lower-cased string."""

    id: str
    name: str | None = None
    total: int = 0

    @property
    def display_name(self) -> str:
        return self.name or self.id


class TagVocabularyEntry(BaseModel):
    """One ``(tag, count)`` pair from the upstream tag vocabulary."""

    tag: str
    count: int


class CycleResult(BaseModel):
    """Outcome of one reconciliation pass (bootstrap or steady-state cycle)."""

    kind: str = "cycle"  # 'cycle' or 'backfill'
    correlation_id: str | None = None
    pages_fetched: int = 0
    inserted_ids: list[str] = Field(default_factory=list)
    deleted_ids: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    aborted: bool = False
    duration_seconds: float = 0.0

    @property
    def inserted(self) -> int:
        return len(self.inserted_ids)

    @property
    def deleted(self) -> int:
        return len(self.deleted_ids)


class TagAuditReport(BaseModel):
    """Differences between upstream tag counts and local reference counts."""

    missing_locally: dict[str, int] = Field(default_factory=dict)
    missing_upstream: dict[str, int] = Field(default_factory=dict)
    mismatched: dict[str, tuple[int, int]] = Field(default_factory=dict)
    repaired: bool = False

    @property
    def has_drift(self) -> bool:
        return bool(self.missing_locally or self.missing_upstream or self.mismatched)


class TagFilter(BaseModel):
    """Boolean tag predicate: AND across groups, OR within a group.

    A filter with no groups matches every bookmark; an empty group matches none.
    """

    model_config = ConfigDict(frozen=True)

    groups: tuple[tuple[str, ...], ...] = ()

    @property
    def is_unconstrained(self) -> bool:
        return not self.groups

    def matches(self, tags: list[str]) -> bool:
        """Evaluate the predicate against one bookmark's tag list in memory."""
        lowered = {tag.lower() for tag in tags}
        return all(any(target in lowered for target in group) for group in self.groups)


class SourcePage(BaseModel):
    """One page of the upstream collection plus the collection's total size."""

    items: list[BookmarkItem] = Field(default_factory=list)
    total: int = 0
