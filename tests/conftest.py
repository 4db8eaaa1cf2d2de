"""Pytest configuration and shared fixtures.

Every test gets its own SQLite file under ``tmp_path`` and an in-memory
upstream that pages like the real one.
"""

from __future__ import annotations

from typing import Any

import pytest

from bookmark_mirror.adapters.upstream.models import TagSearchBody
from bookmark_mirror.config import (
    AppConfig,
    DatabaseConfig,
    RuntimeConfig,
    SyncSettings,
    TagAliasConfig,
    UpstreamConfig,
)
from bookmark_mirror.db.session import DatabaseSessionManager
from bookmark_mirror.domain.exceptions import TransientSourceError
from bookmark_mirror.domain.models import BookmarkItem, SourcePage, TagVocabularyEntry
from bookmark_mirror.infrastructure.persistence.sqlite.repositories import (
    SqliteBookmarkRepositoryAdapter,
    SqliteBookmarkTagRepositoryAdapter,
)
from bookmark_mirror.services.mirror_writer import MirrorWriter
from bookmark_mirror.services.tag_counter import TagReferenceCounter


def make_item(work_id: int | str, *tags: str, **payload: Any) -> BookmarkItem:
    payload.setdefault("title", f"work {work_id}")
    return BookmarkItem(id=str(work_id), tags=list(tags), payload=payload)


class FakePagedSource:
    """Upstream stand-in: ``items`` is the full collection, newest first."""

    page_size = 100

    def __init__(self, items: list[BookmarkItem] | None = None) -> None:
        self.items = list(items or [])
        self.fetched_pages: list[int] = []
        self.failing_pages: set[int] = set()
        self.vocabulary: list[TagVocabularyEntry] = []
        self.search_results: dict[str, TagSearchBody] = {}
        self.searched: list[str] = []
        self.missing_works: set[str] = set()

    async def fetch_page(self, page: int) -> SourcePage:
        self.fetched_pages.append(page)
        if page in self.failing_pages:
            raise TransientSourceError(f"page {page} unavailable", status_code=503)
        start = (page - 1) * self.page_size
        window = self.items[start : start + self.page_size]
        return SourcePage(items=[item.model_copy() for item in window], total=len(self.items))

    async def fetch_tag_vocabulary(self) -> list[TagVocabularyEntry]:
        return list(self.vocabulary)

    async def search_tag(self, tag: str) -> TagSearchBody:
        self.searched.append(tag)
        return self.search_results.get(tag, TagSearchBody())

    async def work_exists(self, work_id: str) -> bool:
        return work_id not in self.missing_works


@pytest.fixture
def session_manager(tmp_path) -> DatabaseSessionManager:
    manager = DatabaseSessionManager(path=str(tmp_path / "mirror.db"), operation_timeout=10.0)
    manager.migrate()
    yield manager
    manager.close()


@pytest.fixture
def bookmark_repo(session_manager) -> SqliteBookmarkRepositoryAdapter:
    return SqliteBookmarkRepositoryAdapter(session_manager)


@pytest.fixture
def tag_repo(session_manager) -> SqliteBookmarkTagRepositoryAdapter:
    return SqliteBookmarkTagRepositoryAdapter(session_manager)


@pytest.fixture
def counter(tag_repo) -> TagReferenceCounter:
    return TagReferenceCounter(tag_repo)


@pytest.fixture
def writer(bookmark_repo, counter) -> MirrorWriter:
    return MirrorWriter(bookmark_repo, counter)


@pytest.fixture
def source() -> FakePagedSource:
    return FakePagedSource()


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig(
        upstream=UpstreamConfig(user_id=42, session_id="42_abcdef"),
        sync=SyncSettings(cooldown_sec=0, backfill_page_delay_sec=0, tag_enrichment_enabled=False),
        tag_aliases=TagAliasConfig(aliases={"nsfw": ["R-18", "R-18G"]}),
        runtime=RuntimeConfig(),
        database=DatabaseConfig(path=str(tmp_path / "app.db")),
    )


async def counts_from_mirror(bookmark_repo: SqliteBookmarkRepositoryAdapter) -> dict[str, int]:
    """Recount tags straight from the mirrored bookmarks."""
    totals: dict[str, int] = {}
    offset = 0
    while page := await bookmark_repo.async_find(offset=offset, limit=100):
        for item in page:
            for tag in set(item.tags):
                totals[tag] = totals.get(tag, 0) + 1
        offset += len(page)
    return totals


async def counts_from_records(tag_repo: SqliteBookmarkTagRepositoryAdapter) -> dict[str, int]:
    return {record.id: record.total for record in await tag_repo.async_list_all()}
