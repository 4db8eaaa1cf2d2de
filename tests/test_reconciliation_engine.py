from __future__ import annotations

import pytest

from bookmark_mirror.domain.exceptions import StoreError
from bookmark_mirror.sync.engine import ReconciliationEngine

from conftest import FakePagedSource, counts_from_mirror, counts_from_records, make_item


async def _no_sleep(_: float) -> None:
    return None


def _collection(count: int) -> list:
    """``count`` upstream bookmarks, newest (highest id) first, tags shared in small groups."""
    return [make_item(n, f"group{n % 7}", "Common") for n in range(count, 0, -1)]


@pytest.fixture
def engine(source, bookmark_repo, writer) -> ReconciliationEngine:
    return ReconciliationEngine(source, bookmark_repo, writer, sleep=_no_sleep)


async def _mirror_ids_oldest_first(bookmark_repo) -> list[str]:
    ids: list[str] = []
    offset = 0
    while page := await bookmark_repo.async_find(offset=offset, limit=100, descending=False):
        ids.extend(item.id for item in page)
        offset += len(page)
    return ids


@pytest.mark.asyncio
async def test_backfill_inserts_oldest_first(engine, source, bookmark_repo) -> None:
    source.items = _collection(250)

    result = await engine.bootstrap_if_empty()

    assert result is not None and not result.aborted
    assert result.pages_fetched == 3
    assert source.fetched_pages == [1, 3, 2]
    assert await bookmark_repo.async_count() == 250
    assert await _mirror_ids_oldest_first(bookmark_repo) == [str(n) for n in range(1, 251)]


@pytest.mark.asyncio
async def test_bootstrap_is_idempotent(engine, source, bookmark_repo, tag_repo) -> None:
    source.items = _collection(120)

    first = await engine.bootstrap_if_empty()
    second = await engine.bootstrap_if_empty()

    assert first is not None and first.inserted == 120
    assert second is None
    assert await bookmark_repo.async_count() == 120
    assert await counts_from_records(tag_repo) == await counts_from_mirror(bookmark_repo)
    assert (await tag_repo.async_get_by_id("common")).total == 120


@pytest.mark.asyncio
async def test_backfill_failure_leaves_mirror_empty(engine, source, bookmark_repo) -> None:
    source.items = _collection(250)
    source.failing_pages = {2}

    failed = await engine.bootstrap_if_empty()

    assert failed is not None and failed.aborted
    assert failed.errors and "page 2 unavailable" in failed.errors[0]
    assert await bookmark_repo.async_count() == 0

    source.failing_pages.clear()
    retried = await engine.bootstrap_if_empty()
    assert retried is not None and retried.inserted == 250


@pytest.mark.asyncio
async def test_cycle_short_circuits_when_page_one_is_mirrored(
    engine, source, bookmark_repo
) -> None:
    source.items = _collection(150)
    await engine.backfill()
    source.fetched_pages.clear()

    result = await engine.run_cycle()

    assert source.fetched_pages == [1]
    assert result.pages_fetched == 1
    assert result.inserted == 0
    assert result.deleted == 0
    assert await bookmark_repo.async_count() == 150


@pytest.mark.asyncio
async def test_cycle_catches_up_across_pages(engine, source, bookmark_repo, tag_repo) -> None:
    source.items = _collection(100)
    await engine.backfill()
    source.items = _collection(250)
    source.fetched_pages.clear()

    result = await engine.run_cycle()

    assert source.fetched_pages == [1, 2]
    assert result.inserted == 150
    assert result.inserted_ids == [str(n) for n in range(101, 251)]

    inserted = [await bookmark_repo.async_get_by_id(str(n)) for n in range(101, 251)]
    stamps = [item.sync_date for item in inserted]
    assert all(earlier < later for earlier, later in zip(stamps, stamps[1:], strict=False))

    newest_before = await bookmark_repo.async_get_by_id("100")
    assert newest_before.sync_date < stamps[0]
    assert await counts_from_records(tag_repo) == await counts_from_mirror(bookmark_repo)


@pytest.mark.asyncio
async def test_cycle_inserts_new_items_on_page_one(engine, source, bookmark_repo, tag_repo) -> None:
    source.items = _collection(10)
    await engine.backfill()
    source.items = [make_item(12, "Fresh"), make_item(11, "fresh", "common"), *source.items]

    result = await engine.run_cycle()

    assert result.inserted_ids == ["11", "12"]
    recent = await bookmark_repo.async_find_recent(2)
    assert [item.id for item in recent] == ["12", "11"]
    assert (await tag_repo.async_get_by_id("fresh")).total == 2
    assert (await tag_repo.async_get_by_id("common")).total == 11


@pytest.mark.asyncio
async def test_cycle_deletes_items_gone_from_recent_window(
    engine, source, bookmark_repo, tag_repo
) -> None:
    source.items = [make_item(n, "shared", f"only{n}") for n in range(5, 0, -1)]
    await engine.backfill()

    source.items = [item for item in source.items if item.id != "4"]
    result = await engine.run_cycle()

    assert result.deleted_ids == ["4"]
    assert await bookmark_repo.async_get_by_id("4") is None
    assert (await tag_repo.async_get_by_id("shared")).total == 4
    assert await tag_repo.async_get_by_id("only4") is None
    assert await counts_from_records(tag_repo) == await counts_from_mirror(bookmark_repo)


@pytest.mark.asyncio
async def test_removal_outside_recent_window_goes_unnoticed(
    engine, source, bookmark_repo
) -> None:
    source.items = _collection(150)
    await engine.backfill()

    # id 10 sits on upstream page 2, outside the page-one window
    source.items = [item for item in source.items if item.id != "10"]
    result = await engine.run_cycle()

    assert result.deleted == 0
    assert await bookmark_repo.async_get_by_id("10") is not None


@pytest.mark.asyncio
async def test_fetch_failure_aborts_cycle_without_changes(engine, source, bookmark_repo) -> None:
    source.items = _collection(5)
    await engine.backfill()
    source.items = [make_item(6, "new"), *source.items[1:]]
    source.failing_pages = {1}

    result = await engine.run_cycle()

    assert result.aborted
    assert result.inserted == 0
    assert result.deleted == 0
    assert await bookmark_repo.async_get_by_id("5") is not None
    assert await bookmark_repo.async_get_by_id("6") is None


@pytest.mark.asyncio
async def test_failure_on_later_page_discards_staged_items(engine, source, bookmark_repo) -> None:
    source.items = _collection(50)
    await engine.backfill()
    source.items = _collection(250)
    source.failing_pages = {2}

    result = await engine.run_cycle()

    assert result.aborted
    assert source.fetched_pages[-2:] == [1, 2]
    assert await bookmark_repo.async_count() == 50


@pytest.mark.asyncio
async def test_empty_first_page_stops_paging(engine, source, bookmark_repo) -> None:
    source.items = _collection(3)
    await engine.backfill()
    source.items = []
    source.fetched_pages.clear()

    result = await engine.run_cycle()

    assert source.fetched_pages == [1]
    assert result.deleted == 0
    assert await bookmark_repo.async_count() == 3


class _FlakyLookupStore:
    """Bookmark store whose point lookups fail."""

    def __init__(self, inner) -> None:
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def async_get_by_id(self, bookmark_id: str):
        raise StoreError("lookup failed", operation="get_bookmark")


@pytest.mark.asyncio
async def test_lookup_error_stops_paging(source, bookmark_repo, writer) -> None:
    source.items = _collection(250)
    engine = ReconciliationEngine(
        source, _FlakyLookupStore(bookmark_repo), writer, sleep=_no_sleep
    )

    result = await engine.run_cycle()

    assert source.fetched_pages == [1]
    assert result.inserted == 0
    assert not result.aborted
    assert result.errors


@pytest.mark.asyncio
async def test_backfill_pauses_between_pages(source, bookmark_repo, writer) -> None:
    delays: list[float] = []

    async def record_sleep(seconds: float) -> None:
        delays.append(seconds)

    engine = ReconciliationEngine(
        source, bookmark_repo, writer, sleep=record_sleep, backfill_page_delay=0.5
    )
    source.items = _collection(301)

    await engine.backfill()

    assert delays == [0.5, 0.5, 0.5]


@pytest.mark.asyncio
async def test_inserted_hook_receives_stored_items(source, bookmark_repo, writer) -> None:
    seen: list[list[str]] = []

    async def on_inserted(items) -> None:
        seen.append([item.id for item in items])

    engine = ReconciliationEngine(
        source, bookmark_repo, writer, sleep=_no_sleep, on_inserted=on_inserted
    )
    source.items = _collection(2)
    await engine.backfill()
    source.items = [make_item(3, "x"), *source.items]
    await engine.run_cycle()

    assert seen == [["1", "2"], ["3"]]
