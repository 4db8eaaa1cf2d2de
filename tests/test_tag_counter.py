from __future__ import annotations

import asyncio
import random

import pytest

from conftest import counts_from_mirror, counts_from_records, make_item


@pytest.mark.asyncio
async def test_increment_upserts_then_bumps(counter, tag_repo) -> None:
    await counter.increment("Cat")
    await counter.increment("cat")

    record = await tag_repo.async_get_by_id("cat")
    assert record is not None
    assert record.total == 2
    assert record.display_name == "cat"


@pytest.mark.asyncio
async def test_decrement_missing_tag_is_a_noop(counter, tag_repo) -> None:
    assert await counter.decrement("ghost") is False
    assert await tag_repo.async_get_by_id("ghost") is None


@pytest.mark.asyncio
async def test_release_deletes_record_at_zero(counter, tag_repo) -> None:
    await counter.increment("dog")
    await counter.increment("dog")

    await counter.release("dog")
    record = await tag_repo.async_get_by_id("dog")
    assert record is not None and record.total == 1

    await counter.release("dog")
    assert await tag_repo.async_get_by_id("dog") is None


@pytest.mark.asyncio
async def test_concurrent_increments_are_not_lost(counter, tag_repo) -> None:
    await asyncio.gather(*(counter.increment("busy") for _ in range(25)))

    record = await tag_repo.async_get_by_id("busy")
    assert record is not None
    assert record.total == 25


@pytest.mark.asyncio
async def test_exhausted_delete_spares_re_referenced_tag(counter, tag_repo) -> None:
    await counter.increment("flip")
    await counter.decrement("flip")
    await counter.increment("flip")

    assert await tag_repo.async_delete_if_exhausted("flip") is False
    record = await tag_repo.async_get_by_id("flip")
    assert record is not None and record.total == 1


@pytest.mark.asyncio
async def test_writer_lowercases_and_collapses_duplicate_tags(writer, bookmark_repo, tag_repo) -> None:
    stored = await writer.insert_batch([make_item(1, "Cat", "CAT", "Blue")])

    assert stored[0].tags == ["cat", "blue"]
    item = await bookmark_repo.async_get_by_id("1")
    assert item is not None
    assert item.tags == ["cat", "blue"]
    assert await counts_from_records(tag_repo) == {"cat": 1, "blue": 1}


@pytest.mark.asyncio
async def test_writer_keeps_the_rest_of_a_batch_around_a_rejected_item(
    writer, bookmark_repo, tag_repo
) -> None:
    await writer.insert_batch([make_item(2, "dog")])

    stored = await writer.insert_batch(
        [make_item(1, "cat", "blue"), make_item(2, "cat"), make_item(3, "cat", "dog")]
    )

    assert [item.id for item in stored] == ["1", "3"]
    assert await bookmark_repo.async_count() == 3
    kept = await bookmark_repo.async_get_by_id("2")
    assert kept is not None and kept.tags == ["dog"]
    assert await counts_from_records(tag_repo) == {"cat": 2, "blue": 1, "dog": 2}
    assert await counts_from_records(tag_repo) == await counts_from_mirror(bookmark_repo)


@pytest.mark.asyncio
async def test_writer_delete_releases_each_tag_once(writer, tag_repo) -> None:
    first, _second = await writer.insert_batch(
        [make_item(1, "cat", "blue"), make_item(2, "cat")]
    )

    assert await writer.delete(first) is True
    assert await writer.delete(first) is False
    assert await counts_from_records(tag_repo) == {"cat": 1}


@pytest.mark.asyncio
async def test_racing_deletes_decrement_once(writer, tag_repo) -> None:
    (item,) = await writer.insert_batch([make_item(7, "solo", "pair")])
    await writer.insert_batch([make_item(8, "pair")])

    results = await asyncio.gather(writer.delete(item), writer.delete(item))

    assert sorted(results) == [False, True]
    assert await counts_from_records(tag_repo) == {"pair": 1}


@pytest.mark.asyncio
async def test_counter_matches_mirror_after_random_operations(
    writer, bookmark_repo, tag_repo
) -> None:
    rng = random.Random(1234)
    vocabulary = ["a", "b", "c", "d", "e"]
    mirrored = []

    for step in range(60):
        if mirrored and rng.random() < 0.4:
            victim = mirrored.pop(rng.randrange(len(mirrored)))
            await writer.delete(victim)
        else:
            tags = rng.sample(vocabulary, rng.randint(0, 3))
            (stored,) = await writer.insert_batch([make_item(f"w{step}", *tags)])
            mirrored.append(stored)

        records = await counts_from_records(tag_repo)
        assert records == await counts_from_mirror(bookmark_repo)
        assert all(total > 0 for total in records.values())


@pytest.mark.asyncio
async def test_rebuild_recounts_and_keeps_names(writer, counter, tag_repo) -> None:
    await writer.insert_batch([make_item(1, "cat"), make_item(2, "cat", "dog")])
    await tag_repo.async_set_name("cat", "Neko")
    await tag_repo.async_increment("cat")
    await tag_repo.async_increment("stale")

    assert await counter.rebuild() == 2

    assert await counts_from_records(tag_repo) == {"cat": 2, "dog": 1}
    record = await tag_repo.async_get_by_id("cat")
    assert record is not None and record.name == "neko"
