from __future__ import annotations

import threading

import pytest


@pytest.mark.asyncio
async def test_timed_out_write_keeps_lock_until_thread_finishes(session_manager) -> None:
    release = threading.Event()

    def _slow_write() -> str:
        release.wait(5)
        return "slow"

    with pytest.raises(TimeoutError):
        await session_manager._safe_db_operation(
            _slow_write, timeout=0.05, operation_name="slow_write"
        )

    assert session_manager._write_lock.locked()

    release.set()
    result = await session_manager._safe_db_operation(lambda: "next", operation_name="next_write")

    assert result == "next"
    assert not session_manager._write_lock.locked()


@pytest.mark.asyncio
async def test_failed_write_releases_lock(session_manager) -> None:
    def _broken() -> None:
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        await session_manager._safe_db_operation(_broken, operation_name="broken_write")

    assert not session_manager._write_lock.locked()


@pytest.mark.asyncio
async def test_reads_do_not_take_the_write_lock(session_manager) -> None:
    await session_manager._write_lock.acquire()
    try:
        result = await session_manager._safe_db_operation(
            lambda: 1, operation_name="read", read_only=True
        )
    finally:
        session_manager._write_lock.release()

    assert result == 1
