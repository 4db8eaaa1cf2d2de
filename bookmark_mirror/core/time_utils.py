from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class SyncDateClock:
    """Hands out strictly increasing UTC timestamps.

    Bulk inserts stamp many bookmarks within the same millisecond; local
    ordering relies on every ``sync_date`` being distinct, so ties are broken
    by nudging one microsecond past the previous value.
    """

    _STEP = timedelta(microseconds=1)

    def __init__(self, now: Callable[[], datetime] = utc_now) -> None:
        self._now = now
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def next(self) -> datetime:
        with self._lock:
            current = self._now()
            if self._last is not None and current <= self._last:
                current = self._last + self._STEP
            self._last = current
            return current

    def seed(self, value: datetime | None) -> None:
        """Make future timestamps sort after ``value`` (e.g. the newest stored one)."""
        if value is None:
            return
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        with self._lock:
            if self._last is None or value > self._last:
                self._last = value
