"""Fixed-delay background loop around the reconciliation engine."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from bookmark_mirror.domain.exceptions import StoreError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from bookmark_mirror.domain.models import CycleResult
    from bookmark_mirror.sync.engine import ReconciliationEngine

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SEC = 10.0


class SyncRunner:
    """Bootstraps the mirror once, then runs one diff cycle per iteration.

    The cooldown starts after a cycle finishes, so a slow upstream delays the
    next cycle instead of overlapping it.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        *,
        cooldown_sec: float = DEFAULT_COOLDOWN_SEC,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._engine = engine
        self._cooldown_sec = cooldown_sec
        self._sleep = sleep
        self._bootstrapped = False
        self._stopped = False
        self.last_result: CycleResult | None = None

    @property
    def bootstrapped(self) -> bool:
        return self._bootstrapped

    def stop(self) -> None:
        """Finish the current iteration and leave ``run_forever``."""
        self._stopped = True

    async def run_once(self) -> CycleResult | None:
        """One iteration: a backfill attempt while unbootstrapped, else a diff cycle."""
        if not self._bootstrapped:
            try:
                result = await self._engine.bootstrap_if_empty()
            except StoreError as exc:
                logger.error("sync_bootstrap_check_failed", extra={"error": str(exc)})
                return None
            if result is not None:
                self.last_result = result
                if result.aborted:
                    return result
            self._bootstrapped = True
            if result is not None:
                return result

        self.last_result = await self._engine.run_cycle()
        return self.last_result

    async def run_forever(self, max_iterations: int | None = None) -> None:
        """Loop until ``stop()`` is called, the task is cancelled or ``max_iterations`` is hit."""
        self._stopped = False
        iterations = 0
        logger.info("sync_runner_started", extra={"cooldown_sec": self._cooldown_sec})
        while not self._stopped:
            try:
                await self.run_once()
            except Exception:
                logger.exception("sync_iteration_failed")

            iterations += 1
            if self._stopped or (max_iterations is not None and iterations >= max_iterations):
                break
            await self._sleep(self._cooldown_sec)
        logger.info("sync_runner_stopped", extra={"iterations": iterations})
