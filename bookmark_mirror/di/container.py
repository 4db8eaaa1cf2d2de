"""Dependency injection container for wiring components.

Every long-lived handle (database session, upstream client, repositories,
engine) is created once here and passed explicitly to whatever needs it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Any

from bookmark_mirror.adapters.upstream.client import UpstreamClient
from bookmark_mirror.core.time_utils import SyncDateClock
from bookmark_mirror.db.session import DatabaseSessionManager
from bookmark_mirror.infrastructure.persistence.sqlite.repositories import (
    SqliteBookmarkRepositoryAdapter,
    SqliteBookmarkTagRepositoryAdapter,
)
from bookmark_mirror.services.mirror_writer import MirrorWriter
from bookmark_mirror.services.tag_counter import TagReferenceCounter
from bookmark_mirror.services.tag_filter import TagFilterResolver
from bookmark_mirror.sync.engine import ReconciliationEngine
from bookmark_mirror.sync.runner import SyncRunner
from bookmark_mirror.sync.tag_audit import TagVocabularyAuditor
from bookmark_mirror.sync.tag_names import TagNameEnricher
from bookmark_mirror.sync.validation import BookmarkValidator

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from bookmark_mirror.config import AppConfig

logger = logging.getLogger(__name__)


class Container:
    """Builds and owns the application's components.

    Example:
        ```python
        container = Container(load_config())
        await container.start()
        result = await container.engine().run_cycle()
        await container.aclose()
        ```

    """

    def __init__(
        self,
        config: AppConfig,
        *,
        upstream: Any | None = None,
        session_manager: DatabaseSessionManager | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the container.

        Args:
            config: Loaded application configuration.
            upstream: Optional upstream source replacing the HTTP client (tests).
            session_manager: Optional pre-built database session manager.
            sleep: Sleep used by the backfill and the sync loop.

        """
        self.config = config
        self._upstream = upstream
        self._session_manager = session_manager
        self._sleep = sleep
        self._exit_stack: AsyncExitStack | None = None

        self._bookmark_repo: SqliteBookmarkRepositoryAdapter | None = None
        self._tag_repo: SqliteBookmarkTagRepositoryAdapter | None = None
        self._tag_counter: TagReferenceCounter | None = None
        self._mirror_writer: MirrorWriter | None = None
        self._tag_filter_resolver: TagFilterResolver | None = None
        self._engine: ReconciliationEngine | None = None
        self._runner: SyncRunner | None = None

    def session_manager(self) -> DatabaseSessionManager:
        if self._session_manager is None:
            db_cfg = self.config.database
            self._session_manager = DatabaseSessionManager(
                path=db_cfg.path,
                operation_timeout=db_cfg.operation_timeout,
                max_retries=db_cfg.max_retries,
                busy_timeout_ms=db_cfg.busy_timeout_ms,
            )
        return self._session_manager

    def upstream(self) -> Any:
        if self._upstream is None:
            self._upstream = UpstreamClient.from_config(self.config.upstream)
        return self._upstream

    def bookmark_repository(self) -> SqliteBookmarkRepositoryAdapter:
        if self._bookmark_repo is None:
            self._bookmark_repo = SqliteBookmarkRepositoryAdapter(self.session_manager())
        return self._bookmark_repo

    def tag_repository(self) -> SqliteBookmarkTagRepositoryAdapter:
        if self._tag_repo is None:
            self._tag_repo = SqliteBookmarkTagRepositoryAdapter(self.session_manager())
        return self._tag_repo

    def tag_counter(self) -> TagReferenceCounter:
        if self._tag_counter is None:
            self._tag_counter = TagReferenceCounter(self.tag_repository())
        return self._tag_counter

    def mirror_writer(self) -> MirrorWriter:
        if self._mirror_writer is None:
            self._mirror_writer = MirrorWriter(
                self.bookmark_repository(), self.tag_counter(), SyncDateClock()
            )
        return self._mirror_writer

    def tag_filter_resolver(self) -> TagFilterResolver:
        if self._tag_filter_resolver is None:
            alias_cfg = self.config.tag_aliases
            self._tag_filter_resolver = TagFilterResolver(
                self.tag_repository(), alias_cfg.aliases, policy=alias_cfg.policy
            )
        return self._tag_filter_resolver

    def tag_name_enricher(self) -> TagNameEnricher | None:
        if not self.config.sync.tag_enrichment_enabled:
            return None
        return TagNameEnricher(self.upstream(), self.tag_repository())

    def engine(self) -> ReconciliationEngine:
        if self._engine is None:
            enricher = self.tag_name_enricher()
            self._engine = ReconciliationEngine(
                self.upstream(),
                self.bookmark_repository(),
                self.mirror_writer(),
                backfill_page_delay=self.config.sync.backfill_page_delay_sec,
                sleep=self._sleep,
                on_inserted=enricher.enrich_items if enricher else None,
            )
        return self._engine

    def runner(self) -> SyncRunner:
        if self._runner is None:
            self._runner = SyncRunner(
                self.engine(), cooldown_sec=self.config.sync.cooldown_sec, sleep=self._sleep
            )
        return self._runner

    def validator(self) -> BookmarkValidator:
        return BookmarkValidator(self.upstream(), self.bookmark_repository(), self.mirror_writer())

    def auditor(self) -> TagVocabularyAuditor:
        return TagVocabularyAuditor(self.upstream(), self.tag_repository(), self.tag_counter())

    async def start(self) -> None:
        """Create tables and open the upstream client."""
        if self._exit_stack is not None:
            return
        self.session_manager().migrate()
        stack = AsyncExitStack()
        upstream = self.upstream()
        if hasattr(upstream, "__aenter__"):
            await stack.enter_async_context(upstream)
        self._exit_stack = stack
        logger.info("container_started")

    async def aclose(self) -> None:
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._exit_stack = None
        if self._session_manager is not None:
            self._session_manager.close()
        logger.info("container_closed")
