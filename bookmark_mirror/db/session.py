"""Database session management.

``DatabaseSessionManager`` owns the SQLite connection and runs every blocking
peewee call in a worker thread with a timeout, retrying "database is locked"
errors with exponential backoff. Writes are serialised behind one asyncio lock:
the mirror has a single writer and concurrent readers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import peewee
from playhouse.sqlite_ext import SqliteExtDatabase

from bookmark_mirror.db.models import ALL_MODELS, database_proxy

DB_OPERATION_TIMEOUT = 30.0
DB_MAX_RETRIES = 3
DB_BUSY_TIMEOUT_MS = 5000


@dataclass
class DatabaseSessionManager:
    """Peewee-backed database session manager.

    Attributes:
        path: Path to the SQLite database file
        operation_timeout: Default timeout for database operations in seconds
        max_retries: Maximum retries for locked/busy database errors
        busy_timeout_ms: SQLite busy_timeout pragma in milliseconds
    """

    path: str
    operation_timeout: float = field(default=DB_OPERATION_TIMEOUT)
    max_retries: int = field(default=DB_MAX_RETRIES)
    busy_timeout_ms: int = field(default=DB_BUSY_TIMEOUT_MS)
    _logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    _database: peewee.SqliteDatabase = field(init=False)
    _write_lock: asyncio.Lock = field(init=False)

    def __post_init__(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._database = SqliteExtDatabase(
            self.path,
            pragmas={
                "journal_mode": "wal",
                "synchronous": "normal",
                "busy_timeout": self.busy_timeout_ms,
            },
            check_same_thread=False,
        )
        database_proxy.initialize(self._database)
        self._write_lock = asyncio.Lock()

    @property
    def database(self) -> peewee.SqliteDatabase:
        """Access the underlying Peewee database instance."""
        return self._database

    def migrate(self) -> None:
        """Create tables if they do not exist yet."""
        with self._database.connection_context(), self._database.bind_ctx(ALL_MODELS):
            self._database.create_tables(ALL_MODELS, safe=True)
        self._logger.info("db_migrated", extra={"path": self._mask_path(self.path)})

    def close(self) -> None:
        if not self._database.is_closed():
            self._database.close()
        self._logger.info("db_closed", extra={"path": self._mask_path(self.path)})

    async def _safe_db_operation(
        self,
        operation: Any,
        *args: Any,
        timeout: float | None = None,
        operation_name: str = "database_operation",
        read_only: bool = False,
        transaction: bool = False,
        **kwargs: Any,
    ) -> Any:
        """Execute database operation with timeout, retry, and write serialisation.

        Args:
            operation: The blocking database callable to execute
            *args: Positional arguments for the operation
            timeout: Timeout in seconds (default: self.operation_timeout)
            operation_name: Name for logging purposes
            read_only: Skip the write lock (WAL mode allows concurrent readers)
            transaction: Run the operation inside ``atomic()`` (implies a write)
            **kwargs: Keyword arguments for the operation

        Returns:
            Result of the operation

        Raises:
            TimeoutError: If the operation times out
            peewee.OperationalError: If the database stays locked after retries
            peewee.IntegrityError: If a constraint is violated
        """
        if timeout is None:
            timeout = self.operation_timeout

        def _op_wrapper() -> Any:
            with self._database.connection_context():
                if transaction:
                    with self._database.atomic():
                        return operation(*args, **kwargs)
                return operation(*args, **kwargs)

        async def _run() -> Any:
            if read_only and not transaction:
                return await asyncio.to_thread(_op_wrapper)
            # A timed-out caller stops waiting but the thread keeps running;
            # the lock is released only once the thread is done.
            await self._write_lock.acquire()
            worker = asyncio.ensure_future(asyncio.to_thread(_op_wrapper))
            worker.add_done_callback(self._release_write_lock)
            return await asyncio.shield(worker)

        retries = 0
        while True:
            try:
                return await asyncio.wait_for(_run(), timeout=timeout)

            except TimeoutError:
                self._logger.error(
                    "db_operation_timeout",
                    extra={"operation": operation_name, "timeout": timeout, "retries": retries},
                )
                raise

            except peewee.OperationalError as e:
                error_msg = str(e).lower()
                if ("locked" in error_msg or "busy" in error_msg) and retries < self.max_retries:
                    retries += 1
                    wait_time = 0.1 * (2**retries)
                    self._logger.warning(
                        "db_locked_retrying",
                        extra={
                            "operation": operation_name,
                            "retry": retries,
                            "max_retries": self.max_retries,
                            "wait_time": wait_time,
                            "error": str(e),
                        },
                    )
                    await asyncio.sleep(wait_time)
                    continue

                self._logger.error(
                    "db_operational_error",
                    extra={"operation": operation_name, "retries": retries, "error": str(e)},
                )
                raise

            except peewee.IntegrityError as e:
                self._logger.error(
                    "db_integrity_error",
                    extra={"operation": operation_name, "error": str(e)},
                )
                raise

    def _release_write_lock(self, worker: asyncio.Future[Any]) -> None:
        self._write_lock.release()
        if not worker.cancelled() and worker.exception() is not None:
            self._logger.debug(
                "db_write_finished_with_error", extra={"error": str(worker.exception())}
            )

    @staticmethod
    def _mask_path(path: str) -> str:
        """Mask a path for logging (show only parent/filename)."""
        try:
            p = Path(path)
            if not p.name:
                return str(p)
            parent = p.parent.name
            if parent:
                return f".../{parent}/{p.name}"
            return p.name
        except (OSError, ValueError, AttributeError):
            return "..."
