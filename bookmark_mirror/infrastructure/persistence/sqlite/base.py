from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

import peewee

from bookmark_mirror.domain.exceptions import StoreError

if TYPE_CHECKING:
    from bookmark_mirror.db.session import DatabaseSessionManager


class SqliteBaseRepository:
    """Base repository for SQLite implementations.

    Driver failures are re-raised as ``StoreError`` so callers only ever deal
    with the domain taxonomy.
    """

    def __init__(self, session_manager: DatabaseSessionManager) -> None:
        self._session = session_manager

    async def _execute(
        self,
        operation: Any,
        *args: Any,
        timeout: float | None = None,
        operation_name: str = "repository_operation",
        read_only: bool = False,
        transaction: bool = False,
        **kwargs: Any,
    ) -> Any:
        """Execute a database operation safely using the session manager."""
        try:
            return await self._session._safe_db_operation(
                operation,
                *args,
                timeout=timeout,
                operation_name=operation_name,
                read_only=read_only,
                transaction=transaction,
                **kwargs,
            )
        except (peewee.PeeweeException, sqlite3.Error, TimeoutError) as exc:
            msg = f"{operation_name} failed: {exc}"
            raise StoreError(
                msg, {"error_type": type(exc).__name__}, operation=operation_name
            ) from exc
