"""
Base Repository.

Every repository receives the ``DatabaseManager`` and a logger through its
constructor.  Remote reads that feed a provisioning decision are strict
(errors reach the service).  Listing reads may go through
:meth:`BaseRepository._execute_with_fallback`, which answers from the
SQLite cache when Supabase cannot.
"""

from __future__ import annotations

import sqlite3
from typing import Callable, Optional, TypeVar

from supabase import Client as SupabaseClient

from portal.database import DatabaseManager
from portal.logger import StructuredLogger

T = TypeVar("T")


class BaseRepository:
    """Shared plumbing for the Supabase-backed and local repositories."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> SupabaseClient:
        return self._db.supabase

    @property
    def sqlite(self) -> sqlite3.Connection:
        return self._db.sqlite

    def _execute_with_fallback(
        self,
        supabase_op: Callable[[], Optional[T]],
        sqlite_op: Callable[[], Optional[T]],
        default_factory: Callable[[], T],
        *,
        operation_name: str,
        on_supabase_success: Optional[Callable[[T], object]] = None,
    ) -> T:
        """Read from Supabase, else from the local cache, else a default.

        A ``None`` from either source means "nothing there" and moves on to
        the next one.  A successful remote answer is handed to
        *on_supabase_success* (typically a cache write) whose failure is
        only logged.
        """
        remote = self._attempt_remote(supabase_op, operation_name)
        if remote is not None:
            if on_supabase_success is not None:
                try:
                    on_supabase_success(remote)
                except Exception as exc:
                    self._logger.warning(
                        "Caching result of %s failed: %s", operation_name, exc,
                    )
            return remote

        try:
            cached = sqlite_op()
        except sqlite3.Error as exc:
            self._logger.error("Local cache read for %s failed: %s", operation_name, exc)
            cached = None
        return cached if cached is not None else default_factory()

    def _attempt_remote(
        self, op: Callable[[], Optional[T]], operation_name: str,
    ) -> Optional[T]:
        try:
            return op()
        except Exception as exc:
            self._logger.warning(
                "Supabase read %s failed, using local cache: %s", operation_name, exc,
            )
            return None

    def _commit(self) -> None:
        """Commit unless a ``DatabaseManager.batch_write()`` block is open."""
        if not self._db.in_batch:
            self.sqlite.commit()
