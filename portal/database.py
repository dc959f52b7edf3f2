"""
Connection management for the two stores the portal admin tool talks to.

``public.usuarios`` (Profile), ``public.clientes`` (Customer) and
``auth.users`` (AuthIdentity) live in the Supabase project, together with
the stored procedures that keep Profile and AuthIdentity ids equal.  The
Python side never writes those tables directly except through the
procedures and the auth admin API.

A local SQLite file sits next to it for bookkeeping only: cached
Profile/Customer rows, the audit trail, and the queue of auth identities
whose compensating deletion has to be retried.

No query logic lives here; repositories own that.

Usage::

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
        sqlite_path=Path(config.LOCAL_DB_PATH),
        logger=StructuredLogger(name="portal.database"),
    )
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional, Union

from supabase import Client as SupabaseClient
from supabase import create_client

from portal.logger import StructuredLogger


class SupabaseUnavailableError(RuntimeError):
    """Raised when remote access is attempted without a Supabase client."""

    def __init__(self) -> None:
        super().__init__(
            "Supabase client is not initialised; the portal admin is "
            "running in offline mode."
        )


def open_sqlite(path: Union[Path, str], logger: StructuredLogger) -> sqlite3.Connection:
    """Open the bookkeeping database shared by every thread of the app.

    Raises
    ------
    PermissionError
        If the file or its directory cannot be opened for writing.
    """
    try:
        conn = sqlite3.connect(str(path), check_same_thread=False)
    except PermissionError as exc:
        msg = (
            f"Cannot open the local database at '{path}'. Check that the "
            "file and its directory are writable and not locked by another "
            "process."
        )
        logger.error(msg)
        raise PermissionError(msg) from exc

    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA foreign_keys = ON;")
    logger.info("Local database opened at %s", path)
    return conn


class DatabaseManager:
    """Owns the Supabase client and the local SQLite connection.

    Without both a URL and a key no client is built and the manager runs
    in offline mode: :attr:`is_online` is ``False`` and :attr:`supabase`
    raises :class:`SupabaseUnavailableError`.

    Parameters
    ----------
    supabase_url:
        Project URL, e.g. ``https://xyz.supabase.co``.
    supabase_key:
        Service-role key; the auth admin API refuses the anon key.
    sqlite_path:
        Local database file, or ``":memory:"``.
    logger:
        Structured JSON logger.
    supabase_client:
        Ready-made client used instead of ``create_client``.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        sqlite_path: Union[Path, str],
        logger: StructuredLogger,
        supabase_client: Optional[SupabaseClient] = None,
    ) -> None:
        self._logger = logger
        self._write_lock = threading.RLock()
        self._in_batch = False
        self._closed = False

        self._supabase: Optional[SupabaseClient] = supabase_client
        if self._supabase is None:
            self._supabase = self._build_client(supabase_url, supabase_key)

        self._sqlite_conn = open_sqlite(sqlite_path, logger)

    def _build_client(self, url: str, key: str) -> Optional[SupabaseClient]:
        if not (url and key):
            self._logger.warning(
                "Supabase URL or service-role key missing; portal provisioning "
                "is unavailable (offline mode)."
            )
            return None
        try:
            client = create_client(url, key)
        except (ValueError, TypeError) as exc:
            # supabase-py validates the URL and key format eagerly.
            self._logger.warning("Rejected Supabase credentials: %s. Offline mode.", exc)
            return None
        except Exception as exc:
            self._logger.error(
                "Supabase client could not be created: %s. Offline mode.",
                exc,
                exc_info=True,
            )
            return None
        self._logger.info("Supabase client ready for %s", url)
        return client

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @property
    def supabase(self) -> SupabaseClient:
        if self._supabase is None:
            raise SupabaseUnavailableError()
        return self._supabase

    @property
    def is_online(self) -> bool:
        return self._supabase is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        return self._sqlite_conn

    # ------------------------------------------------------------------
    # Write coordination
    # ------------------------------------------------------------------

    @property
    def write_lock(self) -> threading.RLock:
        """Lock held around every SQLite write.

        The UI thread, the provisioning worker and the compensation worker
        share one connection.
        """
        return self._write_lock

    @property
    def in_batch(self) -> bool:
        return self._in_batch

    @contextmanager
    def batch_write(self) -> Generator[None, None, None]:
        """Group several repository writes into one SQLite transaction.

        Repository ``_commit()`` calls are skipped inside the block; the
        block commits once on success and rolls back (re-raising) on error.
        Nested use joins the outer batch.
        """
        if self._in_batch:
            yield
            return

        with self._write_lock:
            self._in_batch = True
            try:
                yield
            except Exception:
                self._sqlite_conn.rollback()
                self._logger.error("Batch write rolled back.", exc_info=True)
                raise
            else:
                self._sqlite_conn.commit()
            finally:
                self._in_batch = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def get_pending_compensation_count(self) -> int:
        """Number of queued identity deletions; ``0`` before the schema exists."""
        with self._write_lock:
            try:
                row = self._sqlite_conn.execute(
                    "SELECT COUNT(*) FROM pending_compensations WHERE status = 'pending'"
                ).fetchone()
            except sqlite3.Error:
                self._logger.debug("pending_compensations not readable yet.", exc_info=True)
                return 0
        return int(row[0]) if row else 0

    def close(self) -> None:
        """Close the SQLite connection; later calls do nothing."""
        with self._write_lock:
            if self._closed:
                return
            self._closed = True
            self._sqlite_conn.close()
            self._logger.info("Local database closed.")
