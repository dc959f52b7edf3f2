"""
Profile Repository.

Data access for ``public.usuarios`` and the two stored procedures that
keep it consistent with ``auth.users``:

- ``clean_duplicate_usuarios(p_email)`` drops soft-deleted rows for an
  email and, if several active rows remain, keeps only the newest.
- ``sync_user_after_auth_creation(...)`` inserts the profile under the
  auth user's id and links the customer row, in one transaction.

Email matching is case-insensitive everywhere: ``usuarios`` is shared
with the host application, which may have stored an address with
capitals, while GoTrue keeps it lowercased.

Reads that gate the provisioning workflow go straight to Supabase and
raise on failure; a stale cache must never decide whether an email is
free.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any, Optional

from portal.database import DatabaseManager
from portal.logger import StructuredLogger
from portal.models.service_models import SyncProcedureResult
from portal.models.user import Profile
from portal.repositories.base_repository import BaseRepository

_PROFILE_COLUMNS: str = (
    "id, nome, email, tipo_usuario, tenant_id, deleted_at, "
    "created_by, updated_by, created_at, updated_at"
)

# Rows fetched per email lookup; the exact-address filter runs client side.
_EMAIL_MATCH_LIMIT: int = 20

# Same two rules as public.clean_duplicate_usuarios, applied to the cache.
_DELETE_SOFT_DELETED_SQL: str = """
    DELETE FROM usuarios
    WHERE lower(email) = lower(?) AND deleted_at IS NOT NULL
"""

_DELETE_OLDER_ACTIVE_SQL: str = """
    DELETE FROM usuarios
    WHERE lower(email) = lower(?)
      AND id NOT IN (
          SELECT id FROM usuarios
          WHERE lower(email) = lower(?) AND deleted_at IS NULL
          ORDER BY created_at DESC NULLS LAST
          LIMIT 1
      )
"""


def _ilike_literal(value: str) -> str:
    """Escape LIKE wildcards so *value* only matches itself."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ProfileRepository(BaseRepository):
    """Data access layer for Profile (``usuarios``) rows."""

    TABLE = "usuarios"

    CLEAN_DUPLICATES_RPC: str = "clean_duplicate_usuarios"
    SYNC_AFTER_AUTH_RPC: str = "sync_user_after_auth_creation"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    # ------------------------------------------------------------------
    # Stored procedures
    # ------------------------------------------------------------------

    def clean_duplicates(self, email: str) -> None:
        """Run the server-side deduplication for *email*, then mirror it locally.

        Irreversible on the server.  Idempotent: with no duplicates left
        both passes delete nothing.

        Raises:
            Exception: Whatever the Supabase client raises.  The caller
                decides whether a failed cleanup is fatal.
        """
        self.supabase.rpc(self.CLEAN_DUPLICATES_RPC, {"p_email": email}).execute()
        self._logger.info("Duplicate profiles cleaned for %s", email)
        self.clean_cached_duplicates(email)

    def clean_cached_duplicates(self, email: str) -> int:
        """Apply the deduplication rules to the local cache.

        Returns:
            Number of cached rows removed.  Cache errors are logged and
            reported as ``0``.
        """
        try:
            with self._db.write_lock:
                removed = self.sqlite.execute(
                    _DELETE_SOFT_DELETED_SQL, (email,)
                ).rowcount
                removed += self.sqlite.execute(
                    _DELETE_OLDER_ACTIVE_SQL, (email, email)
                ).rowcount
                self._commit()
            return removed
        except sqlite3.Error as exc:
            self._logger.warning(
                "Failed to clean cached duplicates for %s (non-fatal): %s",
                email,
                exc,
            )
            return 0

    def sync_after_auth_creation(
        self,
        auth_user_id: str,
        email: str,
        nome: str,
        customer_id: str,
    ) -> SyncProcedureResult:
        """Create the profile under *auth_user_id* and link the customer.

        The procedure traps SQL errors and reports them in the returned
        payload; only transport-level failures raise.
        """
        response = self.supabase.rpc(
            self.SYNC_AFTER_AUTH_RPC,
            {
                "p_auth_user_id": auth_user_id,
                "p_email": email,
                "p_nome": nome,
                "p_cliente_id": customer_id,
            },
        ).execute()

        payload: Any = response.data
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not isinstance(payload, dict):
            return SyncProcedureResult(
                success=False,
                error="Synchronisation procedure returned no result",
            )
        return SyncProcedureResult.model_validate(payload)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _active_rows_for_email(self, email: str, columns: str) -> list[dict[str, Any]]:
        """Non-deleted ``usuarios`` rows whose email equals *email*, ignoring case.

        ``ilike`` narrows the query on the server; the exact comparison
        is repeated here so an address only ever matches itself.  Rows
        come back newest first with undated rows last.
        """
        response = (
            self.supabase.table(self.TABLE)
            .select(columns)
            .ilike("email", _ilike_literal(email))
            .is_("deleted_at", "null")
            .order("created_at", desc=True, nullsfirst=False)
            .limit(_EMAIL_MATCH_LIMIT)
            .execute()
        )
        wanted = email.casefold()
        return [
            row for row in response.data or []
            if str(row.get("email") or "").casefold() == wanted
        ]

    def email_in_use(self, email: str) -> bool:
        """True when an active profile already holds *email* in any letter case.

        Only ``id`` and ``email`` are read, so a row with incomplete
        columns still counts as taken.
        """
        return bool(self._active_rows_for_email(email, "id, email"))

    def get_active_by_email(self, email: str) -> Optional[Profile]:
        """Return the newest non-deleted profile for *email*, or ``None``.

        Read-only: the local cache is not touched.
        """
        rows = self._active_rows_for_email(email, _PROFILE_COLUMNS)
        return Profile(**rows[0]) if rows else None

    def get_by_id(self, user_id: str) -> Optional[Profile]:
        """Fetch a profile by primary key from Supabase."""
        response = (
            self.supabase.table(self.TABLE)
            .select(_PROFILE_COLUMNS)
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        profile = Profile(**response.data[0])
        self._cache_to_sqlite(profile)
        return profile

    def get_cached_active_by_email(self, email: str) -> Optional[Profile]:
        """Return the newest cached non-deleted profile for *email*."""
        with self._db.write_lock:
            row = self.sqlite.execute(
                f"""
                SELECT * FROM {self.TABLE}
                WHERE lower(email) = lower(?) AND deleted_at IS NULL
                ORDER BY created_at DESC NULLS LAST
                LIMIT 1
                """,
                (email,),
            ).fetchone()
        return Profile(**dict(row)) if row else None

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _cache_to_sqlite(self, profile: Profile) -> None:
        """Write a profile to the local cache.

        Exceptions are logged but not raised so that a local cache
        failure never masks a successful Supabase operation.
        """
        created_at: datetime = profile.created_at or datetime.now(timezone.utc)
        updated_at: datetime = profile.updated_at or created_at
        deleted_at: Optional[str] = (
            profile.deleted_at.isoformat() if profile.deleted_at else None
        )
        try:
            with self._db.write_lock:
                self.sqlite.execute(
                    f"""
                    INSERT INTO {self.TABLE}
                        (id, nome, email, tipo_usuario, tenant_id,
                         deleted_at, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        nome         = excluded.nome,
                        email        = excluded.email,
                        tipo_usuario = excluded.tipo_usuario,
                        tenant_id    = excluded.tenant_id,
                        deleted_at   = excluded.deleted_at,
                        updated_at   = excluded.updated_at
                    """,
                    (
                        profile.id,
                        profile.nome,
                        profile.email,
                        profile.tipo_usuario,
                        profile.tenant_id,
                        deleted_at,
                        created_at.isoformat(),
                        updated_at.isoformat(),
                    ),
                )
                self._commit()
        except sqlite3.Error as exc:
            self._logger.warning(
                "Failed to cache profile %s to SQLite (non-fatal): %s",
                profile.id,
                exc,
            )
