"""
Compensation Repository.

Local queue of auth identities whose compensating deletion failed.  A
provisioning attempt that cannot roll back its own identity writes a row
here; ``CompensationWorkerService`` keeps retrying the deletion until it
succeeds or the attempt budget runs out.

The queue lives only in SQLite and is keyed by ``auth_user_id``, so
enqueueing the same identity twice is a no-op.
"""

from __future__ import annotations

from typing import Optional

from portal.database import DatabaseManager
from portal.logger import StructuredLogger
from portal.models.enums import CompensationStatus
from portal.models.service_models import PendingCompensation
from portal.repositories.base_repository import BaseRepository


class CompensationRepository(BaseRepository):
    """Data access layer for the ``pending_compensations`` queue."""

    TABLE = "pending_compensations"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def enqueue(self, auth_user_id: str, email: str, reason: str) -> None:
        """Queue the deletion of *auth_user_id* for retry.

        A row that already exists for the identity is reset to
        ``pending`` rather than duplicated.
        """
        with self._db.write_lock:
            self.sqlite.execute(
                f"""
                INSERT INTO {self.TABLE} (auth_user_id, email, reason, status)
                VALUES (?, ?, ?, 'pending')
                ON CONFLICT(auth_user_id) DO UPDATE SET
                    status = 'pending',
                    reason = excluded.reason
                """,
                (auth_user_id, email, reason),
            )
            self._commit()
        self._logger.warning(
            "Compensation queued for auth identity %s (%s)", auth_user_id, email,
        )

    def get_pending(self, limit: int = 50) -> list[PendingCompensation]:
        """Return up to *limit* pending rows, oldest first."""
        with self._db.write_lock:
            rows = self.sqlite.execute(
                f"""
                SELECT * FROM {self.TABLE}
                WHERE status = 'pending'
                ORDER BY created_at ASC, id ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [PendingCompensation(**dict(row)) for row in rows]

    def get_by_auth_user_id(self, auth_user_id: str) -> Optional[PendingCompensation]:
        with self._db.write_lock:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE auth_user_id = ?",
                (auth_user_id,),
            ).fetchone()
        return PendingCompensation(**dict(row)) if row else None

    def mark_done(self, queue_id: int) -> None:
        """Transition a row to ``done``."""
        with self._db.write_lock:
            self.sqlite.execute(
                f"""
                UPDATE {self.TABLE}
                SET status = 'done',
                    attempts = attempts + 1,
                    attempted_at = CURRENT_TIMESTAMP,
                    error_message = NULL
                WHERE id = ?
                """,
                (queue_id,),
            )
            self._commit()

    def mark_failed(
        self,
        queue_id: int,
        error_message: str,
        max_attempts: int,
    ) -> CompensationStatus:
        """Record a failed retry.

        The row stays ``pending`` until it has been attempted
        *max_attempts* times, then becomes ``permanently_failed``.

        Returns:
            The status the row ended up in.
        """
        with self._db.write_lock:
            row = self.sqlite.execute(
                f"SELECT attempts FROM {self.TABLE} WHERE id = ?", (queue_id,),
            ).fetchone()
            attempts: int = (int(row["attempts"]) if row else 0) + 1
            status = (
                CompensationStatus.PERMANENTLY_FAILED
                if attempts >= max_attempts
                else CompensationStatus.PENDING
            )
            self.sqlite.execute(
                f"""
                UPDATE {self.TABLE}
                SET status = ?,
                    attempts = ?,
                    attempted_at = CURRENT_TIMESTAMP,
                    error_message = ?
                WHERE id = ?
                """,
                (str(status), attempts, error_message, queue_id),
            )
            self._commit()
        return status

    def count_pending(self) -> int:
        return self._db.get_pending_compensation_count()
