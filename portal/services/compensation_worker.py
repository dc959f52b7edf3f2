"""
Compensation Worker Service.

Background daemon thread that retries auth identity deletions which
failed during a provisioning rollback.  The provisioning service writes
such identities to the local ``pending_compensations`` queue; this
worker drains it at a configurable interval with exponential backoff
on consecutive failed cycles.

A queued identity is retried until the deletion succeeds (or the user
is already gone) or until ``COMPENSATION_MAX_ATTEMPTS`` attempts have
failed, after which the row is parked as ``permanently_failed`` for an
operator to clean up by hand.

Thread Safety
-------------
All SQLite access goes through ``CompensationRepository``, which holds
``DatabaseManager.write_lock`` for every statement.
"""

from __future__ import annotations

import threading
from typing import Optional

from portal.config import PortalConfig
from portal.database import DatabaseManager
from portal.logger import StructuredLogger
from portal.models.enums import AuditAction, CompensationStatus
from portal.repositories.auth_identity_repository import AuthIdentityRepository
from portal.repositories.compensation_repository import CompensationRepository
from portal.services.base_service import BaseService
from portal.utils.audit import log_audit_event


class CompensationWorkerService(BaseService):
    """Daemon thread that drains the ``pending_compensations`` queue.

    Parameters
    ----------
    db:
        Initialised ``DatabaseManager`` (online check, audit persistence).
    compensation_repo:
        The local retry queue.
    auth_repo:
        Supabase Auth admin access used to delete identities.
    config:
        Supplies the retry interval and the attempt budget.
    logger:
        Structured JSON logger.
    """

    _MAX_INTERVAL_S: float = 900.0  # 15-minute cap
    _BATCH_SIZE: int = 50

    def __init__(
        self,
        db: DatabaseManager,
        compensation_repo: CompensationRepository,
        auth_repo: AuthIdentityRepository,
        config: PortalConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._db: DatabaseManager = db
        self._queue: CompensationRepository = compensation_repo
        self._auth: AuthIdentityRepository = auth_repo
        self._config: PortalConfig = config
        self._thread: Optional[threading.Thread] = None
        self._stop_event: threading.Event = threading.Event()
        self._consecutive_failures: int = 0
        self._last_attempted: int = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker on a daemon thread.  No-op when already running."""
        if self._thread is not None and self._thread.is_alive():
            self._logger.debug("Compensation worker already running.")
            return

        self._stop_event.clear()
        self._consecutive_failures = 0

        self._thread = threading.Thread(
            target=self._run_loop,
            name="CompensationWorker",
            daemon=True,
        )
        self._thread.start()
        self._logger.info("Compensation worker started.")

    def stop(self) -> None:
        """Signal the worker to stop and wait up to 10 s for it to exit."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout=10.0)

        if self._thread.is_alive():
            self._logger.warning(
                "Compensation worker thread did not terminate within 10 s."
            )
        else:
            self._logger.info("Compensation worker stopped.")

        self._thread = None

    @property
    def is_running(self) -> bool:
        """``True`` when the worker thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def pending_count(self) -> int:
        """Number of identity deletions still waiting for a retry."""
        return self._queue.count_pending()

    def process_pending(self) -> int:
        """Retry every pending deletion once.

        Returns
        -------
        int
            Number of queue rows resolved (``done``) in this cycle.
        """
        self._last_attempted = 0
        if not self._db.is_online:
            return 0

        pending = self._queue.get_pending(limit=self._BATCH_SIZE)
        self._last_attempted = len(pending)
        if not pending:
            return 0

        resolved: int = 0
        for item in pending:
            try:
                self._auth.delete(item.auth_user_id)
            except Exception as exc:
                status = self._queue.mark_failed(
                    item.id,
                    str(exc),
                    max_attempts=self._config.COMPENSATION_MAX_ATTEMPTS,
                )
                if status == CompensationStatus.PERMANENTLY_FAILED:
                    self._logger.error(
                        "Giving up on deleting auth identity %s (%s); manual "
                        "cleanup required: %s",
                        item.auth_user_id,
                        item.email,
                        exc,
                    )
                else:
                    self._logger.warning(
                        "Retry failed for auth identity %s: %s",
                        item.auth_user_id,
                        exc,
                    )
                continue

            self._queue.mark_done(item.id)
            resolved += 1
            with self._db.write_lock:
                log_audit_event(
                    logger=self._logger,
                    action=AuditAction.PORTAL_COMPENSATE,
                    entity_type="AuthIdentity",
                    entity_id=item.auth_user_id,
                    user_id=item.auth_user_id,
                    details={
                        "email": item.email,
                        "reason": item.reason,
                        "deferred": True,
                    },
                    conn=self._db.sqlite,
                )

        self._logger.info(
            "Compensation cycle complete: %d/%d identities removed.",
            resolved,
            len(pending),
        )
        return resolved

    # ------------------------------------------------------------------
    # Core loop
    # ------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Main loop executed on the daemon thread."""
        try:
            while not self._stop_event.is_set():
                interval = self._calculate_backoff_interval()
                if self._stop_event.wait(timeout=interval):
                    break  # Stop requested

                try:
                    resolved = self.process_pending()
                except Exception:
                    self._consecutive_failures += 1
                    self._logger.warning(
                        "Compensation cycle failed", exc_info=True,
                    )
                    continue

                if resolved > 0 or self._last_attempted == 0:
                    self._consecutive_failures = 0
                else:
                    self._consecutive_failures += 1
        except Exception:
            self._logger.error(
                "Compensation worker thread terminated due to unhandled exception.",
                exc_info=True,
            )

    def _calculate_backoff_interval(self) -> float:
        """Double the base interval per consecutive failed cycle, capped."""
        base = self._config.COMPENSATION_RETRY_INTERVAL_S
        if self._consecutive_failures == 0:
            return base

        backoff = base * (2 ** min(self._consecutive_failures, 6))
        return min(backoff, max(base, self._MAX_INTERVAL_S))
