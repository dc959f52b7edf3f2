"""
Audit trail for identity-changing provisioning steps.

Three things are audited: a portal login was created, an orphaned auth
identity was deleted again, and such a deletion had to be queued for a
later retry.  Each event becomes an ``AUDIT: {...}`` log line and, when a
SQLite connection is supplied, a row in ``audit_log``.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from portal.logger import StructuredLogger
from portal.models.enums import AuditAction

__all__ = ["AuditEvent", "DetailValue", "log_audit_event"]

# Flat scalars only.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """One validated audit trail entry."""

    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    action: AuditAction
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)

    def to_row(self) -> tuple[str, str, str, str, str, str]:
        return (
            self.timestamp,
            self.action.value,
            self.entity_type,
            self.entity_id,
            self.user_id,
            json.dumps(self.details, default=str),
        )


def _insert(conn: sqlite3.Connection, event: AuditEvent) -> None:
    conn.execute(
        "INSERT INTO audit_log (timestamp, action, entity_type, entity_id, user_id, details) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        event.to_row(),
    )
    conn.commit()


def log_audit_event(
    logger: StructuredLogger,
    action: Union[AuditAction, str],
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> None:
    """Log *action* as an ``AUDIT:`` line and store it when *conn* is given.

    Storage problems are logged as warnings; the caller's workflow has
    already happened and is never undone by a failed audit write.

    Args:
        logger: Destination of the ``AUDIT:`` line.
        action: An :class:`AuditAction` or its string value.
        entity_type: ``"Profile"`` or ``"AuthIdentity"``.
        entity_id: Primary key of the affected row or identity.
        user_id: Portal account the action concerns.
        details: Flat extra context (email, customer id, reason...).
        conn: Local SQLite connection holding ``audit_log``.
    """
    event = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", event.model_dump_json())

    if conn is None:
        return
    try:
        _insert(conn, event)
    except sqlite3.Error as exc:
        logger.warning("Audit event %s not stored locally: %s", event.action, exc)
