"""
Shared Enumerations for portal provisioning models.

StrEnum values compare equal to their string equivalents, so values read
straight from Supabase rows (``row["tipo_usuario"] == "cliente"``) and
enum members can be mixed freely.
"""

from __future__ import annotations

from enum import StrEnum


class ProfileRole(StrEnum):
    """Values of ``usuarios.tipo_usuario``.

    Staff rows carry other tags owned by the main application; this tool
    only ever writes ``CLIENTE`` and reads the column as plain text.
    """

    CLIENTE = "cliente"


class ProvisioningErrorCode(StrEnum):
    """Terminal failure categories of a provisioning attempt.

    None of them is retried automatically.
    """

    DUPLICATE_EMAIL = "duplicate_email"
    AUTH_CREATION_FAILED = "auth_creation_failed"
    SYNC_FAILED = "sync_failed"
    VERIFICATION_FAILED = "verification_failed"
    VALIDATION_ERROR = "validation_error"
    UNKNOWN = "unknown"


class CompensationStatus(StrEnum):
    """Lifecycle of a queued identity deletion."""

    PENDING = "pending"
    DONE = "done"
    PERMANENTLY_FAILED = "permanently_failed"


class AuditAction(StrEnum):
    """Actions recorded in the audit trail."""

    PORTAL_CREATE = "PORTAL_CREATE"
    PORTAL_COMPENSATE = "PORTAL_COMPENSATE"
    PORTAL_COMPENSATE_DEFERRED = "PORTAL_COMPENSATE_DEFERRED"
