"""
Service Layer Data Transfer Objects.

Pydantic models for validated input/output at service boundaries.  Every
provisioning outcome, successful or not, crosses the service boundary as
one of these models rather than as an exception.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from portal.models.enums import CompensationStatus, ProvisioningErrorCode

__all__ = [
    "PendingCompensation",
    "PortalUserRequest",
    "ProvisioningResult",
    "SyncCheckResult",
    "SyncProcedureResult",
    "ValidationResult",
]


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class PortalUserRequest(BaseModel):
    """Credentials and ownership for a new customer portal login.

    Shapes are checked by ``PortalProvisioningService`` so that a bad
    value comes back as a ``validation_error`` result instead of a
    ``pydantic.ValidationError``.
    """

    email: str
    password: str
    display_name: str
    customer_id: str


class ValidationResult(BaseModel):
    """Result of a single field validation check."""

    is_valid: bool
    error_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Remote procedure payloads
# ---------------------------------------------------------------------------

class SyncProcedureResult(BaseModel):
    """JSON returned by ``sync_user_after_auth_creation``.

    The procedure traps its own exceptions, so a failed insert or update
    arrives here as ``success=False`` with the SQL error text in
    ``error``.
    """

    model_config = ConfigDict(extra="ignore")

    success: bool = False
    error: Optional[str] = None
    user_id: Optional[str] = None
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

class ProvisioningResult(BaseModel):
    """Outcome of ``PortalProvisioningService.provision``.

    Attributes
    ----------
    success:
        ``True`` when the identity, the profile and the customer link all
        exist and were verified.
    error_code:
        Failure category (``None`` on success).
    error_message:
        Human-readable reason, safe to show to the operator.
    user_id:
        The shared AuthIdentity / Profile id on success.
    message:
        Confirmation text on success.
    """

    success: bool
    error_code: Optional[ProvisioningErrorCode] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    message: Optional[str] = None


class SyncCheckResult(BaseModel):
    """Diagnostic comparison of an AuthIdentity and its Profile."""

    auth_id: str
    profile_id: str
    email: str
    ids_match: bool


class PendingCompensation(BaseModel):
    """A row of the local ``pending_compensations`` queue."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    auth_user_id: str
    email: str = ""
    reason: str = ""
    status: CompensationStatus = CompensationStatus.PENDING
    attempts: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    attempted_at: Optional[datetime] = None
    error_message: Optional[str] = None
