"""
Data Models Package.

Re-exports all Pydantic models:
    from portal.models import Profile, Customer, AuthIdentity
    from portal.models import ProvisioningResult, ProvisioningErrorCode
"""

from __future__ import annotations

from portal.models.enums import (
    AuditAction,
    CompensationStatus,
    ProfileRole,
    ProvisioningErrorCode,
)
from portal.models.service_models import (
    PendingCompensation,
    PortalUserRequest,
    ProvisioningResult,
    SyncCheckResult,
    SyncProcedureResult,
    ValidationResult,
)
from portal.models.user import AuthIdentity, Customer, Profile

__all__ = [
    "AuditAction",
    "AuthIdentity",
    "CompensationStatus",
    "Customer",
    "PendingCompensation",
    "PortalUserRequest",
    "Profile",
    "ProfileRole",
    "ProvisioningErrorCode",
    "ProvisioningResult",
    "SyncCheckResult",
    "SyncProcedureResult",
    "ValidationResult",
]
