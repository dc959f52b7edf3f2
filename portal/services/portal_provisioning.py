"""
Customer Portal Provisioning Service.

Creates a portal login for a customer: a Supabase Auth user, a matching
``usuarios`` profile that shares its id, and the ``clientes`` link to it.

Workflow (every step is a blocking remote call, no retries):
    1. Deduplicate ``usuarios`` for the email (best effort).
    2. Refuse if an active profile already uses the email.
    3. Create the auth user (email confirmed, role metadata attached).
    4. Run ``sync_user_after_auth_creation`` to insert the profile under
       the auth user's id and link the customer.
    5. If step 4 fails, delete the auth user again.  A deletion that
       fails is queued locally and retried by the compensation worker.
    6. Re-read the profile by id before reporting success.

Every outcome leaves this service as a ``ProvisioningResult``; no
exception crosses :meth:`PortalProvisioningService.provision`.
"""

from __future__ import annotations

import re
import sqlite3
from typing import Optional

from portal.config import PortalConfig
from portal.database import DatabaseManager
from portal.logger import StructuredLogger
from portal.models.enums import AuditAction, ProfileRole, ProvisioningErrorCode
from portal.models.service_models import (
    PortalUserRequest,
    ProvisioningResult,
    ValidationResult,
)
from portal.repositories.auth_identity_repository import AuthIdentityRepository
from portal.repositories.compensation_repository import CompensationRepository
from portal.repositories.profile_repository import ProfileRepository
from portal.services.base_service import BaseService
from portal.utils.audit import DetailValue, log_audit_event

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_EMAIL_RE: re.Pattern[str] = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# C0 controls, DEL and C1 controls.
_CONTROL_CHAR_RE: re.Pattern[str] = re.compile(r"[\x00-\x1f\x7f-\x9f]")

SUCCESS_MESSAGE: str = "Portal created successfully! The customer can now log in."


class PortalProvisioningError(Exception):
    """A provisioning step failed with a classified, terminal error."""

    def __init__(
        self,
        code: ProvisioningErrorCode,
        message: str,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.code: ProvisioningErrorCode = code
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class PortalProvisioningService(BaseService):
    """Orchestrates portal login creation with compensating rollback.

    Parameters
    ----------
    db:
        Database manager; used for the online check and audit persistence.
    profile_repo:
        ``usuarios`` access and the two synchronisation procedures.
    auth_repo:
        Supabase Auth admin API.
    compensation_repo:
        Local queue for identity deletions that must be retried.
    config:
        Application configuration (password policy).
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        db: DatabaseManager,
        profile_repo: ProfileRepository,
        auth_repo: AuthIdentityRepository,
        compensation_repo: CompensationRepository,
        config: PortalConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._profiles = profile_repo
        self._auth = auth_repo
        self._compensations = compensation_repo
        self._config = config

    # ==================================================================
    # Validation helpers
    # ==================================================================

    @staticmethod
    def normalize_email(email: str) -> str:
        """Normalise an email address: strip whitespace and lowercase."""
        return email.strip().lower()

    @staticmethod
    def validate_email(email: str) -> ValidationResult:
        if not email or not email.strip():
            return ValidationResult(is_valid=False, error_message="Email is required.")
        if not _EMAIL_RE.match(email.strip()):
            return ValidationResult(is_valid=False, error_message="Invalid email.")
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_password(password: str, min_length: int = 6) -> ValidationResult:
        """Enforce the portal password policy (presence and minimum length)."""
        if not password:
            return ValidationResult(is_valid=False, error_message="Password is required.")
        if len(password) < min_length:
            return ValidationResult(
                is_valid=False,
                error_message=f"Password must be at least {min_length} characters.",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_confirmation(password: str, confirmation: str) -> ValidationResult:
        if not confirmation:
            return ValidationResult(
                is_valid=False,
                error_message="Password confirmation is required.",
            )
        if password != confirmation:
            return ValidationResult(is_valid=False, error_message="Passwords do not match.")
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_name(name: str) -> ValidationResult:
        """Require a non-blank customer name free of control characters."""
        stripped = (name or "").strip()
        if not stripped:
            return ValidationResult(
                is_valid=False,
                error_message="Customer name is required.",
            )
        if _CONTROL_CHAR_RE.search(stripped):
            return ValidationResult(
                is_valid=False,
                error_message="Customer name contains invalid characters.",
            )
        return ValidationResult(is_valid=True)

    def validate_request(self, request: PortalUserRequest) -> ValidationResult:
        """Return the first failing check for *request*, or a valid result."""
        checks = (
            self.validate_email(request.email),
            self.validate_password(request.password, self._config.MIN_PASSWORD_LENGTH),
            self.validate_name(request.display_name),
        )
        for check in checks:
            if not check.is_valid:
                return check
        if not request.customer_id.strip():
            return ValidationResult(
                is_valid=False,
                error_message="A customer reference is required.",
            )
        return ValidationResult(is_valid=True)

    # ==================================================================
    # Provisioning
    # ==================================================================

    def provision(self, request: PortalUserRequest) -> ProvisioningResult:
        """Create the portal login described by *request*.

        Returns:
            ``ProvisioningResult`` with ``user_id`` on success, or the
            error code and message of the first step that failed.
        """
        validation = self.validate_request(request)
        if not validation.is_valid:
            return ProvisioningResult(
                success=False,
                error_code=ProvisioningErrorCode.VALIDATION_ERROR,
                error_message=validation.error_message,
            )

        email = self.normalize_email(request.email)

        if not self._db.is_online:
            self._logger.error(
                "Portal provisioning attempted while offline for %s", email,
            )
            return ProvisioningResult(
                success=False,
                error_code=ProvisioningErrorCode.UNKNOWN,
                error_message=(
                    "Cannot reach the server. An internet connection and "
                    "Supabase credentials are required to create a portal."
                ),
            )

        try:
            user_id = self._run_workflow(
                email=email,
                password=request.password,
                name=request.display_name.strip(),
                customer_id=request.customer_id.strip(),
            )
        except PortalProvisioningError as exc:
            self._logger.error(
                "Portal provisioning failed for %s: %s",
                email,
                exc.message,
                extra={"event": "PORTAL_CREATE_FAILED", "error_code": str(exc.code)},
            )
            return ProvisioningResult(
                success=False,
                error_code=exc.code,
                error_message=exc.message,
            )
        except Exception as exc:
            self._logger.error(
                "Unexpected error provisioning portal for %s: %s",
                email,
                exc,
                exc_info=True,
            )
            return ProvisioningResult(
                success=False,
                error_code=ProvisioningErrorCode.UNKNOWN,
                error_message=str(exc) or "Internal server error",
            )

        return ProvisioningResult(
            success=True,
            user_id=user_id,
            message=SUCCESS_MESSAGE,
        )

    # ------------------------------------------------------------------
    # Private implementation
    # ------------------------------------------------------------------

    def _run_workflow(
        self,
        email: str,
        password: str,
        name: str,
        customer_id: str,
    ) -> str:
        """Run steps 1-6 and return the shared identity/profile id.

        Raises:
            PortalProvisioningError: On any classified failure.
        """
        # --- 1. Deduplicate (best effort) ---
        try:
            self._profiles.clean_duplicates(email)
        except Exception as exc:
            self._logger.warning(
                "Duplicate cleanup failed for %s; continuing: %s", email, exc,
            )

        # --- 2. Refuse emails that already have an active profile ---
        try:
            taken = self._profiles.email_in_use(email)
        except Exception as exc:
            raise PortalProvisioningError(
                ProvisioningErrorCode.UNKNOWN,
                f"Error checking for an existing user: {exc}",
                original_error=exc,
            ) from exc

        if taken:
            raise PortalProvisioningError(
                ProvisioningErrorCode.DUPLICATE_EMAIL,
                "This email is already registered in the system.",
            )

        # --- 3. Create the auth identity ---
        try:
            identity = self._auth.create(
                email=email,
                password=password,
                metadata={
                    "nome": name,
                    "tipo_usuario": ProfileRole.CLIENTE.value,
                    "cliente_id": customer_id,
                },
            )
        except Exception as exc:
            raise PortalProvisioningError(
                ProvisioningErrorCode.AUTH_CREATION_FAILED,
                f"Authentication error: {exc}",
                original_error=exc,
            ) from exc

        # --- 4. Create the profile under the same id and link the customer ---
        failure_reason: Optional[str] = None
        try:
            sync_result = self._profiles.sync_after_auth_creation(
                auth_user_id=identity.id,
                email=email,
                nome=name,
                customer_id=customer_id,
            )
            if not sync_result.success:
                failure_reason = sync_result.error or "Unknown synchronisation error"
        except Exception as exc:
            failure_reason = str(exc) or type(exc).__name__

        # --- 5. Roll the identity back when the profile could not be created ---
        if failure_reason is not None:
            self._logger.error(
                "Profile synchronisation failed for %s: %s", email, failure_reason,
            )
            self._compensate(identity.id, email, failure_reason)
            raise PortalProvisioningError(
                ProvisioningErrorCode.SYNC_FAILED,
                f"Error synchronising user: {failure_reason}",
            )

        # --- 6. Verify the profile is readable under the identity's id ---
        try:
            profile = self._profiles.get_by_id(identity.id)
        except Exception as exc:
            self._logger.error(
                "Final verification lookup failed for %s: %s", identity.id, exc,
            )
            profile = None

        if profile is None:
            raise PortalProvisioningError(
                ProvisioningErrorCode.VERIFICATION_FAILED,
                "User was created but could not be found during verification.",
            )

        self._logger.info(
            "Portal user created and synchronised: %s",
            email,
            extra={
                "auth_id": identity.id,
                "profile_id": profile.id,
                "ids_match": identity.id == profile.id,
            },
        )
        self._audit(
            action=AuditAction.PORTAL_CREATE,
            entity_type="Profile",
            entity_id=identity.id,
            details={"email": email, "customer_id": customer_id, "nome": name},
        )
        return identity.id

    def _compensate(self, auth_user_id: str, email: str, reason: str) -> None:
        """Delete the just-created auth identity.

        Never raises: a failed deletion is logged and queued for the
        compensation worker so the caller still sees the sync failure.
        """
        try:
            self._auth.delete(auth_user_id)
        except Exception as exc:
            self._logger.error(
                "Failed to roll back auth identity %s: %s", auth_user_id, exc,
            )
            try:
                self._compensations.enqueue(auth_user_id, email, reason)
            except sqlite3.Error as queue_exc:
                self._logger.error(
                    "Could not queue compensation for %s; manual cleanup "
                    "required: %s",
                    auth_user_id,
                    queue_exc,
                )
                return
            self._audit(
                action=AuditAction.PORTAL_COMPENSATE_DEFERRED,
                entity_type="AuthIdentity",
                entity_id=auth_user_id,
                details={"email": email, "reason": reason, "error": str(exc)},
            )
            return

        self._audit(
            action=AuditAction.PORTAL_COMPENSATE,
            entity_type="AuthIdentity",
            entity_id=auth_user_id,
            details={"email": email, "reason": reason},
        )

    def _audit(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        details: dict[str, DetailValue],
    ) -> None:
        with self._db.write_lock:
            log_audit_event(
                logger=self._logger,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=entity_id,
                details=details,
                conn=self._db.sqlite,
            )
