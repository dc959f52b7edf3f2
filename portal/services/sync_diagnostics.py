"""
Sync Diagnostics Service.

Answers the support question "does this customer's login line up with
its profile?" by reading both sides and comparing their ids.  Purely
read-only; nothing is repaired from here.
"""

from __future__ import annotations

from typing import Optional

from portal.logger import StructuredLogger
from portal.models.service_models import SyncCheckResult
from portal.repositories.auth_identity_repository import AuthIdentityRepository
from portal.repositories.profile_repository import ProfileRepository
from portal.services.base_service import BaseService


class SyncDiagnosticsService(BaseService):
    """Compares an AuthIdentity with the active Profile sharing its email."""

    def __init__(
        self,
        profile_repo: ProfileRepository,
        auth_repo: AuthIdentityRepository,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._profiles = profile_repo
        self._auth = auth_repo

    def check_user_sync(self, email: str) -> Optional[SyncCheckResult]:
        """Look up both records for *email* and report whether the ids match.

        Returns ``None`` when either record is missing or the identity
        lookup fails.  A failed profile lookup falls back to the local
        cache before giving up.
        """
        target = email.strip().lower()

        try:
            identity = self._auth.find_by_email(target)
        except Exception as exc:
            self._logger.error("Auth lookup failed for %s: %s", target, exc)
            return None

        if identity is None:
            self._logger.warning("No auth identity found for %s", target)
            return None

        try:
            profile = self._profiles.get_active_by_email(target)
        except Exception as exc:
            self._logger.warning(
                "Profile lookup failed for %s, using cached row: %s", target, exc,
            )
            profile = self._profiles.get_cached_active_by_email(target)

        if profile is None:
            self._logger.warning("No active profile found for %s", target)
            return None

        result = SyncCheckResult(
            auth_id=identity.id,
            profile_id=profile.id,
            email=target,
            ids_match=identity.id == profile.id,
        )
        self._logger.info(
            "Sync check for %s: ids_match=%s",
            target,
            result.ids_match,
            extra={"auth_id": result.auth_id, "profile_id": result.profile_id},
        )
        return result
