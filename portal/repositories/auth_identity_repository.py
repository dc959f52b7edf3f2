"""
Auth Identity Repository.

Wraps the Supabase Auth admin API (``auth.users``).  These calls need the
service-role key; with the anon key every method fails with 401.

Unlike the table repositories there is no local cache: credentials and
provider-managed records never leave Supabase.
"""

from __future__ import annotations

from typing import Any, Optional

from portal.database import DatabaseManager
from portal.logger import StructuredLogger
from portal.models.user import AuthIdentity
from portal.repositories.base_repository import BaseRepository

# Fragments GoTrue uses when the target user is already gone.
_NOT_FOUND_MARKERS: tuple[str, ...] = ("user not found", "user_not_found", "404")


class AuthIdentityRepository(BaseRepository):
    """Create, delete and look up Supabase Auth users."""

    LIST_PAGE_SIZE: int = 200

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def create(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any],
    ) -> AuthIdentity:
        """Create a confirmed auth user carrying *metadata* as ``user_metadata``.

        Raises:
            RuntimeError: If the provider answered without a user object.
            Exception: Provider errors (duplicate email, weak password,
                network) propagate unchanged.
        """
        response = self.supabase.auth.admin.create_user({
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": metadata,
        })
        user = getattr(response, "user", None)
        if user is None:
            raise RuntimeError("Auth user was not created correctly")

        identity = self._to_identity(user)
        self._logger.info("Auth identity created: %s (%s)", identity.id, email)
        return identity

    def delete(self, user_id: str) -> bool:
        """Delete the auth user *user_id*.

        Idempotent: a user that no longer exists counts as deleted.

        Returns:
            ``True`` if this call removed the user, ``False`` if it was
            already gone.

        Raises:
            Exception: Any other provider or network error.
        """
        try:
            self.supabase.auth.admin.delete_user(user_id)
        except Exception as exc:
            if any(marker in str(exc).lower() for marker in _NOT_FOUND_MARKERS):
                self._logger.info(
                    "Auth identity %s already absent; nothing to delete.", user_id,
                )
                return False
            raise
        self._logger.info("Auth identity deleted: %s", user_id)
        return True

    def find_by_email(self, email: str) -> Optional[AuthIdentity]:
        """Page through ``list_users`` and return the user with *email*.

        The comparison is case-insensitive; GoTrue stores emails lowercased.
        """
        target = email.strip().lower()
        page = 1
        while True:
            users = self.supabase.auth.admin.list_users(
                page=page, per_page=self.LIST_PAGE_SIZE,
            )
            for user in users:
                if (getattr(user, "email", None) or "").lower() == target:
                    return self._to_identity(user)
            if len(users) < self.LIST_PAGE_SIZE:
                return None
            page += 1

    @staticmethod
    def _to_identity(user: Any) -> AuthIdentity:
        return AuthIdentity(
            id=str(user.id),
            email=getattr(user, "email", None),
            user_metadata=getattr(user, "user_metadata", None) or {},
            created_at=getattr(user, "created_at", None),
        )
