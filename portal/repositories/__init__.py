"""
Repository Layer Package.

Data-access abstractions over Supabase (tables, RPCs, auth admin API)
and the local SQLite store.  Services never touch ``db.supabase`` or
``db.sqlite`` directly.
"""

from portal.repositories.auth_identity_repository import AuthIdentityRepository
from portal.repositories.base_repository import BaseRepository
from portal.repositories.compensation_repository import CompensationRepository
from portal.repositories.customer_repository import CustomerRepository
from portal.repositories.profile_repository import ProfileRepository

__all__ = [
    "AuthIdentityRepository",
    "BaseRepository",
    "CompensationRepository",
    "CustomerRepository",
    "ProfileRepository",
]
