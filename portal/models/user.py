"""
Identity Models.

Pydantic models for the three records the provisioning workflow touches:
the Supabase Auth user, the ``usuarios`` profile row and the ``clientes``
row that gets linked to it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portal.models.enums import ProfileRole


class AuthIdentity(BaseModel):
    """A user record managed by Supabase Auth (``auth.users``).

    The credential never leaves the provider, so it has no field here.
    """

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str  # provider-assigned UUID
    email: Optional[str] = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class Profile(BaseModel):
    """Application-level user row (``public.usuarios``).

    A profile created for a portal login shares its ``id`` with the
    matching ``AuthIdentity``.  ``deleted_at`` is the soft-delete marker.
    """

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    nome: str = ""
    email: str
    tipo_usuario: str = ProfileRole.CLIENTE.value
    tenant_id: Optional[str] = None
    deleted_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("nome", mode="before")
    @classmethod
    def blank_null_name(cls: type[Profile], v: object) -> object:
        # The shared tables allow NULL names.
        return "" if v is None else v


class Customer(BaseModel):
    """A row of ``public.clientes``.

    ``usuario_portal_id`` points at the profile that acts as this
    customer's portal login, when one has been provisioned.
    """

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    nome: str = ""
    email: Optional[str] = None
    telefone: Optional[str] = None
    usuario_portal_id: Optional[str] = None

    @field_validator("nome", mode="before")
    @classmethod
    def blank_null_name(cls: type[Customer], v: object) -> object:
        # The shared tables allow NULL names.
        return "" if v is None else v

    @property
    def has_portal(self) -> bool:
        return bool(self.usuario_portal_id)
