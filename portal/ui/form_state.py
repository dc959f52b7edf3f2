"""
Portal Creation Form State.

Holds everything the portal creation dialog shows: the four field
values, per-field error messages, the two password visibility flags and
the loading flag.  Widgets never write these directly; they call the
setter methods, so the rules "typing into a field clears its error" and
"reset restores the customer's defaults" live in one place and can be
tested without a running app.
"""

from __future__ import annotations

from typing import Optional

from portal.models.service_models import PortalUserRequest
from portal.models.user import Customer
from portal.services.portal_provisioning import PortalProvisioningService

FIELD_EMAIL: str = "email"
FIELD_PASSWORD: str = "password"
FIELD_CONFIRM: str = "confirm_password"
FIELD_NAME: str = "display_name"


class PortalFormState:
    """Local state of one portal creation form.

    Parameters
    ----------
    customer:
        The customer the portal is created for; supplies the default
        email and name.
    min_password_length:
        Password policy shared with the provisioning service.
    """

    def __init__(self, customer: Customer, min_password_length: int = 6) -> None:
        self._customer = customer
        self._min_password_length = min_password_length
        self.reset()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def customer(self) -> Customer:
        return self._customer

    @property
    def email(self) -> str:
        return self._email

    @property
    def password(self) -> str:
        return self._password

    @property
    def confirm_password(self) -> str:
        return self._confirm_password

    @property
    def display_name(self) -> str:
        return self._display_name

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def show_password(self) -> bool:
        return self._show_password

    @property
    def show_confirm_password(self) -> bool:
        return self._show_confirm_password

    @property
    def errors(self) -> dict[str, str]:
        """Copy of the current field errors, keyed by field name."""
        return dict(self._errors)

    def error_for(self, field: str) -> Optional[str]:
        return self._errors.get(field)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_email(self, value: str) -> None:
        self._email = value
        self._errors.pop(FIELD_EMAIL, None)

    def set_password(self, value: str) -> None:
        self._password = value
        self._errors.pop(FIELD_PASSWORD, None)

    def set_confirm_password(self, value: str) -> None:
        self._confirm_password = value
        self._errors.pop(FIELD_CONFIRM, None)

    def set_display_name(self, value: str) -> None:
        self._display_name = value
        self._errors.pop(FIELD_NAME, None)

    def set_loading(self, loading: bool) -> None:
        self._loading = loading

    def toggle_show_password(self) -> bool:
        self._show_password = not self._show_password
        return self._show_password

    def toggle_show_confirm_password(self) -> bool:
        self._show_confirm_password = not self._show_confirm_password
        return self._show_confirm_password

    def validate(self) -> bool:
        """Check every field and record one error per failing field.

        Returns:
            ``True`` when the form can be submitted.
        """
        service = PortalProvisioningService
        checks = {
            FIELD_EMAIL: service.validate_email(self._email),
            FIELD_PASSWORD: service.validate_password(
                self._password, self._min_password_length,
            ),
            FIELD_CONFIRM: service.validate_confirmation(
                self._password, self._confirm_password,
            ),
            FIELD_NAME: service.validate_name(self._display_name),
        }
        self._errors = {
            field: result.error_message or "Invalid value."
            for field, result in checks.items()
            if not result.is_valid
        }
        return not self._errors

    def reset(self) -> None:
        """Restore the customer's defaults and clear everything else."""
        self._email: str = self._customer.email or ""
        self._password: str = ""
        self._confirm_password: str = ""
        self._display_name: str = self._customer.nome or ""
        self._errors: dict[str, str] = {}
        self._loading: bool = False
        self._show_password: bool = False
        self._show_confirm_password: bool = False

    def to_request(self) -> PortalUserRequest:
        return PortalUserRequest(
            email=self._email,
            password=self._password,
            display_name=self._display_name,
            customer_id=self._customer.id,
        )
