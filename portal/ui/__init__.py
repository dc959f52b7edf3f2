"""Textual presentation layer: customer list, portal dialog and toasts."""

from portal.ui.app import PortalAdminApp
from portal.ui.form_state import PortalFormState

__all__ = ["PortalAdminApp", "PortalFormState"]
