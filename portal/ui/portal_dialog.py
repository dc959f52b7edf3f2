"""Portal Creation Dialog.

Modal screen that creates a portal login for one customer, or, when the
customer already has one, shows it and offers a sync check.

**Thin UI Rule**: This module contains ZERO business logic.  It keeps
the form in a ``PortalFormState``, delegates provisioning to
``PortalProvisioningService`` and the sync check to
``SyncDiagnosticsService``, and reports the outcome as toasts.  Both
service calls block on the network, so they run on worker threads and
hand their results back with ``app.call_from_thread``.
"""

from __future__ import annotations

from typing import Callable, Optional

from textual import work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Static

from portal.logger import StructuredLogger
from portal.models.enums import ProvisioningErrorCode
from portal.models.service_models import (
    PortalUserRequest,
    ProvisioningResult,
    SyncCheckResult,
)
from portal.models.user import Customer
from portal.services.portal_provisioning import (
    SUCCESS_MESSAGE,
    PortalProvisioningService,
)
from portal.services.sync_diagnostics import SyncDiagnosticsService
from portal.ui.form_state import (
    FIELD_CONFIRM,
    FIELD_EMAIL,
    FIELD_NAME,
    FIELD_PASSWORD,
    PortalFormState,
)
from portal.ui.toast import DEFAULT_DURATION_MS, show_toast

_SUBMIT_LABEL: str = "Create Portal"
_SUBMIT_LOADING_LABEL: str = "Creating Portal..."


class PortalCreationDialog(ModalScreen[bool]):
    """Create (or inspect) the portal login of *customer*.

    Dismisses with ``True`` after a successful creation and ``False``
    otherwise.

    Parameters
    ----------
    customer:
        The customer row the dialog was opened for.
    provisioning_service:
        Runs the provisioning workflow.
    diagnostics_service:
        Runs the auth/profile id comparison.
    logger:
        Structured JSON logger.
    min_password_length:
        Password policy applied before submitting.
    toast_duration_ms:
        How long notifications stay on screen.
    """

    DEFAULT_CSS = """
    PortalCreationDialog {
        align: center middle;
    }

    PortalCreationDialog #dialog {
        width: 64;
        height: auto;
        padding: 1 2;
        border: thick $primary;
        background: $surface;
    }

    PortalCreationDialog .dialog-title {
        text-style: bold;
        color: $primary;
        padding: 0 0 1 0;
    }

    PortalCreationDialog .dialog-description {
        color: $text-muted;
        padding: 0 0 1 0;
    }

    PortalCreationDialog .portal-active {
        color: $success;
        border: round $success;
        padding: 0 1;
        margin: 0 0 1 0;
    }

    PortalCreationDialog .field-label {
        padding: 1 0 0 0;
    }

    PortalCreationDialog .password-row {
        height: auto;
    }

    PortalCreationDialog .password-row Input {
        width: 1fr;
    }

    PortalCreationDialog .password-row Button {
        min-width: 8;
    }

    PortalCreationDialog .field-error {
        color: $error;
        height: auto;
    }

    PortalCreationDialog Input.-invalid {
        border: tall $error;
    }

    PortalCreationDialog .dialog-buttons {
        height: auto;
        align: right middle;
        padding: 1 0 0 0;
    }

    PortalCreationDialog .dialog-buttons Button {
        margin: 0 0 0 1;
    }
    """

    BINDINGS = [
        ("escape", "cancel", "Cancel"),
    ]

    def __init__(
        self,
        customer: Customer,
        provisioning_service: PortalProvisioningService,
        diagnostics_service: SyncDiagnosticsService,
        logger: StructuredLogger,
        min_password_length: int = 6,
        toast_duration_ms: int = DEFAULT_DURATION_MS,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._customer = customer
        self._provisioning = provisioning_service
        self._diagnostics = diagnostics_service
        self._logger = logger
        self._min_password_length = min_password_length
        self._toast_duration_ms = toast_duration_ms
        self._state = PortalFormState(customer, min_password_length)
        self._setters: dict[str, Callable[[str], None]] = {
            f"input-{FIELD_EMAIL}": self._state.set_email,
            f"input-{FIELD_PASSWORD}": self._state.set_password,
            f"input-{FIELD_CONFIRM}": self._state.set_confirm_password,
            f"input-{FIELD_NAME}": self._state.set_display_name,
        }

    @property
    def form_state(self) -> PortalFormState:
        return self._state

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def compose(self) -> ComposeResult:
        with Vertical(id="dialog"):
            if self._customer.has_portal:
                yield from self._compose_existing()
            else:
                yield from self._compose_form()

    def _compose_existing(self) -> ComposeResult:
        yield Label("Existing Portal", classes="dialog-title")
        yield Static(
            "This customer already has a portal login.",
            classes="dialog-description",
        )
        yield Static("Portal is active for this customer.", classes="portal-active")
        yield Label("Login email:", classes="field-label")
        yield Input(value=self._customer.email or "", disabled=True, id="portal-email")
        with Horizontal(classes="dialog-buttons"):
            yield Button("Close", id="btn-cancel")
            yield Button("Test Sync", id="btn-test-sync", variant="warning")

    def _compose_form(self) -> ComposeResult:
        state = self._state
        yield Label("Create Customer Portal", classes="dialog-title")
        yield Static(
            "Create a login so the customer can view their data.",
            classes="dialog-description",
        )

        yield Label("Customer name", classes="field-label")
        yield Input(
            value=state.display_name,
            placeholder="Full customer name",
            id=f"input-{FIELD_NAME}",
        )
        yield Static("", id=f"error-{FIELD_NAME}", classes="field-error")

        yield Label("Login email", classes="field-label")
        yield Input(
            value=state.email,
            placeholder="email@example.com",
            id=f"input-{FIELD_EMAIL}",
        )
        yield Static("", id=f"error-{FIELD_EMAIL}", classes="field-error")

        yield Label("Password", classes="field-label")
        with Horizontal(classes="password-row"):
            yield Input(
                placeholder=f"At least {self._min_password_length} characters",
                password=True,
                id=f"input-{FIELD_PASSWORD}",
            )
            yield Button("Show", id="btn-toggle-password")
        yield Static("", id=f"error-{FIELD_PASSWORD}", classes="field-error")

        yield Label("Confirm password", classes="field-label")
        with Horizontal(classes="password-row"):
            yield Input(
                placeholder="Type the password again",
                password=True,
                id=f"input-{FIELD_CONFIRM}",
            )
            yield Button("Show", id="btn-toggle-confirm")
        yield Static("", id=f"error-{FIELD_CONFIRM}", classes="field-error")

        with Horizontal(classes="dialog-buttons"):
            yield Button("Cancel", id="btn-cancel")
            yield Button(_SUBMIT_LABEL, id="btn-submit", variant="primary")

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def on_input_changed(self, event: Input.Changed) -> None:
        setter = self._setters.get(event.input.id or "")
        if setter is None:
            return
        setter(event.value)
        self._render_errors()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if (event.input.id or "") in self._setters:
            self.action_submit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "btn-submit":
            self.action_submit()
        elif button_id == "btn-cancel":
            self.action_cancel()
        elif button_id == "btn-test-sync":
            self.action_test_sync()
        elif button_id == "btn-toggle-password":
            visible = self._state.toggle_show_password()
            self.query_one(f"#input-{FIELD_PASSWORD}", Input).password = not visible
            event.button.label = "Hide" if visible else "Show"
        elif button_id == "btn-toggle-confirm":
            visible = self._state.toggle_show_confirm_password()
            self.query_one(f"#input-{FIELD_CONFIRM}", Input).password = not visible
            event.button.label = "Hide" if visible else "Show"

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def action_cancel(self) -> None:
        if self._state.loading:
            return
        self.dismiss(False)

    def action_submit(self) -> None:
        if self._customer.has_portal or self._state.loading:
            return
        if not self._state.validate():
            self._render_errors()
            return
        self._set_loading(True)
        self._provision(self._state.to_request())

    def action_test_sync(self) -> None:
        email = (
            self._customer.email or ""
            if self._customer.has_portal
            else self._state.email
        )
        if not email.strip():
            self._toast("Enter an email to test.", success=False)
            return
        self._check_sync(email)

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    @work(thread=True, exclusive=True, group="portal-provision")
    def _provision(self, request: PortalUserRequest) -> None:
        try:
            result = self._provisioning.provision(request)
        except Exception:
            self._logger.error(
                "Portal creation raised for customer %s",
                request.customer_id,
                exc_info=True,
            )
            result = ProvisioningResult(
                success=False,
                error_code=ProvisioningErrorCode.UNKNOWN,
                error_message="Unexpected error while creating the portal.",
            )
        self.app.call_from_thread(self._on_provision_result, result)

    @work(thread=True, exclusive=True, group="portal-sync-check")
    def _check_sync(self, email: str) -> None:
        try:
            result = self._diagnostics.check_user_sync(email)
        except Exception:
            self._logger.error("Sync check raised for %s", email, exc_info=True)
            result = None
        self.app.call_from_thread(self._on_sync_checked, result)

    def _on_provision_result(self, result: ProvisioningResult) -> None:
        self._set_loading(False)
        if result.success:
            self._toast(result.message or SUCCESS_MESSAGE, success=True)
            self._state.reset()
            self.dismiss(True)
            return
        self._toast(result.error_message or "Error creating the portal.", success=False)

    def _on_sync_checked(self, result: Optional[SyncCheckResult]) -> None:
        if result is None:
            self._toast(
                "Could not find both the login and the profile for this email.",
                success=False,
            )
        elif result.ids_match:
            self._toast("IDs are correctly synchronised.", success=True)
        else:
            self._toast("IDs are NOT synchronised.", success=False)

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------

    def _render_errors(self) -> None:
        if self._customer.has_portal or not self.is_mounted:
            return
        for field in (FIELD_NAME, FIELD_EMAIL, FIELD_PASSWORD, FIELD_CONFIRM):
            message = self._state.error_for(field)
            self.query_one(f"#error-{field}", Static).update(message or "")
            self.query_one(f"#input-{field}", Input).set_class(
                message is not None, "-invalid",
            )

    def _set_loading(self, loading: bool) -> None:
        self._state.set_loading(loading)
        submit = self.query_one("#btn-submit", Button)
        submit.label = _SUBMIT_LOADING_LABEL if loading else _SUBMIT_LABEL
        submit.disabled = loading
        self.query_one("#btn-cancel", Button).disabled = loading

    def _toast(self, message: str, *, success: bool) -> None:
        show_toast(
            self,
            message,
            success=success,
            duration_ms=self._toast_duration_ms,
        )
