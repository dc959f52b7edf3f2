"""Tests for the portal creation dialog and the customer list it refreshes."""

from __future__ import annotations

import asyncio
import threading
from typing import Optional

import pytest
from textual.app import App
from textual.pilot import Pilot
from textual.widgets import Button, DataTable, Input

from portal.config import PortalConfig
from portal.logger import StructuredLogger
from portal.models.enums import ProvisioningErrorCode
from portal.models.service_models import PortalUserRequest, ProvisioningResult
from portal.models.user import Customer
from portal.repositories import CustomerRepository
from portal.services import ServiceContainer
from portal.services.compensation_worker import CompensationWorkerService
from portal.services.customers import CustomerService
from portal.services.portal_provisioning import (
    SUCCESS_MESSAGE,
    PortalProvisioningService,
)
from portal.services.sync_diagnostics import SyncDiagnosticsService
from portal.ui.app import PortalAdminApp
from portal.ui.portal_dialog import PortalCreationDialog
from tests.fakes import FakeSupabaseClient

SIZE = (100, 50)


class DialogHost(App[None]):
    """Opens one dialog and records its result and every notification."""

    def __init__(self, dialog: PortalCreationDialog) -> None:
        super().__init__()
        self.dialog = dialog
        self.results: list[Optional[bool]] = []
        self.toasts: list[tuple[str, str]] = []

    def on_mount(self) -> None:
        self.push_screen(self.dialog, callback=self._record_result)

    def _record_result(self, result: Optional[bool]) -> None:
        self.results.append(result)

    def notify(self, message, *, title="", severity="information", timeout=None, markup=True):
        self.toasts.append((message, severity))
        super().notify(message, title=title, severity=severity, timeout=timeout, markup=markup)


class RecordingAdminApp(PortalAdminApp):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.toasts: list[tuple[str, str]] = []

    def notify(self, message, *, title="", severity="information", timeout=None, markup=True):
        self.toasts.append((message, severity))
        super().notify(message, title=title, severity=severity, timeout=timeout, markup=markup)


class BlockingProvisioning:
    """Holds ``provision`` open until the test releases it."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()

    def provision(self, request: PortalUserRequest) -> ProvisioningResult:
        self.started.set()
        self.release.wait(timeout=5)
        return ProvisioningResult(
            success=False,
            error_code=ProvisioningErrorCode.UNKNOWN,
            error_message="Stopped.",
        )


async def _settle(app: App, pilot: Pilot) -> None:
    # Worker results arrive through call_from_thread and may start more workers.
    for _ in range(3):
        await pilot.pause()
        await app.workers.wait_for_complete()
    await pilot.pause()


async def _fill_passwords(pilot: Pilot, dialog: PortalCreationDialog, password: str) -> None:
    dialog.query_one("#input-password", Input).value = password
    dialog.query_one("#input-confirm_password", Input).value = password
    await pilot.pause()


def _new_customer() -> Customer:
    return Customer(id="c-1", nome="Ana", email="a@b.com")


def _linked_customer() -> Customer:
    return Customer(id="c-1", nome="Ana", email="a@b.com", usuario_portal_id="auth-1")


@pytest.fixture
def services(
    customer_repo: CustomerRepository,
    provisioning: PortalProvisioningService,
    diagnostics: SyncDiagnosticsService,
    worker: CompensationWorkerService,
    logger: StructuredLogger,
) -> ServiceContainer:
    return ServiceContainer(
        customer_service=CustomerService(repo=customer_repo, logger=logger),
        provisioning_service=provisioning,
        diagnostics_service=diagnostics,
        compensation_worker=worker,
    )


# ---------------------------------------------------------------------------
# Creating a portal
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_successful_creation_closes_dialog_with_toast(
    provisioning: PortalProvisioningService,
    diagnostics: SyncDiagnosticsService,
    fake_supabase: FakeSupabaseClient,
    logger: StructuredLogger,
) -> None:
    fake_supabase.add_customer("c-1", "Ana", "a@b.com")
    dialog = PortalCreationDialog(_new_customer(), provisioning, diagnostics, logger)
    app = DialogHost(dialog)

    async with app.run_test(size=SIZE) as pilot:
        await _fill_passwords(pilot, dialog, "secret1")
        await pilot.click("#btn-submit")
        await _settle(app, pilot)

        assert app.results == [True]
        assert (SUCCESS_MESSAGE, "information") in app.toasts
        assert dialog.form_state.password == ""
        assert dialog.form_state.errors == {}

    assert fake_supabase.customer("c-1")["usuario_portal_id"] is not None
    assert len(fake_supabase.profiles_for("a@b.com")) == 1


@pytest.mark.asyncio
async def test_duplicate_email_keeps_dialog_open_with_error_toast(
    provisioning: PortalProvisioningService,
    diagnostics: SyncDiagnosticsService,
    fake_supabase: FakeSupabaseClient,
    logger: StructuredLogger,
) -> None:
    fake_supabase.add_customer("c-1", "Ana", "a@b.com")
    fake_supabase.add_profile("A@B.com")
    dialog = PortalCreationDialog(_new_customer(), provisioning, diagnostics, logger)
    app = DialogHost(dialog)

    async with app.run_test(size=SIZE) as pilot:
        await _fill_passwords(pilot, dialog, "secret1")
        await pilot.click("#btn-submit")
        await _settle(app, pilot)

        assert app.results == []
        assert app.screen is dialog
        assert app.toasts == [("This email is already registered in the system.", "error")]
        assert dialog.query_one("#btn-submit", Button).disabled is False


@pytest.mark.asyncio
async def test_invalid_form_shows_field_errors_without_submitting(
    provisioning: PortalProvisioningService,
    diagnostics: SyncDiagnosticsService,
    fake_supabase: FakeSupabaseClient,
    logger: StructuredLogger,
) -> None:
    dialog = PortalCreationDialog(_new_customer(), provisioning, diagnostics, logger)
    app = DialogHost(dialog)

    async with app.run_test(size=SIZE) as pilot:
        await pilot.click("#btn-submit")
        await _settle(app, pilot)

        assert app.results == []
        assert dialog.form_state.error_for("password") is not None
        assert dialog.query_one("#input-password", Input).has_class("-invalid")

    assert fake_supabase.calls == []


@pytest.mark.asyncio
async def test_loading_state_disables_both_buttons_and_escape(
    diagnostics: SyncDiagnosticsService,
    logger: StructuredLogger,
) -> None:
    blocking = BlockingProvisioning()
    dialog = PortalCreationDialog(
        _new_customer(), blocking, diagnostics, logger,  # type: ignore[arg-type]
    )
    app = DialogHost(dialog)

    async with app.run_test(size=SIZE) as pilot:
        try:
            await _fill_passwords(pilot, dialog, "secret1")
            await pilot.click("#btn-submit")
            await asyncio.to_thread(blocking.started.wait, 5)
            await pilot.pause()

            submit = dialog.query_one("#btn-submit", Button)
            assert submit.disabled is True
            assert str(submit.label) == "Creating Portal..."
            assert dialog.query_one("#btn-cancel", Button).disabled is True

            await pilot.press("escape")
            await pilot.pause()
            assert app.screen is dialog
            assert app.results == []
        finally:
            blocking.release.set()
        await _settle(app, pilot)

        assert dialog.query_one("#btn-cancel", Button).disabled is False
        assert str(dialog.query_one("#btn-submit", Button).label) == "Create Portal"
        assert app.toasts == [("Stopped.", "error")]


@pytest.mark.asyncio
async def test_cancel_dismisses_with_false(
    provisioning: PortalProvisioningService,
    diagnostics: SyncDiagnosticsService,
    logger: StructuredLogger,
) -> None:
    dialog = PortalCreationDialog(_new_customer(), provisioning, diagnostics, logger)
    app = DialogHost(dialog)

    async with app.run_test(size=SIZE) as pilot:
        await pilot.click("#btn-cancel")
        await pilot.pause()

        assert app.results == [False]


# ---------------------------------------------------------------------------
# Sync check
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "profile_id, toast",
    [
        ("auth-1", ("IDs are correctly synchronised.", "information")),
        ("profile-9", ("IDs are NOT synchronised.", "error")),
    ],
)
async def test_sync_check_reports_whether_ids_match(
    provisioning: PortalProvisioningService,
    diagnostics: SyncDiagnosticsService,
    fake_supabase: FakeSupabaseClient,
    logger: StructuredLogger,
    profile_id: str,
    toast: tuple[str, str],
) -> None:
    fake_supabase.add_auth_user("a@b.com", user_id="auth-1")
    fake_supabase.add_profile("a@b.com", profile_id=profile_id)
    dialog = PortalCreationDialog(_linked_customer(), provisioning, diagnostics, logger)
    app = DialogHost(dialog)

    async with app.run_test(size=SIZE) as pilot:
        await pilot.click("#btn-test-sync")
        await _settle(app, pilot)

        assert app.toasts == [toast]
        assert app.results == []


@pytest.mark.asyncio
async def test_sync_check_without_records_reports_missing_pair(
    provisioning: PortalProvisioningService,
    diagnostics: SyncDiagnosticsService,
    logger: StructuredLogger,
) -> None:
    dialog = PortalCreationDialog(_linked_customer(), provisioning, diagnostics, logger)
    app = DialogHost(dialog)

    async with app.run_test(size=SIZE) as pilot:
        await pilot.click("#btn-test-sync")
        await _settle(app, pilot)

        assert app.toasts == [
            ("Could not find both the login and the profile for this email.", "error"),
        ]


# ---------------------------------------------------------------------------
# Customer list
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_created_portal_updates_customer_row(
    services: ServiceContainer,
    config: PortalConfig,
    fake_supabase: FakeSupabaseClient,
    logger: StructuredLogger,
) -> None:
    fake_supabase.add_customer("c-1", "Ana", "a@b.com")
    app = RecordingAdminApp(services=services, config=config, logger=logger)

    async with app.run_test(size=SIZE) as pilot:
        await _settle(app, pilot)
        table = app.screen.query_one("#customers", DataTable)
        assert table.get_cell("c-1", "portal") == "-"

        await pilot.click("#btn-portal")
        await pilot.pause()
        dialog = app.screen
        assert isinstance(dialog, PortalCreationDialog)

        await _fill_passwords(pilot, dialog, "secret1")
        await pilot.click("#btn-submit")
        await _settle(app, pilot)

        table = app.screen.query_one("#customers", DataTable)
        assert table.get_cell("c-1", "portal") == "Active"
        assert str(app.screen.query_one("#btn-portal", Button).label) == "Manage Portal"
        assert (SUCCESS_MESSAGE, "information") in app.toasts
