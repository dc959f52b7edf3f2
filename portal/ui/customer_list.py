"""Customer List Screen.

Table of customers with their portal status.  The action button (and the
Enter key) opens ``PortalCreationDialog`` for the highlighted customer;
the customer's row is re-read once a portal has been created.

**Thin UI Rule**: This module contains ZERO business logic.
"""

from __future__ import annotations

from functools import partial
from typing import Optional

from textual import work
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.screen import Screen
from textual.widgets import Button, DataTable, Footer, Header, Static

from portal.config import PortalConfig
from portal.logger import StructuredLogger
from portal.models.user import Customer
from portal.services import ServiceContainer
from portal.ui.portal_dialog import PortalCreationDialog
from portal.ui.toast import show_toast

# (column key, header)
_COLUMNS: tuple[tuple[str, str], ...] = (
    ("name", "Name"),
    ("email", "Email"),
    ("phone", "Phone"),
    ("portal", "Portal"),
)


def _row_values(customer: Customer) -> tuple[str, str, str, str]:
    return (
        customer.nome,
        customer.email or "",
        customer.telefone or "",
        "Active" if customer.has_portal else "-",
    )


class CustomerListScreen(Screen):
    """Lists customers and opens the portal dialog for the selected one."""

    DEFAULT_CSS = """
    CustomerListScreen DataTable {
        height: 1fr;
    }

    CustomerListScreen .actions {
        height: auto;
        padding: 1 1 0 1;
    }

    CustomerListScreen .actions Button {
        margin: 0 1 0 0;
    }

    CustomerListScreen #status-bar {
        height: 1;
        padding: 0 1;
        color: $text-muted;
    }
    """

    BINDINGS = [
        ("enter", "open_portal", "Portal"),
        ("r", "refresh", "Refresh"),
        ("q", "app.quit", "Quit"),
    ]

    def __init__(
        self,
        services: ServiceContainer,
        config: PortalConfig,
        logger: StructuredLogger,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._services = services
        self._config = config
        self._logger = logger
        self._customers: dict[str, Customer] = {}

    def compose(self) -> ComposeResult:
        yield Header()
        yield DataTable(id="customers", cursor_type="row", zebra_stripes=True)
        with Horizontal(classes="actions"):
            yield Button("Create Portal", id="btn-portal", variant="primary")
            yield Button("Refresh", id="btn-refresh")
        yield Static("", id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#customers", DataTable)
        for key, label in _COLUMNS:
            table.add_column(label, key=key)
        self.action_refresh()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-portal":
            self.action_open_portal()
        elif event.button.id == "btn-refresh":
            self.action_refresh()

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        self._update_portal_button(self._customers.get(str(event.row_key.value)))

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        self.action_open_portal()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def action_refresh(self) -> None:
        self.query_one("#status-bar", Static).update("Loading customers...")
        self._load_customers()

    def action_open_portal(self) -> None:
        customer = self.selected_customer()
        if customer is None:
            show_toast(self, "Select a customer first.", success=False)
            return
        dialog = PortalCreationDialog(
            customer=customer,
            provisioning_service=self._services["provisioning_service"],
            diagnostics_service=self._services["diagnostics_service"],
            logger=self._logger,
            min_password_length=self._config.MIN_PASSWORD_LENGTH,
            toast_duration_ms=self._config.TOAST_DURATION_MS,
        )
        self.app.push_screen(
            dialog, callback=partial(self._on_dialog_closed, customer.id),
        )

    def selected_customer(self) -> Optional[Customer]:
        table = self.query_one("#customers", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return self._customers.get(str(row_key.value))

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    @work(thread=True, exclusive=True, group="customer-list")
    def _load_customers(self) -> None:
        try:
            customers = self._services["customer_service"].list_customers()
            pending = self._services["compensation_worker"].pending_count()
        except Exception:
            self._logger.error("Failed to load customers", exc_info=True)
            customers, pending = [], 0
        self.app.call_from_thread(self._populate, customers, pending)

    def _populate(self, customers: list[Customer], pending: int) -> None:
        table = self.query_one("#customers", DataTable)
        table.clear()
        self._customers = {c.id: c for c in customers}
        for customer in customers:
            table.add_row(*_row_values(customer), key=customer.id)

        status = f"{len(customers)} customers"
        if pending:
            status += f"  |  {pending} login deletion(s) awaiting retry"
        self.query_one("#status-bar", Static).update(status)
        self._update_portal_button(self.selected_customer())

    def _on_dialog_closed(self, customer_id: str, created: Optional[bool]) -> None:
        if created:
            self._reload_customer(customer_id)

    @work(thread=True, group="customer-row")
    def _reload_customer(self, customer_id: str) -> None:
        try:
            customer = self._services["customer_service"].get_customer(customer_id)
        except Exception:
            self._logger.error("Failed to reload customer %s", customer_id, exc_info=True)
            customer = None
        if customer is None:
            self.app.call_from_thread(self.action_refresh)
            return
        self.app.call_from_thread(self._update_row, customer)

    def _update_row(self, customer: Customer) -> None:
        if customer.id not in self._customers:
            self.action_refresh()
            return
        self._customers[customer.id] = customer
        table = self.query_one("#customers", DataTable)
        for (key, _), value in zip(_COLUMNS, _row_values(customer)):
            table.update_cell(customer.id, key, value)
        self._update_portal_button(self.selected_customer())

    def _update_portal_button(self, customer: Optional[Customer]) -> None:
        button = self.query_one("#btn-portal", Button)
        button.label = (
            "Manage Portal" if customer is not None and customer.has_portal
            else "Create Portal"
        )
