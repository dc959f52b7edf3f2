"""Main Textual application for customer portal administration."""

from __future__ import annotations

from textual.app import App

from portal.config import PortalConfig
from portal.logger import StructuredLogger
from portal.services import ServiceContainer
from portal.ui.customer_list import CustomerListScreen


class PortalAdminApp(App):
    """Customer Portal Admin: list customers and provision their logins."""

    TITLE = "Customer Portal Admin"
    SUB_TITLE = "Portal provisioning"

    CSS = """
    Screen {
        background: $background;
    }
    """

    def __init__(
        self,
        services: ServiceContainer,
        config: PortalConfig,
        logger: StructuredLogger,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.services = services
        self.portal_config = config
        self.portal_logger = logger

    def on_mount(self) -> None:
        self.push_screen(
            CustomerListScreen(
                services=self.services,
                config=self.portal_config,
                logger=self.portal_logger,
            )
        )
