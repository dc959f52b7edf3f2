"""
Business Logic Services Package.

Services depend on the Repository layer for data access and never touch
Supabase or SQLite directly, except for audit persistence.

The ``create_services()`` factory wires every repository and service together,
returning a typed dict that the presentation layer can consume without
knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import TypedDict

from portal.config import PortalConfig
from portal.database import DatabaseManager
from portal.logger import get_logger
from portal.repositories.auth_identity_repository import AuthIdentityRepository
from portal.repositories.compensation_repository import CompensationRepository
from portal.repositories.customer_repository import CustomerRepository
from portal.repositories.profile_repository import ProfileRepository
from portal.services.compensation_worker import CompensationWorkerService
from portal.services.customers import CustomerService
from portal.services.portal_provisioning import (
    PortalProvisioningError,
    PortalProvisioningService,
)
from portal.services.sync_diagnostics import SyncDiagnosticsService

__all__ = [
    "CompensationWorkerService",
    "CustomerService",
    "PortalProvisioningError",
    "PortalProvisioningService",
    "ServiceContainer",
    "SyncDiagnosticsService",
    "create_services",
]


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    customer_service: CustomerService
    provisioning_service: PortalProvisioningService
    diagnostics_service: SyncDiagnosticsService
    compensation_worker: CompensationWorkerService


def create_services(db: DatabaseManager, config: PortalConfig) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    entry-point calls this once at startup and hands the result to the UI.

    Args:
        db: Initialised DatabaseManager with Supabase + SQLite ready.
        config: Application configuration.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("portal.services")

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    profile_repo = ProfileRepository(db=db, logger=logger)
    auth_repo = AuthIdentityRepository(db=db, logger=logger)
    customer_repo = CustomerRepository(db=db, logger=logger)
    compensation_repo = CompensationRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Services
    # ------------------------------------------------------------------
    customer_service = CustomerService(repo=customer_repo, logger=logger)
    provisioning_service = PortalProvisioningService(
        db=db,
        profile_repo=profile_repo,
        auth_repo=auth_repo,
        compensation_repo=compensation_repo,
        config=config,
        logger=logger,
    )
    diagnostics_service = SyncDiagnosticsService(
        profile_repo=profile_repo,
        auth_repo=auth_repo,
        logger=logger,
    )

    # ------------------------------------------------------------------
    # 3. Background workers (started by the entry-point)
    # ------------------------------------------------------------------
    compensation_worker = CompensationWorkerService(
        db=db,
        compensation_repo=compensation_repo,
        auth_repo=auth_repo,
        config=config,
        logger=logger,
    )

    return ServiceContainer(
        customer_service=customer_service,
        provisioning_service=provisioning_service,
        diagnostics_service=diagnostics_service,
        compensation_worker=compensation_worker,
    )
