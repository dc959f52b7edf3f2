"""Shared fixtures: in-memory SQLite, fake Supabase client, wired services."""

from __future__ import annotations

from pathlib import Path
from uuid import uuid4

import pytest

from portal.config import PortalConfig
from portal.database import DatabaseManager
from portal.logger import StructuredLogger
from portal.repositories import (
    AuthIdentityRepository,
    CompensationRepository,
    CustomerRepository,
    ProfileRepository,
)
from portal.schema import initialize_schema
from portal.services.compensation_worker import CompensationWorkerService
from portal.services.portal_provisioning import PortalProvisioningService
from portal.services.sync_diagnostics import SyncDiagnosticsService
from tests.fakes import FakeSupabaseClient


@pytest.fixture
def config() -> PortalConfig:
    return PortalConfig(
        _env_file=None,
        SUPABASE_URL="https://example.supabase.co",
        SUPABASE_SERVICE_ROLE_KEY="service-role-key",
        COMPENSATION_MAX_ATTEMPTS=3,
        COMPENSATION_RETRY_INTERVAL_S=0.05,
    )


@pytest.fixture
def logger(tmp_path: Path) -> StructuredLogger:
    # Unique name so handlers never point at another test's tmp_path.
    return StructuredLogger(
        name=f"portal.test.{uuid4().hex}",
        log_file=str(tmp_path / "portal-test.log"),
    )


@pytest.fixture
def fake_supabase() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def db(fake_supabase: FakeSupabaseClient, logger: StructuredLogger):
    manager = DatabaseManager(
        supabase_url="",
        supabase_key="",
        sqlite_path=":memory:",
        logger=logger,
        supabase_client=fake_supabase,
    )
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def offline_db(logger: StructuredLogger):
    manager = DatabaseManager(
        supabase_url="",
        supabase_key="",
        sqlite_path=":memory:",
        logger=logger,
    )
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def profile_repo(db: DatabaseManager, logger: StructuredLogger) -> ProfileRepository:
    return ProfileRepository(db=db, logger=logger)


@pytest.fixture
def auth_repo(db: DatabaseManager, logger: StructuredLogger) -> AuthIdentityRepository:
    return AuthIdentityRepository(db=db, logger=logger)


@pytest.fixture
def customer_repo(db: DatabaseManager, logger: StructuredLogger) -> CustomerRepository:
    return CustomerRepository(db=db, logger=logger)


@pytest.fixture
def compensation_repo(db: DatabaseManager, logger: StructuredLogger) -> CompensationRepository:
    return CompensationRepository(db=db, logger=logger)


@pytest.fixture
def provisioning(
    db: DatabaseManager,
    profile_repo: ProfileRepository,
    auth_repo: AuthIdentityRepository,
    compensation_repo: CompensationRepository,
    config: PortalConfig,
    logger: StructuredLogger,
) -> PortalProvisioningService:
    return PortalProvisioningService(
        db=db,
        profile_repo=profile_repo,
        auth_repo=auth_repo,
        compensation_repo=compensation_repo,
        config=config,
        logger=logger,
    )


@pytest.fixture
def diagnostics(
    profile_repo: ProfileRepository,
    auth_repo: AuthIdentityRepository,
    logger: StructuredLogger,
) -> SyncDiagnosticsService:
    return SyncDiagnosticsService(
        profile_repo=profile_repo,
        auth_repo=auth_repo,
        logger=logger,
    )


@pytest.fixture
def worker(
    db: DatabaseManager,
    compensation_repo: CompensationRepository,
    auth_repo: AuthIdentityRepository,
    config: PortalConfig,
    logger: StructuredLogger,
) -> CompensationWorkerService:
    service = CompensationWorkerService(
        db=db,
        compensation_repo=compensation_repo,
        auth_repo=auth_repo,
        config=config,
        logger=logger,
    )
    yield service
    service.stop()

