"""Tests for CompensationWorkerService: retry cycle, attempt budget, lifecycle."""

from __future__ import annotations

import time

from portal.database import DatabaseManager
from portal.models.enums import CompensationStatus
from portal.repositories.compensation_repository import CompensationRepository
from portal.services.compensation_worker import CompensationWorkerService
from tests.fakes import FakeSupabaseClient, audit_actions


def test_process_pending_deletes_orphan_and_marks_done(
    worker: CompensationWorkerService,
    compensation_repo: CompensationRepository,
    fake_supabase: FakeSupabaseClient,
    db: DatabaseManager,
) -> None:
    orphan = fake_supabase.add_auth_user("a@b.com")
    compensation_repo.enqueue(orphan.id, "a@b.com", "sync failed")

    resolved = worker.process_pending()

    assert resolved == 1
    assert fake_supabase.auth_users_for("a@b.com") == []
    row = compensation_repo.get_by_auth_user_id(orphan.id)
    assert row is not None and row.status == CompensationStatus.DONE
    assert worker.pending_count() == 0
    assert audit_actions(db.sqlite) == ["PORTAL_COMPENSATE"]


def test_already_deleted_identity_is_resolved(
    worker: CompensationWorkerService,
    compensation_repo: CompensationRepository,
) -> None:
    compensation_repo.enqueue("gone-1", "a@b.com", "sync failed")

    assert worker.process_pending() == 1
    assert compensation_repo.count_pending() == 0


def test_failures_exhaust_attempt_budget(
    worker: CompensationWorkerService,
    compensation_repo: CompensationRepository,
    fake_supabase: FakeSupabaseClient,
) -> None:
    orphan = fake_supabase.add_auth_user("a@b.com")
    compensation_repo.enqueue(orphan.id, "a@b.com", "sync failed")
    fake_supabase.fail("auth.delete_user", ConnectionError("connection reset"))

    # COMPENSATION_MAX_ATTEMPTS is 3 in the test config.
    assert worker.process_pending() == 0
    assert worker.process_pending() == 0
    assert compensation_repo.count_pending() == 1
    assert worker.process_pending() == 0

    row = compensation_repo.get_by_auth_user_id(orphan.id)
    assert row is not None
    assert row.status == CompensationStatus.PERMANENTLY_FAILED
    assert row.attempts == 3
    assert worker.process_pending() == 0
    assert fake_supabase.calls.count("auth.delete_user") == 3


def test_transient_failure_then_success(
    worker: CompensationWorkerService,
    compensation_repo: CompensationRepository,
    fake_supabase: FakeSupabaseClient,
) -> None:
    orphan = fake_supabase.add_auth_user("a@b.com")
    compensation_repo.enqueue(orphan.id, "a@b.com", "sync failed")
    fake_supabase.fail("auth.delete_user", ConnectionError("timeout"), times=1)

    assert worker.process_pending() == 0
    assert worker.process_pending() == 1
    assert fake_supabase.auth_users_for("a@b.com") == []


def test_offline_cycle_does_nothing(
    offline_db: DatabaseManager,
    worker: CompensationWorkerService,
    compensation_repo: CompensationRepository,
) -> None:
    worker._db = offline_db
    compensation_repo.enqueue("auth-1", "a@b.com", "sync failed")

    assert worker.process_pending() == 0
    assert compensation_repo.count_pending() == 1


def test_backoff_doubles_and_caps(worker: CompensationWorkerService) -> None:
    base = worker._calculate_backoff_interval()

    worker._consecutive_failures = 1
    assert worker._calculate_backoff_interval() == base * 2
    worker._consecutive_failures = 3
    assert worker._calculate_backoff_interval() == base * 8
    worker._consecutive_failures = 50
    assert worker._calculate_backoff_interval() <= worker._MAX_INTERVAL_S


def test_background_thread_drains_queue(
    worker: CompensationWorkerService,
    compensation_repo: CompensationRepository,
    fake_supabase: FakeSupabaseClient,
) -> None:
    orphan = fake_supabase.add_auth_user("a@b.com")
    compensation_repo.enqueue(orphan.id, "a@b.com", "sync failed")

    worker.start()
    worker.start()  # second call is a no-op
    assert worker.is_running

    deadline = time.monotonic() + 5.0
    while compensation_repo.count_pending() and time.monotonic() < deadline:
        time.sleep(0.02)

    worker.stop()
    assert not worker.is_running
    assert compensation_repo.count_pending() == 0
    assert fake_supabase.auth_users_for("a@b.com") == []
