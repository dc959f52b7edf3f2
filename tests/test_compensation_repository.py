"""Tests for the local pending_compensations queue."""

from __future__ import annotations

from portal.models.enums import CompensationStatus
from portal.repositories.compensation_repository import CompensationRepository


def test_enqueue_is_keyed_by_identity(compensation_repo: CompensationRepository) -> None:
    compensation_repo.enqueue("auth-1", "ana@example.com", "first")
    compensation_repo.enqueue("auth-1", "ana@example.com", "second")

    pending = compensation_repo.get_pending()

    assert len(pending) == 1
    assert pending[0].auth_user_id == "auth-1"
    assert pending[0].reason == "second"
    assert pending[0].status == CompensationStatus.PENDING
    assert compensation_repo.count_pending() == 1


def test_mark_failed_until_budget_exhausted(compensation_repo: CompensationRepository) -> None:
    compensation_repo.enqueue("auth-1", "ana@example.com", "sync failed")
    queue_id = compensation_repo.get_pending()[0].id

    first = compensation_repo.mark_failed(queue_id, "timeout", max_attempts=2)
    second = compensation_repo.mark_failed(queue_id, "timeout again", max_attempts=2)

    row = compensation_repo.get_by_auth_user_id("auth-1")
    assert first == CompensationStatus.PENDING
    assert second == CompensationStatus.PERMANENTLY_FAILED
    assert row is not None
    assert row.attempts == 2
    assert row.error_message == "timeout again"
    assert compensation_repo.get_pending() == []


def test_mark_done_leaves_queue(compensation_repo: CompensationRepository) -> None:
    compensation_repo.enqueue("auth-1", "ana@example.com", "sync failed")
    queue_id = compensation_repo.get_pending()[0].id

    compensation_repo.mark_done(queue_id)

    row = compensation_repo.get_by_auth_user_id("auth-1")
    assert row is not None
    assert row.status == CompensationStatus.DONE
    assert row.attempts == 1
    assert compensation_repo.count_pending() == 0
