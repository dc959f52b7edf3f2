"""Tests for DatabaseManager connection handling."""

from __future__ import annotations

import sqlite3

import pytest

from portal.database import DatabaseManager
from portal.logger import StructuredLogger


def test_offline_mode_raises_on_supabase_access(offline_db: DatabaseManager) -> None:
    assert offline_db.is_online is False
    with pytest.raises(RuntimeError, match="offline mode"):
        _ = offline_db.supabase


def test_injected_client_is_online(db: DatabaseManager) -> None:
    assert db.is_online is True


def test_batch_write_commits_once(db: DatabaseManager) -> None:
    with db.batch_write():
        assert db.in_batch
        db.sqlite.execute("INSERT INTO clientes (id, nome) VALUES ('c-1', 'Ana')")
        db.sqlite.execute("INSERT INTO clientes (id, nome) VALUES ('c-2', 'Bruno')")

    assert not db.in_batch
    assert db.sqlite.execute("SELECT COUNT(*) FROM clientes").fetchone()[0] == 2


def test_batch_write_rolls_back_on_error(db: DatabaseManager) -> None:
    with pytest.raises(sqlite3.IntegrityError):
        with db.batch_write():
            db.sqlite.execute("INSERT INTO clientes (id, nome) VALUES ('c-1', 'Ana')")
            db.sqlite.execute("INSERT INTO clientes (id, nome) VALUES ('c-1', 'Ana')")

    assert db.sqlite.execute("SELECT COUNT(*) FROM clientes").fetchone()[0] == 0


def test_pending_count_without_table_is_zero(logger: StructuredLogger) -> None:
    manager = DatabaseManager("", "", ":memory:", logger)

    assert manager.get_pending_compensation_count() == 0
    manager.close()


def test_close_is_idempotent(logger: StructuredLogger) -> None:
    manager = DatabaseManager("", "", ":memory:", logger)

    manager.close()
    manager.close()
