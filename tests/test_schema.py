"""Tests for local SQLite schema creation and versioning."""

from __future__ import annotations

import sqlite3

import pytest

from portal.logger import StructuredLogger
from portal.schema import CURRENT_SCHEMA_VERSION, initialize_schema


def _tables(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    return {row[0] for row in rows}


def _version(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()[0]


def test_fresh_database_gets_all_tables(logger: StructuredLogger) -> None:
    conn = sqlite3.connect(":memory:")

    initialize_schema(conn, logger)

    assert {"audit_log", "usuarios", "clientes", "pending_compensations"} <= _tables(conn)
    assert _version(conn) == CURRENT_SCHEMA_VERSION


def test_initialize_is_idempotent(logger: StructuredLogger) -> None:
    conn = sqlite3.connect(":memory:")
    initialize_schema(conn, logger)
    conn.execute(
        "INSERT INTO usuarios (id, email) VALUES ('p-1', 'ana@example.com')"
    )
    conn.commit()

    initialize_schema(conn, logger)

    assert conn.execute("SELECT COUNT(*) FROM usuarios").fetchone()[0] == 1


def test_newer_database_is_left_untouched(logger: StructuredLogger) -> None:
    conn = sqlite3.connect(":memory:")
    conn.execute(
        "CREATE TABLE schema_version (id INTEGER PRIMARY KEY CHECK (id = 1), "
        "version INTEGER NOT NULL, applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
    )
    conn.execute(
        "INSERT INTO schema_version (id, version) VALUES (1, ?)",
        (CURRENT_SCHEMA_VERSION + 1,),
    )
    conn.commit()

    initialize_schema(conn, logger)

    assert _tables(conn) == {"schema_version"}
    assert _version(conn) == CURRENT_SCHEMA_VERSION + 1


def test_email_index_covers_lowercased_lookups(logger: StructuredLogger) -> None:
    conn = sqlite3.connect(":memory:")
    initialize_schema(conn, logger)

    plan = conn.execute(
        "EXPLAIN QUERY PLAN SELECT id FROM usuarios WHERE lower(email) = lower(?)",
        ("Ana@Example.com",),
    ).fetchall()

    assert any("idx_usuarios_email" in str(tuple(row)) for row in plan)


def test_queue_status_is_constrained(logger: StructuredLogger) -> None:
    conn = sqlite3.connect(":memory:")
    initialize_schema(conn, logger)

    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            "INSERT INTO pending_compensations (auth_user_id, status) "
            "VALUES ('auth-1', 'bogus')"
        )
