"""
Local SQLite schema for the portal admin tool.

The local file never holds authoritative data.  It caches what was last
read from Supabase, keeps the audit trail, and queues the auth identity
deletions that could not be completed during a rollback.

Tables
~~~~~~
- ``audit_log``: persistent structured audit trail.
- ``usuarios``: cache of ``public.usuarios`` (Profile) rows.
- ``clientes``: cache of ``public.clientes`` (Customer) rows.
- ``pending_compensations``: identity deletions awaiting a retry.

``schema_version`` holds a single row with the applied version.  A new
file is created in one step from :data:`_TABLE_DEFINITIONS`.  A file
already at :data:`CURRENT_SCHEMA_VERSION`, or written by a newer build,
is left as it is.

Usage::

    initialize_schema(db.sqlite, StructuredLogger(name="portal.schema"))
"""

from __future__ import annotations

import sqlite3

from portal.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

CURRENT_SCHEMA_VERSION: int = 1

# ---------------------------------------------------------------------------
# Full schema for a new file.
# ---------------------------------------------------------------------------
_TABLE_DEFINITIONS: list[str] = [
    # -- persistent structured audit trail ------------------------------------
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        details TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- usuarios (local cache, mirrors public.usuarios) ---------------------
    # No UNIQUE on email: soft-deleted rows share the address with the
    # active one, exactly as on the server.
    """
    CREATE TABLE IF NOT EXISTS usuarios (
        id TEXT PRIMARY KEY,
        nome TEXT NOT NULL DEFAULT '',
        email TEXT NOT NULL,
        tipo_usuario TEXT NOT NULL DEFAULT 'cliente',
        tenant_id TEXT,
        deleted_at TIMESTAMP,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- clientes (local cache, mirrors public.clientes) ---------------------
    """
    CREATE TABLE IF NOT EXISTS clientes (
        id TEXT PRIMARY KEY,
        nome TEXT NOT NULL DEFAULT '',
        email TEXT,
        telefone TEXT,
        usuario_portal_id TEXT,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- identity deletions awaiting a retry ---------------------------------
    """
    CREATE TABLE IF NOT EXISTS pending_compensations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        auth_user_id TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL DEFAULT '',
        reason TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'pending'
               CHECK (status IN ('pending', 'done', 'permanently_failed')),
        attempts INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        attempted_at TIMESTAMP,
        error_message TEXT
    )
    """,
    # Email lookups compare lower(email).
    "CREATE INDEX IF NOT EXISTS idx_usuarios_email ON usuarios(lower(email))",
    "CREATE INDEX IF NOT EXISTS idx_pending_compensations_status "
    "ON pending_compensations(status)",
]


_VERSION_TABLE_DDL: str = """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""


def _stored_version(conn: sqlite3.Connection) -> int:
    """Version recorded in ``schema_version``; ``0`` for a new file."""
    conn.execute(_VERSION_TABLE_DDL)
    conn.commit()
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return int(row[0]) if row else 0


def _record_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        "INSERT INTO schema_version (id, version) VALUES (1, ?) "
        "ON CONFLICT(id) DO UPDATE SET version = excluded.version, "
        "applied_at = CURRENT_TIMESTAMP",
        (version,),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Create the local tables on first start.

    Runs on every startup.  The tables and the version row share one
    transaction, so a failure leaves no version recorded and the next
    start tries again.
    """
    current = _stored_version(conn)
    if current >= CURRENT_SCHEMA_VERSION:
        logger.info("Local schema at version %d; nothing to do.", current)
        return

    try:
        for ddl in _TABLE_DEFINITIONS:
            conn.execute(ddl)
        _record_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.error("Local schema creation failed and was rolled back.", exc_info=True)
        raise

    logger.info("Local schema created at version %d.", CURRENT_SCHEMA_VERSION)
