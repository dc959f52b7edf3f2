"""
Customer Portal Admin Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, starts the compensation worker and launches the
Textual UI.  Every subsystem is wired here; there are no module-level
globals.

Usage::

    python main.py
"""

from __future__ import annotations

import atexit
import sys
import traceback
from pathlib import Path

from portal.config import get_config
from portal.database import DatabaseManager
from portal.logger import StructuredLogger, get_logger
from portal.schema import initialize_schema
from portal.services import create_services
from portal.ui.app import PortalAdminApp


def main() -> None:
    """Application entry point: wire dependencies and launch the UI."""
    logger: StructuredLogger = get_logger("portal.main")
    logger.info("Starting Customer Portal Admin...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (Supabase required for provisioning, SQLite always)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
        sqlite_path=Path(config.LOCAL_DB_PATH),
        logger=StructuredLogger(name="portal.database"),
    )

    # Second safety net for unclean exits; close() is idempotent.
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 3. SQLite Schema Initialization (idempotent, versioned)
    # ------------------------------------------------------------------
    initialize_schema(db.sqlite, StructuredLogger(name="portal.schema"))

    # ------------------------------------------------------------------
    # 4. Service Container (repositories + services, single composition root)
    # ------------------------------------------------------------------
    services = create_services(db=db, config=config)

    # ------------------------------------------------------------------
    # 5. Background compensation worker
    # ------------------------------------------------------------------
    worker = services["compensation_worker"]
    pending = worker.pending_count()
    if pending:
        logger.warning(
            "%d auth identity deletion(s) are waiting for a retry.", pending,
        )
    worker.start()

    # ------------------------------------------------------------------
    # 6. Launch the UI (blocks until the app exits)
    # ------------------------------------------------------------------
    logger.info("Launching UI...")
    app = PortalAdminApp(
        services=services,
        config=config,
        logger=get_logger("portal.ui"),
    )
    try:
        app.run()
    finally:
        worker.stop()
        db.close()
        logger.info("Customer Portal Admin shut down.")


def _show_fatal_error(exc: BaseException) -> None:
    """Report a fatal startup error on stderr.

    The UI may be the thing that failed, so nothing here depends on it.
    """
    detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    sys.stderr.write(
        "Customer Portal Admin encountered an unexpected error and cannot "
        f"continue.\n\nFATAL: {type(exc).__name__}: {exc}\n{detail}"
    )


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        _show_fatal_error(exc)
        sys.exit(1)
