"""
Application Configuration.

Pydantic Settings model for the customer portal provisioning tool.
All configuration is loaded from environment variables and .env files.
Inject a PortalConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


class PortalConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    # The auth admin API (create/delete/list users) only accepts the
    # service-role key; the anon key is rejected with 401.
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")

    # --- Local store ---
    LOCAL_DB_PATH: str = "portal_local.db"

    # --- Logging ---
    LOG_FILE: str = "portal.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    # --- Provisioning ---
    MIN_PASSWORD_LENGTH: int = 6

    # --- Compensation retry queue ---
    COMPENSATION_MAX_ATTEMPTS: int = 5
    COMPENSATION_RETRY_INTERVAL_S: float = 60.0

    # --- UI ---
    TOAST_DURATION_MS: int = 3500

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "PortalConfig":
        """Emit a startup warning when critical configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so operators get a log line telling them which values are
        placeholders.
        """
        _log = logging.getLogger("portal.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty: portal provisioning is disabled "
                "until Supabase credentials are configured."
            )

        if not self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value():
            _log.warning(
                "SUPABASE_SERVICE_ROLE_KEY is empty: the auth admin API "
                "cannot be reached."
            )

        return self


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[PortalConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> PortalConfig:
    """Return a cached ``PortalConfig`` singleton.

    On first call, creates a ``PortalConfig`` instance (reading from
    ``.env``).  Subsequent calls return the same instance.  Uses a
    check-lock-check pattern so the fast path never takes the lock.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = PortalConfig()
    return _config_instance
