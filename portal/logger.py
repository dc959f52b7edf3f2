"""
Structured JSON Logging Module.

Every line written by the portal admin tool is one JSON object, so a
failed provisioning run can be reconstructed from the log file alone:
which step ran, for which customer and email, and what the remote side
answered.

Fields passed through ``extra=`` end up under the ``extra`` key.  Values
whose key looks like a credential (``password``, ``secret``, ``token``,
``key``) are masked before they are written.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO, Union

REDACTED: str = "***"

_SENSITIVE_MARKERS: tuple[str, ...] = ("password", "secret", "token", "key")

# Attributes present on every LogRecord; anything else came from ``extra=``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.makeLogRecord({}).__dict__.keys()
) | {"message", "asctime", "taskName"}


def _is_sensitive(field: str) -> bool:
    lowered = field.lower()
    return any(marker in lowered for marker in _SENSITIVE_MARKERS)


class JSONFormatter(logging.Formatter):
    """Render a ``LogRecord`` as a single JSON line.

    Keys: ``timestamp`` (ISO-8601 UTC), ``level``, ``logger_name``,
    ``message``, and when present ``extra`` and ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Union[str, dict[str, str]]] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        caller_fields = self._caller_fields(record)
        if caller_fields:
            payload["extra"] = caller_fields

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            payload["exception"] = record.exc_text

        return json.dumps(payload, ensure_ascii=False)

    @staticmethod
    def _caller_fields(record: logging.LogRecord) -> dict[str, str]:
        fields: dict[str, str] = {}
        for field, value in record.__dict__.items():
            if field in _RECORD_ATTRS:
                continue
            fields[field] = REDACTED if _is_sensitive(field) else str(value)
        return fields


def _console_handler(stream: Optional[TextIO], level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def _file_handler(path: Path, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    """Rotating file handler; raises ``OSError`` when *path* is not writable."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


class StructuredLogger:
    """Injectable wrapper around a JSON-configured ``logging.Logger``.

    Services, repositories and screens receive one of these through their
    constructor.  Handlers are attached once per logger name: a second
    ``StructuredLogger`` with the same *name* reuses the first one's
    handlers untouched.

    Usage::

        log = StructuredLogger(name="portal.provisioning")
        log.info("Portal created", extra={"customer_id": "c-1"})
    """

    def __init__(
        self,
        name: str = "portal",
        level: int = logging.INFO,
        stream: Union[TextIO, None] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level)
        if self._logger.handlers:
            return

        # Imported here: portal.config logs through this module.
        from portal.config import get_config
        cfg = get_config()

        self._logger.addHandler(_console_handler(stream, level))

        target = log_file or cfg.LOG_FILE
        try:
            self._logger.addHandler(
                _file_handler(
                    Path(target),
                    level,
                    max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
                    backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
                )
            )
        except OSError as exc:
            self._logger.warning(
                "Log file '%s' unavailable (%s); logging to console only.",
                target,
                exc,
            )

    @property
    def logger(self) -> logging.Logger:
        """The underlying ``logging.Logger``."""
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "portal") -> StructuredLogger:
    """Shorthand for ``StructuredLogger(name=name)`` with config defaults."""
    return StructuredLogger(name=name)
