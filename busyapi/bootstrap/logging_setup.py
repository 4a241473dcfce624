"""Logging configuration for BusyAPI: one handler on the ``busyapi`` logger."""

import json
import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from busyapi.domain.connection_id import (
    NO_CONNECTION,
    ROOT_LOGGER_NAME,
    ConnectionLoggerAdapter,
    component_name,
)

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(connection_id)s] %(component)s :: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5
REDACTED = "[REDACTED]"

# Credential-looking keywords, long hex digests and long base64 blobs.
SENSITIVE_VALUE = re.compile(
    r"(?i:authorization|token|key|signature|password|secret|api[_-]?key)"
    r"|\b[A-Fa-f0-9]{32,}\b"
    r"|\b[A-Za-z0-9+/]{32,}={0,2}\b"
)

# Record attributes copied into JSON output when a call site passes them.
STRUCTURED_FIELDS = frozenset(
    {
        "event",
        "client",
        "client_ip",
        "method",
        "route",
        "status_code",
        "timeout",
        "reason",
        "limit_type",
        "active_connections",
        "bytes_in",
        "bytes_out",
        "duration_ms",
        "error",
        "error_type",
        "collection",
        "address",
        "port",
        "max_timeout",
        "audit_enabled",
        "config_file",
        "ignored_keys",
        "log_destination",
        "log_level",
        "socket_timeout",
        "shutdown_grace_seconds",
        "remaining_workers",
        "destination",
        "use_json",
        "signal",
    }
)


def redact_sensitive(value: Optional[str]) -> Optional[str]:
    """Replace a value that looks like a credential with a placeholder."""
    if value and SENSITIVE_VALUE.search(value):
        return REDACTED
    return value


class RecordDefaultsFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Give records from plain loggers the fields the formatters expect."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "connection_id"):
            record.connection_id = NO_CONNECTION
        if not hasattr(record, "component"):
            record.component = component_name(record.name)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, keys sorted."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "connection_id": getattr(record, "connection_id", NO_CONNECTION),
            "component": getattr(record, "component", None)
            or component_name(record.name),
            "message": record.getMessage(),
        }
        for field in STRUCTURED_FIELDS.intersection(vars(record)):
            value = getattr(record, field)
            payload[field] = redact_sensitive(value) if isinstance(value, str) else value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else logging.INFO


def _open_handler(destination: Optional[str]) -> logging.Handler:
    if not destination or destination.lower() == "stdout":
        return logging.StreamHandler(sys.stdout)
    target = Path(destination)
    target.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(target, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT)


def _build_handler(
    destination: Optional[str], level: int, use_json: bool = True
) -> logging.Handler:
    handler = _open_handler(destination)
    handler.setLevel(level)
    handler.setFormatter(
        JsonFormatter(datefmt=DATE_FORMAT)
        if use_json
        else logging.Formatter(TEXT_FORMAT, DATE_FORMAT)
    )
    handler.addFilter(RecordDefaultsFilter())
    return handler


def configure_logging(
    level: str = "INFO", destination: Optional[str] = None, use_json: bool = True
) -> ConnectionLoggerAdapter:
    """Install a single handler on the ``busyapi`` logger and return an adapter.

    Calling it again replaces the previous handler, so the destination can be
    switched once the real configuration is known.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    numeric_level = _resolve_level(level)
    logger.setLevel(numeric_level)
    logger.propagate = False

    for previous in list(logger.handlers):
        logger.removeHandler(previous)
        previous.close()
    logger.addHandler(_build_handler(destination, numeric_level, use_json))

    adapter = ConnectionLoggerAdapter(logger)
    adapter.info(
        "Logging configured",
        extra={
            "event": "logging_configured",
            "destination": destination or "stdout",
            "use_json": use_json,
        },
    )
    return adapter
