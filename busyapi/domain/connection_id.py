"""Per-connection identifiers carried through log records via contextvars."""

import contextvars
import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, MutableMapping, Optional

ROOT_LOGGER_NAME = "busyapi"
NO_CONNECTION = "-"

_current_connection: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "busyapi_connection", default=None
)


def generate_connection_id() -> str:
    """Return a short random identifier for a freshly accepted connection."""
    return uuid.uuid4().hex[:12]


def get_connection_id() -> Optional[str]:
    return _current_connection.get()


@contextmanager
def connection_scope(connection_id: Optional[str] = None) -> Iterator[str]:
    """Bind a connection id for the duration of the block.

    The previous value is restored on exit, so nested scopes and reused
    worker threads never see a stale id.
    """
    bound = connection_id or generate_connection_id()
    token = _current_connection.set(bound)
    try:
        yield bound
    finally:
        _current_connection.reset(token)


def component_name(logger_name: str) -> str:
    """``busyapi.transport.worker`` -> ``transport.worker``."""
    prefix = ROOT_LOGGER_NAME + "."
    return logger_name[len(prefix) :] if logger_name.startswith(prefix) else logger_name


class ConnectionLoggerAdapter(logging.LoggerAdapter):
    """Stamps every record with the bound connection id and its component."""

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None) -> None:
        super().__init__(logger, extra or {})
        self.component = component_name(logger.name)

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {
            **self.extra,
            **(kwargs.get("extra") or {}),
            "connection_id": get_connection_id() or NO_CONNECTION,
            "component": self.component,
        }
        return msg, kwargs
