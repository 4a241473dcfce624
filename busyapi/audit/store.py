"""MongoDB-backed store for audit records."""

import logging
import threading
from typing import Any, Mapping, Optional
from urllib.parse import quote_plus

from pymongo import MongoClient

from busyapi.bootstrap.config import AuditSettings
from busyapi.domain.connection_id import ConnectionLoggerAdapter

STORE_LOGGER = ConnectionLoggerAdapter(logging.getLogger("busyapi.audit.store"), {})

APP_NAME = "BusyAPI"
SERVER_SELECTION_TIMEOUT_MS = 5000


def build_connection_uri(settings: AuditSettings) -> str:
    """Return the SRV connection string for the configured cluster."""
    user = quote_plus(settings.user or "")
    password = quote_plus(settings.password or "")
    return (
        f"mongodb+srv://{user}:{password}@{settings.host}/"
        "?retryWrites=true&w=majority"
    )


class MongoAuditStore:
    """Thread-safe wrapper around a lazily created, pooled ``MongoClient``."""

    def __init__(
        self,
        settings: AuditSettings,
        server_selection_timeout_ms: int = SERVER_SELECTION_TIMEOUT_MS,
    ) -> None:
        self._settings = settings
        self._timeout_ms = server_selection_timeout_ms
        self._lock = threading.Lock()
        self._client: Optional[MongoClient] = None

    def _get_client(self) -> MongoClient:
        # Construction resolves the SRV record, so failures surface on first use.
        with self._lock:
            if self._client is None:
                self._client = MongoClient(
                    build_connection_uri(self._settings),
                    appname=APP_NAME,
                    serverSelectionTimeoutMS=self._timeout_ms,
                )
                STORE_LOGGER.debug(
                    "Audit store client created",
                    extra={"event": "audit_client_created"},
                )
            return self._client

    def insert(self, collection: str, document: Mapping[str, Any]) -> None:
        """Insert one document; raises ``PyMongoError`` on failure."""
        database = self._get_client()[self._settings.database]
        database[collection].insert_one(dict(document))

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None
