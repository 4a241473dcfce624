"""Fire-and-forget dispatch of audit records to the document store."""

import contextvars
import logging
import threading

from pymongo.errors import PyMongoError

from busyapi.domain.audit_record import AuditRecord
from busyapi.domain.connection_id import ConnectionLoggerAdapter

AUDIT_LOGGER = ConnectionLoggerAdapter(logging.getLogger("busyapi.audit"), {})


class AuditDispatcher:
    """Writes one record per served request without holding up the response."""

    def __init__(self, store, collection: str) -> None:
        self._store = store
        self._collection = collection

    def record(self, ip_address: str, timeout_used: int) -> threading.Thread:
        """Start a detached write of the request's audit record.

        The returned thread is only useful to tests; callers never wait on it.
        """
        audit_record = AuditRecord(ip_address, timeout_used)
        context = contextvars.copy_context()
        thread = threading.Thread(
            target=context.run,
            args=(self.write, audit_record),
            name="busyapi-audit",
            daemon=True,
        )
        thread.start()
        AUDIT_LOGGER.debug(
            "Audit record dispatched",
            extra={"event": "audit_dispatched", "client_ip": ip_address},
        )
        return thread

    def write(self, audit_record: AuditRecord) -> bool:
        """Insert the record; store failures are logged and swallowed."""
        try:
            self._store.insert(self._collection, audit_record.to_document())
        except PyMongoError as error:
            AUDIT_LOGGER.error(
                "Failed to write audit record",
                extra={
                    "event": "audit_failed",
                    "collection": self._collection,
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
            )
            return False
        AUDIT_LOGGER.debug(
            "Audit record stored",
            extra={
                "event": "audit_recorded",
                "collection": self._collection,
                "timeout": audit_record.timeout_used,
            },
        )
        return True

    def close(self) -> None:
        self._store.close()
