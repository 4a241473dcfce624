"""Audit record written to the document store for each delayed request."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuditRecord:
    """One served request: who asked and how long they were held."""

    ip_address: str
    timeout_used: int
    timestamp: datetime = field(default_factory=_utc_now)

    def to_document(self) -> dict[str, Any]:
        """Return the document shape stored in the requests collection."""
        return {
            "timestamp": self.timestamp,
            "ipAddress": self.ip_address,
            "timeout": int(self.timeout_used),
        }
