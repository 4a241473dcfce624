"""Shared request types and the rejection hierarchy used by the pipeline."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ParsedRequest:
    """The parts of a request head the handler cares about."""

    method: str
    path: str
    client_ip_override: Optional[str] = None

    def client_ip(self, peer_ip: str) -> str:
        """Return the forwarded address when present, else the peer address."""
        if self.client_ip_override is not None:
            return self.client_ip_override
        return peer_ip


class RequestRejected(Exception):
    """Base class for request problems that map to a 400 response."""

    reason = "rejected"


def is_empty_request(buffer: bytes) -> bool:
    """Return True when nothing meaningful was read from the peer."""
    return not buffer or buffer[0] == 0
