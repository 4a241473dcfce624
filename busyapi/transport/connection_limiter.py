"""Explicit bound on concurrently handled connections."""

import threading
from typing import Optional

GLOBAL_LIMIT = "global"
PER_IP_LIMIT = "ip"


class ConnectionLimiter:
    """Enforces global and per-IP concurrent connection quotas.

    A quota of ``0`` means unbounded, which is the default: a busy endpoint
    is expected to hold many slow requests open at once.
    """

    def __init__(self, max_connections: int = 0, max_connections_per_ip: int = 0) -> None:
        self._max_connections = max(0, max_connections)
        self._max_per_ip = max(0, max_connections_per_ip)
        self._lock = threading.Lock()
        self._active = 0
        self._per_ip: dict[str, int] = {}

    @property
    def unbounded(self) -> bool:
        return not self._max_connections and not self._max_per_ip

    def acquire(self, client_ip: str) -> tuple[bool, Optional[str]]:
        """Reserve a slot for ``client_ip``; return (allowed, limit hit)."""
        with self._lock:
            ip_active = self._per_ip.get(client_ip, 0)
            if self._max_per_ip and ip_active >= self._max_per_ip:
                return False, PER_IP_LIMIT
            if self._max_connections and self._active >= self._max_connections:
                return False, GLOBAL_LIMIT
            self._active += 1
            self._per_ip[client_ip] = ip_active + 1
            return True, None

    def release(self, client_ip: str) -> None:
        with self._lock:
            self._active = max(0, self._active - 1)
            remaining = self._per_ip.get(client_ip, 0) - 1
            if remaining > 0:
                self._per_ip[client_ip] = remaining
            else:
                self._per_ip.pop(client_ip, None)

    def active_count(self) -> int:
        with self._lock:
            return self._active
