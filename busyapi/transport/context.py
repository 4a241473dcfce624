"""Context object shared across worker threads."""

from dataclasses import dataclass
from typing import Optional

from busyapi.audit.dispatcher import AuditDispatcher
from busyapi.bootstrap.config import BusyConfig
from busyapi.lifecycle.state import ServerLifecycle
from busyapi.transport.connection_limiter import ConnectionLimiter


@dataclass
class WorkerContext:
    """Dependencies shared across handler threads."""

    config: BusyConfig
    connection_limiter: Optional[ConnectionLimiter] = None
    lifecycle: Optional[ServerLifecycle] = None
    audit_dispatcher: Optional[AuditDispatcher] = None
