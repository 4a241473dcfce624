"""Main connection acceptance loop."""

import logging
import socket
import threading
from typing import Optional

from busyapi.audit.dispatcher import AuditDispatcher
from busyapi.audit.store import MongoAuditStore
from busyapi.bootstrap.config import BusyConfig
from busyapi.bootstrap.socket_factory import create_server_socket
from busyapi.domain.connection_id import ConnectionLoggerAdapter
from busyapi.domain.response_builders import connection_limited_response
from busyapi.lifecycle.state import ServerLifecycle
from busyapi.transport.connection_limiter import GLOBAL_LIMIT, ConnectionLimiter
from busyapi.transport.context import WorkerContext
from busyapi.transport.worker import handle_client

ACCEPT_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("busyapi.transport.accept"), {}
)


def create_audit_dispatcher(config: BusyConfig) -> Optional[AuditDispatcher]:
    """Build the audit dispatcher when every audit setting is configured."""
    if not config.audit_enabled:
        return None
    store = MongoAuditStore(config.audit)
    return AuditDispatcher(store, config.audit.collection)


def _reject_over_limit(
    client_socket: socket.socket,
    client_addr_str: str,
    limit_type: Optional[str],
    limiter: ConnectionLimiter,
) -> None:
    limit_event = (
        "connection_limit_reached"
        if limit_type == GLOBAL_LIMIT
        else "per_ip_limit_reached"
    )
    ACCEPT_LOGGER.warning(
        "Connection limit reached",
        extra={
            "event": limit_event,
            "client": client_addr_str,
            "limit_type": limit_type,
            "active_connections": limiter.active_count(),
        },
    )
    _refuse(client_socket)


def _refuse(client_socket: socket.socket) -> None:
    try:
        client_socket.sendall(connection_limited_response())
    except OSError:
        pass
    client_socket.close()


def _handle_accepted_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    worker_context: WorkerContext,
) -> None:
    """Hand a newly accepted connection to its own worker thread."""
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ACCEPT_LOGGER.debug(
            "Client connection accepted",
            extra={"event": "client_accepted", "client": client_addr_str},
        )

    limiter = worker_context.connection_limiter
    if limiter is not None:
        allowed, limit_type = limiter.acquire(client_address[0])
        if not allowed:
            _reject_over_limit(client_socket, client_addr_str, limit_type, limiter)
            return

    lifecycle = worker_context.lifecycle
    thread = threading.Thread(
        target=handle_client,
        args=(client_socket, client_address, worker_context),
        daemon=False,
    )
    if lifecycle is not None:
        lifecycle.register_worker(thread)
    try:
        thread.start()
    except RuntimeError as error:
        # Thread exhaustion: undo the bookkeeping and turn this client away.
        ACCEPT_LOGGER.error(
            "Failed to start worker thread",
            extra={
                "event": "worker_start_failed",
                "client": client_addr_str,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        if limiter is not None:
            limiter.release(client_address[0])
        if lifecycle is not None:
            lifecycle.cleanup_worker(thread)
        _refuse(client_socket)


def run_server(config: BusyConfig, lifecycle: ServerLifecycle) -> None:
    """Accept connections until the lifecycle asks to stop, then drain."""
    server_socket = create_server_socket(config)

    ACCEPT_LOGGER.info(
        "Server listening for connections",
        extra={
            "event": "server_listening",
            "address": config.address,
            "port": config.port,
            "max_timeout": config.max_timeout,
            "audit_enabled": config.audit_enabled,
        },
    )

    limiter = ConnectionLimiter(config.max_connections, config.max_connections_per_ip)
    worker_context = WorkerContext(
        config=config,
        connection_limiter=None if limiter.unbounded else limiter,
        lifecycle=lifecycle,
        audit_dispatcher=create_audit_dispatcher(config),
    )

    try:
        while not lifecycle.should_stop():
            try:
                client_socket, client_address = server_socket.accept()
            except socket.timeout:
                continue
            except OSError as error:
                if lifecycle.should_stop():
                    break
                ACCEPT_LOGGER.error(
                    "Socket accept failed",
                    extra={"event": "accept_error", "error_type": type(error).__name__},
                )
                continue

            _handle_accepted_client(client_socket, client_address, worker_context)
    finally:
        server_socket.close()
        ACCEPT_LOGGER.info(
            "Waiting for active connections to complete",
            extra={
                "event": "shutdown_waiting",
                "shutdown_grace_seconds": config.shutdown_grace_seconds,
                "remaining_workers": lifecycle.active_worker_count(),
            },
        )
        lifecycle.wait_for_workers(config.shutdown_grace_seconds)
        if worker_context.audit_dispatcher is not None:
            worker_context.audit_dispatcher.close()
        ACCEPT_LOGGER.info("Server shutdown complete", extra={"event": "server_stopped"})
