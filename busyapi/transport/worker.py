"""Worker thread logic: one request, one delay, one response per connection."""

import logging
import socket
import threading
import time
from dataclasses import dataclass
from typing import Optional

from busyapi.domain.connection_id import ConnectionLoggerAdapter, connection_scope
from busyapi.domain.http_types import ParsedRequest, RequestRejected, is_empty_request
from busyapi.pipeline.io import read_request, send_status
from busyapi.pipeline.parsing import parse_request
from busyapi.pipeline.timeouts import resolve_timeout
from busyapi.pipeline.validation import validate_request
from busyapi.transport.context import WorkerContext

WORKER_LOGGER = ConnectionLoggerAdapter(
    logging.getLogger("busyapi.transport.worker"), {}
)


@dataclass
class _WorkerResources:
    thread: threading.Thread
    client_socket: socket.socket
    client_ip: str
    client_addr_str: str


def _read_or_fail(client_socket: socket.socket, client_addr_str: str) -> Optional[bytes]:
    """Read the request bytes, answering 500 when the read itself fails."""
    try:
        return read_request(client_socket)
    except OSError as error:
        WORKER_LOGGER.warning(
            "Failed to read request",
            extra={
                "event": "read_failed",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
        send_status(client_socket, 500)
        return None


def resolve_request(data: bytes, max_timeout: int) -> tuple[ParsedRequest, int]:
    """Parse, validate and resolve the delay for a non-empty request buffer."""
    request = parse_request(data)
    validate_request(request)
    return request, resolve_timeout(request.path, max_timeout)


def serve_connection(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> Optional[int]:
    """Run the request pipeline on an accepted socket.

    Returns the status code written, or ``None`` when nothing was sent.
    """
    client_addr_str = f"{client_address[0]}:{client_address[1]}"

    data = _read_or_fail(client_socket, client_addr_str)
    if data is None:
        return 500

    if is_empty_request(data):
        WORKER_LOGGER.debug(
            "Empty request ignored",
            extra={"event": "empty_request", "client": client_addr_str},
        )
        return None

    try:
        request, timeout = resolve_request(data, context.config.max_timeout)
    except RequestRejected as rejection:
        WORKER_LOGGER.info(
            "Request rejected",
            extra={
                "event": "request_rejected",
                "client": client_addr_str,
                "reason": rejection.reason,
            },
        )
        send_status(client_socket, 400)
        return 400

    WORKER_LOGGER.debug(
        "Request received",
        extra={
            "event": "request_received",
            "client": client_addr_str,
            "method": request.method,
            "route": request.path,
            "timeout": timeout,
        },
    )

    started = time.monotonic()
    if timeout > 0:
        WORKER_LOGGER.debug(
            "Delaying response",
            extra={"event": "delay_started", "timeout": timeout},
        )
        time.sleep(timeout)

    send_status(client_socket, 204)

    client_ip = request.client_ip(client_address[0])
    WORKER_LOGGER.info(
        "Request served",
        extra={
            "event": "request_served",
            "client_ip": client_ip,
            "method": request.method,
            "timeout": timeout,
            "status_code": 204,
            "duration_ms": round((time.monotonic() - started) * 1000, 1),
        },
    )

    if context.audit_dispatcher is not None:
        context.audit_dispatcher.record(client_ip, timeout)
    return 204


def _prepare_worker(
    context: WorkerContext,
    client_socket: socket.socket,
    current_thread: threading.Thread,
) -> None:
    if context.lifecycle is not None:
        context.lifecycle.register_worker(current_thread)
    client_socket.settimeout(context.config.socket_timeout)


def _cleanup_worker(context: WorkerContext, lifecycle, resources: _WorkerResources):
    if context.connection_limiter is not None:
        context.connection_limiter.release(resources.client_ip)
    if lifecycle is not None:
        lifecycle.cleanup_worker(resources.thread)

    try:
        resources.client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    resources.client_socket.close()

    WORKER_LOGGER.debug(
        "Socket closed",
        extra={"event": "socket_closed", "client": resources.client_addr_str},
    )


def handle_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    """Thread entry point for one accepted connection."""
    current_thread = threading.current_thread()
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    resources = _WorkerResources(
        current_thread, client_socket, client_address[0], client_addr_str
    )

    lifecycle = context.lifecycle
    with connection_scope():
        try:
            _prepare_worker(context, client_socket, current_thread)
            serve_connection(client_socket, client_address, context)
        except Exception as error:  # pylint: disable=broad-except
            WORKER_LOGGER.error(
                "Unexpected error in worker",
                extra={
                    "event": "worker_error",
                    "client": client_addr_str,
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
                exc_info=True,
            )
        finally:
            _cleanup_worker(context, lifecycle, resources)
