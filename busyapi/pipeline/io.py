"""Socket input/output for a single request and its status-only response."""

import logging
import socket

from busyapi.bootstrap.config import READ_BUFFER_SIZE
from busyapi.domain.connection_id import ConnectionLoggerAdapter
from busyapi.domain.response_builders import build_status_response

IO_LOGGER = ConnectionLoggerAdapter(logging.getLogger("busyapi.pipeline.io"), {})


def read_request(
    client_socket: socket.socket, buffer_size: int = READ_BUFFER_SIZE
) -> bytes:
    """Perform the one bounded read a connection is allowed.

    Anything beyond ``buffer_size`` bytes is left unread, so oversized
    requests are truncated and will normally fail to parse.
    """
    data = client_socket.recv(buffer_size)
    IO_LOGGER.debug("Read request bytes", extra={"bytes_in": len(data)})
    return data


def send_status(client_socket: socket.socket, status_code: int) -> bool:
    """Write a bodiless response; return False if the peer could not take it."""
    payload = build_status_response(status_code)
    try:
        client_socket.sendall(payload)
    except OSError as error:
        IO_LOGGER.debug(
            "Response write failed",
            extra={
                "event": "response_write_failed",
                "status_code": status_code,
                "error_type": type(error).__name__,
            },
        )
        return False
    IO_LOGGER.debug(
        "Sent response",
        extra={
            "event": "response_sent",
            "status_code": status_code,
            "bytes_out": len(payload),
        },
    )
    return True
