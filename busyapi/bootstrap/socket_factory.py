"""Listening socket creation."""

import logging
import socket
import sys

from busyapi.bootstrap.config import BusyConfig
from busyapi.domain.connection_id import ConnectionLoggerAdapter

SOCKET_LOGGER = ConnectionLoggerAdapter(logging.getLogger("busyapi.socket"), {})

ACCEPT_POLL_SECONDS = 0.5


def create_server_socket(config: BusyConfig) -> socket.socket:
    """Bind the listening socket; exit the process when the bind fails."""
    try:
        server_socket = socket.create_server(
            (config.address, config.port),
            reuse_port=hasattr(socket, "SO_REUSEPORT"),
        )
    except OSError as error:
        SOCKET_LOGGER.critical(
            "Failed to bind listening socket",
            extra={
                "event": "bind_failed",
                "address": config.address,
                "port": config.port,
                "error": str(error),
            },
        )
        sys.exit(1)
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    return server_socket
