"""BusyAPI: a TCP endpoint that sleeps for the number of seconds in the path."""

import logging
import signal
import sys
from typing import Optional

from busyapi.bootstrap.config import ConfigError, load_config
from busyapi.bootstrap.logging_setup import configure_logging
from busyapi.domain.connection_id import ConnectionLoggerAdapter
from busyapi.lifecycle.state import ServerLifecycle
from busyapi.transport.accept_loop import run_server

SERVER_LOGGER = ConnectionLoggerAdapter(logging.getLogger("busyapi.server"), {})
CONFIG_LOGGER = ConnectionLoggerAdapter(logging.getLogger("busyapi.config"), {})


def main(argv: Optional[list[str]] = None) -> None:
    """Resolve configuration, then serve until SIGTERM or SIGINT."""
    try:
        config = load_config(sys.argv[1:] if argv is None else argv)
    except ConfigError as error:
        configure_logging("INFO", "stdout")
        CONFIG_LOGGER.critical(
            "Invalid configuration",
            extra={"event": "config_invalid", "error": str(error)},
        )
        sys.exit(2)

    configure_logging(config.log_level, config.log_destination)
    lifecycle = ServerLifecycle()

    def shutdown_handler(signum: int, _frame) -> None:
        SERVER_LOGGER.info(
            "Received shutdown signal",
            extra={"event": "shutdown_signal", "signal": signum},
        )
        lifecycle.request_stop()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    SERVER_LOGGER.info(
        f"Starting BusyAPI server on http://{config.address}:{config.port}...",
        extra={
            "event": "server_starting",
            "address": config.address,
            "port": config.port,
            "max_timeout": config.max_timeout,
            "config_file": config.config_file,
            "audit_enabled": config.audit_enabled,
            "socket_timeout": config.socket_timeout,
            "shutdown_grace_seconds": config.shutdown_grace_seconds,
            "log_level": config.log_level,
            "log_destination": config.log_destination,
        },
    )
    run_server(config, lifecycle)
    SERVER_LOGGER.info("Shutting down.", extra={"event": "shutdown_complete"})


if __name__ == "__main__":
    main()
