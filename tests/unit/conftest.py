"""Shared fixtures for unit tests."""

import logging
import socket
from unittest.mock import MagicMock

import pytest

from busyapi.bootstrap.config import BusyConfig
from busyapi.transport.context import WorkerContext


@pytest.fixture(autouse=True)
def enable_log_propagation():
    """Ensure logs propagate to root so caplog can catch them."""
    logger = logging.getLogger("busyapi")
    old_propagate = logger.propagate
    old_level = logger.level
    logger.propagate = True
    yield
    logger.propagate = old_propagate
    logger.setLevel(old_level)


@pytest.fixture(name="client_socket")
def fixture_client_socket():
    """A socket double whose single read is configured per test."""
    sock = MagicMock(spec=socket.socket)
    sock.recv.return_value = b""
    return sock


@pytest.fixture(name="busy_config")
def fixture_busy_config():
    return BusyConfig(max_timeout=60, socket_timeout=1)


@pytest.fixture(name="worker_context")
def fixture_worker_context(busy_config):
    return WorkerContext(config=busy_config)


@pytest.fixture(name="audit_dispatcher")
def fixture_audit_dispatcher():
    return MagicMock()

