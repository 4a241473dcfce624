"""Integration tests exercising the busy endpoint over real sockets."""

from __future__ import annotations

import json
import threading
import time
from typing import TYPE_CHECKING

import pytest
import requests

from tests.utils.http import send_raw_request

pytestmark = pytest.mark.integration

if TYPE_CHECKING:
    from tests.conftest import ServerProcessInfo


def test_bare_root_returns_204_immediately(base_url: str) -> None:
    """A request without digits is served at once with no content."""

    started = time.monotonic()
    response = requests.get(f"{base_url}/", timeout=5)
    assert response.status_code == 204
    assert response.content == b""
    assert response.headers["Content-Length"] == "0"
    assert time.monotonic() - started < 1.0


def test_delay_is_applied_before_response(base_url: str) -> None:
    """GET /1 is held for about a second."""

    started = time.monotonic()
    response = requests.get(f"{base_url}/1", timeout=5)
    elapsed = time.monotonic() - started
    assert response.status_code == 204
    assert 0.9 <= elapsed < 2.0


def test_delay_is_clamped_to_max_timeout(base_url: str) -> None:
    """The fixture caps delays at two seconds."""

    started = time.monotonic()
    response = requests.get(f"{base_url}/30", timeout=10)
    elapsed = time.monotonic() - started
    assert response.status_code == 204
    assert 1.9 <= elapsed < 3.5


def test_overflowing_timeout_is_served_without_delay(base_url: str) -> None:
    started = time.monotonic()
    response = requests.get(f"{base_url}/999", timeout=5)
    assert response.status_code == 204
    assert time.monotonic() - started < 1.0


@pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
def test_all_allowed_methods_are_served(base_url: str, method: str) -> None:
    response = requests.request(method, f"{base_url}/0", timeout=5)
    assert response.status_code == 204


def test_non_numeric_path_returns_400(base_url: str) -> None:
    response = requests.get(f"{base_url}/abc", timeout=5)
    assert response.status_code == 400
    assert response.content == b""


def test_query_string_is_not_accepted(base_url: str) -> None:
    response = requests.get(f"{base_url}/1?retry=1", timeout=5)
    assert response.status_code == 400


def test_disallowed_method_returns_400(server_process: "ServerProcessInfo") -> None:
    """TRACE is rejected without delay even on a valid path."""

    started = time.monotonic()
    response = send_raw_request(
        server_process["host"], server_process["port"], b"TRACE /2 HTTP/1.1\r\n\r\n"
    )
    assert response is not None
    assert response.status_line == "HTTP/1.1 400 Bad Request"
    assert time.monotonic() - started < 1.0


def test_malformed_request_line_returns_400(server_process: "ServerProcessInfo") -> None:
    response = send_raw_request(
        server_process["host"], server_process["port"], b"hello there\r\n\r\n"
    )
    assert response is not None
    assert response.status_code == 400


def test_silent_connection_gets_no_response(server_process: "ServerProcessInfo") -> None:
    """A peer that connects and closes without sending is ignored."""

    response = send_raw_request(server_process["host"], server_process["port"], b"")
    assert response is None


def test_concurrent_delays_do_not_block_each_other(base_url: str) -> None:
    """Several delayed requests finish in roughly one delay, not the sum."""

    statuses: list[int] = []
    lock = threading.Lock()

    def fetch() -> None:
        response = requests.get(f"{base_url}/1", timeout=5)
        with lock:
            statuses.append(response.status_code)

    workers = [threading.Thread(target=fetch) for _ in range(5)]
    started = time.monotonic()
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert statuses == [204] * 5
    assert time.monotonic() - started < 3.0


def test_served_requests_are_logged_as_json(
    base_url: str, server_process: "ServerProcessInfo"
) -> None:
    requests.get(f"{base_url}/0", headers={"X-Real-IP": "203.0.113.50"}, timeout=5)

    deadline = time.monotonic() + 2
    served = []
    while time.monotonic() < deadline and not served:
        lines = server_process["log_file"].read_text().splitlines()
        records = [json.loads(line) for line in lines if line.strip()]
        served = [r for r in records if r.get("event") == "request_served"]
        time.sleep(0.05)

    assert served
    assert served[0]["client_ip"] == "203.0.113.50"
    assert served[0]["timeout"] == 0
