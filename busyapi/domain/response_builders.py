"""Pure builders for the status-only responses BusyAPI sends."""

from typing import Mapping

STATUS_REASONS = {
    200: "OK",
    204: "No Content",
    400: "Bad Request",
    500: "Internal Server Error",
    503: "Service Unavailable",
}

RESPONSE_HEADERS = {
    "Server": "busyapi",
    "Content-Type": "text/html; charset=UTF-8",
    "Content-Length": "0",
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Connection": "close",
}


def status_line(status_code: int) -> str:
    """Return the HTTP/1.1 status line for a supported status code."""
    try:
        reason = STATUS_REASONS[status_code]
    except KeyError as exc:
        raise ValueError(f"Unsupported status code: {status_code}") from exc
    return f"HTTP/1.1 {status_code} {reason}"


def build_status_response(
    status_code: int, headers: Mapping[str, str] = RESPONSE_HEADERS
) -> bytes:
    """Serialize a complete, bodiless response for ``status_code``."""
    lines = [status_line(status_code)]
    lines.extend(f"{name}: {value}" for name, value in headers.items())
    return "\r\n".join(lines).encode("ascii") + b"\r\n\r\n"


def connection_limited_response() -> bytes:
    headers = {**RESPONSE_HEADERS, "Retry-After": "1"}
    return build_status_response(503, headers)
