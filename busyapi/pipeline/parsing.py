"""Request head parsing for the single request each connection carries."""

import re
from typing import Optional

from busyapi.domain.http_types import ParsedRequest, RequestRejected

HEAD_TERMINATOR = re.compile(rb"\r?\n\r?\n")
LINE_BREAK = re.compile(r"\r?\n")
MAX_HEADERS = 16
CLIENT_IP_HEADER = "x-real-ip"

_TOKEN = r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+"
REQUEST_LINE_PATTERN = re.compile(rf"({_TOKEN}) ([^\s]+) HTTP/1\.([01])")
HEADER_LINE_PATTERN = re.compile(rf"({_TOKEN}):[ \t]*(.*?)[ \t]*")


class ParseFailure(RequestRejected):
    """Raised when the buffer does not hold a complete, well-formed request head."""

    reason = "parse_failure"


def split_head(buffer: bytes) -> list[str]:
    """Return the request line and header lines from a complete request head.

    Lines may end in CRLF or a bare LF. Header values may carry obs-text, so
    the head is decoded as latin-1; only the request line must be ASCII.
    """
    terminator = HEAD_TERMINATOR.search(buffer)
    if terminator is None:
        raise ParseFailure("Incomplete request head")
    lines = LINE_BREAK.split(buffer[: terminator.start()].decode("latin-1"))
    if not lines[0].isascii():
        raise ParseFailure("Non-ASCII bytes in request line")
    return lines


def parse_request_line(request_line: str) -> tuple[str, str]:
    """Parse ``<METHOD> <PATH> HTTP/1.<0|1>`` into its method and path."""
    match = REQUEST_LINE_PATTERN.fullmatch(request_line)
    if match is None:
        raise ParseFailure("Invalid request line")
    return match.group(1), match.group(2)


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert header lines into a lowercase-keyed dictionary.

    When a header repeats, the first occurrence wins.
    """
    if len(lines) > MAX_HEADERS:
        raise ParseFailure("Too many headers")
    parsed: dict[str, str] = {}
    for line in lines:
        match = HEADER_LINE_PATTERN.fullmatch(line)
        if match is None:
            raise ParseFailure("Malformed header line")
        parsed.setdefault(match.group(1).lower(), match.group(2))
    return parsed


def parse_request(buffer: bytes) -> ParsedRequest:
    """Turn the raw bytes of one read into a ``ParsedRequest``."""
    lines = split_head(buffer)
    method, path = parse_request_line(lines[0])
    headers = parse_headers(lines[1:])
    client_ip: Optional[str] = headers.get(CLIENT_IP_HEADER)
    return ParsedRequest(method, path, client_ip)
