"""Resolution of the requested delay from the request path."""

import re

from busyapi.domain.http_types import RequestRejected

TIMEOUT_PATH_PATTERN = re.compile(r"/(?P<timeout>[0-9]*)")
MAX_REQUESTABLE_TIMEOUT = 255


class MalformedPath(RequestRejected):
    """Raised when the path is not ``/`` followed only by decimal digits."""

    reason = "malformed_path"


def requested_timeout(path: str) -> int:
    """Return the delay the client asked for, in whole seconds.

    Digit runs that do not fit an unsigned byte resolve to ``0`` rather than
    an error, so ``/300`` behaves like ``/``.
    """
    match = TIMEOUT_PATH_PATTERN.fullmatch(path)
    if match is None:
        raise MalformedPath(f"Unexpected path: {path}")

    digits = match.group("timeout").lstrip("0")
    if not digits or len(digits) > 3:
        return 0
    value = int(digits)
    return value if value <= MAX_REQUESTABLE_TIMEOUT else 0


def resolve_timeout(path: str, max_timeout: int) -> int:
    """Return the delay to apply, clamped to the configured ceiling."""
    return min(requested_timeout(path), max_timeout)
