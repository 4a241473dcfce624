"""Request validation for the busy endpoint."""

from busyapi.bootstrap.config import ALLOWED_METHODS
from busyapi.domain.http_types import ParsedRequest, RequestRejected


class InvalidMethod(RequestRejected):
    """Raised when the request method is outside the supported allowlist."""

    reason = "invalid_method"


def validate_request(
    request: ParsedRequest, allowed_methods: frozenset[str] = ALLOWED_METHODS
) -> None:
    """Ensure the HTTP method is part of the supported allowlist."""
    if request.method not in allowed_methods:
        raise InvalidMethod(f"Method not allowed: {request.method}")
