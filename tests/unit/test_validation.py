"""Unit tests covering method validation and timeout resolution."""

import pytest

from busyapi.bootstrap.config import ALLOWED_METHODS
from busyapi.domain.http_types import ParsedRequest, RequestRejected
from busyapi.pipeline.timeouts import (
    MalformedPath,
    requested_timeout,
    resolve_timeout,
)
from busyapi.pipeline.validation import InvalidMethod, validate_request


@pytest.mark.parametrize("method", sorted(ALLOWED_METHODS))
def test_validate_request_allows_whitelisted_methods(method):
    """Every allow-listed method passes validation."""
    assert validate_request(ParsedRequest(method, "/")) is None


@pytest.mark.parametrize("method", ["TRACE", "HEAD", "CONNECT", "get", "Post", "BREW"])
def test_validate_request_rejects_other_methods(method):
    """Anything else, including lowercase spellings, is rejected."""
    with pytest.raises(InvalidMethod):
        validate_request(ParsedRequest(method, "/5"))


def test_validate_request_ignores_path_shape():
    """Validation is about the method only."""
    assert validate_request(ParsedRequest("GET", "/not-a-number")) is None


def test_rejections_share_a_base_class():
    assert issubclass(InvalidMethod, RequestRejected)
    assert issubclass(MalformedPath, RequestRejected)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/", 0),
        ("/0", 0),
        ("/5", 5),
        ("/007", 7),
        ("/255", 255),
        ("/256", 0),
        ("/300", 0),
        ("/999", 0),
        ("/" + "9" * 40, 0),
    ],
)
def test_requested_timeout_parses_byte_sized_values(path, expected):
    """Values that do not fit an unsigned byte fall back to zero."""
    assert requested_timeout(path) == expected


@pytest.mark.parametrize(
    "path",
    ["", "/abc", "/5/", "/5?x=1", "//5", "5", "/-1", "/+5", "/ 5", "/5\n", "/٥"],
)
def test_requested_timeout_rejects_malformed_paths(path):
    """Only a slash followed by ASCII digits is accepted."""
    with pytest.raises(MalformedPath):
        requested_timeout(path)


@pytest.mark.parametrize(
    "path, max_timeout, expected",
    [
        ("/5", 60, 5),
        ("/90", 60, 60),
        ("/255", 0, 0),
        ("/999", 60, 0),
        ("/", 60, 0),
        ("/60", 60, 60),
    ],
)
def test_resolve_timeout_clamps_to_ceiling(path, max_timeout, expected):
    """The effective timeout never exceeds the configured ceiling."""
    assert resolve_timeout(path, max_timeout) == expected
