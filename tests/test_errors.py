"""Tests for HTTP error mapping."""

import pytest

from digitransit_mcp.data.errors import (
    AUTH_FAILED,
    RATE_LIMITED,
    UPSTREAM_ERROR,
    VALIDATION_ERROR,
    RateLimitedError,
    UpstreamError,
    map_http_error,
    truncate_provider_message,
)
from digitransit_mcp.models.transit import ErrorInfo


@pytest.mark.parametrize(
    "status, code",
    [
        (429, RATE_LIMITED),
        (401, AUTH_FAILED),
        (403, AUTH_FAILED),
        (500, UPSTREAM_ERROR),
        (503, UPSTREAM_ERROR),
        (400, VALIDATION_ERROR),
        (404, UPSTREAM_ERROR),
    ],
)
def test_status_mapping(status, code):
    error = map_http_error(status)

    assert error.code == code
    assert error.status == status


def test_rate_limited_reads_retry_after_header():
    error = map_http_error(429, {"retry-after": "12"}, {"message": "slow down"})

    assert isinstance(error, RateLimitedError)
    assert error.retry_after == 12.0
    assert error.provider_message == "slow down"


def test_retry_after_from_body():
    error = map_http_error(503, {}, {"retryAfter": 3})

    assert error.retry_after == 3.0


def test_non_numeric_retry_after_ignored():
    error = map_http_error(429, {"Retry-After": "Wed, 21 Oct 2025 07:28:00 GMT"})

    assert error.retry_after is None


def test_provider_message_truncated():
    error = map_http_error(500, {}, "x" * 500)

    assert error.provider_message == "x" * 200 + "…"


def test_truncate_short_message_unchanged():
    assert truncate_provider_message("short") == "short"


def test_error_info_from_upstream_error():
    error = UpstreamError(AUTH_FAILED, "authentication failed", status=401, provider_message="bad key")

    info = ErrorInfo.from_exception(error)

    assert info.code == AUTH_FAILED
    assert info.message == "authentication failed"
    assert info.provider_message == "bad key"


def test_error_info_from_timeout():
    info = ErrorInfo.from_exception(TimeoutError("too slow"))

    assert info.code == "upstream-timeout"
    assert info.message == "too slow"
