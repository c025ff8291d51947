"""Upstream error types and HTTP error mapping."""

from collections.abc import Mapping
from typing import Any

PROVIDER_MESSAGE_MAX_LENGTH = 200

# Canonical error codes
RATE_LIMITED = "rate-limited"
AUTH_FAILED = "auth-failed"
UPSTREAM_ERROR = "upstream-error"
UPSTREAM_TIMEOUT = "upstream-timeout"
NETWORK_ERROR = "network-error"
VALIDATION_ERROR = "validation-error"


class UpstreamError(Exception):
    """Failure reported by (or while talking to) the Digitransit API."""

    def __init__(
        self,
        code: str,
        message: str,
        status: int | None = None,
        retry_after: float | None = None,
        provider_message: str | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.retry_after = retry_after
        self.provider_message = provider_message
        self.retryable = retryable

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, status={self.status!r}, message={self.message!r})"


class RateLimitedError(UpstreamError):
    """Raised when a request is refused, locally by the token bucket or by a 429."""

    def __init__(self, message: str = "rate limited", retry_after: float | None = None):
        super().__init__(RATE_LIMITED, message, status=429, retry_after=retry_after, retryable=True)


def truncate_provider_message(message: str) -> str:
    """Truncate an upstream message to 200 characters plus an ellipsis."""
    if len(message) > PROVIDER_MESSAGE_MAX_LENGTH:
        return message[:PROVIDER_MESSAGE_MAX_LENGTH] + "…"
    return message


def _header(headers: Mapping[str, str] | None, name: str) -> str | None:
    if not headers:
        return None
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _provider_message(body: Any) -> str | None:
    if isinstance(body, Mapping):
        for field in ("message", "error", "error_description", "detail"):
            value = body.get(field)
            if isinstance(value, str):
                return value
    if isinstance(body, str) and body:
        return body
    return None


def _retry_after(headers: Mapping[str, str] | None, body: Any) -> float | None:
    raw = _header(headers, "Retry-After")
    if raw is not None:
        try:
            return float(raw)
        except ValueError:
            pass  # HTTP-date form, not used by Digitransit
    if isinstance(body, Mapping) and isinstance(body.get("retryAfter"), (int, float)):
        return float(body["retryAfter"])
    return None


def map_http_error(
    status: int,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
) -> UpstreamError:
    """Map an HTTP error response to an UpstreamError with a canonical code.

    - 429 -> rate-limited (RateLimitedError)
    - 401/403 -> auth-failed
    - 5xx -> upstream-error
    - 400 -> validation-error
    - anything else -> upstream-error

    Long provider messages are truncated to 200 characters.
    """
    message = _provider_message(body)
    provider_message = truncate_provider_message(message) if message is not None else None
    retry_after = _retry_after(headers, body)

    if status == 429:
        err = RateLimitedError(retry_after=retry_after)
        err.provider_message = provider_message
        return err

    if status in (401, 403):
        code, text = AUTH_FAILED, "authentication failed"
    elif 500 <= status < 600:
        code, text = UPSTREAM_ERROR, "upstream server error"
    elif status == 400:
        code, text = VALIDATION_ERROR, "validation failed"
        retry_after = None
    else:
        code, text = UPSTREAM_ERROR, "upstream server error"

    return UpstreamError(
        code,
        text,
        status=status,
        retry_after=retry_after,
        provider_message=provider_message,
    )
