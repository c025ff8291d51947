"""Retry policy with exponential backoff and deterministic jitter.

Jitter is derived from the attempt number rather than a global random source,
so a given attempt always waits the same amount of time.
"""

import asyncio
import logging
import math
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from digitransit_mcp.data.errors import (
    NETWORK_ERROR,
    RATE_LIMITED,
    UPSTREAM_TIMEOUT,
    RateLimitedError,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)

RETRYABLE_CODES = frozenset({RATE_LIMITED, UPSTREAM_TIMEOUT, NETWORK_ERROR})

# Used when a custom random source yields no usable signal
FALLBACK_UNIT = 0.5


def compute_backoff(attempt: float, base: float = 100, max_backoff: float = 10_000) -> float:
    """Exponential backoff for an attempt number.

    ``base * 2 ** (attempt - 1)``, clamped to ``max_backoff``. Non-integer
    attempts are floored; attempts below 1 (and NaN) behave like attempt 1,
    and +inf clamps to ``max_backoff``.

    Example: compute_backoff(3, base=100) -> 400
    """
    if not math.isfinite(attempt):
        return max_backoff if attempt > 0 else min(base, max_backoff)
    exponent = max(0, math.floor(attempt) - 1)
    try:
        backoff = base * 2.0**exponent
    except OverflowError:
        backoff = math.inf
    return min(backoff, max_backoff)


def _seeded_unit(attempt: float) -> float:
    seed = math.floor(attempt) if math.isfinite(attempt) else 0
    return random.Random(seed).random()


def deterministic_jitter_factor(
    attempt: float,
    jitter_min: float,
    jitter_max: float,
    random_source: Callable[[], float] | None = None,
) -> float:
    """Map a deterministic draw into [min(jitter_min, jitter_max), max(...)].

    Without a custom ``random_source`` the draw is seeded by the attempt
    number, so repeated calls agree. When both bounds are equal they are
    returned directly and ``random_source`` is never called.

    Custom source outputs are sanitized: +inf or values above 1 map to the
    upper bound; NaN, -inf and values <= 0 carry no usable signal and fall back
    to a value strictly above the lower bound.
    """
    if jitter_min == jitter_max:
        return jitter_min

    low, high = min(jitter_min, jitter_max), max(jitter_min, jitter_max)

    if random_source is None:
        unit = _seeded_unit(attempt)
        if unit <= 0:
            unit = FALLBACK_UNIT
    else:
        unit = random_source()
        if math.isnan(unit) or unit <= 0:
            unit = _seeded_unit(attempt) or FALLBACK_UNIT
        elif unit >= 1:
            return high

    factor = low + unit * (high - low)
    if factor <= low:
        # span too small to represent relative to low
        return high
    return min(factor, high)


def is_retryable_error(exc: BaseException) -> bool:
    """Default classification of transient failures.

    Retryable: explicit ``retryable=True``, rate limiting, HTTP status >= 500
    or 429, httpx transport/timeout errors, TimeoutError, ConnectionError.
    Everything else (4xx, validation) is fatal.
    """
    flag = getattr(exc, "retryable", None)
    if flag is not None:
        return bool(flag)

    if isinstance(exc, RateLimitedError):
        return True
    if getattr(exc, "code", None) in RETRYABLE_CODES:
        return True

    status = getattr(exc, "status", None)
    if status is None and isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
    if isinstance(status, int):
        return status >= 500 or status == 429

    return isinstance(exc, (httpx.TransportError, TimeoutError, ConnectionError))


async def retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_ms: float = 200,
    max_backoff_ms: float = 10_000,
    jitter_min: float = 0.5,
    jitter_max: float = 1.0,
    random_source: Callable[[], float] | None = None,
    is_retryable: Callable[[BaseException], bool] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with bounded retries on transient failures.

    Args:
        operation: Zero-argument callable returning an awaitable.
        max_attempts: Total invocations allowed, including the first.
        base_ms: Backoff for the first retry, in milliseconds.
        max_backoff_ms: Upper bound for a single backoff, in milliseconds.
        jitter_min: Lower bound of the jitter factor.
        jitter_max: Upper bound of the jitter factor.
        random_source: Optional callable returning values in (0, 1).
        is_retryable: Classifier overriding is_retryable_error.
        sleep: Sleep coroutine taking seconds.

    Returns:
        The first successful result.

    Raises:
        The last error once attempts are exhausted, or the first
        non-retryable error immediately.
    """
    classify = is_retryable or is_retryable_error
    attempts = max(1, max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not classify(e):
                raise
            if attempt >= attempts:
                logger.warning(f"Giving up after {attempt} attempts: {e!r}")
                raise

            backoff = compute_backoff(attempt, base=base_ms, max_backoff=max_backoff_ms)
            jitter = deterministic_jitter_factor(attempt, jitter_min, jitter_max, random_source)
            delay_ms = round(backoff * jitter)
            logger.debug(
                f"Attempt {attempt}/{attempts} failed ({e!r}), retrying in {delay_ms}ms "
                f"(backoff={backoff}ms, jitter={jitter:.3f})"
            )
            await sleep(delay_ms / 1000)

    raise AssertionError("unreachable")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry options bundled for reuse across calls."""

    max_attempts: int = 3
    base_ms: float = 200
    max_backoff_ms: float = 10_000
    jitter_min: float = 0.5
    jitter_max: float = 1.0

    async def run(self, operation: Callable[[], Awaitable[T]], **overrides) -> T:
        """Run ``operation`` under this policy. Keyword overrides go to retry()."""
        options = {
            "max_attempts": self.max_attempts,
            "base_ms": self.base_ms,
            "max_backoff_ms": self.max_backoff_ms,
            "jitter_min": self.jitter_min,
            "jitter_max": self.jitter_max,
        }
        options.update(overrides)
        return await retry(operation, **options)
