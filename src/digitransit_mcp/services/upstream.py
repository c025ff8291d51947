"""Shared access path for every Digitransit call.

A fetch goes through, in order:
1. the request cache (already-fetched values),
2. request collapsing (one in-flight call per key, short reuse window),
3. the retry policy, with the token bucket consulted on every attempt,
4. the HTTP client.

The cache and token bucket are process-wide singletons, lazily built from
configuration like the other service modules.
"""

import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, TypeVar

from digitransit_mcp.data.cache import RequestCache
from digitransit_mcp.data.config import DigitransitConfig, get_config
from digitransit_mcp.data.digitransit_client import DigitransitClient
from digitransit_mcp.data.rate_limiter import TokenBucket
from digitransit_mcp.data.retry_policy import RetryPolicy

T = TypeVar("T")

logger = logging.getLogger(__name__)

_MISSING = object()

# Module-level state (lazy-initialized)
_config: DigitransitConfig | None = None
_request_cache: RequestCache[Any] | None = None
_rate_limiter: TokenBucket | None = None


def _get_config() -> DigitransitConfig:
    """Get or create the config singleton."""
    global _config
    if _config is None:
        _config = get_config()
    return _config


def get_request_cache() -> RequestCache[Any]:
    """Get or create the request cache singleton."""
    global _request_cache
    if _request_cache is None:
        config = _get_config()
        _request_cache = RequestCache(
            ttl=config.cache_ttl_seconds,
            max_size=config.cache_max_size,
            recent_results_max_size=config.recent_results_max_size,
            recent_results_ttl=config.recent_results_ttl_seconds,
        )
    return _request_cache


def get_rate_limiter() -> TokenBucket:
    """Get or create the token bucket singleton."""
    global _rate_limiter
    if _rate_limiter is None:
        config = _get_config()
        _rate_limiter = TokenBucket(
            capacity=config.rate_limit_capacity,
            refill_per_second=config.rate_limit_refill_per_second,
        )
    return _rate_limiter


def get_retry_policy() -> RetryPolicy:
    config = _get_config()
    return RetryPolicy(
        max_attempts=config.retry_max_attempts,
        base_ms=config.retry_base_ms,
        max_backoff_ms=config.retry_max_backoff_ms,
        jitter_min=config.retry_jitter_min,
        jitter_max=config.retry_jitter_max,
    )


def make_cache_key(kind: str, **params: Any) -> str:
    """Build a cache key from normalized request parameters.

    Parameters are sorted by name; None values are dropped and floats are
    rounded to 6 decimals so equivalent requests share a key.

    Example: make_cache_key("search", text="Kamppi", size=10) -> "search:size=10&text=Kamppi"
    """
    parts = []
    for name in sorted(params):
        value = params[name]
        if value is None:
            continue
        if isinstance(value, float):
            value = f"{value:.6f}"
        elif isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value)
        elif isinstance(value, str):
            value = value.strip()
        parts.append(f"{name}={value}")
    return f"{kind}:" + "&".join(parts)


async def fetch(cache_key: Hashable, request: Callable[[DigitransitClient], Awaitable[T]]) -> T:
    """Fetch a value through cache, collapsing, retry and rate limiting.

    Args:
        cache_key: Identity of the request (see make_cache_key).
        request: Callable performing one attempt with an open client.

    Returns:
        The upstream result, possibly served from cache.

    Raises:
        UpstreamError: When all attempts fail or a failure is not retryable.
        InflightTimeoutError: When the shared in-flight call takes too long.
    """
    cache = get_request_cache()
    cached = cache.get(cache_key, _MISSING)
    if cached is not _MISSING:
        logger.debug(f"Cache hit for {cache_key!r}")
        return cached

    config = _get_config()
    limiter = get_rate_limiter()
    policy = get_retry_policy()

    async def operation() -> T:
        async with DigitransitClient(config, rate_limiter=limiter) as client:
            return await policy.run(lambda: request(client))

    result = await cache.collapse_request(
        cache_key,
        operation,
        reuse_window=config.reuse_window_seconds,
        inflight_timeout=config.inflight_timeout_seconds,
    )
    # Stored only once the shared call settles in time; late results are dropped
    cache.set(cache_key, result)
    return result


def reset_service() -> None:
    """Reset the shared state completely.

    Drops the cache, token bucket and config. Useful for testing.
    """
    global _config, _request_cache, _rate_limiter
    _config = None
    _request_cache = None
    _rate_limiter = None
    # Clear the lru_cache on get_config so it re-reads .env/environment
    # (hasattr check handles case where function is mocked in tests)
    if hasattr(get_config, "cache_clear"):
        get_config.cache_clear()
