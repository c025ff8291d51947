"""Tests for the shared upstream fetch path."""

import asyncio

import pytest

from digitransit_mcp.data.cache import InflightTimeoutError
from digitransit_mcp.data.config import DigitransitConfig
from digitransit_mcp.data.errors import VALIDATION_ERROR, RateLimitedError, UpstreamError
from digitransit_mcp.services import upstream


@pytest.fixture(autouse=True)
def reset_service():
    """Reset the shared state before and after each test."""
    upstream.reset_service()
    upstream._config = DigitransitConfig(DIGITRANSIT_API_KEY="test_key", retry_base_ms=1, retry_max_backoff_ms=2)
    yield
    upstream.reset_service()


def test_make_cache_key_normalizes_params():
    key = upstream.make_cache_key("search", text=" Kamppi ", size=10, lat=None, lang=["fi", "en"], lon=24.9)

    assert key == "search:lang=fi,en&lon=24.900000&size=10&text=Kamppi"


def test_make_cache_key_order_independent():
    assert upstream.make_cache_key("k", a=1, b=2) == upstream.make_cache_key("k", b=2, a=1)


def test_singletons_follow_config():
    upstream._config = DigitransitConfig(DIGITRANSIT_CACHE_MAX_SIZE=7, DIGITRANSIT_RATE_LIMIT_CAPACITY=3)

    assert upstream.get_request_cache() is upstream.get_request_cache()
    assert upstream.get_rate_limiter().capacity == 3
    assert upstream.get_retry_policy().max_attempts == 3


@pytest.mark.asyncio
async def test_fetch_caches_successful_results():
    calls = 0

    async def request(client):
        nonlocal calls
        calls += 1
        return {"ok": calls}

    first = await upstream.fetch("key", request)
    second = await upstream.fetch("key", request)

    assert first == second == {"ok": 1}
    assert calls == 1


@pytest.mark.asyncio
async def test_concurrent_fetches_share_one_request():
    calls = 0

    async def request(client):
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return "value"

    results = await asyncio.gather(*(upstream.fetch("key", request) for _ in range(5)))

    assert results == ["value"] * 5
    assert calls == 1


@pytest.mark.asyncio
async def test_fetch_retries_transient_failures():
    calls = 0

    async def request(client):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RateLimitedError()
        return "value"

    assert await upstream.fetch("key", request) == "value"
    assert calls == 2


@pytest.mark.asyncio
async def test_fetch_failure_not_cached():
    calls = 0

    async def request(client):
        nonlocal calls
        calls += 1
        raise UpstreamError(VALIDATION_ERROR, "bad", status=400)

    with pytest.raises(UpstreamError):
        await upstream.fetch("key", request)
    with pytest.raises(UpstreamError):
        await upstream.fetch("key", request)

    # Not retryable, so one call per fetch
    assert calls == 2
    assert "key" not in upstream.get_request_cache()


@pytest.mark.asyncio
async def test_timed_out_result_is_not_cached():
    upstream._config = DigitransitConfig(
        DIGITRANSIT_API_KEY="test_key",
        DIGITRANSIT_INFLIGHT_TIMEOUT=0.01,
        retry_base_ms=1,
        retry_max_backoff_ms=2,
    )
    release = asyncio.Event()
    calls = 0

    async def slow(client):
        nonlocal calls
        calls += 1
        await release.wait()
        return "late"

    with pytest.raises(InflightTimeoutError):
        await upstream.fetch("key", slow)

    # Let the abandoned call finish and close its client
    release.set()
    for _ in range(10):
        await asyncio.sleep(0)
    assert "key" not in upstream.get_request_cache()

    async def fast(client):
        nonlocal calls
        calls += 1
        return "fresh"

    assert await upstream.fetch("key", fast) == "fresh"
    assert calls == 2
