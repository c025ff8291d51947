"""Tests for the Digitransit HTTP client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from digitransit_mcp.data.config import DigitransitConfig
from digitransit_mcp.data.digitransit_client import API_KEY_HEADER, DigitransitClient
from digitransit_mcp.data.errors import (
    AUTH_FAILED,
    NETWORK_ERROR,
    UPSTREAM_ERROR,
    UPSTREAM_TIMEOUT,
    RateLimitedError,
    UpstreamError,
)
from digitransit_mcp.data.rate_limiter import TokenBucket


@pytest.fixture
def config() -> DigitransitConfig:
    """Create a test config."""
    return DigitransitConfig(
        DIGITRANSIT_API_KEY="test_api_key",
        DIGITRANSIT_ROUTING_URL="https://example.com/routing",
        geocoding_search_url="https://example.com/search",
    )


def _response(status_code: int = 200, json_data=None, headers=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = json_data
    response.text = ""
    return response


def _patched_client(response=None, side_effect=None):
    mock_client = AsyncMock()
    mock_client.request = AsyncMock(return_value=response, side_effect=side_effect)
    return mock_client


@pytest.mark.asyncio
async def test_get_json_returns_body(config: DigitransitConfig):
    body = {"features": [{"properties": {"name": "Kamppi"}}]}

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = _patched_client(_response(json_data=body))
        mock_client_class.return_value = mock_client

        async with DigitransitClient(config) as client:
            data = await client.get_json(config.geocoding_search_url, {"text": "Kamppi"})

    assert data == body
    mock_client.request.assert_awaited_once_with(
        "GET", "https://example.com/search", params={"text": "Kamppi"}
    )


@pytest.mark.asyncio
async def test_client_sets_subscription_key_header(config: DigitransitConfig):
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value = _patched_client(_response(json_data={}))

        async with DigitransitClient(config) as client:
            await client.get_json("https://example.com/search")

        call_kwargs = mock_client_class.call_args.kwargs
        assert call_kwargs["headers"][API_KEY_HEADER] == "test_api_key"
        assert call_kwargs["timeout"] == config.http_timeout_seconds


@pytest.mark.asyncio
async def test_client_without_api_key_sends_no_header():
    config = DigitransitConfig(DIGITRANSIT_API_KEY=None)

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value = _patched_client(_response(json_data={}))

        async with DigitransitClient(config) as client:
            await client.get_json("https://example.com/search")

        assert API_KEY_HEADER not in mock_client_class.call_args.kwargs["headers"]


@pytest.mark.asyncio
async def test_client_requires_async_context(config: DigitransitConfig):
    client = DigitransitClient(config)

    with pytest.raises(RuntimeError, match="Client not initialized"):
        await client.get_json("https://example.com/search")


@pytest.mark.asyncio
async def test_post_graphql_returns_data(config: DigitransitConfig):
    body = {"data": {"stop": {"name": "Kamppi"}}}

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = _patched_client(_response(json_data=body))
        mock_client_class.return_value = mock_client

        async with DigitransitClient(config) as client:
            data = await client.post_graphql("query { stop }", {"id": "HSL:1"})

    assert data == {"stop": {"name": "Kamppi"}}
    mock_client.request.assert_awaited_once_with(
        "POST",
        "https://example.com/routing",
        json={"query": "query { stop }", "variables": {"id": "HSL:1"}},
    )


@pytest.mark.asyncio
async def test_post_graphql_errors_without_data(config: DigitransitConfig):
    body = {"errors": [{"message": "Unknown field"}]}

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value = _patched_client(_response(json_data=body))

        async with DigitransitClient(config) as client:
            with pytest.raises(UpstreamError, match="Unknown field") as exc_info:
                await client.post_graphql("query { bad }", {})

    assert exc_info.value.code == UPSTREAM_ERROR


@pytest.mark.asyncio
async def test_http_error_status_is_mapped(config: DigitransitConfig):
    response = _response(status_code=401, json_data={"message": "Invalid subscription key"})

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value = _patched_client(response)

        async with DigitransitClient(config) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.get_json("https://example.com/search")

    assert exc_info.value.code == AUTH_FAILED
    assert exc_info.value.provider_message == "Invalid subscription key"


@pytest.mark.asyncio
async def test_timeout_is_retryable_upstream_timeout(config: DigitransitConfig):
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value = _patched_client(side_effect=httpx.ReadTimeout("slow"))

        async with DigitransitClient(config) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.get_json("https://example.com/search")

    assert exc_info.value.code == UPSTREAM_TIMEOUT
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_transport_error_is_network_error(config: DigitransitConfig):
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value = _patched_client(side_effect=httpx.ConnectError("refused"))

        async with DigitransitClient(config) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.get_json("https://example.com/search")

    assert exc_info.value.code == NETWORK_ERROR


@pytest.mark.asyncio
async def test_invalid_json_raises_upstream_error(config: DigitransitConfig):
    response = _response()
    response.json.side_effect = ValueError("not json")

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client_class.return_value = _patched_client(response)

        async with DigitransitClient(config) as client:
            with pytest.raises(UpstreamError, match="invalid JSON"):
                await client.get_json("https://example.com/search")


@pytest.mark.asyncio
async def test_empty_bucket_refuses_without_request(config: DigitransitConfig):
    limiter = TokenBucket(capacity=0, refill_per_second=0)

    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = _patched_client(_response(json_data={}))
        mock_client_class.return_value = mock_client

        async with DigitransitClient(config, rate_limiter=limiter) as client:
            with pytest.raises(RateLimitedError):
                await client.get_json("https://example.com/search")

    mock_client.request.assert_not_called()


@pytest.mark.asyncio
async def test_client_closed_on_exit(config: DigitransitConfig):
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_client = _patched_client(_response(json_data={}))
        mock_client_class.return_value = mock_client

        async with DigitransitClient(config):
            pass

    mock_client.aclose.assert_awaited_once()
