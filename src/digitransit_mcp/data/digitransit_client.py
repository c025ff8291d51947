import logging
from typing import Any

import httpx

from digitransit_mcp.data.config import DigitransitConfig
from digitransit_mcp.data.errors import (
    NETWORK_ERROR,
    UPSTREAM_ERROR,
    UPSTREAM_TIMEOUT,
    RateLimitedError,
    UpstreamError,
    map_http_error,
)
from digitransit_mcp.data.rate_limiter import TokenBucket

logger = logging.getLogger(__name__)

API_KEY_HEADER = "digitransit-subscription-key"


class DigitransitClient:
    """Async HTTP client for the Digitransit geocoding and routing APIs.

    Every request is one attempt: the token bucket (if any) is consulted first,
    and failures are raised as UpstreamError for the retry policy to classify.

    Usage:
        async with DigitransitClient(config, rate_limiter=limiter) as client:
            data = await client.get_json(config.geocoding_search_url, {"text": "Kamppi"})
    """

    def __init__(self, config: DigitransitConfig, rate_limiter: TokenBucket | None = None):
        """Initialize the client.

        Args:
            config: Configuration with API key, URLs and timeout.
            rate_limiter: Optional token bucket gating each request.
        """
        self._config = config
        self._rate_limiter = rate_limiter
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "DigitransitClient":
        """Enter async context - create HTTP client."""
        headers = {}
        if self._config.api_key:
            headers[API_KEY_HEADER] = self._config.api_key
        self._client = httpx.AsyncClient(headers=headers, timeout=self._config.http_timeout_seconds)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context - close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET a JSON document.

        Raises:
            RuntimeError: If client not initialized.
            RateLimitedError: If the token bucket refuses the request.
            UpstreamError: If the request fails or returns an error status.
        """
        return await self._request("GET", url, params=params)

    async def post_graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL query against the routing API and return its ``data``.

        Raises:
            UpstreamError: On transport/HTTP failure, or when the response
                carries errors and no data.
        """
        body = await self._request(
            "POST",
            self._config.routing_url,
            json={"query": query, "variables": variables},
        )

        data = body.get("data") if isinstance(body, dict) else None
        errors = body.get("errors") if isinstance(body, dict) else None
        if data is None:
            message = "routing query returned no data"
            if errors:
                message = str(errors[0].get("message", message))
            raise UpstreamError(UPSTREAM_ERROR, message, provider_message=message)
        if errors:
            logger.warning(f"Routing query returned partial data with {len(errors)} errors")
        return data

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        if not self._client:
            raise RuntimeError("Client not initialized - use 'async with'")

        if self._rate_limiter is not None and not self._rate_limiter.try_acquire():
            raise RateLimitedError("local rate limit reached")

        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise UpstreamError(UPSTREAM_TIMEOUT, "timeout", retryable=True) from e
        except httpx.TransportError as e:
            raise UpstreamError(NETWORK_ERROR, str(e) or "network error", retryable=True) from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise map_http_error(response.status_code, dict(response.headers), body)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(UPSTREAM_ERROR, "invalid JSON from upstream", status=response.status_code) from e
