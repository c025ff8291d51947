from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DigitransitConfig(BaseSettings):
    """Configuration for Digitransit API access and the request-reliability layer.

    Automatically loads from environment variables and .env file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    api_key: str | None = Field(default=None, alias="DIGITRANSIT_API_KEY")
    geocoding_search_url: str = "https://api.digitransit.fi/geocoding/v1/search"
    geocoding_reverse_url: str = "https://api.digitransit.fi/geocoding/v1/reverse"
    routing_url: str = Field(
        default="https://api.digitransit.fi/routing/v2/finland/gtfs/v1",
        alias="DIGITRANSIT_ROUTING_URL",
    )
    http_timeout_seconds: float = Field(default=15.0, alias="DIGITRANSIT_HTTP_TIMEOUT")

    # Request cache
    cache_ttl_seconds: float = Field(default=600.0, alias="DIGITRANSIT_CACHE_TTL")
    cache_max_size: int = Field(default=500, alias="DIGITRANSIT_CACHE_MAX_SIZE")
    recent_results_max_size: int = 100
    recent_results_ttl_seconds: float = 5.0
    reuse_window_seconds: float = 0.5
    inflight_timeout_seconds: float | None = Field(default=30.0, alias="DIGITRANSIT_INFLIGHT_TIMEOUT")

    # Token bucket
    rate_limit_capacity: float = Field(default=30, alias="DIGITRANSIT_RATE_LIMIT_CAPACITY")
    rate_limit_refill_per_second: float = Field(default=10, alias="DIGITRANSIT_RATE_LIMIT_REFILL")

    # Retry policy
    retry_max_attempts: int = Field(default=3, alias="DIGITRANSIT_RETRY_MAX_ATTEMPTS")
    retry_base_ms: float = 200
    retry_max_backoff_ms: float = 10_000
    retry_jitter_min: float = 0.5
    retry_jitter_max: float = 1.0


@lru_cache
def get_config() -> DigitransitConfig:
    """Get Digitransit configuration (cached singleton).

    Returns:
        DigitransitConfig with values from .env file or environment variables.
    """
    return DigitransitConfig()
