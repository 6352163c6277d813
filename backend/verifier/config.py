"""
Verifier configuration.
Uses VB_VERIFIER_ prefix; source endpoints, cache TTL, timeouts and mock behaviour.
"""
from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.models.enums import SourceName

DEFAULT_REGISTRY_ENDPOINTS: dict[str, str] = {
    "US": "https://api.ssa.gov/death-verification",
    "UK": "https://api.gov.uk/death-registry",
    "CA": "https://api.canada.ca/death-registry",
    "AU": "https://api.australia.gov.au/death-registry",
}

DEFAULT_NEWS_ENDPOINTS: dict[str, str] = {
    "newsapi": "https://newsapi.org/v2/death-notices",
}

DEFAULT_OBITUARY_FEEDS: dict[str, str] = {
    "obituary": "https://www.obituaries.com/rss/obituaries",
    "legacy": "https://www.legacy.com/rss/obituaries",
}


class VerifierSettings(BaseSettings):
    """Verifier-specific settings; use get_settings() for environment and logging."""

    model_config = SettingsConfigDict(
        env_prefix="VB_VERIFIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Cache
    cache_ttl_s: float = Field(default=86400.0, description="Seconds a verification result stays valid")

    # Timeouts and retries
    source_timeout_s: float = Field(default=30.0, description="Upper bound on one source probe, retries included")
    http_timeout_s: float = Field(default=10.0, description="HTTP timeout per request")
    http_max_retries: int = Field(default=2, description="Attempts per request on transient failure")
    retry_backoff_s: float = Field(default=1.0, description="Base delay for linear backoff between attempts")

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=5, description="Consecutive failures before opening circuit")
    circuit_recovery_s: float = Field(default=120.0, description="Seconds before a trial request")

    # Sources
    ssdi_url: str = Field(default="https://api.ssdi-records.com/v1", description="SSDI lookup service base URL")
    ssdi_api_key: str = ""
    registry_endpoints: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_REGISTRY_ENDPOINTS))
    registry_api_key: str = ""
    news_endpoints: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_NEWS_ENDPOINTS))
    news_api_key: str = ""
    obituary_feeds: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_OBITUARY_FEEDS))
    news_window_days: int = Field(default=30, description="Days either side of a claimed date of death")

    # Aggregation
    source_priority: list[str] = Field(
        default=[SourceName.SSDI.value, SourceName.GOVERNMENT_REGISTRY.value, SourceName.NEWS.value],
        description="Tie-break order when picking the primary record",
    )

    # Mock path (dev/test/staging)
    mock_match_probability: float = Field(default=0.3, ge=0.0, le=1.0)
    mock_seed: Optional[int] = Field(default=None, description="Seed for reproducible mock matches")


def get_verifier_settings() -> VerifierSettings:
    """Load verifier settings."""
    return VerifierSettings()
