"""
SOSX Configuration Management

API keys and provider endpoints are read from the environment (prefix SOSX_)
or from a local .env file. See .env.example for placeholder values.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_dir() -> Path:
    return Path.home() / ".sosx"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # === Provider Chain ===
    primary_provider: str = Field(
        default="exchangerate-host",
        description="Provider tried first for current rates"
    )
    fallback_providers: list[str] = Field(
        default_factory=lambda: ["fixer", "currencyapi"],
        description="Providers tried in priority order when the primary fails"
    )

    # === External Provider Configuration ===
    exchangeratehost_base_url: str = Field(
        default="https://api.exchangerate.host",
        description="exchangerate.host API base URL (primary provider)"
    )
    fixer_base_url: str = Field(
        default="https://api.fixer.io/v1",
        description="Fixer API base URL"
    )
    fixer_api_key: str = Field(default="", description="Fixer API key")
    currencyapi_base_url: str = Field(
        default="https://api.currencyapi.com/v3",
        description="currencyapi.com API base URL"
    )
    currencyapi_api_key: str = Field(default="", description="currencyapi.com API key")

    # === Retry Policy ===
    provider_timeout_seconds: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=3, ge=1)

    # === Cache Configuration ===
    cache_ttl_hours: float = Field(default=6.0, gt=0)
    cache_path: Path | None = Field(
        default_factory=lambda: _default_cache_dir() / "cache.json",
        description="Durable current-rate cache file (None = in-process only)"
    )
    historical_cache_path: Path | None = Field(
        default_factory=lambda: _default_cache_dir() / "historical-cache.json",
        description="Durable historical cache file (None = in-process only)"
    )
    historical_retention_days: int = Field(default=90, ge=1)
    alerts_path: Path | None = Field(
        default_factory=lambda: _default_cache_dir() / "alerts.json",
        description="Rate alert rules file (None = in-process only)"
    )
    offline: bool = Field(default=False, description="Never touch the network")

    # === API Configuration ===
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)

    # === Scheduler Configuration ===
    scheduler_enabled: bool = Field(default=True)
    refresh_interval_minutes: int = Field(
        default=360,
        ge=1,
        description="How often the background job refreshes current rates"
    )
    alert_check_interval_minutes: int = Field(
        default=5,
        ge=1,
        description="How often the background job checks rate alerts"
    )

    # === Logging ===
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="SOSX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
