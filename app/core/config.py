"""
Configuration module with strict validation.

Key principles:
- APP STARTUP does NOT require any provider API key
- Optional providers (NewsAPI, OpenCorporates) degrade when their key is missing
- All cache TTLs and rate limits are configurable
- Safe defaults for all optional settings
"""
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with validation.

    Loads from environment variables and .env file.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./investor_research.db",
        description="SQLAlchemy connection URL"
    )

    # Redis (cache backend)
    redis_host: str = Field(default="localhost", description="Redis host")
    redis_port: int = Field(default=6379, ge=1, le=65535, description="Redis port")

    # Inbound API throttling
    rate_limit_ttl: int = Field(
        default=60,
        ge=1,
        description="Window in seconds for inbound request throttling"
    )
    rate_limit_max: int = Field(
        default=100,
        ge=1,
        description="Maximum inbound requests per client within the window"
    )

    # Cache TTLs (seconds)
    default_cache_ttl_seconds: int = Field(
        default=604800,
        ge=1,
        description="Fallback TTL for cached provider responses (7 days)"
    )
    market_data_ttl_seconds: int = Field(
        default=3600,
        ge=1,
        description="TTL for volatile market data such as quotes"
    )
    news_ttl_seconds: int = Field(
        default=86400,
        ge=1,
        description="TTL for news search results"
    )

    # Provider credentials
    news_api_key: Optional[str] = Field(
        default=None,
        description="NewsAPI key - news lookups return nothing without it"
    )
    opencorporates_api_key: Optional[str] = Field(
        default=None,
        description="OpenCorporates token - raises the rate budget from 5 to 60 requests/minute"
    )
    sec_edgar_user_agent: str = Field(
        default="InvestorResearch contact@example.com",
        description="Descriptive User-Agent required by SEC EDGAR"
    )

    # Worker
    worker_poll_interval: float = Field(
        default=2.0,
        gt=0,
        description="Seconds between queue polls when idle"
    )

    # HTTP surface
    cors_origins: List[str] = Field(
        default=["*"],
        description="Allowed CORS origins for the browser client"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}"

    def has_news_api_key(self) -> bool:
        return bool(self.news_api_key)

    def has_opencorporates_api_key(self) -> bool:
        return bool(self.opencorporates_api_key)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the global settings instance.

    This pattern allows:
    - Easy testing (can reset settings between tests)
    - Lazy loading (only loads when first accessed)
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """
    Reset the global settings instance.

    Useful for testing to ensure clean state between tests.
    """
    global _settings
    _settings = None
