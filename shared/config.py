"""
Shared configuration management for the resource cache.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RESOURCE_CACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class CacheSettings(BaseConfig):
    """Settings for the resource caches and their REST loaders."""

    # Resource API
    api_base_url: str = Field(default="http://localhost:3000")
    api_token: Optional[str] = Field(default=None)
    request_timeout: float = Field(default=10.0, gt=0)

    # Cache behaviour
    share_inflight: bool = Field(default=True)
    discard_stale: bool = Field(default=False)

    # Loader resilience
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=0.5, ge=0)
    breaker_failure_threshold: int = Field(default=5, ge=1)
    breaker_recovery_timeout: float = Field(default=30.0, ge=0)


@lru_cache
def get_settings() -> CacheSettings:
    """Get the process-wide cache settings."""
    return CacheSettings()
