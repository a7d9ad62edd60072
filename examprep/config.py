"""
Application configuration using Pydantic settings.

Usage:
    from examprep.config import get_settings
    settings = get_settings()
"""

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Unified application settings loaded from environment variables and .env file.

    Caching is optional: when neither UPSTASH_REDIS_URL nor REDIS_URL is set the
    service runs uncached and every cache lookup is a miss.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # App settings
    app_name: str = "Exam Prep API"
    env: str = Field(default="development", validation_alias="ENV")
    debug: bool = Field(default=False, validation_alias="DEBUG")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Redis
    redis_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("UPSTASH_REDIS_URL", "REDIS_URL"),
    )
    redis_connect_timeout: float = Field(default=10.0, validation_alias="REDIS_CONNECT_TIMEOUT")
    redis_command_timeout: float = Field(default=5.0, validation_alias="REDIS_COMMAND_TIMEOUT")
    redis_max_retries: int = Field(default=3, validation_alias="REDIS_MAX_RETRIES")
    redis_retry_step: float = Field(default=0.5, validation_alias="REDIS_RETRY_STEP")
    redis_retry_cap: float = Field(default=2.0, validation_alias="REDIS_RETRY_CAP")
    # Upstash terminates TLS with certificates that do not always verify
    redis_tls_verify: bool = Field(default=False, validation_alias="REDIS_TLS_VERIFY")
    # Minimum seconds between on-demand reconnects after a lost connection
    redis_reconnect_interval: float = Field(default=5.0, validation_alias="REDIS_RECONNECT_INTERVAL")

    # Cache operation budgets (seconds)
    cache_op_timeout: float = Field(default=0.5, validation_alias="CACHE_OP_TIMEOUT")
    cache_bulk_timeout: float = Field(default=1.0, validation_alias="CACHE_BULK_TIMEOUT")

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True, validation_alias="RATE_LIMIT_ENABLED")

    # Admin
    admin_token: Optional[str] = Field(default=None, validation_alias="ADMIN_TOKEN")

    @field_validator("redis_url")
    @classmethod
    def blank_url_disables_cache(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty REDIS URL the same as an unset one."""
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("cache_op_timeout", "cache_bulk_timeout", "redis_connect_timeout")
    @classmethod
    def validate_positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @property
    def cache_enabled(self) -> bool:
        """Whether a Redis URL is configured."""
        return self.redis_url is not None

    @property
    def is_production(self) -> bool:
        return self.env.lower() in ("production", "prod")


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


__all__ = ["Settings", "get_settings"]
