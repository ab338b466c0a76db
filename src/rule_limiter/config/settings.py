"""
Configuration management for the rate limiter.

Settings are read from the environment (and an optional ``.env`` file) with
pydantic-settings, one prefix per concern.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.exceptions import ConfigurationError
from ..retry.config import RetryConfig
from .rate_limits import RateConfig, RateLimitConfig


class StoreBackend(str, Enum):
    """Bucket store backends."""

    MEMORY = "memory"
    REDIS = "redis"


class RedisSettings(BaseSettings):
    """Redis configuration."""

    model_config = SettingsConfigDict(
        env_prefix="REDIS_", env_file=".env", extra="ignore"
    )

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str | None = None

    # Connection pool settings
    max_connections: int = 20
    retry_on_timeout: bool = True
    health_check_interval: int = 30

    @property
    def url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class StoreSettings(BaseSettings):
    """Bucket store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORE_", env_file=".env", extra="ignore"
    )

    backend: StoreBackend = StoreBackend.MEMORY
    key_prefix: str = "rate_limit"
    state_ttl_seconds: int | None = Field(default=None, ge=1)

    # Compare-and-set retry budget
    max_attempts: int = Field(default=10, ge=1, le=1000)
    base_delay: float = Field(default=0.002, ge=0.0, le=10.0)
    max_delay: float = Field(default=0.1, ge=0.0, le=60.0)
    jitter: bool = True
    operation_timeout: float | None = Field(default=1.0, gt=0.0)

    def get_retry_config(self) -> RetryConfig:
        """Get the compare-and-set retry configuration.

        Raises:
            ConfigurationError: If the fields do not form a valid budget
        """
        try:
            return RetryConfig(
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                jitter=self.jitter,
                operation_timeout=self.operation_timeout,
            )
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid store retry settings: {e}", "store", self.model_dump()
            ) from e


class RateLimitSettings(BaseSettings):
    """Default limiter configuration.

    ``RATE_LIMIT_LIMITS`` is a JSON list such as
    ``[{"limit": 100, "duration": 1, "time_unit": "minutes"}]``.
    """

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_", env_file=".env", extra="ignore"
    )

    logic: str = "any"
    limits: list[RateConfig] = Field(default_factory=list)

    def to_rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig.from_dict(
            {
                "logic": self.logic,
                "limits": [rate.model_dump() for rate in self.limits],
            }
        )


class LogSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_", env_file=".env", extra="ignore"
    )

    level: str = "INFO"
    format: str = "json"


class Settings(BaseSettings):
    """Aggregate settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    store: StoreSettings = Field(default_factory=StoreSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    log: LogSettings = Field(default_factory=LogSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
