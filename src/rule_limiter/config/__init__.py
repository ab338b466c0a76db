"""Configuration for the rate limiter."""

from .rate_limits import RateConfig, RateLimitConfig
from .settings import (
    LogSettings,
    RateLimitSettings,
    RedisSettings,
    Settings,
    StoreBackend,
    StoreSettings,
    get_settings,
)

__all__ = [
    "RateConfig",
    "RateLimitConfig",
    "LogSettings",
    "RateLimitSettings",
    "RedisSettings",
    "Settings",
    "StoreBackend",
    "StoreSettings",
    "get_settings",
]
