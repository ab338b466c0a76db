"""Domain layer for the rate limiter.

Value types shared by the store, the engine and the configuration layer.
"""

from .exceptions import (
    BucketStoreError,
    ConfigurationError,
    ErrorCode,
    RateLimiterException,
    RateLimitExceededError,
    StoreUnavailableError,
)
from .models import (
    BucketState,
    CombinationLogic,
    NamespacedKey,
    RateExceededEvent,
    RateLimiterConfiguration,
    RateLimitOutcome,
    RateRule,
    TimeUnit,
)

__all__ = [
    # Models
    "BucketState",
    "CombinationLogic",
    "NamespacedKey",
    "RateExceededEvent",
    "RateLimitOutcome",
    "RateLimiterConfiguration",
    "RateRule",
    "TimeUnit",
    # Exceptions
    "BucketStoreError",
    "ConfigurationError",
    "ErrorCode",
    "RateLimitExceededError",
    "RateLimiterException",
    "StoreUnavailableError",
]
