"""Multi-rule rate limiter.

Evaluates several independent token-bucket rules against a subject key and
combines them with ALL/ANY logic. Bucket state lives in a compare-and-set
store, in process or in Redis, so limits hold across concurrent callers and
across nodes.
"""

from .config import RateConfig, RateLimitConfig
from .domain import (
    BucketState,
    BucketStoreError,
    CombinationLogic,
    ConfigurationError,
    ErrorCode,
    RateExceededEvent,
    RateLimiterConfiguration,
    RateLimiterException,
    RateLimitExceededError,
    RateLimitOutcome,
    RateRule,
    StoreUnavailableError,
    TimeUnit,
)
from .rate_limiting import (
    BucketStore,
    CompositeRateExceededNotifier,
    InMemoryBucketStore,
    LoggingRateExceededNotifier,
    RateExceededNotifier,
    RateLimiterEngine,
    RateLimiterManager,
    RedisBucketStore,
    TokenBucketStore,
    create_rate_limiter,
)

__version__ = "0.1.0"

__all__ = [
    "BucketState",
    "BucketStore",
    "BucketStoreError",
    "CombinationLogic",
    "CompositeRateExceededNotifier",
    "ConfigurationError",
    "ErrorCode",
    "InMemoryBucketStore",
    "LoggingRateExceededNotifier",
    "RateConfig",
    "RateExceededEvent",
    "RateExceededNotifier",
    "RateLimitConfig",
    "RateLimitExceededError",
    "RateLimitOutcome",
    "RateLimiterConfiguration",
    "RateLimiterEngine",
    "RateLimiterException",
    "RateLimiterManager",
    "RateRule",
    "RedisBucketStore",
    "StoreUnavailableError",
    "TimeUnit",
    "TokenBucketStore",
    "create_rate_limiter",
]
