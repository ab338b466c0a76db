"""Multi-rule rate limiting.

Token buckets per (subject key, rule), updated atomically through a
compare-and-set store, combined per rule set with ALL/ANY logic.
"""

from .factory import create_bucket_store, create_rate_limiter, create_token_bucket_store
from .limiter import RateLimiterEngine
from .manager import RateLimiterManager
from .notifiers import (
    CompositeRateExceededNotifier,
    LoggingRateExceededNotifier,
    RateExceededNotifier,
)
from .storage import BucketStore, InMemoryBucketStore, RedisBucketStore
from .token_bucket import TokenBucketStore

__all__ = [
    "BucketStore",
    "InMemoryBucketStore",
    "RedisBucketStore",
    "TokenBucketStore",
    "RateLimiterEngine",
    "RateLimiterManager",
    "RateExceededNotifier",
    "LoggingRateExceededNotifier",
    "CompositeRateExceededNotifier",
    "create_bucket_store",
    "create_token_bucket_store",
    "create_rate_limiter",
]
