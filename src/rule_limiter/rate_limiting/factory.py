"""
Factory for wiring a rate limiter from settings.

Selects the bucket store backend, builds the token bucket store with its retry
budget and returns a ready engine.
"""

import time
from collections.abc import Callable

import structlog

from ..config.rate_limits import RateLimitConfig
from ..config.settings import Settings, StoreBackend, get_settings
from ..domain.models import RateLimiterConfiguration
from ..observability.metrics import RateLimiterMetrics
from .limiter import RateLimiterEngine
from .notifiers import LoggingRateExceededNotifier, RateExceededNotifier
from .storage import BucketStore, InMemoryBucketStore, RedisBucketStore
from .token_bucket import TokenBucketStore

logger = structlog.get_logger()


def create_bucket_store(settings: Settings | None = None) -> BucketStore:
    """Create the bucket store backend selected by ``STORE_BACKEND``."""
    settings = settings or get_settings()
    backend = settings.store.backend

    if backend == StoreBackend.REDIS:
        logger.info("Using Redis bucket store", url=settings.redis.url)
        return RedisBucketStore.from_settings(
            settings.redis,
            key_prefix=settings.store.key_prefix,
            ttl=settings.store.state_ttl_seconds,
        )

    logger.info("Using in-memory bucket store")
    return InMemoryBucketStore()


def create_token_bucket_store(
    settings: Settings | None = None,
    backend: BucketStore | None = None,
    clock: Callable[[], float] = time.time,
    metrics: RateLimiterMetrics | None = None,
) -> TokenBucketStore:
    settings = settings or get_settings()
    return TokenBucketStore(
        backend or create_bucket_store(settings),
        retry_config=settings.store.get_retry_config(),
        clock=clock,
        metrics=metrics,
    )


def create_rate_limiter(
    config: RateLimiterConfiguration | RateLimitConfig | None = None,
    notifier: RateExceededNotifier | None = None,
    store: TokenBucketStore | None = None,
    settings: Settings | None = None,
    name: str | None = None,
    metrics: RateLimiterMetrics | None = None,
) -> RateLimiterEngine:
    """Create a rate limiter engine.

    Args:
        config: Rules and logic; read from ``RATE_LIMIT_*`` settings if omitted
        notifier: Exceeded notifier, defaults to logging
        store: Token bucket store, built from ``STORE_*`` settings if omitted
        settings: Settings to use instead of the cached environment settings
        name: Namespace for the limiter's buckets
        metrics: Optional metrics collector

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    settings = settings or get_settings()

    if config is None:
        config = settings.rate_limit.to_rate_limit_config()
    if isinstance(config, RateLimitConfig):
        config = config.to_configuration()

    return RateLimiterEngine(
        config,
        store or create_token_bucket_store(settings, metrics=metrics),
        notifier or LoggingRateExceededNotifier(),
        name=name,
        metrics=metrics,
    )
