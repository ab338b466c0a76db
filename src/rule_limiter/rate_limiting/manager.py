"""Rate limiter manager for multiple named limiters."""

from collections.abc import Hashable
from typing import Any

import structlog

from ..domain.exceptions import ConfigurationError
from ..domain.models import RateLimiterConfiguration, RateLimitOutcome
from ..observability.metrics import RateLimiterMetrics
from .limiter import RateLimiterEngine
from .notifiers import LoggingRateExceededNotifier, RateExceededNotifier
from .token_bucket import TokenBucketStore

logger = structlog.get_logger()


class RateLimiterManager:
    """Manages named limiters sharing one token bucket store.

    Each limiter's buckets are namespaced by its name, so two limiters never
    draw from the same bucket even for the same subject key.
    """

    def __init__(
        self,
        store: TokenBucketStore,
        default_notifier: RateExceededNotifier | None = None,
        metrics: RateLimiterMetrics | None = None,
    ) -> None:
        """Initialize rate limiter manager.

        Args:
            store: Token bucket store shared by every limiter
            default_notifier: Notifier for limiters added without one
            metrics: Optional metrics collector shared by every limiter
        """
        self.store = store
        self.default_notifier = default_notifier or LoggingRateExceededNotifier()
        self.metrics = metrics
        self.limiters: dict[str, RateLimiterEngine] = {}

    def add_limiter(
        self,
        name: str,
        config: RateLimiterConfiguration,
        notifier: RateExceededNotifier | None = None,
    ) -> RateLimiterEngine:
        """Add a named limiter, replacing any limiter with the same name.

        Args:
            name: Name of the limiter
            config: Rules and combination logic
            notifier: Notifier for this limiter, defaults to the manager's

        Returns:
            Rate limiter engine
        """
        if not name:
            raise ConfigurationError("Limiter name must not be empty", "name", name)

        limiter = RateLimiterEngine(
            config,
            self.store,
            notifier or self.default_notifier,
            name=name,
            metrics=self.metrics,
        )
        self.limiters[name] = limiter

        logger.info(
            "Added rate limiter",
            name=name,
            logic=config.logic.value,
            rules=len(config.rules),
        )

        return limiter

    def get_limiter(self, name: str) -> RateLimiterEngine | None:
        return self.limiters.get(name)

    async def evaluate(self, name: str, subject_key: Hashable) -> RateLimitOutcome:
        """Evaluate a subject against a named limiter.

        Raises:
            ConfigurationError: If no limiter has that name
            StoreUnavailableError: If the limiter could not decide
        """
        limiter = self.get_limiter(name)
        if limiter is None:
            raise ConfigurationError(f"No rate limiter named {name!r}", "name", name)
        return await limiter.evaluate(subject_key)

    def remove_limiter(self, name: str) -> None:
        """Remove a named limiter."""
        if name in self.limiters:
            del self.limiters[name]
            logger.info("Removed rate limiter", name=name)
        else:
            logger.warning("Rate limiter not found", name=name)

    def get_all_limiters(self) -> dict[str, RateLimiterEngine]:
        return self.limiters.copy()

    def get_stats(self) -> dict[str, Any]:
        """Get rate limiter manager statistics.

        Returns:
            Statistics dictionary
        """
        return {
            "total_limiters": len(self.limiters),
            "limiters": {
                name: limiter.get_stats() for name, limiter in self.limiters.items()
            },
        }
