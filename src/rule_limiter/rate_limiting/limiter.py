"""Multi-rule rate limiter engine."""

import asyncio
import time
from collections.abc import Hashable, Sequence
from typing import Any

import structlog

from ..domain.exceptions import ConfigurationError, RateLimitExceededError
from ..domain.models import (
    CombinationLogic,
    NamespacedKey,
    RateExceededEvent,
    RateLimiterConfiguration,
    RateLimitOutcome,
    RateRule,
)
from ..observability.metrics import RateLimiterMetrics
from .notifiers import RateExceededNotifier, notify
from .token_bucket import TokenBucketStore

logger = structlog.get_logger()


class RateLimiterEngine:
    """Evaluates every rule of a configuration against a subject key.

    The engine keeps no per-subject state: buckets live in the token bucket
    store, so one engine can serve any number of concurrent callers.
    """

    def __init__(
        self,
        config: RateLimiterConfiguration,
        store: TokenBucketStore,
        notifier: RateExceededNotifier,
        name: str | None = None,
        metrics: RateLimiterMetrics | None = None,
    ):
        """Initialize the engine.

        Args:
            config: Rules and combination logic
            store: Token bucket store holding the buckets
            notifier: Receives an event for every exceeded evaluation
            name: Namespace for this limiter's buckets in a shared store
            metrics: Optional metrics collector

        Raises:
            ConfigurationError: If the configuration or notifier is missing
        """
        if not isinstance(config, RateLimiterConfiguration):
            raise ConfigurationError(
                "A RateLimiterConfiguration is required", "config", config
            )
        if notifier is None:
            raise ConfigurationError("A rate exceeded notifier is required", "notifier")
        self.config = config
        self.store = store
        self.notifier = notifier
        self.name = name
        self.metrics = metrics
        self.logger = logger.bind(limiter=name) if name else logger

        self.logger.info(
            "Created rate limiter",
            logic=config.logic.value,
            rules=[str(rule) for rule in config.rules],
        )

    @property
    def rules(self) -> tuple[RateRule, ...]:
        return self.config.rules

    @property
    def logic(self) -> CombinationLogic:
        return self.config.logic

    async def evaluate(self, subject_key: Hashable) -> RateLimitOutcome:
        """Consume one token from every rule's bucket and combine the results.

        Every rule is consumed from, even once another rule has failed.

        Args:
            subject_key: Identity being limited (client id, token, IP)

        Returns:
            The outcome; the notifier has already run if it is exceeded

        Raises:
            StoreUnavailableError: If any bucket could not be updated. No
                partial outcome is produced.
        """
        started = time.perf_counter()
        store_key = self._store_key(subject_key)

        results = await asyncio.gather(
            *(
                self.store.try_consume(store_key, index, rule, 1)
                for index, rule in enumerate(self.config.rules)
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        per_rule_results = tuple(bool(result) for result in results)
        first_exceeded_rule = next(
            (
                rule
                for rule, passed in zip(self.config.rules, per_rule_results)
                if not passed
            ),
            None,
        )
        outcome = RateLimitOutcome(
            exceeded=self._is_exceeded(per_rule_results),
            first_exceeded_rule=first_exceeded_rule,
            per_rule_results=per_rule_results,
        )

        self.logger.debug(
            "Evaluated rate limit",
            subject_key=str(subject_key),
            exceeded=outcome.exceeded,
            per_rule_results=list(per_rule_results),
        )
        if self.metrics:
            self.metrics.record_evaluation(
                outcome.exceeded, per_rule_results, time.perf_counter() - started
            )

        if outcome.exceeded:
            await notify(
                self.notifier,
                RateExceededEvent(subject_key=subject_key, outcome=outcome, source=self),
            )

        return outcome

    async def enforce(self, subject_key: Hashable) -> RateLimitOutcome:
        """Evaluate and raise if the subject is over its limit.

        Raises:
            RateLimitExceededError: If the outcome is exceeded
            StoreUnavailableError: If the limiter could not decide
        """
        outcome = await self.evaluate(subject_key)
        if outcome.exceeded:
            raise RateLimitExceededError(subject_key, outcome)
        return outcome

    def _is_exceeded(self, per_rule_results: Sequence[bool]) -> bool:
        failures = sum(1 for passed in per_rule_results if not passed)
        if self.config.logic is CombinationLogic.ALL:
            return failures == len(per_rule_results)
        return failures > 0

    def _store_key(self, subject_key: Hashable) -> Hashable:
        if self.name is None:
            return subject_key
        return NamespacedKey(self.name, subject_key)

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "logic": self.config.logic.value,
            "rules": [str(rule) for rule in self.config.rules],
            "store": self.store.get_stats(),
        }

    def __repr__(self) -> str:
        return (
            f"RateLimiterEngine(name={self.name!r}, logic={self.config.logic.value}, "
            f"rules={[str(rule) for rule in self.config.rules]})"
        )
