"""Token bucket consumption over a compare-and-set bucket store."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, TypeVar

import structlog

from ..domain.exceptions import StoreUnavailableError
from ..domain.models import BucketState, RateRule
from ..observability.metrics import RateLimiterMetrics
from ..retry import RETRYABLE_ERRORS, CompareAndSetConflict, RetryConfig, cas_retrying
from .storage import BucketStore

logger = structlog.get_logger()

T = TypeVar("T")


class TokenBucketStore:
    """Atomic token consumption for (subject key, rule index) buckets.

    Each consume reads the bucket, refills it for the time elapsed since its
    last refill, deducts tokens if enough are available and writes it back with
    compare-and-set. A lost race restarts from the read, so concurrent callers
    on one bucket behave as if they ran one after another.
    """

    def __init__(
        self,
        backend: BucketStore,
        retry_config: RetryConfig | None = None,
        clock: Callable[[], float] = time.time,
        metrics: RateLimiterMetrics | None = None,
    ):
        """Initialize the token bucket store.

        Args:
            backend: Storage holding the bucket states
            retry_config: Compare-and-set retry budget
            clock: Returns the current time in seconds since the epoch
            metrics: Optional metrics collector
        """
        self.backend = backend
        self.retry_config = retry_config or RetryConfig()
        self.clock = clock
        self.metrics = metrics
        self.logger = logger.bind(backend=type(backend).__name__)

    async def try_consume(
        self,
        subject_key: Hashable,
        rule_index: int,
        rule: RateRule,
        tokens: int = 1,
    ) -> bool:
        """Try to take ``tokens`` from the subject's bucket for one rule.

        Args:
            subject_key: Identity being limited
            rule_index: Which rule's bucket to use
            rule: Rule used to create and refill the bucket
            tokens: Number of tokens to consume

        Returns:
            True if the tokens were consumed, False if the bucket is short

        Raises:
            ValueError: If tokens is not a positive integer
            StoreUnavailableError: If the store could not be read or updated
                within the retry budget
        """
        if isinstance(tokens, bool) or not isinstance(tokens, int) or tokens <= 0:
            raise ValueError(f"tokens must be a positive integer, got {tokens!r}")

        attempts = 0
        try:
            async for attempt in cas_retrying(self.retry_config):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    consumed = await self._consume_once(
                        subject_key, rule_index, rule, tokens
                    )
        except RETRYABLE_ERRORS as e:
            if self.metrics:
                self.metrics.record_store_failure()
            self.logger.error(
                "Bucket store unavailable",
                subject_key=str(subject_key),
                rule_index=rule_index,
                attempts=attempts,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise StoreUnavailableError(
                subject_key, rule_index, attempts, str(e) or type(e).__name__
            ) from e

        return consumed

    async def get_available_tokens(
        self, subject_key: Hashable, rule_index: int, rule: RateRule
    ) -> float:
        """Tokens the bucket would hold now, without consuming any.

        An untouched bucket reports the rule's full capacity.
        """
        now = self.clock()
        state = await self._call(self.backend.get(subject_key, rule_index))
        if state is None:
            return float(rule.capacity)
        return state.replenished(rule, now)

    async def _consume_once(
        self,
        subject_key: Hashable,
        rule_index: int,
        rule: RateRule,
        tokens: int,
    ) -> bool:
        current = await self._call(self.backend.get(subject_key, rule_index))
        now = self.clock()

        bucket = current if current is not None else BucketState.full(rule, now)
        consumed, new_state = bucket.consume(rule, now, tokens)

        written = await self._call(
            self.backend.compare_and_set(subject_key, rule_index, current, new_state)
        )
        if not written:
            if self.metrics:
                self.metrics.record_cas_conflict()
            self.logger.debug(
                "Bucket changed concurrently, retrying",
                subject_key=str(subject_key),
                rule_index=rule_index,
            )
            raise CompareAndSetConflict(
                f"Bucket {subject_key!r}/{rule_index} changed concurrently"
            )
        return consumed

    async def _call(self, operation: Awaitable[T]) -> T:
        """Await a backend operation within the configured timeout."""
        timeout = self.retry_config.operation_timeout
        if timeout is None:
            return await operation
        return await asyncio.wait_for(operation, timeout=timeout)

    def get_stats(self) -> dict[str, Any]:
        return {
            "backend": type(self.backend).__name__,
            "max_attempts": self.retry_config.max_attempts,
            "operation_timeout": self.retry_config.operation_timeout,
        }
