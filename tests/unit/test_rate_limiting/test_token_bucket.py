"""Tests for token bucket consumption."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from rule_limiter.domain.exceptions import BucketStoreError, StoreUnavailableError
from rule_limiter.domain.models import BucketState, RateRule
from rule_limiter.observability.metrics import RateLimiterMetrics
from rule_limiter.rate_limiting.storage import BucketStore
from rule_limiter.rate_limiting.token_bucket import TokenBucketStore
from rule_limiter.retry import RetryConfig


@pytest.fixture
def rule():
    """Create a rule of 4 tokens per 2 seconds (one token every 0.5s)."""
    return RateRule(capacity=4, period=timedelta(seconds=2))


class TestTokenBucketConsumption:
    """Test the refill-on-access algorithm."""

    @pytest.mark.asyncio
    async def test_capacity_then_refusal(self, token_store, rule):
        """Test C consumptions succeed and the next one fails at the same instant."""
        results = [await token_store.try_consume("client", 0, rule) for _ in range(5)]

        assert results == [True, True, True, True, False]

    @pytest.mark.asyncio
    async def test_bucket_created_lazily_at_capacity(self, token_store, backend, rule, clock):
        """Test the first consume creates the bucket from the rule."""
        assert await backend.get("client", 0) is None

        await token_store.try_consume("client", 0, rule)

        assert await backend.get("client", 0) == BucketState(
            available_tokens=3.0, last_refill_time=clock.now
        )

    @pytest.mark.asyncio
    async def test_one_token_returns_after_period_over_capacity(
        self, token_store, rule, clock
    ):
        """Test a token replenishes P/C after a refusal."""
        for _ in range(4):
            assert await token_store.try_consume("client", 0, rule)
        assert not await token_store.try_consume("client", 0, rule)

        clock.advance(rule.seconds_per_token)

        assert await token_store.try_consume("client", 0, rule)
        assert not await token_store.try_consume("client", 0, rule)

    @pytest.mark.asyncio
    async def test_refill_saturates_at_capacity(self, token_store, rule, clock):
        """Test long idle periods never exceed capacity."""
        await token_store.try_consume("client", 0, rule)
        clock.advance(3600 * 24)

        assert await token_store.get_available_tokens("client", 0, rule) == 4.0
        results = [await token_store.try_consume("client", 0, rule) for _ in range(5)]
        assert results.count(True) == 4

    @pytest.mark.asyncio
    async def test_failed_consumption_does_not_deduct(self, token_store, backend, rule):
        """Test a refusal leaves the token count untouched."""
        for _ in range(3):
            await token_store.try_consume("client", 0, rule)

        assert not await token_store.try_consume("client", 0, rule, tokens=2)

        state = await backend.get("client", 0)
        assert state.available_tokens == 1.0
        assert await token_store.try_consume("client", 0, rule, tokens=1)

    @pytest.mark.asyncio
    async def test_more_tokens_than_capacity_never_succeeds(self, token_store, rule):
        """Test a request larger than the bucket is refused."""
        assert not await token_store.try_consume("client", 0, rule, tokens=5)
        assert await token_store.get_available_tokens("client", 0, rule) == 4.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tokens", [0, -1, 1.5, True])
    async def test_invalid_token_count(self, token_store, rule, tokens):
        """Test tokens must be a positive integer."""
        with pytest.raises(ValueError, match="positive integer"):
            await token_store.try_consume("client", 0, rule, tokens=tokens)

    @pytest.mark.asyncio
    async def test_buckets_are_independent_per_key_and_rule(self, token_store, rule):
        """Test subjects and rule indexes never share a bucket."""
        for _ in range(4):
            await token_store.try_consume("a", 0, rule)

        assert not await token_store.try_consume("a", 0, rule)
        assert await token_store.try_consume("a", 1, rule)
        assert await token_store.try_consume("b", 0, rule)

    @pytest.mark.asyncio
    async def test_clock_going_backwards_does_not_recredit(
        self, token_store, backend, rule, clock
    ):
        """Test a late clock keeps the stored refill time."""
        for _ in range(4):
            await token_store.try_consume("client", 0, rule)

        clock.advance(-10)
        assert not await token_store.try_consume("client", 0, rule)
        state = await backend.get("client", 0)
        assert state.last_refill_time == 1000.0

        clock.advance(10)
        assert not await token_store.try_consume("client", 0, rule)

    @pytest.mark.asyncio
    async def test_untouched_bucket_reports_capacity(self, token_store, rule):
        """Test peeking at a new bucket does not create it."""
        assert await token_store.get_available_tokens("nobody", 0, rule) == 4.0
        assert await token_store.backend.get("nobody", 0) is None


class TestRefillPrecision:
    """Test refill timing with periods that are not exact binary fractions."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start", [1000.0, 1_700_000_000.123])
    @pytest.mark.parametrize("capacity", [3, 5, 6, 7, 9, 11, 13, 97, 199])
    async def test_token_returns_exactly_one_interval_later(
        self, token_store, clock, start, capacity
    ):
        """Test a refused caller succeeds again at t0 + P/C."""
        rule = RateRule(capacity=capacity, period=timedelta(seconds=7))
        clock.now = start

        for _ in range(capacity):
            assert await token_store.try_consume("client", 0, rule)
        assert not await token_store.try_consume("client", 0, rule)

        clock.now = start + rule.seconds_per_token

        assert await token_store.try_consume("client", 0, rule)
        assert not await token_store.try_consume("client", 0, rule)

    @pytest.mark.asyncio
    async def test_tolerance_does_not_admit_early(self, token_store, clock):
        """Test half an interval is still refused."""
        rule = RateRule(capacity=3, period=timedelta(seconds=7))
        clock.now = 1_700_000_000.123

        for _ in range(3):
            await token_store.try_consume("client", 0, rule)
        clock.now += rule.seconds_per_token / 2

        assert not await token_store.try_consume("client", 0, rule)


class TestTokenBucketConcurrency:
    """Test consumption under concurrent callers."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("callers, capacity", [(10, 3), (25, 1), (40, 17)])
    async def test_exactly_capacity_successes(
        self, yielding_backend, clock, callers, capacity
    ):
        """Test N concurrent consumes on a fresh bucket yield exactly C successes."""
        store = TokenBucketStore(
            yielding_backend,
            retry_config=RetryConfig(
                max_attempts=callers + 1, base_delay=0.0, max_delay=0.0, jitter=False
            ),
            clock=clock,
        )
        rule = RateRule(capacity=capacity, period=timedelta(minutes=1))

        results = await asyncio.gather(
            *(store.try_consume("client", 0, rule) for _ in range(callers))
        )

        assert results.count(True) == capacity
        assert results.count(False) == callers - capacity
        state = await yielding_backend.get("client", 0)
        assert state.available_tokens == 0.0

    @pytest.mark.asyncio
    async def test_conflicts_are_counted(self, yielding_backend, clock):
        """Test lost compare-and-set races are visible in metrics."""
        metrics = RateLimiterMetrics()
        store = TokenBucketStore(
            yielding_backend,
            retry_config=RetryConfig(
                max_attempts=10, base_delay=0.0, max_delay=0.0, jitter=False
            ),
            clock=clock,
            metrics=metrics,
        )
        rule = RateRule(capacity=10, period=timedelta(minutes=1))

        await asyncio.gather(*(store.try_consume("client", 0, rule) for _ in range(3)))

        assert metrics.registry.get_sample_value("rate_limiter_cas_conflicts_total") > 0


class TestTokenBucketStoreFailures:
    """Test retry exhaustion and store failures."""

    @pytest.fixture
    def contended_backend(self):
        """Backend on which every compare-and-set loses."""
        backend = AsyncMock(spec=BucketStore)
        backend.get.return_value = None
        backend.compare_and_set.return_value = False
        return backend

    @pytest.mark.asyncio
    async def test_contention_exhausts_retry_budget(
        self, contended_backend, clock, rule
    ):
        """Test endless contention becomes StoreUnavailableError, not a decision."""
        metrics = RateLimiterMetrics()
        store = TokenBucketStore(
            contended_backend,
            retry_config=RetryConfig(
                max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=False
            ),
            clock=clock,
            metrics=metrics,
        )

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.try_consume("client", 2, rule)

        assert exc_info.value.attempts == 3
        assert exc_info.value.rule_index == 2
        assert contended_backend.compare_and_set.await_count == 3
        assert metrics.registry.get_sample_value("rate_limiter_store_failures_total") == 1

    @pytest.mark.asyncio
    async def test_transient_store_error_is_retried(self, token_store, backend, rule):
        """Test one failed read is retried transparently."""
        original_get = backend.get
        backend.get = AsyncMock(
            side_effect=[BucketStoreError("connection reset", "get"), None]
        )

        assert await token_store.try_consume("client", 0, rule)
        assert backend.get.await_count == 2
        backend.get = original_get
        assert (await backend.get("client", 0)).available_tokens == 3.0

    @pytest.mark.asyncio
    async def test_persistent_store_error(self, clock, rule):
        """Test a store that keeps failing raises StoreUnavailableError."""
        backend = AsyncMock(spec=BucketStore)
        backend.get.side_effect = BucketStoreError("connection refused", "get")
        store = TokenBucketStore(
            backend,
            retry_config=RetryConfig(
                max_attempts=2, base_delay=0.0, max_delay=0.0, jitter=False
            ),
            clock=clock,
        )

        with pytest.raises(StoreUnavailableError, match="connection refused"):
            await store.try_consume("client", 0, rule)

    @pytest.mark.asyncio
    async def test_store_timeout(self, clock, rule):
        """Test a hanging store times out into StoreUnavailableError."""

        async def hang(*args):
            await asyncio.sleep(10)

        backend = AsyncMock(spec=BucketStore)
        backend.get.side_effect = hang
        store = TokenBucketStore(
            backend,
            retry_config=RetryConfig(
                max_attempts=2,
                base_delay=0.0,
                max_delay=0.0,
                jitter=False,
                operation_timeout=0.01,
            ),
            clock=clock,
        )

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.try_consume("client", 0, rule)

        assert exc_info.value.last_error == "TimeoutError"

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self, clock, rule):
        """Test errors outside the retry policy are not retried or wrapped."""
        backend = AsyncMock(spec=BucketStore)
        backend.get.side_effect = RuntimeError("bug")
        store = TokenBucketStore(backend, clock=clock)

        with pytest.raises(RuntimeError, match="bug"):
            await store.try_consume("client", 0, rule)

        assert backend.get.await_count == 1
