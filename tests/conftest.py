"""Test configuration and fixtures."""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from rule_limiter.domain.models import RateExceededEvent
from rule_limiter.rate_limiting.storage import InMemoryBucketStore
from rule_limiter.rate_limiting.token_bucket import TokenBucketStore
from rule_limiter.retry import RetryConfig


class FakeClock:
    """Manually advanced clock, in seconds since the epoch."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier:
    """Notifier that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[RateExceededEvent] = []

    def on_rate_exceeded(self, event: RateExceededEvent) -> None:
        self.events.append(event)


class YieldingBucketStore(InMemoryBucketStore):
    """In-memory store that yields between read and write.

    Lets concurrent consumers interleave so compare-and-set conflicts
    actually happen.
    """

    async def get(self, subject_key, rule_index):
        state = await super().get(subject_key, rule_index)
        await asyncio.sleep(0)
        return state


class FakeRedis:
    """Minimal redis.asyncio stand-in for the bucket store.

    Emulates GET and the compare-and-set script the store sends through EVAL.
    """

    def __init__(self, fail: bool = False):
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}
        self.fail = fail
        self.eval_calls = 0

    async def get(self, key):
        if self.fail:
            raise RedisConnectionError("Connection refused")
        return self.data.get(key)

    async def eval(self, script, numkeys, key, expected, new_state, expect_absent, ttl):
        self.eval_calls += 1
        if self.fail:
            raise RedisConnectionError("Connection refused")
        current = self.data.get(key)
        if expect_absent == "1":
            if current is not None:
                return 0
        elif current is None or current.decode() != expected:
            return 0
        self.data[key] = new_state.encode()
        if int(ttl) > 0:
            self.ttls[key] = int(ttl)
        return 1

    async def aclose(self):
        pass


@pytest.fixture
def clock():
    """Create a fake clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def notifier():
    """Create a recording notifier."""
    return RecordingNotifier()


@pytest.fixture
def retry_config():
    """Retry budget without backoff delays."""
    return RetryConfig(
        max_attempts=5, base_delay=0.0, max_delay=0.0, jitter=False
    )


@pytest.fixture
def backend():
    """Create in-memory bucket storage."""
    return InMemoryBucketStore()


@pytest.fixture
def token_store(backend, retry_config, clock):
    """Create token bucket store over in-memory storage."""
    return TokenBucketStore(backend, retry_config=retry_config, clock=clock)


@pytest.fixture
def fake_redis():
    """Create a fake Redis client."""
    return FakeRedis()


@pytest.fixture
def failing_redis():
    """Create a fake Redis client whose every call fails."""
    return FakeRedis(fail=True)


@pytest.fixture
def yielding_backend():
    """Create in-memory storage that interleaves concurrent consumers."""
    return YieldingBucketStore()
