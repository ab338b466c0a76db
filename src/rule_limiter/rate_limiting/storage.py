"""Bucket state storage implementations."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Hashable
from typing import Any

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from ..config.settings import RedisSettings
from ..domain.exceptions import BucketStoreError
from ..domain.models import BucketState, NamespacedKey

logger = structlog.get_logger()


class BucketStore(ABC):
    """Abstract base class for bucket state storage.

    Any key-value store with an atomic compare-and-set satisfies it.
    """

    @abstractmethod
    async def get(self, subject_key: Hashable, rule_index: int) -> BucketState | None:
        """Get bucket state for a subject and rule.

        Args:
            subject_key: Identity being limited
            rule_index: Position of the rule in its configuration

        Returns:
            Stored state or None when the bucket was never written
        """
        pass

    @abstractmethod
    async def compare_and_set(
        self,
        subject_key: Hashable,
        rule_index: int,
        expected: BucketState | None,
        new_state: BucketState,
    ) -> bool:
        """Replace the stored state only if it still equals ``expected``.

        Args:
            subject_key: Identity being limited
            rule_index: Position of the rule in its configuration
            expected: State previously read, None if it was absent
            new_state: State to write

        Returns:
            True if the write happened, False if another writer got there first
        """
        pass


class InMemoryBucketStore(BucketStore):
    """In-process bucket storage guarded by a lock per (subject, rule)."""

    def __init__(self) -> None:
        """Initialize in-memory storage."""
        self._data: dict[tuple[Hashable, int], BucketState] = {}
        self._locks: dict[tuple[Hashable, int], asyncio.Lock] = {}
        self.logger = logger.bind(storage="in_memory")

    def _lock_for(self, key: tuple[Hashable, int]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def get(self, subject_key: Hashable, rule_index: int) -> BucketState | None:
        """Get bucket state for a subject and rule."""
        return self._data.get((subject_key, rule_index))

    async def compare_and_set(
        self,
        subject_key: Hashable,
        rule_index: int,
        expected: BucketState | None,
        new_state: BucketState,
    ) -> bool:
        """Write ``new_state`` if the stored state still equals ``expected``."""
        key = (subject_key, rule_index)
        async with self._lock_for(key):
            if self._data.get(key) != expected:
                return False
            self._data[key] = new_state
            return True

    def clear(self) -> None:
        """Drop every bucket."""
        self._data.clear()
        self._locks.clear()

    def __len__(self) -> int:
        return len(self._data)


# Compare-and-set in one round trip. ARGV: expected state (ignored when
# absent is expected), new state, "1" if the key must be absent, ttl seconds.
COMPARE_AND_SET_SCRIPT = """
    local current = redis.call('GET', KEYS[1])
    if ARGV[3] == '1' then
        if current then
            return 0
        end
    elseif current ~= ARGV[1] then
        return 0
    end

    local ttl = tonumber(ARGV[4])
    if ttl and ttl > 0 then
        redis.call('SET', KEYS[1], ARGV[2], 'EX', ttl)
    else
        redis.call('SET', KEYS[1], ARGV[2])
    end
    return 1
"""


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace(":", "\\:").replace("=", "\\=")


def encode_subject_key(subject_key: Hashable) -> str:
    """Encode a subject key as one or more ``:``-separated Redis key segments.

    Strings are kept readable with ``\\``, ``:`` and ``=`` escaped. Any other
    value is tagged with its type (``int=1``), so ``1`` and ``"1"`` stay
    distinct, as they are in the in-memory store. A namespaced key becomes
    its escaped namespace followed by the encoded subject.
    """
    if isinstance(subject_key, NamespacedKey):
        return (
            f"{_escape(subject_key.namespace)}:"
            f"{encode_subject_key(subject_key.subject_key)}"
        )
    if isinstance(subject_key, str):
        return _escape(subject_key)
    return f"{type(subject_key).__name__}={_escape(str(subject_key))}"


class RedisBucketStore(BucketStore):
    """Redis-based bucket storage, shared by every limiter node."""

    def __init__(
        self,
        redis_client: Any,
        key_prefix: str = "rate_limit",
        ttl: int | None = None,
    ):
        """Initialize Redis storage.

        Args:
            redis_client: redis.asyncio client instance
            key_prefix: Prefix for every bucket key
            ttl: Seconds an idle bucket lives before Redis expires it
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.ttl = ttl
        self.logger = logger.bind(storage="redis")

    @classmethod
    def from_settings(
        cls, settings: RedisSettings, key_prefix: str = "rate_limit", ttl: int | None = None
    ) -> "RedisBucketStore":
        client = redis.from_url(
            settings.url,
            max_connections=settings.max_connections,
            retry_on_timeout=settings.retry_on_timeout,
            health_check_interval=settings.health_check_interval,
        )
        return cls(client, key_prefix=key_prefix, ttl=ttl)

    def _make_key(self, subject_key: Hashable, rule_index: int) -> str:
        return f"{self.key_prefix}:{encode_subject_key(subject_key)}:{rule_index}"

    async def get(self, subject_key: Hashable, rule_index: int) -> BucketState | None:
        """Get bucket state for a subject and rule."""
        key = self._make_key(subject_key, rule_index)
        try:
            data = await self.redis.get(key)
        except RedisError as e:
            self.logger.error("Failed to get bucket state", key=key, error=str(e))
            raise BucketStoreError(f"Failed to read {key}: {e}", "get") from e
        if data is None:
            return None
        try:
            return BucketState.from_json(data)
        except (ValueError, KeyError) as e:
            raise BucketStoreError(f"Corrupt bucket state at {key}: {e}", "get") from e

    async def compare_and_set(
        self,
        subject_key: Hashable,
        rule_index: int,
        expected: BucketState | None,
        new_state: BucketState,
    ) -> bool:
        """Write ``new_state`` if the stored state still equals ``expected``."""
        key = self._make_key(subject_key, rule_index)
        try:
            result = await self.redis.eval(
                COMPARE_AND_SET_SCRIPT,
                1,
                key,
                expected.to_json() if expected is not None else "",
                new_state.to_json(),
                "1" if expected is None else "0",
                str(self.ttl or 0),
            )
        except RedisError as e:
            self.logger.error("Failed to set bucket state", key=key, error=str(e))
            raise BucketStoreError(
                f"Failed to compare-and-set {key}: {e}", "compare_and_set"
            ) from e
        return bool(int(result))

    async def close(self) -> None:
        """Close the Redis connection."""
        await self.redis.aclose()
