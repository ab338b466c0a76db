"""Domain models for the rate limiter."""

import json
import math
from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any

from .exceptions import ConfigurationError

# Absolute slack, in tokens, for float error in the refill arithmetic.
TOKEN_EPSILON = 1e-9


class CombinationLogic(str, Enum):
    """How per-rule outcomes combine into one verdict."""

    ALL = "all"  # AND: exceeded only when every rule is exceeded
    ANY = "any"  # OR: exceeded when at least one rule is exceeded

    @classmethod
    def parse(cls, value: "str | CombinationLogic") -> "CombinationLogic":
        """Parse a logic value, accepting AND/OR as aliases."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        aliases = {"and": cls.ALL, "or": cls.ANY}
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigurationError(
                f"Unknown combination logic: {value!r}", "logic", value
            ) from None


class TimeUnit(str, Enum):
    """Time units accepted by rate configuration."""

    MILLISECONDS = "milliseconds"
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"

    def to_timedelta(self, amount: int) -> timedelta:
        """Convert an amount of this unit to a timedelta."""
        return timedelta(**{self.value: amount})


@dataclass(frozen=True)
class RateRule:
    """One independent limit: ``capacity`` requests per ``period``."""

    capacity: int
    period: timedelta

    def __post_init__(self) -> None:
        if isinstance(self.capacity, bool) or not isinstance(self.capacity, int):
            raise ConfigurationError(
                "Rule capacity must be an integer", "capacity", self.capacity
            )
        if self.capacity <= 0:
            raise ConfigurationError(
                "Rule capacity must be positive", "capacity", self.capacity
            )
        if not isinstance(self.period, timedelta):
            raise ConfigurationError(
                "Rule period must be a timedelta", "period", self.period
            )
        if self.period <= timedelta(0):
            raise ConfigurationError(
                "Rule period must be positive", "period", self.period
            )

    @property
    def period_seconds(self) -> float:
        return self.period.total_seconds()

    @property
    def refill_rate(self) -> float:
        """Tokens replenished per second."""
        return self.capacity / self.period_seconds

    @property
    def seconds_per_token(self) -> float:
        return self.period_seconds / self.capacity

    def __str__(self) -> str:
        return f"{self.capacity}/{self.period_seconds:g}s"


@dataclass(frozen=True)
class RateLimiterConfiguration:
    """Ordered rules plus the logic combining them."""

    rules: tuple[RateRule, ...]
    logic: CombinationLogic = CombinationLogic.ANY

    def __post_init__(self) -> None:
        rules = tuple(self.rules)
        if not rules:
            raise ConfigurationError("At least one rate rule is required", "rules", [])
        for rule in rules:
            if not isinstance(rule, RateRule):
                raise ConfigurationError(
                    "Rules must be RateRule instances", "rules", rule
                )
        object.__setattr__(self, "rules", rules)
        object.__setattr__(self, "logic", CombinationLogic.parse(self.logic))

    @classmethod
    def of(
        cls, rules: Sequence[RateRule], logic: "str | CombinationLogic" = "any"
    ) -> "RateLimiterConfiguration":
        return cls(rules=tuple(rules), logic=CombinationLogic.parse(logic))


@dataclass(frozen=True)
class BucketState:
    """Token-bucket snapshot for one (subject key, rule index) pair.

    ``last_refill_time`` is in seconds since the epoch.
    """

    available_tokens: float
    last_refill_time: float

    def __post_init__(self) -> None:
        # stored as floats so the JSON form is the same whatever the clock returns
        object.__setattr__(self, "available_tokens", float(self.available_tokens))
        object.__setattr__(self, "last_refill_time", float(self.last_refill_time))
        if self.available_tokens < 0:
            raise ValueError(
                f"available_tokens must be >= 0, got {self.available_tokens}"
            )

    @classmethod
    def full(cls, rule: RateRule, now: float) -> "BucketState":
        """A fresh bucket holding the rule's full capacity."""
        return cls(available_tokens=float(rule.capacity), last_refill_time=now)

    def replenished(self, rule: RateRule, now: float) -> float:
        """Tokens available at ``now``, saturating at capacity."""
        elapsed = max(0.0, now - self.last_refill_time)
        return min(
            float(rule.capacity), self.available_tokens + elapsed * rule.refill_rate
        )

    def refill_tolerance(self, rule: RateRule, now: float) -> float:
        """Tokens that float rounding of ``now`` may have withheld.

        An epoch timestamp near 1.7e9 is only precise to about 2.4e-7s, so
        ``t0 + period / capacity`` can land just short of a whole token. The
        tolerance covers a few units in the last place of the timestamp at the
        rule's refill rate.
        """
        resolution = math.ulp(max(abs(now), abs(self.last_refill_time)))
        return TOKEN_EPSILON + 4 * resolution * rule.refill_rate

    def consume(
        self, rule: RateRule, now: float, tokens: int
    ) -> tuple[bool, "BucketState"]:
        """Refill to ``now`` and take ``tokens`` if they are available.

        Returns:
            Whether the tokens were taken, and the state to store. The refill
            time never moves backwards, so a clock behind the stored time
            cannot re-credit an elapsed span.
        """
        available = self.replenished(rule, now)
        consumed = available + self.refill_tolerance(rule, now) >= tokens
        if consumed:
            available = max(0.0, available - tokens)
        return consumed, BucketState(
            available_tokens=available,
            last_refill_time=max(now, self.last_refill_time),
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "available_tokens": self.available_tokens,
            "last_refill_time": self.last_refill_time,
        }

    def to_json(self) -> str:
        # float repr round-trips exactly through json
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BucketState":
        return cls(
            available_tokens=float(data["available_tokens"]),
            last_refill_time=float(data["last_refill_time"]),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "BucketState":
        return cls.from_dict(json.loads(raw))


@dataclass(frozen=True)
class RateLimitOutcome:
    """Result of evaluating every rule for one subject key."""

    exceeded: bool
    first_exceeded_rule: RateRule | None = None
    per_rule_results: tuple[bool, ...] = field(default_factory=tuple)

    @property
    def allowed(self) -> bool:
        return not self.exceeded


@dataclass(frozen=True)
class RateExceededEvent:
    """Passed to the notifier when an evaluation is over limit."""

    subject_key: Any
    outcome: RateLimitOutcome
    source: Any


@dataclass(frozen=True)
class NamespacedKey:
    """A subject key scoped to one named limiter.

    Never equal to a plain subject key, so named and unnamed limiters sharing a
    store cannot address the same bucket.
    """

    namespace: str
    subject_key: Hashable

    def __str__(self) -> str:
        return f"{self.namespace}:{self.subject_key}"
