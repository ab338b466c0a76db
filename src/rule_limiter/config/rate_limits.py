"""Rate limit configuration models.

These are the external, loosely typed form of a limiter's configuration
(``limit`` per ``duration`` ``time_unit``). They convert into the immutable
domain types the engine runs on.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..domain.exceptions import ConfigurationError
from ..domain.models import CombinationLogic, RateLimiterConfiguration, RateRule, TimeUnit


class RateConfig(BaseModel):
    """One rate: ``limit`` requests per ``duration`` ``time_unit``."""

    model_config = ConfigDict(frozen=True)

    limit: int = Field(gt=0, description="Requests allowed per period")
    duration: int = Field(gt=0, description="Length of the period")
    time_unit: TimeUnit = TimeUnit.SECONDS

    @field_validator("time_unit", mode="before")
    @classmethod
    def normalize_time_unit(cls, v: Any) -> Any:
        """Accept upper-case unit names such as ``MINUTES``."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    def to_rule(self) -> RateRule:
        return RateRule(
            capacity=self.limit, period=self.time_unit.to_timedelta(self.duration)
        )


class RateLimitConfig(BaseModel):
    """A list of rates plus the logic combining them."""

    model_config = ConfigDict(frozen=True)

    logic: CombinationLogic = CombinationLogic.ANY
    limits: list[RateConfig] = Field(default_factory=list)

    @field_validator("logic", mode="before")
    @classmethod
    def parse_logic(cls, v: Any) -> CombinationLogic:
        try:
            return CombinationLogic.parse(v)
        except ConfigurationError as e:
            # pydantic only wraps ValueError/AssertionError
            raise ValueError(str(e)) from e

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RateLimitConfig":
        """Validate raw configuration data.

        Raises:
            ConfigurationError: If the data does not describe valid rates
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid rate limit configuration: {e}", "rate_limit", data
            ) from e

    def to_rate_list(self) -> list[RateRule]:
        return [rate.to_rule() for rate in self.limits]

    def to_configuration(self) -> RateLimiterConfiguration:
        """Build the immutable configuration the engine runs on.

        Raises:
            ConfigurationError: If there are no limits
        """
        return RateLimiterConfiguration(
            rules=tuple(self.to_rate_list()), logic=self.logic
        )
