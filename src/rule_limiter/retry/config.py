"""Retry configuration for the compare-and-set loop."""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class RetryConfig(BaseModel):
    """Bounded retry budget for one atomic consume."""

    max_attempts: int = Field(
        default=10, ge=1, le=1000, description="Maximum compare-and-set attempts"
    )
    base_delay: float = Field(
        default=0.002, ge=0.0, le=10.0, description="Initial backoff in seconds"
    )
    max_delay: float = Field(
        default=0.1, ge=0.0, le=60.0, description="Maximum backoff in seconds"
    )
    jitter: bool = Field(
        default=True, description="Add jitter so contending callers spread out"
    )
    operation_timeout: float | None = Field(
        default=1.0, gt=0.0, description="Timeout for one backing store call"
    )

    @field_validator("max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info: Any) -> float:
        """Ensure max_delay is not below base_delay."""
        if info.data.get("base_delay") and v < info.data["base_delay"]:
            raise ValueError("max_delay must be at least base_delay")
        return v
