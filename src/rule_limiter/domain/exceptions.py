"""Exception hierarchy for the rate limiter."""

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import RateLimitOutcome


class ErrorCode(str, Enum):
    """Standardized error codes."""

    CONFIGURATION_ERROR = "configuration_error"
    STORE_ERROR = "store_error"
    STORE_UNAVAILABLE = "store_unavailable"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


class RateLimiterException(Exception):
    """Base exception for the rate limiter."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(RateLimiterException):
    """Invalid rule list or combination logic."""

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field is not None:
            details = {"field": field, "value": str(value)}
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)
        self.field = field


class BucketStoreError(RateLimiterException):
    """A single backing store operation failed.

    Retryable: the token bucket store retries it within its attempt budget.
    """

    def __init__(self, message: str, operation: str):
        super().__init__(message, ErrorCode.STORE_ERROR, {"operation": operation})
        self.operation = operation


class StoreUnavailableError(RateLimiterException):
    """The atomic consume could not complete within the retry budget.

    This is never a rate decision: callers must not read it as allowed or
    denied.
    """

    def __init__(
        self,
        subject_key: Any,
        rule_index: int,
        attempts: int,
        last_error: str,
    ):
        super().__init__(
            f"Bucket store unavailable for {subject_key!r} rule {rule_index} "
            f"after {attempts} attempts: {last_error}",
            ErrorCode.STORE_UNAVAILABLE,
            {
                "subject_key": str(subject_key),
                "rule_index": rule_index,
                "attempts": attempts,
                "last_error": last_error,
            },
        )
        self.subject_key = subject_key
        self.rule_index = rule_index
        self.attempts = attempts
        self.last_error = last_error


class RateLimitExceededError(RateLimiterException):
    """The subject is over its allowed rate."""

    def __init__(self, subject_key: Any, outcome: "RateLimitOutcome"):
        rule = outcome.first_exceeded_rule
        super().__init__(
            f"Rate limit exceeded for: {subject_key!r}",
            ErrorCode.RATE_LIMIT_EXCEEDED,
            {
                "subject_key": str(subject_key),
                "first_exceeded_rule": str(rule) if rule else None,
                "retry_after": rule.seconds_per_token if rule else None,
            },
        )
        self.subject_key = subject_key
        self.outcome = outcome
