"""Bounded retry for the bucket compare-and-set loop.

Built on the tenacity library: exponential backoff with jitter, a fixed attempt
budget and re-raise of the last error on exhaustion.
"""

from .config import RetryConfig
from .policy import RETRYABLE_ERRORS, CompareAndSetConflict, cas_retrying

__all__ = [
    "RetryConfig",
    "CompareAndSetConflict",
    "RETRYABLE_ERRORS",
    "cas_retrying",
]
