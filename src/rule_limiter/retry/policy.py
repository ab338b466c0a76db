"""Tenacity retry policy for bucket store operations."""

import logging

import structlog
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ..domain.exceptions import BucketStoreError
from .config import RetryConfig

logger = structlog.get_logger()


class CompareAndSetConflict(Exception):
    """Another writer updated the bucket between our read and our write."""


RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    CompareAndSetConflict,
    BucketStoreError,
    TimeoutError,
)


def cas_retrying(config: RetryConfig) -> AsyncRetrying:
    """Create a tenacity controller for one atomic consume.

    The last error is re-raised once the attempt budget is exhausted so the
    caller can translate it.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential_jitter(
            initial=config.base_delay,
            max=config.max_delay,
            jitter=config.base_delay if config.jitter else 0.0,
        ),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        reraise=True,
    )
