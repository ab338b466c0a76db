"""Observability for the rate limiter: structured logging and Prometheus metrics."""

from .logging import LogFormat, LogLevel, get_logger, setup_logging
from .metrics import RateLimiterMetrics

__all__ = [
    "LogFormat",
    "LogLevel",
    "RateLimiterMetrics",
    "get_logger",
    "setup_logging",
]
