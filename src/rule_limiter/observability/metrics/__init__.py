"""Prometheus metrics collection."""

from .collectors import RateLimiterMetrics

__all__ = ["RateLimiterMetrics"]
