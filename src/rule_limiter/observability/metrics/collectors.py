"""Prometheus metrics for rate limiter decisions and store health."""

from collections.abc import Sequence

from prometheus_client import Counter, Histogram
from prometheus_client.core import CollectorRegistry as PrometheusRegistry


class RateLimiterMetrics:
    """Metrics collector for the rate limiter.

    Every collector owns its registry so several limiters, or tests, never
    collide on metric names.
    """

    def __init__(self, registry: PrometheusRegistry | None = None):
        self.registry = registry or PrometheusRegistry()

        self.evaluations_total = Counter(
            "rate_limiter_evaluations_total",
            "Total rate limiter evaluations",
            ["exceeded"],
            registry=self.registry,
        )

        self.rule_rejections_total = Counter(
            "rate_limiter_rule_rejections_total",
            "Token consumptions refused, per rule",
            ["rule_index"],
            registry=self.registry,
        )

        self.cas_conflicts_total = Counter(
            "rate_limiter_cas_conflicts_total",
            "Compare-and-set attempts lost to a concurrent writer",
            registry=self.registry,
        )

        self.store_failures_total = Counter(
            "rate_limiter_store_failures_total",
            "Consumptions abandoned after the retry budget ran out",
            registry=self.registry,
        )

        self.evaluation_duration_seconds = Histogram(
            "rate_limiter_evaluation_duration_seconds",
            "Rate limiter evaluation duration in seconds",
            buckets=[0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0],
            registry=self.registry,
        )

    def record_evaluation(
        self, exceeded: bool, per_rule_results: Sequence[bool], duration: float
    ) -> None:
        """Record one finished evaluation."""
        self.evaluations_total.labels(exceeded=str(exceeded).lower()).inc()
        for index, passed in enumerate(per_rule_results):
            if not passed:
                self.rule_rejections_total.labels(rule_index=str(index)).inc()
        self.evaluation_duration_seconds.observe(duration)

    def record_cas_conflict(self) -> None:
        self.cas_conflicts_total.inc()

    def record_store_failure(self) -> None:
        self.store_failures_total.inc()
