"""Rate exceeded notifiers."""

import inspect
from collections.abc import Awaitable, Sequence
from typing import Protocol, runtime_checkable

import structlog

from ..domain.models import RateExceededEvent

logger = structlog.get_logger()


@runtime_checkable
class RateExceededNotifier(Protocol):
    """Receives an event each time an evaluation is over limit.

    Implementations may be plain methods or coroutines; the engine awaits the
    latter before returning. The return value is ignored.
    """

    def on_rate_exceeded(self, event: RateExceededEvent) -> Awaitable[None] | None: ...


async def notify(notifier: RateExceededNotifier, event: RateExceededEvent) -> None:
    """Invoke a notifier, awaiting it if it is asynchronous."""
    result = notifier.on_rate_exceeded(event)
    if inspect.isawaitable(result):
        await result


class LoggingRateExceededNotifier:
    """Logs every exceeded evaluation as a warning."""

    def __init__(self, logger_name: str = "rule_limiter.exceeded"):
        self.logger = structlog.get_logger(logger_name)

    def on_rate_exceeded(self, event: RateExceededEvent) -> None:
        rule = event.outcome.first_exceeded_rule
        self.logger.warning(
            "Rate limit exceeded",
            subject_key=str(event.subject_key),
            first_exceeded_rule=str(rule) if rule else None,
            per_rule_results=list(event.outcome.per_rule_results),
            source=getattr(event.source, "name", None),
        )


class CompositeRateExceededNotifier:
    """Fans one event out to several notifiers, in order.

    A failing notifier stops the fan-out and its error propagates.
    """

    def __init__(self, notifiers: Sequence[RateExceededNotifier]):
        self.notifiers = list(notifiers)

    async def on_rate_exceeded(self, event: RateExceededEvent) -> None:
        for notifier in self.notifiers:
            await notify(notifier, event)
