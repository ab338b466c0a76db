"""Structured logging setup for the rate limiter.

Library modules only call ``structlog.get_logger()``; an application calls
``setup_logging`` once to route those events through stdlib logging as JSON
lines or coloured console output.
"""

import logging
import sys
from enum import Enum

import structlog
from structlog.stdlib import LoggerFactory

from ...config.settings import LogSettings


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def numeric(self) -> int:
        return logging.getLevelName(self.value)


class LogFormat(str, Enum):
    """Logging formats."""

    JSON = "json"
    CONSOLE = "console"


def _build_processors(
    format_type: LogFormat, enable_colors: bool, include_timestamps: bool
) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        # context bound with structlog.contextvars, e.g. a request id
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]
    if include_timestamps:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))

    if format_type == LogFormat.JSON:
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=enable_colors))
    return processors


def setup_logging(
    level: LogLevel | str = LogLevel.INFO,
    format_type: LogFormat | str = LogFormat.JSON,
    log_file: str | None = None,
    enable_colors: bool = True,
    include_timestamps: bool = True,
) -> None:
    """Configure structlog on top of the stdlib root logger.

    Args:
        level: Minimum level, as a LogLevel or a case-insensitive name
        format_type: ``json`` for one JSON object per line, ``console`` for humans
        log_file: Write to this file instead of stdout
        enable_colors: Colour console output
        include_timestamps: Add an ISO-8601 UTC ``timestamp`` field

    Raises:
        ValueError: If the level or format is unknown
    """
    if not isinstance(level, LogLevel):
        level = LogLevel(level.upper())
    format_type = LogFormat(format_type)

    handler: logging.Handler = (
        logging.FileHandler(log_file) if log_file else logging.StreamHandler(sys.stdout)
    )
    logging.basicConfig(
        level=level.numeric, format="%(message)s", handlers=[handler], force=True
    )

    structlog.configure(
        processors=_build_processors(format_type, enable_colors, include_timestamps),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_logging_from_settings(settings: LogSettings) -> None:
    """Configure logging from ``LOG_*`` settings."""
    setup_logging(level=settings.level, format_type=settings.format.lower())


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
