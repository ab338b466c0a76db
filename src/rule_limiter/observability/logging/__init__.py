"""Structured logging configuration and utilities."""

from .config import LogFormat, LogLevel, get_logger, setup_logging, setup_logging_from_settings

__all__ = [
    "setup_logging",
    "setup_logging_from_settings",
    "LogLevel",
    "LogFormat",
    "get_logger",
]
