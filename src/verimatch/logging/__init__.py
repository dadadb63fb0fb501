"""Logging module for verimatch."""

from .logger import (
    LogContext,
    PerformanceLogger,
    get_logger,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "LogContext",
    "PerformanceLogger",
]
