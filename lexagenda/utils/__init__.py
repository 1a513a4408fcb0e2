"""Utility functions and helpers package."""

from .helpers import Clock, format_duration, office_clock, office_now
from .logging import correlation_context, get_logger, setup_logging, with_correlation_id

__all__ = [
    "Clock",
    "correlation_context",
    "format_duration",
    "get_logger",
    "office_clock",
    "office_now",
    "setup_logging",
    "with_correlation_id",
]
