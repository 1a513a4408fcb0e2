"""General utility functions and helpers."""

import logging
from datetime import datetime
from typing import Any, Callable

import pytz

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def get_office_timezone(tz_name: str) -> Any:
    """Resolve an office timezone name to a pytz timezone.

    Args:
        tz_name: IANA timezone name such as ``America/Sao_Paulo``

    Returns:
        pytz timezone object, UTC when the name is unknown
    """
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone '{tz_name}', falling back to UTC")
        return pytz.UTC


def office_now(tz_name: str) -> datetime:
    """Current wall-clock time in the office timezone, without tzinfo.

    Agenda rows store local wall-clock datetimes, so comparisons against
    "now" and "today" are made on naive values in the office timezone.
    """
    return datetime.now(get_office_timezone(tz_name)).replace(tzinfo=None)


def office_clock(tz_name: str) -> Clock:
    """Build a clock callable bound to an office timezone."""

    def _now() -> datetime:
        return office_now(tz_name)

    return _now


def format_duration(seconds: int) -> str:
    """Format duration in seconds to human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string
    """
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        minutes = seconds // 60
        remaining_seconds = seconds % 60
        if remaining_seconds == 0:
            return f"{minutes}m"
        return f"{minutes}m {remaining_seconds}s"
    hours = seconds // 3600
    remaining_minutes = (seconds % 3600) // 60
    if remaining_minutes == 0:
        return f"{hours}h"
    return f"{hours}h {remaining_minutes}m"
