"""Configuration package."""

from .settings import (
    LexAgendaSettings,
    LoggingSettings,
    SchedulingSettings,
    get_settings,
    reset_settings,
)

__all__ = [
    "LexAgendaSettings",
    "LoggingSettings",
    "SchedulingSettings",
    "get_settings",
    "reset_settings",
]
