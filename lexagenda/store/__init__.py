"""Storage package for agenda rows, recurrence rules and time tracking."""

from .database import DatabaseManager
from .models import (
    DONE_STATUSES,
    SUBTYPE_FIXED,
    SUBTYPE_NORMAL,
    SUBTYPE_PROCEDURAL_DEADLINE,
    EntityKind,
    EntryOrigin,
    EventRecord,
    EventStatus,
    Frequency,
    HearingRecord,
    HearingStatus,
    Priority,
    RecurrenceRule,
    RuleTemplate,
    TaskRecord,
    TaskStatus,
    TimerRecord,
    TimerStatus,
    TimesheetEntry,
)
from .read_model import AgendaReadModel

__all__ = [
    "DONE_STATUSES",
    "SUBTYPE_FIXED",
    "SUBTYPE_NORMAL",
    "SUBTYPE_PROCEDURAL_DEADLINE",
    "AgendaReadModel",
    "DatabaseManager",
    "EntityKind",
    "EntryOrigin",
    "EventRecord",
    "EventStatus",
    "Frequency",
    "HearingRecord",
    "HearingStatus",
    "Priority",
    "RecurrenceRule",
    "RuleTemplate",
    "TaskRecord",
    "TaskStatus",
    "TimerRecord",
    "TimerStatus",
    "TimesheetEntry",
]
