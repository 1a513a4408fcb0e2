"""Persisted row models for tasks, events, hearings, rules, timers and timesheets."""

import re
import uuid
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

SUBTYPE_NORMAL = "normal"
SUBTYPE_FIXED = "fixed"
SUBTYPE_PROCEDURAL_DEADLINE = "procedural_deadline"

LAST_DAY_OF_MONTH = 99

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def new_id() -> str:
    """Generate a new row identifier."""
    return str(uuid.uuid4())


class EntityKind(str, Enum):
    """Calendar entity kinds merged into the agenda."""

    TASK = "task"
    HEARING = "hearing"
    EVENT = "event"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"


class EventStatus(str, Enum):
    SCHEDULED = "scheduled"
    DONE = "done"
    CANCELLED = "cancelled"


class HearingStatus(str, Enum):
    SCHEDULED = "scheduled"
    HELD = "held"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class TimerStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"


class EntryOrigin(str, Enum):
    MANUAL = "manual"
    TIMER = "timer"


# Statuses that count as "done" for overdue and urgency checks
DONE_STATUSES = frozenset(
    {TaskStatus.COMPLETED.value, EventStatus.DONE.value, HearingStatus.HELD.value}
)


class TaskRecord(BaseModel):
    """Task row as stored in the ``tasks`` table."""

    id: str = Field(default_factory=new_id)
    office_id: str
    title: str
    description: Optional[str] = None
    subtype: str = Field(default=SUBTYPE_NORMAL, alias="subtipo")
    status: TaskStatus = TaskStatus.PENDING
    priority: Priority = Priority.MEDIUM

    # Schedule
    start: datetime = Field(alias="data_inicio")
    fixed_deadline: Optional[datetime] = Field(default=None, alias="prazo_data_limite")
    all_day: bool = False
    location: Optional[str] = None

    # People and billable links
    assignee_ids: list[str] = Field(default_factory=list)
    assignee_name: Optional[str] = None
    case_id: Optional[str] = Field(default=None, alias="processo_id")
    case_number: Optional[str] = None
    consultation_id: Optional[str] = Field(default=None, alias="consultivo_id")

    # Recurrence
    recurrence_id: Optional[str] = Field(default=None, alias="recorrencia_id")
    source_date: Optional[date] = None

    # Lifecycle
    completed_at: Optional[datetime] = None
    fixed_status_date: Optional[date] = None

    model_config = {"populate_by_name": True}

    @field_serializer("start", "fixed_deadline", "completed_at")
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat() if dt is not None else None

    @property
    def is_fixed(self) -> bool:
        return self.subtype == SUBTYPE_FIXED

    @property
    def has_billable_link(self) -> bool:
        """Check if the task is linked to a case or consultation."""
        return bool(self.case_id or self.consultation_id)


class EventRecord(BaseModel):
    """Generic event or deadline row as stored in the ``events`` table."""

    id: str = Field(default_factory=new_id)
    office_id: str
    title: str
    description: Optional[str] = None
    subtype: str = SUBTYPE_NORMAL
    status: EventStatus = EventStatus.SCHEDULED
    priority: Priority = Priority.MEDIUM

    start: datetime = Field(alias="data_inicio")
    end: Optional[datetime] = Field(default=None, alias="data_fim")
    fixed_deadline: Optional[datetime] = Field(default=None, alias="prazo_data_limite")
    all_day: bool = False
    location: Optional[str] = None

    assignee_ids: list[str] = Field(default_factory=list)
    assignee_name: Optional[str] = None
    case_id: Optional[str] = Field(default=None, alias="processo_id")
    case_number: Optional[str] = None
    consultation_id: Optional[str] = Field(default=None, alias="consultivo_id")

    recurrence_id: Optional[str] = Field(default=None, alias="recorrencia_id")
    source_date: Optional[date] = None

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def check_fixed_deadline(self) -> "EventRecord":
        if self.fixed_deadline is not None and self.subtype != SUBTYPE_PROCEDURAL_DEADLINE:
            raise ValueError("only procedural deadline events may carry a fixed deadline")
        return self

    @field_serializer("start", "end", "fixed_deadline")
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat() if dt is not None else None


class HearingRecord(BaseModel):
    """Hearing row as stored in the ``hearings`` table."""

    id: str = Field(default_factory=new_id)
    office_id: str
    title: str
    description: Optional[str] = None
    status: HearingStatus = HearingStatus.SCHEDULED

    start: datetime = Field(alias="data_hora")
    end: Optional[datetime] = Field(default=None, alias="data_fim")
    location: Optional[str] = None

    assignee_ids: list[str] = Field(default_factory=list)
    assignee_name: Optional[str] = None
    case_id: Optional[str] = Field(default=None, alias="processo_id")
    case_number: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_serializer("start", "end")
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat() if dt is not None else None


class RuleTemplate(BaseModel):
    """Field values copied onto every occurrence of a recurrence rule."""

    subtype: str = SUBTYPE_NORMAL
    priority: Priority = Priority.MEDIUM
    all_day: bool = False
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    location: Optional[str] = None
    assignee_ids: list[str] = Field(default_factory=list)
    assignee_name: Optional[str] = None
    case_id: Optional[str] = None
    case_number: Optional[str] = None
    consultation_id: Optional[str] = None


class RecurrenceRule(BaseModel):
    """Recurrence rule row plus its excluded dates.

    ``month_day`` uses 99 for "last day of the month"; other days beyond the
    month length clamp to the month's last day.
    """

    id: str = Field(default_factory=new_id)
    office_id: str
    entity_kind: EntityKind = EntityKind.TASK
    title: str
    description: Optional[str] = None
    template: RuleTemplate = Field(default_factory=RuleTemplate)

    frequency: Frequency
    interval: int = Field(default=1, ge=1)
    weekdays: list[int] = Field(default_factory=list)  # 0=Sunday .. 6=Saturday
    month_day: Optional[int] = None
    month: Optional[int] = Field(default=None, ge=1, le=12)
    business_days_only: bool = False
    default_time: str = "09:00"

    anchor_date: date = Field(alias="data_inicio")
    end_date: Optional[date] = Field(default=None, alias="data_fim")
    max_occurrences: Optional[int] = Field(default=None, ge=1)
    active: bool = True

    exclusions: set[date] = Field(default_factory=set)

    model_config = {"populate_by_name": True}

    @field_validator("entity_kind")
    @classmethod
    def check_entity_kind(cls, value: EntityKind) -> EntityKind:
        if value == EntityKind.HEARING:
            raise ValueError("hearings cannot recur")
        return value

    @field_validator("weekdays")
    @classmethod
    def check_weekdays(cls, value: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("weekdays must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))

    @field_validator("month_day")
    @classmethod
    def check_month_day(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value != LAST_DAY_OF_MONTH and not 1 <= value <= 31:
            raise ValueError("month_day must be 1-31 or 99 for the last day")
        return value

    @field_validator("default_time")
    @classmethod
    def check_default_time(cls, value: str) -> str:
        if not _TIME_PATTERN.match(value):
            raise ValueError("default_time must use HH:MM")
        return value

    def occurrence_start(self, day: date) -> datetime:
        """Combine an occurrence date with the rule's default time."""
        hour, minute = (int(part) for part in self.default_time.split(":"))
        if self.template.all_day:
            hour, minute = 0, 0
        return datetime(day.year, day.month, day.day, hour, minute)

    def occurrence_end(self, day: date) -> Optional[datetime]:
        if not self.template.duration_minutes:
            return None
        return self.occurrence_start(day) + timedelta(minutes=self.template.duration_minutes)


class TimerRecord(BaseModel):
    """Running or paused work timer."""

    id: str = Field(default_factory=new_id)
    office_id: str
    user_id: str
    title: str
    description: Optional[str] = None
    task_id: Optional[str] = None
    case_id: Optional[str] = Field(default=None, alias="processo_id")
    consultation_id: Optional[str] = Field(default=None, alias="consultivo_id")
    status: TimerStatus = TimerStatus.RUNNING
    started_at: datetime
    accumulated_seconds: int = Field(default=0, ge=0)
    billable: bool = True

    model_config = {"populate_by_name": True}

    @field_serializer("started_at")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat()

    def elapsed_seconds(self, now: datetime) -> int:
        """Get total tracked time, including the current running segment."""
        if self.status != TimerStatus.RUNNING:
            return self.accumulated_seconds
        running = max(0, int((now - self.started_at).total_seconds()))
        return self.accumulated_seconds + running

    @property
    def has_billable_link(self) -> bool:
        return bool(self.case_id or self.consultation_id)


class TimesheetEntry(BaseModel):
    """Immutable record of worked minutes."""

    id: str = Field(default_factory=new_id)
    office_id: str
    user_id: str
    task_id: Optional[str] = None
    case_id: Optional[str] = Field(default=None, alias="processo_id")
    consultation_id: Optional[str] = Field(default=None, alias="consultivo_id")
    work_date: date
    minutes: int = Field(gt=0)
    billable: bool = True
    activity: str
    origin: EntryOrigin = EntryOrigin.MANUAL
    created_at: datetime

    model_config = {"populate_by_name": True, "frozen": True}

    @field_serializer("created_at")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat()

    @property
    def hours(self) -> float:
        return round(self.minutes / 60, 2)
