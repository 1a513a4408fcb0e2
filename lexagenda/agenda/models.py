"""Agenda read-model items, queries and command decisions."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import IntEnum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_serializer, model_validator

from ..recurrence.identifiers import ConcreteRef, OccurrenceRef, parse_ref
from ..store.models import (
    DONE_STATUSES,
    SUBTYPE_FIXED,
    SUBTYPE_PROCEDURAL_DEADLINE,
    EntityKind,
    Priority,
)


class Urgency(IntEnum):
    """Urgency rank used as the first day-view sort key."""

    OVERDUE = 0
    DUE_TODAY = 1
    NONE = 99


class AgendaItem(BaseModel):
    """One task, hearing or event as shown in the consolidated agenda."""

    id: str
    kind: EntityKind
    subtype: str = "normal"
    title: str
    description: Optional[str] = None

    start: datetime
    end: Optional[datetime] = None
    all_day: bool = False
    location: Optional[str] = None

    office_id: str
    assignee_ids: list[str] = Field(default_factory=list)
    assignee_name: Optional[str] = None
    case_id: Optional[str] = None
    case_number: Optional[str] = None
    consultation_id: Optional[str] = None

    status: str
    priority: Priority = Priority.MEDIUM
    fixed_deadline: Optional[datetime] = None

    recurrence_id: Optional[str] = None
    source_date: Optional[date] = None
    is_virtual: bool = False

    @model_validator(mode="after")
    def check_fixed_deadline(self) -> "AgendaItem":
        if self.fixed_deadline is not None and not self.may_carry_deadline:
            raise ValueError(
                f"{self.kind.value} items with subtype {self.subtype!r} cannot carry a fixed deadline"
            )
        return self

    @field_serializer("start", "end", "fixed_deadline")
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat() if dt is not None else None

    @property
    def may_carry_deadline(self) -> bool:
        return self.kind == EntityKind.TASK or self.subtype == SUBTYPE_PROCEDURAL_DEADLINE

    @property
    def is_done(self) -> bool:
        return self.status in DONE_STATUSES

    @property
    def is_fixed(self) -> bool:
        return self.kind == EntityKind.TASK and self.subtype == SUBTYPE_FIXED

    @property
    def is_deadline(self) -> bool:
        return self.subtype == SUBTYPE_PROCEDURAL_DEADLINE

    @property
    def ref(self) -> OccurrenceRef:
        """Tagged reference used by commands."""
        if self.is_virtual:
            return parse_ref(self.id)
        return ConcreteRef(id=self.id)


class AgendaQuery(BaseModel):
    """Immutable, serializable description of an agenda view.

    A query whose window is a single day is a day view and sorts by urgency
    first; longer windows sort by start.
    """

    office_id: str
    window_start: date
    window_end: date
    kinds: frozenset[EntityKind] = frozenset()
    statuses: frozenset[str] = frozenset()
    priorities: frozenset[Priority] = frozenset()
    assignee_id: Optional[str] = None
    overdue: bool = False
    due_today: bool = False

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_window(self) -> "AgendaQuery":
        if self.window_end < self.window_start:
            raise ValueError("window_end must not be before window_start")
        return self

    @classmethod
    def for_day(cls, office_id: str, day: date, **filters: Any) -> "AgendaQuery":
        return cls(office_id=office_id, window_start=day, window_end=day, **filters)

    @property
    def is_day_view(self) -> bool:
        return self.window_start == self.window_end


@dataclass(frozen=True)
class AgendaStatistics:
    """Counters shown above an agenda list."""

    total: int
    tasks: int
    hearings: int
    events: int
    pending: int
    critical: int


@dataclass(frozen=True)
class Direct:
    """Reschedule that can be applied without confirmation."""

    task_id: str
    new_start: datetime


@dataclass(frozen=True)
class RequiresConfirmation:
    """Reschedule that would pass the fixed deadline.

    ``suggested_deadline`` keeps the original start-to-deadline distance.
    """

    task_id: str
    new_start: datetime
    current_deadline: datetime
    suggested_deadline: datetime
    lead_days: int


RescheduleDecision = Union[Direct, RequiresConfirmation]


@dataclass(frozen=True)
class DeadlineChange:
    """Pending change of a task's fixed deadline; always needs confirmation."""

    task_id: str
    current_deadline: Optional[datetime]
    new_deadline: datetime
