"""Consolidated agenda view over tasks, hearings, events and recurrence rules."""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from ..config.settings import SchedulingSettings
from ..recurrence.expander import RecurrenceExpander
from ..recurrence.identifiers import VirtualRef
from ..recurrence.materializer import build_occurrence
from ..store.database import DatabaseManager
from ..store.models import (
    EntityKind,
    EventRecord,
    EventStatus,
    HearingRecord,
    HearingStatus,
    Priority,
    RecurrenceRule,
    TaskRecord,
    TaskStatus,
)
from ..utils.helpers import Clock
from .models import AgendaItem, AgendaQuery, AgendaStatistics, Urgency

logger = logging.getLogger(__name__)

_CANCELLED_STATUSES = frozenset({EventStatus.CANCELLED.value, HearingStatus.CANCELLED.value})

# Display order within a day: hearings, deadlines, tasks, events
_HEARING_RANK = 0
_DEADLINE_RANK = 1
_TASK_RANK = 2
_EVENT_RANK = 3


def item_from_task(task: TaskRecord, today: date) -> AgendaItem:
    """Project a task row into an agenda item.

    Fixed tasks are shown on ``today`` and read as pending on any day after
    their last status change.
    """
    start = task.start
    status = task.status.value
    if task.is_fixed:
        start = datetime.combine(today, task.start.time())
        if task.fixed_status_date != today:
            status = TaskStatus.PENDING.value

    return AgendaItem(
        id=task.id,
        kind=EntityKind.TASK,
        subtype=task.subtype,
        title=task.title,
        description=task.description,
        start=start,
        all_day=task.all_day,
        location=task.location,
        office_id=task.office_id,
        assignee_ids=task.assignee_ids,
        assignee_name=task.assignee_name,
        case_id=task.case_id,
        case_number=task.case_number,
        consultation_id=task.consultation_id,
        status=status,
        priority=task.priority,
        fixed_deadline=task.fixed_deadline,
        recurrence_id=task.recurrence_id,
        source_date=task.source_date,
    )


def item_from_event(event: EventRecord) -> AgendaItem:
    return AgendaItem(
        id=event.id,
        kind=EntityKind.EVENT,
        subtype=event.subtype,
        title=event.title,
        description=event.description,
        start=event.start,
        end=event.end,
        all_day=event.all_day,
        location=event.location,
        office_id=event.office_id,
        assignee_ids=event.assignee_ids,
        assignee_name=event.assignee_name,
        case_id=event.case_id,
        case_number=event.case_number,
        consultation_id=event.consultation_id,
        status=event.status.value,
        priority=event.priority,
        fixed_deadline=event.fixed_deadline,
        recurrence_id=event.recurrence_id,
        source_date=event.source_date,
    )


def item_from_hearing(hearing: HearingRecord) -> AgendaItem:
    return AgendaItem(
        id=hearing.id,
        kind=EntityKind.HEARING,
        subtype="hearing",
        title=hearing.title,
        description=hearing.description,
        start=hearing.start,
        end=hearing.end,
        location=hearing.location,
        office_id=hearing.office_id,
        assignee_ids=hearing.assignee_ids,
        assignee_name=hearing.assignee_name,
        case_id=hearing.case_id,
        case_number=hearing.case_number,
        status=hearing.status.value,
    )


def item_from_virtual(rule: RecurrenceRule, ref: VirtualRef, today: date) -> AgendaItem:
    """Project a not-yet-materialized occurrence into an agenda item."""
    record = build_occurrence(rule, ref.day)
    if isinstance(record, TaskRecord):
        item = item_from_task(record, today)
    else:
        item = item_from_event(record)
    return item.model_copy(update={"id": ref.id, "is_virtual": True})


def _reference_day(item: AgendaItem) -> date:
    """Day compared against today: the fixed deadline when present, else the start."""
    if item.fixed_deadline is not None:
        return item.fixed_deadline.date()
    return item.start.date()


def is_overdue(item: AgendaItem, today: date) -> bool:
    return not item.is_done and _reference_day(item) < today


def is_due_today(item: AgendaItem, today: date) -> bool:
    return not item.is_done and _reference_day(item) == today


def urgency_of(item: AgendaItem, today: date) -> Urgency:
    """Urgency rank from the fixed deadline.

    Only tasks and procedural deadlines carrying a fixed deadline are ever
    urgent; an item without one ranks ``Urgency.NONE`` whatever its start.
    """
    if item.kind != EntityKind.TASK and not item.is_deadline:
        return Urgency.NONE
    if item.fixed_deadline is None:
        return Urgency.NONE
    if is_overdue(item, today):
        return Urgency.OVERDUE
    if is_due_today(item, today):
        return Urgency.DUE_TODAY
    return Urgency.NONE


def kind_rank(item: AgendaItem) -> int:
    if item.kind == EntityKind.HEARING:
        return _HEARING_RANK
    if item.is_deadline:
        return _DEADLINE_RANK
    if item.kind == EntityKind.TASK:
        return _TASK_RANK
    return _EVENT_RANK


class AgendaConsolidator:
    """Merges persisted rows and virtual occurrences into one ordered agenda.

    The consolidator holds no state of its own and never writes; turning a
    virtual occurrence into a row is the materializer's job.
    """

    def __init__(
        self,
        database: DatabaseManager,
        expander: RecurrenceExpander,
        clock: Clock,
        settings: Optional[SchedulingSettings] = None,
    ):
        self.database = database
        self.expander = expander
        self.clock = clock
        self.settings = settings or SchedulingSettings()

    async def list_agenda(self, query: AgendaQuery) -> list[AgendaItem]:
        """Build the agenda for a query.

        Args:
            query: Office, window and filters of the view

        Returns:
            Filtered items, urgency-sorted for day views and start-sorted otherwise
        """
        today = self.clock().date()
        items = await self._collect(query, today)

        selected = [item for item in items if self._matches(item, query, today)]
        ordered = self.sort(selected, today, day_view=query.is_day_view)
        logger.debug(
            f"Agenda for {query.office_id} {query.window_start}..{query.window_end}: "
            f"{len(ordered)} of {len(items)} items"
        )
        return ordered

    async def _collect(self, query: AgendaQuery, today: date) -> list[AgendaItem]:
        start, end = query.window_start, query.window_end
        shows_today = start <= today <= end

        tasks = await self.database.list_tasks(query.office_id, start, end, include_fixed=shows_today)
        events = await self.database.list_events(query.office_id, start, end)
        hearings = await self.database.list_hearings(query.office_id, start, end)

        # Fixed tasks are pinned to today and only shown in views containing it
        items = [item_from_task(task, today) for task in tasks if shows_today or not task.is_fixed]
        items.extend(item_from_event(event) for event in events)
        items.extend(item_from_hearing(hearing) for hearing in hearings)

        rules = await self.database.list_rules(query.office_id, active_only=True)
        if rules:
            materialized = await self.database.materialized_dates(query.office_id, start, end)
            rules_by_id = {rule.id: rule for rule in rules}
            virtual_count = 0
            for ref in self.expander.expand_all(rules, start, end):
                if (ref.recurrence_id, ref.day) in materialized:
                    continue
                items.append(item_from_virtual(rules_by_id[ref.recurrence_id], ref, today))
                virtual_count += 1
            logger.debug(f"Added {virtual_count} virtual occurrences from {len(rules)} rules")

        return items

    def _matches(self, item: AgendaItem, query: AgendaQuery, today: date) -> bool:
        if query.kinds and item.kind not in query.kinds:
            return False
        if query.statuses:
            if item.status not in query.statuses:
                return False
        elif item.status in _CANCELLED_STATUSES:
            return False
        if query.priorities and item.priority not in query.priorities:
            return False
        # Items without assignees stay visible to everyone
        if query.assignee_id and item.assignee_ids and query.assignee_id not in item.assignee_ids:
            return False
        if query.overdue and not is_overdue(item, today):
            return False
        if query.due_today and not is_due_today(item, today):
            return False
        return True

    @staticmethod
    def sort(items: list[AgendaItem], today: date, day_view: bool = True) -> list[AgendaItem]:
        """Order items for display.

        Day views sort by urgency, then kind (hearing, deadline, task,
        event), then start. Range views sort by start.
        """
        if day_view:
            return sorted(
                items,
                key=lambda item: (urgency_of(item, today), kind_rank(item), item.start, item.id),
            )
        return sorted(items, key=lambda item: (item.start, kind_rank(item), item.id))

    def statistics(self, items: list[AgendaItem]) -> AgendaStatistics:
        """Count items for the agenda header.

        Critical items are unfinished high-priority tasks and unfinished items
        whose fixed deadline falls within ``critical_deadline_days``.
        """
        today = self.clock().date()
        horizon = today + timedelta(days=self.settings.critical_deadline_days)

        def is_critical(item: AgendaItem) -> bool:
            if item.is_done:
                return False
            if item.kind == EntityKind.TASK and item.priority == Priority.HIGH:
                return True
            return item.fixed_deadline is not None and item.fixed_deadline.date() <= horizon

        return AgendaStatistics(
            total=len(items),
            tasks=sum(1 for item in items if item.kind == EntityKind.TASK),
            hearings=sum(1 for item in items if item.kind == EntityKind.HEARING),
            events=sum(1 for item in items if item.kind == EntityKind.EVENT),
            pending=sum(1 for item in items if item.status == TaskStatus.PENDING.value),
            critical=sum(1 for item in items if is_critical(item)),
        )
