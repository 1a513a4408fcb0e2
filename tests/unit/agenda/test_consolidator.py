"""Unit tests for the consolidated agenda view."""

from datetime import date, datetime
from itertools import permutations
from typing import Any, Callable

import pytest

from lexagenda.agenda.consolidator import AgendaConsolidator, item_from_task, urgency_of
from lexagenda.agenda.models import AgendaItem, AgendaQuery, Urgency
from lexagenda.recurrence.expander import RecurrenceExpander
from lexagenda.recurrence.identifiers import format_virtual_id, is_virtual_id
from lexagenda.recurrence.materializer import OccurrenceMaterializer
from lexagenda.store.database import DatabaseManager
from lexagenda.store.models import (
    EntityKind,
    EventRecord,
    EventStatus,
    HearingRecord,
    Priority,
    RecurrenceRule,
    TaskRecord,
    TaskStatus,
)

TaskFactory = Callable[..., TaskRecord]
RuleFactory = Callable[..., RecurrenceRule]

OFFICE = "office-1"
TODAY = date(2024, 1, 10)


@pytest.fixture
def consolidator(database: DatabaseManager, clock: Any) -> AgendaConsolidator:
    return AgendaConsolidator(database, RecurrenceExpander(), clock)


def _event(**overrides: Any) -> EventRecord:
    values: dict[str, Any] = {"office_id": OFFICE, "title": "Partners meeting", "start": datetime(2024, 1, 10, 7, 0)}
    values.update(overrides)
    return EventRecord(**values)


class TestVirtualOccurrences:
    """Test merging of expanded rules with persisted rows."""

    @pytest.mark.asyncio
    async def test_list_when_rule_active_then_virtual_items_included(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_rule: RuleFactory
    ) -> None:
        rule = make_rule()
        await database.insert_rule(rule)

        items = await consolidator.list_agenda(
            AgendaQuery(office_id=OFFICE, window_start=date(2024, 1, 8), window_end=date(2024, 1, 9))
        )

        assert [item.id for item in items] == [
            format_virtual_id(rule.id, date(2024, 1, 8)),
            format_virtual_id(rule.id, date(2024, 1, 9)),
        ]
        assert all(item.is_virtual for item in items)

    @pytest.mark.asyncio
    async def test_list_when_occurrence_materialized_then_shown_once(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_rule: RuleFactory
    ) -> None:
        rule = make_rule()
        await database.insert_rule(rule)
        row_id = await OccurrenceMaterializer(database).materialize(format_virtual_id(rule.id, TODAY))

        items = await consolidator.list_agenda(AgendaQuery.for_day(OFFICE, TODAY))

        assert [item.id for item in items] == [row_id]
        assert items[0].is_virtual is False

    @pytest.mark.asyncio
    async def test_list_when_materialized_row_moved_then_virtual_twin_suppressed(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_rule: RuleFactory
    ) -> None:
        rule = make_rule()
        await database.insert_rule(rule)
        row_id = await OccurrenceMaterializer(database).materialize(format_virtual_id(rule.id, TODAY))
        await database.update_task_schedule(row_id, datetime(2024, 1, 20, 9, 0), None)

        today_items = await consolidator.list_agenda(AgendaQuery.for_day(OFFICE, TODAY))
        moved_items = await consolidator.list_agenda(AgendaQuery.for_day(OFFICE, date(2024, 1, 20)))

        assert today_items == []
        assert [item.id for item in moved_items] == [row_id] + [
            format_virtual_id(rule.id, date(2024, 1, 20))
        ]

    @pytest.mark.asyncio
    async def test_list_when_rule_inactive_then_no_virtual_items(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_rule: RuleFactory
    ) -> None:
        await database.insert_rule(make_rule(active=False))

        assert await consolidator.list_agenda(AgendaQuery.for_day(OFFICE, TODAY)) == []


class TestAgendaOrdering:
    """Test day-view urgency ordering and range-view start ordering."""

    @pytest.mark.asyncio
    async def test_list_when_day_view_then_urgency_then_kind_then_start(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_task: TaskFactory
    ) -> None:
        overdue = make_task(title="Overdue", start=datetime(2024, 1, 10, 15, 0), fixed_deadline=datetime(2024, 1, 8))
        due_today = make_task(
            title="Due today", start=datetime(2024, 1, 10, 11, 0), fixed_deadline=datetime(2024, 1, 10)
        )
        plain = make_task(title="Plain task", start=datetime(2024, 1, 10, 8, 0))
        deadline = _event(
            title="Reply deadline",
            subtype="procedural_deadline",
            start=datetime(2024, 1, 10, 18, 0),
            fixed_deadline=datetime(2024, 1, 10, 18, 0),
        )
        hearing = HearingRecord(office_id=OFFICE, title="Hearing", start=datetime(2024, 1, 10, 8, 0))
        meeting = _event(title="Meeting", start=datetime(2024, 1, 10, 7, 0))
        await database.insert_task(overdue)
        await database.insert_task(due_today)
        await database.insert_task(plain)
        await database.insert_event(deadline)
        await database.insert_hearing(hearing)
        await database.insert_event(meeting)

        items = await consolidator.list_agenda(AgendaQuery.for_day(OFFICE, TODAY))

        assert [item.title for item in items] == [
            "Overdue",
            "Reply deadline",
            "Due today",
            "Hearing",
            "Plain task",
            "Meeting",
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("insertion_order", list(permutations(range(3))))
    async def test_list_when_inserted_in_any_order_then_overdue_task_hearing_event(
        self,
        consolidator: AgendaConsolidator,
        database: DatabaseManager,
        make_task: TaskFactory,
        insertion_order: tuple[int, ...],
    ) -> None:
        overdue_task = make_task(
            title="Overdue task", start=datetime(2024, 1, 10, 17, 0), fixed_deadline=datetime(2024, 1, 9)
        )
        hearing = HearingRecord(office_id=OFFICE, title="Hearing", start=datetime(2024, 1, 10, 14, 0))
        event = _event(title="Event", start=datetime(2024, 1, 10, 8, 0))
        inserts = [
            lambda: database.insert_task(overdue_task),
            lambda: database.insert_hearing(hearing),
            lambda: database.insert_event(event),
        ]
        for index in insertion_order:
            await inserts[index]()

        items = await consolidator.list_agenda(AgendaQuery.for_day(OFFICE, TODAY))

        assert [item.title for item in items] == ["Overdue task", "Hearing", "Event"]

    @pytest.mark.asyncio
    async def test_list_when_range_view_then_sorted_by_start(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_task: TaskFactory
    ) -> None:
        later = make_task(title="Later", start=datetime(2024, 1, 12, 9, 0))
        earlier = make_task(title="Earlier", start=datetime(2024, 1, 9, 9, 0), fixed_deadline=datetime(2024, 1, 9))
        await database.insert_task(later)
        await database.insert_task(earlier)

        items = await consolidator.list_agenda(
            AgendaQuery(office_id=OFFICE, window_start=date(2024, 1, 8), window_end=date(2024, 1, 14))
        )

        assert [item.title for item in items] == ["Earlier", "Later"]

    def test_urgency_of_when_event_in_past_then_never_urgent(self) -> None:
        item = AgendaItem(
            id="e1",
            kind=EntityKind.EVENT,
            title="Old meeting",
            start=datetime(2024, 1, 1, 9, 0),
            office_id=OFFICE,
            status=EventStatus.SCHEDULED.value,
        )

        assert urgency_of(item, TODAY) == Urgency.NONE

    @pytest.mark.parametrize("start", [datetime(2024, 1, 3, 9, 0), datetime(2024, 1, 10, 8, 0)])
    def test_urgency_of_when_task_has_no_deadline_then_none(
        self, make_task: TaskFactory, start: datetime
    ) -> None:
        task = make_task(start=start)

        assert urgency_of(item_from_task(task, TODAY), TODAY) == Urgency.NONE

    def test_urgency_of_when_task_completed_then_not_overdue(self, make_task: TaskFactory) -> None:
        task = make_task(start=datetime(2024, 1, 1, 9, 0), status=TaskStatus.COMPLETED)

        assert urgency_of(item_from_task(task, TODAY), TODAY) == Urgency.NONE


class TestFixedTasks:
    """Test daily fixed tasks pinned to today."""

    @pytest.mark.asyncio
    async def test_list_when_fixed_task_then_shown_today_as_pending(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_task: TaskFactory
    ) -> None:
        fixed = make_task(
            subtype="fixed",
            start=datetime(2023, 6, 1, 8, 0),
            status=TaskStatus.COMPLETED,
            fixed_status_date=date(2024, 1, 9),
        )
        await database.insert_task(fixed)

        items = await consolidator.list_agenda(AgendaQuery.for_day(OFFICE, TODAY))

        assert len(items) == 1
        assert items[0].start == datetime(2024, 1, 10, 8, 0)
        assert items[0].status == TaskStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_list_when_fixed_task_stamped_today_then_status_kept(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_task: TaskFactory
    ) -> None:
        fixed = make_task(
            subtype="fixed",
            start=datetime(2023, 6, 1, 8, 0),
            status=TaskStatus.COMPLETED,
            fixed_status_date=TODAY,
        )
        await database.insert_task(fixed)

        items = await consolidator.list_agenda(AgendaQuery.for_day(OFFICE, TODAY))

        assert items[0].status == TaskStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_list_when_window_excludes_today_then_fixed_task_hidden(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_task: TaskFactory
    ) -> None:
        await database.insert_task(make_task(subtype="fixed", start=datetime(2024, 1, 11, 8, 0)))

        items = await consolidator.list_agenda(
            AgendaQuery(office_id=OFFICE, window_start=date(2024, 1, 11), window_end=date(2024, 1, 12))
        )

        assert items == []


class TestAgendaFilters:
    """Test query filters."""

    @pytest.mark.asyncio
    async def test_list_when_cancelled_then_hidden_unless_requested(
        self, consolidator: AgendaConsolidator, database: DatabaseManager
    ) -> None:
        await database.insert_event(_event(status=EventStatus.CANCELLED))

        default = await consolidator.list_agenda(AgendaQuery.for_day(OFFICE, TODAY))
        requested = await consolidator.list_agenda(
            AgendaQuery.for_day(OFFICE, TODAY, statuses=frozenset({"cancelled"}))
        )

        assert default == []
        assert len(requested) == 1

    @pytest.mark.asyncio
    async def test_list_when_assignee_filter_then_unassigned_items_kept(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_task: TaskFactory
    ) -> None:
        mine = make_task(title="Mine", assignee_ids=["u1"])
        theirs = make_task(title="Theirs", assignee_ids=["u2"])
        shared = make_task(title="Unassigned")
        for task in (mine, theirs, shared):
            await database.insert_task(task)

        items = await consolidator.list_agenda(AgendaQuery.for_day(OFFICE, TODAY, assignee_id="u1"))

        assert sorted(item.title for item in items) == ["Mine", "Unassigned"]

    @pytest.mark.asyncio
    async def test_list_when_kind_and_priority_filters_then_combined(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_task: TaskFactory
    ) -> None:
        await database.insert_task(make_task(title="Urgent", priority=Priority.HIGH))
        await database.insert_task(make_task(title="Routine", priority=Priority.LOW))
        await database.insert_event(_event(priority=Priority.HIGH))

        items = await consolidator.list_agenda(
            AgendaQuery.for_day(
                OFFICE,
                TODAY,
                kinds=frozenset({EntityKind.TASK}),
                priorities=frozenset({Priority.HIGH}),
            )
        )

        assert [item.title for item in items] == ["Urgent"]

    @pytest.mark.asyncio
    async def test_list_when_overdue_filter_then_only_overdue(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_task: TaskFactory
    ) -> None:
        await database.insert_task(make_task(title="Late", fixed_deadline=datetime(2024, 1, 9)))
        await database.insert_task(make_task(title="On time"))

        items = await consolidator.list_agenda(AgendaQuery.for_day(OFFICE, TODAY, overdue=True))

        assert [item.title for item in items] == ["Late"]

    @pytest.mark.asyncio
    async def test_list_when_due_today_filter_then_deadline_or_start_today(
        self, consolidator: AgendaConsolidator, database: DatabaseManager, make_task: TaskFactory
    ) -> None:
        await database.insert_task(
            make_task(title="Due", start=datetime(2024, 1, 8, 9, 0), fixed_deadline=datetime(2024, 1, 10))
        )
        await database.insert_task(
            make_task(title="Late", start=datetime(2024, 1, 8, 9, 0), fixed_deadline=datetime(2024, 1, 9))
        )
        await database.insert_task(make_task(title="Starts today", start=datetime(2024, 1, 10, 14, 0)))
        await database.insert_task(make_task(title="Tomorrow", start=datetime(2024, 1, 11, 9, 0)))
        await database.insert_task(
            make_task(
                title="Done",
                start=datetime(2024, 1, 9, 9, 0),
                fixed_deadline=datetime(2024, 1, 10),
                status=TaskStatus.COMPLETED,
            )
        )

        items = await consolidator.list_agenda(
            AgendaQuery(
                office_id=OFFICE,
                window_start=date(2024, 1, 8),
                window_end=date(2024, 1, 12),
                due_today=True,
            )
        )

        assert sorted(item.title for item in items) == ["Due", "Starts today"]


class TestAgendaStatistics:
    def test_statistics_when_mixed_items_then_counts_critical(
        self, consolidator: AgendaConsolidator, make_task: TaskFactory
    ) -> None:
        items = [
            item_from_task(make_task(priority=Priority.HIGH), TODAY),
            item_from_task(make_task(fixed_deadline=datetime(2024, 1, 12)), TODAY),
            item_from_task(make_task(fixed_deadline=datetime(2024, 1, 20)), TODAY),
            item_from_task(make_task(priority=Priority.HIGH, status=TaskStatus.COMPLETED), TODAY),
        ]

        stats = consolidator.statistics(items)

        assert stats.total == 4
        assert stats.tasks == 4
        assert stats.pending == 3
        assert stats.critical == 2

    def test_item_ref_when_virtual_then_parses_back(self, make_rule: RuleFactory) -> None:
        rule = make_rule()
        item = AgendaItem(
            id=format_virtual_id(rule.id, TODAY),
            kind=EntityKind.TASK,
            title=rule.title,
            start=datetime(2024, 1, 10, 9, 0),
            office_id=OFFICE,
            status="pending",
            is_virtual=True,
        )

        assert is_virtual_id(item.id)
        assert item.ref.recurrence_id == rule.id
        assert item.ref.day == TODAY
