"""Agenda command handlers.

Each command resolves occurrence references to row ids, delegates to the
cascade solver, lifecycle machine or reconciler, and invalidates the read
model before returning.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from ..config.settings import LexAgendaSettings, get_settings
from ..exceptions import EntityNotFound, InvalidTransition, RecurrenceNotFound
from ..recurrence.expander import RecurrenceExpander
from ..recurrence.identifiers import ConcreteRef, OccurrenceRef, VirtualRef, parse_ref
from ..recurrence.materializer import OccurrenceMaterializer
from ..store.database import DatabaseManager
from ..store.models import (
    EntityKind,
    EventRecord,
    EventStatus,
    HearingRecord,
    HearingStatus,
    RecurrenceRule,
    TaskRecord,
    TaskStatus,
)
from ..store.read_model import AgendaReadModel
from ..utils.helpers import Clock, office_clock
from ..utils.logging import with_correlation_id
from .cascade import DeadlineCalculator, DeadlineCascadeSolver
from .consolidator import AgendaConsolidator
from .lifecycle import BOARD_STATUSES, TaskLifecycleMachine
from .models import (
    AgendaItem,
    AgendaQuery,
    AgendaStatistics,
    DeadlineChange,
    Direct,
    RescheduleDecision,
)
from .reconciler import (
    CompleteDirect,
    RequireTimeEntry,
    TimeReconciler,
    TimerAction,
    TimerDecisionRequired,
)

logger = logging.getLogger(__name__)


class DeleteScope(Enum):
    """Which occurrences a delete removes."""

    THIS = "this"
    ALL = "all"


@dataclass(frozen=True)
class RescheduleResult:
    """Outcome of a reschedule command.

    ``applied`` is False when the decision still needs confirmation.
    """

    decision: RescheduleDecision
    applied: bool


class AgendaService:
    """Entry point for agenda commands and queries."""

    def __init__(
        self,
        database: DatabaseManager,
        settings: Optional[LexAgendaSettings] = None,
        clock: Optional[Clock] = None,
        deadline_calculator: Optional[DeadlineCalculator] = None,
    ):
        """Wire the scheduling components around one database.

        Args:
            database: Storage shared by every component
            settings: Application settings, the global settings when omitted
            clock: Source of office wall-clock time, derived from the settings timezone when omitted
            deadline_calculator: External legal-deadline function
        """
        self.settings = settings or get_settings()
        self.clock = clock or office_clock(self.settings.timezone)
        self.database = database

        self.read_model = AgendaReadModel(database)
        self.expander = RecurrenceExpander(self.settings.scheduling)
        self.materializer = OccurrenceMaterializer(database)
        self.consolidator = AgendaConsolidator(
            database, self.expander, self.clock, self.settings.scheduling
        )
        self.cascade = DeadlineCascadeSolver(database, deadline_calculator)
        self.lifecycle = TaskLifecycleMachine(database, self.clock, on_write=self.read_model.invalidate)
        self.reconciler = TimeReconciler(database, self.lifecycle, self.clock)

    @classmethod
    def from_settings(
        cls, settings: Optional[LexAgendaSettings] = None, **kwargs
    ) -> "AgendaService":
        """Build a service on the database file named by the settings."""
        settings = settings or get_settings()
        return cls(DatabaseManager(settings.database_file), settings=settings, **kwargs)

    # Queries

    async def list_agenda(self, query: AgendaQuery) -> list[AgendaItem]:
        """Get the consolidated agenda for a query, served from the read model.

        Cached views are dropped when the office date changes.
        """
        return await self.read_model.view(
            query, lambda: self.consolidator.list_agenda(query), day=self.clock().date()
        )

    def statistics(self, items: list[AgendaItem]) -> AgendaStatistics:
        return self.consolidator.statistics(items)

    async def resolve(self, identifier: Union[str, OccurrenceRef]) -> str:
        """Resolve a raw id or occurrence reference to a persisted row id.

        Materializing a virtual occurrence is a write, so the read model is
        invalidated when one is resolved.
        """
        ref = parse_ref(identifier) if isinstance(identifier, str) else identifier
        if isinstance(ref, ConcreteRef):
            return ref.id
        async with self.read_model.mutation(ref.id, ref.recurrence_id):
            return await self.materializer.resolve(ref)

    async def get_task(self, identifier: Union[str, OccurrenceRef]) -> TaskRecord:
        """Get a task, materializing it first when given a virtual occurrence."""
        return await self.read_model.get_task(await self.resolve(identifier))

    # Creation

    async def add_task(self, task: TaskRecord) -> TaskRecord:
        async with self.read_model.mutation(task.id):
            await self.database.insert_task(task)
        return task

    async def add_event(self, event: EventRecord) -> EventRecord:
        async with self.read_model.mutation(event.id):
            await self.database.insert_event(event)
        return event

    async def add_hearing(self, hearing: HearingRecord) -> HearingRecord:
        async with self.read_model.mutation(hearing.id):
            await self.database.insert_hearing(hearing)
        return hearing

    async def add_rule(self, rule: RecurrenceRule) -> RecurrenceRule:
        """Store a recurrence rule; its occurrences appear virtually from now on."""
        async with self.read_model.mutation(rule.id):
            await self.database.insert_rule(rule)
        logger.info(f"Recurrence rule {rule.id} created for {rule.entity_kind.value}s")
        return rule

    # Reschedule

    @with_correlation_id()
    async def reschedule(
        self, identifier: Union[str, OccurrenceRef], new_start: datetime
    ) -> RescheduleResult:
        """Move a task, applying the move at once when it keeps the deadline.

        Returns:
            RescheduleResult; a RequiresConfirmation decision is not applied
            and must go through ``commit_reschedule``

        Raises:
            ImmutableSchedule: If the task is a fixed task
        """
        task = await self.get_task(identifier)
        decision = self.cascade.plan_reschedule(task, new_start)
        if not isinstance(decision, Direct):
            return RescheduleResult(decision=decision, applied=False)

        async with self.read_model.mutation(task.id):
            await self.cascade.apply(decision)
        return RescheduleResult(decision=decision, applied=True)

    @with_correlation_id()
    async def commit_reschedule(
        self, task_id: str, new_start: datetime, confirmed_deadline: datetime
    ) -> TaskRecord:
        """Write a confirmed reschedule with its confirmed deadline."""
        async with self.read_model.mutation(task_id):
            await self.cascade.commit(task_id, new_start, confirmed_deadline)
        return await self.read_model.get_task(task_id)

    async def plan_deadline_change(
        self, identifier: Union[str, OccurrenceRef], new_deadline: datetime
    ) -> DeadlineChange:
        task = await self.get_task(identifier)
        return self.cascade.plan_deadline_change(task, new_deadline)

    @with_correlation_id()
    async def commit_deadline_change(self, change: DeadlineChange) -> TaskRecord:
        async with self.read_model.mutation(change.task_id):
            await self.cascade.commit_deadline_change(change)
        return await self.read_model.get_task(change.task_id)

    # Status

    @with_correlation_id()
    async def complete(
        self, identifier: Union[str, OccurrenceRef], user_id: str
    ) -> Union[TaskRecord, RequireTimeEntry]:
        """Complete a task, or open its time-entry step when it is linked.

        Returns:
            The completed task, or RequireTimeEntry whose session finishes
            the completion
        """
        task = await self.get_task(identifier)
        plan = await self.reconciler.prepare_completion(task, user_id)
        if isinstance(plan, CompleteDirect):
            return await self.reconciler.complete_direct(plan, task)
        logger.info(f"Task {task.id} needs a time entry before completion")
        return plan

    @with_correlation_id()
    async def reopen(self, identifier: Union[str, OccurrenceRef]) -> TaskRecord:
        task = await self.get_task(identifier)
        return await self.lifecycle.reopen(task)

    @with_correlation_id()
    async def move_task(
        self,
        identifier: Union[str, OccurrenceRef],
        target: TaskStatus,
        user_id: str,
        timer_action: Optional[TimerAction] = None,
    ) -> Union[TaskRecord, TimerDecisionRequired]:
        """Move a task between board columns, with the matching timer side effects.

        Returns:
            The updated task, or TimerDecisionRequired when moving back to
            pending needs a pause-or-discard answer; nothing changes then
        """
        if target not in BOARD_STATUSES:
            raise InvalidTransition(f"Tasks cannot be moved to {target.value}; use complete")

        task = await self.get_task(identifier)
        decision = await self.reconciler.on_board_move(task, target, user_id, timer_action)
        if decision is not None:
            return decision
        return await self.lifecycle.move(task, target)

    @with_correlation_id()
    async def complete_event(self, event_id: str) -> EventRecord:
        event_id = await self.resolve(event_id)
        event = await self.read_model.get_event(event_id)
        done = event.model_copy(update={"status": EventStatus.DONE})
        async with self.read_model.mutation(event_id):
            await self.database.update_event(done)
        return done

    @with_correlation_id()
    async def complete_hearing(self, hearing_id: str) -> HearingRecord:
        hearing = await self.read_model.get_hearing(hearing_id)
        held = hearing.model_copy(update={"status": HearingStatus.HELD})
        async with self.read_model.mutation(hearing_id):
            await self.database.update_hearing(held)
        return held

    # Deletion

    @with_correlation_id()
    async def delete_occurrence(
        self, identifier: Union[str, OccurrenceRef], scope: DeleteScope
    ) -> None:
        """Delete one occurrence, or stop a rule from producing any more.

        ``THIS`` removes the row (if materialized) and excludes its date from
        the rule. ``ALL`` deactivates the rule for good and leaves existing
        rows in place. Non-recurring rows are simply deleted.

        Raises:
            RecurrenceNotFound: If a virtual occurrence's rule does not exist
            EntityNotFound: If a concrete row does not exist
        """
        ref = parse_ref(identifier) if isinstance(identifier, str) else identifier
        if isinstance(ref, VirtualRef):
            await self._delete_virtual(ref, scope)
        else:
            await self._delete_concrete(ref.id, scope)

    async def _delete_virtual(self, ref: VirtualRef, scope: DeleteScope) -> None:
        rule = await self.database.get_rule(ref.recurrence_id)
        if rule is None:
            raise RecurrenceNotFound(f"Recurrence rule {ref.recurrence_id} not found", ref.recurrence_id)

        async with self.read_model.mutation(rule.id, ref.id):
            if scope == DeleteScope.ALL:
                await self._deactivate(rule.id, rule.active)
            else:
                await self.database.add_exclusion(rule.id, ref.day)
                logger.info(f"Occurrence {ref.day} removed from rule {rule.id}")

    async def _delete_concrete(self, row_id: str, scope: DeleteScope) -> None:
        kind, record = await self._find_row(row_id)
        rule_id = getattr(record, "recurrence_id", None)
        source_date = getattr(record, "source_date", None)

        async with self.read_model.mutation(row_id, *([rule_id] if rule_id else [])):
            if rule_id is None:
                await self.database.delete_row(kind, row_id)
                logger.info(f"Deleted {kind.value} {row_id}")
            elif scope == DeleteScope.ALL:
                rule = await self.database.get_rule(rule_id)
                await self._deactivate(rule_id, rule.active if rule else False)
            else:
                await self.database.delete_occurrence(
                    kind, row_id, rule_id, source_date or record.start.date()
                )
                logger.info(f"Deleted occurrence {row_id} of rule {rule_id}")

    async def _deactivate(self, rule_id: str, active: bool) -> None:
        if not active:
            logger.debug(f"Recurrence rule {rule_id} already inactive")
            return
        await self.database.deactivate_rule(rule_id)

    async def _find_row(
        self, row_id: str
    ) -> tuple[EntityKind, Union[TaskRecord, EventRecord, HearingRecord]]:
        task = await self.database.get_task(row_id)
        if task is not None:
            return EntityKind.TASK, task
        event = await self.database.get_event(row_id)
        if event is not None:
            return EntityKind.EVENT, event
        hearing = await self.database.get_hearing(row_id)
        if hearing is not None:
            return EntityKind.HEARING, hearing
        raise EntityNotFound(f"No task, event or hearing with id {row_id}", row_id)
