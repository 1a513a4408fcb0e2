"""Deadline cascade: reschedules that would pass a task's fixed deadline."""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from ..exceptions import ConfigurationError, EntityNotFound, ImmutableSchedule, InvalidTransition
from ..store.database import DatabaseManager
from ..store.models import TaskRecord
from .models import DeadlineChange, Direct, RequiresConfirmation, RescheduleDecision

logger = logging.getLogger(__name__)

# (intimation date, day count, business days only) -> limit date
DeadlineCalculator = Callable[[date, int, bool], date]


def lead_days(original_start: datetime, deadline: datetime) -> int:
    """Whole days originally kept between a task's start and its deadline."""
    return max(0, (deadline.date() - original_start.date()).days)


class DeadlineCascadeSolver:
    """Plans and commits reschedules without silently passing fixed deadlines.

    Moves are two-phase: ``plan_reschedule`` decides, and a move past the
    deadline is only written by ``commit`` once the caller has confirmed a
    deadline for it.
    """

    def __init__(
        self, database: DatabaseManager, deadline_calculator: Optional[DeadlineCalculator] = None
    ):
        """Initialize the solver.

        Args:
            database: Storage for task rows
            deadline_calculator: External function computing legal deadlines
        """
        self.database = database
        self.deadline_calculator = deadline_calculator

    def plan_reschedule(self, task: TaskRecord, new_start: datetime) -> RescheduleDecision:
        """Decide how a task can be moved to ``new_start``.

        Args:
            task: Task being moved
            new_start: Requested start

        Returns:
            Direct when the deadline is untouched, RequiresConfirmation with a
            suggested deadline keeping the original lead time otherwise

        Raises:
            ImmutableSchedule: If the task is a fixed task
        """
        if task.is_fixed:
            raise ImmutableSchedule(f"Fixed task {task.id} cannot be rescheduled", task.id)

        deadline = task.fixed_deadline
        if deadline is None or new_start.date() <= deadline.date():
            return Direct(task_id=task.id, new_start=new_start)

        days = lead_days(task.start, deadline)
        suggested = new_start + timedelta(days=days)
        logger.info(
            f"Moving task {task.id} to {new_start.date()} passes its deadline "
            f"{deadline.date()}; suggesting {suggested.date()} ({days} days lead)"
        )
        return RequiresConfirmation(
            task_id=task.id,
            new_start=new_start,
            current_deadline=deadline,
            suggested_deadline=suggested,
            lead_days=days,
        )

    async def _load_movable(self, task_id: str) -> TaskRecord:
        task = await self.database.get_task(task_id)
        if task is None:
            raise EntityNotFound(f"Task {task_id} not found", task_id)
        if task.is_fixed:
            raise ImmutableSchedule(f"Fixed task {task_id} cannot be rescheduled", task_id)
        return task

    async def apply(self, decision: RescheduleDecision) -> None:
        """Write a reschedule that needs no confirmation.

        Raises:
            InvalidTransition: If the decision still requires confirmation
        """
        if isinstance(decision, RequiresConfirmation):
            raise InvalidTransition(
                f"Moving task {decision.task_id} past its deadline requires confirmation",
                decision.task_id,
            )
        task = await self._load_movable(decision.task_id)
        await self.database.update_task_schedule(task.id, decision.new_start, task.fixed_deadline)
        logger.info(f"Task {task.id} moved to {decision.new_start.isoformat()}")

    async def commit(
        self, task_id: str, new_start: datetime, confirmed_deadline: datetime
    ) -> None:
        """Write a confirmed reschedule, start and deadline in one statement.

        Args:
            task_id: Task being moved
            new_start: Confirmed start
            confirmed_deadline: Suggested or user-overridden deadline
        """
        await self._load_movable(task_id)
        await self.database.update_task_schedule(task_id, new_start, confirmed_deadline)
        logger.info(
            f"Task {task_id} moved to {new_start.isoformat()} "
            f"with deadline {confirmed_deadline.isoformat()}"
        )

    def plan_deadline_change(self, task: TaskRecord, new_deadline: datetime) -> DeadlineChange:
        """Prepare a fixed-deadline change, which always needs confirmation.

        Raises:
            ImmutableSchedule: If the task is a fixed task
        """
        if task.is_fixed:
            raise ImmutableSchedule(f"Fixed task {task.id} cannot change dates", task.id)
        return DeadlineChange(
            task_id=task.id, current_deadline=task.fixed_deadline, new_deadline=new_deadline
        )

    async def commit_deadline_change(self, change: DeadlineChange) -> None:
        task = await self._load_movable(change.task_id)
        await self.database.update_task_schedule(task.id, task.start, change.new_deadline)
        logger.info(f"Task {task.id} deadline changed to {change.new_deadline.isoformat()}")

    def deadline_from_intimation(
        self, intimation_date: date, days: int, business_days: bool = True
    ) -> date:
        """Compute a legal deadline with the injected calculator.

        Raises:
            ConfigurationError: If no deadline calculator was provided
        """
        if self.deadline_calculator is None:
            raise ConfigurationError("No deadline calculator configured")
        return self.deadline_calculator(intimation_date, days, business_days)
