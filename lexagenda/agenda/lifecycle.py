"""Task status transitions."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..exceptions import CompletionPreconditionError, ImmutableSchedule, InvalidTransition
from ..store.database import DatabaseManager
from ..store.models import TaskRecord, TaskStatus
from ..utils.helpers import Clock

logger = logging.getLogger(__name__)

# Kanban columns a task can be dragged between without completing it
BOARD_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.PAUSED})


class CompletionOutcome(Enum):
    """How the completion precondition was satisfied."""

    DIRECT = "direct"
    HOURS_ENTERED = "hours_entered"
    CONFIRMED_WITHOUT_HOURS = "confirmed_without_hours"


@dataclass(frozen=True)
class CompletionGrant:
    """Proof that a task passed its completion precondition."""

    task_id: str
    outcome: CompletionOutcome
    entry_id: Optional[str] = None


class TaskLifecycleMachine:
    """Owns a task's ``status``, ``completed_at`` and fixed-task status date."""

    def __init__(
        self,
        database: DatabaseManager,
        clock: Clock,
        on_write: Optional[Callable[[str], None]] = None,
    ):
        """Initialize the machine.

        Args:
            database: Storage for task rows
            clock: Office wall-clock time source
            on_write: Called with the task id after every status write attempt
        """
        self.database = database
        self.clock = clock
        self.on_write = on_write

    def effective_status(self, task: TaskRecord) -> TaskStatus:
        """Status as seen today; fixed tasks start every day as pending."""
        if task.is_fixed and task.fixed_status_date != self.clock().date():
            return TaskStatus.PENDING
        return task.status

    @staticmethod
    def ensure_schedulable(task: TaskRecord) -> None:
        """Reject date changes on fixed tasks.

        Raises:
            ImmutableSchedule: If the task is a fixed task
        """
        if task.is_fixed:
            raise ImmutableSchedule(f"Fixed task {task.id} cannot change dates", task.id)

    async def _write_status(
        self, task: TaskRecord, status: TaskStatus, completed: bool
    ) -> TaskRecord:
        now = self.clock()
        updates: dict = {"status": status, "completed_at": now if completed else None}
        if task.is_fixed:
            updates["fixed_status_date"] = now.date()

        updated = task.model_copy(update=updates)
        try:
            await self.database.update_task_status(
                task.id, status, updates["completed_at"], updates.get("fixed_status_date")
            )
        finally:
            if self.on_write is not None:
                self.on_write(task.id)
        logger.info(f"Task {task.id} status {task.status.value} -> {status.value}")
        return updated

    async def complete(
        self, task: TaskRecord, grant: Optional[CompletionGrant] = None
    ) -> TaskRecord:
        """Mark a task completed.

        Tasks linked to a case or consultation need a grant from the time-entry
        step; unlinked tasks complete directly.

        Args:
            task: Task to complete
            grant: Completion grant issued for this task

        Returns:
            Updated task with ``completed_at`` set

        Raises:
            InvalidTransition: If the task is already completed
            CompletionPreconditionError: If a linked task has no matching grant
        """
        if self.effective_status(task) == TaskStatus.COMPLETED:
            raise InvalidTransition(f"Task {task.id} is already completed", task.id)

        if grant is not None and grant.task_id != task.id:
            raise CompletionPreconditionError(
                f"Completion grant for {grant.task_id} used on task {task.id}", task.id
            )
        if task.has_billable_link and (grant is None or grant.outcome == CompletionOutcome.DIRECT):
            raise CompletionPreconditionError(
                f"Task {task.id} is linked to a case or consultation and needs a time entry step",
                task.id,
            )

        return await self._write_status(task, TaskStatus.COMPLETED, completed=True)

    async def reopen(self, task: TaskRecord) -> TaskRecord:
        """Move a completed task back to pending, clearing ``completed_at``.

        Raises:
            InvalidTransition: If the task is not completed
        """
        if self.effective_status(task) != TaskStatus.COMPLETED:
            raise InvalidTransition(f"Task {task.id} is not completed", task.id)
        return await self._write_status(task, TaskStatus.PENDING, completed=False)

    async def move(self, task: TaskRecord, target: TaskStatus) -> TaskRecord:
        """Move a task between board columns without completing it.

        Raises:
            InvalidTransition: If ``target`` is not a board column
        """
        if target not in BOARD_STATUSES:
            raise InvalidTransition(
                f"Task {task.id} cannot be moved to {target.value}; use complete instead",
                task.id,
            )
        if self.effective_status(task) == target:
            logger.debug(f"Task {task.id} already {target.value}")
            return task
        return await self._write_status(task, target, completed=False)
