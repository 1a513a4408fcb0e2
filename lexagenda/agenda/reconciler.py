"""Timer lifecycle and the time-entry step that gates task completion."""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Union

from ..exceptions import (
    EntityNotFound,
    InvalidTimeEntry,
    InvalidTransition,
    MissingLink,
    TimerNotFound,
)
from ..store.database import DatabaseManager
from ..store.models import (
    EntryOrigin,
    TaskRecord,
    TaskStatus,
    TimerRecord,
    TimerStatus,
    TimesheetEntry,
)
from ..utils.helpers import Clock, format_duration
from .lifecycle import CompletionGrant, CompletionOutcome, TaskLifecycleMachine

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """In-flight state of a completion session."""

    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMMITTING = "committing"
    DONE = "done"
    CANCELLED = "cancelled"


class TimerAction(Enum):
    """What to do with a running timer when its task goes back to pending."""

    PAUSE = "pause"
    DISCARD = "discard"


@dataclass(frozen=True)
class CompleteDirect:
    """Completion plan for tasks without a billable link.

    An open timer on such a task is discarded, with a warning, on completion.
    """

    task_id: str
    timer_id: Optional[str] = None


@dataclass(frozen=True)
class RequireTimeEntry:
    """Completion plan for linked tasks; the session must reach a terminal state."""

    task_id: str
    session: "CompletionSession"


CompletionPlan = Union[CompleteDirect, RequireTimeEntry]


@dataclass(frozen=True)
class TimerDecisionRequired:
    """A board move needs the user to pause or discard the task's running timer."""

    task_id: str
    timer_id: str


class TimeReconciler:
    """Owns timers and is the only producer of timer-based timesheet entries."""

    def __init__(self, database: DatabaseManager, lifecycle: TaskLifecycleMachine, clock: Clock):
        self.database = database
        self.lifecycle = lifecycle
        self.clock = clock

    # Timer operations

    async def start_timer(
        self,
        office_id: str,
        user_id: str,
        title: str,
        task_id: Optional[str] = None,
        case_id: Optional[str] = None,
        consultation_id: Optional[str] = None,
        billable: bool = True,
        description: Optional[str] = None,
    ) -> TimerRecord:
        """Start a new running timer."""
        timer = TimerRecord(
            office_id=office_id,
            user_id=user_id,
            title=title,
            description=description,
            task_id=task_id,
            case_id=case_id,
            consultation_id=consultation_id,
            billable=billable,
            started_at=self.clock(),
        )
        await self.database.insert_timer(timer)
        logger.info(f"Timer {timer.id} started for {task_id or case_id or consultation_id}")
        return timer

    async def start_for_task(self, task: TaskRecord, user_id: str) -> TimerRecord:
        return await self.start_timer(
            office_id=task.office_id,
            user_id=user_id,
            title=task.title,
            task_id=task.id,
            case_id=task.case_id,
            consultation_id=task.consultation_id,
            description=f"Work on task: {task.title}",
        )

    async def _load_timer(self, timer_id: str) -> TimerRecord:
        timer = await self.database.get_timer(timer_id)
        if timer is None:
            raise TimerNotFound(f"Timer {timer_id} not found", timer_id)
        return timer

    async def pause(self, timer_id: str) -> TimerRecord:
        """Pause a running timer, banking its elapsed time."""
        timer = await self._load_timer(timer_id)
        if timer.status == TimerStatus.PAUSED:
            return timer
        paused = timer.model_copy(
            update={
                "status": TimerStatus.PAUSED,
                "accumulated_seconds": timer.elapsed_seconds(self.clock()),
            }
        )
        await self.database.update_timer(paused)
        logger.debug(f"Timer {timer_id} paused at {format_duration(paused.accumulated_seconds)}")
        return paused

    async def resume(self, timer_id: str) -> TimerRecord:
        """Resume a paused timer."""
        timer = await self._load_timer(timer_id)
        if timer.status == TimerStatus.RUNNING:
            return timer
        resumed = timer.model_copy(update={"status": TimerStatus.RUNNING, "started_at": self.clock()})
        await self.database.update_timer(resumed)
        logger.debug(f"Timer {timer_id} resumed")
        return resumed

    def elapsed_minutes(self, timer: TimerRecord) -> int:
        return round(timer.elapsed_seconds(self.clock()) / 60)

    async def finalize(
        self,
        timer_id: str,
        adjust_minutes: int = 0,
        activity: Optional[str] = None,
        billable: Optional[bool] = None,
    ) -> TimesheetEntry:
        """End a timer and record its time as a timesheet entry.

        Args:
            timer_id: Timer to finalize
            adjust_minutes: Minutes added to (or removed from) the tracked time
            activity: Entry description, the timer's title when omitted
            billable: Override of the timer's billable flag

        Returns:
            The recorded entry, at least one minute long

        Raises:
            TimerNotFound: If the timer no longer exists
            MissingLink: If the timer is not linked to a case or consultation
        """
        timer = await self._load_timer(timer_id)
        if not timer.has_billable_link:
            raise MissingLink(f"Timer {timer_id} has no case or consultation link", timer_id)

        now = self.clock()
        minutes = max(1, self.elapsed_minutes(timer) + adjust_minutes)
        entry = TimesheetEntry(
            office_id=timer.office_id,
            user_id=timer.user_id,
            task_id=timer.task_id,
            case_id=timer.case_id,
            consultation_id=timer.consultation_id,
            work_date=now.date(),
            minutes=minutes,
            billable=timer.billable if billable is None else billable,
            activity=activity or timer.description or timer.title,
            origin=EntryOrigin.TIMER,
            created_at=now,
        )
        await self.database.finalize_timer(timer_id, entry)
        logger.info(f"Timer {timer_id} finalized: {minutes} minutes recorded")
        return entry

    async def discard(self, timer_id: str) -> None:
        """Delete a timer; its tracked time is lost."""
        await self.database.delete_timer(timer_id)
        logger.info(f"Timer {timer_id} discarded")

    async def record_entry(
        self,
        office_id: str,
        user_id: str,
        minutes: int,
        activity: str,
        task_id: Optional[str] = None,
        case_id: Optional[str] = None,
        consultation_id: Optional[str] = None,
        billable: bool = True,
        work_date: Optional[date] = None,
    ) -> TimesheetEntry:
        """Record worked minutes directly, without a timer.

        Raises:
            InvalidTimeEntry: If ``minutes`` is not positive
            MissingLink: If neither a case nor a consultation is given
        """
        if minutes <= 0:
            raise InvalidTimeEntry(f"Cannot record {minutes} minutes", task_id)
        if not (case_id or consultation_id):
            raise MissingLink("Time can only be logged against a case or consultation", task_id)

        now = self.clock()
        entry = TimesheetEntry(
            office_id=office_id,
            user_id=user_id,
            task_id=task_id,
            case_id=case_id,
            consultation_id=consultation_id,
            work_date=work_date or now.date(),
            minutes=minutes,
            billable=billable,
            activity=activity,
            origin=EntryOrigin.MANUAL,
            created_at=now,
        )
        await self.database.insert_entry(entry)
        logger.info(f"Recorded {minutes} manual minutes for {case_id or consultation_id}")
        return entry

    # Board moves

    async def on_board_move(
        self,
        task: TaskRecord,
        target: TaskStatus,
        user_id: str,
        timer_action: Optional[TimerAction] = None,
    ) -> Optional[TimerDecisionRequired]:
        """Apply timer side effects of moving a task between board columns.

        Moving to in progress starts a timer for linked tasks or resumes a
        paused one; moving to paused pauses a running timer. Moving back to
        pending with a running timer needs ``timer_action``; without it nothing
        is changed and a TimerDecisionRequired is returned.
        """
        timer = await self.database.find_task_timer(task.id)

        if target == TaskStatus.IN_PROGRESS:
            if timer is None:
                if task.has_billable_link:
                    await self.start_for_task(task, user_id)
                else:
                    logger.info(f"Task {task.id} has no case or consultation link; no timer started")
            elif timer.status == TimerStatus.PAUSED:
                await self.resume(timer.id)
        elif target == TaskStatus.PAUSED:
            if timer is not None and timer.status == TimerStatus.RUNNING:
                await self.pause(timer.id)
        elif target == TaskStatus.PENDING and timer is not None:
            if timer_action is None:
                if timer.status == TimerStatus.RUNNING:
                    return TimerDecisionRequired(task_id=task.id, timer_id=timer.id)
            elif timer_action == TimerAction.PAUSE:
                await self.pause(timer.id)
            else:
                await self.discard(timer.id)
        return None

    # Completion

    async def prepare_completion(self, task: TaskRecord, user_id: str) -> CompletionPlan:
        """Decide whether completing a task needs a time-entry step.

        Args:
            task: Task about to be completed
            user_id: User completing the task, owner of any manual entry

        Returns:
            CompleteDirect for unlinked tasks, RequireTimeEntry with an open
            session for tasks linked to a case or consultation
        """
        timer = await self.database.find_task_timer(task.id)
        if not task.has_billable_link:
            return CompleteDirect(task_id=task.id, timer_id=timer.id if timer else None)

        session = CompletionSession(self, task, user_id, timer)
        session.open()
        return RequireTimeEntry(task_id=task.id, session=session)

    async def complete_direct(self, plan: CompleteDirect, task: TaskRecord) -> TaskRecord:
        """Complete an unlinked task, discarding any open timer with a warning."""
        if plan.timer_id is not None:
            logger.warning(
                f"Discarding timer {plan.timer_id}: task {task.id} has no case or "
                "consultation link to record its time against"
            )
            try:
                await self.discard(plan.timer_id)
            except TimerNotFound:
                logger.debug(f"Timer {plan.timer_id} already gone")
        grant = CompletionGrant(task_id=task.id, outcome=CompletionOutcome.DIRECT)
        return await self.lifecycle.complete(task, grant)


class CompletionSession:
    """Time-entry step for completing a linked task.

    ``state`` is a plain attribute updated synchronously, before any await,
    so a close handler reading it can tell whether a commit already started.
    The timer is left untouched until a commit, so cancelling leaves it in
    the state it had when the session opened.
    """

    def __init__(
        self,
        reconciler: TimeReconciler,
        task: TaskRecord,
        user_id: str,
        timer: Optional[TimerRecord],
    ):
        self.reconciler = reconciler
        self.task = task
        self.user_id = user_id
        self.timer = timer
        self.state = SessionState.IDLE
        self.skip_requested = False
        self.entry: Optional[TimesheetEntry] = None
        self.completed_task: Optional[TaskRecord] = None

    @property
    def suggested_minutes(self) -> int:
        """Minutes to pre-fill: the timer's tracked time, or zero."""
        if self.timer is None:
            return 0
        return self.reconciler.elapsed_minutes(self.timer)

    @property
    def is_settled(self) -> bool:
        return self.state in (SessionState.COMMITTING, SessionState.DONE, SessionState.CANCELLED)

    def open(self) -> None:
        if self.state != SessionState.IDLE:
            raise InvalidTransition(f"Completion session for {self.task.id} already opened")
        self.state = SessionState.AWAITING_CONFIRMATION

    def _begin_commit(self) -> None:
        if self.state != SessionState.AWAITING_CONFIRMATION:
            raise InvalidTransition(
                f"Completion session for {self.task.id} is {self.state.value}", self.task.id
            )
        self.state = SessionState.COMMITTING

    async def submit_hours(
        self, minutes: int, activity: Optional[str] = None, billable: bool = True
    ) -> TaskRecord:
        """Record the entered time and complete the task.

        With an open timer the timer is finalized, adjusted to ``minutes``;
        otherwise a manual entry is recorded.

        Raises:
            InvalidTimeEntry: If ``minutes`` is not positive
            InvalidTransition: If the session is not awaiting an answer
        """
        if minutes <= 0:
            raise InvalidTimeEntry(
                f"Completing task {self.task.id} needs a positive number of minutes, got {minutes}",
                self.task.id,
            )
        self._begin_commit()
        try:
            # A retry after a failed completion reuses the entry already recorded
            if self.entry is None:
                self.entry = await self._record_hours(minutes, activity or self.task.title, billable)
            grant = CompletionGrant(
                task_id=self.task.id,
                outcome=CompletionOutcome.HOURS_ENTERED,
                entry_id=self.entry.id,
            )
            task = await self._reload_task()
            self.completed_task = await self.reconciler.lifecycle.complete(task, grant)
        except Exception:
            self.state = SessionState.AWAITING_CONFIRMATION
            raise

        self.state = SessionState.DONE
        return self.completed_task

    async def _reload_task(self) -> TaskRecord:
        # The task may have been rescheduled while the session waited for an answer
        task = await self.reconciler.database.get_task(self.task.id)
        if task is None:
            raise EntityNotFound(f"Task {self.task.id} not found", self.task.id)
        self.task = task
        return task

    async def _record_hours(self, minutes: int, activity: str, billable: bool) -> TimesheetEntry:
        if self.timer is not None:
            adjust = minutes - self.reconciler.elapsed_minutes(self.timer)
            entry = await self.reconciler.finalize(
                self.timer.id, adjust_minutes=adjust, activity=activity, billable=billable
            )
            self.timer = None
            return entry
        return await self.reconciler.record_entry(
            office_id=self.task.office_id,
            user_id=self.user_id,
            minutes=minutes,
            activity=activity,
            task_id=self.task.id,
            case_id=self.task.case_id,
            consultation_id=self.task.consultation_id,
            billable=billable,
        )

    def request_skip(self) -> None:
        """User declined to enter hours; a "complete anyway" answer is now expected."""
        if self.state != SessionState.AWAITING_CONFIRMATION:
            raise InvalidTransition(
                f"Completion session for {self.task.id} is {self.state.value}", self.task.id
            )
        self.skip_requested = True

    def withdraw_skip(self) -> None:
        """User went back from the "complete anyway" prompt to the hours form."""
        self.skip_requested = False

    async def confirm_without_hours(self) -> TaskRecord:
        """Complete the task with no entry, discarding any open timer.

        Raises:
            InvalidTransition: If skipping was not requested first
        """
        if not self.skip_requested:
            raise InvalidTransition(
                f"Completing task {self.task.id} without hours needs an explicit decline first",
                self.task.id,
            )
        self._begin_commit()
        try:
            if self.timer is not None:
                await self.reconciler.discard(self.timer.id)
                self.timer = None
            grant = CompletionGrant(
                task_id=self.task.id, outcome=CompletionOutcome.CONFIRMED_WITHOUT_HOURS
            )
            task = await self._reload_task()
            self.completed_task = await self.reconciler.lifecycle.complete(task, grant)
        except Exception:
            self.state = SessionState.AWAITING_CONFIRMATION
            raise

        self.state = SessionState.DONE
        return self.completed_task

    def close(self) -> bool:
        """Close handler for the time-entry step.

        Returns:
            True if closing cancelled the session, False if a commit had
            already started or the session was already settled
        """
        if self.is_settled:
            return False
        self.state = SessionState.CANCELLED
        logger.info(f"Completion of task {self.task.id} cancelled; timer left as it was")
        return True

    def cancel(self) -> bool:
        return self.close()
