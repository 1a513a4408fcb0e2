"""Consolidated agenda, deadline cascade, task lifecycle and time reconciliation."""

from .cascade import DeadlineCalculator, DeadlineCascadeSolver, lead_days
from .consolidator import AgendaConsolidator, kind_rank, urgency_of
from .lifecycle import BOARD_STATUSES, CompletionGrant, CompletionOutcome, TaskLifecycleMachine
from .models import (
    AgendaItem,
    AgendaQuery,
    AgendaStatistics,
    DeadlineChange,
    Direct,
    RequiresConfirmation,
    RescheduleDecision,
    Urgency,
)
from .reconciler import (
    CompleteDirect,
    CompletionPlan,
    CompletionSession,
    RequireTimeEntry,
    SessionState,
    TimeReconciler,
    TimerAction,
    TimerDecisionRequired,
)
from .service import AgendaService, DeleteScope, RescheduleResult

__all__ = [
    "BOARD_STATUSES",
    "AgendaConsolidator",
    "AgendaItem",
    "AgendaQuery",
    "AgendaService",
    "AgendaStatistics",
    "CompleteDirect",
    "CompletionGrant",
    "CompletionOutcome",
    "CompletionPlan",
    "CompletionSession",
    "DeadlineCalculator",
    "DeadlineCascadeSolver",
    "DeadlineChange",
    "DeleteScope",
    "Direct",
    "RequireTimeEntry",
    "RequiresConfirmation",
    "RescheduleDecision",
    "RescheduleResult",
    "SessionState",
    "TaskLifecycleMachine",
    "TimeReconciler",
    "TimerAction",
    "TimerDecisionRequired",
    "Urgency",
    "kind_rank",
    "lead_days",
    "urgency_of",
]
