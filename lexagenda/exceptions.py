"""Scheduling-engine exceptions for error handling."""

from typing import Optional


class AgendaError(Exception):
    """Base exception for agenda-related errors."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id


class InvalidVirtualId(AgendaError):
    """Exception raised when a virtual occurrence id does not match its encoding."""


class RecurrenceNotFound(AgendaError):
    """Exception raised when a recurrence rule is missing or inactive."""


class ImmutableSchedule(AgendaError):
    """Exception raised when a date change is attempted on a fixed task."""


class MissingLink(AgendaError):
    """Exception raised when hours are logged on an item without a case or consultation."""


class PersistenceError(AgendaError):
    """Exception raised when the storage layer fails."""


class EntityNotFound(AgendaError):
    """Exception raised when a task, event, hearing or timer row does not exist."""


class TimerNotFound(EntityNotFound):
    """Exception raised when a timer was already finalized, discarded or never existed."""


class InvalidTransition(AgendaError):
    """Exception raised when a status transition is not allowed from the current state."""


class CompletionPreconditionError(InvalidTransition):
    """Exception raised when a linked task is completed without a time-entry resolution."""


class ConfigurationError(AgendaError):
    """Exception raised when a required collaborator or setting is not configured."""


class InvalidTimeEntry(AgendaError):
    """Exception raised when entered hours are not a positive number of minutes."""
