"""Occurrence references and the virtual occurrence id encoding.

A virtual occurrence id has the form ``virtual_{recurrenceId}_{YYYY-MM-DD}``.
Rule ids are UUIDs, which use hyphens, so the id splits on ``_`` into
exactly three tokens.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Union

from ..exceptions import InvalidVirtualId

VIRTUAL_PREFIX = "virtual"
_SEPARATOR = "_"
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class VirtualRef:
    """Reference to a not-yet-persisted occurrence of a recurrence rule."""

    recurrence_id: str
    day: date

    @property
    def id(self) -> str:
        return format_virtual_id(self.recurrence_id, self.day)


@dataclass(frozen=True)
class ConcreteRef:
    """Reference to a persisted task, event or hearing row."""

    id: str


OccurrenceRef = Union[VirtualRef, ConcreteRef]


def is_virtual_id(identifier: str) -> bool:
    """Check if an identifier uses the virtual occurrence prefix."""
    return identifier.startswith(VIRTUAL_PREFIX + _SEPARATOR)


def format_virtual_id(recurrence_id: str, day: date) -> str:
    """Encode a rule id and occurrence date as a virtual occurrence id.

    Raises:
        InvalidVirtualId: If the rule id is empty or contains the separator
    """
    if not recurrence_id or _SEPARATOR in recurrence_id:
        raise InvalidVirtualId(f"Recurrence id cannot be encoded: {recurrence_id!r}")
    return f"{VIRTUAL_PREFIX}{_SEPARATOR}{recurrence_id}{_SEPARATOR}{day.isoformat()}"


def parse_virtual_id(identifier: str) -> VirtualRef:
    """Decode a virtual occurrence id.

    Args:
        identifier: Id of the form ``virtual_{recurrenceId}_{YYYY-MM-DD}``

    Returns:
        VirtualRef with the rule id and occurrence date

    Raises:
        InvalidVirtualId: If the id does not match the encoding
    """
    tokens = identifier.split(_SEPARATOR)
    if len(tokens) != 3 or tokens[0] != VIRTUAL_PREFIX or not tokens[1]:
        raise InvalidVirtualId(f"Malformed virtual occurrence id: {identifier!r}")

    if not _DATE_PATTERN.match(tokens[2]):
        raise InvalidVirtualId(f"Malformed occurrence date in {identifier!r}")
    try:
        day = date.fromisoformat(tokens[2])
    except ValueError as e:
        raise InvalidVirtualId(f"Invalid occurrence date in {identifier!r}") from e

    return VirtualRef(recurrence_id=tokens[1], day=day)


def parse_ref(identifier: str) -> OccurrenceRef:
    """Resolve a raw identifier into a tagged occurrence reference.

    Identifiers without the virtual prefix are concrete row ids.
    """
    if is_virtual_id(identifier):
        return parse_virtual_id(identifier)
    return ConcreteRef(id=identifier)
