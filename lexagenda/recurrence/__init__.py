"""Recurrence expansion and occurrence materialization."""

from .expander import OccurrenceSequence, RecurrenceExpander, build_rrule, describe_rule
from .identifiers import (
    VIRTUAL_PREFIX,
    ConcreteRef,
    OccurrenceRef,
    VirtualRef,
    format_virtual_id,
    is_virtual_id,
    parse_ref,
    parse_virtual_id,
)
from .materializer import OccurrenceMaterializer, build_occurrence

__all__ = [
    "VIRTUAL_PREFIX",
    "ConcreteRef",
    "OccurrenceMaterializer",
    "OccurrenceRef",
    "OccurrenceSequence",
    "RecurrenceExpander",
    "VirtualRef",
    "build_occurrence",
    "build_rrule",
    "describe_rule",
    "format_virtual_id",
    "is_virtual_id",
    "parse_ref",
    "parse_virtual_id",
]
