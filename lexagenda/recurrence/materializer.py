"""Materialization of virtual occurrences into persisted rows."""

import logging
from datetime import date
from typing import Union

from ..exceptions import RecurrenceNotFound
from ..store.database import DatabaseManager
from ..store.models import EntityKind, EventRecord, RecurrenceRule, TaskRecord
from .identifiers import ConcreteRef, OccurrenceRef, VirtualRef, is_virtual_id, parse_virtual_id

logger = logging.getLogger(__name__)


def build_occurrence(rule: RecurrenceRule, day: date) -> Union[TaskRecord, EventRecord]:
    """Build the concrete row for one occurrence of a rule from its template.

    Args:
        rule: Rule providing the title and template data
        day: Occurrence date, stored as the row's ``source_date``

    Returns:
        TaskRecord or EventRecord matching the rule's entity kind
    """
    template = rule.template
    common = {
        "office_id": rule.office_id,
        "title": rule.title,
        "description": rule.description,
        "subtype": template.subtype,
        "priority": template.priority,
        "start": rule.occurrence_start(day),
        "all_day": template.all_day,
        "location": template.location,
        "assignee_ids": list(template.assignee_ids),
        "assignee_name": template.assignee_name,
        "case_id": template.case_id,
        "case_number": template.case_number,
        "consultation_id": template.consultation_id,
        "recurrence_id": rule.id,
        "source_date": day,
    }
    if rule.entity_kind == EntityKind.EVENT:
        return EventRecord(end=rule.occurrence_end(day), **common)
    return TaskRecord(**common)


class OccurrenceMaterializer:
    """Turns virtual occurrence ids into persisted row ids, once per (rule, date)."""

    def __init__(self, database: DatabaseManager):
        self.database = database

    async def materialize(self, identifier: str) -> str:
        """Normalize an identifier to a persisted row id.

        Identifiers without the virtual prefix are returned unchanged.

        Args:
            identifier: Concrete row id or ``virtual_{recurrenceId}_{YYYY-MM-DD}``

        Returns:
            Id of the persisted row

        Raises:
            InvalidVirtualId: If a virtual id does not match the encoding
            RecurrenceNotFound: If the rule is missing, inactive or excludes the date
            PersistenceError: If storage fails; nothing is written in that case
        """
        if not is_virtual_id(identifier):
            return identifier
        return await self._materialize(parse_virtual_id(identifier))

    async def resolve(self, ref: OccurrenceRef) -> str:
        """Resolve an occurrence reference to a persisted row id."""
        if isinstance(ref, ConcreteRef):
            return ref.id
        return await self._materialize(ref)

    async def _materialize(self, ref: VirtualRef) -> str:
        for kind in (EntityKind.TASK, EntityKind.EVENT):
            existing = await self.database.find_materialized(kind, ref.recurrence_id, ref.day)
            if existing is not None:
                logger.debug(f"Occurrence {ref.id} already materialized as {existing}")
                return existing

        rule = await self.database.get_rule(ref.recurrence_id)
        if rule is None:
            raise RecurrenceNotFound(
                f"Recurrence rule {ref.recurrence_id} not found", ref.recurrence_id
            )
        if not rule.active:
            raise RecurrenceNotFound(
                f"Recurrence rule {ref.recurrence_id} is inactive", ref.recurrence_id
            )
        if ref.day in rule.exclusions:
            raise RecurrenceNotFound(
                f"Occurrence {ref.day} was removed from rule {rule.id}", rule.id
            )

        record = build_occurrence(rule, ref.day)
        row_id = await self.database.insert_occurrence(rule.entity_kind, record)
        logger.info(f"Materialized {ref.id} as {rule.entity_kind.value} {row_id}")
        return row_id
