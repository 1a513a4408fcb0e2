"""Read-through cache over entity rows and consolidated agenda views."""

import logging
from collections.abc import AsyncIterator, Awaitable, Hashable
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Callable, Optional

from ..exceptions import EntityNotFound
from .database import DatabaseManager
from .models import EntityKind, EventRecord, HearingRecord, RecurrenceRule, TaskRecord

logger = logging.getLogger(__name__)


class AgendaReadModel:
    """Single cache for entity rows and consolidated query results.

    Both halves are invalidated together by ``invalidate`` so a command can
    never leave one fresh and the other stale.
    """

    def __init__(self, database: DatabaseManager) -> None:
        self.database = database
        self._rows: dict[tuple[str, str], Any] = {}
        self._views: dict[Hashable, list[Any]] = {}
        self._generation = 0
        self._views_day: Optional[date] = None

        self._loaders: dict[str, Callable[[str], Awaitable[Any]]] = {
            EntityKind.TASK.value: database.get_task,
            EntityKind.EVENT.value: database.get_event,
            EntityKind.HEARING.value: database.get_hearing,
            "rule": database.get_rule,
        }

    @property
    def generation(self) -> int:
        """Number of invalidations so far; changes whenever cached data is dropped."""
        return self._generation

    async def _get(self, namespace: str, row_id: str) -> Optional[Any]:
        key = (namespace, row_id)
        if key in self._rows:
            logger.debug(f"Read model hit for {namespace} {row_id}")
            return self._rows[key]

        record = await self._loaders[namespace](row_id)
        if record is not None:
            self._rows[key] = record
        return record

    async def get_task(self, task_id: str) -> TaskRecord:
        """Get a task row, loading it on first access.

        Raises:
            EntityNotFound: If the task does not exist
        """
        task = await self._get(EntityKind.TASK.value, task_id)
        if task is None:
            raise EntityNotFound(f"Task {task_id} not found", task_id)
        return task

    async def get_event(self, event_id: str) -> EventRecord:
        event = await self._get(EntityKind.EVENT.value, event_id)
        if event is None:
            raise EntityNotFound(f"Event {event_id} not found", event_id)
        return event

    async def get_hearing(self, hearing_id: str) -> HearingRecord:
        hearing = await self._get(EntityKind.HEARING.value, hearing_id)
        if hearing is None:
            raise EntityNotFound(f"Hearing {hearing_id} not found", hearing_id)
        return hearing

    async def get_rule(self, rule_id: str) -> Optional[RecurrenceRule]:
        return await self._get("rule", rule_id)

    async def view(
        self,
        key: Hashable,
        loader: Callable[[], Awaitable[list[Any]]],
        day: Optional[date] = None,
    ) -> list[Any]:
        """Get a consolidated view, computing it with ``loader`` on a miss.

        Args:
            key: Hashable query value identifying the view
            loader: Coroutine factory producing the view's items
            day: Office date the view is computed for; a new day drops every cached view

        Returns:
            Cached or freshly loaded items
        """
        if day is not None and day != self._views_day:
            if self._views:
                logger.debug(f"Date changed to {day}, dropping {len(self._views)} cached views")
            self._views.clear()
            self._views_day = day

        if key in self._views:
            logger.debug("Read model view hit")
            return list(self._views[key])

        generation = self._generation
        items = await loader()
        # Drop results computed across an invalidation
        if generation == self._generation:
            self._views[key] = list(items)
        return items

    def invalidate(self, *row_ids: str) -> None:
        """Drop cached rows for ``row_ids`` and every cached view."""
        targets = set(row_ids)
        if targets:
            self._rows = {key: value for key, value in self._rows.items() if key[1] not in targets}
        else:
            self._rows.clear()
        self._views.clear()
        self._generation += 1
        logger.debug(f"Read model invalidated (rows={sorted(targets) or 'all'})")

    @asynccontextmanager
    async def mutation(self, *row_ids: str) -> AsyncIterator[None]:
        """Wrap a write so the cache is invalidated when it ends, even on failure."""
        try:
            yield
        finally:
            self.invalidate(*row_ids)
