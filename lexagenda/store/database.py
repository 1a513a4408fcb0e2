"""SQLite database operations for agenda entities, recurrence rules and time tracking."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional, TypeVar, Union

import aiosqlite
from pydantic import BaseModel

from ..exceptions import EntityNotFound, PersistenceError, TimerNotFound
from .models import (
    EntityKind,
    EventRecord,
    HearingRecord,
    RecurrenceRule,
    TaskRecord,
    TaskStatus,
    TimerRecord,
    TimesheetEntry,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Columns holding JSON-encoded lists or objects
_JSON_COLUMNS = frozenset({"assignee_ids", "template", "weekdays"})

_ROW_TABLES = {
    EntityKind.TASK: "tasks",
    EntityKind.EVENT: "events",
    EntityKind.HEARING: "hearings",
}

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS recurrence_rules (
        id TEXT PRIMARY KEY,
        office_id TEXT NOT NULL,
        entity_kind TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        template TEXT NOT NULL DEFAULT '{}',
        frequency TEXT NOT NULL,
        interval INTEGER NOT NULL DEFAULT 1,
        weekdays TEXT NOT NULL DEFAULT '[]',
        month_day INTEGER,
        month INTEGER,
        business_days_only INTEGER NOT NULL DEFAULT 0,
        default_time TEXT NOT NULL DEFAULT '09:00',
        data_inicio TEXT NOT NULL,
        data_fim TEXT,
        max_occurrences INTEGER,
        active INTEGER NOT NULL DEFAULT 1,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS recurrence_exclusions (
        rule_id TEXT NOT NULL,
        excluded_date TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (rule_id, excluded_date),
        FOREIGN KEY (rule_id) REFERENCES recurrence_rules(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        office_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        subtipo TEXT NOT NULL DEFAULT 'normal',
        status TEXT NOT NULL DEFAULT 'pending',
        priority TEXT NOT NULL DEFAULT 'medium',
        data_inicio TEXT NOT NULL,
        prazo_data_limite TEXT,
        all_day INTEGER NOT NULL DEFAULT 0,
        location TEXT,
        assignee_ids TEXT NOT NULL DEFAULT '[]',
        assignee_name TEXT,
        processo_id TEXT,
        case_number TEXT,
        consultivo_id TEXT,
        recorrencia_id TEXT REFERENCES recurrence_rules(id),
        source_date TEXT,
        completed_at TEXT,
        fixed_status_date TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        office_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        subtype TEXT NOT NULL DEFAULT 'normal',
        status TEXT NOT NULL DEFAULT 'scheduled',
        priority TEXT NOT NULL DEFAULT 'medium',
        data_inicio TEXT NOT NULL,
        data_fim TEXT,
        prazo_data_limite TEXT,
        all_day INTEGER NOT NULL DEFAULT 0,
        location TEXT,
        assignee_ids TEXT NOT NULL DEFAULT '[]',
        assignee_name TEXT,
        processo_id TEXT,
        case_number TEXT,
        consultivo_id TEXT,
        recorrencia_id TEXT REFERENCES recurrence_rules(id),
        source_date TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS hearings (
        id TEXT PRIMARY KEY,
        office_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'scheduled',
        data_hora TEXT NOT NULL,
        data_fim TEXT,
        location TEXT,
        assignee_ids TEXT NOT NULL DEFAULT '[]',
        assignee_name TEXT,
        processo_id TEXT,
        case_number TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS timers (
        id TEXT PRIMARY KEY,
        office_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        task_id TEXT,
        processo_id TEXT,
        consultivo_id TEXT,
        status TEXT NOT NULL DEFAULT 'running',
        started_at TEXT NOT NULL,
        accumulated_seconds INTEGER NOT NULL DEFAULT 0,
        billable INTEGER NOT NULL DEFAULT 1,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS timesheet_entries (
        id TEXT PRIMARY KEY,
        office_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        task_id TEXT,
        processo_id TEXT,
        consultivo_id TEXT,
        work_date TEXT NOT NULL,
        minutes INTEGER NOT NULL,
        billable INTEGER NOT NULL DEFAULT 1,
        activity TEXT NOT NULL,
        origin TEXT NOT NULL DEFAULT 'manual',
        created_at TEXT NOT NULL
    )
    """,
    # One materialized row per (rule, source date)
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_occurrence
    ON tasks(recorrencia_id, source_date)
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_events_occurrence
    ON events(recorrencia_id, source_date)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_tasks_office_start
    ON tasks(office_id, data_inicio)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_events_office_start
    ON events(office_id, data_inicio)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_hearings_office_start
    ON hearings(office_id, data_hora)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_rules_office_active
    ON recurrence_rules(office_id, active)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_timers_task
    ON timers(task_id)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_entries_task
    ON timesheet_entries(task_id)
    """,
]

_TIMESTAMP_TRIGGER = """
    CREATE TRIGGER IF NOT EXISTS update_{table}_timestamp
    AFTER UPDATE ON {table}
    BEGIN
        UPDATE {table} SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END
"""


def _to_row(model: BaseModel, exclude: Optional[set[str]] = None) -> dict[str, Any]:
    """Dump a model to column values keyed by persisted column name."""
    data = model.model_dump(by_alias=True, mode="json", exclude=exclude)
    return {
        column: json.dumps(value) if isinstance(value, (list, dict)) else value
        for column, value in data.items()
    }


def _from_row(row: aiosqlite.Row) -> dict[str, Any]:
    """Convert a database row to model input, decoding JSON columns."""
    data = dict(row)
    for column in _JSON_COLUMNS.intersection(data):
        if isinstance(data[column], str):
            data[column] = json.loads(data[column])
    return data


def _day_bounds(start: date, end: date) -> tuple[str, str]:
    """ISO bounds covering whole days from ``start`` through ``end``."""
    return (
        datetime.combine(start, datetime.min.time()).isoformat(),
        datetime.combine(end, datetime.max.time()).isoformat(),
    )


class DatabaseManager:
    """Manages SQLite database operations for the agenda.

    Every public operation opens its own connection. Storage failures are
    wrapped in ``PersistenceError``; a failed operation leaves nothing
    committed.
    """

    def __init__(self, database_path: Union[Path, str]):
        """Initialize database manager.

        Args:
            database_path: Path to SQLite database file
        """
        self.database_path = (
            Path(database_path) if isinstance(database_path, str) else database_path
        )
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False
        self._initialization_lock: Optional[asyncio.Lock] = None

        logger.info(f"Database manager initialized (lazy): {database_path}")

    async def _ensure_initialized(self) -> None:
        """Ensure database schema exists before operations.

        Raises:
            PersistenceError: If the schema could not be created
        """
        if self._initialized:
            return

        # Use a lock to prevent concurrent initialization
        if self._initialization_lock is None:
            self._initialization_lock = asyncio.Lock()

        async with self._initialization_lock:
            # Double-check after acquiring lock
            if self._initialized:
                return

            try:
                await self._initialize_database()
            except aiosqlite.Error as e:
                logger.exception("Failed to initialize database")
                raise PersistenceError(f"Failed to initialize database: {e}") from e
            self._initialized = True

    async def _initialize_database(self) -> None:
        """Create tables, indexes and triggers."""
        async with aiosqlite.connect(str(self.database_path)) as db:
            # Enable WAL mode for better concurrent access
            await db.execute("PRAGMA journal_mode=WAL")

            # Set synchronous mode to NORMAL for better performance
            await db.execute("PRAGMA synchronous=NORMAL")

            await db.execute("PRAGMA foreign_keys=ON")

            for statement in _SCHEMA:
                await db.execute(statement)

            for table in ("recurrence_rules", "tasks", "events", "hearings", "timers"):
                await db.execute(_TIMESTAMP_TRIGGER.format(table=table))

            await db.commit()
            logger.info("Database schema initialized successfully")

    async def initialize(self) -> None:
        """Create the schema eagerly instead of on first use."""
        await self._ensure_initialized()

    @asynccontextmanager
    async def _connection(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection, wrapping storage failures in ``PersistenceError``.

        Changes not committed inside the block are discarded on close.
        """
        await self._ensure_initialized()
        try:
            async with aiosqlite.connect(str(self.database_path)) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys=ON")
                yield db
        except aiosqlite.Error as e:
            logger.exception(f"Failed to {operation}")
            raise PersistenceError(f"Failed to {operation}: {e}") from e

    @staticmethod
    async def _insert(
        db: aiosqlite.Connection, table: str, row: dict[str, Any], or_ignore: bool = False
    ) -> int:
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        verb = "INSERT OR IGNORE" if or_ignore else "INSERT"
        cursor = await db.execute(
            f"{verb} INTO {table} ({columns}) VALUES ({placeholders})", tuple(row.values())
        )
        return cursor.rowcount

    @staticmethod
    async def _update(
        db: aiosqlite.Connection, table: str, row_id: str, values: dict[str, Any]
    ) -> int:
        assignments = ", ".join(f"{column} = ?" for column in values)
        cursor = await db.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ?", (*values.values(), row_id)
        )
        return cursor.rowcount

    async def _fetch_one(
        self, table: str, row_id: str, model: type[ModelT]
    ) -> Optional[ModelT]:
        async with self._connection(f"get {table} row {row_id}") as db:
            cursor = await db.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
            row = await cursor.fetchone()
            return model(**_from_row(row)) if row else None

    async def _insert_model(self, table: str, model: BaseModel, **dump_args: Any) -> None:
        async with self._connection(f"insert into {table}") as db:
            await self._insert(db, table, _to_row(model, **dump_args))
            await db.commit()
        logger.debug(f"Inserted {table} row {getattr(model, 'id', '?')}")

    async def _update_model(self, table: str, model: BaseModel) -> None:
        row = _to_row(model)
        row_id = row.pop("id")
        async with self._connection(f"update {table} row {row_id}") as db:
            if await self._update(db, table, row_id, row) == 0:
                raise EntityNotFound(f"No {table} row with id {row_id}", row_id)
            await db.commit()

    # Tasks, events and hearings

    async def insert_task(self, task: TaskRecord) -> None:
        await self._insert_model("tasks", task)

    async def insert_event(self, event: EventRecord) -> None:
        await self._insert_model("events", event)

    async def insert_hearing(self, hearing: HearingRecord) -> None:
        await self._insert_model("hearings", hearing)

    async def get_task(self, task_id: str) -> Optional[TaskRecord]:
        return await self._fetch_one("tasks", task_id, TaskRecord)

    async def get_event(self, event_id: str) -> Optional[EventRecord]:
        return await self._fetch_one("events", event_id, EventRecord)

    async def get_hearing(self, hearing_id: str) -> Optional[HearingRecord]:
        return await self._fetch_one("hearings", hearing_id, HearingRecord)

    async def update_event(self, event: EventRecord) -> None:
        await self._update_model("events", event)

    async def update_hearing(self, hearing: HearingRecord) -> None:
        await self._update_model("hearings", hearing)

    async def update_task_schedule(
        self, task_id: str, start: datetime, fixed_deadline: Optional[datetime]
    ) -> None:
        """Write a task's start and fixed deadline in one statement.

        Args:
            task_id: Task to move
            start: New start datetime
            fixed_deadline: Deadline to store alongside the new start

        Raises:
            EntityNotFound: If the task does not exist
        """
        values = {
            "data_inicio": start.isoformat(),
            "prazo_data_limite": fixed_deadline.isoformat() if fixed_deadline else None,
        }
        async with self._connection(f"reschedule task {task_id}") as db:
            if await self._update(db, "tasks", task_id, values) == 0:
                raise EntityNotFound(f"Task {task_id} not found", task_id)
            await db.commit()
        logger.debug(f"Task {task_id} rescheduled to {values['data_inicio']}")

    async def update_task_status(
        self,
        task_id: str,
        status: TaskStatus,
        completed_at: Optional[datetime],
        fixed_status_date: Optional[date] = None,
    ) -> None:
        """Write only a task's lifecycle columns, leaving its schedule alone.

        Raises:
            EntityNotFound: If the task does not exist
        """
        values: dict[str, Any] = {
            "status": status.value,
            "completed_at": completed_at.isoformat() if completed_at else None,
        }
        if fixed_status_date is not None:
            values["fixed_status_date"] = fixed_status_date.isoformat()
        async with self._connection(f"update status of task {task_id}") as db:
            if await self._update(db, "tasks", task_id, values) == 0:
                raise EntityNotFound(f"Task {task_id} not found", task_id)
            await db.commit()
        logger.debug(f"Task {task_id} status written as {status.value}")

    async def delete_row(self, kind: EntityKind, row_id: str) -> bool:
        """Delete a task, event or hearing row.

        Returns:
            True if a row was deleted
        """
        table = _ROW_TABLES[kind]
        async with self._connection(f"delete {table} row {row_id}") as db:
            cursor = await db.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def _list_window(
        self,
        table: str,
        start_column: str,
        model: type[ModelT],
        office_id: str,
        window_start: date,
        window_end: date,
        extra_condition: str = "",
    ) -> list[ModelT]:
        lower, upper = _day_bounds(window_start, window_end)
        query = (
            f"SELECT * FROM {table} WHERE office_id = ? "
            f"AND (({start_column} BETWEEN ? AND ?){extra_condition}) "
            f"ORDER BY {start_column} ASC"
        )
        async with self._connection(f"list {table}") as db:
            cursor = await db.execute(query, (office_id, lower, upper))
            rows = await cursor.fetchall()
        records = [model(**_from_row(row)) for row in rows]
        logger.debug(f"Retrieved {len(records)} {table} rows for office {office_id}")
        return records

    async def list_tasks(
        self, office_id: str, window_start: date, window_end: date, include_fixed: bool = False
    ) -> list[TaskRecord]:
        """Get tasks starting inside a date window.

        Args:
            office_id: Office whose tasks are listed
            window_start: First day of the window
            window_end: Last day of the window (inclusive)
            include_fixed: Also return fixed tasks regardless of their start

        Returns:
            Tasks ordered by start
        """
        extra = " OR subtipo = 'fixed'" if include_fixed else ""
        return await self._list_window(
            "tasks", "data_inicio", TaskRecord, office_id, window_start, window_end, extra
        )

    async def list_events(
        self, office_id: str, window_start: date, window_end: date
    ) -> list[EventRecord]:
        return await self._list_window(
            "events", "data_inicio", EventRecord, office_id, window_start, window_end
        )

    async def list_hearings(
        self, office_id: str, window_start: date, window_end: date
    ) -> list[HearingRecord]:
        return await self._list_window(
            "hearings", "data_hora", HearingRecord, office_id, window_start, window_end
        )

    # Recurrence rules and materialized occurrences

    async def insert_rule(self, rule: RecurrenceRule) -> None:
        async with self._connection(f"insert recurrence rule {rule.id}") as db:
            await self._insert(db, "recurrence_rules", _to_row(rule, exclude={"exclusions"}))
            if rule.exclusions:
                await db.executemany(
                    "INSERT OR IGNORE INTO recurrence_exclusions (rule_id, excluded_date) "
                    "VALUES (?, ?)",
                    [(rule.id, day.isoformat()) for day in sorted(rule.exclusions)],
                )
            await db.commit()
        logger.debug(f"Inserted recurrence rule {rule.id}")

    async def _load_exclusions(
        self, db: aiosqlite.Connection, rule_ids: list[str]
    ) -> dict[str, set[date]]:
        exclusions: dict[str, set[date]] = {rule_id: set() for rule_id in rule_ids}
        if not rule_ids:
            return exclusions
        placeholders = ", ".join("?" for _ in rule_ids)
        cursor = await db.execute(
            f"SELECT rule_id, excluded_date FROM recurrence_exclusions "
            f"WHERE rule_id IN ({placeholders})",
            tuple(rule_ids),
        )
        for row in await cursor.fetchall():
            exclusions[row["rule_id"]].add(date.fromisoformat(row["excluded_date"]))
        return exclusions

    async def get_rule(self, rule_id: str) -> Optional[RecurrenceRule]:
        """Get a recurrence rule with its excluded dates."""
        async with self._connection(f"get recurrence rule {rule_id}") as db:
            cursor = await db.execute("SELECT * FROM recurrence_rules WHERE id = ?", (rule_id,))
            row = await cursor.fetchone()
            if row is None:
                return None
            exclusions = await self._load_exclusions(db, [rule_id])
        return RecurrenceRule(**_from_row(row), exclusions=exclusions[rule_id])

    async def list_rules(self, office_id: str, active_only: bool = True) -> list[RecurrenceRule]:
        """Get an office's recurrence rules with their excluded dates."""
        query = "SELECT * FROM recurrence_rules WHERE office_id = ?"
        if active_only:
            query += " AND active = 1"
        async with self._connection(f"list recurrence rules for {office_id}") as db:
            cursor = await db.execute(query, (office_id,))
            rows = await cursor.fetchall()
            exclusions = await self._load_exclusions(db, [row["id"] for row in rows])
        return [RecurrenceRule(**_from_row(row), exclusions=exclusions[row["id"]]) for row in rows]

    async def deactivate_rule(self, rule_id: str) -> None:
        """Stop a rule from producing further occurrences.

        Raises:
            EntityNotFound: If the rule does not exist
        """
        async with self._connection(f"deactivate recurrence rule {rule_id}") as db:
            if await self._update(db, "recurrence_rules", rule_id, {"active": False}) == 0:
                raise EntityNotFound(f"Recurrence rule {rule_id} not found", rule_id)
            await db.commit()
        logger.info(f"Recurrence rule {rule_id} deactivated")

    async def add_exclusion(self, rule_id: str, day: date) -> None:
        async with self._connection(f"exclude {day} from rule {rule_id}") as db:
            await db.execute(
                "INSERT OR IGNORE INTO recurrence_exclusions (rule_id, excluded_date) "
                "VALUES (?, ?)",
                (rule_id, day.isoformat()),
            )
            await db.commit()

    async def delete_occurrence(
        self, kind: EntityKind, row_id: str, rule_id: str, day: date
    ) -> None:
        """Delete one materialized row and exclude its date from the rule together."""
        table = _ROW_TABLES[kind]
        async with self._connection(f"delete occurrence {row_id}") as db:
            cursor = await db.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
            if cursor.rowcount == 0:
                raise EntityNotFound(f"No {table} row with id {row_id}", row_id)
            await db.execute(
                "INSERT OR IGNORE INTO recurrence_exclusions (rule_id, excluded_date) "
                "VALUES (?, ?)",
                (rule_id, day.isoformat()),
            )
            await db.commit()
        logger.debug(f"Deleted occurrence {row_id} of rule {rule_id} on {day}")

    async def find_materialized(self, kind: EntityKind, rule_id: str, day: date) -> Optional[str]:
        """Get the id of the row materialized for ``(rule_id, day)``, if any."""
        table = _ROW_TABLES[kind]
        async with self._connection(f"look up occurrence {rule_id} {day}") as db:
            cursor = await db.execute(
                f"SELECT id FROM {table} WHERE recorrencia_id = ? AND source_date = ?",
                (rule_id, day.isoformat()),
            )
            row = await cursor.fetchone()
            return row["id"] if row else None

    async def insert_occurrence(self, kind: EntityKind, record: BaseModel) -> str:
        """Insert a materialized occurrence, converging on any existing row.

        The unique index on ``(recorrencia_id, source_date)`` makes a losing
        concurrent insert a no-op; the id of whichever row won is returned.

        Args:
            kind: Task or event
            record: Row built from the rule template with ``source_date`` set

        Returns:
            Id of the persisted row for the occurrence
        """
        table = _ROW_TABLES[kind]
        row = _to_row(record)
        async with self._connection(f"materialize into {table}") as db:
            inserted = await self._insert(db, table, row, or_ignore=True)
            cursor = await db.execute(
                f"SELECT id FROM {table} WHERE recorrencia_id = ? AND source_date = ?",
                (row["recorrencia_id"], row["source_date"]),
            )
            existing = await cursor.fetchone()
            await db.commit()

        if existing is None:
            raise PersistenceError(
                f"Occurrence of rule {row['recorrencia_id']} on {row['source_date']} "
                "was not persisted"
            )
        if inserted:
            logger.debug(f"Materialized {table} row {existing['id']}")
        else:
            logger.debug(f"Occurrence already materialized as {existing['id']}")
        return str(existing["id"])

    async def materialized_dates(
        self, office_id: str, window_start: date, window_end: date
    ) -> set[tuple[str, date]]:
        """Get ``(rule_id, source_date)`` pairs already materialized in a window.

        Matches on the source date, not the current start, so a row moved out
        of the window still suppresses its virtual twin.
        """
        pairs: set[tuple[str, date]] = set()
        async with self._connection("list materialized occurrences") as db:
            for table in ("tasks", "events"):
                cursor = await db.execute(
                    f"SELECT recorrencia_id, source_date FROM {table} "
                    f"WHERE office_id = ? AND recorrencia_id IS NOT NULL "
                    f"AND source_date BETWEEN ? AND ?",
                    (office_id, window_start.isoformat(), window_end.isoformat()),
                )
                for row in await cursor.fetchall():
                    pairs.add((row["recorrencia_id"], date.fromisoformat(row["source_date"])))
        return pairs

    # Timers and timesheet entries

    async def insert_timer(self, timer: TimerRecord) -> None:
        await self._insert_model("timers", timer)

    async def get_timer(self, timer_id: str) -> Optional[TimerRecord]:
        return await self._fetch_one("timers", timer_id, TimerRecord)

    async def find_task_timer(self, task_id: str) -> Optional[TimerRecord]:
        """Get the open timer attached to a task, if any."""
        async with self._connection(f"find timer for task {task_id}") as db:
            cursor = await db.execute(
                "SELECT * FROM timers WHERE task_id = ? ORDER BY started_at DESC LIMIT 1",
                (task_id,),
            )
            row = await cursor.fetchone()
            return TimerRecord(**_from_row(row)) if row else None

    async def update_timer(self, timer: TimerRecord) -> None:
        try:
            await self._update_model("timers", timer)
        except EntityNotFound as e:
            raise TimerNotFound(f"Timer {timer.id} not found", timer.id) from e

    async def delete_timer(self, timer_id: str) -> None:
        """Delete a timer without recording its time.

        Raises:
            TimerNotFound: If the timer was already finalized or discarded
        """
        async with self._connection(f"delete timer {timer_id}") as db:
            cursor = await db.execute("DELETE FROM timers WHERE id = ?", (timer_id,))
            if cursor.rowcount == 0:
                raise TimerNotFound(f"Timer {timer_id} not found", timer_id)
            await db.commit()

    async def finalize_timer(self, timer_id: str, entry: TimesheetEntry) -> None:
        """Record a timesheet entry and remove its timer in one transaction.

        Raises:
            TimerNotFound: If the timer was already finalized or discarded
        """
        async with self._connection(f"finalize timer {timer_id}") as db:
            cursor = await db.execute("DELETE FROM timers WHERE id = ?", (timer_id,))
            if cursor.rowcount == 0:
                raise TimerNotFound(f"Timer {timer_id} not found", timer_id)
            await self._insert(db, "timesheet_entries", _to_row(entry))
            await db.commit()
        logger.debug(f"Timer {timer_id} finalized into entry {entry.id}")

    async def insert_entry(self, entry: TimesheetEntry) -> None:
        await self._insert_model("timesheet_entries", entry)

    async def list_entries(
        self,
        task_id: Optional[str] = None,
        case_id: Optional[str] = None,
        consultation_id: Optional[str] = None,
    ) -> list[TimesheetEntry]:
        """Get timesheet entries filtered by any of their links."""
        conditions = []
        params: list[str] = []
        for column, value in (
            ("task_id", task_id),
            ("processo_id", case_id),
            ("consultivo_id", consultation_id),
        ):
            if value is not None:
                conditions.append(f"{column} = ?")
                params.append(value)
        query = "SELECT * FROM timesheet_entries"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY work_date ASC, created_at ASC"

        async with self._connection("list timesheet entries") as db:
            cursor = await db.execute(query, tuple(params))
            rows = await cursor.fetchall()
        return [TimesheetEntry(**_from_row(row)) for row in rows]
