"""Shared fixtures: temporary SQLite databases, a controllable clock and record factories."""

from collections.abc import AsyncGenerator
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable

import pytest
import pytest_asyncio

from lexagenda.agenda.service import AgendaService
from lexagenda.config.settings import LexAgendaSettings, reset_settings
from lexagenda.store.database import DatabaseManager
from lexagenda.store.models import (
    EntityKind,
    Frequency,
    RecurrenceRule,
    RuleTemplate,
    TaskRecord,
)
from lexagenda.utils.logging import _correlation_id

OFFICE_ID = "office-1"
# Wednesday
TODAY = date(2024, 1, 10)


class FakeClock:
    """Clock returning a settable naive office-local datetime."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: Any) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 10, 9, 0))


@pytest.fixture
def test_settings(tmp_path: Path) -> LexAgendaSettings:
    """Settings isolated from the user's home directory."""
    return LexAgendaSettings(
        config_dir=tmp_path / "config",
        data_dir=tmp_path / "data",
        timezone="America/Sao_Paulo",
    )


@pytest.fixture(autouse=True)
def reset_global_state() -> Any:
    reset_settings()
    yield
    reset_settings()
    _correlation_id.set(None)


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[DatabaseManager, None]:
    """Initialized database in a temporary directory."""
    manager = DatabaseManager(tmp_path / "agenda.db")
    await manager.initialize()
    yield manager


@pytest.fixture
def service(
    database: DatabaseManager, test_settings: LexAgendaSettings, clock: FakeClock
) -> AgendaService:
    return AgendaService(database, settings=test_settings, clock=clock)


@pytest.fixture
def make_task() -> Callable[..., TaskRecord]:
    """Factory for task rows starting today at 10:00 unless overridden."""

    def _make(**overrides: Any) -> TaskRecord:
        values: dict[str, Any] = {
            "office_id": OFFICE_ID,
            "title": "Draft appeal",
            "start": datetime(2024, 1, 10, 10, 0),
        }
        values.update(overrides)
        return TaskRecord(**values)

    return _make


@pytest.fixture
def make_rule() -> Callable[..., RecurrenceRule]:
    """Factory for daily task rules anchored on 2024-01-01."""

    def _make(**overrides: Any) -> RecurrenceRule:
        values: dict[str, Any] = {
            "office_id": OFFICE_ID,
            "entity_kind": EntityKind.TASK,
            "title": "Check court gazette",
            "frequency": Frequency.DAILY,
            "anchor_date": date(2024, 1, 1),
            "template": RuleTemplate(),
        }
        values.update(overrides)
        return RecurrenceRule(**values)

    return _make
