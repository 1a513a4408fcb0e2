"""Unit tests for logging setup and correlation ids."""

import asyncio
import logging
import logging.handlers
from pathlib import Path

import pytest

from lexagenda.config.settings import LexAgendaSettings, LoggingSettings
from lexagenda.utils.logging import (
    VERBOSE,
    AutoColoredFormatter,
    CorrelationIdFilter,
    correlation_context,
    current_correlation_id,
    get_log_level,
    get_logger,
    setup_logging,
    with_correlation_id,
)


@pytest.fixture
def restore_package_logger():
    logger = logging.getLogger("lexagenda")
    handlers = list(logger.handlers)
    level = logger.level
    yield
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)


class TestLogLevels:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [("verbose", VERBOSE), ("DEBUG", logging.DEBUG), ("warning", logging.WARNING)],
    )
    def test_get_log_level_when_name_given_then_numeric_level(self, name: str, expected: int) -> None:
        assert get_log_level(name) == expected

    def test_get_log_level_when_unknown_then_attribute_error(self) -> None:
        with pytest.raises(AttributeError):
            get_log_level("LOUD")

    def test_get_logger_when_plain_name_then_namespaced(self) -> None:
        assert get_logger("jobs").name == "lexagenda.jobs"
        assert get_logger("lexagenda.store").name == "lexagenda.store"


class TestSetupLogging:
    def test_setup_logging_when_file_enabled_then_rotating_handler_added(
        self, tmp_path: Path, restore_package_logger: None
    ) -> None:
        settings = LexAgendaSettings(
            config_dir=tmp_path / "config",
            data_dir=tmp_path / "data",
            logging=LoggingSettings(file_enabled=True, console_enabled=False),
        )

        logger = setup_logging(settings)
        logger.info("hello")

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.handlers.RotatingFileHandler)
        log_file = tmp_path / "data" / "logs" / "lexagenda.log"
        assert log_file.exists()
        assert "hello" in log_file.read_text()

    def test_setup_logging_when_called_twice_then_handlers_not_duplicated(
        self, tmp_path: Path, restore_package_logger: None
    ) -> None:
        settings = LexAgendaSettings(config_dir=tmp_path / "config", data_dir=tmp_path / "data")

        setup_logging(settings)
        logger = setup_logging(settings)

        assert len(logger.handlers) == 1

    def test_formatter_when_colors_disabled_then_plain_output(self) -> None:
        formatter = AutoColoredFormatter("%(levelname)s %(message)s", enable_colors=False)
        record = logging.LogRecord("lexagenda", logging.ERROR, __file__, 1, "boom", None, None)

        assert formatter.format(record) == "ERROR boom"


class TestCorrelationIds:
    def test_correlation_context_when_nested_then_outer_id_kept(self) -> None:
        with correlation_context() as outer:
            with correlation_context() as inner:
                assert inner == outer
                assert current_correlation_id() == outer

        assert current_correlation_id() is None

    def test_filter_when_no_context_then_dash(self) -> None:
        record = logging.LogRecord("lexagenda", logging.INFO, __file__, 1, "msg", None, None)

        CorrelationIdFilter().filter(record)

        assert record.correlation_id == "-"

    @pytest.mark.asyncio
    async def test_with_correlation_id_when_async_then_id_bound_during_call(self) -> None:
        @with_correlation_id("fixed-id")
        async def command() -> str:
            await asyncio.sleep(0)
            return current_correlation_id() or ""

        assert await command() == "fixed-id"
        assert current_correlation_id() is None

    def test_with_correlation_id_when_sync_then_generated_id(self) -> None:
        @with_correlation_id()
        def command() -> str:
            return current_correlation_id() or ""

        assert len(command()) == 12
