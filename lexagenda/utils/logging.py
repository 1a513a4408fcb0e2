"""Logging configuration and setup utilities."""

import contextvars
import inspect
import logging
import logging.handlers
import os
import sys
import uuid
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional

if TYPE_CHECKING:
    from ..config.settings import LexAgendaSettings

# Custom log level between INFO(20) and DEBUG(10)
VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")

ROOT_LOGGER_NAME = "lexagenda"

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "lexagenda_correlation_id", default=None
)


def verbose(self: logging.Logger, message: Any, *args: Any, **kwargs: Any) -> None:
    """Add verbose() method to Logger class for detailed diagnostic logging.

    Args:
        self (logging.Logger): Logger instance (automatically provided)
        message (Any): Log message or format string
        *args (Any): Arguments for string formatting
        **kwargs (Any): Additional keyword arguments for logging
    """
    if self.isEnabledFor(VERBOSE):
        self._log(VERBOSE, message, args, **kwargs)


logging.Logger.verbose = verbose  # type: ignore[attr-defined]


def get_log_level(level_name: str) -> int:
    """Get numeric log level from string name, including custom VERBOSE level.

    Args:
        level_name (str): Log level name (DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        int: Numeric log level value for use with logging methods

    Raises:
        AttributeError: If level name is not recognized or invalid
    """
    level_name = level_name.upper()
    if level_name == "VERBOSE":
        return VERBOSE
    level: int = getattr(logging, level_name)
    return level


class AutoColoredFormatter(logging.Formatter):
    """Formatter that auto-detects terminal color support."""

    COLORS = {
        "ERROR": {"truecolor": "\033[91m", "basic": "\033[31m", "none": ""},
        "INFO": {"truecolor": "\033[94m", "basic": "\033[34m", "none": ""},
        "VERBOSE": {"truecolor": "\033[92m", "basic": "\033[32m", "none": ""},
        "WARNING": {"truecolor": "\033[93m", "basic": "\033[33m", "none": ""},
        "DEBUG": {"truecolor": "\033[95m", "basic": "\033[35m", "none": ""},
        "CRITICAL": {"truecolor": "\033[91m\033[1m", "basic": "\033[31m\033[1m", "none": ""},
        "RESET": {"truecolor": "\033[0m", "basic": "\033[0m", "none": ""},
    }

    def __init__(self, *args: Any, enable_colors: bool = True, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.enable_colors = enable_colors
        self.color_mode = self._detect_color_support() if enable_colors else "none"

    def _detect_color_support(self) -> str:
        """Auto-detect terminal color capabilities."""
        if not hasattr(sys.stdout, "isatty") or not sys.stdout.isatty():
            return "none"

        term = os.environ.get("TERM", "").lower()
        colorterm = os.environ.get("COLORTERM", "").lower()

        if term == "dumb":
            return "none"

        if colorterm in ("truecolor", "24bit") or "256color" in term:
            return "truecolor"

        if term and "color" in term:
            return "basic"

        return "none"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors if supported."""
        formatted = super().format(record)

        if self.color_mode == "none":
            return formatted

        level_name = record.levelname
        if level_name in self.COLORS:
            color_start = self.COLORS[level_name][self.color_mode]
            color_end = self.COLORS["RESET"][self.color_mode]
            formatted = formatted.replace(level_name, f"{color_start}{level_name}{color_end}", 1)

        return formatted


class CorrelationIdFilter(logging.Filter):
    """Stamp every record with the correlation id of the command being handled."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get() or "-"
        return True


def current_correlation_id() -> Optional[str]:
    """Get the correlation id of the command currently running, if any."""
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id for the duration of a command.

    Nested contexts reuse the outer id so one command keeps one id.
    """
    existing = _correlation_id.get()
    if existing is not None and correlation_id is None:
        yield existing
        return

    token = _correlation_id.set(correlation_id or uuid.uuid4().hex[:12])
    try:
        yield _correlation_id.get() or ""
    finally:
        _correlation_id.reset(token)


def with_correlation_id(correlation_id: Optional[str] = None) -> Callable:
    """Decorator that runs a sync or async function inside a correlation context.

    Usage:
        @with_correlation_id()
        async def reschedule(...):
            logger.info("Rescheduling")  # Will include correlation ID
    """

    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with correlation_context(correlation_id):
                    return await func(*args, **kwargs)

            return async_wrapper

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with correlation_context(correlation_id):
                return func(*args, **kwargs)

        return wrapper

    return decorator


def setup_logging(settings: "LexAgendaSettings") -> logging.Logger:
    """Set up application logging with console and optional file output.

    Args:
        settings: Application settings carrying a ``logging`` section

    Returns:
        Configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Allow all levels, handlers will filter
    logger.handlers.clear()

    log_settings = settings.logging
    correlation_filter = CorrelationIdFilter() if log_settings.correlation_ids else None
    prefix = "[%(correlation_id)s] " if correlation_filter else ""

    if log_settings.console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(get_log_level(log_settings.console_level))
        console_handler.setFormatter(
            AutoColoredFormatter(
                f"%(asctime)s - %(levelname)s - {prefix}%(message)s",
                datefmt="%H:%M:%S",
                enable_colors=log_settings.console_colors,
            )
        )
        if correlation_filter:
            console_handler.addFilter(correlation_filter)
        logger.addHandler(console_handler)

    if log_settings.file_enabled:
        if log_settings.file_directory:
            log_dir = Path(log_settings.file_directory)
        else:
            log_dir = settings.data_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / log_settings.file_name,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=log_settings.max_log_files,
            encoding="utf-8",
        )
        file_handler.setLevel(get_log_level(log_settings.file_level))

        if log_settings.include_function_names:
            file_format = (
                f"%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - "
                f"{prefix}%(message)s"
            )
        else:
            file_format = f"%(asctime)s - %(name)s - %(levelname)s - {prefix}%(message)s"
        file_handler.setFormatter(logging.Formatter(file_format, datefmt="%Y-%m-%d %H:%M:%S"))
        if correlation_filter:
            file_handler.addFilter(correlation_filter)
        logger.addHandler(file_handler)

        logger.info(f"Logging to file: {file_handler.baseFilename}")

    third_party_level = get_log_level(log_settings.third_party_level)
    for lib in ["aiosqlite", "asyncio"]:
        logging.getLogger(lib).setLevel(third_party_level)

    logger.debug("Logging initialized")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance under the package namespace.

    Args:
        name (str): Logger name, typically the module's __name__ value

    Returns:
        logging.Logger: Logger namespaced under ``lexagenda``
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
