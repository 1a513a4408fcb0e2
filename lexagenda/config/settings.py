"""Settings management using Pydantic for type validation and configuration."""

import logging
import os
from pathlib import Path
from typing import Any, Optional, cast

import yaml
from pydantic import BaseModel, Field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "LEXAGENDA_"


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    # Console Logging
    console_enabled: bool = Field(default=True, description="Enable console logging")
    console_level: str = Field(
        default="INFO",
        description="Console log level: DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL",
    )
    console_colors: bool = Field(
        default=True, description="Enable colored console output (auto-detected)"
    )

    # File Logging
    file_enabled: bool = Field(default=False, description="Enable file logging")
    file_level: str = Field(
        default="DEBUG",
        description="File log level: DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL",
    )
    file_directory: Optional[str] = Field(
        default=None, description="Custom log directory (defaults to data_dir/logs)"
    )
    file_name: str = Field(default="lexagenda.log", description="Log file name")
    max_log_files: int = Field(default=5, description="Rotated log files to keep")
    include_function_names: bool = Field(
        default=True, description="Include function names and line numbers in file logs"
    )

    # Third-party Libraries
    third_party_level: str = Field(
        default="WARNING", description="Log level for third-party libraries"
    )

    # Command tracing
    correlation_ids: bool = Field(
        default=True, description="Attach a correlation id to every command's log records"
    )


class SchedulingSettings(BaseModel):
    """Recurrence expansion and agenda projection limits."""

    max_expansion_days: int = Field(
        default=366, description="Longest window a single expansion may cover"
    )
    max_occurrences_per_rule: int = Field(
        default=500, description="Occurrences yielded per rule per expansion call"
    )
    critical_deadline_days: int = Field(
        default=2, description="Deadlines within this many days count as critical"
    )


class LexAgendaSettings(BaseSettings):
    """Application settings with environment variable support."""

    # Private attributes
    _explicit_args: set = PrivateAttr(default_factory=set)
    _env_vars_set: set = PrivateAttr(default_factory=set)

    app_name: str = Field(default="LexAgenda", description="Application name")
    timezone: str = Field(
        default="America/Sao_Paulo", description="Office timezone used to decide 'today'"
    )

    # File Paths
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config" / "lexagenda")
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local" / "share" / "lexagenda")
    database_path: Optional[Path] = Field(
        default=None, description="SQLite database file (defaults to data_dir/agenda.db)"
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings, description="Logging settings"
    )
    scheduling: SchedulingSettings = Field(
        default_factory=SchedulingSettings, description="Recurrence and projection limits"
    )

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    def __init__(self, **kwargs: Any) -> None:
        env_vars_set = {
            key[len(ENV_PREFIX) :].lower().split("__")[0]
            for key in os.environ
            if key.startswith(ENV_PREFIX)
        }

        super().__init__(**kwargs)

        # Explicit arguments and environment variables take priority over YAML
        self._explicit_args = set(kwargs.keys())
        self._env_vars_set = env_vars_set

        self._load_yaml_config()

    def _find_config_file(self) -> Optional[Path]:
        """Find config file, checking project directory first, then user home."""
        project_root = Path(__file__).parent.parent.parent
        project_config = project_root / "config" / "config.yaml"
        if project_config.exists():
            return project_config

        user_config = self.config_dir / "config.yaml"
        if user_config.exists():
            return user_config

        return None

    def _is_overridden(self, setting: str) -> bool:
        return setting in self._explicit_args or setting in self._env_vars_set

    def _load_basic_settings(self, config_data: dict) -> None:
        """Load top-level settings from YAML data."""
        for setting in ("app_name", "timezone"):
            if setting in config_data and not self._is_overridden(setting):
                setattr(self, setting, config_data[setting])

        for setting in ("data_dir", "config_dir", "database_path"):
            if config_data.get(setting) and not self._is_overridden(setting):
                setattr(self, setting, Path(config_data[setting]).expanduser())

    def _load_logging_config(self, config_data: dict) -> None:
        """Load logging configuration from YAML data."""
        if "logging" not in config_data or self._is_overridden("logging"):
            return

        logging_config = config_data["logging"] or {}
        for setting in LoggingSettings.model_fields:
            if setting in logging_config:
                setattr(self.logging, setting, logging_config[setting])

    def _load_scheduling_config(self, config_data: dict) -> None:
        """Load recurrence and projection limits from YAML data."""
        if "scheduling" not in config_data or self._is_overridden("scheduling"):
            return

        scheduling_config = config_data["scheduling"] or {}
        for setting in SchedulingSettings.model_fields:
            if setting in scheduling_config:
                setattr(self.scheduling, setting, int(scheduling_config[setting]))

    def _load_yaml_config(self) -> None:
        """Load configuration from YAML file if it exists."""
        config_file = self._find_config_file()
        if not config_file:
            return

        try:
            with config_file.open() as f:
                config_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            # Don't fail if YAML loading fails, just continue with defaults/env vars
            logging.warning(f"Could not load YAML config from {config_file}: {e}")
            return

        if not config_data:
            return

        self._load_basic_settings(config_data)
        self._load_logging_config(config_data)
        self._load_scheduling_config(config_data)

    @property
    def database_file(self) -> Path:
        """Path to SQLite database file."""
        if self.database_path is not None:
            return self.database_path
        return self.data_dir / "agenda.db"

    @property
    def config_file(self) -> Path:
        """Path to YAML configuration file."""
        return self.config_dir / "config.yaml"


# Global settings management
_settings_instance: Optional[LexAgendaSettings] = None


def get_settings() -> LexAgendaSettings:
    """Get the global settings instance, creating it lazily if needed.

    Returns:
        LexAgendaSettings: The global settings instance
    """
    if globals()["_settings_instance"] is None:
        globals()["_settings_instance"] = LexAgendaSettings()
    return cast(LexAgendaSettings, globals()["_settings_instance"])


def reset_settings() -> None:
    """Reset the global settings instance (primarily for testing)."""
    globals()["_settings_instance"] = None
