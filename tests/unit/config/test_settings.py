"""Unit tests for the settings configuration module."""

from pathlib import Path

import pytest
import yaml

from lexagenda.config.settings import (
    LexAgendaSettings,
    SchedulingSettings,
    get_settings,
    reset_settings,
)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "config"
    directory.mkdir()
    return directory


def _write_config(config_dir: Path, data: dict) -> None:
    (config_dir / "config.yaml").write_text(yaml.safe_dump(data))


class TestLexAgendaSettingsDefaults:
    def test_init_when_no_config_then_defaults_used(self, config_dir: Path, tmp_path: Path) -> None:
        settings = LexAgendaSettings(config_dir=config_dir, data_dir=tmp_path / "data")

        assert settings.timezone == "America/Sao_Paulo"
        assert settings.scheduling == SchedulingSettings()
        assert settings.logging.console_level == "INFO"
        assert settings.database_file == tmp_path / "data" / "agenda.db"
        assert settings.config_file == config_dir / "config.yaml"

    def test_database_file_when_path_given_then_used(self, config_dir: Path, tmp_path: Path) -> None:
        settings = LexAgendaSettings(config_dir=config_dir, database_path=tmp_path / "custom.db")

        assert settings.database_file == tmp_path / "custom.db"


class TestYamlOverlay:
    def test_init_when_yaml_present_then_values_loaded(self, config_dir: Path) -> None:
        _write_config(
            config_dir,
            {
                "timezone": "Europe/Lisbon",
                "logging": {"console_level": "DEBUG", "file_enabled": True},
                "scheduling": {"max_expansion_days": 90, "critical_deadline_days": 5},
            },
        )

        settings = LexAgendaSettings(config_dir=config_dir)

        assert settings.timezone == "Europe/Lisbon"
        assert settings.logging.console_level == "DEBUG"
        assert settings.logging.file_enabled is True
        assert settings.scheduling.max_expansion_days == 90
        assert settings.scheduling.critical_deadline_days == 5
        assert settings.scheduling.max_occurrences_per_rule == 500

    def test_init_when_explicit_argument_then_yaml_ignored(self, config_dir: Path) -> None:
        _write_config(config_dir, {"timezone": "Europe/Lisbon"})

        settings = LexAgendaSettings(config_dir=config_dir, timezone="UTC")

        assert settings.timezone == "UTC"

    def test_init_when_env_var_set_then_yaml_ignored(
        self, config_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_config(config_dir, {"timezone": "Europe/Lisbon"})
        monkeypatch.setenv("LEXAGENDA_TIMEZONE", "Asia/Tokyo")

        settings = LexAgendaSettings(config_dir=config_dir)

        assert settings.timezone == "Asia/Tokyo"

    def test_init_when_nested_env_var_then_section_value_set(
        self, config_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LEXAGENDA_SCHEDULING__MAX_EXPANSION_DAYS", "30")

        settings = LexAgendaSettings(config_dir=config_dir)

        assert settings.scheduling.max_expansion_days == 30

    def test_init_when_yaml_malformed_then_defaults_kept(self, config_dir: Path) -> None:
        (config_dir / "config.yaml").write_text("timezone: [unclosed\n")

        settings = LexAgendaSettings(config_dir=config_dir)

        assert settings.timezone == "America/Sao_Paulo"


class TestGlobalSettings:
    def test_get_settings_when_called_twice_then_same_instance(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))

        first = get_settings()

        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first
