"""Unit tests — config.py (Settings)."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from vigil.config import Settings, SupervisorConfig, get_settings, override_settings


@pytest.mark.unit
class TestSupervisorConfig:
    def test_defaults(self) -> None:
        cfg = SupervisorConfig()
        assert cfg.max_consecutive_failures == 5
        assert cfg.max_backoff_seconds >= cfg.base_backoff_seconds
        assert cfg.reload_interval_seconds == 0

    def test_max_backoff_below_base_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SupervisorConfig(base_backoff_seconds=10, max_backoff_seconds=1)

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SupervisorConfig(checker_timeout_seconds=0)


@pytest.mark.unit
class TestSettings:
    def test_load_from_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        config_file = tmp_path / "vigil.yaml"
        config_file.write_text(
            "supervisor:\n"
            "  max_consecutive_failures: 9\n"
            "store:\n"
            f"  db_path: {tmp_path / 'custom.db'}\n"
            "sink:\n"
            "  events_file: null\n"
        )
        settings = Settings.load(config_file=config_file)
        assert settings.supervisor.max_consecutive_failures == 9
        assert settings.store.db_path == tmp_path / "custom.db"
        assert settings.sink.events_file is None

    def test_env_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setenv("VIGIL_LOGGING__LEVEL", "debug")
        monkeypatch.setenv("VIGIL_SUPERVISOR__CHECKER_TIMEOUT_SECONDS", "2.5")
        settings = Settings.load()
        assert settings.logging.level == "debug"
        assert settings.supervisor.checker_timeout_seconds == 2.5

    def test_missing_file_uses_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        settings = Settings.load(config_file=tmp_path / "absent.yaml")
        assert settings.store.db_path == Path("~/.vigil/watchers.db")

    def test_override_settings(self, test_settings: Settings) -> None:
        assert get_settings() is test_settings
        replacement = Settings()
        override_settings(replacement)
        assert get_settings() is replacement
