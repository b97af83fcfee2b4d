"""Tests for team_streaks.config module."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from team_streaks.config import PeriodsConfig, SyncConfig, load_config
from tests.conftest import make_config_dict


class TestConfigModels:
    """Defaults and validation."""

    def test_empty_config_is_valid(self):
        config = SyncConfig()
        assert config.store.backend == "sqlite"
        assert config.periods.timezone == "America/Chicago"
        assert config.periods.first_weekday_index == 0
        assert config.retry.max_retries == 6
        assert config.retry.base_delay_seconds == 0.1
        assert config.coordinator.debounce_seconds == 0.35
        assert config.trophies.milestones == [1, 3, 7, 14, 30]

    def test_sample_config(self, sample_config: SyncConfig):
        assert sample_config.store.backend == "memory"
        assert sample_config.members == ["D.J.", "Ron", "Deanna", "Dimitri"]

    def test_weekday_normalized(self):
        assert PeriodsConfig(first_weekday=" Sunday ").first_weekday_index == 6

    def test_unknown_weekday_rejected(self):
        with pytest.raises(ValidationError):
            PeriodsConfig(first_weekday="funday")

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            SyncConfig(**make_config_dict(periods={"timezone": "Mars/Olympus"}))

    def test_known_timezones_accepted(self):
        assert PeriodsConfig(timezone="utc").timezone == "UTC"
        assert PeriodsConfig(timezone=" America/Chicago ").timezone == "America/Chicago"

    def test_min_days_bounds(self):
        with pytest.raises(ValidationError):
            PeriodsConfig(minimum_days_in_first_week=8)

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            SyncConfig(**make_config_dict(store={"backend": "cloudkit"}))

    def test_negative_retries_rejected(self):
        with pytest.raises(ValidationError):
            SyncConfig(**make_config_dict(retry={"max_retries": -1}))


class TestLoadConfig:
    """YAML loading."""

    def test_load_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(make_config_dict()), encoding="utf-8")
        config = load_config(str(path))
        assert config.periods.timezone == "UTC"

    def test_env_expansion(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("STREAKS_DB", "/data/streaks.db")
        monkeypatch.delenv("STREAKS_TZ", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(
            "store:\n  path: ${STREAKS_DB}\nperiods:\n  timezone: ${STREAKS_TZ:-Europe/Berlin}\n",
            encoding="utf-8",
        )
        config = load_config(str(path))
        assert config.store.path == "/data/streaks.db"
        assert config.periods.timezone == "Europe/Berlin"

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(str(path)).retry.max_retries == 6

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "absent.yaml"))

    def test_non_mapping(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(str(path))
