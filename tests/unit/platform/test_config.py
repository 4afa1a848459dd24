"""
Unit tests for settings and engine configuration.
"""

import pytest

from staffplan.engine.config import EngineConfig, validate_engine_config
from staffplan.platform.config import Settings


class TestEngineConfig:

    def test_defaults_match_settings(self):
        config = EngineConfig.from_settings(Settings())
        assert config == EngineConfig()
        assert config.default_daily_capacity_hours == pytest.approx(40 / 7)
        assert config.max_range_days == 1827

    def test_settings_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_DAILY_CAPACITY_HOURS", "8")
        monkeypatch.setenv("SEVERITY_CRITICAL_THRESHOLD", "1.5")

        config = EngineConfig.from_settings(Settings())

        assert config.default_daily_capacity_hours == 8.0
        assert config.severity_critical_threshold == 1.5

    @pytest.mark.parametrize("overrides", [
        {"default_daily_capacity_hours": 0},
        {"max_range_days": 0},
        {"severity_high_threshold": 0.9},
        {"severity_high_threshold": 1.4, "severity_critical_threshold": 1.3},
        {"high_utilization_warning": 1.2},
        {"underutilized_threshold": 1.0},
    ])
    def test_rejects_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            validate_engine_config(EngineConfig(**overrides))

    def test_invalid_settings_fail_at_startup(self, monkeypatch):
        monkeypatch.setenv("UNDERUTILIZED_THRESHOLD", "2.0")
        with pytest.raises(ValueError, match="underutilized_threshold"):
            EngineConfig.from_settings(Settings())
