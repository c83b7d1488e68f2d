"""
Configuration tests.

Run:
    python -m pytest tests/test_config.py -v
"""

import pytest
import structlog

from trend_rider.core.config import GAMMA_API_URL, Config, MonitoringConfig
from trend_rider.monitoring.log_setup import configure_logging


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("TR_GAMMA_API_URL", "TR_LOG_LEVEL", "TR_MIN_MOMENTUM", "TR_WINDOW_MINUTES"):
        monkeypatch.delenv(name, raising=False)


class TestConfig:
    def test_defaults_are_valid(self):
        config = Config()
        assert config.validate() == []
        assert config.scan.window_minutes == 15
        assert config.filters.min_volume == 1000
        assert config.exits.profit_target_percent == 15
        assert config.gamma.api_url == GAMMA_API_URL

    def test_from_dict_merges_sections(self):
        config = Config.from_dict({
            "scan": {"min_momentum_percent": 2.5, "window_minutes": 5},
            "filters": {"min_volume": 0, "category_whitelist": ["Crypto"]},
            "exits": {"trailing_stop_enabled": False},
        })
        assert config.scan.min_momentum_percent == 2.5
        assert config.scan.window_minutes == 5
        assert config.scan.market_limit == 100
        assert config.filters.min_volume == 0
        assert config.filters.category_whitelist == ["Crypto"]
        assert config.exits.trailing_stop_enabled is False
        assert config.exits.stop_loss_percent == 10

    def test_from_dict_ignores_unknown_keys(self):
        config = Config.from_dict({"scan": {"bogus": 1}, "unknown_section": {}})
        assert config.validate() == []

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "scan:\n"
            "  window_minutes: 60\n"
            "sizing:\n"
            "  position_size_mode: percent\n"
            "  position_size_percent: 2\n"
            "scheduler:\n"
            "  scan_interval_sec: 120\n"
        )
        config = Config.from_yaml(str(path))
        assert config.scan.window_minutes == 60
        assert config.sizing.position_size_mode == "percent"
        assert config.scheduler.scan_interval_sec == 120
        assert config.validate() == []

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert Config.from_yaml(str(path)).validate() == []

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TR_MIN_MOMENTUM", "7.5")
        monkeypatch.setenv("TR_WINDOW_MINUTES", "10")
        monkeypatch.setenv("TR_LOG_LEVEL", "debug")
        monkeypatch.setenv("TR_GAMMA_API_URL", "http://localhost:9000")

        config = Config.from_dict({"scan": {"min_momentum_percent": 3}})

        assert config.scan.min_momentum_percent == 7.5
        assert config.scan.window_minutes == 10
        assert config.monitoring.log_level == "DEBUG"
        assert config.gamma.api_url == "http://localhost:9000"

    @pytest.mark.parametrize(
        "data,fragment",
        [
            ({"scan": {"window_minutes": 7}}, "window_minutes"),
            ({"scan": {"min_momentum_percent": 0}}, "min_momentum_percent"),
            ({"scan": {"max_workers": 0}}, "max_workers"),
            ({"scheduler": {"scan_interval_sec": 45}}, "scan_interval_sec"),
            ({"exits": {"profit_target_percent": -1}}, "profit_target_percent"),
            ({"exits": {"stop_loss_percent": 0}}, "stop_loss_percent"),
            ({"exits": {"trailing_stop_percent": 0}}, "trailing_stop_percent"),
            ({"exits": {"max_hold_time_hours": 0}}, "max_hold_time_hours"),
            ({"sizing": {"position_size_mode": "kelly"}}, "position_size_mode"),
            ({"sizing": {"position_size_percent": 150}}, "position_size_percent"),
            ({"sizing": {"max_concurrent_positions": 0}}, "max_concurrent_positions"),
            ({"guards": {"daily_loss_limit": 0}}, "daily_loss_limit"),
        ],
    )
    def test_invalid_values(self, data, fragment):
        errors = Config.from_dict(data).validate()
        assert len(errors) == 1
        assert fragment in errors[0]

    def test_disabled_trailing_stop_skips_its_threshold(self):
        config = Config.from_dict({"exits": {"trailing_stop_enabled": False, "trailing_stop_percent": 0}})
        assert config.validate() == []


class TestLogging:
    @pytest.mark.parametrize("json_logs", [True, False])
    def test_configure_logging(self, json_logs):
        try:
            configure_logging(MonitoringConfig(log_level="WARNING", json_logs=json_logs))
            assert structlog.is_configured()
            structlog.get_logger("test").warning("configured", json_logs=json_logs)
        finally:
            structlog.reset_defaults()

    def test_unknown_level_falls_back(self):
        try:
            configure_logging(MonitoringConfig(log_level="LOUD"))
            assert structlog.is_configured()
        finally:
            structlog.reset_defaults()
