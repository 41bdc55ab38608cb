"""Tests for msme_replenishment/config.py."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from msme_replenishment.config import AggregatorConfig, AppConfig, ForecastConfig, load_config

_ENV_VARS = (
    "MSME_REPLENISHMENT_DB_PATH",
    "MSME_REPLENISHMENT_LOG_LEVEL",
    "MSME_REPLENISHMENT_MAX_CONCURRENCY",
    "MSME_REPLENISHMENT_ITEM_TIMEOUT",
    "MSME_REPLENISHMENT_DEBUG",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_dir(tmp_path):
    d = tmp_path / "config"
    d.mkdir()
    (d / "default.toml").write_text(
        "[project]\n"
        "debug = false\n\n"
        "[database]\n"
        'db_path = "var/shop.db"\n\n'
        "[aggregator]\n"
        "max_concurrency = 2\n"
        'default_min_urgency = "MEDIUM"\n\n'
        "[logging]\n"
        'level = "debug"\n',
        encoding="utf-8",
    )
    return d


class TestDefaults:
    def test_app_config_defaults(self):
        cfg = AppConfig()
        assert cfg.forecast.history_lookback_days == 30
        assert cfg.forecast.max_lookback_days == 90
        assert cfg.planner.default_lead_time_days == 7
        assert cfg.aggregator.max_concurrency == 4
        assert cfg.rules.strict_validation is False
        assert cfg.debug is False

    def test_frozen(self):
        cfg = AppConfig()
        with pytest.raises(ValidationError):
            cfg.debug = True


class TestLoadConfig:
    def test_reads_toml(self, config_dir):
        cfg = load_config(config_dir / "default.toml")
        assert cfg.database.db_path == "var/shop.db"
        assert cfg.aggregator.max_concurrency == 2
        assert cfg.aggregator.default_min_urgency == "medium"
        assert cfg.logging.level == "DEBUG"
        # sections absent from the file keep their defaults
        assert cfg.forecast.moving_average_window == 7

    def test_local_toml_overrides(self, config_dir):
        (config_dir / "local.toml").write_text(
            "[aggregator]\nitem_timeout_seconds = 2.5\n", encoding="utf-8"
        )
        cfg = load_config(config_dir / "default.toml")
        assert cfg.aggregator.item_timeout_seconds == 2.5
        assert cfg.aggregator.max_concurrency == 2

    def test_env_overrides(self, config_dir, monkeypatch):
        monkeypatch.setenv("MSME_REPLENISHMENT_DB_PATH", "/tmp/other.db")
        monkeypatch.setenv("MSME_REPLENISHMENT_MAX_CONCURRENCY", "8")
        monkeypatch.setenv("MSME_REPLENISHMENT_ITEM_TIMEOUT", "0.5")
        monkeypatch.setenv("MSME_REPLENISHMENT_LOG_LEVEL", "warning")
        monkeypatch.setenv("MSME_REPLENISHMENT_DEBUG", "yes")
        cfg = load_config(config_dir / "default.toml")
        assert cfg.database.db_path == "/tmp/other.db"
        assert cfg.aggregator.max_concurrency == 8
        assert cfg.aggregator.item_timeout_seconds == 0.5
        assert cfg.logging.level == "WARNING"
        assert cfg.debug is True

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(tmp_path / "nope.toml")

    def test_invalid_value_raises(self, config_dir, monkeypatch):
        monkeypatch.setenv("MSME_REPLENISHMENT_MAX_CONCURRENCY", "0")
        with pytest.raises(ValidationError, match="max_concurrency"):
            load_config(config_dir / "default.toml")

    def test_committed_defaults_load(self):
        cfg = load_config()
        assert cfg.forecast.no_sales_runout_days == 9999
        assert cfg.aggregator.default_min_urgency == "high"


class TestValidators:
    def test_trend_threshold_bounds(self):
        with pytest.raises(ValidationError, match="trend_threshold"):
            ForecastConfig(trend_threshold=1.5)

    def test_window_positive(self):
        with pytest.raises(ValidationError):
            ForecastConfig(moving_average_window=0)

    def test_min_reorder_quantity_floor(self):
        with pytest.raises(ValidationError, match="min_reorder_quantity"):
            ForecastConfig(min_reorder_quantity=5)
        assert ForecastConfig(min_reorder_quantity=25).min_reorder_quantity == 25

    @pytest.mark.parametrize("points", [0, 1])
    def test_trend_min_points_floor(self, points):
        with pytest.raises(ValidationError, match="trend_min_points"):
            ForecastConfig(trend_min_points=points)

    @pytest.mark.parametrize(
        "field", ["seasonality_min_points", "no_sales_runout_days"]
    )
    def test_thresholds_at_least_one(self, field):
        with pytest.raises(ValidationError):
            ForecastConfig(**{field: 0})

    def test_bad_forecast_value_in_toml_rejected(self, config_dir):
        (config_dir / "local.toml").write_text(
            "[forecast]\ntrend_min_points = 0\n", encoding="utf-8"
        )
        with pytest.raises(ValidationError, match="trend_min_points"):
            load_config(config_dir / "default.toml")

    def test_bad_urgency_filter(self):
        with pytest.raises(ValidationError, match="default_min_urgency"):
            AggregatorConfig(default_min_urgency="urgent")

    def test_timeout_positive(self):
        with pytest.raises(ValidationError):
            AggregatorConfig(item_timeout_seconds=0)
