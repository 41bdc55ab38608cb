"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      committed static defaults
  2. ``config/local.toml``        optional local overrides (gitignored)
  3. ``.env``                     local secrets and env overrides (gitignored)
  4. Environment variables        ``MSME_REPLENISHMENT_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The CLI builds one ``AppConfig`` at startup and hands it to
``build_service()``. Library code never reads env vars or TOML directly.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/msme_replenishment.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class DataConfig(BaseModel):
    """Filesystem paths for generated reports."""

    model_config = ConfigDict(frozen=True)

    output_dir: str = "data/outputs/restock"


class ForecastConfig(BaseModel):
    """Forecast engine parameters.

    The defaults are the calibrated heuristic; changing them changes every
    forecast, so treat overrides as experiments.
    """

    model_config = ConfigDict(frozen=True)

    history_lookback_days: int = 30
    max_lookback_days: int = 90
    moving_average_window: int = 7
    seasonality_min_points: int = 14
    trend_min_points: int = 7
    trend_threshold: float = 0.15
    no_sales_runout_days: int = 9999
    min_reorder_quantity: int = 10
    degrade_on_missing_history: bool = True

    @field_validator("moving_average_window", "history_lookback_days", "max_lookback_days")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Window/lookback values must be >= 1, got {v}.")
        return v

    @field_validator("trend_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 < v < 1.0:
            raise ValueError(f"trend_threshold must be in (0.0, 1.0), got {v}.")
        return v

    @field_validator("trend_min_points")
    @classmethod
    def validate_trend_min_points(cls, v: int) -> int:
        # both halves of the split need at least one point
        if v < 2:
            raise ValueError(f"trend_min_points must be >= 2, got {v}.")
        return v

    @field_validator("seasonality_min_points", "no_sales_runout_days")
    @classmethod
    def validate_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Point/day thresholds must be >= 1, got {v}.")
        return v

    @field_validator("min_reorder_quantity")
    @classmethod
    def validate_min_reorder(cls, v: int) -> int:
        if v < 10:
            raise ValueError(f"min_reorder_quantity must be >= 10, got {v}.")
        return v


class PlannerConfig(BaseModel):
    """Policy defaults applied when a product has no reorder rule."""

    model_config = ConfigDict(frozen=True)

    default_lead_time_days: int = 7
    default_safety_stock_days: int = 3
    safety_stock_units_per_day: float = 10.0

    @field_validator("safety_stock_units_per_day")
    @classmethod
    def validate_units_per_day(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"safety_stock_units_per_day must be > 0, got {v}.")
        return v


class AggregatorConfig(BaseModel):
    """Batch recommendation fan-out settings."""

    model_config = ConfigDict(frozen=True)

    max_concurrency: int = 4
    item_timeout_seconds: float = 10.0
    default_limit: int = 20
    default_min_urgency: str = "high"

    @field_validator("max_concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {v}.")
        return v

    @field_validator("item_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"item_timeout_seconds must be > 0, got {v}.")
        return v

    @field_validator("default_min_urgency")
    @classmethod
    def validate_min_urgency(cls, v: str) -> str:
        valid = {"critical", "high", "medium", "low", "all"}
        if v.lower() not in valid:
            raise ValueError(f"default_min_urgency must be one of {sorted(valid)}, got '{v}'.")
        return v.lower()


class RulesConfig(BaseModel):
    """Reorder rule validation settings."""

    model_config = ConfigDict(frozen=True)

    strict_validation: bool = False


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/replenishment.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration, the single source of truth.

    Constructed by ``load_config()`` which merges TOML + .env, or directly
    (``AppConfig()``) for all-defaults use in tests.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    data: DataConfig = DataConfig()
    forecast: ForecastConfig = ForecastConfig()
    planner: PlannerConfig = PlannerConfig()
    aggregator: AggregatorConfig = AggregatorConfig()
    rules: RulesConfig = RulesConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    # 1. Load .env file (silently skip if missing)
    load_dotenv(dotenv_path=root / ".env", override=False)

    # 2. Load TOML config
    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config explicitly."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    # 3. Apply MSME_REPLENISHMENT_* environment variable overrides
    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply MSME_REPLENISHMENT_* env vars to the raw config dict.

    Supported overrides:
      MSME_REPLENISHMENT_DB_PATH          → raw["database"]["db_path"]
      MSME_REPLENISHMENT_LOG_LEVEL        → raw["logging"]["level"]
      MSME_REPLENISHMENT_MAX_CONCURRENCY  → raw["aggregator"]["max_concurrency"]
      MSME_REPLENISHMENT_ITEM_TIMEOUT     → raw["aggregator"]["item_timeout_seconds"]
      MSME_REPLENISHMENT_DEBUG            → raw["debug"]
    """
    if db_path := os.environ.get("MSME_REPLENISHMENT_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("MSME_REPLENISHMENT_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if concurrency := os.environ.get("MSME_REPLENISHMENT_MAX_CONCURRENCY"):
        raw.setdefault("aggregator", {})["max_concurrency"] = int(concurrency)

    if timeout := os.environ.get("MSME_REPLENISHMENT_ITEM_TIMEOUT"):
        raw.setdefault("aggregator", {})["item_timeout_seconds"] = float(timeout)

    if debug := os.environ.get("MSME_REPLENISHMENT_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        data=DataConfig(**raw.get("data", {})),
        forecast=ForecastConfig(**raw.get("forecast", {})),
        planner=PlannerConfig(**raw.get("planner", {})),
        aggregator=AggregatorConfig(**raw.get("aggregator", {})),
        rules=RulesConfig(**raw.get("rules", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
