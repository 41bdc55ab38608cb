"""
Shared pytest fixtures for the replenishment test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``db_config`` / ``app_config``: A file-backed database under
    ``tmp_path`` (schema applied) for provider and service tests, which
    open their own connections.
  - In-memory fakes of the three provider protocols and a
    ``planner_factory`` that wires them to a real planner.
  - Sample domain object factories.
"""

from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Generator, Optional

import pytest

from msme_replenishment.config import AppConfig, DatabaseConfig, DataConfig
from msme_replenishment.db.connection import get_connection
from msme_replenishment.db.schema import apply_schema
from msme_replenishment.exceptions import DataUnavailableError
from msme_replenishment.forecasting.engine import ForecastEngine
from msme_replenishment.forecasting.planner import ReplenishmentPlanner
from msme_replenishment.models.product import Product
from msme_replenishment.models.rule import ReorderRule, ReorderRuleUpdate
from msme_replenishment.models.sales import SalesDataPoint
from msme_replenishment.providers import merge_rule_update, validate_rule_update

# Monday
TODAY = date(2026, 3, 16)
OWNER = "shop-1"


def daily_series(quantities: list[float], end: date = TODAY) -> list[SalesDataPoint]:
    """Consecutive daily points ending on ``end`` (oldest first)."""
    start = end - timedelta(days=len(quantities) - 1)
    return [
        SalesDataPoint(date=start + timedelta(days=i), quantity=q)
        for i, q in enumerate(quantities)
    ]


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Foreign key enforcement is ON. Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def db_config(tmp_path: Path) -> DatabaseConfig:
    """A schema-initialized SQLite file under ``tmp_path``."""
    cfg = DatabaseConfig(db_path=str(tmp_path / "db" / "test.db"))
    with get_connection(cfg.db_path) as conn:
        apply_schema(conn)
    return cfg


@pytest.fixture
def app_config(db_config: DatabaseConfig, tmp_path: Path) -> AppConfig:
    return AppConfig(
        database=db_config,
        data=DataConfig(output_dir=str(tmp_path / "outputs")),
    )


# ── Provider fakes ────────────────────────────────────────────────────────────

class FakeCatalog:
    def __init__(self, products: list[Product]) -> None:
        self.products = list(products)

    def get(self, owner_id: str, product_id: Optional[str] = None) -> list[Product]:
        return [
            p for p in self.products
            if p.owner_id == owner_id and (product_id is None or p.id == product_id)
        ]


class FakeHistory:
    """Serves canned series; can fail or stall for chosen products."""

    def __init__(
        self,
        series: Optional[dict[str, list[SalesDataPoint]]] = None,
        failing: tuple[str, ...] = (),
        delays: Optional[dict[str, float]] = None,
    ) -> None:
        self.series = series or {}
        self.failing = set(failing)
        self.delays = delays or {}
        self.calls: list[tuple[str, str, int, date]] = []

    def get(
        self,
        owner_id: str,
        product_id: str,
        lookback_days: int,
        today: date,
    ) -> list[SalesDataPoint]:
        self.calls.append((owner_id, product_id, lookback_days, today))
        if product_id in self.delays:
            time.sleep(self.delays[product_id])
        if product_id in self.failing:
            raise DataUnavailableError("history backend down", product_id=product_id)
        return list(self.series.get(product_id, []))


class FakeRules:
    def __init__(self, rules: Optional[list[ReorderRule]] = None, strict: bool = False) -> None:
        self.rules = {(r.owner_id, r.product_id): r for r in rules or []}
        self.strict = strict

    def get(self, owner_id: str, product_id: str) -> Optional[ReorderRule]:
        return self.rules.get((owner_id, product_id))

    def upsert(self, owner_id: str, product_id: str, update: ReorderRuleUpdate) -> ReorderRule:
        validate_rule_update(product_id, update, strict=self.strict)
        rule = merge_rule_update(owner_id, product_id, self.get(owner_id, product_id), update)
        self.rules[(owner_id, product_id)] = rule
        return rule


@dataclass
class PlannerRig:
    planner: ReplenishmentPlanner
    catalog: FakeCatalog
    history: FakeHistory
    rules: FakeRules
    products: list[Product] = field(default_factory=list)


@pytest.fixture
def planner_factory() -> Callable[..., PlannerRig]:
    """Build a ``ReplenishmentPlanner`` over in-memory fakes."""

    def _make(
        products: Optional[list[Product]] = None,
        series: Optional[dict[str, list[SalesDataPoint]]] = None,
        rules: Optional[list[ReorderRule]] = None,
        failing: tuple[str, ...] = (),
        delays: Optional[dict[str, float]] = None,
        config: Optional[AppConfig] = None,
    ) -> PlannerRig:
        cfg = config or AppConfig()
        catalog = FakeCatalog(products or [])
        history = FakeHistory(series, failing, delays)
        rule_store = FakeRules(rules)
        planner = ReplenishmentPlanner(
            ForecastEngine(cfg.forecast),
            history,
            catalog,
            rule_store,
            config=cfg.planner,
            forecast_config=cfg.forecast,
        )
        return PlannerRig(planner, catalog, history, rule_store, list(products or []))

    return _make


# ── Sample domain object factories ────────────────────────────────────────────

def make_product(
    product_id: str = "rice-5kg",
    stock: float = 50.0,
    threshold: float = 60.0,
    owner_id: str = OWNER,
    name: Optional[str] = None,
) -> Product:
    return Product(
        id=product_id,
        owner_id=owner_id,
        name=name or product_id.replace("-", " ").title(),
        current_stock=stock,
        low_stock_threshold=threshold,
    )


@pytest.fixture
def sample_product() -> Product:
    """A low-stock product with 50 units on hand."""
    return make_product()


@pytest.fixture
def sample_rule() -> ReorderRule:
    return ReorderRule(
        owner_id=OWNER,
        product_id="rice-5kg",
        reorder_point=20,
        reorder_quantity=100,
        lead_time_days=5,
        safety_stock=25,
    )


@pytest.fixture
def constant_series() -> list[SalesDataPoint]:
    """30 consecutive days of 10 units, ending on ``TODAY``."""
    return daily_series([10.0] * 30)
