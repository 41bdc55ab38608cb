"""
Replenishment planner: wraps the forecast engine with per-product policy.

For each product the planner:
  1. Resolves policy (lead time and safety-stock days) from the product's
     ``ReorderRule``, or the configured defaults when no rule exists.
  2. Runs ``ForecastEngine.predict()``.
  3. Converts the runout date into whole ``days_until_runout`` (>= 0).
  4. Classifies urgency from ``days_until_runout`` alone.
  5. Flags ``should_reorder`` when runout falls within the lead time.

Safety stock conversion
-----------------------
Rules store ``safety_stock`` as a **unit quantity**. The planner converts
it to days with ``ceil(safety_stock / safety_stock_units_per_day)`` (10
units per day by default). A zero or missing safety stock falls back to the
default 3 days, because rule creation stores 0 when the owner gave none.

I/O
---
``plan()`` is pure. ``plan_product()`` and ``forecast_product()`` read
history, rules, and the catalog through the injected provider protocols;
those reads are the only places a planner call blocks.
"""

from __future__ import annotations

import logging
import math
from datetime import date

from msme_replenishment.config import ForecastConfig, PlannerConfig
from msme_replenishment.exceptions import DataUnavailableError, ProductNotFoundError
from msme_replenishment.forecasting.engine import ForecastEngine
from msme_replenishment.models.forecast import SalesTrendAnalysis, StockForecast
from msme_replenishment.models.product import Product
from msme_replenishment.models.rule import ReorderRule
from msme_replenishment.models.sales import SalesDataPoint
from msme_replenishment.providers import ProductCatalog, ReorderRuleStore, SalesHistoryProvider
from msme_replenishment.taxonomy.replenishment_taxonomy import URGENCY_THRESHOLDS, Urgency

logger = logging.getLogger(__name__)


def classify_urgency(days_until_runout: int) -> Urgency:
    """Map days until runout to an urgency tier.

    Thresholds (first match wins): ``<= 3`` critical, ``<= 7`` high,
    ``<= 14`` medium, otherwise low.
    """
    for upper, urgency in URGENCY_THRESHOLDS:
        if days_until_runout <= upper:
            return urgency
    return Urgency.LOW


def safety_stock_days(
    rule: ReorderRule | None,
    config: PlannerConfig,
) -> int:
    """Convert a rule's safety-stock units into buffer days."""
    if rule is None or not rule.safety_stock:
        return config.default_safety_stock_days
    return math.ceil(rule.safety_stock / config.safety_stock_units_per_day)


def lead_time_days(rule: ReorderRule | None, config: PlannerConfig) -> int:
    """Lead time from the rule, or the configured default when no rule exists."""
    if rule is None:
        return config.default_lead_time_days
    return rule.lead_time_days


class ReplenishmentPlanner:
    """Per-product replenishment decisions on top of ``ForecastEngine``.

    Attributes:
        engine:   Configured forecast engine (stateless, shared).
        history:  Sales history provider.
        catalog:  Product catalog.
        rules:    Reorder rule store.
        config:   Policy defaults.
        forecast_config: Lookback and degradation settings.
    """

    def __init__(
        self,
        engine: ForecastEngine,
        history: SalesHistoryProvider,
        catalog: ProductCatalog,
        rules: ReorderRuleStore,
        config: PlannerConfig | None = None,
        forecast_config: ForecastConfig | None = None,
    ) -> None:
        self.engine = engine
        self.history = history
        self.catalog = catalog
        self.rules = rules
        self.config = config or PlannerConfig()
        self.forecast_config = forecast_config or engine.config

    # ── Pure planning ─────────────────────────────────────────────────────────

    def plan(
        self,
        product: Product,
        series: list[SalesDataPoint],
        rule: ReorderRule | None,
        today: date,
    ) -> StockForecast:
        """Build a ``StockForecast`` from already-fetched inputs.

        Args:
            product: Catalog product (stock level and name).
            series:  Chronological daily sales series.
            rule:    The product's reorder rule, or ``None``.
            today:   Reference date.

        Returns:
            ``StockForecast`` for the product.
        """
        lead = lead_time_days(rule, self.config)
        safety = safety_stock_days(rule, self.config)

        result = self.engine.predict(series, product.current_stock, lead, safety, today)
        days_until_runout = max(0, (result.predicted_runout_date - today).days)

        return StockForecast(
            product_id=product.id,
            product_name=product.name,
            current_stock=product.current_stock,
            predicted_runout_date=result.predicted_runout_date,
            days_until_runout=days_until_runout,
            suggested_reorder_quantity=result.suggested_reorder_quantity,
            confidence=result.confidence,
            urgency=classify_urgency(days_until_runout),
            should_reorder=days_until_runout <= lead,
        )

    # ── Provider-backed planning ──────────────────────────────────────────────

    def plan_product(
        self,
        owner_id: str,
        product: Product,
        today: date,
        degrade_on_missing_history: bool = False,
    ) -> StockForecast:
        """Fetch history and rule for ``product`` and plan it.

        Args:
            owner_id: Catalog owner.
            product:  Product to plan.
            today:    Reference date.
            degrade_on_missing_history: When ``True`` a failed history read
                is logged and planned as an empty series; when ``False`` the
                ``DataUnavailableError`` propagates.

        Raises:
            DataUnavailableError: History read failed and degradation is off.
        """
        try:
            series = self.history.get(
                owner_id, product.id, self.forecast_config.history_lookback_days, today
            )
        except DataUnavailableError as exc:
            if not degrade_on_missing_history:
                raise
            logger.warning(
                "Sales history unavailable for product=%s; forecasting from an empty series: %s",
                product.id, exc,
                extra={"owner_id": owner_id, "product_id": product.id},
            )
            series = []

        rule = self.rules.get(owner_id, product.id)
        return self.plan(product, series, rule, today)

    def forecast_product(
        self,
        owner_id: str,
        product_id: str,
        today: date,
    ) -> StockForecast:
        """Forecast one product by id, resolving it from the catalog.

        Raises:
            ProductNotFoundError: If the owner has no such product.
            DataUnavailableError: If history is unavailable and
                ``degrade_on_missing_history`` is disabled.
        """
        product = self._get_product(owner_id, product_id)
        return self.plan_product(
            owner_id,
            product,
            today,
            degrade_on_missing_history=self.forecast_config.degrade_on_missing_history,
        )

    def analyze_trend(
        self,
        owner_id: str,
        product_id: str,
        period_days: int,
        today: date,
    ) -> SalesTrendAnalysis:
        """Explain the demand trend for one product over ``period_days``.

        The lookback is clamped to ``[1, forecast.max_lookback_days]``.

        Raises:
            ProductNotFoundError: If the owner has no such product.
            DataUnavailableError: If the history read fails.
        """
        product = self._get_product(owner_id, product_id)
        period = max(1, min(period_days, self.forecast_config.max_lookback_days))
        series = self.history.get(owner_id, product.id, period, today)
        signal = self.engine.trend(series)

        return SalesTrendAnalysis(
            product_id=product.id,
            period_days=period,
            data_points=len(series),
            trend=signal.direction,
            trend_multiplier=signal.multiplier,
            first_half_mean=round(signal.first_half_mean, 4),
            second_half_mean=round(signal.second_half_mean, 4),
            change_pct=round(signal.change_pct, 4) if signal.change_pct is not None else None,
            daily_average_sales=round(self.engine.moving_average(series), 4),
            confidence=self.engine.confidence(series),
        )

    def _get_product(self, owner_id: str, product_id: str) -> Product:
        products = self.catalog.get(owner_id, product_id)
        if not products:
            raise ProductNotFoundError(owner_id, product_id)
        return products[0]
