"""
Forecast engine: turns a product's daily sales series plus its current stock
into a runout prediction and a reorder quantity.

Every function here is pure: no DB access, no clock reads. ``today`` is
always passed in, so identical inputs give bit-identical outputs.

Adjusted daily rate
-------------------
    rate = moving_average(series, 7)
         * seasonal_factor(series, today)
         * TREND_MULTIPLIER[detect_trend(series)]

Runout and reorder
------------------
    days_until_stockout = current_stock / rate        (9999 when rate == 0, uncapped otherwise)
    runout_date         = today + floor(days_until_stockout)
    reorder_quantity    = max(10, ceil(rate * (lead_time + safety_stock_days)))

Component explanations
----------------------
moving_average:
    Mean quantity of the last ``window`` points. Empty series → 0.

seasonal_factor (needs >= 14 points, else 1.0):
    Per-weekday mean quantity (weekdays with no points count as 0), divided
    by the mean of those seven weekday means. Evaluated for ``today``'s
    weekday. A zero overall mean gives 1.0.

confidence (data-quality score, always within [0.1, 0.95]):
    0 points → 0.1;  < 7 → 0.4;  < 30 → 0.6;
    otherwise clamp(0.95 - CV * 0.35, 0.6, 0.95) with CV = std / mean
    (population std; CV = 1 when the mean is 0).

detect_trend (needs >= 7 points, else stable):
    Relative change of the second-half mean over the first-half mean
    (split at n // 2). > +15% increasing (x1.15), < -15% decreasing (x0.85).
    A first half with zero sales is "increasing" if the second half sold
    anything, "stable" otherwise.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Sequence

from msme_replenishment.config import ForecastConfig
from msme_replenishment.models.forecast import (
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    ForecastResult,
)
from msme_replenishment.models.sales import SalesDataPoint
from msme_replenishment.taxonomy.replenishment_taxonomy import TREND_MULTIPLIER, TrendDirection
from msme_replenishment.utils.time_utils import add_days

NO_SALES_RUNOUT_DAYS = 9999


def moving_average(series: Sequence[SalesDataPoint], window: int = 7) -> float:
    """Mean quantity of the last ``window`` points; 0.0 for an empty series."""
    if not series or window < 1:
        return 0.0
    recent = series[-window:]
    return sum(p.quantity for p in recent) / len(recent)


def weekday_means(series: Sequence[SalesDataPoint]) -> list[float]:
    """Mean quantity per weekday (Monday = 0); weekdays with no points are 0.0."""
    totals = [0.0] * 7
    counts = [0] * 7
    for p in series:
        wd = p.date.weekday()
        totals[wd] += p.quantity
        counts[wd] += 1
    return [totals[i] / counts[i] if counts[i] else 0.0 for i in range(7)]


def seasonal_factor(
    series: Sequence[SalesDataPoint],
    today: date,
    min_points: int = 14,
) -> float:
    """Day-of-week demand multiplier for ``today``.

    Args:
        series:     Chronological sales series.
        today:      Reference date whose weekday is evaluated.
        min_points: Minimum points required (two weeks); fewer gives 1.0.

    Returns:
        ``weekday_mean[today] / mean(weekday_means)``, or 1.0 when there is
        too little data or no sales at all.
    """
    if len(series) < min_points:
        return 1.0
    means = weekday_means(series)
    overall_avg = sum(means) / 7
    if overall_avg <= 0:
        return 1.0
    return means[today.weekday()] / overall_avg


def confidence(series: Sequence[SalesDataPoint]) -> float:
    """Data-quality confidence in [0.1, 0.95], tiered by sample size and CV."""
    n = len(series)
    if n < 1:
        return MIN_CONFIDENCE
    if n < 7:
        return 0.4
    if n < 30:
        return 0.6

    mean = sum(p.quantity for p in series) / n
    variance = sum((p.quantity - mean) ** 2 for p in series) / n
    std = math.sqrt(max(0.0, variance))
    cv = std / mean if mean > 0 else 1.0
    return _clamp(MAX_CONFIDENCE - cv * 0.35, 0.6, MAX_CONFIDENCE)


@dataclass(frozen=True)
class TrendSignal:
    """Trend direction with the half-series means it was derived from.

    Attributes:
        direction:        Detected trend.
        first_half_mean:  Mean quantity of the older half.
        second_half_mean: Mean quantity of the newer half.
        change_pct:       Relative change, or ``None`` when undefined.
    """

    direction:        TrendDirection
    first_half_mean:  float = 0.0
    second_half_mean: float = 0.0
    change_pct:       float | None = None

    @property
    def multiplier(self) -> float:
        return TREND_MULTIPLIER[self.direction]


def trend_signal(
    series: Sequence[SalesDataPoint],
    min_points: int = 7,
    threshold: float = 0.15,
) -> TrendSignal:
    """Compare the second half of ``series`` to the first half.

    Args:
        series:     Chronological sales series.
        min_points: Series shorter than this are reported as stable.
        threshold:  Relative change that counts as a trend (0.15 = 15%).

    Returns:
        ``TrendSignal`` with direction, half means, and relative change.
    """
    if len(series) < max(2, min_points):
        return TrendSignal(direction=TrendDirection.STABLE)

    mid = len(series) // 2
    first, second = series[:mid], series[mid:]
    first_avg = sum(p.quantity for p in first) / len(first)
    second_avg = sum(p.quantity for p in second) / len(second)

    if first_avg <= 0:
        direction = TrendDirection.INCREASING if second_avg > 0 else TrendDirection.STABLE
        return TrendSignal(direction, first_avg, second_avg, None)

    change = (second_avg - first_avg) / first_avg
    if change > threshold:
        direction = TrendDirection.INCREASING
    elif change < -threshold:
        direction = TrendDirection.DECREASING
    else:
        direction = TrendDirection.STABLE
    return TrendSignal(direction, first_avg, second_avg, change)


def detect_trend(
    series: Sequence[SalesDataPoint],
    min_points: int = 7,
    threshold: float = 0.15,
) -> TrendDirection:
    """Return only the trend direction of ``series``."""
    return trend_signal(series, min_points, threshold).direction


def trend_multiplier(direction: TrendDirection) -> float:
    """Rate multiplier for a trend direction (1.15 / 0.85 / 1.0)."""
    return TREND_MULTIPLIER[direction]


def predict(
    series:            Sequence[SalesDataPoint],
    current_stock:     float,
    lead_time_days:    int,
    safety_stock_days: int,
    today:             date,
    config:            ForecastConfig | None = None,
) -> ForecastResult:
    """Predict runout date and reorder quantity for one product.

    Never raises on empty or degenerate input: an empty series yields the
    no-sales sentinel runout, the minimum reorder quantity, and the lowest
    confidence.

    Args:
        series:            Chronological daily sales series.
        current_stock:     Units on hand (negative stock is treated as 0).
        lead_time_days:    Supplier lead time in days.
        safety_stock_days: Buffer days of stock to hold on top of lead time.
        today:             Reference date for seasonality and the runout date.
        config:            Engine parameters; defaults to ``ForecastConfig()``.

    Returns:
        ``ForecastResult`` for this product.
    """
    cfg = config or ForecastConfig()

    ma = moving_average(series, cfg.moving_average_window)
    season = seasonal_factor(series, today, cfg.seasonality_min_points)
    trend = detect_trend(series, cfg.trend_min_points, cfg.trend_threshold)
    rate = max(0.0, ma * season * trend_multiplier(trend))

    stock = max(0.0, float(current_stock))
    days_until_stockout = stock / rate if rate > 0 else math.inf
    if math.isfinite(days_until_stockout):
        runout_days = math.floor(days_until_stockout)
    else:
        runout_days = cfg.no_sales_runout_days

    cover_days = max(0, lead_time_days) + max(0, safety_stock_days)
    reorder_quantity = max(cfg.min_reorder_quantity, math.ceil(rate * cover_days))

    return ForecastResult(
        predicted_runout_date=add_days(today, runout_days),
        suggested_reorder_quantity=reorder_quantity,
        confidence=confidence(series),
        daily_average_sales=rate,
        seasonal_factor=season,
        trend=trend,
    )


@dataclass(frozen=True)
class ForecastEngine:
    """Configured front-end over the pure engine functions.

    Holds only immutable parameters, so one instance is safely shared by
    every planner call and worker thread.
    """

    config: ForecastConfig = field(default_factory=ForecastConfig)

    def predict(
        self,
        series: Sequence[SalesDataPoint],
        current_stock: float,
        lead_time_days: int,
        safety_stock_days: int,
        today: date,
    ) -> ForecastResult:
        return predict(
            series, current_stock, lead_time_days, safety_stock_days, today, self.config
        )

    def trend(self, series: Sequence[SalesDataPoint]) -> TrendSignal:
        return trend_signal(series, self.config.trend_min_points, self.config.trend_threshold)

    def moving_average(self, series: Sequence[SalesDataPoint]) -> float:
        return moving_average(series, self.config.moving_average_window)

    def confidence(self, series: Sequence[SalesDataPoint]) -> float:
        return confidence(series)


def economic_order_quantity(
    annual_demand:         float,
    order_cost:            float,
    holding_cost_per_unit: float,
) -> int:
    """Economic Order Quantity: ``ceil(sqrt(2 * D * S / H))``.

    With a zero holding cost the formula is unbounded; one month of demand
    (``D / 12``, rounded up) is returned instead.

    Args:
        annual_demand:         Units demanded per year (D).
        order_cost:            Fixed cost per order placed (S).
        holding_cost_per_unit: Cost of holding one unit for a year (H).

    Returns:
        Order quantity in whole units.

    Raises:
        ValueError: If any input is negative.
    """
    if annual_demand < 0 or order_cost < 0 or holding_cost_per_unit < 0:
        raise ValueError("EOQ inputs must be non-negative.")
    if holding_cost_per_unit == 0:
        return math.ceil(annual_demand / 12)
    return math.ceil(math.sqrt((2 * annual_demand * order_cost) / holding_cost_per_unit))


# ── Helper ────────────────────────────────────────────────────────────────────

def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
