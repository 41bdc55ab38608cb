"""Tests for ForecastResult, StockForecast, SalesTrendAnalysis and StockPrediction."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from msme_replenishment.models.forecast import (
    ForecastResult,
    SalesTrendAnalysis,
    StockForecast,
    StockPrediction,
)
from msme_replenishment.taxonomy.replenishment_taxonomy import TrendDirection, Urgency

TODAY = date(2026, 3, 16)


def _stock_forecast(**overrides) -> StockForecast:
    values = dict(
        product_id="rice-5kg",
        product_name="Rice 5kg",
        current_stock=50.0,
        predicted_runout_date=TODAY + timedelta(days=5),
        days_until_runout=5,
        suggested_reorder_quantity=100,
        confidence=0.95,
        urgency=Urgency.HIGH,
        should_reorder=True,
    )
    values.update(overrides)
    return StockForecast(**values)


class TestForecastResult:
    def test_valid_construction(self):
        r = ForecastResult(
            predicted_runout_date=TODAY,
            suggested_reorder_quantity=10,
            confidence=0.1,
            daily_average_sales=0.0,
            seasonal_factor=0.0,
        )
        assert r.trend == TrendDirection.STABLE

    def test_confidence_above_max_raises(self):
        with pytest.raises(ValidationError, match="confidence"):
            ForecastResult(
                predicted_runout_date=TODAY,
                suggested_reorder_quantity=10,
                confidence=0.99,
                daily_average_sales=1.0,
                seasonal_factor=1.0,
            )

    def test_reorder_below_floor_raises(self):
        with pytest.raises(ValidationError, match="suggested_reorder_quantity"):
            ForecastResult(
                predicted_runout_date=TODAY,
                suggested_reorder_quantity=9,
                confidence=0.5,
                daily_average_sales=1.0,
                seasonal_factor=1.0,
            )

    def test_negative_rate_raises(self):
        with pytest.raises(ValidationError, match="daily_average_sales"):
            ForecastResult(
                predicted_runout_date=TODAY,
                suggested_reorder_quantity=10,
                confidence=0.5,
                daily_average_sales=-1.0,
                seasonal_factor=1.0,
            )


class TestStockForecast:
    def test_valid_construction(self):
        f = _stock_forecast()
        assert f.urgency == Urgency.HIGH
        assert f.model_dump(mode="json")["urgency"] == "high"

    def test_urgency_coerced_from_string(self):
        assert _stock_forecast(urgency="critical").urgency == Urgency.CRITICAL

    def test_unknown_urgency_raises(self):
        with pytest.raises(ValidationError):
            _stock_forecast(urgency="urgent")

    def test_negative_days_raises(self):
        with pytest.raises(ValidationError, match="days_until_runout"):
            _stock_forecast(days_until_runout=-1)

    def test_frozen(self):
        f = _stock_forecast()
        with pytest.raises(ValidationError):
            f.urgency = Urgency.LOW


class TestSalesTrendAnalysis:
    def test_change_pct_optional(self):
        a = SalesTrendAnalysis(
            product_id="rice-5kg",
            period_days=30,
            data_points=0,
            trend=TrendDirection.STABLE,
            trend_multiplier=1.0,
            first_half_mean=0.0,
            second_half_mean=0.0,
            daily_average_sales=0.0,
            confidence=0.1,
        )
        assert a.change_pct is None


class TestStockPrediction:
    def test_from_forecast(self):
        p = StockPrediction.from_forecast("shop-1", _stock_forecast())
        assert p.prediction_id is None
        assert p.owner_id == "shop-1"
        assert p.predicted_date == TODAY + timedelta(days=5)
        assert p.predicted_quantity == 100
        assert p.confidence_score == 0.95
        assert p.urgency == Urgency.HIGH
        assert p.days_until_runout == 5
