"""
Forecast output models.

``ForecastResult`` is the raw engine output for one sales series: runout
date, reorder size, confidence, and the adjusted daily sales rate.

``StockForecast`` is the planner output for one product: the engine result
combined with the product's policy into an urgency tier and a reorder flag.
It is the shape consumed by the request layer (single or ranked batch).

``SalesTrendAnalysis`` explains the trend component of a forecast.

``StockPrediction`` is the persisted snapshot of a ``StockForecast``, written
only when a caller explicitly asks to save one.

All models are frozen; forecasts are recomputed on every call, never edited.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from msme_replenishment.taxonomy.replenishment_taxonomy import TrendDirection, Urgency

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95
MIN_REORDER_QUANTITY = 10


def _check_confidence(v: float) -> float:
    if not MIN_CONFIDENCE <= v <= MAX_CONFIDENCE:
        raise ValueError(
            f"confidence must be in [{MIN_CONFIDENCE}, {MAX_CONFIDENCE}], got {v}."
        )
    return v


class ForecastResult(BaseModel):
    """Engine output for one sales series.

    Attributes:
        predicted_runout_date:      Day stock is expected to reach zero.
        suggested_reorder_quantity: Units to order (never below 10).
        confidence:                 Data-quality confidence in [0.1, 0.95].
        daily_average_sales:        Adjusted daily sales rate (units/day).
        seasonal_factor:            Day-of-week multiplier applied to the rate.
        trend:                      Detected demand direction.
    """

    model_config = ConfigDict(frozen=True)

    predicted_runout_date: date
    suggested_reorder_quantity: int
    confidence: float
    daily_average_sales: float
    seasonal_factor: float
    trend: TrendDirection = TrendDirection.STABLE

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        return _check_confidence(v)

    @model_validator(mode="after")
    def validate_non_negative(self) -> "ForecastResult":
        if self.daily_average_sales < 0:
            raise ValueError("daily_average_sales must be non-negative.")
        if self.seasonal_factor < 0:
            raise ValueError("seasonal_factor must be non-negative.")
        if self.suggested_reorder_quantity < MIN_REORDER_QUANTITY:
            raise ValueError(
                f"suggested_reorder_quantity must be >= {MIN_REORDER_QUANTITY}."
            )
        return self


class StockForecast(BaseModel):
    """Per-product replenishment forecast.

    Attributes:
        product_id:                 Catalog product id.
        product_name:               Display name at forecast time.
        current_stock:              Units on hand at forecast time.
        predicted_runout_date:      Day stock is expected to reach zero.
        days_until_runout:          Whole days from the reference date to runout.
        suggested_reorder_quantity: Units to order (never below 10).
        confidence:                 Data-quality confidence in [0.1, 0.95].
        urgency:                    Tier derived from ``days_until_runout`` only.
        should_reorder:             ``True`` when runout falls within lead time.
    """

    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str
    current_stock: float
    predicted_runout_date: date
    days_until_runout: int
    suggested_reorder_quantity: int
    confidence: float
    urgency: Urgency
    should_reorder: bool

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        return _check_confidence(v)

    @model_validator(mode="after")
    def validate_quantities(self) -> "StockForecast":
        if self.days_until_runout < 0:
            raise ValueError("days_until_runout must be non-negative.")
        if self.suggested_reorder_quantity < MIN_REORDER_QUANTITY:
            raise ValueError(
                f"suggested_reorder_quantity must be >= {MIN_REORDER_QUANTITY}."
            )
        return self


class SalesTrendAnalysis(BaseModel):
    """Breakdown of the trend signal for one product's sales series.

    ``change_pct`` is ``None`` when the series is too short to split or the
    first half sold nothing (relative change undefined).
    """

    model_config = ConfigDict(frozen=True)

    product_id: str
    period_days: int
    data_points: int
    trend: TrendDirection
    trend_multiplier: float
    first_half_mean: float
    second_half_mean: float
    change_pct: Optional[float] = None
    daily_average_sales: float
    confidence: float

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        return _check_confidence(v)


class StockPrediction(BaseModel):
    """A saved forecast snapshot.

    Attributes:
        prediction_id:      Auto-assigned DB PK; ``None`` before insertion.
        owner_id:           Business the forecast belongs to.
        product_id:         Forecast product.
        predicted_date:     Predicted runout date.
        predicted_quantity: Suggested reorder quantity.
        confidence_score:   Forecast confidence.
        urgency:            Urgency tier at save time.
        days_until_runout:  Days until runout at save time.
        created_at:         DB timestamp; ``None`` before insertion.
    """

    model_config = ConfigDict(frozen=True)

    prediction_id: Optional[int] = None
    owner_id: str
    product_id: str
    predicted_date: date
    predicted_quantity: int
    confidence_score: float
    urgency: Urgency
    days_until_runout: int
    created_at: Optional[datetime] = None

    @classmethod
    def from_forecast(cls, owner_id: str, forecast: StockForecast) -> "StockPrediction":
        """Build an unsaved snapshot from a ``StockForecast``."""
        return cls(
            owner_id=owner_id,
            product_id=forecast.product_id,
            predicted_date=forecast.predicted_runout_date,
            predicted_quantity=forecast.suggested_reorder_quantity,
            confidence_score=forecast.confidence,
            urgency=forecast.urgency,
            days_until_runout=forecast.days_until_runout,
        )
