"""
Replenishment taxonomy: the fixed vocabularies shared by the engine, the
planner, the aggregator, and the CLI.

Three enums describe every forecast:
  - ``Urgency``          : how soon reorder action is needed.
  - ``TrendDirection``   : which way recent demand is moving.
  - ``ForecastHorizon``  : the planning window a batch is requested for.

``InvoiceStatus`` and ``StockOperation`` cover the sales and stock writes.

``URGENCY_RANK`` is the canonical sort order (critical first). Urgency
filters ("high" means critical + high) are expressed as a maximum rank.

This module has NO imports from any other ``msme_replenishment`` package.
"""

from enum import StrEnum


class Urgency(StrEnum):
    """Urgency tier of a stock forecast, derived from days until runout."""

    CRITICAL = "critical"
    """Runout within 3 days."""

    HIGH = "high"
    """Runout within a week."""

    MEDIUM = "medium"
    """Runout within two weeks."""

    LOW = "low"
    """Runout more than two weeks out, or no sales at all."""


class TrendDirection(StrEnum):
    """Direction of demand, comparing the second half of a series to the first."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class ForecastHorizon(StrEnum):
    """Planning window for batch recommendations."""

    WEEK = "week"
    MONTH = "month"


class InvoiceStatus(StrEnum):
    """Invoice payment states. Only paid and partial invoices count as sales."""

    DRAFT = "draft"
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    CANCELLED = "cancelled"


class StockOperation(StrEnum):
    """How a manual stock adjustment combines with the current level."""

    SET = "set"
    ADD = "add"
    SUBTRACT = "subtract"


URGENCY_RANK: dict[Urgency, int] = {
    Urgency.CRITICAL: 0,
    Urgency.HIGH:     1,
    Urgency.MEDIUM:   2,
    Urgency.LOW:      3,
}

# Upper bound (inclusive) on days_until_runout for each tier, checked in order.
URGENCY_THRESHOLDS: tuple[tuple[int, Urgency], ...] = (
    (3,  Urgency.CRITICAL),
    (7,  Urgency.HIGH),
    (14, Urgency.MEDIUM),
)

TREND_MULTIPLIER: dict[TrendDirection, float] = {
    TrendDirection.INCREASING: 1.15,
    TrendDirection.DECREASING: 0.85,
    TrendDirection.STABLE:     1.0,
}

HORIZON_DAYS: dict[ForecastHorizon, int] = {
    ForecastHorizon.WEEK:  7,
    ForecastHorizon.MONTH: 30,
}

SALE_STATUSES: frozenset[str] = frozenset({InvoiceStatus.PAID, InvoiceStatus.PARTIAL})

# Accepted values for urgency filters; "all" keeps every tier.
URGENCY_FILTERS: frozenset[str] = frozenset({*(u.value for u in Urgency), "all"})
