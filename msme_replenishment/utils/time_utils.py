"""
Date helpers for forecasting.

The engine never reads the system clock; callers pass ``today`` explicitly.
``utc_today()`` is the single place the CLI resolves "now" into a date.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from msme_replenishment.taxonomy.replenishment_taxonomy import HORIZON_DAYS, ForecastHorizon


def horizon_days(horizon: str) -> int:
    """Return the day count for a planning horizon (``"week"`` → 7, ``"month"`` → 30).

    Raises:
        ValueError: If ``horizon`` is not a known horizon.
    """
    try:
        return HORIZON_DAYS[ForecastHorizon(horizon.strip().lower())]
    except ValueError:
        raise ValueError(
            f"Unknown horizon '{horizon}'. Expected one of "
            f"{sorted(h.value for h in ForecastHorizon)}."
        ) from None


def lookback_start(today: date, lookback_days: int) -> date:
    """Return the first day of a lookback window ending on ``today``.

    Args:
        today:         Reference date (inclusive end of the window).
        lookback_days: Window length in days; must be >= 0.

    Raises:
        ValueError: If ``lookback_days`` is negative.
    """
    if lookback_days < 0:
        raise ValueError(f"lookback_days must be >= 0, got {lookback_days}.")
    return today - timedelta(days=lookback_days)


def add_days(start: date, days: int) -> date:
    """Return ``start + days``, clamped to ``date.max`` instead of overflowing."""
    try:
        return start + timedelta(days=days)
    except OverflowError:
        return date.max


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info."""
    return datetime.now(tz=timezone.utc)


def utc_today() -> date:
    """Return today's date in UTC."""
    return utcnow().date()
