"""Tests for msme_replenishment/utils/time_utils.py."""

from __future__ import annotations

from datetime import date

import pytest

from msme_replenishment.utils.time_utils import add_days, horizon_days, lookback_start


class TestHorizonDays:
    @pytest.mark.parametrize("value,expected", [("week", 7), ("month", 30), (" Month ", 30)])
    def test_known(self, value, expected):
        assert horizon_days(value) == expected

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown horizon 'year'"):
            horizon_days("year")


class TestLookbackStart:
    def test_window(self):
        assert lookback_start(date(2026, 3, 16), 30) == date(2026, 2, 14)

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            lookback_start(date(2026, 3, 16), -1)


class TestAddDays:
    def test_normal(self):
        assert add_days(date(2026, 3, 16), 5) == date(2026, 3, 21)

    def test_clamps_at_max(self):
        assert add_days(date(9999, 12, 1), 9999) == date.max
