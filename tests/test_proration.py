"""
Unit tests for monthly proration.

Verifies:
- Inclusive day counting clamped to the month
- Single rounding of the prorated amount
- Months without any active day
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from payout_ledger.utils.money import Money
from payout_ledger.utils.proration import month_bounds, prorate, was_active_in_month
from payout_ledger.utils.timezone import previous_month


class TestProrate:
    """Tests for prorate."""

    def test_class_starting_mid_month(self):
        """Start on Jan 10 with no end: 22 of 31 days."""
        result = prorate(Decimal("3000"), date(2024, 1, 10), None, 1, 2024)

        assert result.days_active == 22
        assert result.days_in_month == 31
        assert result.prorated_amount == Money("2129.03")
        assert not result.is_full_month

    def test_full_month_returns_monthly_amount(self):
        result = prorate("3000.00", date(2023, 11, 15), None, 1, 2024)

        assert result.is_full_month
        assert result.days_active == 31
        assert result.prorated_amount == Money("3000.00")

    def test_class_ending_mid_month(self):
        result = prorate("3000", date(2023, 12, 1), date(2024, 1, 15), 1, 2024)

        assert result.days_active == 15
        assert result.prorated_amount == Money("1451.61")

    def test_single_day_in_leap_february(self):
        """Start and end on the same day count as one day."""
        result = prorate("3000", date(2024, 2, 10), date(2024, 2, 10), 2, 2024)

        assert result.days_active == 1
        assert result.days_in_month == 29
        assert result.prorated_amount == Money("103.45")

    def test_not_active_in_month(self):
        """Class starting after the month yields zero days and zero amount."""
        result = prorate("3000", date(2024, 3, 1), None, 2, 2024)

        assert result.days_active == 0
        assert result.prorated_amount.is_zero()
        assert not result.is_full_month

    def test_class_ended_before_month(self):
        result = prorate("3000", date(2023, 9, 1), date(2024, 1, 20), 2, 2024)

        assert result.days_active == 0
        assert result.prorated_amount == Money("0.00")

    def test_accepts_datetimes(self):
        result = prorate(
            Money("3100"),
            datetime(2024, 1, 10, 18, 30),
            datetime(2024, 1, 19, 9, 0),
            1,
            2024,
        )

        assert result.days_active == 10
        assert result.prorated_amount == Money("1000.00")

    def test_invalid_month(self):
        with pytest.raises(ValueError):
            prorate("3000", date(2024, 1, 1), None, 13, 2024)


class TestWasActiveInMonth:
    """Tests for was_active_in_month."""

    def test_open_ended_class_started_before(self):
        assert was_active_in_month(date(2023, 5, 1), None, 1, 2024)

    def test_started_on_last_day(self):
        assert was_active_in_month(date(2024, 1, 31), None, 1, 2024)

    def test_ended_on_first_day(self):
        assert was_active_in_month(date(2023, 5, 1), date(2024, 1, 1), 1, 2024)

    def test_started_after_month(self):
        assert not was_active_in_month(date(2024, 2, 1), None, 1, 2024)

    def test_ended_before_month(self):
        assert not was_active_in_month(date(2023, 5, 1), date(2023, 12, 31), 1, 2024)


class TestCalendarHelpers:
    """Tests for month_bounds and previous_month."""

    def test_month_bounds(self):
        assert month_bounds(2, 2023) == (date(2023, 2, 1), date(2023, 2, 28))
        assert month_bounds(12, 2024) == (date(2024, 12, 1), date(2024, 12, 31))

    def test_previous_month(self):
        assert previous_month(date(2024, 3, 1)) == (2, 2024)
        assert previous_month(date(2024, 1, 1)) == (12, 2023)
