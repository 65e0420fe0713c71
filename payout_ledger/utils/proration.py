"""Monthly fee proration by active calendar days."""

import calendar
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple, Union

from payout_ledger.utils.money import Money, MoneyLike

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class Proration:
    """Result of prorating a monthly amount over one calendar month."""

    days_active: int
    days_in_month: int
    prorated_amount: Money
    is_full_month: bool


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def month_bounds(month: int, year: int) -> Tuple[date, date]:
    """First and last day (inclusive) of the given month."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be in 1..12, got {month}")
    days_in_month = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, days_in_month)


def was_active_in_month(
    start: DateLike,
    end: Optional[DateLike],
    month: int,
    year: int,
) -> bool:
    """Whether any day of [start, end] falls inside the given month."""
    month_start, month_end = month_bounds(month, year)
    if _as_date(start) > month_end:
        return False
    return end is None or _as_date(end) >= month_start


def prorate(
    monthly_amount: MoneyLike,
    class_start: DateLike,
    class_end: Optional[DateLike],
    target_month: int,
    target_year: int,
) -> Proration:
    """
    Prorate a monthly amount by the days a class was active in a month.

    The active interval is clamped to the month and counted inclusively, so a
    class that starts and ends on the same day is active for one day. A missing
    end date means the class runs through the end of the month. When the class
    was not active at all, ``days_active`` is 0 and the amount is zero; callers
    must skip payout creation in that case.

    The amount is ``monthly * days_active / days_in_month`` rounded half-up to
    the cent once, so a full month returns the monthly amount unchanged.
    """
    month_start, month_end = month_bounds(target_month, target_year)
    days_in_month = (month_end - month_start).days + 1

    period_start = max(_as_date(class_start), month_start)
    period_end = min(_as_date(class_end) if class_end is not None else month_end, month_end)
    days_active = max((period_end - period_start).days + 1, 0)

    monthly = Money.from_value(monthly_amount)
    prorated = Money(monthly.amount * Decimal(days_active) / Decimal(days_in_month))

    return Proration(
        days_active=days_active,
        days_in_month=days_in_month,
        prorated_amount=prorated,
        is_full_month=days_active == days_in_month,
    )
