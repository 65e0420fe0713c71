"""Timezone utilities for reliable UTC handling."""

from datetime import date, datetime, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from payout_ledger.core.settings import settings

LOCAL_TZ = ZoneInfo(settings.timezone)


def now_utc() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)


def from_utc_to_local(dt_utc: datetime) -> datetime:
    """Convert UTC time to the school's local time."""
    if dt_utc.tzinfo is None:
        dt_utc = dt_utc.replace(tzinfo=timezone.utc)
    return dt_utc.astimezone(LOCAL_TZ)


def local_today(now: Optional[datetime] = None) -> date:
    """Calendar date in local time."""
    return from_utc_to_local(now or now_utc()).date()


def previous_month(today: date) -> Tuple[int, int]:
    """(month, year) of the calendar month before ``today``."""
    if today.month == 1:
        return 12, today.year - 1
    return today.month - 1, today.year
