"""Calendar helpers: weekend shifting and day counts."""

from __future__ import annotations

from datetime import date, timedelta
import calendar

# date.weekday(): Monday == 0 ... Sunday == 6
_WEEKEND_SHIFT = {5: 2, 6: 1}


def adjust_for_weekend(dt: date, adjust: bool = True) -> date:
    """Move a Saturday or Sunday date forward to the following Monday.

    Dates falling on a business day, and all dates when ``adjust`` is false,
    are returned unchanged.
    """
    if not adjust:
        return dt
    shift = _WEEKEND_SHIFT.get(dt.weekday(), 0)
    return dt + timedelta(days=shift)


def days_between(start: date, end: date) -> int:
    """Number of calendar days from ``start`` to ``end`` (negative if reversed)."""
    return (end - start).days


def is_leap_year(year: int) -> bool:
    return calendar.isleap(year)


def days_in_year(year: int) -> int:
    return 366 if is_leap_year(year) else 365
