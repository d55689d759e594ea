"""Utility functions for the loan schedule calculator.

This module provides helpers for parsing user input into Python data types and
for handling dates, including adding months and parsing ISO date strings into
``datetime.date`` instances. Money values are rounded with ``round_money`` so
that every component of the schedule is expressed in whole cents.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import calendar

CENT = Decimal("0.01")


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string into a ``date`` object.

    Parameters
    ----------
    value: str
        A string in the form ``"YYYY-MM-DD"``. Surrounding whitespace is
        ignored.

    Returns
    -------
    date
        The parsed calendar date.

    Raises
    ------
    ValueError
        If the string is not a valid ISO date.
    """
    try:
        return date.fromisoformat(value.strip())
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round a monetary amount to cents, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
