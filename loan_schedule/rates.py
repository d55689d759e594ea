"""Interest-rate helpers: the annuity formula and the rate timeline.

The rate timeline is a stepwise function from calendar date to annual rate. It
is seeded with the base rate effective on the first payment date and extended
by every complete rate-change declaration.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Context, Decimal
from typing import Optional, Tuple

from .config import EngineSettings
from .data_models import LoanParameters, RatePeriod
from .utils import add_months, round_money

HUNDRED = Decimal(100)
TWELVE = Decimal(12)


def monthly_rate(annual_rate: Decimal, ctx: Context) -> Decimal:
    """Convert an annual rate in percent into a monthly fraction."""
    return ctx.divide(ctx.divide(annual_rate, HUNDRED), TWELVE)


def annuity_payment(
    principal: Decimal,
    annual_rate: Decimal,
    periods: int,
    settings: Optional[EngineSettings] = None,
) -> Decimal:
    """Return the annuity (equal installment) payment for a loan.

    The formula is:

        payment = P * (i * (1 + i)^n) / ((1 + i)^n - 1)

    where ``P`` is the principal, ``i`` is the monthly interest rate
    (``annual_rate / 100 / 12``) and ``n`` is the number of payments. When the
    interest rate is zero, the payment simplifies to ``P / n``. The result is
    rounded to cents, half-up.
    """
    ctx = (settings or EngineSettings()).context()
    if periods <= 0:
        return round_money(principal)
    rate = monthly_rate(annual_rate, ctx)
    if rate == 0:
        return round_money(ctx.divide(principal, Decimal(periods)))
    factor = ctx.power(ctx.add(1, rate), periods)
    denominator = factor - 1
    if denominator == 0:
        return round_money(ctx.divide(principal, Decimal(periods)))
    numerator = ctx.multiply(ctx.multiply(principal, rate), factor)
    return round_money(ctx.divide(numerator, denominator))


def resolve_first_payment_date(params: LoanParameters) -> Optional[date]:
    if params.first_payment_date is not None:
        return params.first_payment_date
    if params.disbursement_date is None:
        return None
    return add_months(params.disbursement_date, 1)


@dataclass(frozen=True)
class RateTimeline:
    base_rate: Decimal
    periods: Tuple[RatePeriod, ...]


def build_rate_timeline(params: LoanParameters) -> RateTimeline:
    """Return the rate timeline of a loan.

    Rate changes missing either the date or the rate are skipped. Sorting is
    stable, so of two changes on the same date the one declared later wins
    when resolving.
    """
    periods = [RatePeriod(start=resolve_first_payment_date(params), rate=params.rate)]
    for change in params.rate_changes:
        if change.start_date is None or change.new_rate is None:
            continue
        periods.append(RatePeriod(start=change.start_date, rate=change.new_rate))
    periods.sort(key=lambda p: p.start)
    return RateTimeline(base_rate=params.rate, periods=tuple(periods))


def resolve_rate(timeline: RateTimeline, when: date) -> Decimal:
    """Return the annual rate in force on ``when``.

    This is the rate of the latest period starting on or before ``when``. A
    date earlier than every period resolves to the base rate.
    """
    current = timeline.base_rate
    for period in timeline.periods:
        if period.start <= when:
            current = period.rate
        else:
            break
    return current
