"""Core calculation engine for the loan schedule calculator.

This module builds amortization schedules for annuity (equal installment) and
differential (constant principal) loans. It supports dated rate changes,
one-time and periodic early payments applied either between payment dates or
on a payment date, weekend shifting of payment dates and a developer-subsidized
interest period. Results are returned as an immutable ``ScheduleResult``.

Two builders exist. The standard builder charges a flat monthly interest
(``balance * rate / 12``). The subsidized builder charges interest by the
actual number of days in each period and tracks the part of the interest
covered by the developer during the subsidy window.
"""

from __future__ import annotations

from collections import deque
from datetime import date
from decimal import Context, Decimal
from typing import Dict, Iterable, Iterator, List, Optional

from .calendar_utils import adjust_for_weekend, days_between
from .config import EngineSettings
from .data_models import (
    ApplicationMode,
    EarlyPaymentEvent,
    LoanParameters,
    RecalculationPolicy,
    RepaymentScheme,
    ScheduleEntry,
    ScheduleResult,
    SubsidyPolicy,
)
from .early_payments import expand_early_payments
from .errors import ComputationDivergence, InvalidInput
from .logger import get_logger
from .rates import (
    HUNDRED,
    annuity_payment,
    build_rate_timeline,
    monthly_rate,
    resolve_first_payment_date,
    resolve_rate,
)
from .utils import add_months, round_money

log = get_logger(__name__)

ZERO = Decimal("0.00")


class _PendingEvents:
    """Early-payment events not yet applied to the balance, split by mode."""

    def __init__(self, events: Iterable[EarlyPaymentEvent]) -> None:
        events = list(events)
        self._between = deque(e for e in events if e.mode is ApplicationMode.BETWEEN_PAYMENTS)
        self._on_date = deque(e for e in events if e.mode is ApplicationMode.ON_PAYMENT_DATE)

    def due_before(self, payment_date: date) -> Iterator[EarlyPaymentEvent]:
        """Between-payments events dated on or before ``payment_date``."""
        while self._between and self._between[0].date <= payment_date:
            yield self._between.popleft()

    def due_on(self, payment_date: date) -> Iterator[EarlyPaymentEvent]:
        """On-payment-date events dated exactly on this (weekend-adjusted) payment date.

        Events whose date has been passed without matching any payment date
        are discarded.
        """
        while self._on_date and self._on_date[0].date <= payment_date:
            event = self._on_date.popleft()
            if event.date == payment_date:
                yield event
            else:
                log.warning(
                    "Early payment of %s on %s does not fall on a payment date; skipped",
                    event.amount,
                    event.date,
                )


def _inject_early_payment(
    event: EarlyPaymentEvent, balance: Decimal, entries: List[ScheduleEntry]
) -> Decimal:
    """Record an early payment row and return the amount taken off the balance."""
    deducted = round_money(min(event.amount, balance))
    if deducted <= 0:
        return ZERO
    remaining = balance - deducted
    entries.append(
        ScheduleEntry(
            period=0,
            date=event.date,
            payment=deducted,
            principal=deducted,
            interest=ZERO,
            remaining=round_money(max(remaining, ZERO)),
            early_payment=True,
        )
    )
    log.debug("Applied early payment %s (%s) on %s, balance %s", deducted, event.mode.value, event.date, remaining)
    return deducted


def _periods_left(duration: int, periods_done: int) -> int:
    return max(1, duration - periods_done)


def _payment_date(params: LoanParameters, period: int) -> date:
    """Nominal (not weekend-adjusted) date of a regular payment."""
    if period == 1:
        return resolve_first_payment_date(params)
    return add_months(params.disbursement_date, period)


def _check_settled(balance: Decimal, period: int, settings: EngineSettings) -> None:
    if balance > settings.epsilon:
        raise ComputationDivergence(
            f"Balance of {round_money(balance)} not repaid within {settings.max_periods} periods",
            period=period,
            balance=round_money(balance),
        )


def validate_parameters(params: LoanParameters, settings: EngineSettings) -> None:
    """Reject parameters no schedule can be built from."""
    if params.disbursement_date is None:
        raise InvalidInput("Disbursement date is required")
    first_payment = resolve_first_payment_date(params)
    if first_payment is None or first_payment <= params.disbursement_date:
        raise InvalidInput("First payment date must fall after the disbursement date")
    if params.duration is None or params.duration <= 0:
        raise InvalidInput("Loan duration must be positive")
    if params.duration > settings.max_periods:
        raise InvalidInput(f"Loan duration must not exceed {settings.max_periods} periods")
    if params.principal is None or params.principal <= 0:
        raise InvalidInput("Principal must be positive")
    if params.rate is None or params.rate < 0:
        raise InvalidInput("Interest rate must not be negative")


def compute_schedule(params: LoanParameters, settings: Optional[EngineSettings] = None) -> ScheduleResult:
    """Compute the amortization schedule of a loan.

    Parameters
    ----------
    params: LoanParameters
        The loan parameters. When an active subsidy is attached the
        subsidized builder is used, otherwise the standard one.
    settings: EngineSettings
        Precision, settlement epsilon and iteration cap. Defaults are read
        from the environment.

    Returns
    -------
    ScheduleResult
        Entries in chronological order (early payments injected as period 0
        rows) and the aggregate totals.

    Raises
    ------
    InvalidInput
        If the parameters cannot describe a loan.
    ComputationDivergence
        If the balance is not repaid within the iteration cap.
    """
    settings = settings or EngineSettings()
    validate_parameters(params, settings)
    if params.subsidized:
        return build_subsidized_schedule(params, settings)
    return build_standard_schedule(params, settings)


def build_standard_schedule(params: LoanParameters, settings: EngineSettings) -> ScheduleResult:
    ctx = settings.context()
    timeline = build_rate_timeline(params)
    pending = _PendingEvents(expand_early_payments(params, settings))
    annuity = params.scheme is RepaymentScheme.ANNUITY
    reduce_payment = annuity and params.recalculation is RecalculationPolicy.REDUCE_PAYMENT
    duration = params.duration

    entries: List[ScheduleEntry] = []
    balance = round_money(params.principal)
    total_payment = ZERO
    total_interest = ZERO

    period = 1
    payment_date = adjust_for_weekend(_payment_date(params, period), params.adjust_weekends)
    rate = resolve_rate(timeline, payment_date)
    fixed_payment = annuity_payment(balance, rate, duration, settings) if annuity else ZERO

    while balance > settings.epsilon and period <= settings.max_periods:
        for event in pending.due_before(payment_date):
            deducted = _inject_early_payment(event, balance, entries)
            balance -= deducted
            total_payment += deducted
            if deducted and reduce_payment:
                fixed_payment = annuity_payment(balance, rate, _periods_left(duration, period - 1), settings)
        if balance <= settings.epsilon:
            break

        new_rate = resolve_rate(timeline, payment_date)
        if annuity and new_rate != rate:
            fixed_payment = annuity_payment(balance, new_rate, _periods_left(duration, period - 1), settings)
            log.debug("Rate changed to %s on %s, payment recalculated to %s", new_rate, payment_date, fixed_payment)
        rate = new_rate

        interest = round_money(ctx.multiply(balance, monthly_rate(rate, ctx)))
        if annuity:
            payment = fixed_payment
            principal = payment - interest
            if principal <= 0:
                # Interest alone exceeds the installment: nothing is amortized,
                # the borrower still owes the full interest.
                principal = ZERO
                payment = max(fixed_payment, interest)
            elif period >= duration:
                # Last scheduled period absorbs the rounding remainder.
                principal = balance
                payment = principal + interest
        else:
            principal = round_money(ctx.divide(balance, Decimal(_periods_left(duration, period - 1))))
            principal = min(principal, balance)
            payment = principal + interest

        if principal > balance:
            principal = balance
            payment = principal + interest

        balance -= principal
        entries.append(
            ScheduleEntry(
                period=period,
                date=payment_date,
                payment=round_money(payment),
                principal=round_money(principal),
                interest=interest,
                remaining=round_money(max(balance, ZERO)),
            )
        )
        total_interest += interest
        total_payment += payment

        for event in pending.due_on(payment_date):
            deducted = _inject_early_payment(event, balance, entries)
            balance -= deducted
            total_payment += deducted
            if deducted and reduce_payment:
                fixed_payment = annuity_payment(balance, rate, _periods_left(duration, period), settings)

        period += 1
        payment_date = adjust_for_weekend(_payment_date(params, period), params.adjust_weekends)

    _check_settled(balance, period - 1, settings)
    log.debug(
        "Schedule built: %d rows, total payment %s, total interest %s",
        len(entries),
        round_money(total_payment),
        round_money(total_interest),
    )
    return ScheduleResult(
        entries=tuple(entries),
        total_payment=round_money(total_payment),
        total_interest=round_money(total_interest),
    )


def _day_count_interest(
    balance: Decimal, annual_rate: Decimal, days: int, ctx: Context, settings: EngineSettings
) -> Decimal:
    """Interest for ``days`` days on an actual/365 basis, rounded to cents."""
    yearly = ctx.divide(annual_rate, HUNDRED)
    accrued = ctx.multiply(ctx.multiply(balance, yearly), Decimal(days))
    return round_money(ctx.divide(accrued, Decimal(settings.days_in_year)))


def build_subsidized_schedule(params: LoanParameters, settings: EngineSettings) -> ScheduleResult:
    """Schedule of a loan whose rate is subsidized by a third party.

    During the first ``subsidy.duration`` periods the borrower pays interest
    at the subsidized rate and the difference to full-rate interest is
    credited as subsidy. Afterwards the full-rate annuity applies. Interest is
    counted by actual days throughout.
    """
    ctx = settings.context()
    subsidy = params.subsidy
    timeline = build_rate_timeline(params)
    pending = _PendingEvents(expand_early_payments(params, settings))
    reduce_payment = params.recalculation is RecalculationPolicy.REDUCE_PAYMENT
    duration = params.duration
    window = subsidy.duration

    def discounted_rate_for(full: Decimal) -> Decimal:
        if subsidy.rate is not None and subsidy.rate > 0:
            return subsidy.rate
        return full

    entries: List[ScheduleEntry] = []
    balance = round_money(params.principal)
    total_payment = ZERO
    total_interest = ZERO
    total_subsidy = ZERO
    balance_after_subsidy: Optional[Decimal] = None

    period = 1
    previous_date = params.disbursement_date
    payment_date = adjust_for_weekend(_payment_date(params, period), params.adjust_weekends)
    full_rate = resolve_rate(timeline, payment_date)

    full_payment = annuity_payment(balance, full_rate, duration, settings)
    manual_payment = subsidy.payment is not None and subsidy.payment > 0
    rate_derived = not manual_payment and subsidy.rate is not None and subsidy.rate > 0
    if manual_payment:
        subsidized_payment = round_money(subsidy.payment)
    elif rate_derived:
        subsidized_payment = annuity_payment(balance, subsidy.rate, duration, settings)
    else:
        subsidized_payment = full_payment
    initial_full_payment = full_payment
    initial_subsidized_payment = subsidized_payment
    log.debug(
        "Subsidized loan: window %d periods, subsidized payment %s (manual=%s), full payment %s",
        window,
        subsidized_payment,
        manual_payment,
        full_payment,
    )

    def recalculate(periods_done: int) -> None:
        nonlocal full_payment, subsidized_payment
        left = _periods_left(duration, periods_done)
        full_payment = annuity_payment(balance, full_rate, left, settings)
        if rate_derived:
            subsidized_payment = annuity_payment(balance, subsidy.rate, left, settings)

    while balance > settings.epsilon and period <= settings.max_periods:
        for event in pending.due_before(payment_date):
            deducted = _inject_early_payment(event, balance, entries)
            balance -= deducted
            total_payment += deducted
            if deducted and reduce_payment:
                recalculate(period - 1)
        if balance <= settings.epsilon:
            break

        new_rate = resolve_rate(timeline, payment_date)
        if new_rate != full_rate:
            full_rate = new_rate
            full_payment = annuity_payment(balance, full_rate, _periods_left(duration, period - 1), settings)
            log.debug("Rate changed to %s on %s, full payment recalculated to %s", full_rate, payment_date, full_payment)

        days = days_between(previous_date, payment_date)
        full_interest = _day_count_interest(balance, full_rate, days, ctx, settings)
        in_window = period <= window
        period_subsidy = ZERO

        if in_window:
            interest = _day_count_interest(balance, discounted_rate_for(full_rate), days, ctx, settings)
            if subsidy.policy is SubsidyPolicy.FIXED_PAYMENT:
                if interest >= subsidized_payment:
                    principal = ZERO
                    payment = interest
                else:
                    principal = subsidized_payment - interest
                    payment = subsidized_payment
            else:
                principal = max(full_payment - full_interest, ZERO)
                payment = principal + interest
            period_subsidy = max(full_interest - interest, ZERO)
        else:
            interest = full_interest
            payment = full_payment
            principal = payment - interest
            if principal <= 0:
                principal = ZERO
                payment = max(full_payment, interest)

        if principal > balance:
            principal = balance
            payment = principal + interest

        balance -= principal
        if in_window and period == window:
            balance_after_subsidy = round_money(max(balance, ZERO))

        entries.append(
            ScheduleEntry(
                period=period,
                date=payment_date,
                payment=round_money(payment),
                principal=round_money(principal),
                interest=interest,
                remaining=round_money(max(balance, ZERO)),
                subsidy=period_subsidy,
            )
        )
        total_payment += payment
        total_interest += interest
        total_subsidy += period_subsidy

        for event in pending.due_on(payment_date):
            deducted = _inject_early_payment(event, balance, entries)
            balance -= deducted
            total_payment += deducted
            if deducted and reduce_payment:
                recalculate(period)

        previous_date = payment_date
        period += 1
        payment_date = adjust_for_weekend(_payment_date(params, period), params.adjust_weekends)

    _check_settled(balance, period - 1, settings)
    if balance_after_subsidy is None:
        # Repaid before the subsidy window closed.
        balance_after_subsidy = ZERO
    log.debug(
        "Subsidized schedule built: %d rows, total payment %s, total subsidy %s",
        len(entries),
        round_money(total_payment),
        round_money(total_subsidy),
    )
    return ScheduleResult(
        entries=tuple(entries),
        total_payment=round_money(total_payment),
        total_interest=round_money(total_interest),
        total_subsidy=round_money(total_subsidy),
        subsidized_payment=initial_subsidized_payment,
        full_payment=initial_full_payment,
        balance_after_subsidy=balance_after_subsidy,
    )


def summarize(params: LoanParameters, result: ScheduleResult) -> Dict[str, object]:
    """Aggregate metrics of a computed schedule.

    Includes the totals of the result, the original and actual end dates,
    the number of regular payments and the highest regular payment.
    """
    regular = result.regular_entries
    early = result.early_payment_entries
    original_end = adjust_for_weekend(_payment_date(params, params.duration), params.adjust_weekends)
    summary: Dict[str, object] = {
        "principal": round_money(params.principal),
        "currency": params.currency.value,
        "scheme": params.scheme.value,
        "total_payment": result.total_payment,
        "total_interest": result.total_interest,
        "total_early_payment": sum((e.payment for e in early), ZERO),
        "total_subsidy": result.total_subsidy,
        "payments_made": len(regular),
        "term_periods": params.duration,
        "original_end_date": original_end.isoformat(),
        "new_end_date": result.entries[-1].date.isoformat() if result.entries else original_end.isoformat(),
        "max_payment": max((e.payment for e in regular), default=ZERO),
    }
    if result.subsidized_payment is not None:
        summary["subsidized_payment"] = result.subsidized_payment
        summary["full_payment"] = result.full_payment
        summary["balance_after_subsidy"] = result.balance_after_subsidy
    return summary
