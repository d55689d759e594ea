"""Expansion of early-payment declarations into dated events.

One-time and periodic declarations are flattened into a single chronological
list of ``EarlyPaymentEvent`` objects which the schedule builders consume as
they walk through the payment dates.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from .config import EngineSettings
from .data_models import (
    EarlyPayment,
    EarlyPaymentEvent,
    LoanParameters,
    PeriodicEarlyPayment,
)
from .logger import get_logger
from .rates import resolve_first_payment_date
from .utils import add_months, round_money

log = get_logger(__name__)


def _one_time_events(payments: Iterable[EarlyPayment]) -> List[EarlyPaymentEvent]:
    events: List[EarlyPaymentEvent] = []
    for payment in payments:
        if payment.date is None or payment.amount is None:
            continue
        events.append(EarlyPaymentEvent(payment.date, round_money(payment.amount), payment.mode))
    return events


def _periodic_events(
    payment: PeriodicEarlyPayment, default_end, max_iterations: int
) -> List[EarlyPaymentEvent]:
    """Repeat one periodic declaration from its start date up to its end date.

    ``max_iterations`` bounds the number of repetitions regardless of the end
    date.
    """
    if payment.start_date is None or payment.interval is None or payment.amount is None:
        return []
    end = payment.end_date if payment.end_date is not None else default_end
    amount = round_money(payment.amount)
    interval = max(1, payment.interval)
    events: List[EarlyPaymentEvent] = []
    step = 0
    current = payment.start_date
    while current <= end and step < max_iterations:
        events.append(EarlyPaymentEvent(current, amount, payment.mode))
        step += 1
        # Offsets are taken from the start date so month-end days are kept.
        current = add_months(payment.start_date, step * interval)
    return events


def expand_early_payments(
    params: LoanParameters, settings: Optional[EngineSettings] = None
) -> List[EarlyPaymentEvent]:
    """Return every early payment of a loan as a date-ordered event list.

    Events with a non-positive amount or dated before the disbursement date
    are dropped. Events sharing a date keep their declaration order.
    """
    settings = settings or EngineSettings()
    events = _one_time_events(params.early_payments)

    first_payment = resolve_first_payment_date(params)
    if params.periodic_early_payments and first_payment is not None:
        default_end = add_months(first_payment, settings.max_periods)
        for periodic in params.periodic_early_payments:
            events.extend(_periodic_events(periodic, default_end, settings.max_periods))

    floor = params.disbursement_date or first_payment
    kept = [
        e for e in events
        if e.amount > 0 and (floor is None or e.date >= floor)
    ]
    if len(kept) != len(events):
        log.debug("Dropped %d early payment(s) before disbursement or without amount", len(events) - len(kept))
    kept.sort(key=lambda e: e.date)
    return kept
