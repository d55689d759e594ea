"""Data models for the loan schedule calculator.

This module defines the enumerations and dataclasses used by the engine: the
loan parameters supplied by the caller (rate changes, early payments and the
optional developer subsidy included), the intermediate rate periods and
early-payment events, and the schedule entries and totals handed back. All
of them are frozen so a computation can never mutate its own input.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


class RepaymentScheme(str, Enum):
    ANNUITY = "annuity"
    DIFFERENTIAL = "differential"


class RecalculationPolicy(str, Enum):
    """What happens after an early payment reduces the balance.

    ``REDUCE_TERM`` keeps the installment and shortens the loan,
    ``REDUCE_PAYMENT`` keeps the term and re-amortizes a smaller installment.
    """

    REDUCE_TERM = "reduce_term"
    REDUCE_PAYMENT = "reduce_payment"


class ApplicationMode(str, Enum):
    """When an early payment is taken relative to the regular payment.

    ``BETWEEN_PAYMENTS`` events are applied before the regular payment of the
    period they fall into, ``ON_PAYMENT_DATE`` events right after the regular
    payment dated on the same day.
    """

    ON_PAYMENT_DATE = "on_payment_date"
    BETWEEN_PAYMENTS = "between_payments"


class SubsidyPolicy(str, Enum):
    FIXED_PAYMENT = "fixed_payment"
    FLOATING_PAYMENT = "floating_payment"


class Currency(str, Enum):
    RUB = "RUB"
    USD = "USD"
    EUR = "EUR"


@dataclass(frozen=True)
class RateChange:
    """A new annual rate (percent) effective from ``start_date``."""

    start_date: Optional[date]
    new_rate: Optional[Decimal]


@dataclass(frozen=True)
class EarlyPayment:
    """A one-time extra payment applied to the principal."""

    date: Optional[date]
    amount: Optional[Decimal]
    mode: ApplicationMode = ApplicationMode.ON_PAYMENT_DATE


@dataclass(frozen=True)
class PeriodicEarlyPayment:
    """An extra payment repeated every ``interval`` months.

    Attributes
    ----------
    start_date: date
        Date of the first repetition.
    end_date: Optional[date]
        Last date (inclusive) a repetition may fall on. When omitted the
        repetitions run until the iteration cap.
    interval: int
        Number of months between repetitions.
    amount: Decimal
        Amount applied on every repetition.
    """

    start_date: Optional[date]
    interval: Optional[int]
    amount: Optional[Decimal]
    end_date: Optional[date] = None
    mode: ApplicationMode = ApplicationMode.ON_PAYMENT_DATE


@dataclass(frozen=True)
class SubsidyTerms:
    """Developer (third party) subsidy of the interest rate.

    The subsidy only takes effect when it is enabled, lasts at least one
    period and either ``rate`` or ``payment`` is given.
    """

    enabled: bool = False
    rate: Optional[Decimal] = None  # subsidized annual rate in percent
    duration: Optional[int] = None  # in periods
    policy: SubsidyPolicy = SubsidyPolicy.FIXED_PAYMENT
    payment: Optional[Decimal] = None  # manually agreed installment

    @property
    def is_active(self) -> bool:
        return (
            self.enabled
            and self.duration is not None
            and self.duration > 0
            and (self.payment is not None or self.rate is not None)
        )


@dataclass(frozen=True)
class LoanParameters:
    """Validated inputs of a single schedule computation.

    ``first_payment_date`` may be left empty, in which case the first payment
    falls one month after ``disbursement_date``.
    """

    principal: Decimal
    rate: Decimal  # annual nominal interest rate in percent
    duration: int  # number of periods (months)
    disbursement_date: Optional[date]
    scheme: RepaymentScheme = RepaymentScheme.ANNUITY
    first_payment_date: Optional[date] = None
    recalculation: RecalculationPolicy = RecalculationPolicy.REDUCE_TERM
    adjust_weekends: bool = True
    rate_changes: Tuple[RateChange, ...] = ()
    early_payments: Tuple[EarlyPayment, ...] = ()
    periodic_early_payments: Tuple[PeriodicEarlyPayment, ...] = ()
    subsidy: Optional[SubsidyTerms] = None
    currency: Currency = Currency.RUB

    @property
    def subsidized(self) -> bool:
        return self.subsidy is not None and self.subsidy.is_active


@dataclass(frozen=True)
class RatePeriod:
    start: date
    rate: Decimal


@dataclass(frozen=True)
class EarlyPaymentEvent:
    date: date
    amount: Decimal
    mode: ApplicationMode


@dataclass(frozen=True)
class ScheduleEntry:
    """An entry in the amortization schedule.

    Regular entries are numbered from 1. Early payments are injected as
    separate entries with ``period == 0`` and ``early_payment`` set; their
    whole amount goes to the principal.
    """

    period: int
    date: date
    payment: Decimal
    principal: Decimal
    interest: Decimal
    remaining: Decimal
    subsidy: Optional[Decimal] = None
    early_payment: bool = False


@dataclass(frozen=True)
class ScheduleResult:
    entries: Tuple[ScheduleEntry, ...]
    total_payment: Decimal
    total_interest: Decimal
    total_subsidy: Decimal = Decimal("0.00")
    subsidized_payment: Optional[Decimal] = None
    full_payment: Optional[Decimal] = None
    balance_after_subsidy: Optional[Decimal] = None

    @property
    def regular_entries(self) -> Tuple[ScheduleEntry, ...]:
        return tuple(e for e in self.entries if not e.early_payment)

    @property
    def early_payment_entries(self) -> Tuple[ScheduleEntry, ...]:
        return tuple(e for e in self.entries if e.early_payment)
