from datetime import date
from decimal import Decimal

import pytest

from conftest import principal_sum
from loan_schedule.config import EngineSettings
from loan_schedule.data_models import (
    ApplicationMode,
    EarlyPayment,
    RecalculationPolicy,
    SubsidyPolicy,
    SubsidyTerms,
)
from loan_schedule.engine import compute_schedule, summarize
from loan_schedule.errors import ComputationDivergence
from loan_schedule.rates import annuity_payment
from loan_schedule.utils import round_money


def day_count_interest(balance, rate, days):
    return round_money(balance * rate * days / Decimal(36500))


@pytest.fixture
def subsidized_params(make_params):
    def factory(**subsidy_overrides):
        terms = dict(enabled=True, rate=Decimal("6"), duration=24, policy=SubsidyPolicy.FIXED_PAYMENT)
        terms.update(subsidy_overrides)
        return make_params(
            principal=Decimal("3000000"),
            rate=Decimal("12"),
            duration=240,
            subsidy=SubsidyTerms(**terms),
        )

    return factory


def test_fixed_payment_subsidy_window(subsidized_params):
    result = compute_schedule(subsidized_params())
    entries = result.entries

    assert result.subsidized_payment == annuity_payment(Decimal("3000000"), Decimal("6"), 240)
    assert result.full_payment == annuity_payment(Decimal("3000000"), Decimal("12"), 240)

    first = entries[0]
    assert first.date == date(2024, 2, 15)
    assert first.interest == day_count_interest(Decimal("3000000"), Decimal("6"), 31)
    assert first.interest == Decimal("15287.67")
    assert first.subsidy == Decimal("15287.67")
    assert first.payment == result.subsidized_payment

    previous_balance = Decimal("3000000.00")
    previous_date = date(2024, 1, 15)
    for entry in entries[:24]:
        days = (entry.date - previous_date).days
        full = day_count_interest(previous_balance, Decimal("12"), days)
        assert entry.payment == result.subsidized_payment
        assert entry.subsidy >= 0
        assert entry.subsidy == full - entry.interest
        previous_balance, previous_date = entry.remaining, entry.date

    assert result.balance_after_subsidy == entries[23].remaining
    assert entries[24].subsidy == Decimal("0.00")
    assert entries[24].payment == result.full_payment
    assert result.total_subsidy == sum((e.subsidy for e in entries), Decimal("0"))
    assert entries[-1].remaining == Decimal("0.00")
    assert principal_sum(result) == Decimal("3000000.00")


def test_floating_payment_keeps_full_rate_principal(subsidized_params):
    result = compute_schedule(subsidized_params(policy=SubsidyPolicy.FLOATING_PAYMENT))
    full_payment = result.full_payment
    previous_balance = Decimal("3000000.00")
    previous_date = date(2024, 1, 15)
    for entry in result.entries[:24]:
        days = (entry.date - previous_date).days
        full = day_count_interest(previous_balance, Decimal("12"), days)
        assert entry.principal == full_payment - full
        assert entry.payment == entry.principal + entry.interest
        assert entry.subsidy > 0
        previous_balance, previous_date = entry.remaining, entry.date
    assert result.entries[-1].remaining == Decimal("0.00")


def test_manual_payment_below_interest_pays_interest_only(subsidized_params):
    result = compute_schedule(subsidized_params(payment=Decimal("1000")))
    assert result.subsidized_payment == Decimal("1000.00")
    for entry in result.entries[:24]:
        assert entry.principal == Decimal("0.00")
        assert entry.payment == entry.interest
        assert entry.remaining == Decimal("3000000.00")
    assert result.balance_after_subsidy == Decimal("3000000.00")
    assert result.entries[-1].remaining == Decimal("0.00")


def test_manual_payment_without_rate_earns_no_subsidy(subsidized_params):
    result = compute_schedule(subsidized_params(rate=None, payment=Decimal("40000")))
    window = result.entries[:24]
    assert all(e.subsidy == Decimal("0.00") for e in window)
    assert all(e.payment == Decimal("40000.00") for e in window)
    assert result.total_subsidy == Decimal("0.00")


def test_inactive_subsidy_uses_standard_builder(subsidized_params):
    params = subsidized_params(enabled=False)
    result = compute_schedule(params)
    assert result.subsidized_payment is None
    assert all(e.subsidy is None for e in result.entries)
    assert len(result.regular_entries) == 240


def test_loan_repaid_inside_window(make_params):
    params = make_params(
        duration=6,
        subsidy=SubsidyTerms(enabled=True, rate=Decimal("3"), duration=12),
    )
    result = compute_schedule(params)
    assert result.entries[-1].remaining == Decimal("0.00")
    assert result.balance_after_subsidy == Decimal("0.00")


def test_summary_reports_subsidy(subsidized_params):
    params = subsidized_params()
    result = compute_schedule(params)
    summary = summarize(params, result)
    assert summary["subsidized_payment"] == result.subsidized_payment
    assert summary["full_payment"] == result.full_payment
    assert summary["balance_after_subsidy"] == result.balance_after_subsidy
    assert summary["total_subsidy"] > 0


def test_unsettled_balance_raises_divergence(make_params):
    params = make_params(
        subsidy=SubsidyTerms(enabled=True, rate=Decimal("6"), duration=12, payment=Decimal("1.00")),
    )
    with pytest.raises(ComputationDivergence) as excinfo:
        compute_schedule(params, EngineSettings(max_periods=12))
    assert excinfo.value.period == 12
    assert excinfo.value.balance == Decimal("120000.00")
    assert excinfo.value.status_code == 422


def test_early_payment_reduces_both_installments(make_params):
    params = make_params(
        principal=Decimal("3000000"),
        rate=Decimal("12"),
        duration=240,
        recalculation=RecalculationPolicy.REDUCE_PAYMENT,
        early_payments=(
            EarlyPayment(date=date(2024, 6, 1), amount=Decimal("500000"), mode=ApplicationMode.BETWEEN_PAYMENTS),
        ),
        subsidy=SubsidyTerms(enabled=True, rate=Decimal("6"), duration=24),
    )
    result = compute_schedule(params)
    entries = result.entries

    early = entries[4]
    assert early.early_payment
    assert early.date == date(2024, 6, 1)
    assert early.remaining == entries[3].remaining - Decimal("500000.00")
    # four periods done, 236 left
    assert entries[5].period == 5
    assert entries[5].payment == annuity_payment(early.remaining, Decimal("6"), 236)
    assert entries[25].period == 25
    assert entries[25].payment == annuity_payment(early.remaining, Decimal("12"), 236)
    assert result.subsidized_payment == annuity_payment(Decimal("3000000"), Decimal("6"), 240)
    assert entries[-1].remaining == Decimal("0.00")
    assert principal_sum(result) == Decimal("3000000.00")


def test_manual_installment_survives_early_payment(make_params):
    params = make_params(
        principal=Decimal("3000000"),
        rate=Decimal("12"),
        duration=240,
        recalculation=RecalculationPolicy.REDUCE_PAYMENT,
        early_payments=(EarlyPayment(date=date(2024, 3, 15), amount=Decimal("100000")),),
        subsidy=SubsidyTerms(enabled=True, rate=Decimal("6"), duration=24, payment=Decimal("25000")),
    )
    result = compute_schedule(params)
    entries = result.entries

    assert entries[1].period == 2
    assert entries[2].early_payment
    assert entries[2].date == date(2024, 3, 15)
    assert entries[3].payment == Decimal("25000.00")
    # two periods done, 238 left
    assert entries[25].period == 25
    assert entries[25].payment == annuity_payment(entries[2].remaining, Decimal("12"), 238)
    assert entries[-1].remaining == Decimal("0.00")


@pytest.mark.parametrize("policy", list(SubsidyPolicy))
@pytest.mark.parametrize("recalculation", list(RecalculationPolicy))
@pytest.mark.parametrize("mode", list(ApplicationMode))
def test_early_payments_keep_schedule_consistent(make_params, policy, recalculation, mode):
    params = make_params(
        principal=Decimal("3000000"),
        rate=Decimal("12"),
        duration=240,
        recalculation=recalculation,
        early_payments=(
            EarlyPayment(date=date(2024, 5, 15), amount=Decimal("300000"), mode=mode),
            EarlyPayment(date=date(2025, 6, 15), amount=Decimal("400000"), mode=mode),
            EarlyPayment(date=date(2026, 7, 15), amount=Decimal("250000"), mode=mode),
        ),
        subsidy=SubsidyTerms(enabled=True, rate=Decimal("6"), duration=24, policy=policy),
    )
    result = compute_schedule(params)
    entries = result.entries

    assert len(result.early_payment_entries) == 3
    dates = [e.date for e in entries]
    assert dates == sorted(dates)
    balances = [e.remaining for e in entries]
    assert all(a >= b for a, b in zip(balances, balances[1:]))
    assert balances[-1] == Decimal("0.00")
    assert principal_sum(result) == Decimal("3000000.00")
    assert all(e.subsidy >= 0 for e in result.regular_entries)
