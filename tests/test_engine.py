from datetime import date
from decimal import Decimal

import pytest

from conftest import principal_sum
from loan_schedule.config import EngineSettings
from loan_schedule.data_models import (
    ApplicationMode,
    EarlyPayment,
    PeriodicEarlyPayment,
    RateChange,
    RecalculationPolicy,
    RepaymentScheme,
)
from loan_schedule.engine import compute_schedule, summarize
from loan_schedule.errors import ComputationDivergence, InvalidInput
from loan_schedule.rates import annuity_payment
from loan_schedule.utils import round_money


def test_annuity_end_to_end(make_params):
    params = make_params(principal=Decimal("1000000"), rate=Decimal("10"), duration=12)
    result = compute_schedule(params)

    regular = result.regular_entries
    assert len(regular) == 12
    assert [e.period for e in regular] == list(range(1, 13))
    assert regular[-1].remaining == Decimal("0.00")
    assert regular[0].interest == Decimal("8333.33")
    assert result.total_interest == sum((e.interest for e in regular), Decimal("0"))
    assert result.total_payment == sum((e.payment for e in regular), Decimal("0"))
    assert principal_sum(result) == Decimal("1000000.00")

    fixed = annuity_payment(Decimal("1000000"), Decimal("10"), 12)
    assert {e.payment for e in regular[:-1]} == {fixed}
    assert abs(regular[-1].payment - fixed) < Decimal("1.00")
    assert result.subsidized_payment is None
    assert result.balance_after_subsidy is None


def test_balance_never_increases(make_params):
    result = compute_schedule(make_params(principal=Decimal("2500000"), rate=Decimal("9.5"), duration=240))
    balances = [e.remaining for e in result.entries]
    assert all(a >= b for a, b in zip(balances, balances[1:]))
    assert balances[-1] == Decimal("0.00")
    assert abs(principal_sum(result) - Decimal("2500000")) <= Decimal("0.01")


def test_payment_dates_follow_disbursement_day(make_params):
    result = compute_schedule(make_params(disbursement_date=date(2024, 1, 31), duration=3))
    assert [e.date for e in result.entries] == [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]


def test_weekend_adjusted_dates(make_params):
    # 2024-06-01 is a Saturday, 2024-09-01 a Sunday
    params = make_params(disbursement_date=date(2024, 5, 1), duration=4, adjust_weekends=True)
    dates = [e.date for e in compute_schedule(params).entries]
    assert dates == [date(2024, 6, 3), date(2024, 7, 1), date(2024, 8, 1), date(2024, 9, 2)]


def test_differential_constant_principal_and_falling_interest(make_params):
    params = make_params(scheme=RepaymentScheme.DIFFERENTIAL)
    result = compute_schedule(params)
    regular = result.regular_entries
    assert len(regular) == 12
    assert {e.principal for e in regular} == {Decimal("10000.00")}
    interests = [e.interest for e in regular]
    assert interests[0] == Decimal("1200.00")
    assert all(a > b for a, b in zip(interests, interests[1:]))
    assert all(e.payment == e.principal + e.interest for e in regular)
    assert regular[-1].remaining == Decimal("0.00")


def test_between_payments_event_precedes_regular_payment(make_params):
    params = make_params(
        rate=Decimal("0"),
        early_payments=(
            EarlyPayment(date=date(2024, 3, 1), amount=Decimal("20000"), mode=ApplicationMode.BETWEEN_PAYMENTS),
        ),
    )
    result = compute_schedule(params)
    entries = result.entries
    assert entries[1].early_payment
    assert entries[1].period == 0
    assert entries[1].date == date(2024, 3, 1)
    assert entries[1].principal == Decimal("20000.00")
    assert entries[1].interest == Decimal("0.00")
    assert entries[1].remaining == Decimal("90000.00")
    assert entries[2].period == 2
    assert entries[2].remaining == Decimal("80000.00")
    # reduce_term keeps the installment and shortens the loan
    assert len(result.regular_entries) == 10
    assert result.total_payment == Decimal("120000.00")


def test_on_payment_date_event_follows_regular_payment(make_params):
    params = make_params(
        rate=Decimal("0"),
        early_payments=(EarlyPayment(date=date(2024, 3, 15), amount=Decimal("10000")),),
    )
    result = compute_schedule(params)
    entries = result.entries
    assert entries[1].period == 2
    assert not entries[1].early_payment
    assert entries[2].early_payment
    assert entries[2].date == date(2024, 3, 15)
    assert entries[2].remaining == Decimal("90000.00")
    assert len(result.regular_entries) == 11


def test_on_payment_date_event_off_schedule_is_skipped(make_params):
    params = make_params(
        rate=Decimal("0"),
        early_payments=(EarlyPayment(date=date(2024, 3, 10), amount=Decimal("10000")),),
    )
    result = compute_schedule(params)
    assert not result.early_payment_entries
    assert len(result.regular_entries) == 12


def test_reduce_payment_recalculates_installment(make_params):
    params = make_params(
        rate=Decimal("0"),
        recalculation=RecalculationPolicy.REDUCE_PAYMENT,
        early_payments=(
            EarlyPayment(date=date(2024, 3, 1), amount=Decimal("20000"), mode=ApplicationMode.BETWEEN_PAYMENTS),
        ),
    )
    result = compute_schedule(params)
    regular = result.regular_entries
    assert len(regular) == 12
    assert regular[0].payment == Decimal("10000.00")
    assert regular[1].payment == Decimal("8181.82")
    assert regular[-1].remaining == Decimal("0.00")
    assert principal_sum(result) == Decimal("120000.00")


def test_early_payment_is_capped_at_balance(make_params):
    params = make_params(
        rate=Decimal("0"),
        early_payments=(EarlyPayment(date=date(2024, 2, 15), amount=Decimal("500000")),),
    )
    result = compute_schedule(params)
    assert len(result.entries) == 2
    assert result.entries[1].payment == Decimal("110000.00")
    assert result.entries[1].remaining == Decimal("0.00")
    assert result.total_payment == Decimal("120000.00")


def test_periodic_early_payments_shorten_the_loan(make_params):
    params = make_params(
        principal=Decimal("1000000"),
        rate=Decimal("10"),
        duration=60,
        periodic_early_payments=(
            PeriodicEarlyPayment(start_date=date(2024, 2, 15), interval=1, amount=Decimal("10000")),
        ),
    )
    result = compute_schedule(params)
    assert len(result.regular_entries) < 60
    assert result.entries[-1].remaining == Decimal("0.00")
    assert abs(principal_sum(result) - Decimal("1000000")) <= Decimal("0.01")


def test_rate_change_recalculates_annuity(make_params):
    params = make_params(
        duration=24,
        rate_changes=(RateChange(start_date=date(2024, 8, 1), new_rate=Decimal("6")),),
    )
    result = compute_schedule(params)
    regular = result.regular_entries
    before = [e for e in regular if e.date < date(2024, 8, 1)]
    after = [e for e in regular if e.date >= date(2024, 8, 1)]
    assert len({e.payment for e in before}) == 1
    assert len({e.payment for e in after[:-1]}) == 1
    assert after[0].payment < before[0].payment
    assert after[0].interest == round_money(before[-1].remaining * Decimal("0.005"))
    assert len(regular) == 24
    assert regular[-1].remaining == Decimal("0.00")


def test_interest_uses_balance_before_entry(make_params):
    result = compute_schedule(make_params(scheme=RepaymentScheme.DIFFERENTIAL, rate=Decimal("6")))
    previous = Decimal("120000.00")
    for entry in result.entries:
        assert entry.interest == round_money(previous * Decimal("0.005"))
        previous = entry.remaining


@pytest.mark.parametrize(
    "overrides",
    [
        {"duration": 0},
        {"duration": 721},
        {"principal": Decimal("0")},
        {"disbursement_date": None},
        {"first_payment_date": date(2024, 1, 15)},
        {"rate": Decimal("-1")},
    ],
)
def test_invalid_input_fails_fast(make_params, overrides):
    with pytest.raises(InvalidInput):
        compute_schedule(make_params(**overrides))


def test_duration_is_checked_against_configured_cap(make_params):
    with pytest.raises(InvalidInput):
        compute_schedule(make_params(duration=24), EngineSettings(max_periods=12))


def test_summary(make_params):
    params = make_params(
        rate=Decimal("0"),
        early_payments=(EarlyPayment(date=date(2024, 3, 15), amount=Decimal("10000")),),
    )
    result = compute_schedule(params)
    summary = summarize(params, result)
    assert summary["payments_made"] == 11
    assert summary["total_early_payment"] == Decimal("10000.00")
    assert summary["original_end_date"] == "2025-01-15"
    assert summary["new_end_date"] == "2024-12-15"
    assert summary["max_payment"] == Decimal("10000.00")
    assert "subsidized_payment" not in summary


def test_on_payment_date_event_matches_weekend_adjusted_date(make_params):
    # 2024-06-01 is a Saturday; the first payment moves to Monday 2024-06-03
    params = make_params(
        disbursement_date=date(2024, 5, 1),
        duration=4,
        adjust_weekends=True,
        rate=Decimal("0"),
        early_payments=(
            EarlyPayment(date=date(2024, 6, 1), amount=Decimal("10000")),
            EarlyPayment(date=date(2024, 6, 3), amount=Decimal("5000")),
        ),
    )
    result = compute_schedule(params)
    dates = [e.date for e in result.entries]
    assert dates == sorted(dates)
    assert [(e.date, e.payment) for e in result.early_payment_entries] == [
        (date(2024, 6, 3), Decimal("5000.00"))
    ]
    assert result.entries[0].date == date(2024, 6, 3)
    assert not result.entries[0].early_payment
    balances = [e.remaining for e in result.entries]
    assert all(a >= b for a, b in zip(balances, balances[1:]))


def test_installment_not_covering_interest_pays_interest_only(make_params):
    # At 1200% a year the monthly rate is 100%, so the rounded installment
    # equals the interest and nothing is amortized.
    params = make_params(
        principal=Decimal("1000"),
        rate=Decimal("1200"),
        duration=24,
        early_payments=(EarlyPayment(date=date(2024, 4, 15), amount=Decimal("1000")),),
    )
    result = compute_schedule(params)
    regular = result.regular_entries
    assert len(regular) == 3
    for entry in regular:
        assert entry.interest == Decimal("1000.00")
        assert entry.principal == Decimal("0.00")
        assert entry.payment == entry.interest
        assert entry.remaining == Decimal("1000.00")
    assert result.entries[-1].early_payment
    assert result.entries[-1].remaining == Decimal("0.00")


def test_standard_schedule_diverges_when_nothing_is_amortized(make_params):
    params = make_params(principal=Decimal("1000"), rate=Decimal("1200"), duration=24)
    with pytest.raises(ComputationDivergence) as excinfo:
        compute_schedule(params, EngineSettings(max_periods=24))
    assert excinfo.value.period == 24
    assert excinfo.value.balance == Decimal("1000.00")
