"""Mapping between JSON request bodies and ``LoanParameters``.

The same representation is stored with every saved calculation, so a stored
record can be recomputed later from exactly the parameters it was built from.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from loan_schedule.data_models import (
    ApplicationMode,
    Currency,
    EarlyPayment,
    LoanParameters,
    PeriodicEarlyPayment,
    RateChange,
    RecalculationPolicy,
    RepaymentScheme,
    SubsidyPolicy,
    SubsidyTerms,
)
from loan_schedule.errors import InvalidInput
from loan_schedule.utils import decimal_from_str, parse_date


def _opt_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    return parse_date(str(value))


def _opt_decimal(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    return decimal_from_str(str(value))


def _opt_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    return int(value)


def params_from_json(data: Dict[str, Any]) -> LoanParameters:
    """Build loan parameters from a decoded JSON object.

    Raises ``InvalidInput`` for missing required fields, malformed values and
    unknown enumeration values.
    """
    if not isinstance(data, dict):
        raise InvalidInput("Request body must be a JSON object")
    try:
        subsidy_data = data.get("subsidy") or None
        subsidy = None
        if subsidy_data:
            subsidy = SubsidyTerms(
                enabled=bool(subsidy_data.get("enabled", True)),
                rate=_opt_decimal(subsidy_data.get("rate")),
                duration=_opt_int(subsidy_data.get("duration")),
                policy=SubsidyPolicy(subsidy_data.get("policy", SubsidyPolicy.FIXED_PAYMENT.value)),
                payment=_opt_decimal(subsidy_data.get("payment")),
            )
        return LoanParameters(
            principal=decimal_from_str(str(data["principal"])),
            rate=decimal_from_str(str(data["rate"])),
            duration=int(data["duration"]),
            disbursement_date=_opt_date(data.get("disbursement_date")),
            scheme=RepaymentScheme(data.get("scheme", RepaymentScheme.ANNUITY.value)),
            first_payment_date=_opt_date(data.get("first_payment_date")),
            recalculation=RecalculationPolicy(
                data.get("recalculation", RecalculationPolicy.REDUCE_TERM.value)
            ),
            adjust_weekends=bool(data.get("adjust_weekends", True)),
            rate_changes=tuple(
                RateChange(start_date=_opt_date(rc.get("start_date")), new_rate=_opt_decimal(rc.get("new_rate")))
                for rc in data.get("rate_changes") or []
            ),
            early_payments=tuple(
                EarlyPayment(
                    date=_opt_date(ep.get("date")),
                    amount=_opt_decimal(ep.get("amount")),
                    mode=ApplicationMode(ep.get("mode", ApplicationMode.ON_PAYMENT_DATE.value)),
                )
                for ep in data.get("early_payments") or []
            ),
            periodic_early_payments=tuple(
                PeriodicEarlyPayment(
                    start_date=_opt_date(pp.get("start_date")),
                    end_date=_opt_date(pp.get("end_date")),
                    interval=_opt_int(pp.get("interval")),
                    amount=_opt_decimal(pp.get("amount")),
                    mode=ApplicationMode(pp.get("mode", ApplicationMode.ON_PAYMENT_DATE.value)),
                )
                for pp in data.get("periodic_early_payments") or []
            ),
            subsidy=subsidy,
            currency=Currency(str(data.get("currency", Currency.RUB.value)).upper()),
        )
    except KeyError as exc:
        raise InvalidInput(f"Missing required field: {exc.args[0]}") from exc
    except (TypeError, ValueError, AttributeError) as exc:
        raise InvalidInput(f"Malformed loan parameters: {exc}") from exc


def _str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def params_to_json(params: LoanParameters) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "principal": _str(params.principal),
        "rate": _str(params.rate),
        "duration": params.duration,
        "disbursement_date": _str(params.disbursement_date),
        "scheme": params.scheme.value,
        "first_payment_date": _str(params.first_payment_date),
        "recalculation": params.recalculation.value,
        "adjust_weekends": params.adjust_weekends,
        "rate_changes": [
            {"start_date": _str(rc.start_date), "new_rate": _str(rc.new_rate)} for rc in params.rate_changes
        ],
        "early_payments": [
            {"date": _str(ep.date), "amount": _str(ep.amount), "mode": ep.mode.value}
            for ep in params.early_payments
        ],
        "periodic_early_payments": [
            {
                "start_date": _str(pp.start_date),
                "end_date": _str(pp.end_date),
                "interval": pp.interval,
                "amount": _str(pp.amount),
                "mode": pp.mode.value,
            }
            for pp in params.periodic_early_payments
        ],
        "currency": params.currency.value,
        "subsidy": None,
    }
    if params.subsidy is not None:
        data["subsidy"] = {
            "enabled": params.subsidy.enabled,
            "rate": _str(params.subsidy.rate),
            "duration": params.subsidy.duration,
            "policy": params.subsidy.policy.value,
            "payment": _str(params.subsidy.payment),
        }
    return data
