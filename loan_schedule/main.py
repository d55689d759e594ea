"""Command-line interface for the loan schedule calculator.

This module uses the ``click`` library to implement a multi-command
interface. Users can compute full amortization schedules, view summaries or
compare two loan scenarios. Results can be printed to the terminal or
exported to JSON/CSV files.
"""

from __future__ import annotations

import csv
import json
import shlex
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from .config import settings
from .data_models import (
    ApplicationMode,
    Currency,
    EarlyPayment,
    LoanParameters,
    PeriodicEarlyPayment,
    RateChange,
    RecalculationPolicy,
    RepaymentScheme,
    ScheduleResult,
    SubsidyPolicy,
    SubsidyTerms,
)
from .engine import compute_schedule, summarize
from .errors import ScheduleError
from .formatter import (
    print_comparison,
    print_schedule,
    print_summary,
    result_to_dict,
    summary_to_dict,
)
from .utils import decimal_from_str, parse_date

MODE_ALIASES = {
    "on": ApplicationMode.ON_PAYMENT_DATE,
    "between": ApplicationMode.BETWEEN_PAYMENTS,
}


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("500000") and shorthand with ``k``/``m`` suffixes
    (e.g., "500k" meaning 500_000).
    """
    value = value.strip().lower().replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_mode(value: str) -> ApplicationMode:
    value = value.strip().lower()
    if value in MODE_ALIASES:
        return MODE_ALIASES[value]
    try:
        return ApplicationMode(value)
    except ValueError:
        raise click.BadParameter(f"Early payment mode must be 'on' or 'between'; got {value}")


def _parse_date_option(value: str) -> Any:
    try:
        return parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def parse_rate_change_strings(values: Tuple[str, ...]) -> List[RateChange]:
    changes: List[RateChange] = []
    for item in values:
        parts = item.split(":")
        if len(parts) != 2:
            raise click.BadParameter(f"Rate change must be in YYYY-MM-DD:RATE format; got {item}")
        dt, rate_str = parts
        try:
            rate = decimal_from_str(rate_str)
        except ValueError as exc:
            raise click.BadParameter(str(exc))
        changes.append(RateChange(start_date=_parse_date_option(dt), new_rate=rate))
    return changes


def parse_early_payment_strings(values: Tuple[str, ...]) -> List[EarlyPayment]:
    payments: List[EarlyPayment] = []
    for item in values:
        parts = item.split(":")
        if len(parts) not in (2, 3):
            raise click.BadParameter(
                f"Early payment must be in YYYY-MM-DD:AMOUNT[:MODE] format; got {item}"
            )
        mode = parse_mode(parts[2]) if len(parts) == 3 else ApplicationMode.ON_PAYMENT_DATE
        payments.append(
            EarlyPayment(date=_parse_date_option(parts[0]), amount=parse_amount(parts[1]), mode=mode)
        )
    return payments


def parse_periodic_payment_strings(values: Tuple[str, ...]) -> List[PeriodicEarlyPayment]:
    payments: List[PeriodicEarlyPayment] = []
    for item in values:
        parts = item.split(":")
        if len(parts) not in (4, 5):
            raise click.BadParameter(
                f"Periodic payment must be in START:END:INTERVAL:AMOUNT[:MODE] format; got {item}"
            )
        start, end, interval_str, amount_str = parts[:4]
        try:
            interval = int(interval_str)
        except ValueError:
            raise click.BadParameter(f"Invalid interval: {interval_str}")
        if interval < 1:
            raise click.BadParameter("Periodic payment interval must be at least 1")
        mode = parse_mode(parts[4]) if len(parts) == 5 else ApplicationMode.ON_PAYMENT_DATE
        payments.append(
            PeriodicEarlyPayment(
                start_date=_parse_date_option(start),
                end_date=_parse_date_option(end) if end.strip() else None,
                interval=interval,
                amount=parse_amount(amount_str),
                mode=mode,
            )
        )
    return payments


def build_params_from_options(
    principal: str,
    rate: str,
    term: int,
    scheme: str,
    disbursement_date: str,
    first_payment_date: Optional[str] = None,
    recalculation: str = RecalculationPolicy.REDUCE_TERM.value,
    no_weekend_adjust: bool = False,
    rate_change: Tuple[str, ...] = (),
    early_payment: Tuple[str, ...] = (),
    periodic_payment: Tuple[str, ...] = (),
    subsidy_rate: Optional[str] = None,
    subsidy_term: Optional[int] = None,
    subsidy_policy: str = SubsidyPolicy.FIXED_PAYMENT.value,
    subsidy_payment: Optional[str] = None,
    currency: str = Currency.RUB.value,
) -> LoanParameters:
    try:
        rate_value = decimal_from_str(rate)
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    subsidy = None
    if subsidy_term:
        try:
            subsidy = SubsidyTerms(
                enabled=True,
                rate=decimal_from_str(subsidy_rate) if subsidy_rate else None,
                duration=subsidy_term,
                policy=SubsidyPolicy(subsidy_policy),
                payment=parse_amount(subsidy_payment) if subsidy_payment else None,
            )
        except ValueError as exc:
            raise click.BadParameter(str(exc))
    return LoanParameters(
        principal=parse_amount(principal),
        rate=rate_value,
        duration=term,
        disbursement_date=_parse_date_option(disbursement_date),
        scheme=RepaymentScheme(scheme),
        first_payment_date=_parse_date_option(first_payment_date) if first_payment_date else None,
        recalculation=RecalculationPolicy(recalculation),
        adjust_weekends=not no_weekend_adjust,
        rate_changes=tuple(parse_rate_change_strings(rate_change)),
        early_payments=tuple(parse_early_payment_strings(early_payment)),
        periodic_early_payments=tuple(parse_periodic_payment_strings(periodic_payment)),
        subsidy=subsidy,
        currency=Currency(currency.upper()),
    )


def run_calculation(params: LoanParameters) -> Tuple[ScheduleResult, Dict[str, object]]:
    try:
        result = compute_schedule(params, settings.engine)
    except ScheduleError as exc:
        raise click.ClickException(str(exc))
    return result, summarize(params, result)


def export_to_json(path: Path, result: ScheduleResult, summary: Dict[str, object]) -> None:
    """Export schedule and summary to a JSON file."""
    data = {"summary": summary_to_dict(summary), **result_to_dict(result)}
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, result: ScheduleResult) -> None:
    """Export schedule to a CSV file."""
    header = ["Period", "Date", "Payment", "Principal", "Interest", "Remaining", "Subsidy", "Early_Payment"]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for row in result_to_dict(result)["schedule"]:
            writer.writerow(
                [
                    row["period"],
                    row["date"],
                    row["payment"],
                    row["principal"],
                    row["interest"],
                    row["remaining"],
                    row["subsidy"] or "",
                    row["early_payment"],
                ]
            )


def loan_options(func):
    """Attach the loan parameter options shared by every command."""
    options = [
        click.option("--principal", "-p", "principal", required=True, help="Loan amount"),
        click.option("--rate", "-r", "rate", required=True, help="Annual interest rate (percent)"),
        click.option("--term", "-t", "term", required=True, type=int, help="Loan term in months"),
        click.option(
            "--scheme",
            "scheme",
            type=click.Choice([s.value for s in RepaymentScheme]),
            default=RepaymentScheme.ANNUITY.value,
            help="Repayment scheme",
        ),
        click.option("--disbursement-date", "-s", "disbursement_date", required=True, help="Disbursement date (YYYY-MM-DD)"),
        click.option("--first-payment-date", "first_payment_date", help="First payment date; defaults to one month after disbursement"),
        click.option(
            "--recalculation",
            "recalculation",
            type=click.Choice([p.value for p in RecalculationPolicy]),
            default=RecalculationPolicy.REDUCE_TERM.value,
            help="What an early payment reduces",
        ),
        click.option("--no-weekend-adjust", "no_weekend_adjust", is_flag=True, help="Keep payment dates that fall on weekends"),
        click.option("--rate-change", "rate_change", multiple=True, help="Rate change in YYYY-MM-DD:RATE format"),
        click.option("--early-payment", "early_payment", multiple=True, help="Early payment in YYYY-MM-DD:AMOUNT[:on|between] format"),
        click.option(
            "--periodic-payment",
            "periodic_payment",
            multiple=True,
            help="Periodic early payment in START:END:INTERVAL:AMOUNT[:on|between] format; END may be empty",
        ),
        click.option("--subsidy-rate", "subsidy_rate", help="Developer-subsidized annual rate (percent)"),
        click.option("--subsidy-term", "subsidy_term", type=int, help="Length of the subsidy window in months"),
        click.option(
            "--subsidy-policy",
            "subsidy_policy",
            type=click.Choice([p.value for p in SubsidyPolicy]),
            default=SubsidyPolicy.FIXED_PAYMENT.value,
            help="Payment policy during the subsidy window",
        ),
        click.option("--subsidy-payment", "subsidy_payment", help="Agreed installment during the subsidy window"),
        click.option(
            "--currency",
            "currency",
            type=click.Choice([c.value for c in Currency], case_sensitive=False),
            default=Currency.RUB.value,
            help="Loan currency (informational)",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
def cli() -> None:
    """A command-line loan schedule calculator."""
    pass


@cli.command()
@loan_options
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def schedule(output: Optional[str], **options: Any) -> None:
    """Compute and print the full amortization schedule."""
    params = build_params_from_options(**options)
    result, summary_data = run_calculation(params)
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, result, summary_data)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, result)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Schedule exported to {path}")
        return
    print_summary(summary_data)
    # Limit schedule length printed to avoid flooding the terminal
    max_rows = settings.PREVIEW_ROWS
    if len(result.entries) > max_rows:
        click.echo(f"Schedule has {len(result.entries)} rows; showing first {max_rows} rows.")
    print_schedule(result.entries[:max_rows], show_subsidy=params.subsidized)


@cli.command()
@loan_options
@click.option("--output", "output", type=str, help="Output file path (.json)")
def summary(output: Optional[str], **options: Any) -> None:
    """Compute and print only the summary metrics for a loan."""
    params = build_params_from_options(**options)
    _, summary_data = run_calculation(params)
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Summary export must use .json extension")
        with path.open("w", encoding="utf-8") as f:
            json.dump({"summary": summary_to_dict(summary_data)}, f, indent=2)
        click.echo(f"Summary exported to {path}")
    else:
        print_summary(summary_data)


@click.command()
@loan_options
def _scenario(**options: Any) -> Dict[str, Any]:
    return options


def parse_scenario(opts: str) -> LoanParameters:
    """Turn a quoted option string into loan parameters."""
    ctx = _scenario.make_context("scenario", shlex.split(opts))
    return build_params_from_options(**ctx.params)


@cli.command()
@click.option("--scenario1", "scenario1", required=True, help="First scenario options quoted string")
@click.option("--scenario2", "scenario2", required=True, help="Second scenario options quoted string")
def compare(scenario1: str, scenario2: str) -> None:
    """Compare two loan scenarios.

    Scenarios are provided as quoted option strings, for example:

        loan-schedule compare --scenario1 "-p 5m -r 12 -t 240 -s 2024-01-15"
        --scenario2 "-p 5m -r 12 -t 240 -s 2024-01-15 --scheme differential"
    """
    _, summary1 = run_calculation(parse_scenario(scenario1))
    _, summary2 = run_calculation(parse_scenario(scenario2))
    print_comparison(summary1, summary2)


if __name__ == "__main__":
    cli()
