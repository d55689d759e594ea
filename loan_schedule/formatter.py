"""Output helpers for the loan schedule calculator.

This module provides simple functions to render amortization schedules and
summaries in a tabular text format, plus ``result_to_dict`` which turns a
``ScheduleResult`` into JSON-ready dictionaries for exports and the web API.
Monetary values are serialized as strings so that no precision is lost.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import click

from .data_models import ScheduleEntry, ScheduleResult


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else f"{value:.2f}"


def entry_to_dict(entry: ScheduleEntry) -> Dict[str, Any]:
    return {
        "period": entry.period,
        "date": entry.date.isoformat(),
        "payment": _money(entry.payment),
        "principal": _money(entry.principal),
        "interest": _money(entry.interest),
        "remaining": _money(entry.remaining),
        "subsidy": _money(entry.subsidy),
        "early_payment": entry.early_payment,
    }


def result_to_dict(result: ScheduleResult) -> Dict[str, Any]:
    """Serialize a result: totals plus one dictionary per entry."""
    return {
        "total_payment": _money(result.total_payment),
        "total_interest": _money(result.total_interest),
        "total_subsidy": _money(result.total_subsidy),
        "subsidized_payment": _money(result.subsidized_payment),
        "full_payment": _money(result.full_payment),
        "balance_after_subsidy": _money(result.balance_after_subsidy),
        "schedule": [entry_to_dict(e) for e in result.entries],
    }


def summary_to_dict(summary: Dict[str, object]) -> Dict[str, Any]:
    return {k: _money(v) if isinstance(v, Decimal) else v for k, v in summary.items()}


def print_summary(summary: Dict[str, object]) -> None:
    """Print a summary of loan metrics in a human-readable format."""
    currency = summary.get("currency", "")
    click.echo("Summary")
    click.echo("-" * 72)
    click.echo(f"Principal          : {summary['principal']:.2f} {currency}")
    click.echo(f"Scheme             : {summary['scheme']}")
    click.echo(f"Total interest     : {summary['total_interest']:.2f}")
    if summary.get("total_early_payment"):
        click.echo(f"Early payments     : {summary['total_early_payment']:.2f}")
    click.echo(f"Total payment      : {summary['total_payment']:.2f}")
    click.echo(f"Original end date  : {summary['original_end_date']}")
    click.echo(f"New end date       : {summary['new_end_date']}")
    click.echo(f"Payments made      : {summary['payments_made']}")
    if summary.get("max_payment"):
        click.echo(f"Highest payment    : {summary['max_payment']:.2f}")
    if summary.get("subsidized_payment") is not None:
        click.echo(f"Subsidized payment : {summary['subsidized_payment']:.2f}")
        click.echo(f"Full-rate payment  : {summary['full_payment']:.2f}")
        click.echo(f"Total subsidy      : {summary['total_subsidy']:.2f}")
        click.echo(f"Balance after subs.: {summary['balance_after_subsidy']:.2f}")
    click.echo("-" * 72)


def print_schedule(entries: Iterable[ScheduleEntry], show_subsidy: bool = False) -> None:
    """Print the amortization schedule as a simple table.

    Parameters
    ----------
    entries: Iterable[ScheduleEntry]
        The schedule entries to print.
    show_subsidy: bool
        Whether to include the ``Subsidy`` column. Only subsidized schedules
        carry it.
    """
    headers = ["Period", "Date", "Payment", "Principal", "Interest", "Remaining"]
    if show_subsidy:
        headers.append("Subsidy")
    click.echo("\t".join(headers))
    for entry in entries:
        row: List[str] = [
            "early" if entry.early_payment else str(entry.period),
            entry.date.isoformat(),
            f"{entry.payment:.2f}",
            f"{entry.principal:.2f}",
            f"{entry.interest:.2f}",
            f"{entry.remaining:.2f}",
        ]
        if show_subsidy:
            row.append(_money(entry.subsidy) or "")
        click.echo("\t".join(row))


def print_comparison(s1: Dict[str, object], s2: Dict[str, object]) -> None:
    """Print a comparison of two loan summaries side by side.

    The difference column is scenario2 - scenario1; a negative difference
    means the second scenario is cheaper or shorter.
    """
    click.echo("Comparison")
    click.echo("=" * 72)
    keys = [
        "total_payment",
        "total_interest",
        "payments_made",
        "max_payment",
    ]
    click.echo(f"{'Metric':20s} {'Scenario1':>15s} {'Scenario2':>15s} {'Difference':>15s}")
    for key in keys:
        v1 = s1.get(key)
        v2 = s2.get(key)
        diff = v2 - v1
        click.echo(f"{key:20s} {v1:15.2f} {v2:15.2f} {diff:15.2f}")
    click.echo("=" * 72)
