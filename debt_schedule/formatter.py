"""Output helpers for the debt schedule generator.

This module provides simple functions to render installment schedules,
schedule summaries and contract analyses in a tabular text format using
built-in printing and string formatting.
"""

from __future__ import annotations

from typing import Dict, Iterable

from .data_models import ContractAnalysis, InstallmentPeriod


def print_summary(summary: Dict[str, object]) -> None:
    """Print the aggregate metrics of a schedule in a human-readable format."""
    print("Summary")
    print("-" * 72)
    print(f"Debt               : {summary['debt_id']} ({summary['strategy']})")
    print(f"Principal          : {summary['principal']:.2f}")
    print(f"Total liability    : {summary['total_liability']:.2f}")
    print(f"Total interest     : {summary['total_interest']:.2f}")
    print(f"Implied rate       : {summary['implied_annual_rate']:.2f}% p.a.")
    print(f"Tenor              : {summary['tenor_months']} months")
    print(f"First due date     : {summary['first_due_date']}")
    print(f"Last due date      : {summary['last_due_date']}")
    # Only worth showing once some payments have been recorded
    if summary.get("paid_count") or summary.get("overdue_count"):
        print(
            f"Paid / pending / overdue : {summary['paid_count']} / "
            f"{summary['pending_count']} / {summary['overdue_count']}"
        )
        print(f"Paid total         : {summary['paid_total']:.2f}")
        print(f"Outstanding total  : {summary['outstanding_total']:.2f}")
    print("-" * 72)


def print_analysis(analysis: ContractAnalysis) -> None:
    print("Contract analysis")
    print("-" * 72)
    print(f"Tenor              : {analysis.tenor_months} months")
    print(f"Total liability    : {analysis.total_liability:.2f}")
    print(f"Total overpayment  : {analysis.total_overpayment:.2f}")
    print(f"Implied rate       : {analysis.implied_annual_rate:.2f}% p.a.")
    print(f"Months passed      : {analysis.months_passed}")
    print(f"Remaining (est.)   : {analysis.current_remaining:.2f}")
    print(f"Progress           : {analysis.progress:.1f}%")
    print("-" * 72)


def print_schedule(schedule: Iterable[InstallmentPeriod], show_notes: bool = False) -> None:
    """Print the installment schedule as a simple table.

    Parameters
    ----------
    schedule: Iterable[InstallmentPeriod]
        The installments to print.
    show_notes: bool
        Whether to include the ``Notes`` column. Notes are hidden by default
        because freshly built schedules have none.
    """
    headers = [
        "Period",
        "DueDate",
        "Amount",
        "Principal",
        "Interest",
        "Balance",
        "Status",
    ]
    if show_notes:
        headers.append("Notes")
    print("\t".join(headers))
    for entry in schedule:
        row = [
            str(entry.period),
            entry.due_date.isoformat(),
            f"{entry.amount:.2f}",
            f"{entry.principal_part:.2f}",
            f"{entry.interest_part:.2f}",
            f"{entry.remaining_balance:.2f}",
            entry.status.value,
        ]
        if show_notes:
            row.append(entry.notes or "")
        print("\t".join(row))
