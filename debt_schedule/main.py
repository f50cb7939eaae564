"""Command-line interface for the debt schedule generator.

This module uses the ``click`` library to implement a multi-command
interface. Users can build the installment schedule of a debt contract
(optionally merging it with a previously exported schedule so payment status
survives edits), view a contract analysis or look up the installment due this
month. Schedules can be printed to the terminal or exported to JSON/CSV.
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import click

from .data_models import (
    DebtContract,
    FixedStrategy,
    InstallmentPeriod,
    InstallmentStatus,
    InterestStrategy,
    StepUpStrategy,
    StepUpTier,
)
from .engine import (
    analyze_contract,
    build_schedule,
    current_installment,
    summarize_schedule,
    validate_contract,
)
from .errors import ValidationError
from .formatter import print_analysis, print_schedule, print_summary
from .reconciler import reconcile
from .utils import decimal_from_str, parse_date

logger = logging.getLogger(__name__)

STRATEGY_CHOICES = {
    "fixed": InterestStrategy.FIXED,
    "step-up": InterestStrategy.STEP_UP,
}


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("500000") and shorthand with ``k``/``m`` suffixes
    (e.g., "500k" meaning 500_000).
    """
    value = str(value).strip().lower()
    value = value.replace(",", "")
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


def parse_tier_strings(values: Iterable[str]) -> List[StepUpTier]:
    tiers: List[StepUpTier] = []
    for item in values:
        parts = item.split(":")
        if len(parts) != 2 or "-" not in parts[0]:
            raise click.BadParameter(
                f"Step-up tier must be in START-END:AMOUNT format; got {item}"
            )
        months, amount_str = parts
        start_str, end_str = months.split("-", 1)
        try:
            start_month, end_month = int(start_str), int(end_str)
        except ValueError:
            raise click.BadParameter(f"Step-up tier months must be integers; got {item}")
        tiers.append(StepUpTier(start_month, end_month, parse_amount(amount_str)))
    return tiers


def _option_date(value: str, param_hint: str) -> date:
    try:
        return parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint=param_hint)


def build_contract_from_options(
    debt_id: str,
    principal: str,
    start_date: str,
    end_date: str,
    due_day: int,
    strategy: str,
    installment: Optional[str],
    tier: Tuple[str, ...],
    name: Optional[str] = None,
) -> DebtContract:
    start_dt = _option_date(start_date, "--start-date")
    end_dt = _option_date(end_date, "--end-date")
    installment_value = parse_amount(installment) if installment else None
    if STRATEGY_CHOICES[strategy] == InterestStrategy.STEP_UP:
        contract_strategy = StepUpStrategy(
            tiers=parse_tier_strings(tier),
            default_installment=installment_value or Decimal("0"),
        )
    else:
        if tier:
            raise click.BadParameter("--tier only applies to the step-up strategy")
        contract_strategy = FixedStrategy(installment=installment_value)
    return DebtContract(
        id=debt_id,
        principal=parse_amount(principal),
        start_date=start_dt,
        end_date=end_dt,
        due_day=due_day,
        strategy=contract_strategy,
        name=name,
    )


def _required(payload: Dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None or value == "":
        raise ValidationError(f"Missing field: {key}", field=key)
    return value


def _payload_decimal(value: Any, key: str) -> Decimal:
    try:
        return decimal_from_str(str(value))
    except ValueError as exc:
        raise ValidationError(str(exc), field=key) from exc


def _payload_date(payload: Dict[str, Any], key: str) -> date:
    value = _required(payload, key)
    try:
        return parse_date(str(value))
    except ValueError as exc:
        raise ValidationError(str(exc), field=key) from exc


def _payload_due_day(value: Any) -> int:
    """Whole-number due day; ``5.7`` or ``"5.7"`` is rejected, not truncated."""
    if isinstance(value, bool):
        raise ValidationError("Due day must be an integer", field="due_day")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"Due day must be an integer; got {value!r}", field="due_day")


def contract_from_dict(payload: Dict[str, Any], debt_id: Optional[str] = None) -> DebtContract:
    """Build a contract from a JSON-style mapping (form or API payload).

    Raises ``ValidationError`` for missing or malformed fields. Contract
    preconditions are checked later by ``build_schedule``.
    """
    debt_id = debt_id or str(_required(payload, "id"))
    start_dt = _payload_date(payload, "start_date")
    end_dt = _payload_date(payload, "end_date")
    due_day = _payload_due_day(payload.get("due_day", 5))

    installment = payload.get("installment")
    kind = payload.get("interest_strategy", InterestStrategy.FIXED.value)
    try:
        kind = InterestStrategy(kind)
    except ValueError as exc:
        raise ValidationError(f"Unknown interest strategy: {kind}", field="interest_strategy") from exc

    if kind == InterestStrategy.STEP_UP:
        tiers = []
        for idx, row in enumerate(payload.get("step_up_tiers") or []):
            try:
                tiers.append(
                    StepUpTier(
                        int(row["start_month"]),
                        int(row["end_month"]),
                        decimal_from_str(str(row["amount"])),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ValidationError(
                    f"Step-up tier {idx + 1} is malformed", field="tiers", tier_indices=(idx,)
                ) from exc
        strategy = StepUpStrategy(
            tiers=tiers,
            default_installment=(
                _payload_decimal(installment, "installment") if installment not in (None, "") else Decimal("0")
            ),
        )
    else:
        strategy = FixedStrategy(
            installment=_payload_decimal(_required(payload, "installment"), "installment")
        )

    return DebtContract(
        id=debt_id,
        principal=_payload_decimal(_required(payload, "principal"), "principal"),
        start_date=start_dt,
        end_date=end_dt,
        due_day=due_day,
        strategy=strategy,
        name=payload.get("name"),
    )


def installment_to_dict(entry: InstallmentPeriod) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "debt_id": entry.debt_id,
        "period": entry.period,
        "due_date": entry.due_date.isoformat(),
        "amount": float(entry.amount),
        "principal_part": float(entry.principal_part),
        "interest_part": float(entry.interest_part),
        "remaining_balance": float(entry.remaining_balance),
        "status": entry.status.value,
        "notes": entry.notes,
    }


def installment_from_dict(data: Dict[str, Any]) -> InstallmentPeriod:
    return InstallmentPeriod(
        debt_id=str(data["debt_id"]),
        period=int(data["period"]),
        due_date=parse_date(data["due_date"]),
        amount=decimal_from_str(str(data.get("amount", 0))),
        principal_part=decimal_from_str(str(data.get("principal_part", 0))),
        interest_part=decimal_from_str(str(data.get("interest_part", 0))),
        remaining_balance=decimal_from_str(str(data.get("remaining_balance", 0))),
        status=InstallmentStatus(data.get("status", InstallmentStatus.PENDING.value)),
        notes=data.get("notes"),
        id=data.get("id"),
    )


def load_installments(path: Path) -> List[InstallmentPeriod]:
    """Read installments from a JSON file written by ``export_to_json``.

    Both the full export (``{"summary": ..., "schedule": [...]}``) and a bare
    list of installments are accepted.
    """
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    rows = data if isinstance(data, list) else data.get("schedule", [])
    return [installment_from_dict(row) for row in rows]


def export_to_json(path: Path, schedule: List[InstallmentPeriod], summary: Dict[str, Any]) -> None:
    """Export schedule and summary to a JSON file."""
    data = {"summary": summary, "schedule": [installment_to_dict(e) for e in schedule]}
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, schedule: List[InstallmentPeriod]) -> None:
    """Export schedule to a CSV file."""
    header = [
        "Period",
        "Due_Date",
        "Amount",
        "Principal",
        "Interest",
        "Remaining_Balance",
        "Status",
        "Notes",
    ]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for e in schedule:
            writer.writerow(
                [
                    e.period,
                    e.due_date.isoformat(),
                    float(e.amount),
                    float(e.principal_part),
                    float(e.interest_part),
                    float(e.remaining_balance),
                    e.status.value,
                    e.notes or "",
                ]
            )


def _contract_options(func):
    options = [
        click.option("--id", "debt_id", default="debt-1", show_default=True, help="Debt identifier"),
        click.option("--name", "name", help="Display name of the debt"),
        click.option("--principal", "-p", "principal", required=True, help="Original loan amount"),
        click.option("--start-date", "-s", "start_date", required=True, help="Contract start (YYYY-MM-DD)"),
        click.option("--end-date", "-e", "end_date", required=True, help="Contract end (YYYY-MM-DD)"),
        click.option("--due-day", "due_day", type=click.IntRange(1, 31), default=5, show_default=True, help="Day of month installments are due"),
        click.option("--strategy", "strategy", type=click.Choice(list(STRATEGY_CHOICES)), default="fixed", show_default=True, help="Installment strategy"),
        click.option("--installment", "-i", "installment", help="Fixed installment, or default installment for step-up months outside every tier"),
        click.option("--tier", "tier", multiple=True, help="Step-up tier in START-END:AMOUNT format"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _contract_or_fail(**options: Any) -> DebtContract:
    contract = build_contract_from_options(**options)
    try:
        validate_contract(contract)
    except ValidationError as exc:
        raise click.BadParameter(str(exc), param_hint=exc.field)
    return contract


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Build and reconcile debt installment schedules."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@_contract_options
@click.option("--existing", "existing", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Previously exported schedule (.json) whose status and notes are kept")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def schedule(existing: Optional[Path], output: Optional[str], **options: Any) -> None:
    """Build and print the full installment schedule."""
    contract = _contract_or_fail(**options)
    entries = build_schedule(contract)
    if existing:
        entries = reconcile(entries, load_installments(existing))
    summary_data = summarize_schedule(contract, entries)
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, entries, summary_data)
            click.echo(f"Schedule exported to {path}")
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, entries)
            click.echo(f"Schedule exported to {path}")
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
    else:
        print_summary(summary_data)
        print_schedule(entries, show_notes=any(e.notes for e in entries))


@cli.command()
@_contract_options
@click.option("--today", "today", help="Analysis date (YYYY-MM-DD); defaults to today")
def summary(today: Optional[str], **options: Any) -> None:
    """Print the cost and progress analysis of a contract."""
    contract = _contract_or_fail(**options)
    as_of = _option_date(today, "--today") if today else date.today()
    print_analysis(analyze_contract(contract, as_of))


@cli.command()
@_contract_options
@click.option("--today", "today", help="Lookup date (YYYY-MM-DD); defaults to today")
def current(today: Optional[str], **options: Any) -> None:
    """Print the installment due in the current month."""
    contract = _contract_or_fail(**options)
    as_of = _option_date(today, "--today") if today else date.today()
    click.echo(f"{current_installment(contract, as_of):.2f}")


if __name__ == "__main__":
    cli()
