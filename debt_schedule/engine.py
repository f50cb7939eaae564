"""Core calculation engine for the debt schedule generator.

This module turns a ``DebtContract`` into its full list of monthly
installments. Installment amounts are declared by the user, either as one
fixed amount or as step-up tiers, rather than computed from an interest rate.
Principal is repaid on a straight-line basis and the rest of each installment
counts as interest. The flat annual rate implied by the total overpayment is
derived separately for display.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, getcontext
from typing import Dict, List

from .data_models import (
    ContractAnalysis,
    DebtContract,
    FixedStrategy,
    InstallmentPeriod,
    InstallmentStatus,
    StepUpStrategy,
)
from .errors import ValidationError
from .utils import due_date_for, months_between, tenor_months

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
MONTHS_PER_YEAR = Decimal("12")


def _is_finite(value) -> bool:
    try:
        return Decimal(value).is_finite()
    except (TypeError, ValueError, ArithmeticError):
        return False


def _require_finite(value, label: str, field: str, tier_indices=()) -> None:
    # NaN and Infinity must be caught before any ordering comparison
    if not _is_finite(value):
        raise ValidationError(
            f"{label} must be a finite number", field=field, tier_indices=tier_indices
        )


def _validate_tiers(strategy: StepUpStrategy) -> None:
    if not strategy.tiers:
        raise ValidationError("Step-up contracts need at least one tier", field="tiers")
    _require_finite(strategy.default_installment, "Default installment", "default_installment")
    if strategy.default_installment < 0:
        raise ValidationError(
            "Default installment cannot be negative", field="default_installment"
        )
    for idx, tier in enumerate(strategy.tiers):
        _require_finite(tier.amount, f"Step-up tier {idx + 1} amount", "tiers", (idx,))
        if tier.amount <= 0 or tier.start_month <= 0 or tier.end_month <= 0:
            raise ValidationError(
                f"Step-up tier {idx + 1} needs a positive amount and positive months",
                field="tiers",
                tier_indices=(idx,),
            )
        if tier.end_month < tier.start_month:
            raise ValidationError(
                f"Step-up tier {idx + 1} ends before it starts",
                field="tiers",
                tier_indices=(idx,),
            )
    tiers = strategy.tiers
    for i in range(len(tiers)):
        for j in range(i + 1, len(tiers)):
            a, b = tiers[i], tiers[j]
            if a.start_month <= b.end_month and b.start_month <= a.end_month:
                raise ValidationError(
                    f"Step-up tiers {i + 1} and {j + 1} overlap",
                    field="tiers",
                    tier_indices=(i, j),
                )


def validate_contract(contract: DebtContract) -> None:
    """Check the preconditions of ``build_schedule``.

    Raises ``ValidationError`` on the first violation. Nothing is coerced: an
    invalid tier rejects the whole contract.
    """
    _require_finite(contract.principal, "Principal", "principal")
    if contract.principal <= 0:
        raise ValidationError("Principal must be positive", field="principal")
    if contract.start_date >= contract.end_date:
        raise ValidationError("Start date must be before end date", field="end_date")
    if not 1 <= contract.due_day <= 31:
        raise ValidationError("Due day must be between 1 and 31", field="due_day")
    strategy = contract.strategy
    if isinstance(strategy, FixedStrategy):
        if strategy.installment is not None:
            _require_finite(strategy.installment, "Fixed installment", "installment")
        if strategy.installment is None or strategy.installment <= 0:
            raise ValidationError(
                "Fixed installment must be positive", field="installment"
            )
    elif isinstance(strategy, StepUpStrategy):
        _validate_tiers(strategy)
    else:
        raise ValidationError(f"Unknown interest strategy: {strategy!r}", field="strategy")


def installment_for_month(contract: DebtContract, month: int) -> Decimal:
    """Installment due in ``month`` (1-indexed from the contract start).

    Step-up months outside every tier pay the contract's default installment.
    """
    strategy = contract.strategy
    if isinstance(strategy, FixedStrategy):
        return strategy.installment
    for tier in strategy.tiers:
        if tier.covers(month):
            return tier.amount
    return strategy.default_installment


def total_liability(contract: DebtContract) -> Decimal:
    """Sum of every installment over the whole tenor."""
    months = tenor_months(contract.start_date, contract.end_date)
    return sum(
        (installment_for_month(contract, m) for m in range(1, months + 1)), ZERO
    )


def implied_annual_rate(contract: DebtContract) -> Decimal:
    """Flat annual rate (percent) implied by total overpayment vs. principal."""
    if contract.principal <= 0:
        return ZERO
    months = tenor_months(contract.start_date, contract.end_date)
    overpayment = max(ZERO, total_liability(contract) - contract.principal)
    yearly_interest = overpayment / Decimal(months) * MONTHS_PER_YEAR
    return yearly_interest / contract.principal * HUNDRED


def build_schedule(contract: DebtContract) -> List[InstallmentPeriod]:
    """Compute the installment schedule of a contract.

    Parameters
    ----------
    contract: DebtContract
        The contract to schedule. It is validated first.

    Returns
    -------
    List[InstallmentPeriod]
        One entry per month of tenor, periods 1..N in order. Every entry has
        status ``pending`` and no notes; stored values for those fields are
        merged back in by ``reconciler.reconcile``.

    Raises
    ------
    ValidationError
        If the contract violates a precondition.
    """
    validate_contract(contract)

    months = tenor_months(contract.start_date, contract.end_date)
    principal = contract.principal
    straight_line = principal / Decimal(months)

    schedule: List[InstallmentPeriod] = []
    repaid = ZERO
    for period in range(1, months + 1):
        amount = installment_for_month(contract, period)
        if period == months:
            # Last period takes whatever principal is left
            principal_part = principal - repaid
        else:
            principal_part = straight_line
        interest_part = amount - principal_part
        repaid += principal_part
        balance = max(ZERO, principal - repaid)
        schedule.append(
            InstallmentPeriod(
                debt_id=contract.id,
                period=period,
                due_date=due_date_for(contract.start_date, period, contract.due_day),
                amount=amount,
                principal_part=principal_part,
                interest_part=interest_part,
                remaining_balance=balance,
                status=InstallmentStatus.PENDING,
            )
        )

    logger.debug("Built %d installments for debt %s", len(schedule), contract.id)
    return schedule


build = build_schedule


def current_installment(contract: DebtContract, today: date) -> Decimal:
    """Installment due in the month containing ``today``."""
    month = months_between(contract.start_date, today) + 1
    return installment_for_month(contract, month)


def analyze_contract(contract: DebtContract, today: date) -> ContractAnalysis:
    """Summarize a contract's cost and straight-line progress as of ``today``."""
    months = tenor_months(contract.start_date, contract.end_date)
    liability = total_liability(contract)
    principal = contract.principal

    months_passed = min(max(0, months_between(contract.start_date, today)), months)
    remaining = max(ZERO, principal - principal / Decimal(months) * months_passed)
    progress = (principal - remaining) / principal * HUNDRED if principal > 0 else ZERO

    return ContractAnalysis(
        tenor_months=months,
        total_liability=liability,
        total_overpayment=max(ZERO, liability - principal),
        implied_annual_rate=implied_annual_rate(contract),
        months_passed=months_passed,
        current_remaining=remaining,
        progress=progress,
    )


def summarize_schedule(
    contract: DebtContract, schedule: List[InstallmentPeriod]
) -> Dict[str, object]:
    """Aggregate metrics for a (possibly reconciled) schedule."""
    paid = [p for p in schedule if p.status == InstallmentStatus.PAID]
    pending = [p for p in schedule if p.status == InstallmentStatus.PENDING]
    overdue = [p for p in schedule if p.status == InstallmentStatus.OVERDUE]
    liability = sum((p.amount for p in schedule), ZERO)
    paid_total = sum((p.amount for p in paid), ZERO)

    return {
        "debt_id": contract.id,
        "principal": float(contract.principal),
        "strategy": contract.interest_strategy.value,
        "tenor_months": len(schedule),
        "total_liability": float(liability),
        "total_interest": float(sum((p.interest_part for p in schedule), ZERO)),
        "implied_annual_rate": float(implied_annual_rate(contract)),
        "first_due_date": schedule[0].due_date.isoformat() if schedule else None,
        "last_due_date": schedule[-1].due_date.isoformat() if schedule else None,
        "paid_count": len(paid),
        "pending_count": len(pending),
        "overdue_count": len(overdue),
        "paid_total": float(paid_total),
        "outstanding_total": float(liability - paid_total),
    }
