"""Data models for the debt schedule generator.

This module defines dataclasses representing the entities the schedule
engine works with: the debt contract entered by the user (with its interest
strategy), the installment periods produced for it, and the analysis summary
shown next to a contract. Using dataclasses makes it easy to construct,
inspect, copy and serialize these structures.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union


class InterestStrategy(str, Enum):
    """How the monthly installment of a contract is declared."""

    FIXED = "Fixed"
    STEP_UP = "StepUp"


class InstallmentStatus(str, Enum):
    """Payment status of a single installment.

    The status is owned by whoever records payments. The schedule engine
    always emits ``PENDING`` and never changes a stored status.
    """

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class StepUpTier:
    """A range of months sharing the same installment amount.

    Attributes
    ----------
    start_month: int
        First month covered by the tier, 1-indexed from the contract start.
    end_month: int
        Last month covered by the tier (inclusive).
    amount: Decimal
        Installment due in every month of the range.
    """

    start_month: int
    end_month: int
    amount: Decimal

    def covers(self, month: int) -> bool:
        return self.start_month <= month <= self.end_month


@dataclass(frozen=True)
class FixedStrategy:
    """Every month pays the same ``installment``."""

    installment: Decimal

    kind = InterestStrategy.FIXED


@dataclass(frozen=True)
class StepUpStrategy:
    """Installments follow declared tiers.

    Months not covered by any tier pay ``default_installment``. The default
    is a single value for the whole contract, it does not follow the tiers.
    """

    tiers: List[StepUpTier]
    default_installment: Decimal = Decimal("0")

    kind = InterestStrategy.STEP_UP


Strategy = Union[FixedStrategy, StepUpStrategy]


@dataclass(frozen=True)
class DebtContract:
    """A loan or credit obligation as entered by the user.

    ``id`` is stable across edits so regenerated schedules can be matched to
    stored installments. ``due_day`` is the calendar day each installment is
    due; months shorter than ``due_day`` use their last day instead.
    """

    id: str
    principal: Decimal
    start_date: date
    end_date: date
    due_day: int
    strategy: Strategy
    name: Optional[str] = None

    @property
    def interest_strategy(self) -> InterestStrategy:
        return self.strategy.kind


@dataclass(frozen=True)
class InstallmentPeriod:
    """One scheduled monthly payment of a contract.

    ``amount``, ``due_date``, ``principal_part``, ``interest_part`` and
    ``remaining_balance`` are derived from the contract and recomputed on
    every save. ``status``, ``notes`` and ``id`` belong to the stored record
    and carry over when the schedule is regenerated.
    """

    debt_id: str
    period: int
    due_date: date
    amount: Decimal
    principal_part: Decimal
    interest_part: Decimal
    remaining_balance: Decimal
    status: InstallmentStatus = InstallmentStatus.PENDING
    notes: Optional[str] = None
    id: Optional[str] = None

    @property
    def key(self):
        return (self.debt_id, self.period)


@dataclass
class ContractAnalysis:
    """Headline numbers for a contract as of a given day."""

    tenor_months: int
    total_liability: Decimal
    total_overpayment: Decimal
    implied_annual_rate: Decimal  # percent
    months_passed: int
    current_remaining: Decimal
    progress: Decimal  # percent of principal repaid
