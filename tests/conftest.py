from datetime import date
from decimal import Decimal

import pytest

from debt_schedule.data_models import DebtContract, FixedStrategy, StepUpStrategy, StepUpTier


@pytest.fixture
def fixed_contract():
    """12,000,000 over 12 months at 1,100,000 a month (10% implied)."""
    return DebtContract(
        id="kpr-1",
        principal=Decimal("12000000"),
        start_date=date(2024, 1, 1),
        end_date=date(2025, 1, 1),
        due_day=5,
        strategy=FixedStrategy(installment=Decimal("1100000")),
    )


@pytest.fixture
def step_up_contract():
    """6,000,000 over 6 months; months 1-3 pay 900,000, the rest the default."""
    return DebtContract(
        id="kta-7",
        principal=Decimal("6000000"),
        start_date=date(2024, 1, 1),
        end_date=date(2024, 7, 1),
        due_day=10,
        strategy=StepUpStrategy(
            tiers=[StepUpTier(1, 3, Decimal("900000"))],
            default_installment=Decimal("1100000"),
        ),
    )


@pytest.fixture
def store_url(tmp_path):
    return f"sqlite:///{tmp_path / 'installments.sqlite3'}"
