"""Installment status changes.

Statuses move ``pending -> paid``, ``pending -> overdue``, ``overdue -> paid``
and ``paid -> pending`` (a manual reset). Setting the current status again is
a no-op. Bulk actions follow the calendar view's cascade: marking period N
paid marks every earlier period of the same debt paid too, and resetting
period N resets every later one.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Dict, FrozenSet, Iterable, List

from .data_models import InstallmentPeriod, InstallmentStatus
from .errors import StatusTransitionError

PENDING = InstallmentStatus.PENDING
PAID = InstallmentStatus.PAID
OVERDUE = InstallmentStatus.OVERDUE

ALLOWED_TRANSITIONS: Dict[InstallmentStatus, FrozenSet[InstallmentStatus]] = {
    PENDING: frozenset({PAID, OVERDUE}),
    OVERDUE: frozenset({PAID}),
    PAID: frozenset({PENDING}),
}


def can_transition(current: InstallmentStatus, new: InstallmentStatus) -> bool:
    return current == new or new in ALLOWED_TRANSITIONS[current]


def transition(installment: InstallmentPeriod, new_status: InstallmentStatus) -> InstallmentPeriod:
    """Return a copy of ``installment`` with ``new_status``.

    Raises ``StatusTransitionError`` for a change the state machine forbids.
    """
    new_status = InstallmentStatus(new_status)
    if installment.status == new_status:
        return installment
    if not can_transition(installment.status, new_status):
        raise StatusTransitionError(
            f"Cannot move period {installment.period} of debt {installment.debt_id} "
            f"from {installment.status.value} to {new_status.value}"
        )
    return replace(installment, status=new_status)


def mark_overdue(installments: Iterable[InstallmentPeriod], today: date) -> List[InstallmentPeriod]:
    """Flag pending installments whose due date is before ``today``."""
    result = []
    for inst in installments:
        if inst.status == PENDING and inst.due_date < today:
            inst = transition(inst, OVERDUE)
        result.append(inst)
    return result


def mark_paid_through(
    installments: Iterable[InstallmentPeriod], debt_id: str, period: int
) -> List[InstallmentPeriod]:
    """Mark periods 1..``period`` of ``debt_id`` paid; other records pass through."""
    result = []
    for inst in installments:
        if inst.debt_id == debt_id and inst.period <= period:
            inst = transition(inst, PAID)
        result.append(inst)
    return result


def reset_from(
    installments: Iterable[InstallmentPeriod], debt_id: str, period: int
) -> List[InstallmentPeriod]:
    """Return paid periods ``period``.. of ``debt_id`` to pending.

    Overdue and pending periods are left alone.
    """
    result = []
    for inst in installments:
        if inst.debt_id == debt_id and inst.period >= period and inst.status == PAID:
            inst = transition(inst, PENDING)
        result.append(inst)
    return result
