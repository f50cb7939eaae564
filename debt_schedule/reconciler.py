"""Merge a regenerated schedule with the installments already stored for it.

Each time a contract is saved its schedule is rebuilt from scratch. The
stored installments carry state the engine knows nothing about: payment
status, notes and the record id. ``reconcile`` keeps that state for every
period that still exists, takes all amounts and dates from the fresh
schedule, drops periods past the new tenor and appends new ones as pending.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Tuple

from .data_models import InstallmentPeriod, InstallmentStatus
from .errors import ScheduleIntegrityError

logger = logging.getLogger(__name__)


def check_contiguous(schedule: List[InstallmentPeriod]) -> None:
    """Raise ``ScheduleIntegrityError`` unless ``schedule`` is periods 1..N of one debt."""
    debt_ids = {p.debt_id for p in schedule}
    if len(debt_ids) > 1:
        raise ScheduleIntegrityError(f"Schedule mixes debts: {sorted(debt_ids)}")
    periods = [p.period for p in schedule]
    if periods != list(range(1, len(schedule) + 1)):
        raise ScheduleIntegrityError(f"Schedule periods are not contiguous: {periods}")


def _index_existing(
    existing: Iterable[InstallmentPeriod],
) -> Dict[Tuple[str, int], InstallmentPeriod]:
    """Map stored installments by ``(debt_id, period)``; the last duplicate wins."""
    mapping: Dict[Tuple[str, int], InstallmentPeriod] = {}
    for inst in existing:
        if inst.key in mapping:
            logger.warning(
                "Duplicate stored installment for debt %s period %d; keeping the last one",
                inst.debt_id,
                inst.period,
            )
        mapping[inst.key] = inst
    return mapping


def reconcile(
    candidate: List[InstallmentPeriod], existing: Iterable[InstallmentPeriod]
) -> List[InstallmentPeriod]:
    """Return the installment set to store for a freshly built schedule.

    Parameters
    ----------
    candidate: List[InstallmentPeriod]
        Output of ``engine.build_schedule`` for the saved contract.
    existing: Iterable[InstallmentPeriod]
        Installments previously stored for the same contract. Records for
        other debts never match and are ignored.

    Returns
    -------
    List[InstallmentPeriod]
        Exactly one record per candidate period, sorted by period. Records
        matching a stored ``(debt_id, period)`` keep its ``status``, ``notes``
        and ``id``; all other fields come from ``candidate``. New periods are
        pending.
    """
    ordered = sorted(candidate, key=lambda p: p.period)
    check_contiguous(ordered)
    stored = _index_existing(existing)

    merged: List[InstallmentPeriod] = []
    for fresh in ordered:
        previous = stored.pop(fresh.key, None)
        if previous is None:
            merged.append(replace(fresh, status=InstallmentStatus.PENDING, notes=None, id=None))
        else:
            merged.append(
                replace(fresh, status=previous.status, notes=previous.notes, id=previous.id)
            )

    dropped = [key for key in stored if merged and key[0] == merged[0].debt_id]
    if dropped:
        logger.info(
            "Dropping %d stored installments beyond period %d for debt %s",
            len(dropped),
            len(merged),
            merged[0].debt_id,
        )
    return merged
