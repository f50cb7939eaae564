"""Persistence layer for debt installments.

This module stores reconciled installment schedules in a relational database
through SQLAlchemy. It defaults to SQLite for local development, but accepts
any SQLAlchemy-compatible URL (e.g. PostgreSQL/MySQL).

Every debt carries a version counter that is bumped on each write. Writers
pass the version they read; a mismatch means someone else saved in between
and the write is rejected with ``StaleScheduleError`` instead of silently
overwriting payment status.

The version is claimed with a single conditional ``UPDATE`` (or the first
``INSERT``) before any installment row is touched, so two writers holding
the same version cannot both succeed.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker

from debt_schedule.data_models import InstallmentPeriod, InstallmentStatus
from debt_schedule.errors import StaleScheduleError
from debt_schedule.status import mark_overdue, mark_paid_through, reset_from, transition

logger = logging.getLogger(__name__)

Base = declarative_base()


class InstallmentModel(Base):
    __tablename__ = "debt_installments"
    __table_args__ = (UniqueConstraint("debt_id", "period", name="uq_debt_period"),)

    id = Column(String(64), primary_key=True)
    debt_id = Column(String(64), index=True, nullable=False)
    period = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    # Decimals are kept as text so no precision is lost on SQLite
    amount = Column(String(64), nullable=False)
    principal_part = Column(String(64), nullable=False)
    interest_part = Column(String(64), nullable=False)
    remaining_balance = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default=InstallmentStatus.PENDING.value)
    notes = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ScheduleVersionModel(Base):
    __tablename__ = "debt_schedule_versions"

    debt_id = Column(String(64), primary_key=True)
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class InstallmentStore:
    """Database-backed installment store."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def load(self, debt_id: str) -> Tuple[List[InstallmentPeriod], int]:
        """Return the stored installments of ``debt_id`` and their version."""
        with self._session_factory() as session:
            rows: Iterable[InstallmentModel] = session.execute(
                select(InstallmentModel)
                .where(InstallmentModel.debt_id == debt_id)
                .order_by(InstallmentModel.period.asc())
            ).scalars()
            installments = [self._to_installment(row) for row in rows]
            return installments, self._current_version(session, debt_id)

    def replace_schedule(
        self, debt_id: str, installments: List[InstallmentPeriod], expected_version: int
    ) -> Tuple[List[InstallmentPeriod], int]:
        """Replace every stored installment of ``debt_id`` in one transaction.

        Records without an ``id`` get a new one. Returns the stored records and
        the new version.
        """
        stored = [inst if inst.id else self._with_new_id(inst) for inst in installments]
        with self._session_factory() as session:
            new_version = self._claim_version(session, debt_id, expected_version)
            session.execute(
                InstallmentModel.__table__.delete().where(InstallmentModel.debt_id == debt_id)
            )
            session.add_all(self._to_model(inst) for inst in stored)
            session.commit()
        logger.info("Stored %d installments for debt %s at version %d", len(stored), debt_id, new_version)
        return stored, new_version

    def update_status(
        self, debt_id: str, period: int, new_status: InstallmentStatus
    ) -> Optional[Tuple[InstallmentPeriod, int]]:
        """Move one installment to ``new_status``.

        Returns ``None`` when the period does not exist. Raises
        ``StatusTransitionError`` for a forbidden change.
        """
        with self._session_factory() as session:
            new_version = self._bump(session, debt_id)
            row = self._find(session, debt_id, period)
            if row is None:
                session.rollback()
                return None
            updated = transition(self._to_installment(row), new_status)
            row.status = updated.status.value
            session.commit()
            return updated, new_version

    def update_notes(
        self, debt_id: str, period: int, notes: Optional[str]
    ) -> Optional[Tuple[InstallmentPeriod, int]]:
        with self._session_factory() as session:
            new_version = self._bump(session, debt_id)
            row = self._find(session, debt_id, period)
            if row is None:
                session.rollback()
                return None
            row.notes = notes or None
            session.commit()
            return self._to_installment(row), new_version

    def mark_paid_through(
        self, debt_id: str, period: int
    ) -> Optional[Tuple[List[InstallmentPeriod], int]]:
        """Mark every unpaid installment up to and including ``period`` as paid."""
        return self._apply_bulk(
            debt_id, period, lambda items: mark_paid_through(items, debt_id, period)
        )

    def reset_from(
        self, debt_id: str, period: int
    ) -> Optional[Tuple[List[InstallmentPeriod], int]]:
        """Move every paid installment from ``period`` onwards back to pending."""
        return self._apply_bulk(debt_id, period, lambda items: reset_from(items, debt_id, period))

    def mark_overdue(
        self, debt_id: str, today: date
    ) -> Optional[Tuple[List[InstallmentPeriod], int]]:
        """Flag pending installments of ``debt_id`` due before ``today``."""
        return self._apply_bulk(debt_id, None, lambda items: mark_overdue(items, today))

    def delete_debt(self, debt_id: str) -> None:
        with self._session_factory() as session:
            session.execute(
                InstallmentModel.__table__.delete().where(InstallmentModel.debt_id == debt_id)
            )
            session.execute(
                ScheduleVersionModel.__table__.delete().where(ScheduleVersionModel.debt_id == debt_id)
            )
            session.commit()

    @staticmethod
    def _find(session, debt_id: str, period: int) -> Optional[InstallmentModel]:
        return session.execute(
            select(InstallmentModel).where(
                InstallmentModel.debt_id == debt_id, InstallmentModel.period == period
            )
        ).scalar_one_or_none()

    def _apply_bulk(
        self,
        debt_id: str,
        period: Optional[int],
        action: Callable[[List[InstallmentPeriod]], List[InstallmentPeriod]],
    ) -> Optional[Tuple[List[InstallmentPeriod], int]]:
        with self._session_factory() as session:
            new_version = self._bump(session, debt_id)
            rows = list(
                session.execute(
                    select(InstallmentModel)
                    .where(InstallmentModel.debt_id == debt_id)
                    .order_by(InstallmentModel.period.asc())
                ).scalars()
            )
            if not rows or (period is not None and all(row.period != period for row in rows)):
                session.rollback()
                return None
            before = [self._to_installment(row) for row in rows]
            after = action(before)
            changed = 0
            for row, old, new in zip(rows, before, after):
                if new.status != old.status:
                    row.status = new.status.value
                    changed += 1
            if not changed:
                # nothing moved, so the version stays where it was
                session.rollback()
                return before, self._current_version(session, debt_id)
            session.commit()
        logger.info("Changed status of %d installments of debt %s", changed, debt_id)
        return after, new_version

    @staticmethod
    def _current_version(session, debt_id: str) -> int:
        row = session.get(ScheduleVersionModel, debt_id)
        return row.version if row else 0

    def _claim_version(self, session, debt_id: str, expected_version: int) -> int:
        """Move the version of ``debt_id`` from ``expected_version`` to the next one.

        The compare and the increment are one statement, so a concurrent
        writer holding the same version finds no matching row and is rejected.
        """
        if expected_version == 0:
            session.add(ScheduleVersionModel(debt_id=debt_id, version=1))
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                self._reject_stale(session, debt_id, expected_version)
            return 1
        result = session.execute(
            update(ScheduleVersionModel.__table__)
            .where(
                ScheduleVersionModel.debt_id == debt_id,
                ScheduleVersionModel.version == expected_version,
            )
            .values(version=expected_version + 1, updated_at=datetime.utcnow())
        )
        if result.rowcount != 1:
            session.rollback()
            self._reject_stale(session, debt_id, expected_version)
        return expected_version + 1

    def _reject_stale(self, session, debt_id: str, expected_version: int) -> None:
        current = self._current_version(session, debt_id)
        logger.warning(
            "Rejected stale schedule write for debt %s (expected version %d, found %d)",
            debt_id,
            expected_version,
            current,
        )
        raise StaleScheduleError(debt_id, expected_version, current)

    @staticmethod
    def _bump(session, debt_id: str) -> int:
        # Taking the version row first serialises writers of the same debt
        result = session.execute(
            update(ScheduleVersionModel.__table__)
            .where(ScheduleVersionModel.debt_id == debt_id)
            .values(version=ScheduleVersionModel.version + 1, updated_at=datetime.utcnow())
        )
        if result.rowcount == 0:
            session.add(ScheduleVersionModel(debt_id=debt_id, version=1))
            session.flush()
            return 1
        return session.execute(
            select(ScheduleVersionModel.version).where(ScheduleVersionModel.debt_id == debt_id)
        ).scalar_one()

    @staticmethod
    def _with_new_id(inst: InstallmentPeriod) -> InstallmentPeriod:
        return replace(inst, id=uuid4().hex)

    @staticmethod
    def _to_model(inst: InstallmentPeriod) -> InstallmentModel:
        return InstallmentModel(
            id=inst.id,
            debt_id=inst.debt_id,
            period=inst.period,
            due_date=inst.due_date,
            amount=str(inst.amount),
            principal_part=str(inst.principal_part),
            interest_part=str(inst.interest_part),
            remaining_balance=str(inst.remaining_balance),
            status=inst.status.value,
            notes=inst.notes,
        )

    @staticmethod
    def _to_installment(row: InstallmentModel) -> InstallmentPeriod:
        return InstallmentPeriod(
            debt_id=row.debt_id,
            period=row.period,
            due_date=row.due_date,
            amount=Decimal(row.amount),
            principal_part=Decimal(row.principal_part),
            interest_part=Decimal(row.interest_part),
            remaining_balance=Decimal(row.remaining_balance),
            status=InstallmentStatus(row.status),
            notes=row.notes,
            id=row.id,
        )


def create_store_from_env(url: str | None) -> InstallmentStore:
    return InstallmentStore(url or "sqlite:///debt_schedule.sqlite3")
