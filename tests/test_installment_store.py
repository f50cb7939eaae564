from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from debt_schedule.data_models import InstallmentStatus
from debt_schedule.engine import build_schedule
from debt_schedule.errors import StaleScheduleError, StatusTransitionError
from debt_schedule.reconciler import reconcile
from debt_schedule_web.installment_store import InstallmentStore


@pytest.fixture
def store(store_url):
    return InstallmentStore(store_url)


class TestReplaceSchedule:
    def test_empty_debt_is_version_zero(self, store):
        assert store.load("missing") == ([], 0)

    def test_first_write_assigns_ids(self, store, fixed_contract):
        stored, version = store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        assert version == 1
        assert all(inst.id for inst in stored)

        loaded, loaded_version = store.load("kpr-1")
        assert loaded_version == 1
        assert loaded == stored

    def test_decimals_round_trip_exactly(self, store, fixed_contract):
        contract = replace(fixed_contract, principal=Decimal("1000"))
        store.replace_schedule("kpr-1", build_schedule(contract), 0)
        loaded, _ = store.load("kpr-1")
        assert loaded[0].principal_part == Decimal("1000") / Decimal(12)

    def test_stale_version_rejected(self, store, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        with pytest.raises(StaleScheduleError) as exc:
            store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        assert exc.value.current_version == 1
        assert len(store.load("kpr-1")[0]) == 12

    def test_two_writers_with_same_version_only_one_wins(self, store, store_url, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        other = InstallmentStore(store_url)
        mine, my_version = store.load("kpr-1")
        theirs, their_version = other.load("kpr-1")
        assert my_version == their_version == 1

        mine[0] = replace(mine[0], notes="first writer")
        _, version = store.replace_schedule("kpr-1", mine, my_version)
        assert version == 2

        theirs[0] = replace(theirs[0], notes="second writer")
        with pytest.raises(StaleScheduleError) as exc:
            other.replace_schedule("kpr-1", theirs, their_version)
        assert exc.value.expected_version == 1
        assert exc.value.current_version == 2

        loaded, loaded_version = store.load("kpr-1")
        assert loaded_version == 2
        assert loaded[0].notes == "first writer"

    def test_two_first_writes_only_one_wins(self, store, store_url, fixed_contract):
        other = InstallmentStore(store_url)
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        with pytest.raises(StaleScheduleError):
            other.replace_schedule("kpr-1", build_schedule(replace(fixed_contract, due_day=20)), 0)
        loaded, version = store.load("kpr-1")
        assert version == 1
        assert loaded[0].due_date.day == 5

    def test_version_ahead_of_store_rejected(self, store, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        with pytest.raises(StaleScheduleError):
            store.replace_schedule("kpr-1", build_schedule(fixed_contract), 7)
        assert store.load("kpr-1")[1] == 1

    def test_rewrite_keeps_ids_and_drops_removed_periods(self, store, fixed_contract):
        stored, version = store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        shorter = replace(fixed_contract, end_date=fixed_contract.end_date.replace(year=2024, month=7))

        merged = reconcile(build_schedule(shorter), store.load("kpr-1")[0])
        restored, new_version = store.replace_schedule("kpr-1", merged, version)

        assert new_version == 2
        assert [r.id for r in restored] == [s.id for s in stored[:6]]
        assert len(store.load("kpr-1")[0]) == 6


class TestStatusAndNotes:
    def test_update_status_bumps_version(self, store, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        updated, version = store.update_status("kpr-1", 3, InstallmentStatus.PAID)
        assert updated.status == InstallmentStatus.PAID
        assert version == 2
        assert store.load("kpr-1")[0][2].status == InstallmentStatus.PAID

    def test_forbidden_transition(self, store, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        store.update_status("kpr-1", 1, InstallmentStatus.PAID)
        with pytest.raises(StatusTransitionError):
            store.update_status("kpr-1", 1, InstallmentStatus.OVERDUE)
        assert store.load("kpr-1")[0][0].status == InstallmentStatus.PAID

    def test_unknown_period(self, store, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        assert store.update_status("kpr-1", 99, InstallmentStatus.PAID) is None
        assert store.update_notes("kpr-1", 99, "x") is None

    def test_update_notes(self, store, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        updated, _ = store.update_notes("kpr-1", 2, "paid via app")
        assert updated.notes == "paid via app"
        cleared, _ = store.update_notes("kpr-1", 2, "")
        assert cleared.notes is None


class TestBulkStatus:
    def test_mark_paid_through(self, store, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        store.update_status("kpr-1", 2, InstallmentStatus.OVERDUE)

        result, version = store.mark_paid_through("kpr-1", 4)

        assert version == 3
        assert [r.status for r in result[:4]] == [InstallmentStatus.PAID] * 4
        assert all(r.status == InstallmentStatus.PENDING for r in result[4:])
        loaded, _ = store.load("kpr-1")
        assert loaded == result

    def test_reset_from(self, store, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        store.mark_paid_through("kpr-1", 6)

        result, version = store.reset_from("kpr-1", 3)

        assert version == 3
        assert [r.status for r in result[:6]] == (
            [InstallmentStatus.PAID] * 2 + [InstallmentStatus.PENDING] * 4
        )
        assert store.load("kpr-1")[0] == result

    def test_mark_overdue(self, store, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        store.update_status("kpr-1", 1, InstallmentStatus.PAID)

        result, version = store.mark_overdue("kpr-1", date(2024, 4, 1))

        assert version == 3
        assert [r.status for r in result[:4]] == [
            InstallmentStatus.PAID,
            InstallmentStatus.OVERDUE,
            InstallmentStatus.OVERDUE,
            InstallmentStatus.PENDING,
        ]

    def test_no_change_keeps_version(self, store, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        result, version = store.mark_overdue("kpr-1", date(2023, 1, 1))
        assert version == 1
        assert all(r.status == InstallmentStatus.PENDING for r in result)
        assert store.load("kpr-1")[1] == 1

    def test_unknown_debt_or_period(self, store, fixed_contract):
        store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
        assert store.mark_paid_through("kpr-1", 99) is None
        assert store.reset_from("kpr-1", 0) is None
        assert store.mark_overdue("missing", date(2030, 1, 1)) is None
        assert store.load("kpr-1")[1] == 1
        assert store.load("missing") == ([], 0)


def test_delete_debt(store, fixed_contract, step_up_contract):
    store.replace_schedule("kpr-1", build_schedule(fixed_contract), 0)
    store.replace_schedule("kta-7", build_schedule(step_up_contract), 0)
    store.delete_debt("kpr-1")
    assert store.load("kpr-1") == ([], 0)
    assert len(store.load("kta-7")[0]) == 6
