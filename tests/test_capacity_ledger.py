# tests/test_capacity_ledger.py
"""Unit tests for the per-lot capacity ledger."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import MagicMock, patch
from orgpark.services import capacity_ledger
from orgpark.utils.exceptions import (
    BelowOccupied, CapacityExhausted, LedgerInconsistency, LotNotFound, OrganizationNotFound, ValidationError,
)


class TestReserveRelease:
    def test_reserve_decrements_available(self, db, make_org, make_lot):
        lot = make_lot(make_org(), total=3)
        with capacity_ledger.lot_transaction(db, lot_id=lot.id):
            capacity_ledger.reserve(db, lot.id)
        assert capacity_ledger.load_lot(db, lot.id).available_slots == 2

    def test_reserve_on_full_lot_raises(self, db, make_org, make_lot):
        lot = make_lot(make_org(), total=1, available=0)
        with pytest.raises(CapacityExhausted):
            with capacity_ledger.lot_transaction(db, lot_id=lot.id):
                capacity_ledger.reserve(db, lot.id)
        assert capacity_ledger.load_lot(db, lot.id).available_slots == 0

    def test_release_increments_available(self, db, make_org, make_lot):
        lot = make_lot(make_org(), total=2, available=0)
        with capacity_ledger.lot_transaction(db, lot_id=lot.id):
            capacity_ledger.release(db, lot.id)
        assert capacity_ledger.load_lot(db, lot.id).available_slots == 1

    def test_release_beyond_total_is_refused_not_clamped(self, db, make_org, make_lot):
        lot = make_lot(make_org(), total=2)
        with pytest.raises(LedgerInconsistency):
            with capacity_ledger.lot_transaction(db, lot_id=lot.id):
                capacity_ledger.release(db, lot.id)
        assert capacity_ledger.load_lot(db, lot.id).available_slots == 2

    def test_failure_rolls_back_whole_unit(self, db, make_org, make_lot):
        lot = make_lot(make_org(), total=2)
        with pytest.raises(RuntimeError):
            with capacity_ledger.lot_transaction(db, lot_id=lot.id):
                capacity_ledger.reserve(db, lot.id)
                raise RuntimeError("boom")
        assert capacity_ledger.load_lot(db, lot.id).available_slots == 2

    def test_unknown_lot(self, db):
        with pytest.raises(LotNotFound):
            capacity_ledger.load_lot(db, 999)


class TestRowLock:
    def test_lot_row_locked_before_body_runs(self):
        db = MagicMock()
        calls = []
        with patch("orgpark.services.capacity_ledger.load_lot",
                   side_effect=lambda *a, **kw: calls.append(("lock", kw))) as load_lot:
            with capacity_ledger.lot_transaction(db, lot_id=7):
                calls.append(("body", None))
        load_lot.assert_called_once_with(db, 7, for_update=True)
        assert [c[0] for c in calls] == ["lock", "body"]
        db.commit.assert_called_once()

    def test_missing_lot_rolls_back_without_running_body(self, db):
        ran = []
        with pytest.raises(LotNotFound):
            with capacity_ledger.lot_transaction(db, lot_id=999):
                ran.append(True)
        assert ran == []

    def test_organization_row_locked_for_lotless_work(self):
        db = MagicMock()
        with capacity_ledger.lot_transaction(db, organization_id=3):
            pass
        db.query.return_value.filter.return_value.with_for_update.return_value.first.assert_called_once()
        db.commit.assert_called_once()


class TestResize:
    def test_grow_keeps_occupied(self, db, make_org, make_lot):
        lot = make_lot(make_org(), total=3, available=1)
        with capacity_ledger.lot_transaction(db, lot_id=lot.id):
            capacity_ledger.resize(db, lot.id, 5)
        lot = capacity_ledger.load_lot(db, lot.id)
        assert (lot.total_slots, lot.available_slots) == (5, 3)

    def test_shrink_below_occupied_rejected(self, db, make_org, make_lot):
        lot = make_lot(make_org(), total=3, available=1)
        with pytest.raises(BelowOccupied):
            with capacity_ledger.lot_transaction(db, lot_id=lot.id):
                capacity_ledger.resize(db, lot.id, 1)
        lot = capacity_ledger.load_lot(db, lot.id)
        assert (lot.total_slots, lot.available_slots) == (3, 1)

    def test_negative_total_rejected(self, db, make_org, make_lot):
        lot = make_lot(make_org(), total=3)
        with pytest.raises(ValidationError):
            capacity_ledger.resize(db, lot.id, -1)


class TestLotAdministration:
    def test_open_lot_starts_fully_available(self, db, make_org):
        org = make_org()
        with capacity_ledger.lot_transaction(db, organization_id=org.id):
            lot = capacity_ledger.open_lot(db, org.id, "East", 4, priority_order=2)
        lot = capacity_ledger.load_lot(db, lot.id)
        assert (lot.total_slots, lot.available_slots, lot.priority_order) == (4, 4, 2)

    def test_open_lot_duplicate_name_rejected(self, db, make_org, make_lot):
        org = make_org()
        make_lot(org, name="North")
        with pytest.raises(ValidationError):
            capacity_ledger.open_lot(db, org.id, "North", 4)

    def test_open_lot_unknown_org(self, db):
        with pytest.raises(OrganizationNotFound):
            capacity_ledger.open_lot(db, 42, "East", 4)

    def test_deactivate_requires_empty_lot(self, db, make_org, make_lot):
        lot = make_lot(make_org(), total=2, available=1)
        with pytest.raises(BelowOccupied):
            capacity_ledger.deactivate(db, lot.id)

    def test_organization_capacity_sums_active_lots(self, db, make_org, make_lot):
        org = make_org()
        make_lot(org, name="A", total=4, available=1)
        make_lot(org, name="B", total=6, available=6)
        closed = make_lot(org, name="C", total=10)
        with capacity_ledger.lot_transaction(db, lot_id=closed.id):
            capacity_ledger.deactivate(db, closed.id)

        cap = capacity_ledger.organization_capacity(db, org.id)
        assert cap["total_slots"] == 10
        assert cap["available_slots"] == 7
        assert cap["occupied_slots"] == 3
        assert cap["occupancy_percent"] == 30.0

    def test_reconcile_rewrites_cached_counters(self, db, make_org, make_lot):
        org = make_org()
        make_lot(org, name="A", total=4, available=2)
        with capacity_ledger.lot_transaction(db, organization_id=org.id):
            org = capacity_ledger.reconcile_organization(db, org.id)
        assert (org.total_slots, org.available_slots) == (4, 2)
