# tests/test_slot_assignor.py
"""Unit tests for lot / slot selection."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import datetime, timedelta
from orgpark.models.booking import Booking, CONFIRMED, CANCELLED
from orgpark.services import capacity_ledger, slot_assignor
from orgpark.utils.exceptions import AssignmentInconsistency, NoCapacity

NOW = datetime(2026, 3, 2, 9, 0, 0)
START, END = NOW + timedelta(hours=1), NOW + timedelta(hours=3)


def add_booking(db, lot, user, slot_number, status=CONFIRMED):
    booking = Booking(user_id=user.id, organization_id=lot.organization_id, lot_id=lot.id,
                      slot_number=slot_number, slot_label=lot.slot_label(slot_number),
                      vehicle_number="KA01AB1234", booking_start_time=START, booking_end_time=END,
                      duration_hours=2, booking_status=status, created_at=NOW)
    db.add(booking)
    db.commit()
    return booking


class TestLowestFreeSlot:
    def test_picks_lowest_gap(self):
        assert slot_assignor.lowest_free_slot(5, {1, 2, 4}) == 3

    def test_none_when_all_taken(self):
        assert slot_assignor.lowest_free_slot(2, {1, 2}) is None

    def test_zero_capacity(self):
        assert slot_assignor.lowest_free_slot(0, set()) is None


class TestAssign:
    def test_fills_highest_priority_lot_first(self, db, make_org, make_lot):
        org = make_org()
        make_lot(org, name="Overflow", total=5, priority=2)
        main = make_lot(org, name="Main", total=5, priority=1)

        with slot_assignor.assign(db, org.id, START, END) as assignment:
            pass
        assert assignment.lot_id == main.id
        assert assignment.slot_number == 1
        assert assignment.slot_label == "Main-1"
        assert capacity_ledger.load_lot(db, main.id).available_slots == 4

    def test_equal_priority_breaks_tie_on_lowest_id(self, db, make_org, make_lot):
        org = make_org()
        first = make_lot(org, name="A", total=1, priority=1)
        make_lot(org, name="B", total=1, priority=1)
        with slot_assignor.assign(db, org.id, START, END) as assignment:
            pass
        assert assignment.lot_id == first.id

    def test_spills_over_to_next_lot_when_full(self, db, make_org, make_lot):
        org = make_org()
        make_lot(org, name="Main", total=1, priority=1, available=0)
        overflow = make_lot(org, name="Overflow", total=2, priority=2)
        with slot_assignor.assign(db, org.id, START, END) as assignment:
            pass
        assert assignment.lot_id == overflow.id

    def test_skips_slots_held_by_live_bookings(self, db, make_org, make_lot, make_user):
        org = make_org()
        lot = make_lot(org, total=3, available=2)
        add_booking(db, lot, make_user(), 1)

        with slot_assignor.assign(db, org.id, START, END) as assignment:
            pass
        assert assignment.slot_number == 2

    def test_cancelled_booking_frees_its_slot_number(self, db, make_org, make_lot, make_user):
        org = make_org()
        lot = make_lot(org, total=2)
        add_booking(db, lot, make_user(), 1, status=CANCELLED)

        with slot_assignor.assign(db, org.id, START, END) as assignment:
            pass
        assert assignment.slot_number == 1

    def test_no_lots_raises_no_capacity(self, db, make_org):
        with pytest.raises(NoCapacity):
            with slot_assignor.assign(db, make_org().id, START, END):
                pass

    def test_all_lots_full_raises_no_capacity(self, db, make_org, make_lot):
        org = make_org()
        make_lot(org, name="A", total=1, available=0)
        make_lot(org, name="B", total=1, available=0, priority=2)
        with pytest.raises(NoCapacity):
            with slot_assignor.assign(db, org.id, START, END):
                pass

    def test_counter_disagreeing_with_bookings_fails_closed(self, db, make_org, make_lot, make_user):
        org = make_org()
        # Counter says one slot is free but the only slot is held.
        lot = make_lot(org, total=1, available=1)
        add_booking(db, lot, make_user(), 1)

        with pytest.raises(AssignmentInconsistency):
            with slot_assignor.assign(db, org.id, START, END):
                pass
        assert capacity_ledger.load_lot(db, lot.id).available_slots == 1

    def test_error_inside_block_rolls_back_reservation(self, db, make_org, make_lot):
        org = make_org()
        lot = make_lot(org, total=2)
        with pytest.raises(RuntimeError):
            with slot_assignor.assign(db, org.id, START, END):
                raise RuntimeError("booking insert failed")
        assert capacity_ledger.load_lot(db, lot.id).available_slots == 2
