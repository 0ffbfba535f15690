# orgpark/services/slot_assignor.py
"""
Slot Assignor. Picks a lot (priority order, then lowest id) and the lowest
free slot number inside it.

Slot occupancy is derived from bookings, not stored: a slot is taken while a
confirmed or active booking holds it. Capacity is reserved first, then the slot
scan runs inside the same per-lot critical section, so two concurrent
assignments can never pick the same number.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from orgpark.models.booking import Booking, LIVE_STATUSES
from orgpark.models.parking_lot import ParkingLot
from orgpark.services import capacity_ledger
from orgpark.utils.exceptions import AssignmentInconsistency, CapacityExhausted, NoCapacity
from orgpark.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Assignment:
    lot: ParkingLot
    slot_number: int

    @property
    def lot_id(self) -> int:
        return self.lot.id

    @property
    def slot_label(self) -> str:
        return self.lot.slot_label(self.slot_number)


def candidate_lots(db: Session, organization_id: int) -> list:
    return (
        db.query(ParkingLot)
        .filter(ParkingLot.organization_id == organization_id, ParkingLot.is_active.is_(True))
        .order_by(ParkingLot.priority_order.asc(), ParkingLot.id.asc())
        .all()
    )


def taken_slots(db: Session, lot_id: int) -> set:
    rows = (
        db.query(Booking.slot_number)
        .filter(Booking.lot_id == lot_id, Booking.booking_status.in_(LIVE_STATUSES))
        .all()
    )
    return {row[0] for row in rows}


def lowest_free_slot(total_slots: int, taken: set) -> Optional[int]:
    for slot_number in range(1, total_slots + 1):
        if slot_number not in taken:
            return slot_number
    return None


@contextmanager
def assign(db: Session, organization_id: int, start: datetime, end: datetime):
    """
    Context manager yielding an Assignment while the chosen lot is locked.

    The caller creates its booking inside the with-block; leaving it normally
    commits reservation and booking together, raising rolls both back.

        with slot_assignor.assign(db, org_id, start, end) as assignment:
            ...
    """
    lots = candidate_lots(db, organization_id)
    if not lots:
        raise NoCapacity("No parking lots configured for this organization.")

    for lot in lots:
        if lot.available_slots <= 0:
            logger.debug(f"[ASSIGN] skip lot={lot.id} (full)")
            continue

        with capacity_ledger.lot_transaction(db, lot_id=lot.id):
            try:
                lot = capacity_ledger.reserve(db, lot.id)
            except CapacityExhausted:
                # Lost the race for this lot's last slot; try the next one.
                continue

            slot_number = lowest_free_slot(lot.total_slots, taken_slots(db, lot.id))
            if slot_number is None:
                capacity_ledger.release(db, lot.id)
                logger.critical(
                    f"[ASSIGN] lot={lot.id} reported {lot.available_slots + 1} free slots "
                    f"but every slot number is held by a live booking"
                )
                raise AssignmentInconsistency(f"Lot {lot.id} capacity counter disagrees with its bookings")

            logger.info(
                f"[ASSIGN] org={organization_id} window={start:%Y-%m-%d %H:%M}→{end:%H:%M} "
                f"→ lot={lot.id} slot={slot_number}"
            )
            yield Assignment(lot=lot, slot_number=slot_number)
            return

    raise NoCapacity()
