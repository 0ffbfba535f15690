# orgpark/services/capacity_ledger.py
"""
Capacity Ledger — per-lot slot counters.

Every counter change is a conditional UPDATE (available_slots > 0 for reserve,
available_slots < total_slots for release), executed inside lot_transaction(),
which holds an in-process lock for the lot and commits or rolls back the whole
unit of work. The lot row is also locked with SELECT ... FOR UPDATE so several
backend processes on PostgreSQL serialise on the same row.

Organization counters are a cached projection: organization_capacity() sums
active lots on read, reconcile_organization() rewrites the cache.
"""

from contextlib import contextmanager
from threading import Lock

from sqlalchemy import func
from sqlalchemy.orm import Session

from orgpark.models.booking import Booking, LIVE_STATUSES
from orgpark.models.organization import Organization
from orgpark.models.parking_lot import ParkingLot
from orgpark.utils.clock import utcnow
from orgpark.utils.exceptions import (
    BelowOccupied, CapacityExhausted, LedgerInconsistency, LotNotFound,
    OrganizationNotFound, ValidationError,
)
from orgpark.utils.logger import get_logger

logger = get_logger(__name__)

_registry_lock = Lock()
_locks: dict = {}


def _lock_for(key) -> Lock:
    with _registry_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = Lock()
        return lock


def _lock_row(db: Session, lot_id: int = None, organization_id: int = None):
    if lot_id is not None:
        load_lot(db, lot_id, for_update=True)
    elif organization_id is not None:
        db.query(Organization).filter(Organization.id == organization_id).with_for_update().first()


@contextmanager
def lot_transaction(db: Session, lot_id: int = None, organization_id: int = None):
    """
    Serialise a unit of work on one lot and make it atomic.
    Legacy bookings without a lot serialise on their organization instead.

    The in-process lock covers threads of one worker; the row lock taken
    before the body runs covers other workers, so every booking re-read inside
    the block sees the state left by the previous holder.
    Commits on success, rolls back on any exception.
    """
    key = ("lot", lot_id) if lot_id is not None else ("org", organization_id)
    with _lock_for(key):
        try:
            _lock_row(db, lot_id, organization_id)
            yield
            db.commit()
        except Exception:
            db.rollback()
            raise


def load_lot(db: Session, lot_id: int, for_update: bool = False) -> ParkingLot:
    """Fresh read of a lot row, bypassing any stale identity-map copy."""
    q = db.query(ParkingLot).filter(ParkingLot.id == lot_id).populate_existing()
    if for_update:
        q = q.with_for_update()
    lot = q.first()
    if not lot:
        raise LotNotFound(f"Parking lot {lot_id} not found")
    return lot


def reserve(db: Session, lot_id: int) -> ParkingLot:
    """Take one slot of capacity. Raises CapacityExhausted when none is left."""
    load_lot(db, lot_id, for_update=True)
    updated = (
        db.query(ParkingLot)
        .filter(ParkingLot.id == lot_id, ParkingLot.available_slots > 0)
        .update({ParkingLot.available_slots: ParkingLot.available_slots - 1,
                 ParkingLot.updated_at: utcnow()},
                synchronize_session=False)
    )
    if not updated:
        raise CapacityExhausted(f"No parking slots left in lot {lot_id}")

    lot = load_lot(db, lot_id)
    logger.info(f"[LEDGER] reserve lot={lot_id} → {lot.available_slots}/{lot.total_slots}")
    return lot


def release(db: Session, lot_id: int) -> ParkingLot:
    """
    Give one slot of capacity back. A release that would push available_slots
    past total_slots is an invariant violation: logged and raised, never clamped.
    """
    lot = load_lot(db, lot_id, for_update=True)
    updated = (
        db.query(ParkingLot)
        .filter(ParkingLot.id == lot_id, ParkingLot.available_slots < ParkingLot.total_slots)
        .update({ParkingLot.available_slots: ParkingLot.available_slots + 1,
                 ParkingLot.updated_at: utcnow()},
                synchronize_session=False)
    )
    if not updated:
        logger.critical(
            f"[LEDGER] release beyond capacity on lot={lot_id} "
            f"({lot.available_slots}/{lot.total_slots}), refusing"
        )
        raise LedgerInconsistency(f"Release on lot {lot_id} would exceed its {lot.total_slots} slots")

    lot = load_lot(db, lot_id)
    logger.info(f"[LEDGER] release lot={lot_id} → {lot.available_slots}/{lot.total_slots}")
    return lot


def resize(db: Session, lot_id: int, new_total: int) -> ParkingLot:
    """Change a lot's capacity, keeping the occupied count intact."""
    if new_total < 0:
        raise ValidationError("total_slots cannot be negative")

    lot = load_lot(db, lot_id, for_update=True)
    occupied = lot.total_slots - lot.available_slots
    if new_total < occupied:
        raise BelowOccupied(f"Lot {lot_id} has {occupied} occupied slots; cannot shrink to {new_total}")

    # Live bookings keep their slot numbers, so the range must still cover them.
    highest = (
        db.query(func.max(Booking.slot_number))
        .filter(Booking.lot_id == lot_id, Booking.booking_status.in_(LIVE_STATUSES))
        .scalar()
    )
    if highest and new_total < highest:
        raise BelowOccupied(f"Slot {highest} in lot {lot_id} is still booked; cannot shrink to {new_total}")

    lot.total_slots = new_total
    lot.available_slots = new_total - occupied
    lot.updated_at = utcnow()
    db.flush()
    logger.info(f"[LEDGER] resize lot={lot_id} → {lot.available_slots}/{lot.total_slots}")
    return lot


def open_lot(db: Session, organization_id: int, name: str, total_slots: int,
             priority_order: int = 1, description: str = None) -> ParkingLot:
    """Register a new lot with all of its slots available."""
    if total_slots < 0:
        raise ValidationError("total_slots cannot be negative")
    if not db.query(Organization).filter(Organization.id == organization_id).first():
        raise OrganizationNotFound(f"Organization {organization_id} not found")

    existing = db.query(ParkingLot).filter(
        ParkingLot.organization_id == organization_id, ParkingLot.name == name,
    ).first()
    if existing:
        raise ValidationError(f"Parking lot '{name}' already exists for this organization")

    now = utcnow()
    lot = ParkingLot(organization_id=organization_id, name=name, description=description,
                     total_slots=total_slots, available_slots=total_slots,
                     priority_order=priority_order, is_active=True,
                     created_at=now, updated_at=now)
    db.add(lot)
    db.flush()
    logger.info(f"[LEDGER] opened lot={lot.id} '{name}' org={organization_id} slots={total_slots}")
    return lot


def deactivate(db: Session, lot_id: int) -> ParkingLot:
    """Take a lot out of allocation. Only allowed once it holds no live bookings."""
    lot = load_lot(db, lot_id, for_update=True)
    if lot.available_slots != lot.total_slots:
        raise BelowOccupied(f"Lot {lot_id} still has {lot.occupied_slots} live bookings")
    lot.is_active = False
    lot.updated_at = utcnow()
    db.flush()
    logger.info(f"[LEDGER] deactivated lot={lot_id}")
    return lot


def organization_capacity(db: Session, organization_id: int) -> dict:
    """Aggregate capacity computed from active lots (never from the cached columns)."""
    total, available = (
        db.query(func.coalesce(func.sum(ParkingLot.total_slots), 0),
                 func.coalesce(func.sum(ParkingLot.available_slots), 0))
        .filter(ParkingLot.organization_id == organization_id, ParkingLot.is_active.is_(True))
        .one()
    )
    occupied = total - available
    return {
        "organization_id": organization_id,
        "total_slots": total,
        "available_slots": available,
        "occupied_slots": occupied,
        "occupancy_percent": round(occupied / total * 100, 1) if total else 0.0,
    }


def reconcile_organization(db: Session, organization_id: int) -> Organization:
    """Rewrite the organization's cached counters from its active lots."""
    org = db.query(Organization).filter(Organization.id == organization_id).populate_existing().first()
    if not org:
        raise OrganizationNotFound(f"Organization {organization_id} not found")

    capacity = organization_capacity(db, organization_id)
    if (org.total_slots, org.available_slots) != (capacity["total_slots"], capacity["available_slots"]):
        logger.info(
            f"[LEDGER] reconcile org={organization_id}: "
            f"{org.available_slots}/{org.total_slots} → {capacity['available_slots']}/{capacity['total_slots']}"
        )
    org.total_slots = capacity["total_slots"]
    org.available_slots = capacity["available_slots"]
    db.flush()
    return org
