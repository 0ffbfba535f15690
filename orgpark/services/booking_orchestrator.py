# orgpark/services/booking_orchestrator.py
"""
Booking Orchestrator — the only entry point that changes bookings and lot
capacity together.

Each mutating operation:
  1. validates input (no state touched yet),
  2. opens capacity_ledger.lot_transaction() for the booking's lot,
  3. re-reads the booking under the lock and runs the lifecycle transition,
  4. commits booking, payment and ledger changes as one unit or rolls all back.

Routers, the activation sweeper and scripts call into this module only.
"""

from datetime import datetime, timedelta
from typing import Union

from sqlalchemy.orm import Session

from orgpark.models.booking import Booking, ACTIVE, CONFIRMED, LIVE_STATUSES
from orgpark.models.organization import Organization
from orgpark.models.user import User
from orgpark.models.watchman import Watchman
from orgpark.services import (
    booking_lifecycle, capacity_ledger, payment_service, penalty_calculator,
    slot_assignor, verification_gateway,
)
from orgpark.services.penalty_calculator import to_money
from orgpark.utils.clock import to_naive_utc, utcnow
from orgpark.utils.exceptions import (
    BookingNotFound, InactiveWatchman, InvalidAmount, NotBookingOwner, NotConfirmed,
    OrganizationNotFound, UserNotFound, ValidationError, WatchmanNotFound,
)
from orgpark.utils.logger import get_logger
from orgpark.utils.validators import normalize_vehicle_number

logger = get_logger(__name__)


# ── Lookups ───────────────────────────────────────────────────────────────────
def get_booking(db: Session, booking_id: int) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id).populate_existing().first()
    if not booking:
        raise BookingNotFound(f"Booking {booking_id} not found")
    return booking


def active_bookings(db: Session, organization_id: int) -> list:
    """Live (confirmed or active) bookings of an organization, earliest start first."""
    return (
        db.query(Booking)
        .filter(Booking.organization_id == organization_id, Booking.booking_status.in_(LIVE_STATUSES))
        .order_by(Booking.booking_start_time.asc(), Booking.id.asc())
        .all()
    )


def user_bookings(db: Session, user_id: int) -> list:
    """Every booking a user has made, newest first."""
    _get_user(db, user_id)
    return (
        db.query(Booking)
        .filter(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .all()
    )


def lot_slot_map(db: Session, lot_id: int) -> dict:
    """
    Slot-by-slot view of a lot, derived from the live bookings that hold slots
    (the same source the assignor scans). Free slots of an inactive lot are
    reported as disabled.
    """
    lot = capacity_ledger.load_lot(db, lot_id)
    holders = {
        b.slot_number: b
        for b in db.query(Booking).filter(Booking.lot_id == lot_id, Booking.booking_status.in_(LIVE_STATUSES))
    }
    slots = []
    for slot_number in range(1, lot.total_slots + 1):
        holder = holders.get(slot_number)
        if holder is not None:
            status = "occupied"
        else:
            status = "available" if lot.is_active else "disabled"
        slots.append({
            "slot_number": slot_number,
            "slot_label": lot.slot_label(slot_number),
            "status": status,
            "booking_id": holder.id if holder else None,
            "vehicle_number": holder.vehicle_number if holder else None,
            "booking_status": holder.booking_status if holder else None,
        })
    return {
        "lot_id": lot.id,
        "name": lot.name,
        "is_active": lot.is_active,
        "total_slots": lot.total_slots,
        "available_slots": lot.available_slots,
        "slots": slots,
    }


def _get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise UserNotFound(f"User {user_id} not found")
    return user


def _get_organization(db: Session, organization_id: int) -> Organization:
    org = db.query(Organization).filter(Organization.id == organization_id).first()
    if not org:
        raise OrganizationNotFound(f"Organization {organization_id} not found")
    return org


def _get_watchman(db: Session, watchman_id: int) -> Watchman:
    watchman = db.query(Watchman).filter(Watchman.id == watchman_id).first()
    if not watchman:
        raise WatchmanNotFound(f"Watchman {watchman_id} not found")
    if not watchman.is_active:
        raise InactiveWatchman()
    return watchman


def _booking_transaction(db: Session, booking: Booking):
    return capacity_ledger.lot_transaction(db, lot_id=booking.lot_id, organization_id=booking.organization_id)


def _resolve_booking(db: Session, token_or_booking_id: Union[int, str], now: datetime) -> Booking:
    """Accept either a numeric booking id (typed by the watchman) or a scanned QR token."""
    if isinstance(token_or_booking_id, int) or str(token_or_booking_id).strip().isdigit():
        return get_booking(db, int(token_or_booking_id))
    return verification_gateway.resolve_token(db, str(token_or_booking_id), now)


# ── Booking creation ──────────────────────────────────────────────────────────
def create_booking(db: Session, user_id: int, organization_id: int, vehicle_number: str,
                   start: datetime, end: datetime, now: datetime = None) -> Booking:
    now = now or utcnow()
    start, end = to_naive_utc(start), to_naive_utc(end)
    vehicle_number = normalize_vehicle_number(vehicle_number)
    booking_lifecycle.validate_window(start, end, now)

    user = _get_user(db, user_id)
    org = _get_organization(db, organization_id)

    with slot_assignor.assign(db, org.id, start, end) as assignment:
        booking = booking_lifecycle.create(db, user, org, vehicle_number, start, end, assignment, now)
    return get_booking(db, booking.id)


def assign_walk_in(db: Session, watchman_id: int, user_id: int, vehicle_number: str,
                   estimated_hours: float, now: datetime = None) -> Booking:
    """Watchman registers a walk-in: book now .. now + estimated_hours and mark entry at once."""
    now = now or utcnow()
    if estimated_hours is None or estimated_hours <= 0:
        raise ValidationError("estimated_duration must be positive")
    vehicle_number = normalize_vehicle_number(vehicle_number)

    watchman = _get_watchman(db, watchman_id)
    user = _get_user(db, user_id)
    org = _get_organization(db, watchman.organization_id)
    start, end = now, now + timedelta(hours=estimated_hours)

    with slot_assignor.assign(db, org.id, start, end) as assignment:
        booking = booking_lifecycle.create(db, user, org, vehicle_number, start, end, assignment, now,
                                           user_type="walk_in")
        booking_lifecycle.activate(db, booking, now)
    logger.info(f"[GATE] walk-in booking={booking.id} slot={booking.slot_label} by watchman={watchman_id}")
    return get_booking(db, booking.id)


# ── Cancellation ──────────────────────────────────────────────────────────────
def cancel_booking(db: Session, booking_id: int, actor_user_id: int, now: datetime = None) -> Booking:
    """User cancellation: owner only, subject to CANCELLATION_MIN_LEAD_MINUTES."""
    if actor_user_id is None:
        raise ValidationError("user_id is required to cancel a booking")
    now = now or utcnow()
    booking = get_booking(db, booking_id)
    if booking.user_id != actor_user_id:
        raise NotBookingOwner(f"Booking {booking_id} belongs to another user")

    with _booking_transaction(db, booking):
        booking = get_booking(db, booking_id)
        booking_lifecycle.cancel(db, booking, now, actor="user")
    return get_booking(db, booking_id)


def cancel_booking_as_system(db: Session, booking_id: int, now: datetime = None) -> Booking:
    """Operator / housekeeping cancellation. Not exposed over HTTP; skips owner and lead-time checks."""
    now = now or utcnow()
    booking = get_booking(db, booking_id)
    with _booking_transaction(db, booking):
        booking = get_booking(db, booking_id)
        booking_lifecycle.cancel(db, booking, now, actor="system", enforce_lead_time=False)
    return get_booking(db, booking_id)


# ── Gate operations ───────────────────────────────────────────────────────────
def verify_entry(db: Session, token_or_booking_id, watchman_id: int, now: datetime = None) -> Booking:
    now = now or utcnow()
    booking = _resolve_booking(db, token_or_booking_id, now)
    with _booking_transaction(db, booking):
        booking = get_booking(db, booking.id)
        verification_gateway.verify_entry(db, booking, watchman_id, now)
    return get_booking(db, booking.id)


def verify_exit(db: Session, token_or_booking_id, watchman_id: int,
                now: datetime = None) -> verification_gateway.ExitReceipt:
    now = now or utcnow()
    booking = _resolve_booking(db, token_or_booking_id, now)
    with _booking_transaction(db, booking):
        booking = get_booking(db, booking.id)
        receipt = verification_gateway.verify_exit(db, booking, watchman_id, now)
    return receipt


def force_checkout(db: Session, booking_id: int, watchman_id: int,
                   now: datetime = None) -> verification_gateway.ExitReceipt:
    """Admin / watchman override: close an active booking without an exit scan."""
    now = now or utcnow()
    booking = get_booking(db, booking_id)
    with _booking_transaction(db, booking):
        booking = get_booking(db, booking_id)
        receipt = verification_gateway.verify_exit(db, booking, watchman_id, now, forced=True)
    return receipt


def scan(db: Session, token: str, watchman_id: int, now: datetime = None) -> Booking:
    """Resolve and authorize a QR token without changing anything."""
    now = now or utcnow()
    booking = verification_gateway.resolve_token(db, token, now)
    verification_gateway.authorize(db, watchman_id, booking)
    return booking


# ── Time-driven activation ────────────────────────────────────────────────────
def auto_activate_due(db: Session, now: datetime = None) -> int:
    """Activate every confirmed booking whose start time has passed. Returns the count."""
    now = now or utcnow()
    due_ids = [
        row[0] for row in
        db.query(Booking.id)
        .filter(Booking.booking_status == CONFIRMED, Booking.booking_start_time <= now)
        .all()
    ]

    activated = 0
    for booking_id in due_ids:
        booking = get_booking(db, booking_id)
        try:
            with _booking_transaction(db, booking):
                booking = get_booking(db, booking_id)
                if booking_lifecycle.activate(db, booking, now):
                    activated += 1
        except NotConfirmed:
            # Cancelled or exited between the scan and the lock.
            continue
    if activated:
        logger.info(f"[SWEEP] auto-activated {activated} booking(s)")
    return activated


# ── Extensions ────────────────────────────────────────────────────────────────
def check_extension(db: Session, booking_id: int, user_id: int, hours: float) -> dict:
    booking = get_booking(db, booking_id)
    if booking.user_id != user_id:
        raise NotBookingOwner("You can only extend your own bookings")
    user = _get_user(db, user_id)
    org = _get_organization(db, booking.organization_id)
    return booking_lifecycle.extension_quote(db, booking, user, org, hours)


def extend_booking(db: Session, booking_id: int, user_id: int, hours: float,
                   now: datetime = None) -> tuple:
    now = now or utcnow()
    booking = get_booking(db, booking_id)
    if booking.user_id != user_id:
        raise NotBookingOwner("You can only extend your own bookings")
    user = _get_user(db, user_id)
    org = _get_organization(db, booking.organization_id)

    with _booking_transaction(db, booking):
        booking = get_booking(db, booking_id)
        ext, payment = booking_lifecycle.extend(db, booking, user, org, hours, now)
        transaction_id = payment.transaction_id if payment else None
    return get_booking(db, booking_id), ext, transaction_id


# ── Payments ──────────────────────────────────────────────────────────────────
def apply_payment_result(db: Session, booking_id: int, status: str, transaction_id: str,
                         now: datetime = None) -> Booking:
    """
    Consume a gateway result. A failed booking fee on a still-confirmed
    booking rolls the booking back to cancelled and releases its slot.
    """
    now = now or utcnow()
    booking = get_booking(db, booking_id)

    with _booking_transaction(db, booking):
        booking = get_booking(db, booking_id)
        payment, changed = payment_service.resolve(db, transaction_id, status, booking_id=booking.id, now=now)
        if changed and payment.payment_type == "booking":
            if payment.payment_status == payment_service.COMPLETED:
                booking.payment_status = "completed"
            elif booking.payment_status != "completed":
                booking.payment_status = "failed"
                if booking.booking_status == CONFIRMED:
                    booking_lifecycle.cancel(db, booking, now, actor="payment", enforce_lead_time=False)
            booking.updated_at = now
    return get_booking(db, booking_id)


def record_cash_payment(db: Session, watchman_id: int, booking_id: int, amount,
                        payment_type: str = "booking", now: datetime = None):
    now = now or utcnow()
    if amount is None or to_money(amount) <= 0:
        raise InvalidAmount()
    if payment_type not in ("booking", "penalty"):
        raise ValidationError("payment_type must be 'booking' or 'penalty'")

    booking = get_booking(db, booking_id)
    with _booking_transaction(db, booking):
        booking = get_booking(db, booking_id)
        verification_gateway.authorize(db, watchman_id, booking)
        pending = payment_service.pending_payment(db, booking.id, payment_type)
        if pending is not None:
            # Cash replaces the outstanding online charge.
            payment_service.resolve(db, pending.transaction_id, "failed", now=now)
        payment = payment_service.record_cash(db, booking, amount, watchman_id, payment_type, now)
        if payment_type == "booking":
            booking.payment_status = "completed"
            booking.updated_at = now
    return payment


# ── Lot administration (through the ledger) ───────────────────────────────────
def open_lot(db: Session, organization_id: int, name: str, total_slots: int,
             priority_order: int = 1, description: str = None):
    with capacity_ledger.lot_transaction(db, organization_id=organization_id):
        lot = capacity_ledger.open_lot(db, organization_id, name, total_slots, priority_order, description)
        capacity_ledger.reconcile_organization(db, organization_id)
    return capacity_ledger.load_lot(db, lot.id)


def resize_lot(db: Session, lot_id: int, new_total: int):
    lot = capacity_ledger.load_lot(db, lot_id)
    with capacity_ledger.lot_transaction(db, lot_id=lot_id):
        capacity_ledger.resize(db, lot_id, new_total)
    reconcile_organization(db, lot.organization_id)
    return capacity_ledger.load_lot(db, lot_id)


def deactivate_lot(db: Session, lot_id: int):
    lot = capacity_ledger.load_lot(db, lot_id)
    with capacity_ledger.lot_transaction(db, lot_id=lot_id):
        capacity_ledger.deactivate(db, lot_id)
    reconcile_organization(db, lot.organization_id)
    return capacity_ledger.load_lot(db, lot_id)


def reconcile_organization(db: Session, organization_id: int) -> Organization:
    with capacity_ledger.lot_transaction(db, organization_id=organization_id):
        org = capacity_ledger.reconcile_organization(db, organization_id)
    return org


# ── Dashboards ────────────────────────────────────────────────────────────────
def watchman_status(db: Session, watchman_id: int, now: datetime = None) -> dict:
    """Occupancy and live bookings for the watchman's organization, with projected penalties."""
    now = now or utcnow()
    watchman = _get_watchman(db, watchman_id)
    org_id = watchman.organization_id

    lots = []
    for lot in slot_assignor.candidate_lots(db, org_id):
        lots.append({
            "lot_id": lot.id, "name": lot.name, "priority_order": lot.priority_order,
            "total_slots": lot.total_slots, "available_slots": lot.available_slots,
            "occupied_slots": lot.occupied_slots,
        })

    bookings = []
    for booking in active_bookings(db, org_id):
        minutes, accrued = 0, to_money(0)
        if booking.booking_status == ACTIVE:
            minutes, accrued = penalty_calculator.penalty_for_booking(booking, now)
        bookings.append({
            "booking_id": booking.id, "vehicle_number": booking.vehicle_number,
            "slot_label": booking.slot_label, "booking_status": booking.booking_status,
            "booking_start_time": booking.booking_start_time, "booking_end_time": booking.booking_end_time,
            "payment_status": booking.payment_status,
            "overstay_minutes": minutes, "accrued_penalty": accrued,
        })

    return {
        "organization": capacity_ledger.organization_capacity(db, org_id),
        "lots": lots,
        "bookings": bookings,
    }

