# orgpark/services/booking_lifecycle.py
"""
Booking Lifecycle — the state machine for one reservation.

    confirmed ──entry──▶ active ──exit──▶ completed | overstay
        │
        └──cancel──▶ cancelled

Functions here mutate a booking and the capacity ledger but never commit and
never lock: booking_orchestrator calls them inside capacity_ledger.lot_transaction().
"""

from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from orgpark.config import settings
from orgpark.models.booking import Booking, ACTIVE, CANCELLED, COMPLETED, CONFIRMED, OVERSTAY
from orgpark.services import capacity_ledger, payment_service, penalty_calculator, qr_token
from orgpark.services.penalty_calculator import to_money
from orgpark.utils.exceptions import (
    AlreadyStarted, CancellationTooLate, EntryTooEarly, InvalidWindow,
    NotActive, NotConfirmed, ValidationError, WindowInPast, WindowTooFarAhead,
)
from orgpark.utils.logger import get_logger

logger = get_logger(__name__)


def validate_window(start: datetime, end: datetime, now: datetime):
    if start >= end:
        raise InvalidWindow()
    if start > now + timedelta(days=settings.MAX_ADVANCE_BOOKING_DAYS):
        raise WindowTooFarAhead(f"Bookings can be made at most {settings.MAX_ADVANCE_BOOKING_DAYS} days ahead")
    if start < now - timedelta(minutes=settings.BOOK_NOW_GRACE_MINUTES):
        raise WindowInPast()


def quote(user, organization, start: datetime, end: datetime, user_type: str = None) -> dict:
    """
    Price a window. Members parking at their own organization are free when the
    organization offers free member parking; everyone else pays the visitor rate.
    """
    duration_hours = (end - start).total_seconds() / 3600
    rate = Decimal(str(organization.visitor_hourly_rate or 0))
    user_type = user_type or user.user_type
    is_member = user_type == "organization_member" and user.organization_id == organization.id

    if is_member and organization.member_parking_free:
        amount = to_money(0)
    else:
        amount = to_money(Decimal(str(duration_hours)) * rate)

    return {
        "duration_hours": round(duration_hours, 2),
        "hourly_rate": to_money(rate),
        "amount": amount,
        "is_member_booking": is_member,
        "payment_status": "completed" if amount == 0 else "pending",
    }


def create(db: Session, user, organization, vehicle_number: str, start: datetime, end: datetime,
           assignment, now: datetime, user_type: str = None) -> Booking:
    """Insert a confirmed booking on an already-reserved slot and mint its QR token."""
    pricing = quote(user, organization, start, end, user_type)
    booking = Booking(
        user_id=user.id,
        organization_id=organization.id,
        lot_id=assignment.lot_id,
        slot_number=assignment.slot_number,
        slot_label=assignment.slot_label,
        vehicle_number=vehicle_number,
        booking_start_time=start,
        booking_end_time=end,
        duration_hours=pricing["duration_hours"],
        amount=pricing["amount"],
        hourly_rate=pricing["hourly_rate"],
        is_member_booking=pricing["is_member_booking"],
        payment_status=pricing["payment_status"],
        booking_status=CONFIRMED,
        overstay_minutes=0,
        penalty_amount=to_money(0),
        created_at=now,
        updated_at=now,
    )
    db.add(booking)
    db.flush()
    booking.qr_token = qr_token.mint(booking.id, qr_token.expiry_for(end))

    if pricing["payment_status"] == "pending":
        payment_service.create_pending(db, booking, booking.amount, "booking", now)

    db.flush()
    logger.info(
        f"[BOOKING] created id={booking.id} user={user.id} org={organization.id} "
        f"slot={booking.slot_label} amount={booking.amount} payment={booking.payment_status}"
    )
    return booking


def activate(db: Session, booking: Booking, now: datetime) -> bool:
    """
    confirmed → active. Returns False when the booking is already active, so
    the sweep and a gate scan racing on the same booking both succeed.
    """
    if booking.booking_status == ACTIVE:
        return False
    if booking.booking_status != CONFIRMED:
        raise NotConfirmed(f"Booking {booking.id} is {booking.booking_status}, not confirmed")
    if booking.booking_start_time - timedelta(minutes=settings.EARLY_ENTRY_GRACE_MINUTES) > now:
        raise EntryTooEarly(f"Booking {booking.id} starts at {booking.booking_start_time:%Y-%m-%d %H:%M}")

    booking.booking_status = ACTIVE
    booking.entry_time = now
    booking.updated_at = now
    db.flush()
    logger.info(f"[BOOKING] activated id={booking.id} slot={booking.slot_label}")
    return True


def _release_slot(db: Session, booking: Booking):
    if booking.lot_id is None:
        logger.debug(f"[BOOKING] id={booking.id} has no lot; nothing to release")
        return
    capacity_ledger.release(db, booking.lot_id)


def complete_or_overstay(db: Session, booking: Booking, now: datetime):
    """
    active → completed (on time) or overstay (late, with penalty).
    Releases the slot either way. Returns the pending penalty Payment, if any.
    """
    if booking.booking_status != ACTIVE:
        raise NotActive(f"Booking {booking.id} is {booking.booking_status}, not active")

    minutes, amount = penalty_calculator.penalty_for_booking(booking, now)
    booking.exit_time = now
    booking.updated_at = now
    booking.overstay_minutes = minutes
    booking.penalty_amount = amount
    booking.booking_status = OVERSTAY if minutes > 0 else COMPLETED
    _release_slot(db, booking)

    penalty_payment = None
    if amount > 0:
        penalty_payment = payment_service.create_pending(db, booking, amount, "penalty", now)

    db.flush()
    logger.info(
        f"[BOOKING] exit id={booking.id} → {booking.booking_status} "
        f"overstay={minutes}min penalty={amount}"
    )
    return penalty_payment


def cancel(db: Session, booking: Booking, now: datetime, actor: str = "user", enforce_lead_time: bool = True):
    """confirmed → cancelled, releasing the slot and voiding any unpaid booking charge."""
    if booking.booking_status != CONFIRMED:
        raise AlreadyStarted(f"Booking {booking.id} is {booking.booking_status} and cannot be cancelled")

    lead = timedelta(minutes=settings.CANCELLATION_MIN_LEAD_MINUTES)
    if enforce_lead_time and lead and booking.booking_start_time - now < lead:
        raise CancellationTooLate(
            f"Bookings must be cancelled at least {settings.CANCELLATION_MIN_LEAD_MINUTES} minutes before start"
        )

    booking.booking_status = CANCELLED
    booking.cancelled_by = actor
    booking.updated_at = now
    if booking.payment_status == "pending":
        # A gateway success arriving after this is rejected as a conflicting result.
        for payment in payment_service.payments_for(db, booking.id):
            if payment.payment_type == "booking" and payment.payment_status == payment_service.PENDING:
                payment_service.resolve(db, payment.transaction_id, payment_service.FAILED, now=now)
        booking.payment_status = "failed"
    _release_slot(db, booking)
    db.flush()
    logger.info(f"[BOOKING] cancelled id={booking.id} by={actor}")


def extension_quote(db: Session, booking: Booking, user, organization, hours: float) -> dict:
    if hours is None or hours <= 0:
        raise ValidationError("extension_hours must be positive")
    if booking.booking_status != ACTIVE:
        raise NotActive("Only active bookings can be extended")

    # The slot stays held by this booking until exit, so the same slot is always free to extend into.
    new_end = booking.booking_end_time + timedelta(hours=hours)
    pricing = quote(user, organization, booking.booking_end_time, new_end)
    return {
        "current_end_time": booking.booking_end_time,
        "new_end_time": new_end,
        "extension_hours": hours,
        "additional_amount": pricing["amount"],
    }


def extend(db: Session, booking: Booking, user, organization, hours: float, now: datetime):
    """Push an active booking's end time out, charging for the extra hours."""
    ext = extension_quote(db, booking, user, organization, hours)

    booking.booking_end_time = ext["new_end_time"]
    booking.duration_hours = round(booking.duration_hours + hours, 2)
    booking.amount = to_money(Decimal(str(booking.amount)) + ext["additional_amount"])
    booking.qr_token = qr_token.mint(booking.id, qr_token.expiry_for(booking.booking_end_time))
    booking.updated_at = now

    extra = None
    if ext["additional_amount"] > 0:
        booking.payment_status = "pending"
        extra = payment_service.create_pending(db, booking, ext["additional_amount"], "booking", now)

    db.flush()
    logger.info(f"[BOOKING] extended id={booking.id} by {hours}h → ends {booking.booking_end_time:%Y-%m-%d %H:%M}")
    return ext, extra
