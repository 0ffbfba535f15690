# orgpark/services/verification_gateway.py
"""
Verification Gateway — turns a scanned QR token into a booking and lets a
watchman drive entry / exit transitions for their own organization.

resolve_token() and authorize() are read-only. verify_entry() / verify_exit()
mutate and must run inside the orchestrator's lot transaction.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from orgpark.models.booking import Booking, COMPLETED, CONFIRMED, OVERSTAY, TERMINAL_STATUSES
from orgpark.models.watchman import Watchman
from orgpark.services import booking_lifecycle, payment_service, qr_token
from orgpark.utils.exceptions import (
    InactiveWatchman, TokenExpired, TokenNotFound, WatchmanNotFound, WrongOrganization,
)
from orgpark.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ExitReceipt:
    booking_id: int
    vehicle_number: str
    slot_label: Optional[str]
    booking_status: str
    entry_time: Optional[datetime]
    exit_time: Optional[datetime]
    duration_minutes: Optional[int]
    amount: Decimal
    payment_status: str
    overstay_minutes: int = 0
    penalty_amount: Decimal = Decimal("0.00")
    penalty_transaction_id: Optional[str] = None
    forced: bool = False
    warnings: list = field(default_factory=list)

    @classmethod
    def from_booking(cls, booking: Booking, penalty_payment=None, forced: bool = False,
                     penalty_settled: bool = False):
        duration = None
        if booking.entry_time and booking.exit_time:
            duration = int((booking.exit_time - booking.entry_time).total_seconds() // 60)
        receipt = cls(
            booking_id=booking.id,
            vehicle_number=booking.vehicle_number,
            slot_label=booking.slot_label,
            booking_status=booking.booking_status,
            entry_time=booking.entry_time,
            exit_time=booking.exit_time,
            duration_minutes=duration,
            amount=booking.amount,
            payment_status=booking.payment_status,
            overstay_minutes=booking.overstay_minutes or 0,
            penalty_amount=booking.penalty_amount,
            penalty_transaction_id=penalty_payment.transaction_id if penalty_payment else None,
            forced=forced,
        )
        if booking.payment_status != "completed":
            receipt.warnings.append("Booking fee is not paid")
        if penalty_payment is not None and not penalty_settled:
            receipt.warnings.append(f"Overstay penalty of {booking.penalty_amount} is due")
        return receipt


def resolve_token(db: Session, token: str, now: datetime) -> Booking:
    """
    Look a booking up by its QR token. The signature is checked before the
    embedded id is trusted; the stored token must match, so re-minted tokens
    invalidate older prints.
    """
    booking_id, expires_at = qr_token.decode(token)
    booking = db.query(Booking).filter(Booking.id == booking_id).populate_existing().first()
    if not booking or booking.qr_token != token.strip():
        raise TokenNotFound()

    if booking.booking_status in TERMINAL_STATUSES:
        raise TokenExpired(f"Booking {booking.id} is already {booking.booking_status}")
    # An active vehicle must always be able to leave, even on an old token.
    if booking.booking_status == CONFIRMED and now > expires_at:
        raise TokenExpired(f"QR code for booking {booking.id} expired at {expires_at:%Y-%m-%d %H:%M}")

    logger.info(f"[GATE] token resolved → booking={booking.id} status={booking.booking_status}")
    return booking


def authorize(db: Session, watchman_id: int, booking: Booking) -> Watchman:
    watchman = db.query(Watchman).filter(Watchman.id == watchman_id).first()
    if not watchman:
        raise WatchmanNotFound(f"Watchman {watchman_id} not found")
    if not watchman.is_active:
        raise InactiveWatchman()
    if watchman.organization_id != booking.organization_id:
        logger.warning(
            f"[GATE] watchman={watchman_id} org={watchman.organization_id} "
            f"tried booking={booking.id} of org={booking.organization_id}"
        )
        raise WrongOrganization()
    return watchman


def verify_entry(db: Session, booking: Booking, watchman_id: int, now: datetime) -> Booking:
    authorize(db, watchman_id, booking)
    changed = booking_lifecycle.activate(db, booking, now)
    if not changed:
        logger.info(f"[GATE] entry re-scan for booking={booking.id}: already active")
    return booking


def verify_exit(db: Session, booking: Booking, watchman_id: int, now: datetime,
                forced: bool = False) -> ExitReceipt:
    authorize(db, watchman_id, booking)
    if booking.booking_status in (COMPLETED, OVERSTAY):
        # Exit already recorded: a retried scan returns the same receipt.
        charge = payment_service.penalty_charge(db, booking.id)
        settled = payment_service.is_settled(db, booking.id, "penalty")
        return ExitReceipt.from_booking(booking, charge, forced=forced, penalty_settled=settled)

    penalty_payment = booking_lifecycle.complete_or_overstay(db, booking, now)
    receipt = ExitReceipt.from_booking(booking, penalty_payment, forced=forced)
    logger.info(
        f"[GATE] exit{' (forced)' if forced else ''} booking={booking.id} by watchman={watchman_id} "
        f"→ {booking.booking_status}"
    )
    return receipt
