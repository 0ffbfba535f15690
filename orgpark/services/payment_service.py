# orgpark/services/payment_service.py
"""
Payment records for booking fees and overstay penalties.
The online gateway is external: it reports back through resolve(); cash is
recorded by a watchman and is completed on creation.
"""

import secrets
from datetime import datetime

from sqlalchemy.orm import Session

from orgpark.models.payment import Payment
from orgpark.services.penalty_calculator import to_money
from orgpark.utils.clock import utcnow
from orgpark.utils.exceptions import DuplicateTransaction, PaymentError, PaymentNotFound
from orgpark.utils.logger import get_logger

logger = get_logger(__name__)

PENDING, COMPLETED, FAILED = "pending", "completed", "failed"

_STATUS_ALIASES = {
    "completed": COMPLETED, "success": COMPLETED, "paid": COMPLETED,
    "failed": FAILED, "failure": FAILED,
}


def normalize_status(status: str) -> str:
    value = _STATUS_ALIASES.get((status or "").strip().lower())
    if value is None:
        raise PaymentError(f"Unknown payment status '{status}'")
    return value


def _online_transaction_id(now: datetime) -> str:
    return f"TXN{int(now.timestamp() * 1000)}{secrets.token_hex(5).upper()}"


def create_pending(db: Session, booking, amount, payment_type: str = "booking",
                   now: datetime = None) -> Payment:
    now = now or utcnow()
    payment = Payment(booking_id=booking.id, amount=to_money(amount), payment_type=payment_type,
                      payment_method="online", payment_status=PENDING,
                      transaction_id=_online_transaction_id(now), created_at=now)
    db.add(payment)
    db.flush()
    logger.info(f"[PAYMENT] pending {payment_type} {payment.amount} for booking={booking.id} txn={payment.transaction_id}")
    return payment


def record_cash(db: Session, booking, amount, watchman_id: int, payment_type: str = "booking",
                now: datetime = None) -> Payment:
    now = now or utcnow()
    transaction_id = f"CASH_{int(now.timestamp() * 1000)}_{booking.id}"
    if db.query(Payment).filter(Payment.transaction_id == transaction_id).first():
        raise DuplicateTransaction(f"Transaction {transaction_id} already recorded")

    payment = Payment(booking_id=booking.id, amount=to_money(amount), payment_type=payment_type,
                      payment_method="cash", payment_status=COMPLETED, transaction_id=transaction_id,
                      watchman_id=watchman_id, created_at=now, completed_at=now)
    db.add(payment)
    db.flush()
    logger.info(f"[PAYMENT] cash {payment_type} {payment.amount} for booking={booking.id} by watchman={watchman_id}")
    return payment


def resolve(db: Session, transaction_id: str, status: str, booking_id: int = None,
            now: datetime = None) -> tuple:
    """
    Apply a gateway result. Returns (payment, changed).
    Re-delivery of the same terminal result is a no-op; a conflicting one is an error.
    """
    status = normalize_status(status)
    payment = db.query(Payment).filter(Payment.transaction_id == transaction_id).first()
    if not payment:
        raise PaymentNotFound(f"Transaction {transaction_id} not found")
    if booking_id is not None and payment.booking_id != booking_id:
        raise PaymentError(f"Transaction {transaction_id} does not belong to booking {booking_id}")

    if payment.payment_status == status:
        return payment, False
    if payment.payment_status != PENDING:
        raise PaymentError(f"Transaction {transaction_id} is already {payment.payment_status}")

    payment.payment_status = status
    payment.completed_at = now or utcnow()
    db.flush()
    logger.info(f"[PAYMENT] txn={transaction_id} → {status}")
    return payment, True


def pending_payment(db: Session, booking_id: int, payment_type: str):
    return (
        db.query(Payment)
        .filter(Payment.booking_id == booking_id, Payment.payment_type == payment_type,
                Payment.payment_status == PENDING)
        .order_by(Payment.id.desc())
        .first()
    )


def payments_for(db: Session, booking_id: int) -> list:
    return db.query(Payment).filter(Payment.booking_id == booking_id).order_by(Payment.id.asc()).all()


def penalty_charge(db: Session, booking_id: int):
    """The online penalty raised at exit, whatever has happened to it since."""
    return (
        db.query(Payment)
        .filter(Payment.booking_id == booking_id, Payment.payment_type == "penalty",
                Payment.payment_method == "online")
        .order_by(Payment.id.asc())
        .first()
    )


def is_settled(db: Session, booking_id: int, payment_type: str) -> bool:
    return db.query(Payment).filter(
        Payment.booking_id == booking_id, Payment.payment_type == payment_type,
        Payment.payment_status == COMPLETED,
    ).first() is not None
