# orgpark/routers/payments.py
"""Payment gateway results and per-booking payment history."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from orgpark.database import get_db
from orgpark.schemas.booking import BookingOut
from orgpark.schemas.payment import PaymentOut, PaymentResultEvent
from orgpark.services import booking_orchestrator, payment_service

router = APIRouter()


@router.post("/payments/result", response_model=BookingOut, summary="Apply a payment gateway result")
def payment_result(event: PaymentResultEvent, db: Session = Depends(get_db)):
    """
    Idempotent: replaying the same result changes nothing.
    A failed booking fee cancels a still-confirmed booking and frees its slot.
    """
    return booking_orchestrator.apply_payment_result(db, event.booking_id, event.status, event.transaction_id)


@router.get("/bookings/{booking_id}/payments", response_model=list[PaymentOut], summary="Payments of a booking")
def booking_payments(booking_id: int, db: Session = Depends(get_db)):
    booking_orchestrator.get_booking(db, booking_id)
    return payment_service.payments_for(db, booking_id)
