# orgpark/routers/watchmen.py
"""Gate endpoints used by watchmen: QR scan, entry / exit, walk-ins and cash."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from orgpark.database import get_db
from orgpark.schemas.booking import BookingOut
from orgpark.schemas.gate import (
    CashPaymentRequest, ExitReceiptOut, ForceCheckoutRequest, GateRequest, ScanRequest, WalkInRequest,
)
from orgpark.schemas.payment import PaymentOut
from orgpark.services import booking_orchestrator

router = APIRouter()


@router.post("/watchmen/scan", response_model=BookingOut, summary="Look up a QR code without changing it")
def scan(body: ScanRequest, db: Session = Depends(get_db)):
    return booking_orchestrator.scan(db, body.qr_token, body.watchman_id)


@router.post("/watchmen/verify-entry", response_model=BookingOut, summary="Mark vehicle entry")
def verify_entry(body: GateRequest, db: Session = Depends(get_db)):
    """confirmed → active. Re-scanning an active booking is a no-op."""
    return booking_orchestrator.verify_entry(db, body.token_or_booking_id, body.watchman_id)


@router.post("/watchmen/verify-exit", response_model=ExitReceiptOut, summary="Mark vehicle exit")
def verify_exit(body: GateRequest, db: Session = Depends(get_db)):
    """active → completed / overstay. Late exits carry a pending penalty payment."""
    return booking_orchestrator.verify_exit(db, body.token_or_booking_id, body.watchman_id)


@router.post("/watchmen/force-checkout", response_model=ExitReceiptOut, summary="Close a booking without a scan")
def force_checkout(body: ForceCheckoutRequest, db: Session = Depends(get_db)):
    return booking_orchestrator.force_checkout(db, body.booking_id, body.watchman_id)


@router.post("/watchmen/walk-in", response_model=BookingOut, status_code=201, summary="Register a walk-in vehicle")
def walk_in(body: WalkInRequest, db: Session = Depends(get_db)):
    return booking_orchestrator.assign_walk_in(
        db, body.watchman_id, body.user_id, body.vehicle_number, body.estimated_duration
    )


@router.post("/watchmen/cash-payment", response_model=PaymentOut, status_code=201, summary="Record a cash payment")
def cash_payment(body: CashPaymentRequest, db: Session = Depends(get_db)):
    return booking_orchestrator.record_cash_payment(
        db, body.watchman_id, body.booking_id, body.amount, body.payment_type
    )


@router.get("/watchmen/{watchman_id}/status", summary="Occupancy and live bookings for the watchman's organization")
def watchman_status(watchman_id: int, db: Session = Depends(get_db)):
    return booking_orchestrator.watchman_status(db, watchman_id)
