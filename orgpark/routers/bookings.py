# orgpark/routers/bookings.py
"""
Booking endpoints — create, inspect, cancel and extend reservations.
All state changes go through booking_orchestrator.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from orgpark.database import get_db
from orgpark.schemas.booking import (
    BookingCancel, BookingCreate, BookingOut, ExtensionOut, ExtensionQuoteOut, ExtensionRequest,
)
from orgpark.services import booking_orchestrator

router = APIRouter()


@router.post("/bookings", response_model=BookingOut, status_code=201, summary="Create a booking")
def create_booking(body: BookingCreate, db: Session = Depends(get_db)):
    """
    Reserves the lowest free slot in the highest-priority lot with capacity.
    Returns the confirmed booking with its QR token.
    """
    return booking_orchestrator.create_booking(
        db,
        user_id=body.user_id,
        organization_id=body.organization_id,
        vehicle_number=body.vehicle_number,
        start=body.booking_start_time,
        end=body.booking_end_time,
    )


@router.get("/bookings/{booking_id}", response_model=BookingOut, summary="Get booking details")
def get_booking(booking_id: int, db: Session = Depends(get_db)):
    return booking_orchestrator.get_booking(db, booking_id)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingOut, summary="Cancel a booking")
def cancel_booking(booking_id: int, body: BookingCancel, db: Session = Depends(get_db)):
    """Only the owner can cancel, and only while confirmed. The slot is freed immediately."""
    return booking_orchestrator.cancel_booking(db, booking_id, actor_user_id=body.user_id)


@router.post("/bookings/{booking_id}/check-extension", response_model=ExtensionQuoteOut,
             summary="Check whether an active booking can be extended")
def check_extension(booking_id: int, body: ExtensionRequest, db: Session = Depends(get_db)):
    return booking_orchestrator.check_extension(db, booking_id, body.user_id, body.extension_hours)


@router.put("/bookings/{booking_id}/extend", response_model=ExtensionOut, summary="Extend an active booking")
def extend_booking(booking_id: int, body: ExtensionRequest, db: Session = Depends(get_db)):
    booking, ext, transaction_id = booking_orchestrator.extend_booking(
        db, booking_id, body.user_id, body.extension_hours
    )
    return {
        "booking": booking,
        "extension_hours": ext["extension_hours"],
        "additional_amount": ext["additional_amount"],
        "transaction_id": transaction_id,
    }


@router.get("/organizations/{organization_id}/bookings/active", response_model=list[BookingOut],
            summary="Live bookings of an organization")
def active_bookings(organization_id: int, db: Session = Depends(get_db)):
    return booking_orchestrator.active_bookings(db, organization_id)


@router.post("/bookings/sweep", summary="Activate every confirmed booking whose start time has passed")
def sweep(db: Session = Depends(get_db)):
    """Same pass the background sweeper runs; safe to call at any time."""
    return {"activated": booking_orchestrator.auto_activate_due(db)}


@router.get("/users/{user_id}/bookings", response_model=list[BookingOut], summary="A user's bookings, newest first")
def user_bookings(user_id: int, db: Session = Depends(get_db)):
    return booking_orchestrator.user_bookings(db, user_id)
