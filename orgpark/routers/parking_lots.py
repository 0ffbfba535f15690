# orgpark/routers/parking_lots.py
"""Lot administration. Capacity changes go through the ledger under the lot lock."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from orgpark.database import get_db
from orgpark.models.parking_lot import ParkingLot
from orgpark.schemas.parking_lot import (
    LotCapacityUpdate, LotCreate, LotOut, LotSlotMapOut, OrganizationCapacityOut,
)
from orgpark.services import booking_orchestrator, capacity_ledger

router = APIRouter()


@router.get("/organizations/{organization_id}/lots", response_model=list[LotOut], summary="List lots")
def list_lots(organization_id: int, include_inactive: bool = False, db: Session = Depends(get_db)):
    q = db.query(ParkingLot).filter(ParkingLot.organization_id == organization_id)
    if not include_inactive:
        q = q.filter(ParkingLot.is_active.is_(True))
    return q.order_by(ParkingLot.priority_order.asc(), ParkingLot.id.asc()).all()


@router.post("/organizations/{organization_id}/lots", response_model=LotOut, status_code=201,
             summary="Open a new lot")
def open_lot(organization_id: int, body: LotCreate, db: Session = Depends(get_db)):
    return booking_orchestrator.open_lot(
        db, organization_id, body.name, body.total_slots, body.priority_order, body.description
    )


@router.get("/lots/{lot_id}/slots", response_model=LotSlotMapOut, summary="Slot-by-slot occupancy of a lot")
def slot_map(lot_id: int, db: Session = Depends(get_db)):
    return booking_orchestrator.lot_slot_map(db, lot_id)


@router.put("/lots/{lot_id}/capacity", response_model=LotOut, summary="Resize a lot")
def resize_lot(lot_id: int, body: LotCapacityUpdate, db: Session = Depends(get_db)):
    """Rejected with 409 when the new total is below the number of occupied slots."""
    return booking_orchestrator.resize_lot(db, lot_id, body.total_slots)


@router.post("/lots/{lot_id}/deactivate", response_model=LotOut, summary="Stop assigning new bookings to a lot")
def deactivate_lot(lot_id: int, db: Session = Depends(get_db)):
    return booking_orchestrator.deactivate_lot(db, lot_id)


@router.get("/organizations/{organization_id}/capacity", response_model=OrganizationCapacityOut,
            summary="Organization-wide capacity, summed over active lots")
def organization_capacity(organization_id: int, db: Session = Depends(get_db)):
    return capacity_ledger.organization_capacity(db, organization_id)


@router.post("/organizations/{organization_id}/reconcile", response_model=OrganizationCapacityOut,
             summary="Rewrite the organization's cached counters from its lots")
def reconcile(organization_id: int, db: Session = Depends(get_db)):
    booking_orchestrator.reconcile_organization(db, organization_id)
    return capacity_ledger.organization_capacity(db, organization_id)
