# orgpark/schemas/parking_lot.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class LotCreate(BaseModel):
    name: str
    total_slots: int = Field(ge=0)
    priority_order: int = 1
    description: Optional[str] = None


class LotCapacityUpdate(BaseModel):
    total_slots: int = Field(ge=0)


class LotOut(BaseModel):
    id: int
    organization_id: int
    name: str
    description: Optional[str]
    total_slots: int
    available_slots: int
    priority_order: int
    is_active: bool
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class OrganizationCapacityOut(BaseModel):
    organization_id: int
    total_slots: int
    available_slots: int
    occupied_slots: int
    occupancy_percent: float


class SlotOut(BaseModel):
    slot_number: int
    slot_label: str
    status: str                       # occupied | available | disabled
    booking_id: Optional[int] = None
    vehicle_number: Optional[str] = None
    booking_status: Optional[str] = None


class LotSlotMapOut(BaseModel):
    lot_id: int
    name: str
    is_active: bool
    total_slots: int
    available_slots: int
    slots: list[SlotOut]
