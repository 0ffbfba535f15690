# orgpark/schemas/booking.py
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional


class BookingCreate(BaseModel):
    user_id: int
    organization_id: int
    vehicle_number: str
    booking_start_time: datetime
    booking_end_time: datetime


class BookingCancel(BaseModel):
    user_id: int   # owner; system cancellations never come through the API


class ExtensionRequest(BaseModel):
    user_id: int
    extension_hours: float = Field(gt=0)


class BookingOut(BaseModel):
    id: int
    user_id: int
    organization_id: int
    lot_id: Optional[int]
    slot_number: Optional[int]
    slot_label: Optional[str]
    vehicle_number: str
    booking_start_time: datetime
    booking_end_time: datetime
    duration_hours: float
    amount: Decimal
    payment_status: str
    booking_status: str
    entry_time: Optional[datetime]
    exit_time: Optional[datetime]
    overstay_minutes: int
    penalty_amount: Decimal
    qr_token: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class ExtensionQuoteOut(BaseModel):
    current_end_time: datetime
    new_end_time: datetime
    extension_hours: float
    additional_amount: Decimal


class ExtensionOut(BaseModel):
    booking: BookingOut
    extension_hours: float
    additional_amount: Decimal
    transaction_id: Optional[str] = None
