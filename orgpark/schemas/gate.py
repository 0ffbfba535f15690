# orgpark/schemas/gate.py
"""Watchman-facing request / response bodies."""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union


class ScanRequest(BaseModel):
    watchman_id: int
    qr_token: str


class GateRequest(BaseModel):
    watchman_id: int
    # Scanned QR token or a booking id typed at the gate
    token_or_booking_id: Union[int, str]


class ForceCheckoutRequest(BaseModel):
    watchman_id: int
    booking_id: int


class WalkInRequest(BaseModel):
    watchman_id: int
    user_id: int
    vehicle_number: str
    estimated_duration: float = Field(gt=0)   # hours


class CashPaymentRequest(BaseModel):
    watchman_id: int
    booking_id: int
    amount: Decimal
    payment_type: str = "booking"   # booking | penalty


class ExitReceiptOut(BaseModel):
    booking_id: int
    vehicle_number: str
    slot_label: Optional[str]
    booking_status: str
    entry_time: Optional[datetime]
    exit_time: Optional[datetime]
    duration_minutes: Optional[int]
    amount: Decimal
    payment_status: str
    overstay_minutes: int
    penalty_amount: Decimal
    penalty_transaction_id: Optional[str] = None
    forced: bool = False
    warnings: list[str] = []

    class Config:
        from_attributes = True
