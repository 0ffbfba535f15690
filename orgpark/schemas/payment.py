# orgpark/schemas/payment.py
from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Optional


class PaymentResultEvent(BaseModel):
    booking_id: int
    status: str          # completed | success | failed
    transaction_id: str


class PaymentOut(BaseModel):
    id: int
    booking_id: int
    amount: Decimal
    payment_type: str
    payment_method: str
    payment_status: str
    transaction_id: str
    watchman_id: Optional[int]
    created_at: datetime
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True
