# orgpark/models/payment.py
"""
Payments table — one row per charge event (booking fee or overstay penalty).
Immutable after creation except the pending → completed | failed transition.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from orgpark.database import Base


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_type = Column(String(20), nullable=False, default="booking")     # booking | penalty
    payment_method = Column(String(20), nullable=False, default="online")    # online | cash
    payment_status = Column(String(20), nullable=False, default="pending")   # pending | completed | failed
    transaction_id = Column(String(100), unique=True, nullable=False, index=True)
    watchman_id = Column(Integer, ForeignKey("watchmen.id"))                 # set for cash payments
    created_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)

    def __repr__(self):
        return f"<Payment {self.transaction_id} {self.payment_type} {self.amount} {self.payment_status}>"
