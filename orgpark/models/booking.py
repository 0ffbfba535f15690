# orgpark/models/booking.py
"""
Bookings table.
Rows are never deleted: cancelled / completed / overstay are terminal states.
The partial unique index guarantees one live (confirmed or active) booking
per (lot_id, slot_number).
"""

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, Numeric, String, text
from orgpark.database import Base

CONFIRMED = "confirmed"
ACTIVE = "active"
COMPLETED = "completed"
CANCELLED = "cancelled"
OVERSTAY = "overstay"

LIVE_STATUSES = (CONFIRMED, ACTIVE)
TERMINAL_STATUSES = (COMPLETED, CANCELLED, OVERSTAY)

_LIVE_SLOT_PREDICATE = text("booking_status IN ('confirmed', 'active')")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    lot_id = Column(Integer, ForeignKey("parking_lots.id"), index=True)   # NULL for legacy org-level bookings
    slot_number = Column(Integer)
    slot_label = Column(String(50))
    vehicle_number = Column(String(20), nullable=False, index=True)
    booking_start_time = Column(DateTime, nullable=False)
    booking_end_time = Column(DateTime, nullable=False)
    duration_hours = Column(Float, nullable=False)
    amount = Column(Numeric(10, 2), default=0, nullable=False)
    hourly_rate = Column(Numeric(10, 2), default=0, nullable=False)   # rate snapshot at booking time
    is_member_booking = Column(Boolean, default=False, nullable=False)
    payment_status = Column(String(20), default="pending", nullable=False)   # pending | completed | failed
    booking_status = Column(String(20), default=CONFIRMED, nullable=False, index=True)
    entry_time = Column(DateTime)
    exit_time = Column(DateTime)
    overstay_minutes = Column(Integer, default=0, nullable=False)
    penalty_amount = Column(Numeric(10, 2), default=0, nullable=False)
    qr_token = Column(String(255), unique=True)
    cancelled_by = Column(String(50))   # user | system | payment
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    __table_args__ = (
        Index(
            "uq_bookings_live_slot", "lot_id", "slot_number", unique=True,
            postgresql_where=_LIVE_SLOT_PREDICATE, sqlite_where=_LIVE_SLOT_PREDICATE,
        ),
    )

    def __repr__(self):
        return (f"<Booking {self.id} lot={self.lot_id} slot={self.slot_number} "
                f"status={self.booking_status} payment={self.payment_status}>")
