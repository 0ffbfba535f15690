# orgpark/models/parking_lot.py
"""
Parking lots table — the authoritative capacity inventory.
Lots are filled in priority_order (lower first, then lowest id).
available_slots is only changed through services/capacity_ledger.py.
"""

import re

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text
from orgpark.database import Base


class ParkingLot(Base):
    __tablename__ = "parking_lots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    total_slots = Column(Integer, nullable=False)
    available_slots = Column(Integer, nullable=False)
    priority_order = Column(Integer, default=1, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint("available_slots >= 0", name="ck_lot_available_nonnegative"),
        CheckConstraint("available_slots <= total_slots", name="ck_lot_available_lte_total"),
    )

    @property
    def occupied_slots(self) -> int:
        return self.total_slots - self.available_slots

    def slot_label(self, slot_number: int) -> str:
        """Human-readable slot name, e.g. 'E-Building-4'."""
        prefix = re.sub(r"\s+", "-", self.name.strip())[:20]
        return f"{prefix}-{slot_number}"

    def __repr__(self):
        return f"<ParkingLot {self.id} {self.name} {self.available_slots}/{self.total_slots} prio={self.priority_order}>"
