# orgpark/models/organization.py
"""
Organizations table.
total_slots / available_slots are a cached projection of the organization's
active parking lots; capacity_ledger.reconcile_organization() rewrites them.
Booking flows always read lot-level counters.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String
from orgpark.database import Base


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    total_slots = Column(Integer, default=0, nullable=False)
    available_slots = Column(Integer, default=0, nullable=False)
    member_parking_free = Column(Boolean, default=True, nullable=False)
    visitor_hourly_rate = Column(Numeric(10, 2), default=0, nullable=False)
    created_at = Column(DateTime)

    def __repr__(self):
        return f"<Organization {self.id} {self.name} slots={self.available_slots}/{self.total_slots}>"
