# orgpark/models/watchman.py
"""
Watchmen table — gate-side actors that authorize entry/exit and record cash.
Identity is managed externally; the engine checks organization and is_active.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from orgpark.database import Base


class Watchman(Base):
    __tablename__ = "watchmen"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    employee_id = Column(String(100))
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime)

    def __repr__(self):
        return f"<Watchman {self.id} org={self.organization_id} active={self.is_active}>"
