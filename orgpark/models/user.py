# orgpark/models/user.py
"""
Users table (read-only for the booking engine).
Accounts are created by the external auth flow; the engine only reads
user_type and home organization to price bookings.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from orgpark.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(200))
    mobile = Column(String(30))
    user_type = Column(String(30), nullable=False, default="visitor")  # visitor | organization_member | walk_in | admin
    organization_id = Column(Integer, ForeignKey("organizations.id"))  # home organization for members
    created_at = Column(DateTime)

    def __repr__(self):
        return f"<User {self.id} {self.name} type={self.user_type}>"
