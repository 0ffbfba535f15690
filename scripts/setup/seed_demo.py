# scripts/setup/seed_demo.py
"""
Seed a demo organization: two lots, a member, a visitor and a watchman.
Safe to re-run — exits early if the demo organization already exists.
Usage: python scripts/setup/seed_demo.py [--slots 10 5] [--rate 50]
"""

import argparse
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from decimal import Decimal

from orgpark.database import SessionLocal, create_tables
from orgpark.models.organization import Organization
from orgpark.models.user import User
from orgpark.models.watchman import Watchman
from orgpark.services import booking_orchestrator
from orgpark.utils.clock import utcnow

DEMO_ORG = "Demo Tech Park"


def seed(slots, rate):
    db = SessionLocal()
    try:
        if db.query(Organization).filter(Organization.name == DEMO_ORG).first():
            print(f"ℹ️  '{DEMO_ORG}' already seeded — nothing to do")
            return

        now = utcnow()
        org = Organization(name=DEMO_ORG, member_parking_free=True,
                           visitor_hourly_rate=Decimal(str(rate)), created_at=now)
        db.add(org)
        db.commit()

        for priority, total in enumerate(slots, start=1):
            lot = booking_orchestrator.open_lot(db, org.id, f"Lot {chr(64 + priority)}", total, priority)
            print(f"   ✓ {lot.name}: {lot.total_slots} slots (priority {priority})")

        member = User(name="Demo Member", email="member@demo.local", user_type="organization_member",
                      organization_id=org.id, created_at=now)
        visitor = User(name="Demo Visitor", email="visitor@demo.local", user_type="visitor", created_at=now)
        watchman = Watchman(organization_id=org.id, name="Gate 1", employee_id="W-001", created_at=now)
        db.add_all([member, visitor, watchman])
        db.commit()

        print(f"\n✅ Organization id={org.id}  member id={member.id}  visitor id={visitor.id}  "
              f"watchman id={watchman.id}")
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo data for local testing")
    parser.add_argument("--slots", type=int, nargs="+", default=[10, 5], help="Slots per lot, in priority order")
    parser.add_argument("--rate", type=float, default=50.0, help="Visitor hourly rate")
    args = parser.parse_args()

    print("🌱 Seeding demo data")
    create_tables()
    seed(args.slots, args.rate)
