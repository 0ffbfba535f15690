# tests/conftest.py
"""
Shared fixtures: a fresh SQLite database per test plus small factories for
organizations, lots, users and watchmen.
"""

import os
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Must be set before orgpark.config is imported anywhere.
os.environ.setdefault("DATABASE_URL", "sqlite:///./orgpark_test.db")
os.environ.setdefault("QR_TOKEN_SECRET", "test-secret")
os.environ.setdefault("AUTO_ACTIVATE_ENABLED", "false")

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from orgpark.database import build_engine, create_tables
from orgpark.models.organization import Organization
from orgpark.models.parking_lot import ParkingLot
from orgpark.models.user import User
from orgpark.models.watchman import Watchman

# Fixed clock for every time-dependent test.
NOW = datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'orgpark.db'}")
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_org(db):
    def _make(name="Acme Corp", rate="50.00", member_free=True):
        org = Organization(name=name, visitor_hourly_rate=Decimal(rate), member_parking_free=member_free,
                           total_slots=0, available_slots=0, created_at=NOW)
        db.add(org)
        db.commit()
        return org
    return _make


@pytest.fixture
def make_lot(db):
    def _make(org, name="North", total=2, priority=1, available=None):
        lot = ParkingLot(organization_id=org.id, name=name, total_slots=total,
                         available_slots=total if available is None else available,
                         priority_order=priority, is_active=True, created_at=NOW, updated_at=NOW)
        db.add(lot)
        db.commit()
        return lot
    return _make


@pytest.fixture
def make_user(db):
    def _make(user_type="visitor", org=None, name="Test User"):
        user = User(name=name, user_type=user_type, organization_id=org.id if org else None, created_at=NOW)
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def make_watchman(db):
    def _make(org, active=True, name="Gate 1"):
        watchman = Watchman(organization_id=org.id, name=name, is_active=active, created_at=NOW)
        db.add(watchman)
        db.commit()
        return watchman
    return _make
