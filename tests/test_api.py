# tests/test_api.py
"""HTTP-level tests: routing, status codes and error bodies."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from datetime import timedelta
from decimal import Decimal
from fastapi.testclient import TestClient
from orgpark.database import get_db
from orgpark.main import app
from orgpark.utils.clock import utcnow


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def world(make_org, make_lot, make_user, make_watchman):
    org = make_org(rate="50.00")
    lot = make_lot(org, name="North", total=1)
    return {"org": org, "lot": lot, "visitor": make_user(), "watchman": make_watchman(org)}


def booking_body(world, hours_ahead=1, hours=2, plate="KA01AB1234"):
    start = utcnow() + timedelta(hours=hours_ahead)
    return {
        "user_id": world["visitor"].id,
        "organization_id": world["org"].id,
        "vehicle_number": plate,
        "booking_start_time": start.isoformat(),
        "booking_end_time": (start + timedelta(hours=hours)).isoformat(),
    }


class TestBookingsApi:
    def test_health(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["database"] == "ok"

    def test_create_and_fetch_booking(self, client, world):
        resp = client.post("/api/v1/bookings", json=booking_body(world))
        assert resp.status_code == 201
        data = resp.json()
        assert data["slot_label"] == "North-1"
        assert data["booking_status"] == "confirmed"
        assert Decimal(str(data["amount"])) == Decimal("100.00")
        assert data["qr_token"].startswith("OPK1.")

        fetched = client.get(f"/api/v1/bookings/{data['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == data["id"]

    def test_full_organization_returns_409(self, client, world):
        assert client.post("/api/v1/bookings", json=booking_body(world)).status_code == 201
        resp = client.post("/api/v1/bookings", json=booking_body(world))
        assert resp.status_code == 409
        assert resp.json()["code"] == "no_capacity"

    def test_invalid_window_returns_422(self, client, world):
        resp = client.post("/api/v1/bookings", json=booking_body(world, hours=-1))
        assert resp.status_code == 422
        assert resp.json()["code"] == "invalid_window"

    def test_unknown_booking_returns_404(self, client):
        resp = client.get("/api/v1/bookings/12345")
        assert resp.status_code == 404
        assert resp.json()["code"] == "booking_not_found"

    def test_cancel_then_recancel(self, client, world):
        booking = client.post("/api/v1/bookings", json=booking_body(world)).json()
        url = f"/api/v1/bookings/{booking['id']}/cancel"

        resp = client.post(url, json={"user_id": world["visitor"].id})
        assert resp.status_code == 200
        assert resp.json()["booking_status"] == "cancelled"

        again = client.post(url, json={"user_id": world["visitor"].id})
        assert again.status_code == 409
        assert again.json()["code"] == "already_started"

    def test_cancel_without_user_rejected(self, client, world):
        booking = client.post("/api/v1/bookings", json=booking_body(world)).json()
        url = f"/api/v1/bookings/{booking['id']}/cancel"

        assert client.post(url).status_code == 422
        assert client.post(url, json={}).status_code == 422
        assert client.get(f"/api/v1/bookings/{booking['id']}").json()["booking_status"] == "confirmed"

    def test_user_bookings_listing(self, client, world):
        first = client.post("/api/v1/bookings", json=booking_body(world)).json()
        client.post(f"/api/v1/bookings/{first['id']}/cancel", json={"user_id": world["visitor"].id})
        second = client.post("/api/v1/bookings", json=booking_body(world, plate="MH12DE3456")).json()

        resp = client.get(f"/api/v1/users/{world['visitor'].id}/bookings")
        assert resp.status_code == 200
        assert {b["id"] for b in resp.json()} == {first["id"], second["id"]}

        assert client.get("/api/v1/users/12345/bookings").status_code == 404

    def test_active_bookings_listing(self, client, world):
        client.post("/api/v1/bookings", json=booking_body(world))
        resp = client.get(f"/api/v1/organizations/{world['org'].id}/bookings/active")
        assert resp.status_code == 200
        assert len(resp.json()) == 1


class TestGateApi:
    def test_walk_in_then_exit(self, client, world):
        resp = client.post("/api/v1/watchmen/walk-in", json={
            "watchman_id": world["watchman"].id,
            "user_id": world["visitor"].id,
            "vehicle_number": "MH12DE3456",
            "estimated_duration": 1,
        })
        assert resp.status_code == 201
        booking = resp.json()
        assert booking["booking_status"] == "active"

        exit_resp = client.post("/api/v1/watchmen/verify-exit", json={
            "watchman_id": world["watchman"].id,
            "token_or_booking_id": booking["qr_token"],
        })
        assert exit_resp.status_code == 200
        receipt = exit_resp.json()
        assert receipt["booking_status"] == "completed"
        assert receipt["booking_id"] == booking["id"]

        lots = client.get(f"/api/v1/organizations/{world['org'].id}/lots").json()
        assert lots[0]["available_slots"] == 1

    def test_tampered_token_rejected(self, client, world):
        booking = client.post("/api/v1/bookings", json=booking_body(world)).json()
        resp = client.post("/api/v1/watchmen/scan", json={
            "watchman_id": world["watchman"].id,
            "qr_token": booking["qr_token"][:-1] + ("0" if booking["qr_token"][-1] != "0" else "1"),
        })
        assert resp.status_code == 400
        assert resp.json()["code"] == "token_invalid"

    def test_entry_before_start_rejected(self, client, world):
        booking = client.post("/api/v1/bookings", json=booking_body(world, hours_ahead=3)).json()
        resp = client.post("/api/v1/watchmen/verify-entry", json={
            "watchman_id": world["watchman"].id,
            "token_or_booking_id": booking["id"],
        })
        assert resp.status_code == 409
        assert resp.json()["code"] == "entry_too_early"

    def test_watchman_status(self, client, world):
        client.post("/api/v1/bookings", json=booking_body(world))
        resp = client.get(f"/api/v1/watchmen/{world['watchman'].id}/status")
        assert resp.status_code == 200
        assert resp.json()["organization"]["occupied_slots"] == 1


class TestPaymentsAndLotsApi:
    def test_failed_payment_cancels_booking(self, client, world):
        booking = client.post("/api/v1/bookings", json=booking_body(world)).json()
        payments = client.get(f"/api/v1/bookings/{booking['id']}/payments").json()
        assert len(payments) == 1

        resp = client.post("/api/v1/payments/result", json={
            "booking_id": booking["id"],
            "status": "failed",
            "transaction_id": payments[0]["transaction_id"],
        })
        assert resp.status_code == 200
        assert resp.json()["booking_status"] == "cancelled"

    def test_open_resize_and_reconcile_lot(self, client, world):
        resp = client.post(f"/api/v1/organizations/{world['org'].id}/lots",
                           json={"name": "South", "total_slots": 4, "priority_order": 2})
        assert resp.status_code == 201
        lot_id = resp.json()["id"]

        resized = client.put(f"/api/v1/lots/{lot_id}/capacity", json={"total_slots": 6})
        assert resized.status_code == 200
        assert resized.json()["available_slots"] == 6

        capacity = client.post(f"/api/v1/organizations/{world['org'].id}/reconcile").json()
        assert capacity["total_slots"] == 7

    def test_shrink_below_occupied_returns_409(self, client, world):
        client.post("/api/v1/bookings", json=booking_body(world))
        resp = client.put(f"/api/v1/lots/{world['lot'].id}/capacity", json={"total_slots": 0})
        assert resp.status_code == 409
        assert resp.json()["code"] == "below_occupied"

    def test_slot_map(self, client, world):
        booking = client.post("/api/v1/bookings", json=booking_body(world)).json()
        resp = client.get(f"/api/v1/lots/{world['lot'].id}/slots")
        assert resp.status_code == 200
        slots = resp.json()["slots"]
        assert len(slots) == 1
        assert slots[0]["status"] == "occupied"
        assert slots[0]["booking_id"] == booking["id"]
        assert slots[0]["slot_label"] == "North-1"

        assert client.get("/api/v1/lots/12345/slots").status_code == 404
