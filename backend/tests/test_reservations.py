"""
Tests for reservations: feature gates, conflicts and the monthly quota.
"""
from datetime import date, timedelta

import pytest

from assettracer.services.reservation_service import overlaps

from conftest import ORG_ID


START = date.today() + timedelta(days=7)
END = START + timedelta(days=2)


def _payload(**fields):
    payload = {
        "title": "Wedding shoot",
        "start_date": START.isoformat(),
        "end_date": END.isoformat(),
    }
    payload.update(fields)
    return payload


def _book(fake_db, asset_id, status="confirmed", start=START, end=END):
    reservation = fake_db.seed(
        "reservations", organization_id=ORG_ID, title="Existing booking",
        start_date=start.isoformat(), end_date=end.isoformat(), status=status,
    )
    fake_db.seed("reservation_assets", organization_id=ORG_ID, reservation_id=reservation["id"], asset_id=asset_id, quantity=1)
    return reservation


@pytest.fixture
def camera(fake_db):
    return fake_db.seed("assets", organization_id=ORG_ID, name="Camera", category="Video")


def test_overlap_is_inclusive():
    assert overlaps(date(2026, 1, 1), date(2026, 1, 3), date(2026, 1, 3), date(2026, 1, 5))
    assert not overlaps(date(2026, 1, 1), date(2026, 1, 2), date(2026, 1, 3), date(2026, 1, 5))


class TestCreateReservation:
    def test_create_with_assets(self, client, fake_db, free_org, camera):
        response = client.post("/api/v1/reservations", json=_payload(asset_ids=[camera["id"]], quantities={camera["id"]: 2}))

        assert response.status_code == 201
        data = response.json()
        assert data["reserved_by"] == "user-1"
        assert data["assets"] == [{"asset_id": camera["id"], "quantity": 2}]

    def test_end_before_start(self, client, free_org, camera):
        payload = _payload(asset_ids=[camera["id"]], end_date=(START - timedelta(days=1)).isoformat())
        assert client.post("/api/v1/reservations", json=payload).status_code == 422

    def test_nothing_to_reserve(self, client, free_org):
        assert client.post("/api/v1/reservations", json=_payload()).status_code == 422

    def test_unknown_asset(self, client, free_org):
        response = client.post("/api/v1/reservations", json=_payload(asset_ids=["missing"]))
        assert response.status_code == 400

    def test_monthly_quota_on_free(self, client, fake_db, free_org, camera):
        for i in range(10):
            fake_db.seed("reservations", organization_id=ORG_ID, title=f"Booking {i}",
                         start_date="2020-01-01", end_date="2020-01-02", status="completed")

        response = client.post("/api/v1/reservations", json=_payload(asset_ids=[camera["id"]]))

        assert response.status_code == 403
        assert response.json()["resource"] == "maxReservationsPerMonth"


class TestReservationFeatures:
    def test_kits_need_kit_reservations(self, client, fake_db, free_org):
        response = client.post("/api/v1/reservations", json=_payload(kit_ids=["kit-1"]))

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "feature_not_available"
        assert body["feature"] == "hasKitReservations"

    def test_feature_is_reported_before_quota(self, client, fake_db, free_org):
        for i in range(10):
            fake_db.seed("reservations", organization_id=ORG_ID, title=f"Booking {i}",
                         start_date="2020-01-01", end_date="2020-01-02", status="completed")

        response = client.post("/api/v1/reservations", json=_payload(kit_ids=["kit-1"]))

        assert response.status_code == 403
        assert response.json()["error"] == "feature_not_available"

    def test_kit_expands_to_assets_on_pro(self, client, fake_db, pro_org, camera):
        kit = fake_db.seed("asset_kits", organization_id=ORG_ID, name="Interview kit")
        fake_db.seed("asset_kit_items", organization_id=ORG_ID, kit_id=kit["id"], asset_id=camera["id"], quantity=2)

        response = client.post("/api/v1/reservations", json=_payload(kit_ids=[kit["id"]]))

        assert response.status_code == 201
        assert response.json()["assets"] == [{"asset_id": camera["id"], "quantity": 2}]

    def test_locations_are_business_only(self, client, fake_db, pro_org):
        location = fake_db.seed("locations", organization_id=ORG_ID, name="Studio A")

        response = client.post("/api/v1/reservations", json=_payload(location_id=location["id"]))

        assert response.status_code == 403
        assert response.json()["feature"] == "hasLocationReservations"
        assert response.json()["required_tier"] == "business"

    def test_location_on_business(self, client, fake_db, business_org):
        location = fake_db.seed("locations", organization_id=ORG_ID, name="Studio A")

        response = client.post("/api/v1/reservations", json=_payload(location_id=location["id"]))

        assert response.status_code == 201
        assert response.json()["location_id"] == location["id"]


class TestConflicts:
    def test_conflict_is_409(self, client, fake_db, free_org, camera):
        existing = _book(fake_db, camera["id"])

        response = client.post("/api/v1/reservations", json=_payload(asset_ids=[camera["id"]]))

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["error"] == "reservation_conflict"
        assert detail["conflicts"][0]["conflicts"][0]["reservation_id"] == existing["id"]

    def test_cancelled_reservations_do_not_block(self, client, fake_db, free_org, camera):
        _book(fake_db, camera["id"], status="cancelled")
        response = client.post("/api/v1/reservations", json=_payload(asset_ids=[camera["id"]]))
        assert response.status_code == 201

    def test_override_needs_business(self, client, fake_db, pro_org, camera):
        _book(fake_db, camera["id"])

        response = client.post(
            "/api/v1/reservations", json=_payload(asset_ids=[camera["id"]], override_conflicts=True)
        )

        assert response.status_code == 403
        assert response.json()["feature"] == "hasConflictOverride"

    def test_override_on_business(self, client, fake_db, business_org, camera):
        _book(fake_db, camera["id"])

        response = client.post(
            "/api/v1/reservations", json=_payload(asset_ids=[camera["id"]], override_conflicts=True)
        )
        assert response.status_code == 201

    def test_check_availability(self, client, fake_db, free_org, camera):
        tripod = fake_db.seed("assets", organization_id=ORG_ID, name="Tripod")
        _book(fake_db, camera["id"], start=START + timedelta(days=1), end=START + timedelta(days=1))

        response = client.post("/api/v1/reservations/check-availability", json={
            "asset_ids": [camera["id"], tripod["id"]],
            "start_date": START.isoformat(),
            "end_date": END.isoformat(),
        })

        assert response.status_code == 200
        availability = {a["asset_id"]: a for a in response.json()["availability"]}
        assert availability[camera["id"]]["is_available"] is False
        assert availability[tripod["id"]]["is_available"] is True
        assert availability[tripod["id"]]["asset_name"] == "Tripod"


class TestReservationLifecycle:
    def test_cancel(self, client, fake_db, free_org, camera):
        reservation = _book(fake_db, camera["id"])

        response = client.post(f"/api/v1/reservations/{reservation['id']}/cancel")

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    def test_cancel_unknown(self, client, free_org):
        assert client.post("/api/v1/reservations/missing/cancel").status_code == 404

    def test_packing_list_pdf(self, client, fake_db, free_org, camera):
        reservation = _book(fake_db, camera["id"])

        response = client.get(f"/api/v1/reservations/{reservation['id']}/packing-list")

        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")
