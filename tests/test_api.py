"""End-to-end tests for the HTTP layer using the in-memory store."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import complaint_fields

ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
CITIZEN = {"X-User-Id": "citizen-1", "X-User-Role": "citizen", "X-User-Phone": "9876543220"}
OTHER_CITIZEN = {"X-User-Id": "citizen-2", "X-User-Role": "citizen", "X-User-Phone": "9876543221"}
TECHNICIAN = {"X-User-Id": "user:9876543211", "X-User-Role": "technician"}


@pytest.fixture
def client():
    """A client with a fresh app lifespan, and so a fresh store, per test."""
    from src.main import app

    with TestClient(app) as c:
        yield c


def _new_technician(client: TestClient, **overrides) -> dict:
    body = {"name": "Ramesh Kumar", "phone": "9876543211", "specialization": ["water", "sanitation"]}
    body.update(overrides)
    response = client.post("/api/v1/technicians", json=body, headers=ADMIN)
    assert response.status_code == 201, response.text
    return response.json()


def _new_complaint(client: TestClient, **overrides) -> dict:
    body = complaint_fields(category="water", **overrides)
    response = client.post("/api/v1/complaints", json=body, headers=CITIZEN)
    assert response.status_code == 201, response.text
    return response.json()


class TestService:
    def test_api_info(self, client: TestClient) -> None:
        data = client.get("/api").json()
        assert data["name"] == "Gram Shikayat API"
        assert "water" in data["categories"]

    def test_health(self, client: TestClient) -> None:
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_readiness(self, client: TestClient) -> None:
        data = client.get("/api/v1/health/ready").json()
        assert data["status"] == "ready"
        assert data["checks"] == {"store": "ok", "complaints": "ok", "technicians": "ok"}


class TestAuthentication:
    def test_missing_identity_is_401(self, client: TestClient) -> None:
        response = client.get("/api/v1/complaints")
        assert response.status_code == 401

    def test_unknown_role_is_401(self, client: TestClient) -> None:
        response = client.get(
            "/api/v1/complaints", headers={"X-User-Id": "x", "X-User-Role": "mayor"}
        )
        assert response.status_code == 401

    def test_wrong_role_is_403(self, client: TestClient) -> None:
        response = client.get("/api/v1/reports/dashboard", headers=CITIZEN)
        assert response.status_code == 403

    def test_citizen_cannot_assign(self, client: TestClient) -> None:
        complaint = _new_complaint(client)
        response = client.post(
            f"/api/v1/complaints/{complaint['id']}/assign",
            json={"technician_id": "anyone"},
            headers=CITIZEN,
        )
        assert response.status_code == 403


class TestComplaintFlow:
    def test_create_uses_caller_phone(self, client: TestClient) -> None:
        complaint = _new_complaint(client, citizen_phone="9000000000")
        assert complaint["citizen_phone"] == "9876543220"
        assert complaint["status"] == "submitted"
        assert complaint["complaint_id"].startswith("CMP")
        assert len(complaint["status_history"]) == 1

    def test_invalid_body_is_422(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/complaints",
            json={"category": "water", "description": "x"},
            headers=CITIZEN,
        )
        assert response.status_code == 422

    def test_public_tracking_hides_personal_data(self, client: TestClient) -> None:
        complaint = _new_complaint(client)
        response = client.get(f"/api/v1/complaints/track/{complaint['complaint_id']}")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "submitted"
        assert "citizen_phone" not in data
        assert "internal_notes" not in data

    def test_unknown_complaint_is_404(self, client: TestClient) -> None:
        response = client.get("/api/v1/complaints/track/CMP999900001")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_public_tracking_hides_staff_ids(self, client: TestClient) -> None:
        tech = _new_technician(client)
        complaint = _new_complaint(client)
        client.post(
            f"/api/v1/complaints/{complaint['id']}/assign",
            json={"technician_id": tech["id"]},
            headers=ADMIN,
        )
        data = client.get(f"/api/v1/complaints/track/{complaint['complaint_id']}").json()
        assert [h["status"] for h in data["status_history"]] == ["submitted", "assigned"]
        for entry in data["status_history"]:
            assert "changed_by" not in entry, "Public tracking must not reveal who changed a status"

    def test_citizens_only_see_their_own(self, client: TestClient) -> None:
        complaint = _new_complaint(client)
        assert client.get(f"/api/v1/complaints/{complaint['id']}", headers=CITIZEN).status_code == 200
        assert (
            client.get(f"/api/v1/complaints/{complaint['id']}", headers=OTHER_CITIZEN).status_code
            == 403
        )
        listing = client.get("/api/v1/complaints", headers=OTHER_CITIZEN).json()
        assert listing["total"] == 0

    def test_specialization_mismatch_is_400(self, client: TestClient) -> None:
        tech = _new_technician(client)
        roads = client.post(
            "/api/v1/complaints", json=complaint_fields(category="roads"), headers=CITIZEN
        ).json()
        response = client.post(
            f"/api/v1/complaints/{roads['id']}/assign",
            json={"technician_id": tech["id"]},
            headers=ADMIN,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "specialization_mismatch"

    def test_assign_work_and_resolve(self, client: TestClient) -> None:
        tech = _new_technician(client)
        complaint = _new_complaint(client)

        assigned = client.post(
            f"/api/v1/complaints/{complaint['complaint_id']}/assign",
            json={"technician_id": tech["id"], "priority": "high"},
            headers=ADMIN,
        )
        assert assigned.status_code == 200, assigned.text
        assert assigned.json()["assigned_to"] == tech["id"]
        assert assigned.json()["priority"] == "high"

        mine = client.get("/api/v1/complaints", headers=TECHNICIAN).json()
        assert [c["id"] for c in mine["complaints"]] == [complaint["id"]]

        started = client.patch(
            f"/api/v1/complaints/{complaint['id']}/status",
            json={"status": "in-progress", "notes": "On site"},
            headers=TECHNICIAN,
        )
        assert started.json()["status"] == "in-progress"

        resolved = client.post(
            f"/api/v1/complaints/{complaint['id']}/resolve",
            json={"resolution_notes": "Pipe replaced"},
            headers=TECHNICIAN,
        )
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "resolved"
        assert resolved.json()["resolution_notes"] == "Pipe replaced"

        detail = client.get(f"/api/v1/technicians/{tech['id']}", headers=ADMIN).json()
        assert detail["technician"]["active_complaints"] == 0
        assert detail["technician"]["resolved_count"] == 1

    def test_invalid_transition_is_409(self, client: TestClient) -> None:
        complaint = _new_complaint(client)
        response = client.patch(
            f"/api/v1/complaints/{complaint['id']}/status",
            json={"status": "in-progress"},
            headers=ADMIN,
        )
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"

    def test_internal_note(self, client: TestClient) -> None:
        complaint = _new_complaint(client)
        response = client.post(
            f"/api/v1/complaints/{complaint['id']}/notes",
            json={"note": "Called the citizen"},
            headers=ADMIN,
        )
        assert response.status_code == 200
        assert response.json()["internal_notes"][0]["note"] == "Called the citizen"


class TestTechnicians:
    def test_default_user_id(self, client: TestClient) -> None:
        tech = _new_technician(client)
        assert tech["user_id"] == "user:9876543211"

    def test_duplicate_phone_is_400(self, client: TestClient) -> None:
        _new_technician(client)
        response = client.post(
            "/api/v1/technicians",
            json={"name": "Another", "phone": "9876543211", "specialization": ["roads"]},
            headers=ADMIN,
        )
        assert response.status_code == 400

    def test_technician_updates_own_location(self, client: TestClient) -> None:
        tech = _new_technician(client)
        response = client.put(
            "/api/v1/technicians/location",
            json={"latitude": 23.7, "longitude": 86.97},
            headers=TECHNICIAN,
        )
        assert response.status_code == 200
        assert response.json()["id"] == tech["id"]
        assert response.json()["location"] == {"latitude": 23.7, "longitude": 86.97}

    def test_technician_cannot_change_specialization(self, client: TestClient) -> None:
        tech = _new_technician(client)
        response = client.put(
            f"/api/v1/technicians/{tech['id']}",
            json={"specialization": ["roads"]},
            headers=TECHNICIAN,
        )
        assert response.status_code == 403

    def test_delete_blocked_by_active_work(self, client: TestClient) -> None:
        tech = _new_technician(client)
        complaint = _new_complaint(client)
        client.post(
            f"/api/v1/complaints/{complaint['id']}/assign",
            json={"technician_id": tech["id"]},
            headers=ADMIN,
        )

        response = client.delete(f"/api/v1/technicians/{tech['id']}", headers=ADMIN)
        assert response.status_code == 409
        assert response.json()["active_complaints"] == 1

        client.post(f"/api/v1/complaints/{complaint['id']}/resolve", json={}, headers=ADMIN)
        assert client.delete(f"/api/v1/technicians/{tech['id']}", headers=ADMIN).status_code == 204


class TestReports:
    def test_empty_dashboard(self, client: TestClient) -> None:
        data = client.get("/api/v1/reports/dashboard", headers=ADMIN).json()
        assert data["total_complaints"] == 0
        assert data["category_stats"] == []
        assert data["recent_complaints"] == []

    def test_dashboard_and_monthly_report(self, client: TestClient) -> None:
        _new_technician(client)
        _new_complaint(client)
        _new_complaint(client)

        dashboard = client.get("/api/v1/reports/dashboard", headers=ADMIN).json()
        assert dashboard["total_complaints"] == 2
        assert dashboard["pending_complaints"] == 2
        assert dashboard["active_technicians"] == 1
        assert dashboard["category_stats"] == [{"category": "water", "count": 2}]

        report = client.get("/api/v1/reports/monthly", headers=ADMIN).json()
        assert report["summary"]["total_complaints"] == 2
        assert report["summary"]["month_over_month_change"] == 0

    def test_monthly_report_validates_month(self, client: TestClient) -> None:
        response = client.get("/api/v1/reports/monthly?month=13", headers=ADMIN)
        assert response.status_code == 422

    def test_monthly_report_filters_by_technician(self, client: TestClient) -> None:
        first = _new_technician(client)
        second = _new_technician(client, name="Dinesh Yadav", phone="9876543230")
        complaints = [_new_complaint(client) for _ in range(3)]
        for complaint, tech in zip(complaints, (first, first, second)):
            response = client.post(
                f"/api/v1/complaints/{complaint['id']}/assign",
                json={"technician_id": tech["id"]},
                headers=ADMIN,
            )
            assert response.status_code == 200, response.text

        everyone = client.get("/api/v1/reports/monthly", headers=ADMIN).json()
        assert everyone["summary"]["total_complaints"] == 3

        report = client.get(
            f"/api/v1/reports/monthly?technicianId={second['id']}", headers=ADMIN
        ).json()
        assert report["summary"]["total_complaints"] == 1
        assert [row["technician_id"] for row in report["technician_performance"]] == [second["id"]]
        assert report["technician_performance"][0]["assigned"] == 1

    def test_stats_overview(self, client: TestClient) -> None:
        _new_complaint(client)
        data = client.get("/api/v1/complaints/stats/overview", headers=ADMIN).json()
        assert data["total"] == 1
        assert data["status_counts"]["submitted"] == 1
