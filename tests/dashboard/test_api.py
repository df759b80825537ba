"""
Tests for the Risk Engine REST API.

Tests cover:
- Assessment creation and validation errors
- Listing, lookup and statistics
- Alert acknowledge / resolve
- Recommendations and intervention records
"""

import pytest
from fastapi.testclient import TestClient

from dashboard.main import create_app, error_status
from risk_engine.engine import RiskEngine
from risk_engine.types import (
    AlertTransitionError,
    MissingSignalError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)


def payload(engagement=80, performance=85, attendance=90, polarity=0.5, student_id="S-1001", **extra):
    body = {
        "student_id": student_id,
        "student_name": "Jane Doe",
        "engagement_inputs": {"submission_rate_pct": engagement},
        "performance_inputs": {"average_grade_pct": performance},
        "attendance_inputs": {"attendance_rate_pct": attendance},
        "sentiment_polarity": polarity,
    }
    body.update(extra)
    return body


STRUGGLING = dict(engagement=20, performance=30, attendance=40, polarity=-0.8)


@pytest.fixture
def client():
    app = create_app(RiskEngine())
    with TestClient(app) as test_client:
        yield test_client


def create(client, **kwargs):
    response = client.post("/risk-assessments", json=payload(**kwargs))
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================
# TEST: Error mapping
# =============================================================

class TestErrorStatus:

    def test_mapping(self):
        assert error_status(ValidationError("bad")) == 400
        assert error_status(MissingSignalError("attendance")) == 400
        assert error_status(NotFoundError("gone")) == 404
        assert error_status(AlertTransitionError("no")) == 409
        assert error_status(PersistenceError("db")) == 500


# =============================================================
# TEST: Create
# =============================================================

class TestCreateAssessment:

    def test_health(self, client):
        assert client.get("/").json()["status"] == "ok"

    def test_low_risk(self, client):
        data = create(client)

        assert data["risk_level"] == "low"
        assert data["dropout_probability"] == pytest.approx(0.1715)
        assert data["factors"] == []
        assert data["alert_triggered"] is False
        assert data["status"] == "active"
        assert data["assessment_number"].startswith("RISK-")

    def test_high_risk(self, client):
        data = create(client, **STRUGGLING)

        assert data["risk_level"] == "high"
        assert data["risk_score"] == 74
        assert data["alert_triggered"] is True
        assert data["alert"]["state"] == "triggered"
        assert [f["factor_type"] for f in data["factors"]] == [
            "engagement", "academic", "attendance", "sentiment",
        ]
        assert data["factors"][0]["factor_name"] == "Low Engagement"
        assert data["factors"][0]["factor_number"].startswith("RF-")
        assert data["engagement_score"] == 20
        assert data["sentiment_score"] == -0.8

    def test_missing_student_id(self, client):
        body = payload()
        del body["student_id"]

        response = client.post("/risk-assessments", json=body)

        assert response.status_code == 400
        assert response.json()["error_type"] == "ValidationError"

    def test_blank_student_id(self, client):
        response = client.post("/risk-assessments", json=payload(student_id="  "))
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "student_id"

    def test_missing_signal(self, client):
        response = client.post("/risk-assessments", json=payload(attendance=None))

        assert response.status_code == 400
        assert response.json()["error_type"] == "MissingSignalError"
        assert client.get("/risk-assessments").json() == []

    def test_unknown_signal_is_neutral(self, client):
        body = payload()
        body["attendance_inputs"] = {"unknown": True}

        response = client.post("/risk-assessments", json=body)

        assert response.status_code == 201
        assert response.json()["attendance_score"] == 50
        assert response.json()["confidence"] == 85
        assert response.json()["fallbacks"] == ["attendance"]

    def test_batch(self, client):
        response = client.post("/risk-assessments/batch", json={"students": [
            payload(student_id="S-1"),
            payload(student_id=""),
            payload(student_id="S-3", **STRUGGLING),
        ]})

        assert response.status_code == 200
        data = response.json()
        assert data["succeeded"] == 2
        assert data["failed"] == 1
        assert data["results"][1]["success"] is False
        assert data["results"][1]["error"]["error_type"] == "ValidationError"
        assert data["results"][2]["assessment"]["risk_level"] == "high"

    def test_empty_batch_rejected(self, client):
        assert client.post("/risk-assessments/batch", json={"students": []}).status_code == 400


# =============================================================
# TEST: Queries
# =============================================================

class TestQueries:

    def test_get_by_id(self, client):
        created = create(client)
        response = client.get(f"/risk-assessments/{created['assessment_id']}")
        assert response.status_code == 200
        assert response.json()["assessment_number"] == created["assessment_number"]

    def test_get_unknown(self, client):
        response = client.get("/risk-assessments/missing")
        assert response.status_code == 404
        assert response.json()["error_type"] == "NotFoundError"

    def test_list_filters(self, client):
        first = create(client, student_id="S-1")
        create(client, student_id="S-2", **STRUGGLING)
        latest = create(client, student_id="S-1")

        assert len(client.get("/risk-assessments").json()) == 3
        high = client.get("/risk-assessments", params={"risk_level": "high"}).json()
        assert [a["student_id"] for a in high] == ["S-2"]
        alerts = client.get("/risk-assessments", params={"alert_triggered": "true"}).json()
        assert [a["student_id"] for a in alerts] == ["S-2"]
        history = client.get("/risk-assessments", params={"student_id": "S-1"}).json()
        assert [a["assessment_id"] for a in history] == [latest["assessment_id"], first["assessment_id"]]
        superseded = client.get("/risk-assessments", params={"status": "superseded"}).json()
        assert [a["assessment_id"] for a in superseded] == [first["assessment_id"]]
        assert len(client.get("/risk-assessments", params={"limit": 1}).json()) == 1

    def test_statistics(self, client):
        create(client, student_id="S-1", **STRUGGLING)
        create(client, student_id="S-2", engagement=5, performance=5, attendance=5, polarity=-1.0)
        create(client, student_id="S-3")

        stats = client.get("/risk-assessments/statistics").json()

        assert stats == {
            "total_assessments": 3,
            "students": 3,
            "critical_risk": 1,
            "high_risk": 1,
            "active_alerts": 2,
        }


# =============================================================
# TEST: Alert workflow
# =============================================================

class TestAlerts:

    def test_acknowledge_twice(self, client):
        created = create(client, **STRUGGLING)
        url = f"/risk-assessments/{created['assessment_id']}/acknowledge"

        first = client.post(url, json={"acknowledged_by": "advisor-1"})
        second = client.post(url, json={"acknowledged_by": "advisor-2"})

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["alert_acknowledged"] is True
        assert second.json()["alert"]["acknowledged_by"] == "advisor-1"

    def test_acknowledge_unknown(self, client):
        assert client.post("/risk-assessments/missing/acknowledge").status_code == 404

    def test_acknowledge_without_alert(self, client):
        created = create(client)
        response = client.post(f"/risk-assessments/{created['assessment_id']}/acknowledge")
        assert response.status_code == 409
        assert response.json()["error_type"] == "AlertTransitionError"

    def test_resolve(self, client):
        created = create(client, **STRUGGLING)
        base = f"/risk-assessments/{created['assessment_id']}"

        assert client.post(f"{base}/resolve").status_code == 409
        client.post(f"{base}/acknowledge")
        response = client.post(f"{base}/resolve", json={"resolved_by": "advisor-1", "note": "Back on track"})

        assert response.status_code == 200
        assert response.json()["alert"]["state"] == "resolved"
        assert response.json()["alert"]["resolution_note"] == "Back on track"


# =============================================================
# TEST: Interventions
# =============================================================

class TestInterventions:

    def test_recommendations(self, client):
        created = create(client, **STRUGGLING)

        proposals = client.get(f"/risk-assessments/{created['assessment_id']}/recommendations").json()

        assert proposals
        assert proposals[0]["factor_type"] == "engagement"
        assert proposals[0]["priority"] == "urgent"
        assert all(p["status"] == "proposed" for p in proposals)

    def test_recommendations_unknown(self, client):
        assert client.get("/risk-assessments/missing/recommendations").status_code == 404

    def test_create_from_recommendation_and_update(self, client):
        created = create(client, **STRUGGLING)
        base = f"/risk-assessments/{created['assessment_id']}"

        response = client.post(f"{base}/interventions", json={"from_recommendation": 0})
        assert response.status_code == 201
        action = response.json()
        assert action["action_number"].startswith("INT-")
        assert action["source"] == "recommender"

        no_date = client.patch(f"/interventions/{action['action_id']}", json={"status": "scheduled"})
        assert no_date.status_code == 409

        scheduled = client.patch(
            f"/interventions/{action['action_id']}",
            json={"status": "scheduled", "scheduled_date": "2026-03-04", "assigned_to": "advisor-2"},
        )
        assert scheduled.status_code == 200
        assert scheduled.json()["scheduled_date"] == "2026-03-04"

        listed = client.get(f"{base}/interventions").json()
        assert [a["status"] for a in listed] == ["scheduled"]

    def test_manual_intervention(self, client):
        created = create(client, **STRUGGLING)

        response = client.post(
            f"/risk-assessments/{created['assessment_id']}/interventions",
            json={
                "action_type": "parent_meeting",
                "description": "Meet with parents",
                "priority": "high",
                "scheduled_date": "2026-03-10",
            },
        )

        assert response.status_code == 201
        assert response.json()["source"] == "manual"
        assert response.json()["status"] == "scheduled"

    def test_bad_recommendation_index(self, client):
        created = create(client)
        response = client.post(
            f"/risk-assessments/{created['assessment_id']}/interventions",
            json={"from_recommendation": 3},
        )
        assert response.status_code == 400

    def test_update_unknown(self, client):
        response = client.patch("/interventions/missing", json={"status": "cancelled"})
        assert response.status_code == 404
