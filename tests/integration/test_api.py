"""
Integration tests for the REST API.

The app is built around an in-memory service with a pinned clock; the
background recompute worker is disabled so recomputes run on request.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from src.api.main import create_app

pytestmark = pytest.mark.integration


@pytest.fixture
def client(service):
    with TestClient(create_app(service=service, start_worker=False)) as test_client:
        yield test_client


def event_payload(n, kind="error", tool="phonics", user_id="learner-1", **performance):
    return {
        "id": f"api-evt-{n:03d}",
        "user_id": user_id,
        "timestamp": f"2026-01-05T08:{n:02d}:00Z",
        "tool_name": tool,
        "event_kind": kind,
        "performance": performance,
    }


@pytest.fixture
def learner_with_recommendations(client):
    """Three phonics failures followed by a recompute."""
    response = client.post("/events/batch", json={"events": [event_payload(n) for n in range(1, 4)]})
    assert response.status_code == 200
    response = client.post("/users/learner-1/recompute")
    assert response.status_code == 200
    return client.get("/users/learner-1/recommendations").json()["recommendations"]


class TestHealth:
    def test_root(self, client):
        assert client.get("/").json()["service"] == "learnloop"

    def test_health_reports_memory_store(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["components"]["store"] == "memory"
        assert data["components"]["scheduler"] == "disabled"
        assert data["components"]["insight_service"] == "not_configured"


class TestEvents:
    def test_ingest_returns_201(self, client, sample_event_payload):
        response = client.post("/events", json=sample_event_payload)
        assert response.status_code == 201
        assert response.json() == {"event_id": "evt-payload-001", "applied": True}

    def test_replay_is_acknowledged(self, client, sample_event_payload):
        client.post("/events", json=sample_event_payload)
        response = client.post("/events", json=sample_event_payload)
        assert response.status_code == 201
        assert response.json()["applied"] is False

    def test_out_of_range_accuracy(self, client, sample_event_payload):
        sample_event_payload["performance"]["accuracy"] = 150
        response = client.post("/events", json=sample_event_payload)
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_unknown_event_kind(self, client, sample_event_payload):
        sample_event_payload["event_kind"] = "teleport"
        assert client.post("/events", json=sample_event_payload).status_code == 400

    def test_out_of_order_event(self, client):
        client.post("/events", json=event_payload(30))
        response = client.post("/events", json=event_payload(10))
        assert response.status_code == 400
        assert response.json()["field"] == "timestamp"
        assert "earlier than" in response.json()["detail"]

    def test_batch_reorders(self, client):
        events = [event_payload(n) for n in (5, 3, 4)]
        response = client.post("/events/batch", json={"events": events})

        assert response.status_code == 200
        assert response.json()["applied"] == ["api-evt-003", "api-evt-004", "api-evt-005"]

    def test_empty_batch(self, client):
        assert client.post("/events/batch", json={"events": []}).status_code == 400


class TestUsers:
    def test_unknown_user_is_404(self, client):
        response = client.get("/users/nobody/profile")
        assert response.status_code == 404
        assert response.json()["kind"] == "user"

    def test_profile_after_ingest(self, client, sample_event_payload):
        client.post("/events", json=sample_event_payload)

        profile = client.get("/users/learner-1/profile").json()

        assert set(profile["skills"]) == {"working_memory", "visual_processing", "attention"}
        assert client.get("/users").json() == {"users": ["learner-1"], "count": 1}

    def test_recompute_and_query(self, client, learner_with_recommendations):
        recs = learner_with_recommendations
        assert len(recs) == 2
        assert recs[0]["activity"]["game_type"] == "phonics_tiles"

        patterns = client.get("/users/learner-1/patterns").json()
        assert "challenge:phonics" in {p["key"] for p in patterns["patterns"]}

        focus = client.get("/users/learner-1/focus").json()
        assert focus["current"]["areas"][0]["area"] == "phonics skill building"

    def test_energy_filter(self, client, learner_with_recommendations):
        response = client.get("/users/learner-1/recommendations", params={"energy": "low"})
        assert response.json()["count"] == 0

        response = client.get("/users/learner-1/recommendations", params={"energy": "sleepy"})
        assert response.status_code == 400

    def test_available_minutes_clamps(self, client, learner_with_recommendations):
        response = client.get("/users/learner-1/recommendations", params={"available_minutes": 10})
        data = response.json()

        assert data["count"] == 2
        assert {r["timing"]["duration_minutes"] for r in data["recommendations"]} == {10}

    def test_bundle(self, client, learner_with_recommendations):
        bundle = client.get("/users/learner-1/bundle", params={"minutes": 30, "focus": "phonics"}).json()
        assert bundle["estimated_total_minutes"] <= 30
        assert len(bundle["recommendations"]) == 1

    def test_bundle_requires_minutes(self, client, learner_with_recommendations):
        assert client.get("/users/learner-1/bundle").status_code == 400

    def test_effectiveness(self, client, learner_with_recommendations):
        data = client.get("/users/learner-1/effectiveness").json()
        assert data["total_recommendations"] == 2
        assert data["outcomes_recorded"] == 0


class TestRecommendations:
    def test_unknown_recommendation(self, client):
        assert client.get("/recommendations/rec_missing").status_code == 404

    def test_regression_outcome(self, client, learner_with_recommendations):
        rec_id = learner_with_recommendations[0]["id"]
        body = {
            "id": "out-api-1",
            "outcome_type": "regression",
            "metrics": [{"name": "accuracy", "achieved": 40, "target": 80}],
            "feedback": {"engagement": 2, "difficulty": 5, "enjoyment": 2},
        }

        response = client.post(f"/recommendations/{rec_id}/outcome", json=body)

        assert response.status_code == 201
        data = response.json()
        assert data["adjustment"]["type"] == "adaptive_adjustment"
        assert data["adjustment"]["priority"] == "critical"
        assert data["recompute_requested"] is True

        replay = client.post(f"/recommendations/{rec_id}/outcome", json=body).json()
        assert replay["duplicate"] is True

    def test_invalid_feedback_rating(self, client, learner_with_recommendations):
        rec_id = learner_with_recommendations[0]["id"]
        body = {"outcome_type": "success", "feedback": {"engagement": 9}}
        assert client.post(f"/recommendations/{rec_id}/outcome", json=body).status_code == 400

    def test_outcome_on_completed_recommendation(self, client, learner_with_recommendations):
        rec_id = learner_with_recommendations[0]["id"]
        assert client.post(f"/recommendations/{rec_id}/outcome", json={"outcome_type": "success"}).status_code == 201

        response = client.post(f"/recommendations/{rec_id}/outcome", json={"outcome_type": "success"})

        assert response.status_code == 400
        assert client.get(f"/recommendations/{rec_id}").json()["status"] == "completed"

    def test_pause_resume(self, client, learner_with_recommendations):
        rec_id = learner_with_recommendations[0]["id"]

        assert client.post(f"/recommendations/{rec_id}/pause").json()["status"] == "paused"
        assert client.post(f"/recommendations/{rec_id}/pause").status_code == 400
        assert client.post(f"/recommendations/{rec_id}/resume").json()["status"] == "active"

    def test_expired_after_max_age(self, client, service, learner_with_recommendations):
        rec_id = learner_with_recommendations[0]["id"]
        service.clock.advance(days=31)

        assert client.get("/users/learner-1/recommendations").json()["count"] == 0
        assert client.get(f"/recommendations/{rec_id}").json()["status"] == "superseded"

    def test_scheduled_after_outcome(self, client, service, learner_with_recommendations):
        rec_id = learner_with_recommendations[0]["id"]
        client.post(f"/recommendations/{rec_id}/outcome", json={"outcome_type": "no_progress"})

        assert service.scheduler.next_due("learner-1") == service.clock.now()
        assert service.scheduler.next_due("learner-1") < service.clock.now() + timedelta(hours=12)
