"""
Integration Tests for the HTTP API.

Drives the FastAPI app in-process with TestClient around an in-memory
engine on a fixed clock.
"""
import pytest
from fastapi.testclient import TestClient

from personalization.api.main import create_app

pytestmark = pytest.mark.integration

BASE = "/api/personalization/users/user-1"


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as test_client:
        yield test_client


def post_event(client, **overrides):
    body = {
        "action_type": "calculator-usage",
        "timestamp": "2024-06-15T10:00:00+00:00",
        "context": "calculator",
        "target_element": "calc-button",
        "duration": 12.5,
        "session_id": "s1",
        "metadata": {"category": "drink"},
    }
    body.update(overrides)
    return client.post(f"{BASE}/interactions", json=body)


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_config_lists_gates(self, client):
        response = client.get("/config")
        assert response.status_code == 200
        assert "basic-calculator" in response.json()["gates"]


class TestInteractions:
    def test_record(self, client):
        response = post_event(client)

        assert response.status_code == 201
        assert response.json() == {"accepted": True, "user_id": "user-1", "action_type": "calculator-usage"}

        pattern = client.get(f"{BASE}/usage-pattern").json()
        assert pattern["total_events"] == 1
        assert pattern["category_preferences"] == {"drink": 1}
        assert pattern["time_slots"] == {"morning": 1}

    @pytest.mark.parametrize("overrides", [{"duration": -1}, {"action_type": ""}])
    def test_invalid_event_is_422(self, client, overrides):
        response = post_event(client, **overrides)

        assert response.status_code == 422
        assert client.get(f"{BASE}/usage-pattern").json()["total_events"] == 0

    def test_skill_and_journey(self, client):
        post_event(client)

        skill = client.get(f"{BASE}/skill").json()
        journey = client.get(f"{BASE}/journey").json()

        assert skill["level"] == "beginner"
        assert skill["sessions"] == 1
        assert journey["stage"] == "discovery"
        assert journey["introduction_strategy"]["method"] == "gradual"


class TestRecommendations:
    def test_ranked_batch(self, client):
        response = client.post(f"{BASE}/recommendations", json={"count": 2})

        assert response.status_code == 200
        assert [rec["item_id"] for rec in response.json()] == ["berry-blast", "cola-classic"]

    def test_filters(self, client):
        response = client.post(
            f"{BASE}/recommendations",
            json={"dietary_restrictions": ["sugar-free"], "exclude_tags": ["mint"]},
        )
        assert [rec["item_id"] for rec in response.json()] == ["berry-blast"]

    def test_inverted_budget(self, client):
        response = client.post(f"{BASE}/recommendations", json={"budget_range": {"min": 10, "max": 1}})
        assert response.status_code == 422


class TestGates:
    def test_eligibility(self, client):
        response = client.get(f"{BASE}/gates/advanced-calculator/eligibility")

        assert response.status_code == 200
        assert response.json() == {
            "gate_id": "advanced-calculator",
            "eligible": False,
            "reason": "insufficient-skill-level",
        }

    def test_unknown_gate_is_404(self, client):
        response = client.get(f"{BASE}/gates/teleporter/eligibility")

        assert response.status_code == 404
        assert response.json()["gate_id"] == "teleporter"

    def test_introduce_and_list(self, client):
        response = client.post(f"{BASE}/gates/basic-calculator/introduce")

        assert response.status_code == 200
        assert response.json()["unlocked"] is True

        states = {s["gate_id"]: s for s in client.get(f"{BASE}/gates").json()}
        assert states["basic-calculator"]["status"] == "unlocked"
        assert states["premium-analytics"]["status"] == "locked"

    def test_engagement_unlocks(self, client):
        for session in ("s1", "s2", "s3"):
            post_event(client, action_type="recipe-creation", session_id=session)
        client.post(f"{BASE}/gates/community-sharing/introduce", json={"method_override": None})

        response = client.post(f"{BASE}/gates/community-sharing/engagement")

        assert response.json() == {"gate_id": "community-sharing", "unlocked": True}

    def test_progressive_features(self, client):
        for _ in range(3):
            post_event(client)

        proposals = client.get(f"{BASE}/progressive-features").json()

        assert [p["gate_id"] for p in proposals] == ["basic-calculator"]


class TestEngagementPlan:
    def test_plan(self, client):
        post_event(client)

        plan = client.get(f"{BASE}/engagement-plan").json()

        assert plan["user_id"] == "user-1"
        assert plan["churn_risk"] in {"low", "medium", "high"}
