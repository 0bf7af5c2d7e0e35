from typing import Generator

import pytest
from fastapi.testclient import TestClient

from cortex.main import app
from cortex.services.capabilities import CapabilityManager, CapabilitySession, SessionConfig


@pytest.fixture
def client(make_provider) -> Generator[TestClient, None, None]:
    """TestClient backed by a session with scripted providers."""
    manager = CapabilityManager(
        providers=[make_provider("alpha", priority=80), make_provider("beta", priority=60)],
        adaptive_priority=False,
    )
    app.state.capability_session = CapabilitySession(
        manager=manager, config=SessionConfig(cooldown_ms=0, adaptive_priority=False)
    )
    with TestClient(app) as c:
        yield c


def test_health_status(client: TestClient) -> None:
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["session_state"] == "ready"
    assert body["providers"] == 2


def test_process_returns_interventions_in_priority_order(client: TestClient) -> None:
    res = client.post(
        "/api/v1/capabilities/process",
        json={"unit": "Plan the migration", "session_id": "api-1", "complexity": 6},
    )
    assert res.status_code == 200
    body = res.json()
    assert [i["metadata"]["provider_id"] for i in body["interventions"]] == ["alpha", "beta"]
    assert body["state"]["pass_count"] == 1
    assert body["state"]["session_id"] == "api-1"
    assert body["signals"][0]["kind"] == "multi_perspective"
    assert body["note"] is None


def test_process_rejects_out_of_range_complexity(client: TestClient) -> None:
    res = client.post("/api/v1/capabilities/process", json={"unit": "x", "complexity": 11})
    assert res.status_code == 422


def test_feedback_updates_performance(client: TestClient) -> None:
    processed = client.post("/api/v1/capabilities/process", json={"unit": "Plan"}).json()

    res = client.post(
        "/api/v1/capabilities/feedback",
        json={
            "interventions": processed["interventions"],
            "outcome": "partial",
            "impact_score": 0.6,
        },
    )
    assert res.status_code == 200
    assert res.json() == {"status": "accepted"}

    performance = client.get("/api/v1/capabilities/performance").json()
    assert performance["alpha"]["activation_count"] == 1
    assert performance["alpha"]["success_rate"] == pytest.approx(0.5)
    assert performance["alpha"]["synergy_with_providers"] == {"beta": 1}


def test_feedback_for_unknown_provider_is_404(client: TestClient) -> None:
    res = client.post(
        "/api/v1/capabilities/feedback",
        json={
            "interventions": [
                {
                    "type": "meta_guidance",
                    "content": "?",
                    "metadata": {"provider_id": "ghost"},
                }
            ],
            "outcome": "success",
            "impact_score": 0.5,
        },
    )
    assert res.status_code == 404
    assert "ghost" in res.json()["detail"]


def test_feedback_rejects_invalid_outcome(client: TestClient) -> None:
    res = client.post(
        "/api/v1/capabilities/feedback",
        json={"interventions": [], "outcome": "meh", "impact_score": 0.5},
    )
    assert res.status_code == 422


def test_state_and_reset(client: TestClient) -> None:
    client.post("/api/v1/capabilities/process", json={"unit": "a", "frustration": 0.9})
    state = client.get("/api/v1/capabilities/state").json()
    assert state["pass_count"] == 1
    assert state["frustration"] == 0.9

    res = client.post("/api/v1/capabilities/reset", params={"include_providers": True})
    assert res.status_code == 200

    state = client.get("/api/v1/capabilities/state").json()
    assert state["pass_count"] == 0
    assert state["frustration"] == 0.2
