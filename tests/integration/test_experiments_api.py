"""
Integration tests for the Experiments API.
"""
import pytest
from fastapi.testclient import TestClient

from discovery.config import get_settings


def _definition(**overrides):
    body = {
        "name": "freshness-vs-standard",
        "variants": [
            {"name": "control", "config": {"strategy": "standard"}},
            {"name": "fresh", "config": {"strategy": "freshness_boost", "freshness_half_life_days": 5}},
        ],
        "traffic_allocation": [
            {"variant_name": "control", "percentage": 50},
            {"variant_name": "fresh", "percentage": 50},
        ],
    }
    body.update(overrides)
    return body


@pytest.fixture
def active_experiment(test_client: TestClient):
    response = test_client.post("/v1/experiments", json=_definition(), headers={"X-User-ID": "admin"})
    experiment_id = response.json()["id"]
    test_client.post(f"/v1/experiments/{experiment_id}/start")
    return experiment_id


class TestExperimentAdmin:
    def test_create_experiment(self, test_client: TestClient):
        response = test_client.post("/v1/experiments", json=_definition(), headers={"X-User-ID": "admin"})

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "draft"
        assert data["created_by"] == "admin"
        assert data["variants"][1]["config"]["freshness_half_life_days"] == 5

    def test_create_rejects_bad_allocation(self, test_client: TestClient):
        body = _definition(traffic_allocation=[
            {"variant_name": "control", "percentage": 70},
            {"variant_name": "fresh", "percentage": 20},
        ])

        response = test_client.post("/v1/experiments", json=body)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_create_rejects_unknown_strategy(self, test_client: TestClient):
        body = _definition()
        body["variants"][0]["config"] = {"strategy": "magic"}

        response = test_client.post("/v1/experiments", json=body)

        assert response.status_code == 422

    def test_lifecycle(self, test_client: TestClient, active_experiment):
        base = f"/v1/experiments/{active_experiment}"

        assert test_client.get(base).json()["status"] == "active"
        assert test_client.post(f"{base}/pause").json()["status"] == "paused"
        assert test_client.post(f"{base}/resume").json()["status"] == "active"

        response = test_client.post(f"{base}/complete", json={"winner_variant": "fresh", "confidence_level": 96})
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["winner_variant"] == "fresh"

    def test_invalid_transition_conflict(self, test_client: TestClient, active_experiment):
        response = test_client.post(f"/v1/experiments/{active_experiment}/resume")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_EXPERIMENT_STATE"

    def test_delete(self, test_client: TestClient, active_experiment):
        draft_id = test_client.post("/v1/experiments", json=_definition()).json()["id"]

        assert test_client.delete(f"/v1/experiments/{active_experiment}").status_code == 409
        assert test_client.delete(f"/v1/experiments/{draft_id}").status_code == 204
        assert test_client.get(f"/v1/experiments/{draft_id}").status_code == 404

    def test_list_filtered_by_status(self, test_client: TestClient, active_experiment):
        test_client.post("/v1/experiments", json=_definition())

        active = test_client.get("/v1/experiments", params={"status": "active"}).json()
        everything = test_client.get("/v1/experiments").json()

        assert [e["id"] for e in active] == [active_experiment]
        assert len(everything) == 2


class TestExperimentTraffic:
    def test_assignment_is_sticky(self, test_client: TestClient, active_experiment):
        url = f"/v1/experiments/{active_experiment}/assignment"

        first = test_client.get(url, headers={"X-User-ID": "user_1"}).json()["variant_name"]
        second = test_client.get(url, headers={"X-User-ID": "user_1"}).json()["variant_name"]

        assert first in {"control", "fresh"}
        assert first == second

    def test_assignment_requires_user(self, test_client: TestClient, active_experiment):
        response = test_client.get(f"/v1/experiments/{active_experiment}/assignment")

        assert response.status_code == 422

    def test_draft_experiment_has_no_assignment(self, test_client: TestClient):
        draft_id = test_client.post("/v1/experiments", json=_definition()).json()["id"]

        response = test_client.get(f"/v1/experiments/{draft_id}/assignment", headers={"X-User-ID": "user_1"})

        assert response.status_code == 200
        assert response.json()["variant_name"] is None

    def test_kill_switch(self, test_client: TestClient, active_experiment):
        """Test global kill switch via settings."""
        settings = get_settings()
        original_value = settings.EXPERIMENTS_KILL_SWITCH
        settings.EXPERIMENTS_KILL_SWITCH = True
        try:
            response = test_client.get(
                f"/v1/experiments/{active_experiment}/assignment",
                headers={"X-User-ID": "user_1"},
            )
            assert response.json()["variant_name"] is None
        finally:
            settings.EXPERIMENTS_KILL_SWITCH = original_value

    def test_discovery_in_experiment_logs_shown(self, test_client: TestClient, active_experiment):
        response = test_client.post(
            "/v1/discoveries/next",
            json={"wildness": 35, "experiment_id": active_experiment, "session_id": "s1"},
            headers={"X-User-ID": "user_1"},
        )

        assert response.status_code == 200
        data = response.json()
        variant = data["variant"]
        assert variant in {"control", "fresh"}
        assert data["algorithm"] == f"v2.0/{variant}"

        metrics = test_client.get(f"/v1/experiments/{active_experiment}/metrics").json()
        by_name = {m["variant_name"]: m for m in metrics}
        assert by_name[variant]["total_discoveries"] == 1
        assert by_name[variant]["total_users"] == 1

    def test_log_event(self, test_client: TestClient, active_experiment):
        response = test_client.post(
            f"/v1/experiments/{active_experiment}/events",
            json={"user_id": "user_1", "variant_name": "control", "action": "liked", "time_to_action": 2.5},
        )

        assert response.status_code == 201
        assert response.json()["experiment_id"] == active_experiment
        assert response.json()["action"] == "liked"

    def test_malformed_event(self, test_client: TestClient, active_experiment):
        response = test_client.post(
            f"/v1/experiments/{active_experiment}/events",
            json={"user_id": "user_1", "variant_name": "control", "action": "clicked"},
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "MALFORMED_EVENT"
        assert error["details"]["errors"][0]["loc"] == ["action"]

    def test_results_with_little_data(self, test_client: TestClient, active_experiment):
        events_url = f"/v1/experiments/{active_experiment}/events"
        for i in range(10):
            test_client.post(events_url, json={"user_id": f"u{i}", "variant_name": "control", "action": "shown"})
            test_client.post(events_url, json={"user_id": f"u{i}", "variant_name": "control", "action": "liked"})
            test_client.post(events_url, json={"user_id": f"v{i}", "variant_name": "fresh", "action": "shown"})

        response = test_client.get(f"/v1/experiments/{active_experiment}/results")

        assert response.status_code == 200
        data = response.json()
        assert data["metrics"][0]["variant_name"] == "control"
        assert len(data["comparisons"]) == 1
        assert data["recommendation"]["kind"] == "insufficient_data"
        assert data["recommendation"]["winner_variant"] == "control"

    def test_unknown_experiment(self, test_client: TestClient):
        assert test_client.get("/v1/experiments/nope").status_code == 404
        assert test_client.get("/v1/experiments/nope/results").status_code == 404
