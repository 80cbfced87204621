"""
Integration tests for health endpoints and error handling.
"""
from fastapi.testclient import TestClient


class TestHealth:
    def test_health(self, test_client: TestClient):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_readiness(self, test_client: TestClient):
        response = test_client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["algorithm"] == "v2.0"
        assert data["circuit_breaker"] == {"name": "discovery_events", "state": "closed"}
        assert data["trending_scheduler"]["running"] is False
        assert data["trending_scheduler"]["next_run"] is None
        assert data["experiments"]["kill_switch_active"] is False

    def test_unhandled_error_is_generic(self, test_client: TestClient):
        from discovery.api.dependencies import get_ranking_orchestrator
        from discovery.main import app

        class Exploding:
            async def similar_to(self, content_id, limit):
                raise RuntimeError("boom")

        app.dependency_overrides[get_ranking_orchestrator] = lambda: Exploding()
        client = TestClient(app, raise_server_exceptions=False)

        response = client.get("/v1/discoveries/c1/similar")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_ERROR"
        assert "boom" not in response.text
