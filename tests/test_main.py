import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch


@pytest.fixture
def client():
    from coverfit.main import app

    with patch('coverfit.services.db.init_indexes', new=AsyncMock()) as mock_init:
        with TestClient(app) as test_client:
            test_client.init_indexes = mock_init
            yield test_client


class TestApp:
    """Application wiring: health, middleware, routes"""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "Welcome to the CoverFit API"

    def test_health_get_and_head(self, client):
        assert client.get("/health").json()["status"] == "healthy"
        assert client.head("/health").status_code == 200

    def test_indexes_initialized_on_startup(self, client):
        client.init_indexes.assert_awaited_once()

    def test_request_id_and_timing_headers(self, client):
        response = client.get("/")
        assert "X-Request-ID" in response.headers
        assert "X-Processing-Time" in response.headers

    def test_error_envelope(self, client):
        response = client.get("/api/batch/unknown")
        assert response.status_code == 404
        data = response.json()
        assert data["success"] is False
        assert data["request_id"] == response.headers["X-Request-ID"]

    def test_routes_are_mounted(self, client):
        paths = {route.path for route in client.app.routes}
        for path in (
            "/api/parse-job-description",
            "/api/check-coverage",
            "/api/check-coverage-batch",
            "/api/improve-sentence",
            "/api/cut-sentence",
            "/api/sentences/locate",
            "/api/parse-document",
            "/api/batch/{batch_id}/score",
            "/api/sessions/{session_id}",
        ):
            assert path in paths
