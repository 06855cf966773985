from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import build_app
from coverfit.services.session_manager import InMemorySessionStore, SessionManager


@pytest.fixture
def manager():
    return SessionManager(InMemorySessionStore(), max_age_days=30)


@pytest.fixture
def client(manager):
    from coverfit.routers import sessions

    app = build_app(sessions.router, prefix="/api/sessions")
    with patch('coverfit.routers.sessions.session_manager', manager):
        yield TestClient(app)


STATE = {
    "job_description": "Backend engineer wanted",
    "cover_letter": "Dear team, I build APIs.",
    "parsed_data": {
        "responsibilities": [{"summary": "APIs", "description": "Build APIs"}],
        "companyCulture": [],
        "technicalSkills": [],
    },
    "coverage_results": {"resp-0": {"score": 80, "feedback": "Covered"}},
}


class TestSessionsRouter:
    """Saved state: restore-or-discard, auto-save, start fresh"""

    def test_nothing_saved(self, client):
        response = client.get("/api/sessions/abc")

        assert response.status_code == 200
        assert response.json() == {"session_id": "abc", "has_saved_state": False, "last_saved": None, "state": None}

    def test_save_then_restore(self, client):
        saved = client.put("/api/sessions/abc", json=STATE)
        assert saved.status_code == 200
        assert saved.json()["last_saved"] is not None

        restored = client.get("/api/sessions/abc").json()
        assert restored["has_saved_state"] is True
        assert restored["state"]["cover_letter"] == STATE["cover_letter"]
        assert restored["state"]["coverage_results"]["resp-0"]["score"] == 80
        assert restored["last_saved"] == saved.json()["last_saved"]

    def test_save_overwrites(self, client):
        client.put("/api/sessions/abc", json=STATE)
        client.put("/api/sessions/abc", json=dict(STATE, cover_letter="Second draft"))
        assert client.get("/api/sessions/abc").json()["state"]["cover_letter"] == "Second draft"

    def test_expired_state_is_not_offered(self, client, manager):
        client.put("/api/sessions/abc", json=STATE)
        manager.clock = lambda: datetime.utcnow() + timedelta(days=31)

        assert client.get("/api/sessions/abc").json()["has_saved_state"] is False

    def test_start_fresh(self, client):
        client.put("/api/sessions/abc", json=STATE)

        response = client.delete("/api/sessions/abc")

        assert response.status_code == 200
        assert response.json() == {"session_id": "abc", "cleared": True}
        assert client.get("/api/sessions/abc").json()["has_saved_state"] is False

    def test_invalid_state_shape(self, client):
        response = client.put("/api/sessions/abc", json={"coverage_results": {"resp-0": {"feedback": "no score"}}})
        assert response.status_code == 422

    def test_blank_session_id(self, client):
        response = client.get("/api/sessions/%20")
        assert response.status_code == 400

    def test_storage_failure_on_save(self, client, manager):
        manager.store.save = AsyncMock(side_effect=ConnectionError("mongo down"))

        response = client.put("/api/sessions/abc", json=STATE)

        assert response.status_code == 500
        assert response.json()["error"]["error_code"] == "PERSISTENCE_ERROR"
