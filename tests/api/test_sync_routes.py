"""
HTTP endpoint integration tests for the league sync API.

These tests verify that FastAPI endpoints:
- Return correct HTTP status codes
- Map sync errors to HTTP errors (409, 400, 502)
- Report run state from the shared state store

Uses FastAPI TestClient for in-memory HTTP testing.
"""
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.core.database import get_db
from app.main import app
from app.repositories import SyncStateRepository
from app.api.routes.sync import get_orchestrator, get_source_client
from app.services.source.errors import SourceNetworkError
from app.services.sync.orchestrator import HISTORY_KEY, LOG_KEY, SyncOrchestrator
from app.services.sync.sync_config import SyncConfig
from conftest import CLUB_ID, match_payload, team_payload


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def test_client(db_session, fake_client, sync_config):
    """TestClient wired to the test database and the fake upstream client."""

    def override_db():
        yield db_session

    def override_client():
        yield fake_client

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_source_client] = override_client
    app.dependency_overrides[get_orchestrator] = lambda: SyncOrchestrator(db_session, fake_client, sync_config)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# =============================================================================
# HEALTH ENDPOINTS
# =============================================================================

class TestHealthEndpoints:

    def test_root_endpoint(self, test_client: TestClient):
        """Test root endpoint returns API information."""
        response = test_client.get("/")

        assert response.status_code == 200
        assert "name" in response.json()

    def test_health_endpoint(self, test_client: TestClient):
        """Test basic health check endpoint."""
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_api_health_endpoint(self, test_client: TestClient):
        """Test detailed health check endpoint."""
        response = test_client.get("/api/health")

        # Should return 200 or 503 depending on database status
        assert response.status_code in [200, 503]
        assert "circuit_breakers" in response.json()["components"]


# =============================================================================
# RUN ENDPOINTS
# =============================================================================

class TestRunEndpoints:

    def test_start_run(self, test_client: TestClient):
        """Should claim the lock and schedule the run in the background."""
        with patch("app.api.routes.sync.run_sync_job", new_callable=AsyncMock) as job:
            response = test_client.post("/api/v1/sync/run")

        assert response.status_code == 202
        assert response.json()["progress"]["running"] is True
        job.assert_called_once_with("manual")

    def test_start_run_conflict(self, test_client: TestClient):
        """Should return 409 while another run holds the lock."""
        with patch("app.api.routes.sync.run_sync_job", new_callable=AsyncMock):
            test_client.post("/api/v1/sync/run")
            response = test_client.post("/api/v1/sync/run")

        assert response.status_code == 409

    def test_progress_idle(self, test_client: TestClient):
        """Should report idle when nothing ran."""
        response = test_client.get("/api/v1/sync/progress")

        assert response.status_code == 200
        assert response.json()["phase"] == "idle"

    def test_reset_lock(self, test_client: TestClient):
        """Should allow a new run after the lock was reset."""
        with patch("app.api.routes.sync.run_sync_job", new_callable=AsyncMock):
            test_client.post("/api/v1/sync/run")
            assert test_client.post("/api/v1/sync/reset-lock").status_code == 200
            response = test_client.post("/api/v1/sync/run")

        assert response.status_code == 202

    def test_status(self, test_client: TestClient, db_session):
        """Should report history, own teams and breaker states."""
        state = SyncStateRepository(db_session)
        state.set(HISTORY_KEY, [{"time": "2025-10-05 06:00:00", "trigger": "scheduled", "stats": {}, "error": None}])
        state.set("own_teams", [100])

        data = test_client.get("/api/v1/sync/status").json()

        assert data["own_teams"] == [100]
        assert len(data["history"]) == 1
        assert data["circuit_breakers"] == {"league_api": "closed", "geocoder": "closed"}
        assert data["metadata"]["last_sync_status"] is None

    def test_logs(self, test_client: TestClient, db_session):
        """Should return the stored run log."""
        SyncStateRepository(db_session).set(LOG_KEY, [{"time": "t", "level": "info", "message": "Sync complete"}])

        data = test_client.get("/api/v1/sync/logs").json()

        assert data["count"] == 1
        assert data["entries"][0]["message"] == "Sync complete"


# =============================================================================
# OPERATOR ENDPOINTS
# =============================================================================

class TestOperatorEndpoints:

    def test_discover(self, test_client: TestClient, fake_client):
        """Should return the club's own teams."""
        fake_client.club_matches[CLUB_ID] = {
            "club": {"vereinsname": "TV Langen"},
            "matches": [match_payload(1001, team_payload(100, "TV Langen", CLUB_ID), team_payload(200, "BC Darmstadt"))],
        }

        response = test_client.post("/api/v1/sync/discover")

        assert response.status_code == 200
        assert list(response.json()["own_teams"]) == ["100"]

    def test_discover_upstream_error(self, test_client: TestClient, fake_client):
        """Should map upstream failures to 502."""
        fake_client.club_matches[CLUB_ID] = SourceNetworkError("timeout")

        assert test_client.post("/api/v1/sync/discover").status_code == 502

    def test_discover_without_club(self, test_client: TestClient, db_session, fake_client):
        """Should map missing configuration to 400."""
        app.dependency_overrides[get_orchestrator] = lambda: SyncOrchestrator(db_session, fake_client, SyncConfig())

        assert test_client.post("/api/v1/sync/discover").status_code == 400

    def test_register_teams(self, test_client: TestClient, db_session):
        """Should store the own teams."""
        response = test_client.put("/api/v1/sync/teams", json={"team_permanent_ids": [100, 110]})

        assert response.status_code == 200
        assert response.json() == {"count": 2, "team_permanent_ids": [100, 110]}
        assert SyncStateRepository(db_session).get("own_teams") == [100, 110]

    def test_register_teams_validation(self, test_client: TestClient):
        """Should reject non-numeric team ids."""
        response = test_client.put("/api/v1/sync/teams", json={"team_permanent_ids": ["abc"]})

        assert response.status_code == 422

    def test_reset_boxscore_flags(self, test_client: TestClient):
        """Should report how many events were reset."""
        response = test_client.post("/api/v1/sync/reset-boxscore-flags")

        assert response.status_code == 200
        assert response.json()["events_reset"] == 0

    def test_scheduler_start_disabled(self, test_client: TestClient):
        """Should refuse to start a disabled scheduler."""
        assert test_client.post("/api/v1/sync/scheduler/start").status_code == 400

    def test_scheduler_status_not_initialized(self, test_client: TestClient):
        """Should report a scheduler that was never started."""
        data = test_client.get("/api/v1/sync/scheduler/status").json()

        assert data["running"] is False
