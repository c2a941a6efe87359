"""Tests for progress snapshots, the run lock and detached run execution."""
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.orm import sessionmaker

from app.models import utcnow
from app.repositories import SyncStateRepository
from app.services.sync import run_control
from app.services.sync.orchestrator import OWN_TEAMS_KEY
from app.services.sync.progress import PROGRESS_KEY, ProgressTracker, SyncPhase
from app.services.sync.run_control import (
    SyncAlreadyRunningError,
    get_progress,
    request_run,
    reset_lock,
    run_scheduled_sync,
    run_sync_job,
)
from conftest import FakeGeocoder, FakeLeagueApiClient, match_payload, team_matches_payload, team_payload


def iso(seconds_ago: int) -> str:
    return (utcnow() - timedelta(seconds=seconds_ago)).strftime("%Y-%m-%dT%H:%M:%S")


def publish_running(db, started_ago: int, updated_ago: int) -> None:
    SyncStateRepository(db).set(PROGRESS_KEY, {
        "running": True,
        "phase": SyncPhase.TEAMS_SYNCING.value,
        "label": "Syncing teams",
        "started_at": iso(started_ago),
        "last_update": iso(updated_ago),
    })


class TestProgressTracker:

    def test_start_publishes_idle(self, db_session):
        """Should publish a running snapshot in phase idle."""
        store = SyncStateRepository(db_session)
        ProgressTracker(store).start()
        state = store.get(PROGRESS_KEY)
        assert state["running"] is True
        assert state["phase"] == "idle"

    def test_phases_move_forward(self, db_session):
        """Should accept forward moves and reject going back."""
        tracker = ProgressTracker(SyncStateRepository(db_session))
        tracker.start()
        tracker.set_phase(SyncPhase.DEDUP, "Deduplicating")
        tracker.set_phase(SyncPhase.TEAMS_SYNCING, "Syncing")
        with pytest.raises(ValueError):
            tracker.set_phase(SyncPhase.TEAMS_LOADING, "Loading")

    def test_update_keeps_started_at(self, db_session):
        """Should carry started_at through every update."""
        store = SyncStateRepository(db_session)
        tracker = ProgressTracker(store)
        started = tracker.start()["started_at"]
        tracker.update(matches_done=3)
        assert store.get(PROGRESS_KEY)["started_at"] == started
        assert store.get(PROGRESS_KEY)["matches_done"] == 3

    def test_finish_with_error(self, db_session):
        """Should end in done with the error label."""
        store = SyncStateRepository(db_session)
        tracker = ProgressTracker(store)
        tracker.start()
        tracker.finish({"errors": 1}, "boom")
        state = store.get(PROGRESS_KEY)
        assert state["running"] is False
        assert state["phase"] == "done"
        assert state["label"] == "Error: boom"

    def test_resume_takes_over_claimed_snapshot(self, db_session):
        """Should continue a snapshot claimed by another session."""
        store = SyncStateRepository(db_session)
        claimed = ProgressTracker(store).start("Sync requested")
        resumed = ProgressTracker(store).resume()
        assert resumed["started_at"] == claimed["started_at"]
        assert resumed["label"] == "Sync requested"


class TestRunLock:

    def test_idle_without_snapshot(self, db_session, sync_config):
        """Should report idle when nothing was published."""
        assert get_progress(db_session, sync_config) == {"running": False, "phase": "idle"}

    def test_request_run_claims_lock(self, db_session, sync_config):
        """Should publish a fresh running snapshot."""
        state = request_run(db_session, sync_config)
        assert state["running"] is True
        assert get_progress(db_session, sync_config)["running"] is True

    def test_second_request_conflicts(self, db_session, sync_config):
        """Should refuse a run while a fresh run holds the lock."""
        request_run(db_session, sync_config)
        with pytest.raises(SyncAlreadyRunningError):
            request_run(db_session, sync_config)

    def test_stale_lock_taken_over(self, db_session, sync_config):
        """Should ignore a running snapshot older than the stale limit."""
        publish_running(db_session, started_ago=sync_config.stale_run_seconds + 60, updated_ago=10)
        state = request_run(db_session, sync_config)
        assert state["label"] == "Sync requested"

    def test_silent_run_reported_aborted(self, db_session, sync_config):
        """Should report a run without updates as aborted once, then idle."""
        publish_running(db_session, started_ago=200, updated_ago=sync_config.progress_idle_seconds + 30)

        state = get_progress(db_session, sync_config)
        assert state["running"] is False
        assert state["error"] == "aborted"
        assert get_progress(db_session, sync_config)["phase"] == "idle"

    def test_reset_lock(self, db_session, sync_config):
        """Should clear the lock so a new run can start."""
        request_run(db_session, sync_config)
        reset_lock(db_session)
        assert request_run(db_session, sync_config)["running"] is True


class TestRunSyncJob:

    @pytest.fixture
    def job_env(self, db_session, monkeypatch):
        """Point the detached job at the test database and fake upstreams."""
        client = FakeLeagueApiClient()
        factory = sessionmaker(bind=db_session.get_bind(), autoflush=False)
        monkeypatch.setattr(run_control, "SessionLocal", factory)
        monkeypatch.setattr(run_control, "LeagueApiClient", lambda: client)
        monkeypatch.setattr(run_control, "NominatimGeocoder", lambda: FakeGeocoder())
        SyncStateRepository(db_session).set(OWN_TEAMS_KEY, [100])
        return client

    @pytest.mark.asyncio
    async def test_job_runs_and_releases_lock(self, db_session, job_env, sync_config):
        """Should run the claimed sync and finish in done."""
        job_env.team_matches[100] = team_matches_payload(100, "TV Langen", [
            match_payload(1001, team_payload(100, "TV Langen", 4468), team_payload(200, "BC Darmstadt"), result="78:65"),
        ])
        request_run(db_session, sync_config)

        stats = await run_sync_job("manual")

        assert stats["events_created"] == 1
        db_session.expire_all()
        assert get_progress(db_session, sync_config)["phase"] == "done"

    @pytest.mark.asyncio
    async def test_scheduled_sync_skipped_while_running(self, db_session, job_env, sync_config):
        """Should skip the scheduled run while a manual run holds the lock."""
        request_run(db_session, sync_config)
        with patch.object(run_control, "run_sync_job") as job:
            assert await run_scheduled_sync() is None
        job.assert_not_called()
