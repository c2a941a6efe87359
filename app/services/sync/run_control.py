"""Run lock and detached execution of sync runs.

The progress snapshot doubles as the run lock:
- a run is claimed by publishing a fresh ``running`` snapshot
- a running snapshot older than ``stale_run_seconds`` no longer blocks a
  new run (the worker died without reaching ``done``)
- a running snapshot without an update for ``progress_idle_seconds`` is
  reported as aborted and cleared
"""
import logging
import time
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.core.logging import clear_correlation_id, set_correlation_id
from app.core.metrics import record_sync_run
from app.models import utcnow
from app.repositories import SyncStateRepository
from app.services.source.client import LeagueApiClient
from app.services.source.geocoder import NominatimGeocoder
from app.services.sync.orchestrator import SyncOrchestrator, registered_own_teams
from app.services.sync.progress import PROGRESS_KEY, ProgressTracker, SyncPhase, parse_timestamp
from app.services.sync.sync_config import SyncConfig

logger = logging.getLogger(__name__)

IDLE_STATE = {"running": False, "phase": SyncPhase.IDLE.value}


class SyncAlreadyRunningError(Exception):
    """Raised when a run is requested while a non-stale run holds the lock."""

    def __init__(self, started_at: Optional[str] = None):
        self.started_at = started_at
        super().__init__(f"Sync already running (started {started_at or 'recently'})")


def build_config(db: Session) -> SyncConfig:
    """Run configuration with API-registered own teams taking precedence."""
    return SyncConfig.from_settings(own_team_ids=registered_own_teams(SyncStateRepository(db)))


def _age_seconds(timestamp: Optional[str]) -> Optional[float]:
    moment = parse_timestamp(timestamp)
    if moment is None:
        return None
    return (utcnow() - moment).total_seconds()


def get_progress(db: Session, config: Optional[SyncConfig] = None) -> dict:
    """
    Current progress snapshot.

    A running snapshot that has not been updated for ``progress_idle_seconds``
    is reported once as aborted and then cleared.
    """
    config = config or build_config(db)
    store = SyncStateRepository(db)
    state = store.get(PROGRESS_KEY)
    if not isinstance(state, dict):
        return dict(IDLE_STATE)

    if state.get("running"):
        idle = _age_seconds(state.get("last_update"))
        if idle is None or idle > config.progress_idle_seconds:
            store.delete_key(PROGRESS_KEY)
            logger.warning(f"Sync run started {state.get('started_at')} stopped reporting progress")
            return {
                **state,
                "running": False,
                "phase": SyncPhase.DONE.value,
                "label": "Aborted (no progress reported)",
                "error": "aborted",
            }
    return state


def request_run(db: Session, config: Optional[SyncConfig] = None) -> dict:
    """
    Claim the run lock.

    Returns:
        The claimed progress snapshot

    Raises:
        SyncAlreadyRunningError: If a run started less than
            ``stale_run_seconds`` ago is still running
    """
    config = config or build_config(db)
    store = SyncStateRepository(db)
    state = store.get(PROGRESS_KEY)
    if isinstance(state, dict) and state.get("running"):
        age = _age_seconds(state.get("started_at"))
        if age is not None and age < config.stale_run_seconds:
            raise SyncAlreadyRunningError(state.get("started_at"))
        logger.warning(f"Taking over stale sync lock (started {state.get('started_at')})")

    store.delete_key(PROGRESS_KEY)
    tracker = ProgressTracker(store, config.progress_ttl_seconds, config.progress_error_ttl_seconds)
    return tracker.start("Sync requested")


def reset_lock(db: Session) -> None:
    """Force-clear the run lock and progress snapshot."""
    SyncStateRepository(db).delete_key(PROGRESS_KEY)
    logger.info("Sync lock reset")


async def run_sync_job(trigger: str = "manual") -> dict:
    """
    Execute a claimed run with its own session and clients.

    Used by the HTTP background task, the scheduler and the CLI; never raises.

    Returns:
        Final run statistics
    """
    token = set_correlation_id(f"sync-{uuid.uuid4().hex[:12]}")
    db = SessionLocal()
    client = LeagueApiClient()
    geocoder = NominatimGeocoder()
    started = time.monotonic()
    stats: dict = {}
    outcome = "error"
    try:
        orchestrator = SyncOrchestrator(db, client, build_config(db), geocoder=geocoder)
        stats = await orchestrator.sync_all(trigger=trigger)
        outcome = "error" if orchestrator.tracker.state.get("error") else "success"
    except Exception as e:
        logger.exception(f"Sync job failed before the run started: {e}")
        db.rollback()
        ProgressTracker(SyncStateRepository(db)).finish(stats, str(e))
    finally:
        record_sync_run(trigger, outcome, time.monotonic() - started, stats)
        client.close()
        geocoder.close()
        db.close()
        clear_correlation_id(token)
    return stats


async def run_scheduled_sync() -> Optional[dict]:
    """Scheduler entry point: same lock as manual runs; skipped while one is running."""
    db = SessionLocal()
    try:
        request_run(db)
    except SyncAlreadyRunningError as e:
        logger.info(f"Scheduled sync skipped: {e}")
        return None
    finally:
        db.close()
    return await run_sync_job(trigger="scheduled")
