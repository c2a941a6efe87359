"""Sync API routes for the league sync.

Provides endpoints for:
- Starting a run and polling its progress
- Clearing a stuck run lock
- Run status, history and the run log
- Team discovery and own team registration
- Forcing boxscore re-ingestion
- Scheduler control (start/stop/status)
"""
import logging
from typing import Dict, Generator, List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.scheduler import get_scheduler
from app.repositories import SyncMetadataRepository, SyncStateRepository
from app.services.core.circuit_breaker import get_all_breaker_states
from app.services.source.client import LeagueApiClient
from app.services.source.errors import SourceClientError
from app.services.sync.orchestrator import (
    HISTORY_KEY,
    LAST_RUN_KEY,
    LAST_STATS_KEY,
    LOG_KEY,
    METADATA_DATA_TYPE,
    METADATA_SOURCE,
    SyncOrchestrator,
    registered_own_teams,
)
from app.services.sync.run_control import (
    SyncAlreadyRunningError,
    build_config,
    get_progress,
    request_run,
    reset_lock,
    run_sync_job,
)
from app.services.sync.sync_config import SyncConfigurationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


class RegisterTeamsRequest(BaseModel):
    team_permanent_ids: List[int] = Field(..., description="Permanent ids of the club's own teams")


def get_source_client() -> Generator[LeagueApiClient, None, None]:
    """Dependency providing an upstream client, closed after the request."""
    client = LeagueApiClient()
    try:
        yield client
    finally:
        client.close()


def get_orchestrator(
    db: Session = Depends(get_db),
    client: LeagueApiClient = Depends(get_source_client),
) -> SyncOrchestrator:
    """Dependency to get sync orchestrator instance."""
    return SyncOrchestrator(db, client, build_config(db))


@router.post("/run", status_code=202)
async def start_run(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> Dict:
    """
    Start a full sync run in the background.

    Returns 409 while another run holds the lock. Poll ``/progress``
    for the outcome.
    """
    try:
        progress = request_run(db)
    except SyncAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))

    background_tasks.add_task(run_sync_job, "manual")
    logger.info("Manual sync run requested")
    return {
        "message": "Sync started",
        "progress": progress,
    }


@router.get("/progress")
async def get_run_progress(db: Session = Depends(get_db)) -> Dict:
    """Current progress snapshot (``phase`` is ``idle`` when nothing ran recently)."""
    return get_progress(db)


@router.post("/reset-lock")
async def reset_run_lock(db: Session = Depends(get_db)) -> Dict:
    """Force-clear the run lock after a crashed run."""
    reset_lock(db)
    return {"message": "Sync lock reset"}


@router.get("/status")
async def get_sync_status(db: Session = Depends(get_db)) -> Dict:
    """
    Get the sync status dashboard.

    Returns:
        Last run time and statistics, run history, registered own teams,
        circuit breaker states and the sync metadata row
    """
    state = SyncStateRepository(db)
    metadata = SyncMetadataRepository(db).find(METADATA_SOURCE, METADATA_DATA_TYPE)

    return {
        "last_run": state.get(LAST_RUN_KEY),
        "last_stats": state.get(LAST_STATS_KEY) or {},
        "history": state.get(HISTORY_KEY) or [],
        "own_teams": registered_own_teams(state),
        "circuit_breakers": get_all_breaker_states(),
        "metadata": {
            "last_sync_started_at": metadata.last_sync_started_at.isoformat() if metadata and metadata.last_sync_started_at else None,
            "last_sync_completed_at": metadata.last_sync_completed_at.isoformat() if metadata and metadata.last_sync_completed_at else None,
            "last_sync_status": metadata.last_sync_status if metadata else None,
            "records_processed": metadata.records_processed if metadata else 0,
            "records_failed": metadata.records_failed if metadata else 0,
            "error_message": metadata.error_message if metadata else None,
            "sync_duration_ms": metadata.sync_duration_ms if metadata else None,
        },
    }


@router.get("/logs")
async def get_sync_logs(db: Session = Depends(get_db)) -> Dict:
    """Run log entries of the most recent runs, oldest first."""
    entries = SyncStateRepository(db).get(LOG_KEY) or []
    return {
        "count": len(entries),
        "entries": entries,
    }


@router.post("/discover")
async def discover_teams(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict:
    """
    Discover the configured club's teams and leagues.

    Returns 400 when no club id is configured and 502 when the upstream
    call fails.
    """
    try:
        return await orchestrator.discover_teams()
    except SyncConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SourceClientError as e:
        logger.error(f"Discovery failed: {e}")
        raise HTTPException(status_code=502, detail=f"Upstream error: {e}")


@router.put("/teams")
async def register_teams(
    request: RegisterTeamsRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict:
    """Register the own teams synced by every following run."""
    ids = orchestrator.register_own_teams(request.team_permanent_ids)
    return {
        "count": len(ids),
        "team_permanent_ids": ids,
    }


@router.post("/reset-boxscore-flags")
async def reset_boxscore_flags(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Dict:
    """Clear every boxscore flag; the next run re-ingests all boxscores."""
    count = orchestrator.reset_boxscore_flags()
    return {
        "message": f"Boxscore flags reset for {count} events",
        "events_reset": count,
    }


@router.get("/scheduler/status")
async def get_scheduler_status() -> Dict:
    """
    Get the current status of the automation scheduler.

    Returns:
        Scheduler status including running state and job list
    """
    scheduler = get_scheduler()

    if scheduler is None:
        return {
            "running": False,
            "message": "Scheduler not initialized",
        }

    jobs = scheduler.scheduler.get_jobs() if scheduler.scheduler else []

    job_list = []
    for job in jobs:
        next_run = job.next_run_time
        job_list.append({
            "id": job.id,
            "name": job.name,
            "next_run": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger),
        })

    return {
        "running": scheduler.running,
        "jobs": job_list,
        "total_jobs": len(jobs),
    }


@router.post("/scheduler/start")
async def start_scheduler() -> Dict:
    """Start the automation scheduler."""
    from app.core.scheduler import start_scheduler

    if get_scheduler() is not None and get_scheduler().running:
        return {
            "message": "Scheduler already running",
            "running": True,
        }

    scheduler = await start_scheduler()
    if scheduler is None:
        raise HTTPException(status_code=400, detail="Scheduler disabled (SCHEDULER_ENABLED=false)")

    return {
        "message": "Scheduler started successfully",
        "running": True,
    }


@router.post("/scheduler/stop")
async def stop_scheduler() -> Dict:
    """Stop the automation scheduler."""
    from app.core.scheduler import stop_scheduler

    if get_scheduler() is None or not get_scheduler().running:
        return {
            "message": "Scheduler not running",
            "running": False,
        }

    await stop_scheduler()

    return {
        "message": "Scheduler stopped successfully",
        "running": False,
    }
