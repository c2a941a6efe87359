"""Run progress published to the shared state store.

A run moves strictly forward through its phases:

    idle -> dedup -> teams-loading -> teams-syncing -> league-wide-reconcile -> done

Every phase is published before its work starts so a poller always sees
what the run is doing right now. Any failure still ends in ``done``.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from app.models import utcnow
from app.repositories import SyncStateRepository

logger = logging.getLogger(__name__)

PROGRESS_KEY = "progress"


class SyncPhase(str, Enum):
    IDLE = "idle"
    DEDUP = "dedup"
    TEAMS_LOADING = "teams-loading"
    TEAMS_SYNCING = "teams-syncing"
    LEAGUE_WIDE_RECONCILE = "league-wide-reconcile"
    DONE = "done"


PHASE_ORDER = list(SyncPhase)


def _iso(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return None


class ProgressTracker:
    """
    Publishes progress snapshots for the current run.

    Snapshot fields: running, phase, label, current_team, total_teams,
    matches_done, matches_total, started_at, last_update, finished_at,
    stats, error.
    """

    def __init__(self, store: SyncStateRepository, ttl_seconds: int = 600, error_ttl_seconds: int = 300):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.error_ttl_seconds = error_ttl_seconds
        self.state: dict[str, Any] = {}

    @property
    def phase(self) -> SyncPhase:
        return SyncPhase(self.state.get("phase", SyncPhase.IDLE.value))

    def start(self, label: str = "Starting sync") -> dict:
        """Claim a fresh snapshot in phase ``idle``."""
        now = _iso(utcnow())
        self.state = {
            "running": True,
            "phase": SyncPhase.IDLE.value,
            "label": label,
            "current_team": None,
            "total_teams": 0,
            "matches_done": 0,
            "matches_total": 0,
            "started_at": now,
            "last_update": now,
            "finished_at": None,
            "stats": {},
            "error": None,
        }
        self.store.set(PROGRESS_KEY, self.state, self.ttl_seconds)
        return self.state

    def resume(self) -> dict:
        """Continue the published snapshot (claimed by another session), or start one."""
        state = self.store.get(PROGRESS_KEY)
        if not isinstance(state, dict) or not state.get("running"):
            return self.start()
        self.state = dict(state)
        return self.state

    def set_phase(self, phase: SyncPhase, label: str, **fields) -> None:
        """
        Enter a new phase.

        Raises:
            ValueError: If ``phase`` lies before the current phase
        """
        if PHASE_ORDER.index(phase) < PHASE_ORDER.index(self.phase):
            raise ValueError(f"Cannot move from phase '{self.phase.value}' back to '{phase.value}'")
        self.update(phase=phase.value, label=label, **fields)

    def update(self, **fields) -> None:
        """Publish changed fields; ``started_at`` always carries over."""
        if not self.state:
            self.start()
        self.state.update(fields)
        self.state["last_update"] = _iso(utcnow())
        self.store.set(PROGRESS_KEY, self.state, self.ttl_seconds)

    def finish(self, stats: dict, error: Optional[str] = None) -> None:
        """Publish the terminal ``done`` snapshot."""
        label = f"Error: {error}" if error else "Sync complete"
        if not self.state:
            self.resume()
        self.state.update({
            "running": False,
            "phase": SyncPhase.DONE.value,
            "label": label,
            "current_team": None,
            "finished_at": _iso(utcnow()),
            "stats": stats,
            "error": error,
        })
        self.state["last_update"] = self.state["finished_at"]
        ttl = self.error_ttl_seconds if error else self.ttl_seconds
        self.store.set(PROGRESS_KEY, self.state, ttl)
