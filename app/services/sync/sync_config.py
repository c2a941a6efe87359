"""Explicit run configuration injected into the sync engine."""
from dataclasses import dataclass, field
from typing import Optional

from app.core.config import Settings, settings as default_settings

DEFAULT_MAIN_RESULT = "pts"


class SyncConfigurationError(Exception):
    """Raised when a run cannot start because required configuration is missing."""


@dataclass
class SyncConfig:
    club_id: int = 0
    own_team_ids: list[int] = field(default_factory=list)
    range_days: int = 365
    players_enabled: bool = False
    players_own_only: bool = True
    result_slots: list[str] = field(default_factory=lambda: ["t"])
    stat_mapping: dict[str, str] = field(default_factory=dict)
    logo_cache_days: int = 180
    venue_cache_days: int = 30
    log_size: int = 200
    history_size: int = 50
    stale_run_seconds: int = 300
    progress_idle_seconds: int = 120
    progress_ttl_seconds: int = 600
    progress_error_ttl_seconds: int = 300

    @property
    def main_result(self) -> str:
        """Primary result slot: the first configured slot, ``pts`` otherwise."""
        return self.result_slots[0] if self.result_slots else DEFAULT_MAIN_RESULT

    @property
    def slots(self) -> list[str]:
        return self.result_slots or [self.main_result]

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        own_team_ids: Optional[list[int]] = None,
    ) -> "SyncConfig":
        """
        Build the run configuration.

        Args:
            settings: Application settings (defaults to the global settings)
            own_team_ids: Registered own teams; overrides ``SYNC_OWN_TEAMS``
        """
        s = settings or default_settings
        return cls(
            club_id=s.SYNC_CLUB_ID,
            own_team_ids=list(own_team_ids) if own_team_ids else s.own_team_ids,
            range_days=s.SYNC_RANGE_DAYS,
            players_enabled=s.SYNC_PLAYERS_ENABLED,
            players_own_only=s.SYNC_PLAYERS_OWN_ONLY,
            result_slots=s.result_slots,
            stat_mapping=s.stat_mapping,
            logo_cache_days=s.LOGO_CACHE_DAYS,
            venue_cache_days=s.VENUE_CACHE_DAYS,
            log_size=s.SYNC_LOG_SIZE,
            history_size=s.SYNC_HISTORY_SIZE,
            stale_run_seconds=s.SYNC_STALE_RUN_SECONDS,
            progress_idle_seconds=s.SYNC_PROGRESS_IDLE_SECONDS,
            progress_ttl_seconds=s.SYNC_PROGRESS_TTL_SECONDS,
            progress_error_ttl_seconds=s.SYNC_PROGRESS_ERROR_TTL_SECONDS,
        )
