"""Per-run statistics counters."""
from dataclasses import asdict, dataclass


@dataclass
class SyncStats:
    """
    Counters accumulated over one sync run.

    Every resolver call counts exactly one of created/updated for its kind;
    skips and errors are counted separately.
    """

    teams_created: int = 0
    teams_updated: int = 0
    teams_deduped: int = 0
    events_created: int = 0
    events_updated: int = 0
    events_deleted: int = 0
    events_skipped: int = 0
    venues_created: int = 0
    venues_updated: int = 0
    players_created: int = 0
    players_updated: int = 0
    players_skipped: int = 0
    tables_created: int = 0
    tables_updated: int = 0
    logos_fetched: int = 0
    leagues_found: int = 0
    league_matches_synced: int = 0
    api_calls: int = 0
    errors: int = 0

    def increment(self, name: str, amount: int = 1) -> None:
        setattr(self, name, getattr(self, name) + amount)

    def as_dict(self) -> dict[str, int]:
        return asdict(self)
