"""Event resolver: upstream matches -> local Event records.

Pipeline (first match wins):
1. Lookup by match id
2. Adoption of a hand-made event between the same home/away teams
   scheduled within a day of the upstream kickoff
3. Create, authored by the sync actor

Manual work is protected:
- title and content are never touched on update (title only at adoption)
- status only moves forward from "scheduled"
- results are only written while no side has a non-blank result slot
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.models import Event, League, Season, SYNC_AUTHOR, utcnow
from app.repositories import EventRepository
from app.services.source.schemas import Match
from app.services.sync.stats import SyncStats
from app.services.sync.sync_config import SyncConfig
from app.services.sync.utils.field_policy import apply_if_not_none, apply_protected, is_blank
from app.services.sync.utils.name_normalizer import normalize

logger = logging.getLogger(__name__)

RESULT_STATUS = "results"
DEFAULT_FORMAT = "league"


def outcome(own: int, other: int) -> str:
    """
    Examples:
        >>> outcome(78, 65), outcome(65, 78), outcome(70, 70)
        ('win', 'loss', 'draw')
    """
    if own > other:
        return "win"
    if own < other:
        return "loss"
    return "draw"


def skip_reason(match: Match) -> str:
    """Why a match without two permanent team ids cannot become an event."""
    combined = normalize(match.home_team.name + match.guest_team.name)
    if "freilos" in combined:
        return "bye"
    if "?" in combined:
        return "bracket placeholder (opponent not decided yet)"
    return "team without permanent id"


def has_entered_results(results: Optional[dict]) -> bool:
    """True once any side has a non-blank result slot (outcome does not count)."""
    for side in (results or {}).values():
        if not isinstance(side, dict):
            continue
        for slot, value in side.items():
            if slot != "outcome" and not is_blank(value):
                return True
    return False


def event_status(match: Match) -> str:
    if match.cancelled is True:
        return Event.STATUS_CANCELLED
    if match.has_result:
        return Event.STATUS_PUBLISHED
    return Event.STATUS_SCHEDULED


class EventResolver:

    def __init__(self, db: Session, stats: SyncStats, config: SyncConfig):
        self.db = db
        self.stats = stats
        self.config = config
        self.events = EventRepository(db)

    def _find(self, match: Match, scheduled_at: datetime, home_id: int, away_id: int, title: str) -> Optional[Event]:
        event = self.events.find_by_external_id(match.match_id)
        if event is not None:
            return event
        event = self.events.find_unkeyed_by_date_and_teams(scheduled_at, home_id, away_id)
        if event is not None:
            logger.info(f"Adoption: event '{title}' (#{event.id}) <- match id {match.match_id}")
        return event

    def resolve_and_upsert(
        self,
        match: Match,
        team_map: dict[int, int],
        leagues: dict[int, League],
        seasons: dict[str, Season],
    ) -> Optional[Event]:
        """
        Create or update the local event for an upstream match.

        Args:
            match: Upstream match
            team_map: Permanent id -> local team id
            leagues: Upstream league id -> League grouping
            seasons: Season name -> Season grouping

        Returns:
            The event, or None when the match was skipped
        """
        if not match.match_id:
            return None

        home_pid = match.home_team.permanent_id
        away_pid = match.guest_team.permanent_id
        if not home_pid or not away_pid:
            logger.info(
                f"Event skipped: match #{match.match_id} "
                f"({match.home_team.name or '?'} vs {match.guest_team.name or '?'}) - {skip_reason(match)}"
            )
            self.stats.increment("events_skipped")
            return None

        home_id = team_map.get(home_pid)
        away_id = team_map.get(away_pid)
        if not home_id or not away_id:
            logger.error(
                f"Event error: no local team for match #{match.match_id} "
                f"(home {home_pid} -> {home_id or 'MISSING'}, away {away_pid} -> {away_id or 'MISSING'})"
            )
            self.stats.increment("errors")
            return None

        if home_id == away_id:
            logger.warning(f"Event skipped: match #{match.match_id} has the same team on both sides")
            self.stats.increment("events_skipped")
            return None

        title = f"{match.home_team.name} vs. {match.guest_team.name}"
        scheduled_at = match.scheduled_at or utcnow()
        status = event_status(match)

        event = self._find(match, scheduled_at, home_id, away_id, title)
        is_update = event is not None

        if is_update:
            if event.external_match_id is None:
                event.title = title
            # Rescheduled matches move
            event.scheduled_at = scheduled_at
            if event.status == Event.STATUS_SCHEDULED and status != Event.STATUS_SCHEDULED:
                event.status = status
            self.stats.increment("events_updated")
        else:
            event = self.events.create(
                title=title,
                scheduled_at=scheduled_at,
                status=status,
                home_team_id=home_id,
                away_team_id=away_id,
                author=SYNC_AUTHOR,
            )
            self.stats.increment("events_created")

        event.external_match_id = match.match_id
        event.home_team_id = home_id
        event.away_team_id = away_id
        apply_if_not_none(event, "external_league_id", match.league_id or None)
        apply_if_not_none(event, "matchday", match.matchday)
        apply_if_not_none(event, "match_no", match.match_no)
        apply_if_not_none(event, "forfeit", match.forfeit)
        apply_if_not_none(event, "cancelled", match.cancelled)
        apply_if_not_none(event, "result_confirmed", match.result_confirmed)
        apply_protected(event, "format", DEFAULT_FORMAT, is_update)

        self._apply_results(event, match, home_id, away_id, is_update)
        if is_blank(event.main_result):
            event.main_result = self.config.main_result

        league = leagues.get(match.league_id) if match.league_id else None
        if league is not None:
            event.league_id = league.id
        season_name = match.league.season_name if match.league else ""
        season = seasons.get(season_name) if season_name else None
        if season is not None:
            event.season_id = season.id

        self.db.flush()
        return event

    def _apply_results(self, event: Event, match: Match, home_id: int, away_id: int, is_update: bool) -> None:
        slots = self.config.slots
        score = match.score

        if score is not None:
            if has_entered_results(event.results):
                return
            home_score, away_score = score
            home = {"outcome": [outcome(home_score, away_score)]}
            away = {"outcome": [outcome(away_score, home_score)]}
            for slot in slots:
                home[slot] = str(home_score)
                away[slot] = str(away_score)
            event.results = {str(home_id): home, str(away_id): away}
            event.result_status = RESULT_STATUS
            event.main_result = self.config.main_result
        elif not is_update and not event.results:
            event.results = {
                str(team_id): {"outcome": [], **{slot: "" for slot in slots}}
                for team_id in (home_id, away_id)
            }
