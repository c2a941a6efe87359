"""Player resolver for boxscore player lines.

Upstream issues a new player id every season; the person id is the stable
identity, so it is the matching anchor.

Pipeline:
1. Lookup by person id
2. Adoption of a hand-made player without person id, by exact (normalized) name
3. Create, authored by the sync actor

Anonymized lines (privacy flag or the "*** ****" placeholder) never become
players.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models import Event, League, Player, Season, SYNC_AUTHOR, Team
from app.repositories import PlayerRepository
from app.services.source.schemas import PlayerStatLine
from app.services.sync.stats import SyncStats
from app.services.sync.utils.field_policy import apply_protected
from app.services.sync.utils.name_normalizer import is_anonymized

logger = logging.getLogger(__name__)

# Jersey values upstream sends when the number is unknown or suppressed
_NO_JERSEY = {"", "**", "0"}


def jersey_number(line: PlayerStatLine) -> Optional[str]:
    number = (line.player.jersey_number or "").strip()
    return None if number in _NO_JERSEY else number


def skip_reason(line: PlayerStatLine) -> Optional[str]:
    """Why a line cannot become a player record, or None."""
    player = line.player
    if not player.player_id:
        return "no player id"
    if player.is_anonymized:
        return "anonymized"
    if is_anonymized(player.person.full_name):
        return "no public name"
    return None


class PlayerResolver:
    """
    Resolve boxscore lines to local players.

    Usage:
        resolver = PlayerResolver(db, stats)
        player = resolver.resolve_and_upsert(line, team, event)
    """

    def __init__(self, db: Session, stats: SyncStats):
        self.db = db
        self.stats = stats
        self.players = PlayerRepository(db)

    def _find(self, line: PlayerStatLine, name: str) -> Optional[Player]:
        person_id = line.player.person.id
        if person_id:
            player = self.players.find_by_external_id(person_id)
            if player is not None:
                return player

        player = self.players.find_unkeyed_by_name(name)
        if player is not None:
            logger.info(f"Adoption: player '{name}' (#{player.id}) <- person id {person_id}")
        return player

    def resolve_and_upsert(self, line: PlayerStatLine, team: Team, event: Event) -> Optional[Player]:
        """
        Create or update the player of a boxscore line and link it.

        Links: current team, team membership, the event's league and season,
        and the event's player list.

        Returns:
            The player, or None when the line was skipped
        """
        reason = skip_reason(line)
        if reason:
            self.stats.increment("players_skipped")
            logger.debug(f"Player skipped in match #{event.external_match_id}: {reason}")
            return None

        name = line.player.person.full_name
        player = self._find(line, name)
        is_update = player is not None

        if is_update:
            if player.external_person_id is None:
                player.name = name
            self.stats.increment("players_updated")
        else:
            player = self.players.create(name=name, author=SYNC_AUTHOR)
            self.stats.increment("players_created")

        if line.player.person.id:
            player.external_person_id = line.player.person.id
        player.external_player_id = line.player.player_id
        apply_protected(player, "jersey_number", jersey_number(line), is_update)

        player.current_team_id = team.id
        if team not in player.teams:
            player.teams.append(team)
        league = self.db.get(League, event.league_id) if event.league_id else None
        if league is not None and league not in player.leagues:
            player.leagues.append(league)
        season = self.db.get(Season, event.season_id) if event.season_id else None
        if season is not None and season not in player.seasons:
            player.seasons.append(season)
        if player not in event.players:
            event.players.append(player)

        self.db.flush()
        return player
