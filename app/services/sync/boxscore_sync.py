"""Player and stat sync from match boxscores.

Runs per finished match when player sync is enabled. The event's
``boxscore_status`` records the outcome:

- ``synced``: merged; never fetched again
- ``no_data``: upstream has no boxscore (mini leagues); retried next run
- ``error``: fetch failed; retried next run

Performance is stored as ``{team_id: {player_id: {stat: value}}}`` and merged
field by field: only blank values are filled, so hand-entered stats survive.
Key "0" of each team holds team totals and is created empty when missing.
"""
import copy
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models import Event, Player, PlayerList, Season, SYNC_AUTHOR, Team
from app.repositories import PlayerListRepository, PlayerRepository
from app.services.source.client import LeagueApiClient
from app.services.source.errors import SourceClientError
from app.services.source.schemas import Boxscore, PlayerStatLine
from app.services.sync.matchers.player_resolver import PlayerResolver
from app.services.sync.stats import SyncStats
from app.services.sync.sync_config import SyncConfig
from app.services.sync.utils.field_policy import is_blank
from app.services.sync.utils.stat_mapping import map_stats

logger = logging.getLogger(__name__)

BOXSCORE_SYNCED = "synced"
BOXSCORE_NO_DATA = "no_data"
BOXSCORE_ERROR = "error"

TEAM_TOTALS_KEY = "0"


def merge_performance(existing: Optional[dict], incoming: dict[int, dict[int, dict[str, str]]]) -> dict:
    """
    Merge fresh boxscore stats into stored performance data.

    Examples:
        >>> merge_performance({"7": {"3": {"pts": "20", "ast": ""}}}, {7: {3: {"pts": "18", "ast": "4"}}})
        {'7': {'3': {'pts': '20', 'ast': '4'}, '0': {}}}
    """
    merged = copy.deepcopy(existing) if isinstance(existing, dict) else {}
    for team_id, players in incoming.items():
        team = merged.setdefault(str(team_id), {})
        for player_id, stats in players.items():
            current = team.setdefault(str(player_id), {})
            for stat, value in stats.items():
                if is_blank(current.get(stat)):
                    current[stat] = value
        team.setdefault(TEAM_TOTALS_KEY, {})
    return merged


def roster_title(team: Team, season: Season) -> str:
    return f"{team.name} - Roster {season.name}"


class BoxscoreSync:
    """
    Usage:
        boxscores = BoxscoreSync(db, client, stats, config)
        boxscore = await boxscores.sync_from_match(event, team_map)
        boxscores.update_rosters(event, boxscore)
    """

    def __init__(self, db: Session, client: LeagueApiClient, stats: SyncStats, config: SyncConfig):
        self.db = db
        self.client = client
        self.stats = stats
        self.config = config
        self.player_resolver = PlayerResolver(db, stats)
        self.players = PlayerRepository(db)
        self.player_lists = PlayerListRepository(db)

    def _sides(self, boxscore: Boxscore) -> list[tuple[Optional[int], list[PlayerStatLine]]]:
        sides = [
            (boxscore.home_team.permanent_id, boxscore.match_boxscore.home_player_stats),
            (boxscore.guest_team.permanent_id, boxscore.match_boxscore.guest_player_stats),
        ]
        own_ids = self.config.own_team_ids if self.config.players_own_only else []
        if own_ids:
            sides = [(pid, lines) for pid, lines in sides if pid in own_ids]
        return sides

    async def sync_from_match(self, event: Event, team_map: dict[int, int]) -> Optional[Boxscore]:
        """
        Fetch the boxscore of an event's match and merge players and stats.

        Args:
            event: Keyed event of a finished match
            team_map: Permanent id -> local team id

        Returns:
            The decoded boxscore (also for ``no_data``), or None when the
            event was already synced or the fetch failed
        """
        if event.boxscore_status == BOXSCORE_SYNCED:
            return None

        match_id = event.external_match_id
        self.stats.increment("api_calls")
        try:
            boxscore = await self.client.get_boxscore(match_id)
        except SourceClientError as e:
            logger.warning(f"Boxscore error for match #{match_id}: {e}")
            event.boxscore_status = BOXSCORE_ERROR
            self.db.flush()
            return None
        finally:
            await self.client.throttle()

        if boxscore.match_boxscore is None:
            logger.info(f"No boxscore for match #{match_id} (probably a mini league)")
            event.boxscore_status = BOXSCORE_NO_DATA
            self.db.flush()
            return boxscore

        created, updated, skipped = self.stats.players_created, self.stats.players_updated, self.stats.players_skipped
        performance: dict[int, dict[int, dict[str, str]]] = {}

        for permanent_id, lines in self._sides(boxscore):
            team_id = team_map.get(permanent_id) if permanent_id else None
            team = self.db.get(Team, team_id) if team_id else None
            if team is None:
                continue
            team_stats = performance.setdefault(team.id, {})
            for line in lines:
                player = self.player_resolver.resolve_and_upsert(line, team, event)
                if player is not None:
                    team_stats[player.id] = map_stats(line, self.config.stat_mapping)

        if performance:
            event.performance = merge_performance(event.performance, performance)
        event.boxscore_status = BOXSCORE_SYNCED
        self.db.flush()

        logger.info(
            f"Boxscore match #{match_id} (statistic type {boxscore.statistic_type}): "
            f"{self.stats.players_created - created} created, {self.stats.players_updated - updated} updated, "
            f"{self.stats.players_skipped - skipped} skipped, {len(performance)} teams"
        )
        return boxscore

    def ensure_player_list(self, team: Team, season: Season, league_id: Optional[int] = None) -> PlayerList:
        """Season roster of an own team, created on first use."""
        player_list = self.player_lists.find_for_team_season(team.id, season.id)
        if player_list is None:
            player_list = self.player_lists.create(
                team_id=team.id,
                season_id=season.id,
                league_id=league_id,
                title=roster_title(team, season),
                author=SYNC_AUTHOR,
            )
            logger.info(f"Roster list: '{player_list.title}' (#{player_list.id})")
        return player_list

    def update_rosters(self, event: Event, boxscore: Optional[Boxscore]) -> None:
        """Add the boxscore players of the event's own teams to their season rosters."""
        season = self.db.get(Season, event.season_id) if event.season_id else None
        if season is None:
            return
        home = self.db.get(Team, event.home_team_id)
        away = self.db.get(Team, event.away_team_id)
        sides = [(home, None), (away, None)]
        if boxscore is not None and boxscore.match_boxscore is not None:
            sides = [
                (home, boxscore.match_boxscore.home_player_stats),
                (away, boxscore.match_boxscore.guest_player_stats),
            ]

        for team, lines in sides:
            if team is None or not team.is_own_team:
                continue
            player_list = self.ensure_player_list(team, season, event.league_id)
            for line in lines or []:
                person_id = line.player.person.id
                player: Optional[Player] = self.players.find_by_external_id(person_id) if person_id else None
                if player is not None and player not in player_list.players:
                    player_list.players.append(player)
        self.db.flush()
