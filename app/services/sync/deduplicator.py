"""Team deduplication.

Runs first in every sync so the resolvers see at most one team per permanent
id. Within a duplicate group the oldest team (lowest id) survives; every
reference to the other teams is moved onto it before they are deleted.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models import Event, Team
from app.repositories import (
    EventRepository,
    LeagueTableRepository,
    PlayerListRepository,
    PlayerRepository,
    TeamRepository,
)
from app.services.sync.stats import SyncStats

logger = logging.getLogger(__name__)


def rekey(data: Optional[dict], old_id: int, new_id: int) -> Optional[dict]:
    """
    Move a per-team entry of a results/performance map to another team id.

    Examples:
        >>> rekey({"5": {"t": "70"}, "9": {"t": "60"}}, 9, 2)
        {'5': {'t': '70'}, '2': {'t': '60'}}
        >>> rekey({"5": {}}, 9, 2)
    """
    if not isinstance(data, dict) or str(old_id) not in data:
        return None
    moved = dict(data)
    moved[str(new_id)] = moved.pop(str(old_id))
    return moved


class TeamDeduplicator:
    """
    Usage:
        removed = TeamDeduplicator(db, stats).run()
    """

    def __init__(self, db: Session, stats: SyncStats):
        self.db = db
        self.stats = stats
        self.teams = TeamRepository(db)
        self.events = EventRepository(db)
        self.players = PlayerRepository(db)
        self.player_lists = PlayerListRepository(db)
        self.tables = LeagueTableRepository(db)

    def run(self) -> int:
        """
        Merge every duplicate group, committing each group on its own.

        Returns:
            Number of teams removed
        """
        removed = 0
        for permanent_id, group in self.teams.duplicate_groups().items():
            keeper, losers = group[0], group[1:]
            try:
                for loser in losers:
                    self.merge(loser, keeper)
                    logger.info(
                        f"Dedup: '{loser.name}' (#{loser.id}) merged into '{keeper.name}' (#{keeper.id}), "
                        f"permanent id {permanent_id}"
                    )
                    self.teams.delete(loser)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.error(f"Dedup failed for permanent id {permanent_id}: {e}")
                self.stats.increment("errors")
                continue
            removed += len(losers)

        if removed:
            self.stats.increment("teams_deduped", removed)
            logger.info(f"Team dedup: {removed} duplicates removed")
        return removed

    def merge(self, loser: Team, keeper: Team) -> None:
        """Move every reference from ``loser`` to ``keeper`` (loser is not deleted)."""
        for event in self.events.referencing_team(loser.id):
            self._repoint_event(event, loser.id, keeper.id)

        for player in self.players.with_current_team(loser.id):
            player.current_team_id = keeper.id
        for player in self.players.with_team_membership(loser.id):
            player.teams.remove(loser)
            if keeper not in player.teams:
                player.teams.append(keeper)

        for player_list in self.player_lists.for_team(loser.id):
            player_list.team_id = keeper.id

        for table in self.tables.containing_team(loser.id):
            table.teams.remove(loser)
            if keeper not in table.teams:
                table.teams.append(keeper)

        for league in loser.leagues:
            if league not in keeper.leagues:
                keeper.leagues.append(league)
        for season in loser.seasons:
            if season not in keeper.seasons:
                keeper.seasons.append(season)

        self.db.flush()

    def _repoint_event(self, event: Event, old_id: int, new_id: int) -> None:
        if event.home_team_id == old_id:
            event.home_team_id = new_id
        if event.away_team_id == old_id:
            event.away_team_id = new_id
        results = rekey(event.results, old_id, new_id)
        if results is not None:
            event.results = results
        performance = rekey(event.performance, old_id, new_id)
        if performance is not None:
            event.performance = performance
