"""League and season groupings plus league standings tables.

Leagues are keyed by the slug ``bbb-{ligaId}``; a changed upstream name renames
the grouping. Seasons are keyed by their slugified label. A standings table
exists only for leagues upstream does not flag as a cup/bracket competition.
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from app.models import League, LeagueTable, Season, SYNC_AUTHOR, Team
from app.repositories import LeagueRepository, LeagueTableRepository, SeasonRepository
from app.services.source.schemas import LeagueData
from app.services.sync.stats import SyncStats
from app.services.sync.utils.name_normalizer import slugify

logger = logging.getLogger(__name__)


def league_slug(league_id: int) -> str:
    return f"bbb-{league_id}"


def season_label(league: LeagueData) -> str:
    """
    Season name, derived from the season id when upstream omits it.

    Examples:
        >>> season_label(LeagueData(seasonName="2025/2026"))
        '2025/2026'
        >>> season_label(LeagueData(seasonId=2025))
        '2025/2026'
    """
    if league.season_name:
        return league.season_name
    start = league.season_id or date.today().year
    return f"{start}/{start + 1}"


class LeagueGroupings:
    """Creates and updates league, season and standings records."""

    def __init__(self, db: Session, stats: SyncStats, main_result: str = "pts"):
        self.db = db
        self.stats = stats
        self.main_result = main_result
        self.leagues = LeagueRepository(db)
        self.seasons = SeasonRepository(db)
        self.tables = LeagueTableRepository(db)

    def ensure_league(self, league: LeagueData) -> Optional[League]:
        """Find or create the grouping for an upstream league; renames on name change."""
        if not league.league_id:
            return None
        name = league.name or f"League {league.league_id}"

        record = self.leagues.find_by_external_id(league.league_id)
        if record is not None:
            if record.name != name:
                logger.info(f"League renamed: '{record.name}' -> '{name}' (#{league.league_id})")
                self.leagues.update(record, name=name)
            if league.table_exists is not None:
                record.table_exists = league.table_exists
            return record

        return self.leagues.create(
            external_league_id=league.league_id,
            name=name,
            slug=league_slug(league.league_id),
            age_group=league.age_group or None,
            gender=league.gender or None,
            season_name=league.season_name or None,
            table_exists=league.table_exists,
        )

    def ensure_season(self, league: LeagueData) -> Season:
        name = season_label(league)
        record = self.seasons.find_by_name(name)
        if record is None:
            record = self.seasons.create(name=name, slug=slugify(name))
        return record

    def ensure_table(
        self,
        league: LeagueData,
        league_record: League,
        season: Optional[Season],
        teams: list[Team],
    ) -> LeagueTable:
        """
        Create or update the standings table of a league.

        The title is only set on creation. Membership is replaced with the
        teams of the current league schedule.
        """
        table = self.tables.find_by_external_id(league.league_id)
        if table is None:
            table = self.tables.create(
                external_league_id=league.league_id,
                title=league.name or f"League {league.league_id}",
                author=SYNC_AUTHOR,
            )
            self.stats.increment("tables_created")
            logger.info(f"Table created: '{table.title}' (#{table.id})")
        else:
            self.stats.increment("tables_updated")

        table.league_id = league_record.id
        if season is not None:
            table.season_id = season.id
        table.teams = list({team.id: team for team in teams}.values())
        table.main_result = self.main_result
        self.db.flush()
        return table
