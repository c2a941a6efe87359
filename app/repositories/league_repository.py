"""League, season and league table data access."""
from typing import List, Optional

from sqlalchemy.orm import Session

from app.models import League, LeagueTable, Season, league_table_teams
from app.repositories.base import BaseRepository


class LeagueRepository(BaseRepository[League]):

    def __init__(self, db: Session):
        super().__init__(League, db)

    def find_by_external_id(self, league_id: int) -> Optional[League]:
        return self.where_first(League.external_league_id == league_id)


class SeasonRepository(BaseRepository[Season]):

    def __init__(self, db: Session):
        super().__init__(Season, db)

    def find_by_name(self, name: str) -> Optional[Season]:
        return self.where_first(Season.name == name)


class LeagueTableRepository(BaseRepository[LeagueTable]):

    def __init__(self, db: Session):
        super().__init__(LeagueTable, db)

    def find_by_external_id(self, league_id: int) -> Optional[LeagueTable]:
        return self.where_first(LeagueTable.external_league_id == league_id)

    def containing_team(self, team_id: int) -> List[LeagueTable]:
        return (
            self.db.query(LeagueTable)
            .join(league_table_teams, league_table_teams.c.league_table_id == LeagueTable.id)
            .filter(league_table_teams.c.team_id == team_id)
            .order_by(LeagueTable.id)
            .all()
        )
