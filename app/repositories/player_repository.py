"""Player and roster list data access."""
from typing import List, Optional

from sqlalchemy.orm import Session

from app.models import Player, PlayerList, player_teams
from app.repositories.base import BaseRepository
from app.services.sync.utils.name_normalizer import are_names_equal


class PlayerRepository(BaseRepository[Player]):

    def __init__(self, db: Session):
        super().__init__(Player, db)

    def find_by_external_id(self, person_id: int) -> Optional[Player]:
        return self.where_first(Player.external_person_id == person_id)

    def find_unkeyed_by_name(self, name: str) -> Optional[Player]:
        for player in self.where(Player.external_person_id.is_(None)):
            if are_names_equal(player.name, name):
                return player
        return None

    def with_current_team(self, team_id: int) -> List[Player]:
        return self.where(Player.current_team_id == team_id)

    def with_team_membership(self, team_id: int) -> List[Player]:
        return (
            self.db.query(Player)
            .join(player_teams, player_teams.c.player_id == Player.id)
            .filter(player_teams.c.team_id == team_id)
            .order_by(Player.id)
            .all()
        )


class PlayerListRepository(BaseRepository[PlayerList]):

    def __init__(self, db: Session):
        super().__init__(PlayerList, db)

    def find_for_team_season(self, team_id: int, season_id: int) -> Optional[PlayerList]:
        return self.where_first(PlayerList.team_id == team_id, PlayerList.season_id == season_id)

    def for_team(self, team_id: int) -> List[PlayerList]:
        return self.where(PlayerList.team_id == team_id)
