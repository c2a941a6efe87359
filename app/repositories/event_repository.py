"""Event data access."""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models import Event
from app.repositories.base import BaseRepository


class EventRepository(BaseRepository[Event]):

    def __init__(self, db: Session):
        super().__init__(Event, db)

    def find_by_external_id(self, match_id: int) -> Optional[Event]:
        return self.where_first(Event.external_match_id == match_id)

    def find_unkeyed_by_date_and_teams(
        self, scheduled_at: datetime, home_team_id: int, away_team_id: int
    ) -> Optional[Event]:
        """
        Adoption candidate: unkeyed event between the same teams within one day.

        Kickoff times entered by hand are often off, so the window is the
        day before through the day after.
        """
        day = scheduled_at.replace(hour=0, minute=0, second=0, microsecond=0)
        return self.where_first(
            Event.external_match_id.is_(None),
            Event.home_team_id == home_team_id,
            Event.away_team_id == away_team_id,
            Event.scheduled_at >= day - timedelta(days=1),
            Event.scheduled_at < day + timedelta(days=2),
        )

    def keyed_for_team(self, team_id: int) -> List[Event]:
        """Synchronized events in which the team plays."""
        return self.where(
            Event.external_match_id.isnot(None),
            or_(Event.home_team_id == team_id, Event.away_team_id == team_id),
        )

    def referencing_team(self, team_id: int) -> List[Event]:
        """All events referencing the team in either slot."""
        return self.where(or_(Event.home_team_id == team_id, Event.away_team_id == team_id))

    def with_boxscore_status(self) -> List[Event]:
        return self.where(Event.boxscore_status.isnot(None))
