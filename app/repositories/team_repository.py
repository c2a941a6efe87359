"""Team data access."""
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import Team
from app.repositories.base import BaseRepository
from app.services.sync.utils.name_normalizer import are_names_equal, names_overlap


class TeamRepository(BaseRepository[Team]):

    def __init__(self, db: Session):
        super().__init__(Team, db)

    def find_by_external_id(self, permanent_id: int) -> Optional[Team]:
        """Oldest team carrying the permanent id."""
        return self.where_first(Team.external_permanent_id == permanent_id)

    def find_unkeyed_by_name(self, name: str) -> Optional[Team]:
        """
        Adoption candidate among teams without a permanent id.

        Exact normalized matches win over substring containment
        (either direction); ties go to the oldest record.
        """
        candidates = self.where(Team.external_permanent_id.is_(None))
        for team in candidates:
            if are_names_equal(team.name, name):
                return team
        for team in candidates:
            if names_overlap(team.name, name):
                return team
        return None

    def duplicate_groups(self) -> Dict[int, List[Team]]:
        """Permanent id -> teams sharing it (oldest first), for groups of 2+."""
        duplicated_ids = [
            row[0] for row in self.db.query(Team.external_permanent_id)
            .filter(Team.external_permanent_id.isnot(None))
            .group_by(Team.external_permanent_id)
            .having(func.count(Team.id) > 1)
            .all()
        ]
        return {
            permanent_id: self.where(Team.external_permanent_id == permanent_id)
            for permanent_id in sorted(duplicated_ids)
        }
