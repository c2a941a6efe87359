"""Orphan event detection.

After a root team's matches are synced, every synchronized event of that
team whose match id upstream no longer lists is deleted. Hand-made events
(no match id) are never touched.
"""
import logging
from typing import Iterable

from sqlalchemy.orm import Session

from app.repositories import EventRepository
from app.services.sync.stats import SyncStats

logger = logging.getLogger(__name__)


class EventReconciler:

    def __init__(self, db: Session, stats: SyncStats):
        self.db = db
        self.stats = stats
        self.events = EventRepository(db)

    def reconcile(self, seen_match_ids: Iterable[int], permanent_id: int, team_map: dict[int, int]) -> int:
        """
        Delete the root team's orphaned events.

        An empty ``seen_match_ids`` means upstream returned nothing usable;
        nothing is deleted then.

        Returns:
            Number of events deleted
        """
        seen = {match_id for match_id in seen_match_ids if match_id}
        if not seen:
            return 0
        team_id = team_map.get(permanent_id)
        if not team_id:
            return 0

        orphaned = 0
        for event in self.events.keyed_for_team(team_id):
            if event.external_match_id not in seen:
                logger.info(f"Orphan removed: '{event.title}' (#{event.id}), match id {event.external_match_id}")
                self.events.delete(event)
                orphaned += 1

        if orphaned:
            self.db.commit()
            self.stats.increment("events_deleted", orphaned)
        return orphaned
