"""Tests for orphan event removal."""
from datetime import datetime

from app.models import Event, Team
from app.services.sync.reconciler import EventReconciler


def make_event(home_id, away_id, match_id=None, day=4) -> Event:
    return Event(
        title="Match",
        scheduled_at=datetime(2025, 10, day, 18, 0),
        home_team_id=home_id,
        away_team_id=away_id,
        external_match_id=match_id,
    )


class TestEventReconciler:

    def test_deletes_orphans_of_root_team(self, db_session, stats, sample_teams):
        """Should delete keyed events of the team that upstream no longer lists."""
        home, away = sample_teams["home"], sample_teams["away"]
        kept = make_event(home.id, away.id, match_id=1001)
        orphan = make_event(away.id, home.id, match_id=1002, day=11)
        manual = make_event(home.id, away.id, day=18)
        db_session.add_all([kept, orphan, manual])
        db_session.commit()

        deleted = EventReconciler(db_session, stats).reconcile([1001], 100, sample_teams["team_map"])

        assert deleted == 1
        assert stats.events_deleted == 1
        remaining = {e.external_match_id for e in db_session.query(Event).all()}
        assert remaining == {1001, None}

    def test_other_teams_untouched(self, db_session, stats, sample_teams):
        """Should only look at the root team's events."""
        other = Team(name="SG Egelsbach", external_permanent_id=300)
        db_session.add(other)
        db_session.flush()
        db_session.add(make_event(other.id, sample_teams["away"].id, match_id=2001))
        db_session.commit()

        EventReconciler(db_session, stats).reconcile([1001], 100, sample_teams["team_map"])
        assert db_session.query(Event).count() == 1

    def test_empty_response_deletes_nothing(self, db_session, stats, sample_teams):
        """Should not treat an empty upstream list as all orphaned."""
        db_session.add(make_event(sample_teams["home"].id, sample_teams["away"].id, match_id=1001))
        db_session.commit()

        assert EventReconciler(db_session, stats).reconcile([], 100, sample_teams["team_map"]) == 0
        assert db_session.query(Event).count() == 1
