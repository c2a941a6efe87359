"""Tests for team deduplication."""
from datetime import datetime
from unittest.mock import patch

import pytest

from app.models import Event, LeagueTable, Player, PlayerList, Team
from app.services.sync.deduplicator import TeamDeduplicator, rekey


def make_event(home_id, away_id, match_id=None, day=4, **kwargs) -> Event:
    return Event(
        title="Match",
        scheduled_at=datetime(2025, 10, day, 18, 0),
        home_team_id=home_id,
        away_team_id=away_id,
        external_match_id=match_id,
        **kwargs,
    )


@pytest.fixture
def duplicates(db_session, sample_teams, sample_groupings):
    """A second copy of team 100 with its own references."""
    keeper = sample_teams["home"]
    copy = Team(name="TV Langen (copy)", external_permanent_id=100)
    copy.seasons.append(sample_groupings["season"])
    db_session.add(copy)
    db_session.flush()
    return {"keeper": keeper, "copy": copy, "away": sample_teams["away"], "season": sample_groupings["season"]}


class TestRekey:

    def test_moves_entry(self):
        """Should move one team's entry to the new id."""
        assert rekey({"5": {"t": "70"}, "9": {"t": "60"}}, 9, 2) == {"5": {"t": "70"}, "2": {"t": "60"}}

    def test_missing_entry(self):
        """Should report no change when the old id has no entry."""
        assert rekey({"5": {}}, 9, 2) is None
        assert rekey(None, 9, 2) is None


class TestTeamDeduplicator:

    def test_no_duplicates(self, db_session, stats, sample_teams):
        """Should do nothing without duplicates."""
        assert TeamDeduplicator(db_session, stats).run() == 0
        assert stats.teams_deduped == 0

    def test_merges_into_oldest(self, db_session, stats, duplicates):
        """Should keep the lowest id and move every reference."""
        keeper, copy, away = duplicates["keeper"], duplicates["copy"], duplicates["away"]
        event = make_event(
            copy.id, away.id, match_id=1001,
            results={str(copy.id): {"t": "78"}, str(away.id): {"t": "65"}},
            performance={str(copy.id): {"1": {"pts": "20"}}},
        )
        player = Player(name="Max Muster", current_team_id=copy.id)
        player.teams.append(copy)
        table = LeagueTable(external_league_id=47950, title="Tabelle")
        table.teams.append(copy)
        roster = PlayerList(team_id=copy.id, season_id=duplicates["season"].id, title="Roster")
        db_session.add_all([event, player, table, roster])
        db_session.commit()
        copy_id = copy.id

        removed = TeamDeduplicator(db_session, stats).run()

        assert removed == 1
        assert stats.teams_deduped == 1
        assert db_session.get(Team, copy_id) is None
        db_session.refresh(event)
        assert event.home_team_id == keeper.id
        assert set(event.results) == {str(keeper.id), str(away.id)}
        assert set(event.performance) == {str(keeper.id)}
        assert player.current_team_id == keeper.id
        assert [team.id for team in player.teams] == [keeper.id]
        assert [team.id for team in table.teams] == [keeper.id]
        assert roster.team_id == keeper.id
        assert duplicates["season"] in keeper.seasons

    def test_second_run_is_noop(self, db_session, stats, duplicates):
        """Should leave one team per permanent id."""
        dedup = TeamDeduplicator(db_session, stats)
        dedup.run()
        assert dedup.run() == 0
        assert db_session.query(Team).filter(Team.external_permanent_id == 100).count() == 1


    def test_failing_group_does_not_stop_others(self, db_session, stats, duplicates):
        """Should roll back a failing group and still merge the other groups."""
        db_session.add(Team(name="BC Darmstadt (copy)", external_permanent_id=200))
        db_session.commit()
        dedup = TeamDeduplicator(db_session, stats)
        merge = dedup.merge

        def failing_merge(loser, keeper):
            if loser.external_permanent_id == 100:
                raise RuntimeError("database is locked")
            merge(loser, keeper)

        with patch.object(dedup, "merge", side_effect=failing_merge):
            removed = dedup.run()

        assert removed == 1
        assert stats.teams_deduped == 1
        assert stats.errors == 1
        assert db_session.query(Team).filter(Team.external_permanent_id == 200).count() == 1
        assert db_session.query(Team).filter(Team.external_permanent_id == 100).count() == 2
