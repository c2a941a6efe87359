"""Unit tests for decoded basketball-bund.net payloads.

Test Strategy:
1. Test lenient decoding of loosely typed match fields
2. Test result and kickoff parsing
3. Test league data injection into schedule matches
4. Test the two venue formats
5. Test boxscore line splitting and anonymization flags
"""
import zlib
from datetime import datetime

import pytest

from app.services.source.schemas import (
    Boxscore,
    LabelVenue,
    LeagueData,
    LeagueSchedule,
    Match,
    MatchInfo,
    StructuredVenue,
    TeamMatches,
)
from conftest import (
    boxscore_payload,
    league_payload,
    match_payload,
    stat_line_payload,
    team_payload,
    venue_payload,
)


class TestMatch:

    def test_decodes_numeric_strings(self):
        """Should turn numeric strings into ints."""
        match = Match.model_validate({
            "matchId": "2001",
            "matchDay": "3",
            "homeTeam": {"teamPermanentId": "100", "teamname": "TV Langen"},
            "guestTeam": None,
        })
        assert match.match_id == 2001
        assert match.matchday == 3
        assert match.home_team.permanent_id == 100
        assert match.guest_team.permanent_id is None
        assert match.guest_team.name == ""

    def test_score(self):
        """Should parse a '78:65' result into home and guest points."""
        match = Match.model_validate(match_payload(1, team_payload(100, "A"), team_payload(200, "B"), result="78:65"))
        assert match.has_result
        assert match.score == (78, 65)

    @pytest.mark.parametrize("result", [None, "", "  "])
    def test_no_result(self, result):
        """Should treat blank results as not played."""
        match = Match.model_validate(match_payload(1, team_payload(100, "A"), team_payload(200, "B"), result=result))
        assert not match.has_result
        assert match.score is None

    def test_result_without_score(self):
        """Should report a result that is not a score without a score."""
        match = Match.model_validate(match_payload(1, team_payload(100, "A"), team_payload(200, "B"), result="abg."))
        assert match.has_result
        assert match.score is None

    def test_scheduled_at(self):
        """Should combine kickoff date and time."""
        match = Match.model_validate(
            match_payload(1, team_payload(100, "A"), team_payload(200, "B"), kickoff_date="2025-10-04", kickoff_time="18:30:00")
        )
        assert match.scheduled_at == datetime(2025, 10, 4, 18, 30)

    def test_invalid_kickoff(self):
        """Should return None for an unparseable kickoff date."""
        match = Match.model_validate({"matchId": 1, "kickoffDate": "04.10.2025"})
        assert match.scheduled_at is None

    def test_team_matches_with_null_lists(self):
        """Should decode null match lists as empty."""
        payload = TeamMatches.model_validate({"team": None, "matches": None})
        assert payload.matches == []
        assert payload.team.display_name == ""


class TestLeagueData:

    def test_table_exists_default(self):
        """Should assume a table unless upstream says tableExists=false."""
        assert LeagueData.model_validate(league_payload(table_exists=None)).has_table
        assert not LeagueData.model_validate(league_payload(table_exists=False)).has_table

    def test_schedule_injects_league(self):
        """Should copy the top-level league block into matches without one."""
        match = match_payload(1, team_payload(100, "A"), team_payload(200, "B"))
        del match["ligaData"]
        schedule = LeagueSchedule.model_validate({"ligaData": league_payload(league_id=555), "matches": [match]})
        assert schedule.matches[0].league_id == 555


class TestVenues:

    def test_structured_venue(self):
        """Should decode a spielfeld object with its address."""
        info = MatchInfo.model_validate({"matchInfo": {"spielfeld": venue_payload(field_id=700)}})
        assert isinstance(info.venue, StructuredVenue)
        assert info.venue.field_id == 700
        assert info.venue.address == "Hauptstr. 1, 63225 Langen"

    def test_label_venue(self):
        """Should key free-text venues by a CRC32 of the label."""
        info = MatchInfo.model_validate({"ort": "Halle am See"})
        assert isinstance(info.venue, LabelVenue)
        assert info.venue.field_id == zlib.crc32("Halle am See".encode("utf-8"))
        assert info.venue.address == ""

    def test_label_venue_has_empty_address_parts(self):
        """Should expose blank street, postal code and city without extra fields."""
        venue = LabelVenue(label="Sporthalle Nord")
        assert (venue.street, venue.postal_code, venue.city) == ("", "", "")
        assert set(venue.model_dump()) == {"kind", "label"}

    def test_label_key_exceeds_signed_int(self):
        """Should produce unsigned CRC32 keys above the 32-bit signed range."""
        venue = LabelVenue(label="Sporthalle Nord")
        assert venue.field_id == zlib.crc32("Sporthalle Nord".encode("utf-8"))
        assert venue.field_id > 2**31 - 1

    def test_no_venue(self):
        """Should decode match info without venue data."""
        assert MatchInfo.model_validate({}).venue is None

    def test_structured_venue_without_street(self):
        """Should build the address from postal code and city only."""
        venue = StructuredVenue.model_validate({"id": 9, "plz": "63225", "ort": "Langen"})
        assert venue.address == "63225 Langen"
        assert venue.name == "Venue 9"


class TestBoxscore:

    def test_lines_split_into_stats_and_pairs(self):
        """Should separate flat stats from made/attempted pairs."""
        line = stat_line_payload(9001, 5001, "Max", "Muster", pts=20, wt={"made": 8, "attempted": 15})
        boxscore = Boxscore.model_validate(
            boxscore_payload(team_payload(100, "A"), team_payload(200, "B"), home_lines=[line])
        )
        decoded = boxscore.match_boxscore.home_player_stats[0]
        assert decoded.player.person.full_name == "Max Muster"
        assert decoded.stats["pts"] == 20
        assert decoded.pairs["wt"].made == 8

    def test_mini_league_without_boxscore(self):
        """Should decode a boxscore without player stats."""
        boxscore = Boxscore.model_validate(
            boxscore_payload(team_payload(100, "A"), team_payload(200, "B"), with_boxscore=False)
        )
        assert boxscore.match_boxscore is None

    def test_anonymized_player(self):
        """Should expose the privacy flag from player or person."""
        line = stat_line_payload(9002, None, "***", "****", anonym=True)
        boxscore = Boxscore.model_validate(
            boxscore_payload(team_payload(100, "A"), team_payload(200, "B"), guest_lines=[line])
        )
        assert boxscore.match_boxscore.guest_player_stats[0].player.is_anonymized

    def test_boxscore_venue(self):
        """Should only take the structured venue from a boxscore."""
        boxscore = Boxscore.model_validate(
            boxscore_payload(team_payload(100, "A"), team_payload(200, "B"), venue=venue_payload(field_id=42))
        )
        assert boxscore.venue.field_id == 42
