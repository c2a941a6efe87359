"""Shared pytest fixtures for the league sync tests."""
import os
import sys
from pathlib import Path
from typing import Generator, Optional

# Test configuration must be in place before app.core.config is imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SOURCE_REQUEST_DELAY", "0")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app.services.source.errors import SourceClientError, SourceStatusError
from app.services.source.schemas import (
    Boxscore,
    ClubMatches,
    LeagueSchedule,
    MatchInfo,
    TeamMatches,
)
from app.services.sync.stats import SyncStats
from app.services.sync.sync_config import SyncConfig

CLUB_ID = 4468


# ============================================================================
# Upstream payload builders (German keys, as basketball-bund.net sends them)
# ============================================================================

def league_payload(
    league_id: int = 47950,
    name: str = "Oberliga Herren",
    season_name: str = "2025/2026",
    age_group: str = "Senioren",
    gender: str = "männlich",
    table_exists: Optional[bool] = True,
    competition_type: str = "Liga",
) -> dict:
    return {
        "ligaId": league_id,
        "liganame": name,
        "seasonId": 2025,
        "seasonName": season_name,
        "akName": age_group,
        "geschlecht": gender,
        "skName": competition_type,
        "tableExists": table_exists,
    }


def team_payload(permanent_id: Optional[int], name: str, club_id: Optional[int] = None, short_name: Optional[str] = None) -> dict:
    return {
        "teamPermanentId": permanent_id,
        "seasonTeamId": (permanent_id or 0) + 500000 if permanent_id else None,
        "teamname": name,
        "teamnameSmall": short_name,
        "clubId": club_id,
    }


def match_payload(
    match_id: int,
    home: dict,
    guest: dict,
    result: Optional[str] = None,
    kickoff_date: str = "2025-10-04",
    kickoff_time: str = "18:00",
    league: Optional[dict] = None,
    matchday: int = 1,
    cancelled: bool = False,
) -> dict:
    return {
        "matchId": match_id,
        "matchDay": matchday,
        "matchNo": match_id % 1000,
        "kickoffDate": kickoff_date,
        "kickoffTime": kickoff_time,
        "homeTeam": home,
        "guestTeam": guest,
        "result": result,
        "ergebnisbestaetigt": bool(result),
        "verzicht": False,
        "abgesagt": cancelled,
        "ligaData": league if league is not None else league_payload(),
    }


def team_matches_payload(permanent_id: int, name: str, matches: list[dict]) -> dict:
    return {
        "team": {
            "teamPermanentId": permanent_id,
            "teamname": name,
            "teamAkj": "Senioren",
            "teamGender": "m",
            "teamNumber": "1",
        },
        "matches": matches,
    }


def stat_line_payload(
    player_id: int,
    person_id: Optional[int],
    first_name: str,
    last_name: str,
    jersey: str = "7",
    anonym: bool = False,
    **stats,
) -> dict:
    line = {
        "player": {
            "playerId": player_id,
            "no": jersey,
            "anonym": anonym,
            "person": {"id": person_id, "vorname": first_name, "nachname": last_name, "anonym": anonym},
        },
    }
    line.update(stats)
    return line


def boxscore_payload(
    home: dict,
    guest: dict,
    home_lines: Optional[list[dict]] = None,
    guest_lines: Optional[list[dict]] = None,
    venue: Optional[dict] = None,
    with_boxscore: bool = True,
) -> dict:
    payload = {"statisticType": 2, "homeTeam": home, "guestTeam": guest}
    if with_boxscore:
        payload["matchBoxscore"] = {
            "homePlayerStats": home_lines or [],
            "guestPlayerStats": guest_lines or [],
        }
    if venue is not None:
        payload["matchInfo"] = {"spielfeld": venue}
    return payload


def venue_payload(field_id: int = 700, label: str = "Sporthalle Nord", street: str = "Hauptstr. 1",
                  postal_code: str = "63225", city: str = "Langen") -> dict:
    return {"id": field_id, "bezeichnung": label, "strasse": street, "plz": postal_code, "ort": city}


# ============================================================================
# Fake upstream client
# ============================================================================

class FakeLeagueApiClient:
    """
    In-memory stand-in for LeagueApiClient serving canned payloads.

    Payload dicts are decoded through the real schemas. A value that is an
    exception instance is raised instead. Every call is recorded in ``calls``
    as ``(endpoint, id)``.

    Unknown ids: team matches and boxscores raise HTTP 404, logos raise
    HTTP 404, match info and league schedules come back empty.
    """

    def __init__(self):
        self.team_matches: dict[int, object] = {}
        self.boxscores: dict[int, object] = {}
        self.match_infos: dict[int, object] = {}
        self.league_schedules: dict[int, object] = {}
        self.club_matches: dict[int, object] = {}
        self.logos: dict[int, object] = {}
        self.calls: list[tuple[str, int]] = []
        self.throttles = 0

    def calls_to(self, endpoint: str) -> list[int]:
        return [arg for name, arg in self.calls if name == endpoint]

    @staticmethod
    def _serve(store: dict, key: int, model, endpoint: str, missing: str = "raise"):
        value = store.get(key)
        if isinstance(value, SourceClientError):
            raise value
        if value is None:
            if missing == "raise":
                raise SourceStatusError(404, endpoint)
            return model.model_validate({})
        return model.model_validate(value)

    async def get_club_matches(self, club_id: int, range_days: int = 365) -> ClubMatches:
        self.calls.append(("club_matches", club_id))
        return self._serve(self.club_matches, club_id, ClubMatches, f"/club/id/{club_id}/actualmatches")

    async def get_team_matches(self, permanent_id: int) -> TeamMatches:
        self.calls.append(("team_matches", permanent_id))
        return self._serve(self.team_matches, permanent_id, TeamMatches, f"/team/id/{permanent_id}/matches")

    async def get_match_info(self, match_id: int) -> MatchInfo:
        self.calls.append(("match_info", match_id))
        return self._serve(self.match_infos, match_id, MatchInfo, f"/match/id/{match_id}/matchInfo", missing="empty")

    async def get_boxscore(self, match_id: int) -> Boxscore:
        self.calls.append(("boxscore", match_id))
        return self._serve(self.boxscores, match_id, Boxscore, f"/match/id/{match_id}/boxscore")

    async def get_league_schedule(self, league_id: int) -> LeagueSchedule:
        self.calls.append(("league_schedule", league_id))
        return self._serve(
            self.league_schedules, league_id, LeagueSchedule,
            f"/competition/spielplan/id/{league_id}", missing="empty",
        )

    async def get_logo(self, permanent_id: int) -> tuple[bytes, str]:
        self.calls.append(("logo", permanent_id))
        value = self.logos.get(permanent_id)
        if isinstance(value, SourceClientError):
            raise value
        if value is None:
            raise SourceStatusError(404, f"/media/team/{permanent_id}/logo")
        return value

    async def throttle(self) -> None:
        self.throttles += 1

    def close(self) -> None:
        pass


class FakeGeocoder:
    """Geocoder returning fixed coordinates and recording the queries."""

    def __init__(self, coordinates=(50.0, 8.6)):
        self.coordinates = coordinates
        self.queries: list[tuple[str, str, str]] = []

    async def geocode(self, street: str = "", postal_code: str = "", city: str = ""):
        from app.services.source.geocoder import Coordinates

        self.queries.append((street, postal_code, city))
        if self.coordinates is None:
            return None
        return Coordinates(*self.coordinates)

    def close(self) -> None:
        pass


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create fresh test database session with isolated in-memory database."""
    from app.models import Base

    # StaticPool keeps the single in-memory connection shared, so TestClient
    # requests running in another thread see the same data
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestSessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = TestSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def fake_client() -> FakeLeagueApiClient:
    return FakeLeagueApiClient()


@pytest.fixture
def fake_geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def stats() -> SyncStats:
    return SyncStats()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(club_id=CLUB_ID, own_team_ids=[100], result_slots=["t"])


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Circuit breakers are module-level; start every test closed."""
    from app.services.core.circuit_breaker import geocoder_breaker, league_api_breaker, reset_breaker

    reset_breaker(league_api_breaker)
    reset_breaker(geocoder_breaker)
    yield
    reset_breaker(league_api_breaker)
    reset_breaker(geocoder_breaker)


@pytest.fixture
def sample_groupings(db_session: Session):
    """One league and one season, as created by a previous run."""
    from app.models import League, Season

    league = League(external_league_id=47950, name="Oberliga Herren", slug="bbb-47950", season_name="2025/2026")
    season = Season(name="2025/2026", slug="2025-2026")
    db_session.add_all([league, season])
    db_session.commit()
    return {"league": league, "season": season}


@pytest.fixture
def sample_teams(db_session: Session):
    """Two synchronized teams: own team 100 and opponent 200."""
    from app.models import Team

    home = Team(name="TV Langen", external_permanent_id=100, club_id=CLUB_ID, is_own_team=True, author="bbb-sync")
    away = Team(name="BC Darmstadt", external_permanent_id=200, club_id=9000, author="bbb-sync")
    db_session.add_all([home, away])
    db_session.commit()
    return {"home": home, "away": away, "team_map": {100: home.id, 200: away.id}}
