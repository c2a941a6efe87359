"""
Decoded basketball-bund.net payloads.

Upstream JSON is German-keyed, loosely typed and full of nulls. Everything
is normalized here so the sync engine only sees one shape per entity:
- nulls become empty strings / empty lists where a value is always expected
- numeric strings ("12", "23:15") become ints
- the two match info venue formats become a tagged StructuredVenue | LabelVenue
- nested shooting stats become StatPair objects
"""
import re
import zlib
from datetime import datetime
from typing import Annotated, Any, ClassVar, Literal, Optional, Union

from pydantic import (
    BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, model_validator,
)

FLAT_STAT_KEYS = ("pts", "ro", "rd", "rt", "as", "st", "to", "bs", "fouls", "eff", "esz")
PAIR_STAT_KEYS = ("wt", "twoPoints", "threePoints", "onePoints")


def _lenient_int(value: Any) -> Optional[int]:
    """
    Integer from loosely typed upstream values.

    Examples:
        >>> _lenient_int("23:15"), _lenient_int(7.0), _lenient_int(None), _lenient_int("n/a")
        (23, 7, None, None)
    """
    if value is None or value == "":
        return None
    if isinstance(value, (bool, int, float)):
        return int(value)
    if isinstance(value, str):
        match = re.match(r"\s*(-?\d+)", value)
        return int(match.group(1)) if match else None
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


LenientInt = Annotated[Optional[int], BeforeValidator(_lenient_int)]
Text = Annotated[str, BeforeValidator(_text)]
OptionalText = Annotated[Optional[str], BeforeValidator(_optional_text)]
Flag = Annotated[bool, BeforeValidator(lambda v: bool(v))]


def _object(value: Any) -> Any:
    return {} if value is None else value


def _list(value: Any) -> Any:
    return [] if value is None else value


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ============================================================================
# Leagues, teams, matches
# ============================================================================

class LeagueData(ApiModel):
    """``ligaData`` block attached to matches and schedules."""

    league_id: LenientInt = Field(None, alias="ligaId")
    name: Text = Field("", alias="liganame")
    season_id: LenientInt = Field(None, alias="seasonId")
    season_name: Text = Field("", alias="seasonName")
    age_group: Text = Field("", alias="akName")
    gender: Text = Field("", alias="geschlecht")
    competition_type: Text = Field("", alias="skName")
    table_exists: Optional[bool] = Field(None, alias="tableExists")

    @property
    def has_table(self) -> bool:
        """Only an explicit ``tableExists: false`` marks a cup/bracket competition."""
        return self.table_exists is not False


class TeamRef(ApiModel):
    """``homeTeam`` / ``guestTeam`` of a match."""

    permanent_id: LenientInt = Field(None, alias="teamPermanentId")
    season_team_id: LenientInt = Field(None, alias="seasonTeamId")
    name: Text = Field("", alias="teamname")
    short_name: OptionalText = Field(None, alias="teamnameSmall")
    club_id: LenientInt = Field(None, alias="clubId")


class TeamInfo(ApiModel):
    """``team`` block of the team matches endpoint (own team metadata)."""

    permanent_id: LenientInt = Field(None, alias="teamPermanentId")
    name: Text = Field("", validation_alias="teamname")
    alt_name: Text = Field("", alias="teamName")
    age_class: OptionalText = Field(None, alias="teamAkj")
    team_gender: OptionalText = Field(None, alias="teamGender")
    team_number: OptionalText = Field(None, alias="teamNumber")

    @property
    def display_name(self) -> str:
        return self.name or self.alt_name


class Match(ApiModel):
    match_id: LenientInt = Field(None, alias="matchId")
    matchday: LenientInt = Field(None, alias="matchDay")
    match_no: LenientInt = Field(None, alias="matchNo")
    kickoff_date: OptionalText = Field(None, alias="kickoffDate")
    kickoff_time: OptionalText = Field(None, alias="kickoffTime")
    home_team: Annotated[TeamRef, BeforeValidator(_object)] = Field(default_factory=TeamRef, alias="homeTeam")
    guest_team: Annotated[TeamRef, BeforeValidator(_object)] = Field(default_factory=TeamRef, alias="guestTeam")
    result: OptionalText = None
    result_confirmed: Optional[bool] = Field(None, alias="ergebnisbestaetigt")
    forfeit: Optional[bool] = Field(None, alias="verzicht")
    cancelled: Optional[bool] = Field(None, alias="abgesagt")
    league: Optional[LeagueData] = Field(None, alias="ligaData")

    @property
    def has_result(self) -> bool:
        return bool(self.result and self.result.strip())

    @property
    def score(self) -> Optional[tuple[int, int]]:
        """(home, guest) points when the result is a "78:65" style score."""
        if not self.has_result or ":" not in self.result:
            return None
        home, _, guest = self.result.partition(":")
        return _lenient_int(home) or 0, _lenient_int(guest) or 0

    @property
    def scheduled_at(self) -> Optional[datetime]:
        if not self.kickoff_date:
            return None
        time_part = (self.kickoff_time or "00:00")[:5]
        try:
            return datetime.strptime(f"{self.kickoff_date.strip()} {time_part}", "%Y-%m-%d %H:%M")
        except ValueError:
            return None

    @property
    def league_id(self) -> Optional[int]:
        return self.league.league_id if self.league else None


class TeamMatches(ApiModel):
    """``/team/id/{permanentId}/matches``"""

    team: Annotated[TeamInfo, BeforeValidator(_object)] = Field(default_factory=TeamInfo)
    matches: Annotated[list[Match], BeforeValidator(_list)] = Field(default_factory=list)


class ClubMatches(ApiModel):
    """``/club/id/{clubId}/actualmatches``"""

    club: Annotated[dict[str, Any], BeforeValidator(_object)] = Field(default_factory=dict)
    matches: Annotated[list[Match], BeforeValidator(_list)] = Field(default_factory=list)


class LeagueSchedule(ApiModel):
    """
    ``/competition/spielplan/id/{ligaId}``

    League data is only sent once at the top level; it is copied into every
    match that lacks its own block.
    """

    league: Annotated[LeagueData, BeforeValidator(_object)] = Field(default_factory=LeagueData, alias="ligaData")
    matches: Annotated[list[Match], BeforeValidator(_list)] = Field(default_factory=list)

    @model_validator(mode="after")
    def _inject_league(self) -> "LeagueSchedule":
        for match in self.matches:
            if match.league is None:
                match.league = self.league
        return self


# ============================================================================
# Venues
# ============================================================================

class StructuredVenue(ApiModel):
    """``spielfeld`` object with a street address (higher leagues)."""

    kind: Literal["structured"] = "structured"
    field_id: LenientInt = Field(alias="id")
    label: Text = Field("", alias="bezeichnung")
    street: Text = Field("", alias="strasse")
    postal_code: Text = Field("", alias="plz")
    city: Text = Field("", alias="ort")

    @property
    def name(self) -> str:
        return self.label or f"Venue {self.field_id}"

    @property
    def address(self) -> str:
        """
        Examples:
            >>> StructuredVenue(id=1, strasse="Hauptstr. 1", plz="63225", ort="Langen").address
            'Hauptstr. 1, 63225 Langen'
        """
        locality = f"{self.postal_code} {self.city}".strip()
        return ", ".join(part for part in (self.street, locality) if part)


class LabelVenue(ApiModel):
    """Free-text ``ort`` only (mini leagues); keyed by a CRC32 of the label."""

    kind: Literal["label"] = "label"
    label: Text
    street: ClassVar[str] = ""
    postal_code: ClassVar[str] = ""
    city: ClassVar[str] = ""

    @property
    def field_id(self) -> int:
        return zlib.crc32(self.label.encode("utf-8"))

    @property
    def name(self) -> str:
        return self.label

    @property
    def address(self) -> str:
        return ""


Venue = Annotated[Union[StructuredVenue, LabelVenue], Field(discriminator="kind")]
_venue_adapter = TypeAdapter(Venue)


def _venue_payload(data: Any, fallbacks: bool = True) -> Optional[dict]:
    """Pick the venue out of a match info (or boxscore) payload, tagged by format."""
    if not isinstance(data, dict):
        return None
    info = data.get("matchInfo")
    candidates = [info.get("spielfeld") if isinstance(info, dict) else None]
    if fallbacks:
        candidates.append(data.get("spielfeld"))
    for field in candidates:
        if isinstance(field, dict) and _lenient_int(field.get("id")):
            return {**field, "kind": "structured"}
    label = data.get("ort") if fallbacks else None
    if isinstance(label, str) and label.strip():
        return {"kind": "label", "label": label}
    return None


def decode_venue(data: Any, fallbacks: bool = True) -> Optional[Union[StructuredVenue, LabelVenue]]:
    payload = _venue_payload(data, fallbacks)
    return _venue_adapter.validate_python(payload) if payload else None


class MatchInfo(ApiModel):
    """``/match/id/{matchId}/matchInfo``"""

    venue: Optional[Venue] = None

    @model_validator(mode="before")
    @classmethod
    def _decode_venue(cls, data: Any) -> Any:
        if isinstance(data, dict) and "venue" not in data:
            return {"venue": _venue_payload(data)}
        return data


# ============================================================================
# Boxscores
# ============================================================================

class StatPair(ApiModel):
    made: LenientInt = None
    attempted: LenientInt = None


class Person(ApiModel):
    id: LenientInt = None
    first_name: Text = Field("", alias="vorname")
    last_name: Text = Field("", alias="nachname")
    anonym: Flag = False

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class PlayerRef(ApiModel):
    player_id: LenientInt = Field(None, alias="playerId")
    jersey_number: Text = Field("", alias="no")
    anonym: Flag = False
    person: Annotated[Person, BeforeValidator(_object)] = Field(default_factory=Person)

    @property
    def is_anonymized(self) -> bool:
        return self.anonym or self.person.anonym


class PlayerStatLine(ApiModel):
    """One player's boxscore row: identity plus flat and made/attempted stats."""

    player: PlayerRef
    stats: dict[str, LenientInt] = Field(default_factory=dict)
    pairs: dict[str, StatPair] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _split(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "stats" in data:
            return data
        player = data.get("player") if isinstance(data.get("player"), dict) else data
        return {
            "player": player,
            "stats": {key: data[key] for key in FLAT_STAT_KEYS if key in data},
            "pairs": {key: data[key] for key in PAIR_STAT_KEYS if isinstance(data.get(key), dict)},
        }


class MatchBoxscore(ApiModel):
    home_player_stats: Annotated[list[PlayerStatLine], BeforeValidator(_list)] = Field(
        default_factory=list, alias="homePlayerStats"
    )
    guest_player_stats: Annotated[list[PlayerStatLine], BeforeValidator(_list)] = Field(
        default_factory=list, alias="guestPlayerStats"
    )


class Boxscore(ApiModel):
    """``/match/id/{matchId}/boxscore``; ``match_boxscore`` is None for mini leagues."""

    statistic_type: LenientInt = Field(1, alias="statisticType")
    home_team: Annotated[TeamRef, BeforeValidator(_object)] = Field(default_factory=TeamRef, alias="homeTeam")
    guest_team: Annotated[TeamRef, BeforeValidator(_object)] = Field(default_factory=TeamRef, alias="guestTeam")
    match_boxscore: Optional[MatchBoxscore] = Field(None, alias="matchBoxscore")
    venue: Optional[Venue] = None

    @model_validator(mode="before")
    @classmethod
    def _decode_venue(cls, data: Any) -> Any:
        if isinstance(data, dict) and "venue" not in data:
            return {**data, "venue": _venue_payload(data, fallbacks=False)}
        return data
