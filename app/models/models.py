"""
Database models for the league record store.

External identifiers issued by basketball-bund.net are the matching anchor
for every synchronized record. Records typed in by hand carry no external id
until the sync engine adopts them by name.

Primary keys are autoincrement integers: the lowest id in a duplicate group is
the oldest record and survives deduplication.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, BigInteger, DateTime, ForeignKey, Boolean, Text, Float,
    LargeBinary, JSON, Index, Table, UniqueConstraint,
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()

SYNC_AUTHOR = "bbb-sync"
SYNC_AUTHOR_DISPLAY_NAME = "basketball-bund.net"


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# Classification memberships
# ============================================================================

team_leagues = Table(
    "team_leagues", Base.metadata,
    Column("team_id", Integer, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
    Column("league_id", Integer, ForeignKey("leagues.id", ondelete="CASCADE"), primary_key=True),
)

team_seasons = Table(
    "team_seasons", Base.metadata,
    Column("team_id", Integer, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
    Column("season_id", Integer, ForeignKey("seasons.id", ondelete="CASCADE"), primary_key=True),
)

player_teams = Table(
    "player_teams", Base.metadata,
    Column("player_id", Integer, ForeignKey("players.id", ondelete="CASCADE"), primary_key=True),
    Column("team_id", Integer, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
)

player_leagues = Table(
    "player_leagues", Base.metadata,
    Column("player_id", Integer, ForeignKey("players.id", ondelete="CASCADE"), primary_key=True),
    Column("league_id", Integer, ForeignKey("leagues.id", ondelete="CASCADE"), primary_key=True),
)

player_seasons = Table(
    "player_seasons", Base.metadata,
    Column("player_id", Integer, ForeignKey("players.id", ondelete="CASCADE"), primary_key=True),
    Column("season_id", Integer, ForeignKey("seasons.id", ondelete="CASCADE"), primary_key=True),
)

event_players = Table(
    "event_players", Base.metadata,
    Column("event_id", Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
    Column("player_id", Integer, ForeignKey("players.id", ondelete="CASCADE"), primary_key=True),
)

league_table_teams = Table(
    "league_table_teams", Base.metadata,
    Column("league_table_id", Integer, ForeignKey("league_tables.id", ondelete="CASCADE"), primary_key=True),
    Column("team_id", Integer, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
)

player_list_players = Table(
    "player_list_players", Base.metadata,
    Column("player_list_id", Integer, ForeignKey("player_lists.id", ondelete="CASCADE"), primary_key=True),
    Column("player_id", Integer, ForeignKey("players.id", ondelete="CASCADE"), primary_key=True),
)


# ============================================================================
# Groupings
# ============================================================================

class League(Base):
    """League grouping keyed by the upstream league id (slug ``bbb-{id}``)."""
    __tablename__ = "leagues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_league_id = Column(Integer, nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(64), nullable=False, unique=True)
    age_group = Column(String(64), nullable=True)  # akName, e.g. "U14"
    gender = Column(String(32), nullable=True)  # geschlecht
    season_name = Column(String(64), nullable=True)
    table_exists = Column(Boolean, nullable=True)  # None = unknown, False = cup/bracket
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Season(Base):
    """Season grouping keyed by its label (e.g. "2025/2026")."""
    __tablename__ = "seasons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False, unique=True)
    slug = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


# ============================================================================
# Entities
# ============================================================================

class Team(Base):
    """Team keyed by the upstream permanent team id."""
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Not unique: duplicates can exist until the next dedup pass
    external_permanent_id = Column(Integer, nullable=True, index=True)
    season_team_id = Column(Integer, nullable=True)
    club_id = Column(Integer, nullable=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    short_name = Column(String(255), nullable=True)
    abbreviation = Column(String(16), nullable=True)
    original_name = Column(String(255), nullable=True)
    age_group = Column(String(64), nullable=True)
    gender = Column(String(32), nullable=True)
    team_akj = Column(String(32), nullable=True)
    team_gender = Column(String(32), nullable=True)
    team_number = Column(String(16), nullable=True)
    is_own_team = Column(Boolean, nullable=False, default=False)
    logo_asset_id = Column(Integer, ForeignKey("assets.id", ondelete="SET NULL"), nullable=True)
    description = Column(Text, nullable=True)
    author = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    leagues = relationship("League", secondary=team_leagues, lazy="selectin")
    seasons = relationship("Season", secondary=team_seasons, lazy="selectin")
    logo = relationship("Asset", foreign_keys=[logo_asset_id])


class Event(Base):
    """A scheduled or played match keyed by the upstream match id."""
    __tablename__ = "events"

    STATUS_SCHEDULED = "scheduled"
    STATUS_PUBLISHED = "published"
    STATUS_CANCELLED = "cancelled"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_match_id = Column(Integer, nullable=True, index=True)
    home_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    away_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    title = Column(String(512), nullable=False)
    content = Column(Text, nullable=True)  # Match report, human-owned
    scheduled_at = Column(DateTime, nullable=False, index=True)
    status = Column(String(16), nullable=False, default=STATUS_SCHEDULED, index=True)
    # {team_id: {slot: value, "outcome": [...]}}
    results = Column(JSON, nullable=True)
    result_status = Column(String(16), nullable=True)
    main_result = Column(String(32), nullable=True)
    # {team_id: {player_id: {stat: value}}}; player_id "0" holds team totals
    performance = Column(JSON, nullable=True)
    league_id = Column(Integer, ForeignKey("leagues.id", ondelete="SET NULL"), nullable=True)
    season_id = Column(Integer, ForeignKey("seasons.id", ondelete="SET NULL"), nullable=True)
    external_league_id = Column(Integer, nullable=True, index=True)
    matchday = Column(Integer, nullable=True)
    match_no = Column(Integer, nullable=True)
    forfeit = Column(Boolean, nullable=True)  # verzicht
    cancelled = Column(Boolean, nullable=True)  # abgesagt
    result_confirmed = Column(Boolean, nullable=True)  # ergebnisbestaetigt
    format = Column(String(32), nullable=True)
    venue_id = Column(Integer, ForeignKey("venues.id", ondelete="SET NULL"), nullable=True)
    boxscore_status = Column(String(16), nullable=True)  # None, synced, error, no_data
    author = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    home_team = relationship("Team", foreign_keys=[home_team_id])
    away_team = relationship("Team", foreign_keys=[away_team_id])
    league = relationship("League")
    season = relationship("Season")
    venue = relationship("Venue")
    players = relationship("Player", secondary=event_players, lazy="selectin")

    __table_args__ = (
        Index("ix_events_teams", "home_team_id", "away_team_id"),
    )

    @property
    def team_ids(self) -> list[int]:
        return [self.home_team_id, self.away_team_id]


class Player(Base):
    """Player keyed by the upstream person id (player id is per season)."""
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_person_id = Column(Integer, nullable=True, index=True)
    external_player_id = Column(Integer, nullable=True)
    name = Column(String(255), nullable=False, index=True)
    jersey_number = Column(String(8), nullable=True)
    current_team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    author = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    current_team = relationship("Team", foreign_keys=[current_team_id])
    teams = relationship("Team", secondary=player_teams, lazy="selectin")
    leagues = relationship("League", secondary=player_leagues, lazy="selectin")
    seasons = relationship("Season", secondary=player_seasons, lazy="selectin")


class Venue(Base):
    """Playing field keyed by the upstream field id (or a label hash)."""
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_field_id = Column(BigInteger, nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class LeagueTable(Base):
    """Standings container for a table-bearing league."""
    __tablename__ = "league_tables"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_league_id = Column(Integer, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    league_id = Column(Integer, ForeignKey("leagues.id", ondelete="SET NULL"), nullable=True)
    season_id = Column(Integer, ForeignKey("seasons.id", ondelete="SET NULL"), nullable=True)
    main_result = Column(String(32), nullable=True)
    author = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    teams = relationship("Team", secondary=league_table_teams, lazy="selectin")


class PlayerList(Base):
    """Season roster of an own team."""
    __tablename__ = "player_lists"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    season_id = Column(Integer, ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False)
    league_id = Column(Integer, ForeignKey("leagues.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False)
    author = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    players = relationship("Player", secondary=player_list_players, lazy="selectin")


# ============================================================================
# Assets and attributes
# ============================================================================

class Asset(Base):
    """Stored binary (club logos), reusable across teams of one club."""
    __tablename__ = "assets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cache_key = Column(String(128), nullable=False, unique=True, index=True)
    filename = Column(String(255), nullable=False)
    content_type = Column(String(64), nullable=False, default="image/png")
    content = Column(LargeBinary, nullable=False)
    source_team_permanent_id = Column(Integer, nullable=True)
    fetched_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class EntityAttribute(Base):
    """Key/value attribute bag for ad hoc metadata (venue address, coordinates)."""
    __tablename__ = "entity_attributes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(32), nullable=False)
    entity_id = Column(Integer, nullable=False)
    key = Column(String(64), nullable=False)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "key", name="uq_entity_attribute"),
        Index("ix_entity_attributes_entity", "entity_type", "entity_id"),
    )


# ============================================================================
# Sync bookkeeping
# ============================================================================

class SyncState(Base):
    """
    Shared sync state records (progress, last run, history, run log).

    A record with ``expires_at`` in the past reads as absent.
    """
    __tablename__ = "sync_state"

    key = Column(String(64), primary_key=True)
    value = Column(JSON, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class SyncMetadata(Base):
    """Tracks sync job status and health metrics per data type."""
    __tablename__ = "sync_metadata"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(32), nullable=False)
    data_type = Column(String(32), nullable=False)
    last_sync_started_at = Column(DateTime, nullable=True)
    last_sync_completed_at = Column(DateTime, nullable=True, index=True)
    last_sync_status = Column(String(16), nullable=True, index=True)
    records_processed = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    sync_duration_ms = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("source", "data_type", name="uq_sync_metadata_source_type"),
    )
