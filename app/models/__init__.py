"""
Record store models.

Usage:
    from app.models import Team, Event, Player
"""
from app.models.models import (
    Base,
    SYNC_AUTHOR,
    SYNC_AUTHOR_DISPLAY_NAME,
    utcnow,
    League,
    Season,
    Team,
    Event,
    Player,
    Venue,
    LeagueTable,
    PlayerList,
    Asset,
    EntityAttribute,
    SyncState,
    SyncMetadata,
    team_leagues,
    team_seasons,
    player_teams,
    event_players,
    league_table_teams,
    player_list_players,
)

__all__ = [
    "Base",
    "SYNC_AUTHOR",
    "SYNC_AUTHOR_DISPLAY_NAME",
    "utcnow",
    "League",
    "Season",
    "Team",
    "Event",
    "Player",
    "Venue",
    "LeagueTable",
    "PlayerList",
    "Asset",
    "EntityAttribute",
    "SyncState",
    "SyncMetadata",
    "team_leagues",
    "team_seasons",
    "player_teams",
    "event_players",
    "league_table_teams",
    "player_list_players",
]
