"""Repositories for the league record store."""
from app.repositories.base import BaseRepository
from app.repositories.team_repository import TeamRepository
from app.repositories.event_repository import EventRepository
from app.repositories.player_repository import PlayerRepository, PlayerListRepository
from app.repositories.league_repository import LeagueRepository, SeasonRepository, LeagueTableRepository
from app.repositories.venue_repository import VenueRepository, AssetRepository, AttributeRepository
from app.repositories.sync_state_repository import SyncStateRepository, SyncMetadataRepository

__all__ = [
    "BaseRepository",
    "TeamRepository",
    "EventRepository",
    "PlayerRepository",
    "PlayerListRepository",
    "LeagueRepository",
    "SeasonRepository",
    "LeagueTableRepository",
    "VenueRepository",
    "AssetRepository",
    "AttributeRepository",
    "SyncStateRepository",
    "SyncMetadataRepository",
]
