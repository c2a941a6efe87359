"""Club logo cache.

The logo endpoint is per team, but every team of a club shows the same logo,
so logos are cached per club: in memory for the current run and as an Asset
row (``club-logo-{club_id}``) that stays valid for ``logo_cache_days``.
"""
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.models import Asset, utcnow
from app.repositories import AssetRepository
from app.services.source.client import LeagueApiClient
from app.services.source.errors import SourceClientError
from app.services.sync.stats import SyncStats

logger = logging.getLogger(__name__)


def logo_cache_key(club_id: int) -> str:
    return f"club-logo-{club_id}"


class LogoCache:

    def __init__(self, db: Session, client: LeagueApiClient, stats: SyncStats, cache_days: int = 180):
        self.db = db
        self.client = client
        self.stats = stats
        self.cache_days = cache_days
        self.assets = AssetRepository(db)
        self._run_cache: dict[int, Optional[int]] = {}  # club id -> asset id, None after a failed fetch

    def _is_fresh(self, asset: Asset) -> bool:
        return asset.fetched_at is not None and utcnow() - asset.fetched_at < timedelta(days=self.cache_days)

    async def logo_for(self, club_id: Optional[int], permanent_id: Optional[int]) -> Optional[Asset]:
        """
        Club logo asset, fetched through ``permanent_id`` on a cache miss.

        Returns:
            The asset, a stale cached asset when the fetch fails, or None
        """
        if not club_id or not permanent_id:
            return None

        if club_id in self._run_cache:
            asset_id = self._run_cache[club_id]
            return self.assets.find_by_id(asset_id) if asset_id else None

        asset = self.assets.find_by_cache_key(logo_cache_key(club_id))
        if asset is not None and self._is_fresh(asset):
            self._run_cache[club_id] = asset.id
            return asset

        self.stats.increment("api_calls")
        try:
            content, content_type = await self.client.get_logo(permanent_id)
        except SourceClientError as e:
            logger.warning(f"Logo for club {club_id} not available: {e}")
            self._run_cache[club_id] = asset.id if asset is not None else None
            return asset
        finally:
            await self.client.throttle()

        if asset is None:
            asset = self.assets.create(
                cache_key=logo_cache_key(club_id),
                filename=f"bbb-club-{club_id}.png",
                content_type=content_type,
                content=content,
                source_team_permanent_id=permanent_id,
                fetched_at=utcnow(),
            )
        else:
            asset.content = content
            asset.content_type = content_type
            asset.source_team_permanent_id = permanent_id
            asset.fetched_at = utcnow()
            self.db.flush()

        self.stats.increment("logos_fetched")
        self._run_cache[club_id] = asset.id
        logger.info(f"Logo cached for club {club_id} (team {permanent_id})")
        return asset
