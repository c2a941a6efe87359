"""Venue sync and geocoding.

Venues are keyed by the upstream field id (label venues by a CRC32 of the
label). Names are never overwritten after creation. The address and the
coordinates live in the attribute bag of the venue:

    address    "Hauptstr. 1, 63225 Langen"
    latitude   "50.0"
    longitude  "8.6"

Events record when their venue was last resolved (``venue_checked_at``), so
venues without an address are not looked up again until the check is older
than ``cache_days``.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy.orm import Session

from app.models import Event, Venue, utcnow
from app.repositories import AttributeRepository, VenueRepository
from app.services.source.client import LeagueApiClient
from app.services.source.errors import SourceClientError
from app.services.source.geocoder import NominatimGeocoder
from app.services.source.schemas import Boxscore, LabelVenue, Match, StructuredVenue
from app.services.sync.stats import SyncStats

logger = logging.getLogger(__name__)

VENUE_ENTITY = "venue"
ADDRESS_KEY = "address"
LATITUDE_KEY = "latitude"
LONGITUDE_KEY = "longitude"
EVENT_ENTITY = "event"
VENUE_CHECKED_KEY = "venue_checked_at"

UpstreamVenue = Union[StructuredVenue, LabelVenue]


class VenueCache:
    """
    Usage:
        venues = VenueCache(db, client, stats, geocoder)
        await venues.maybe_sync_venue(match, event, boxscore)
    """

    def __init__(
        self,
        db: Session,
        client: LeagueApiClient,
        stats: SyncStats,
        geocoder: Optional[NominatimGeocoder] = None,
        cache_days: int = 30,
    ):
        self.db = db
        self.client = client
        self.stats = stats
        self.geocoder = geocoder
        self.cache_days = cache_days
        self.venues = VenueRepository(db)
        self.attributes = AttributeRepository(db)
        self._run_cache: dict[int, int] = {}  # field id -> venue id

    def address_of(self, venue: Venue) -> str:
        return self.attributes.get(VENUE_ENTITY, venue.id, ADDRESS_KEY) or ""

    def _recently_checked(self, event: Event) -> bool:
        checked_at = self.attributes.get(EVENT_ENTITY, event.id, VENUE_CHECKED_KEY)
        if not checked_at:
            return False
        try:
            checked = datetime.fromisoformat(checked_at)
        except (TypeError, ValueError):
            return False
        return utcnow() - checked < timedelta(days=self.cache_days)

    def _mark_checked(self, event: Event) -> None:
        self.attributes.set(EVENT_ENTITY, event.id, VENUE_CHECKED_KEY, utcnow().isoformat(timespec="seconds"))

    async def _match_info_venue(self, match_id: int) -> Optional[UpstreamVenue]:
        self.stats.increment("api_calls")
        try:
            info = await self.client.get_match_info(match_id)
        finally:
            await self.client.throttle()
        return info.venue

    async def maybe_sync_venue(self, match: Match, event: Event, boxscore: Optional[Boxscore] = None) -> Optional[Venue]:
        """
        Assign the match venue to an event.

        Events whose venue already has an address, and events resolved within
        ``cache_days``, are left alone.

        Returns:
            The assigned venue, or None
        """
        if not match.match_id:
            return None
        current = self.venues.find_by_id(event.venue_id) if event.venue_id else None
        if current is not None and self.address_of(current):
            return None
        if self._recently_checked(event):
            return None

        if boxscore is not None and boxscore.venue is not None and boxscore.venue.field_id:
            upstream = boxscore.venue
        elif match.has_result:
            try:
                upstream = await self._match_info_venue(match.match_id)
            except SourceClientError as e:
                logger.warning(f"Match info error for match #{match.match_id}: {e}")
                self.stats.increment("errors")
                return None
        else:
            # Match info only for finished matches
            return None

        self._mark_checked(event)
        if upstream is None or not upstream.field_id:
            self.db.flush()
            return None

        venue = await self.ensure_venue(upstream)
        event.venue_id = venue.id
        self.db.flush()
        return venue

    async def ensure_venue(self, upstream: UpstreamVenue) -> Venue:
        """Find or create the venue of an upstream field; fills address and coordinates."""
        field_id = upstream.field_id
        if field_id in self._run_cache:
            venue = self.venues.find_by_id(self._run_cache[field_id])
            if venue is not None:
                return venue

        address = upstream.address
        venue = self.venues.find_by_external_id(field_id)

        if venue is None:
            venue = self.venues.create(external_field_id=field_id, name=upstream.name)
            self.stats.increment("venues_created")
            if address:
                self.attributes.set(VENUE_ENTITY, venue.id, ADDRESS_KEY, address)
                await self.maybe_geocode(venue, upstream)
            logger.info(f"Venue: '{upstream.name}' (#{field_id})" + (f" -> {address}" if address else " (no address)"))
        else:
            if address:
                old_address = self.address_of(venue)
                if old_address != address:
                    self.attributes.set(VENUE_ENTITY, venue.id, ADDRESS_KEY, address)
                    if not old_address:
                        logger.info(f"Venue address added: '{venue.name}' -> {address}")
                await self.maybe_geocode(venue, upstream)
            self.stats.increment("venues_updated")

        self._run_cache[field_id] = venue.id
        return venue

    async def maybe_geocode(self, venue: Venue, upstream: UpstreamVenue) -> bool:
        """Geocode a venue that has no coordinates yet; returns True when stored."""
        if self.geocoder is None:
            return False
        if self.attributes.get(VENUE_ENTITY, venue.id, LATITUDE_KEY) and self.attributes.get(
            VENUE_ENTITY, venue.id, LONGITUDE_KEY
        ):
            return False
        if not (upstream.street or upstream.postal_code or upstream.city):
            return False

        coords = await self.geocoder.geocode(upstream.street, upstream.postal_code, upstream.city)
        if coords is None:
            return False
        self.attributes.set(VENUE_ENTITY, venue.id, LATITUDE_KEY, str(coords.latitude))
        self.attributes.set(VENUE_ENTITY, venue.id, LONGITUDE_KEY, str(coords.longitude))
        logger.info(f"Geocoded: '{venue.name}' -> {coords.latitude}, {coords.longitude}")
        return True
