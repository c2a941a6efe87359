"""
Nominatim (OpenStreetMap) geocoding for venue addresses.

Free, no API key. Usage policy allows at most one request per second and
requires an identifying User-Agent, so every request is followed by a sleep.

Structured queries (street / postalcode / city) give far better results for
German addresses than free-text ones. When the street is unknown to
OpenStreetMap the lookup falls back to postal code and city only.
"""
import asyncio
from typing import NamedTuple, Optional

import httpx

from app.core.config import settings
from app.core.logging import get_logger
from app.core.metrics import record_geocoder_request
from app.services.core.circuit_breaker import geocoder_breaker, with_circuit_breaker

logger = get_logger(__name__)

GEOCODER_TIMEOUT = 10.0


class Coordinates(NamedTuple):
    latitude: float
    longitude: float


class NominatimGeocoder:
    """
    Usage:
        geocoder = NominatimGeocoder()
        coords = await geocoder.geocode("Hauptstr. 1", "63225", "Langen")
    """

    def __init__(
        self,
        url: Optional[str] = None,
        request_delay: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url or settings.GEOCODER_URL
        self.request_delay = settings.SOURCE_REQUEST_DELAY if request_delay is None else request_delay
        self.request_count = 0
        self._client = httpx.Client(
            timeout=httpx.Timeout(GEOCODER_TIMEOUT),
            headers={"Accept": "application/json", "User-Agent": settings.GEOCODER_USER_AGENT},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    @with_circuit_breaker(geocoder_breaker, fallback=None)
    def _search(self, params: dict) -> Optional[list]:
        response = self._client.get(self.url, params=params)
        if response.status_code != 200:
            logger.error(f"Geocoding HTTP {response.status_code}")
            record_geocoder_request("http_error")
            return None
        return response.json()

    async def _lookup(self, street: str, postal_code: str, city: str) -> Optional[Coordinates]:
        params = {"format": "json", "countrycodes": settings.GEOCODER_COUNTRY_CODES, "limit": 1}
        if street:
            params["street"] = street
        if postal_code:
            params["postalcode"] = postal_code
        if city:
            params["city"] = city

        self.request_count += 1
        try:
            results = await asyncio.to_thread(self._search, params)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Geocoding error: {e}")
            record_geocoder_request("error")
            results = None
        finally:
            if self.request_delay > 0:
                await asyncio.sleep(self.request_delay)

        if not results or not isinstance(results, list):
            return None
        first = results[0] if isinstance(results[0], dict) else {}
        try:
            coords = Coordinates(float(first["lat"]), float(first["lon"]))
        except (KeyError, TypeError, ValueError):
            return None
        record_geocoder_request("found")
        return coords

    async def geocode(self, street: str = "", postal_code: str = "", city: str = "") -> Optional[Coordinates]:
        """
        Resolve an address to coordinates.

        Returns:
            Coordinates, or None when nothing was found or the lookup failed
        """
        if not (street or postal_code or city):
            return None

        coords = await self._lookup(street, postal_code, city)
        if coords:
            return coords

        if street and (postal_code or city):
            logger.info(f"Geocoding: street not found, falling back to {postal_code} {city}".rstrip())
            coords = await self._lookup("", postal_code, city)
            if coords:
                return coords

        logger.info(f"Geocoding: no results for {street}, {postal_code} {city}".strip(", "))
        record_geocoder_request("not_found")
        return None
