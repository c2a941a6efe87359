"""Tests for the Nominatim geocoder."""
import httpx
import pytest

from app.services.core.circuit_breaker import geocoder_breaker
from app.services.source.geocoder import Coordinates, NominatimGeocoder


def make_geocoder(handler) -> NominatimGeocoder:
    return NominatimGeocoder(
        url="https://nominatim.test/search",
        request_delay=0,
        transport=httpx.MockTransport(handler),
    )


class TestNominatimGeocoder:

    @pytest.mark.asyncio
    async def test_structured_query(self):
        """Should send a structured query and parse the first hit."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(dict(request.url.params))
            return httpx.Response(200, json=[{"lat": "49.99", "lon": "8.66"}])

        geocoder = make_geocoder(handler)
        try:
            coords = await geocoder.geocode("Hauptstr. 1", "63225", "Langen")
        finally:
            geocoder.close()

        assert coords == Coordinates(49.99, 8.66)
        assert seen[0]["street"] == "Hauptstr. 1"
        assert seen[0]["postalcode"] == "63225"
        assert seen[0]["city"] == "Langen"
        assert seen[0]["limit"] == "1"

    @pytest.mark.asyncio
    async def test_falls_back_to_postal_code_and_city(self):
        """Should retry without the street when the full address finds nothing."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            params = dict(request.url.params)
            seen.append(params)
            if "street" in params:
                return httpx.Response(200, json=[])
            return httpx.Response(200, json=[{"lat": "50.0", "lon": "8.6"}])

        geocoder = make_geocoder(handler)
        try:
            coords = await geocoder.geocode("Unbekannter Weg 3", "63225", "Langen")
        finally:
            geocoder.close()

        assert coords == Coordinates(50.0, 8.6)
        assert len(seen) == 2
        assert "street" not in seen[1]
        assert geocoder.request_count == 2

    @pytest.mark.asyncio
    async def test_not_found(self):
        """Should return None when neither lookup finds the address."""
        geocoder = make_geocoder(lambda request: httpx.Response(200, json=[]))
        try:
            assert await geocoder.geocode("Weg 1", "00000", "Nirgendwo") is None
        finally:
            geocoder.close()

    @pytest.mark.asyncio
    async def test_http_error_returns_none(self):
        """Should treat non-200 responses as no result."""
        geocoder = make_geocoder(lambda request: httpx.Response(429))
        try:
            assert await geocoder.geocode("", "63225", "Langen") is None
        finally:
            geocoder.close()

    @pytest.mark.asyncio
    async def test_empty_address_skips_request(self):
        """Should not query Nominatim without any address parts."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json=[])

        geocoder = make_geocoder(handler)
        try:
            assert await geocoder.geocode() is None
        finally:
            geocoder.close()

        assert calls == []

    @pytest.mark.asyncio
    async def test_open_breaker_returns_none(self):
        """Should fall back to no result while the geocoder breaker is open."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json=[{"lat": "1", "lon": "2"}])

        geocoder_breaker.open()
        geocoder = make_geocoder(handler)
        try:
            assert await geocoder.geocode("", "63225", "Langen") is None
        finally:
            geocoder.close()

        assert calls == []
