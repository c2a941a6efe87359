"""
basketball-bund.net REST API client.

This client provides access to the public (unauthenticated) league API:

Endpoints:
- /club/id/{clubId}/actualmatches       Team discovery (once or twice a season)
- /team/id/{permanentId}/matches        Main sync, one call per own team
- /competition/spielplan/id/{ligaId}    Full league schedule (tables)
- /match/id/{matchId}/matchInfo         Venue discovery
- /match/id/{matchId}/boxscore          Player import
- /media/team/{permanentId}/logo        Team logo (PNG)

Every JSON response is wrapped in an envelope ``{"status": "0", "data": ...}``.
Any other status is an application error even though the HTTP status is 200.

Rate limit: informally ~1 request/second. The client does not sleep on its
own; callers await ``throttle()`` after each call.

Requests are blocking httpx calls run in a worker thread, so the sync engine
can stay async while pybreaker and tenacity wrap the plain call.
"""
import asyncio
from typing import Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import settings
from app.core.logging import get_logger
from app.core.metrics import record_source_request_failure, record_source_request_success
from app.services.core.circuit_breaker import league_api_breaker, with_circuit_breaker
from app.services.source.errors import (
    SourceApplicationError,
    SourceClientError,
    SourceNetworkError,
    SourcePayloadError,
    SourceStatusError,
)
from app.services.source.schemas import (
    Boxscore,
    ClubMatches,
    LeagueSchedule,
    MatchInfo,
    TeamMatches,
)

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

LOGO_TIMEOUT = 15.0


def _raise_breaker_open(client, *args, **kwargs):
    # endpoint is the last positional argument of every protected method
    raise SourceNetworkError("league API circuit breaker is open", args[-1] if args else None)


class LeagueApiClient:
    """
    basketball-bund.net API client.

    Usage:
        client = LeagueApiClient()
        team_matches = await client.get_team_matches(158120)
        await client.throttle()
        client.close()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        media_base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        request_delay: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: REST base URL (defaults to settings)
            media_base_url: Media base URL for logos (defaults to settings)
            timeout: Request timeout in seconds
            request_delay: Seconds ``throttle()`` sleeps
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.base_url = (base_url or settings.BBB_API_BASE_URL).rstrip("/")
        self.media_base_url = (media_base_url or settings.BBB_MEDIA_BASE_URL).rstrip("/")
        self.request_delay = settings.SOURCE_REQUEST_DELAY if request_delay is None else request_delay
        self.request_count = 0
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout or settings.BBB_API_TIMEOUT),
            headers={
                "Accept": "application/json",
                "User-Agent": f"{settings.APP_NAME}/{settings.APP_VERSION}",
            },
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    async def throttle(self) -> None:
        """Sleep for the configured request delay."""
        if self.request_delay > 0:
            await asyncio.sleep(self.request_delay)

    # ==================== HTTP ====================

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _send(self, url: str, timeout: Optional[float] = None) -> httpx.Response:
        if timeout is None:
            return self._client.get(url)
        return self._client.get(url, timeout=timeout)

    def _send_or_raise(self, url: str, endpoint: str, timeout: Optional[float] = None) -> httpx.Response:
        try:
            response = self._send(url, timeout)
        except httpx.TransportError as e:
            raise SourceNetworkError(str(e) or e.__class__.__name__, endpoint) from e
        if response.status_code != 200:
            raise SourceStatusError(response.status_code, endpoint)
        return response

    @with_circuit_breaker(league_api_breaker, fallback_func=_raise_breaker_open)
    def _get_envelope(self, endpoint: str):
        """
        GET a REST endpoint and unwrap the status envelope.

        Returns:
            The ``data`` member (empty dict when absent)
        """
        response = self._send_or_raise(f"{self.base_url}{endpoint}", endpoint)

        try:
            body = response.json()
        except ValueError as e:
            raise SourcePayloadError(f"Invalid JSON: {e}", endpoint) from e
        if not isinstance(body, dict):
            raise SourcePayloadError("Response is not a JSON object", endpoint)

        if str(body.get("status", "1")) != "0":
            raise SourceApplicationError(body.get("message") or "Unknown API error", endpoint)

        return body.get("data") or {}

    @with_circuit_breaker(league_api_breaker, fallback_func=_raise_breaker_open)
    def _get_binary(self, url: str, endpoint: str) -> tuple[bytes, str]:
        response = self._send_or_raise(url, endpoint, timeout=LOGO_TIMEOUT)
        if not response.content:
            raise SourcePayloadError("Empty response body", endpoint)
        return response.content, response.headers.get("content-type", "image/png")

    async def _get(self, endpoint: str, model: Type[M], label: str) -> M:
        """
        Fetch an endpoint and decode it into ``model``.

        Raises:
            SourceClientError: On any transport, HTTP, envelope or decode failure
        """
        self.request_count += 1
        logger.debug(f"GET {self.base_url}{endpoint}")
        try:
            data = await asyncio.to_thread(self._get_envelope, endpoint)
            if not isinstance(data, dict):
                raise SourcePayloadError("Expected an object in data", endpoint)
            try:
                payload = model.model_validate(data)
            except ValidationError as e:
                raise SourcePayloadError(
                    f"Unexpected {model.__name__} payload ({e.error_count()} errors)", endpoint
                ) from e
        except SourceClientError as e:
            record_source_request_failure(label, e.error_type)
            logger.warning(f"basketball-bund.net request failed: {e}")
            raise

        record_source_request_success(label)
        return payload

    # ==================== ENDPOINTS ====================

    async def get_club_matches(self, club_id: int, range_days: int = 365) -> ClubMatches:
        """All current matches of a club (home and away), used for team discovery."""
        return await self._get(
            f"/club/id/{club_id}/actualmatches?justHome=false&rangeDays={range_days}",
            ClubMatches,
            "club_matches",
        )

    async def get_team_matches(self, permanent_id: int) -> TeamMatches:
        """All matches of a team plus its metadata (teamAkj, teamGender, teamNumber)."""
        return await self._get(f"/team/id/{permanent_id}/matches", TeamMatches, "team_matches")

    async def get_match_info(self, match_id: int) -> MatchInfo:
        return await self._get(f"/match/id/{match_id}/matchInfo", MatchInfo, "match_info")

    async def get_boxscore(self, match_id: int) -> Boxscore:
        """
        Player statistics of a finished match.

        Anonymized players (youth leagues) come back with ``playerId: 0``.
        """
        return await self._get(f"/match/id/{match_id}/boxscore", Boxscore, "boxscore")

    async def get_league_schedule(self, league_id: int) -> LeagueSchedule:
        """Every match of a league, including those without own teams."""
        return await self._get(f"/competition/spielplan/id/{league_id}", LeagueSchedule, "league_schedule")

    async def get_logo(self, permanent_id: int) -> tuple[bytes, str]:
        """
        Team logo.

        Returns:
            (binary content, content type)
        """
        endpoint = f"/media/team/{permanent_id}/logo"
        self.request_count += 1
        try:
            result = await asyncio.to_thread(self._get_binary, f"{self.media_base_url}/team/{permanent_id}/logo", endpoint)
        except SourceClientError as e:
            record_source_request_failure("logo", e.error_type)
            logger.warning(f"Logo request failed: {e}")
            raise
        record_source_request_success("logo")
        return result
