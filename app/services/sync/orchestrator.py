"""Sync orchestrator for the basketball-bund.net league sync.

One run walks the phases published through the ProgressTracker:

1. dedup: merge teams sharing a permanent id
2. teams-loading: fetch the match list of every registered own team
3. teams-syncing: per own team, upsert teams and events (boxscore players
   and venues per event), then delete the team's orphaned events
4. league-wide-reconcile: sync the full schedule of every league found in
   step 3 so standings tables contain every match
5. done

Nothing a run hits propagates to the trigger: per-entity failures are rolled
back and counted, anything else ends the run in ``done`` with an error.

Sync Schedule (recommended):
- full sync: every SYNC_INTERVAL_HOURS (default 6h)
- discovery: manual, once per season
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.core.logging import RunLogHandler
from app.models import League, Season, Team, utcnow
from app.repositories import EventRepository, SyncMetadataRepository, SyncStateRepository
from app.services.source.client import LeagueApiClient
from app.services.source.errors import SourceClientError
from app.services.source.geocoder import NominatimGeocoder
from app.services.source.schemas import LeagueData, Match, TeamMatches
from app.services.sync.boxscore_sync import BoxscoreSync
from app.services.sync.deduplicator import TeamDeduplicator
from app.services.sync.league_tables import LeagueGroupings
from app.services.sync.logo_cache import LogoCache
from app.services.sync.matchers.event_resolver import EventResolver
from app.services.sync.matchers.team_resolver import TeamResolver, collect_team_candidates
from app.services.sync.progress import ProgressTracker, SyncPhase
from app.services.sync.reconciler import EventReconciler
from app.services.sync.stats import SyncStats
from app.services.sync.sync_config import SyncConfig, SyncConfigurationError
from app.services.sync.venue_cache import VenueCache

logger = logging.getLogger(__name__)

# Parent logger of every sync module; the run log handler is attached here
SYNC_LOGGER = "app.services.sync"

LOG_KEY = "log"
LAST_RUN_KEY = "last_run"
LAST_STATS_KEY = "last_stats"
HISTORY_KEY = "history"
OWN_TEAMS_KEY = "own_teams"

METADATA_SOURCE = "bbb"
METADATA_DATA_TYPE = "league"


def extract_leagues(matches: Iterable[Match]) -> dict[int, LeagueData]:
    """League id -> league data, first occurrence wins, in match order."""
    leagues: dict[int, LeagueData] = {}
    for match in matches:
        if match.league and match.league.league_id and match.league.league_id not in leagues:
            leagues[match.league.league_id] = match.league
    return leagues


def registered_own_teams(state: SyncStateRepository) -> list[int]:
    """Own teams registered through the API (empty when none are)."""
    return [int(pid) for pid in state.get(OWN_TEAMS_KEY) or []]


class SyncOrchestrator:
    """
    Coordinates one sync run against the record store.

    Create one orchestrator per run; counters and caches live for the run.

    Usage:
        orchestrator = SyncOrchestrator(db, client, SyncConfig.from_settings())
        stats = await orchestrator.sync_all(trigger="manual")
    """

    def __init__(
        self,
        db: Session,
        client: LeagueApiClient,
        config: SyncConfig,
        geocoder: Optional[NominatimGeocoder] = None,
        tracker: Optional[ProgressTracker] = None,
    ):
        self.db = db
        self.client = client
        self.config = config
        self.stats = SyncStats()
        self.state = SyncStateRepository(db)
        self.tracker = tracker or ProgressTracker(
            self.state, config.progress_ttl_seconds, config.progress_error_ttl_seconds
        )

        self.groupings = LeagueGroupings(db, self.stats, config.main_result)
        self.logo_cache = LogoCache(db, client, self.stats, config.logo_cache_days)
        self.team_resolver = TeamResolver(db, self.stats, self.logo_cache)
        self.event_resolver = EventResolver(db, self.stats, config)
        self.boxscores = BoxscoreSync(db, client, self.stats, config)
        self.venues = VenueCache(db, client, self.stats, geocoder, config.venue_cache_days)
        self.deduplicator = TeamDeduplicator(db, self.stats)
        self.reconciler = EventReconciler(db, self.stats)
        self.discovered_league_ids: list[int] = []

    # ========================================================================
    # Full run
    # ========================================================================

    async def sync_all(self, trigger: str = "manual") -> dict[str, int]:
        """
        Run a full sync and publish its terminal state.

        Returns:
            Final run statistics
        """
        run_log = RunLogHandler(self.config.log_size, history=self.state.get(LOG_KEY) or [])
        sync_logger = logging.getLogger(SYNC_LOGGER)
        sync_logger.addHandler(run_log)

        started_at = utcnow()
        error: Optional[str] = None
        try:
            await self._run()
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Sync aborted: {e}")
            self.stats.increment("errors")
            error = str(e) or e.__class__.__name__
        finally:
            sync_logger.removeHandler(run_log)

        self._finish(started_at, trigger, error, run_log)
        return self.stats.as_dict()

    async def _run(self) -> None:
        own_team_ids = self.config.own_team_ids
        if not own_team_ids:
            raise SyncConfigurationError("No own teams registered")

        self.tracker.resume()
        self.tracker.set_phase(SyncPhase.DEDUP, "Deduplicating teams")
        self.deduplicator.run()

        total = len(own_team_ids)
        logger.info(f"Starting sync for {total} own teams")
        self.tracker.set_phase(
            SyncPhase.TEAMS_LOADING, "Loading team matches",
            current_team=0, total_teams=total, matches_done=0, matches_total=0,
        )
        loaded = await self.load_team_matches(own_team_ids)

        self.tracker.set_phase(SyncPhase.TEAMS_SYNCING, "Syncing teams")
        for index, permanent_id, team_matches in loaded:
            await self.sync_team_matches(permanent_id, team_matches, index, total)

        league_count = len(self.discovered_league_ids)
        self.tracker.set_phase(SyncPhase.LEAGUE_WIDE_RECONCILE, f"Syncing {league_count} league schedules")
        if league_count:
            logger.info(f"Starting league schedule sync for {league_count} leagues")
        for index, league_id in enumerate(self.discovered_league_ids, 1):
            self.tracker.update(label=f"League schedule {index}/{league_count} (league #{league_id})")
            await self.sync_league_schedule(league_id)

        s = self.stats
        logger.info(
            f"Sync complete: {s.leagues_found} leagues ({s.league_matches_synced} league matches), "
            f"teams {s.teams_created}/{s.teams_updated}/{s.teams_deduped} (new/updated/deduped), "
            f"events {s.events_created}/{s.events_updated}/{s.events_deleted} (new/updated/deleted), "
            f"venues {s.venues_created}/{s.venues_updated}, tables {s.tables_created}/{s.tables_updated}, "
            f"players {s.players_created}/{s.players_updated}, logos {s.logos_fetched}, "
            f"{s.api_calls} API calls, {s.errors} errors"
        )

    async def load_team_matches(self, own_team_ids: list[int]) -> list[tuple[int, int, TeamMatches]]:
        """Fetch every own team's match list; failed teams are logged and skipped."""
        total = len(own_team_ids)
        loaded = []
        for index, permanent_id in enumerate(own_team_ids, 1):
            self.tracker.update(current_team=index, label=f"Loading matches for team {index}/{total}")
            self.stats.increment("api_calls")
            try:
                team_matches = await self.client.get_team_matches(permanent_id)
            except SourceClientError as e:
                logger.error(f"API error for team {permanent_id}: {e}")
                self.stats.increment("errors")
                continue
            finally:
                await self.client.throttle()
            loaded.append((index, permanent_id, team_matches))
        return loaded

    # ========================================================================
    # Per-team and per-league sync
    # ========================================================================

    def _ensure_groupings(self, leagues: Iterable[LeagueData]) -> tuple[dict[int, League], dict[str, Season]]:
        league_map: dict[int, League] = {}
        season_map: dict[str, Season] = {}
        for league in leagues:
            record = self.groupings.ensure_league(league)
            if record is not None:
                league_map[league.league_id] = record
            if league.season_name and league.season_name not in season_map:
                season_map[league.season_name] = self.groupings.ensure_season(league)
        self.db.commit()
        return league_map, season_map

    async def sync_team_matches(self, permanent_id: int, team_matches: TeamMatches, index: int = 1, total: int = 1) -> int:
        """
        Sync one own team's matches and reconcile its orphaned events.

        Returns:
            Number of upstream matches
        """
        team_name = team_matches.team.display_name or f"Team {permanent_id}"
        matches = team_matches.matches
        logger.info(f"{team_name}: {len(matches)} matches loaded")
        if not matches:
            return 0

        leagues = extract_leagues(matches)
        self.stats.increment("leagues_found", len(leagues))
        for league_id in leagues:
            if league_id not in self.discovered_league_ids:
                self.discovered_league_ids.append(league_id)

        league_map, season_map = self._ensure_groupings(leagues.values())
        candidates = collect_team_candidates(matches, self.config.club_id, team_matches.team)
        team_map = await self.team_resolver.upsert_all(candidates, league_map, season_map)

        seen_match_ids = []
        for match_index, match in enumerate(matches, 1):
            if match.match_id:
                seen_match_ids.append(match.match_id)
            self.tracker.update(
                current_team=index,
                total_teams=total,
                label=(
                    f'Team {index}/{total} "{team_name}": match {match_index}/{len(matches)} '
                    f"({match.home_team.name or '?'} vs {match.guest_team.name or '?'})"
                ),
                matches_done=match_index,
                matches_total=len(matches),
            )
            await self.sync_event(match, team_map, league_map, season_map)

        self.reconciler.reconcile(seen_match_ids, permanent_id, team_map)
        return len(matches)

    async def sync_event(
        self,
        match: Match,
        team_map: dict[int, int],
        leagues: dict[int, League],
        seasons: dict[str, Season],
    ) -> None:
        """Upsert one match with its boxscore players, then its venue; each step commits on its own."""
        try:
            event = self.event_resolver.resolve_and_upsert(match, team_map, leagues, seasons)
            if event is None:
                return
            boxscore = None
            if match.has_result and self.config.players_enabled:
                boxscore = await self.boxscores.sync_from_match(event, team_map)
                self.boxscores.update_rosters(event, boxscore)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Event sync failed for match #{match.match_id}: {e}")
            self.stats.increment("errors")
            return

        try:
            await self.venues.maybe_sync_venue(match, event, boxscore)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Venue sync failed for match #{match.match_id}: {e}")
            self.stats.increment("errors")

    async def sync_league_schedule(self, league_id: int) -> int:
        """
        Sync every match of a league, including matches without own teams.

        Returns:
            Number of matches synced
        """
        self.stats.increment("api_calls")
        try:
            schedule = await self.client.get_league_schedule(league_id)
        except SourceClientError as e:
            logger.error(f"League schedule API error for league #{league_id}: {e}")
            self.stats.increment("errors")
            return 0
        finally:
            await self.client.throttle()

        league_data = schedule.league
        if not league_data.league_id:
            league_data = league_data.model_copy(update={"league_id": league_id})
        league_name = league_data.name or f"League #{league_id}"

        if not schedule.matches:
            logger.info(f"League schedule '{league_name}': no matches")
            return 0

        events = EventRepository(self.db)
        new_matches = sum(
            1 for m in schedule.matches if m.match_id and events.find_by_external_id(m.match_id) is None
        )
        logger.info(
            f"League schedule '{league_name}': {len(schedule.matches)} matches, "
            f"{new_matches} new (without own teams)"
        )

        league_map, season_map = self._ensure_groupings([league_data])
        candidates = collect_team_candidates(schedule.matches, self.config.club_id)
        team_map = await self.team_resolver.upsert_all(candidates, league_map, season_map)

        total = len(schedule.matches)
        for match_index, match in enumerate(schedule.matches, 1):
            self.tracker.update(
                label=(
                    f"League '{league_name}': match {match_index}/{total} "
                    f"({match.home_team.name or '?'} vs {match.guest_team.name or '?'})"
                ),
                matches_done=match_index,
                matches_total=total,
            )
            await self.sync_event(match, team_map, league_map, season_map)
        self.stats.increment("league_matches_synced", total)

        league = league_map.get(league_id)
        if league_data.has_table and league is not None:
            try:
                teams = [team for team in (self.db.get(Team, tid) for tid in team_map.values()) if team]
                self.groupings.ensure_table(
                    league_data, league, season_map.get(league_data.season_name), teams
                )
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.error(f"Table sync failed for league #{league_id}: {e}")
                self.stats.increment("errors")
        elif not league_data.has_table:
            competition = f", type: {league_data.competition_type}" if league_data.competition_type else ""
            logger.info(f"No table for '{league_name}' (tableExists=false{competition}): cup/bracket competition")

        return len(schedule.matches)

    # ========================================================================
    # Discovery and operator actions
    # ========================================================================

    async def discover_teams(self) -> dict:
        """
        Find the club's own teams through the club matches endpoint.

        Returns:
            Dict with club, own_teams (keyed by permanent id), all_leagues and
            match_count

        Raises:
            SyncConfigurationError: If no club id is configured
            SourceClientError: If the upstream call fails
        """
        club_id = self.config.club_id
        if not club_id:
            raise SyncConfigurationError("No club id configured")

        self.stats.increment("api_calls")
        try:
            result = await self.client.get_club_matches(club_id, self.config.range_days)
        finally:
            await self.client.throttle()

        own_teams: dict[int, dict] = {}
        leagues: dict[int, dict] = {}
        for match in result.matches:
            league = match.league or LeagueData()
            if league.league_id and league.league_id not in leagues:
                leagues[league.league_id] = league.model_dump(by_alias=True)

            for ref in (match.home_team, match.guest_team):
                if ref.club_id != club_id or not ref.permanent_id:
                    continue
                team = own_teams.setdefault(ref.permanent_id, {
                    "teamPermanentId": ref.permanent_id,
                    "seasonTeamId": ref.season_team_id or 0,
                    "teamname": ref.name,
                    "teamnameSmall": ref.short_name or "",
                    "clubId": club_id,
                    "akName": league.age_group,
                    "geschlecht": league.gender,
                    "liganame": league.name,
                    "ligen": [],
                })
                if league.name and league.name not in team["ligen"]:
                    team["ligen"].append(league.name)
                if not team["akName"] and league.age_group:
                    team["akName"] = league.age_group
                if not team["geschlecht"] and league.gender:
                    team["geschlecht"] = league.gender

        logger.info(
            f"Discovery: {len(own_teams)} own teams, {len(leagues)} leagues, {len(result.matches)} matches"
        )
        return {
            "club": result.club,
            "own_teams": own_teams,
            "all_leagues": leagues,
            "match_count": len(result.matches),
        }

    def register_own_teams(self, permanent_ids: list[int]) -> list[int]:
        """Store the own teams synced by every following run."""
        ids = [int(pid) for pid in permanent_ids]
        self.state.set(OWN_TEAMS_KEY, ids)
        logger.info(f"{len(ids)} own teams registered: {', '.join(str(pid) for pid in ids)}")
        return ids

    def reset_boxscore_flags(self) -> int:
        """Clear every boxscore status so the next run re-ingests all boxscores."""
        events = EventRepository(self.db).with_boxscore_status()
        for event in events:
            event.boxscore_status = None
        self.db.commit()
        logger.info(f"Boxscore flags reset: {len(events)} events")
        return len(events)

    # ========================================================================
    # Bookkeeping
    # ========================================================================

    def _finish(self, started_at: datetime, trigger: str, error: Optional[str], run_log: RunLogHandler) -> None:
        finished_at = utcnow()
        duration = (finished_at - started_at).total_seconds()
        stats = self.stats.as_dict()
        finished = finished_at.strftime("%Y-%m-%d %H:%M:%S")

        self.state.set(LOG_KEY, run_log.entries())
        self.state.set(LAST_RUN_KEY, finished)
        self.state.set(LAST_STATS_KEY, stats)

        history = list(self.state.get(HISTORY_KEY) or [])
        history.append({
            "time": finished,
            "duration_seconds": round(duration, 1),
            "trigger": trigger,
            "stats": stats,
            "error": error,
        })
        self.state.set(HISTORY_KEY, history[-self.config.history_size:])

        metadata = SyncMetadataRepository(self.db).get_or_create(METADATA_SOURCE, METADATA_DATA_TYPE)
        metadata.last_sync_started_at = started_at
        metadata.last_sync_completed_at = finished_at
        metadata.last_sync_status = "failed" if error else "success"
        metadata.records_processed = (
            self.stats.teams_created + self.stats.teams_updated
            + self.stats.events_created + self.stats.events_updated
        )
        metadata.records_failed = self.stats.errors
        metadata.error_message = error
        metadata.sync_duration_ms = int(duration * 1000)
        self.db.commit()

        self.tracker.finish(stats, error)
