"""Team resolver: upstream team references -> local Team records.

Pipeline (first match wins):
1. Lookup by permanent id (after dedup there is at most one)
2. Adoption of a hand-made team without permanent id, by raw team name
   and then by decorated display name (exact or containment)
3. Create, authored by the sync actor

Sync-owned fields (permanent id, season team id, club id, own flag) are
always written. Everything a human may edit is protect-once.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.models import League, Season, SYNC_AUTHOR, Team
from app.repositories import TeamRepository
from app.services.source.schemas import Match, TeamInfo, TeamRef
from app.services.sync.logo_cache import LogoCache
from app.services.sync.stats import SyncStats
from app.services.sync.utils.field_policy import apply_if_not_none, apply_protected, is_blank
from app.services.sync.utils.name_normalizer import abbreviate, team_display_name

logger = logging.getLogger(__name__)


@dataclass
class TeamCandidate:
    """One upstream team aggregated over all matches of a response."""

    ref: TeamRef
    is_own: bool = False
    league_ids: list[int] = field(default_factory=list)
    season_names: list[str] = field(default_factory=list)
    age_group: str = ""
    gender: str = ""
    info: Optional[TeamInfo] = None

    @property
    def permanent_id(self) -> Optional[int]:
        return self.ref.permanent_id

    @property
    def display_name(self) -> str:
        return team_display_name(self.ref.name, self.age_group, self.gender)


def collect_team_candidates(
    matches: Iterable[Match],
    club_id: int,
    team_info: Optional[TeamInfo] = None,
) -> dict[int, TeamCandidate]:
    """
    Collect every team of a match list, once per permanent id.

    The first occurrence supplies the team data; leagues and seasons
    accumulate; age group and gender come from the first league that has one.
    Own-team metadata (``team_info``) is only attached to own teams.
    """
    candidates: dict[int, TeamCandidate] = {}
    for match in matches:
        league = match.league
        for ref in (match.home_team, match.guest_team):
            if not ref.permanent_id:
                continue
            candidate = candidates.get(ref.permanent_id)
            if candidate is None:
                is_own = bool(club_id) and ref.club_id == club_id
                candidate = TeamCandidate(ref=ref, is_own=is_own, info=team_info if is_own else None)
                candidates[ref.permanent_id] = candidate
            if league is None:
                continue
            if league.league_id and league.league_id not in candidate.league_ids:
                candidate.league_ids.append(league.league_id)
            if league.season_name and league.season_name not in candidate.season_names:
                candidate.season_names.append(league.season_name)
            if league.age_group and not candidate.age_group:
                candidate.age_group = league.age_group
            if league.gender and not candidate.gender:
                candidate.gender = league.gender
    return candidates


class TeamResolver:

    def __init__(self, db: Session, stats: SyncStats, logo_cache: Optional[LogoCache] = None):
        self.db = db
        self.stats = stats
        self.logo_cache = logo_cache
        self.teams = TeamRepository(db)

    def _find(self, candidate: TeamCandidate) -> Optional[Team]:
        team = self.teams.find_by_external_id(candidate.permanent_id)
        if team is not None:
            return team

        team = self.teams.find_unkeyed_by_name(candidate.ref.name)
        if team is None and candidate.display_name != candidate.ref.name:
            team = self.teams.find_unkeyed_by_name(candidate.display_name)
        if team is not None:
            logger.info(
                f"Adoption: team '{candidate.display_name}' (#{team.id}) <- permanent id {candidate.permanent_id}"
            )
        return team

    async def resolve_and_upsert(
        self,
        candidate: TeamCandidate,
        leagues: dict[int, League],
        seasons: dict[str, Season],
    ) -> Optional[int]:
        """
        Create or update the local team for an upstream team.

        Args:
            candidate: Aggregated upstream team
            leagues: Upstream league id -> League grouping
            seasons: Season name -> Season grouping

        Returns:
            Local team id, or None when the team has no permanent id or name
        """
        ref = candidate.ref
        if not ref.permanent_id or not ref.name:
            return None

        display_name = candidate.display_name
        team = self._find(candidate)
        is_update = team is not None

        if is_update:
            # Title is corrected once, when a hand-made team is adopted
            if team.external_permanent_id is None:
                team.name = display_name
            self.stats.increment("teams_updated")
        else:
            team = self.teams.create(name=display_name, author=SYNC_AUTHOR, is_own_team=candidate.is_own)
            self.stats.increment("teams_created")

        team.external_permanent_id = ref.permanent_id
        apply_if_not_none(team, "season_team_id", ref.season_team_id)
        apply_if_not_none(team, "club_id", ref.club_id)
        team.is_own_team = candidate.is_own

        if ref.short_name is not None:
            apply_protected(team, "abbreviation", ref.short_name[:16] or None, is_update)
        elif is_blank(team.abbreviation):
            team.abbreviation = abbreviate(ref.name)

        apply_protected(team, "short_name", ref.name, is_update)
        apply_protected(team, "original_name", ref.name, is_update)
        apply_protected(team, "age_group", candidate.age_group or None, is_update)
        apply_protected(team, "gender", candidate.gender or None, is_update)

        if candidate.is_own and candidate.info is not None:
            apply_if_not_none(team, "team_akj", candidate.info.age_class)
            apply_if_not_none(team, "team_gender", candidate.info.team_gender)
            apply_if_not_none(team, "team_number", candidate.info.team_number)

        for league_id in candidate.league_ids:
            league = leagues.get(league_id)
            if league is not None and league not in team.leagues:
                team.leagues.append(league)
        for season_name in candidate.season_names:
            season = seasons.get(season_name)
            if season is not None and season not in team.seasons:
                team.seasons.append(season)

        if self.logo_cache is not None and ref.club_id:
            asset = await self.logo_cache.logo_for(ref.club_id, ref.permanent_id)
            if asset is not None:
                team.logo_asset_id = asset.id

        self.db.flush()
        return team.id

    async def upsert_all(
        self,
        candidates: dict[int, TeamCandidate],
        leagues: dict[int, League],
        seasons: dict[str, Season],
    ) -> dict[int, int]:
        """
        Upsert every candidate, committing each team on its own.

        Returns:
            Permanent id -> local team id for every team that resolved
        """
        team_map: dict[int, int] = {}
        for permanent_id, candidate in candidates.items():
            try:
                team_id = await self.resolve_and_upsert(candidate, leagues, seasons)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.error(f"Team sync failed for permanent id {permanent_id}: {e}")
                self.stats.increment("errors")
                continue
            if team_id:
                team_map[permanent_id] = team_id
        return team_map
