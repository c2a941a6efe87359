#!/usr/bin/env python3
"""
Manual league sync script.

Command-line interface for running and administering the
basketball-bund.net league sync.
"""
import sys
import asyncio
import argparse
import json
from pathlib import Path

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config import settings
from app.core.database import SessionLocal, init_db
from app.core.logging import configure_logging
from app.services.source.client import LeagueApiClient
from app.services.source.errors import SourceClientError
from app.services.sync.orchestrator import SyncOrchestrator
from app.services.sync.run_control import (
    SyncAlreadyRunningError,
    build_config,
    get_progress,
    request_run,
    reset_lock,
    run_sync_job,
)
from app.services.sync.sync_config import SyncConfigurationError


async def run_sync() -> int:
    """Claim the run lock and run a full sync in the foreground."""
    db = SessionLocal()
    try:
        request_run(db)
    except SyncAlreadyRunningError as e:
        print(f"❌ {e}")
        return 1
    finally:
        db.close()

    print("🔄 Running league sync...")
    stats = await run_sync_job(trigger="cli")

    print("✅ Sync finished:")
    for key, value in stats.items():
        if value:
            print(f"   {key}: {value}")
    return 1 if stats.get("errors") else 0


async def discover() -> int:
    """Print the configured club's teams and leagues."""
    db = SessionLocal()
    client = LeagueApiClient()
    try:
        orchestrator = SyncOrchestrator(db, client, build_config(db))
        result = await orchestrator.discover_teams()
    except (SyncConfigurationError, SourceClientError) as e:
        print(f"❌ Discovery failed: {e}")
        return 1
    finally:
        client.close()
        db.close()

    print(f"🔎 {result['match_count']} matches, {len(result['all_leagues'])} leagues")
    print(f"\n{'Permanent id':<14}{'Team':<40}{'Age group':<12}Leagues")
    print("-" * 90)
    for permanent_id, team in result["own_teams"].items():
        leagues = ", ".join(team["ligen"])
        print(f"{permanent_id:<14}{team['teamname']:<40}{team['akName'] or '':<12}{leagues}")
    return 0


def register(team_ids: list[int]) -> int:
    db = SessionLocal()
    client = LeagueApiClient()
    try:
        ids = SyncOrchestrator(db, client, build_config(db)).register_own_teams(team_ids)
    finally:
        client.close()
        db.close()
    print(f"✅ {len(ids)} own teams registered: {', '.join(str(i) for i in ids)}")
    return 0


def show_progress() -> int:
    db = SessionLocal()
    try:
        print(json.dumps(get_progress(db), indent=2, default=str))
    finally:
        db.close()
    return 0


def clear_lock() -> int:
    db = SessionLocal()
    try:
        reset_lock(db)
    finally:
        db.close()
    print("✅ Sync lock reset")
    return 0


def reset_boxscores() -> int:
    db = SessionLocal()
    client = LeagueApiClient()
    try:
        count = SyncOrchestrator(db, client, build_config(db)).reset_boxscore_flags()
    finally:
        client.close()
        db.close()
    print(f"✅ Boxscore flags reset for {count} events")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="basketball-bund.net league sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Find the club's teams (SYNC_CLUB_ID)
  python scripts/sync_league_data.py discover

  # Register the teams to sync
  python scripts/sync_league_data.py register 181404 181405

  # Run a full sync
  python scripts/sync_league_data.py run
        """
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run a full sync")
    subparsers.add_parser("discover", help="List the club's teams and leagues")
    register_parser = subparsers.add_parser("register", help="Register own teams")
    register_parser.add_argument("team_ids", nargs="+", type=int, metavar="PERMANENT_ID")
    subparsers.add_parser("progress", help="Show the current progress snapshot")
    subparsers.add_parser("reset-lock", help="Clear a stuck run lock")
    subparsers.add_parser("reset-boxscore-flags", help="Re-ingest all boxscores on the next run")

    args = parser.parse_args()
    configure_logging(level=settings.LOG_LEVEL, json_output=False)
    init_db()

    if args.command == "run":
        return asyncio.run(run_sync())
    if args.command == "discover":
        return asyncio.run(discover())
    if args.command == "register":
        return register(args.team_ids)
    if args.command == "progress":
        return show_progress()
    if args.command == "reset-lock":
        return clear_lock()
    if args.command == "reset-boxscore-flags":
        return reset_boxscores()

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
