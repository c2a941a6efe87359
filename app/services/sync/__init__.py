"""
basketball-bund.net League Sync Engine

Synchronizes schedules, results, rosters and venues from the basketball-bund.net
REST API into the local record store while preserving manual edits.

Key components:
- Matchers: Resolve upstream teams, matches and players to local records
- Deduplicator / Reconciler: Merge duplicate teams, delete orphaned events
- Boxscore, venue and logo sync: Per-event detail ingestion
- Orchestrator / run control: Phased runs with pollable progress
"""
