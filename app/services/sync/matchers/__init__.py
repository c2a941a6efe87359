"""Resolve upstream teams, matches and players to local records."""
