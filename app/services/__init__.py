"""
Services module for the league sync.

This module organizes services into:
- core: Cross-cutting helpers (circuit breakers)
- source: basketball-bund.net client, payload schemas and geocoder
- sync: The sync engine (resolvers, dedup, reconciliation, orchestration)
"""
