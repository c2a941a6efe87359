"""
Core services shared by every upstream integration.

- circuit_breaker: pybreaker breakers for the league API and the geocoder
"""
