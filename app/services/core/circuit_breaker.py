"""
Circuit breaker pattern for external API calls.

This module provides circuit breakers for upstream calls so a sync run
stops hammering a service that is already down.

Uses pybreaker library for circuit breaker implementation.

Circuit Breaker States:
- CLOSED: Requests pass through normally
- OPEN: Requests fail immediately with fallback (after fail_max failures)
- HALF_OPEN: One request allowed to test if service has recovered

Circuit Breakers:
- league_api_breaker: For basketball-bund.net REST calls
- geocoder_breaker: For Nominatim geocoding calls

Application-level errors (non-"0" envelope status, undecodable payloads)
do not count as failures: the service answered, it just said no.
"""
from functools import wraps
from typing import Any, Callable

from pybreaker import CircuitBreaker, CircuitBreakerError

from app.core.logging import get_logger
from app.core.metrics import update_circuit_breaker_state
from app.services.source.errors import SourceApplicationError, SourcePayloadError

logger = get_logger(__name__)

# Default circuit breaker configuration
DEFAULT_FAIL_MAX = 5  # Number of failures before opening circuit
DEFAULT_RESET_TIMEOUT = 60  # Seconds before attempting to close circuit


# ============================================================================
# CIRCUIT BREAKERS
# ============================================================================

league_api_breaker = CircuitBreaker(
    fail_max=DEFAULT_FAIL_MAX,
    reset_timeout=DEFAULT_RESET_TIMEOUT,
    exclude=[SourceApplicationError, SourcePayloadError],
    name="league_api",
)


geocoder_breaker = CircuitBreaker(
    fail_max=DEFAULT_FAIL_MAX,
    reset_timeout=DEFAULT_RESET_TIMEOUT,
    name="geocoder",
)


# ============================================================================
# CIRCUIT BREAKER STATE MONITORING
# ============================================================================

def get_breaker_state(breaker: CircuitBreaker) -> str:
    """
    Get the current state of a circuit breaker.

    Returns:
        State string: 'closed', 'open', or 'half-open'
    """
    state = breaker.current_state
    update_circuit_breaker_state(breaker.name, state)
    return state


def get_all_breaker_states() -> dict[str, str]:
    """
    Get the current state of all circuit breakers.

    Returns:
        Dictionary mapping breaker names to their states
    """
    return {
        "league_api": get_breaker_state(league_api_breaker),
        "geocoder": get_breaker_state(geocoder_breaker),
    }


def reset_breaker(breaker: CircuitBreaker) -> None:
    """
    Manually reset a circuit breaker to closed state.

    Use with caution - only reset if you know the service has recovered.
    """
    breaker.close()
    update_circuit_breaker_state(breaker.name, breaker.current_state)
    logger.warning(f"Circuit breaker '{breaker.name}' manually reset to CLOSED state")


# ============================================================================
# DECORATORS
# ============================================================================

def with_circuit_breaker(
    breaker: CircuitBreaker,
    fallback: Any = None,
    fallback_func: Callable | None = None,
):
    """
    Decorator to wrap a blocking function with circuit breaker protection.

    Args:
        breaker: The circuit breaker to use
        fallback: Value to return when circuit is open
        fallback_func: Optional function to call when circuit is open
                       (takes precedence over fallback; may raise)

    Example:
        @with_circuit_breaker(geocoder_breaker, fallback=None)
        def lookup(query):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return breaker.call(func, *args, **kwargs)
            except CircuitBreakerError:
                update_circuit_breaker_state(breaker.name, breaker.current_state)
                logger.warning(
                    f"Circuit breaker '{breaker.name}' is OPEN - using fallback for {func.__name__}"
                )
                if fallback_func:
                    return fallback_func(*args, **kwargs)
                return fallback

        return wrapper

    return decorator
