"""
Prometheus metrics for the league sync service.

Metrics exposed:
- Upstream (basketball-bund.net, Nominatim) success/failure counters
- Sync run counters and duration histogram
- Per-run entity counters (created/updated/deleted by kind)
- Circuit breaker state gauge
- Scheduler status gauge
"""
from prometheus_client import Counter, Gauge, Histogram

# Upstream API Metrics
source_api_requests_success_total = Counter(
    "source_api_requests_success_total",
    "Total successful basketball-bund.net API requests",
    ["endpoint"]
)

source_api_requests_failure_total = Counter(
    "source_api_requests_failure_total",
    "Total failed basketball-bund.net API requests",
    ["endpoint", "error_type"]
)

geocoder_requests_total = Counter(
    "geocoder_requests_total",
    "Total geocoding requests",
    ["outcome"]
)

# Sync Run Metrics
sync_runs_total = Counter(
    "sync_runs_total",
    "Total synchronization runs",
    ["trigger", "outcome"]
)

sync_run_duration_seconds = Histogram(
    "sync_run_duration_seconds",
    "Synchronization run duration in seconds",
    buckets=(10, 30, 60, 120, 300, 600, 1200, 1800, 3600)
)

sync_entities_total = Counter(
    "sync_entities_total",
    "Entities written by the sync engine",
    ["kind", "action"]
)

# Circuit Breaker Metrics
circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open, 2=half_open)",
    ["service"]
)

# Scheduler Metrics
scheduler_running = Gauge(
    "scheduler_running",
    "Whether the sync scheduler is running (1=running, 0=stopped)"
)

_BREAKER_STATE_VALUES = {"closed": 0, "open": 1, "half-open": 2, "half_open": 2}

# Stat counter name -> (kind, action)
_STAT_LABELS = {
    "teams_created": ("team", "created"),
    "teams_updated": ("team", "updated"),
    "teams_deduped": ("team", "deduped"),
    "events_created": ("event", "created"),
    "events_updated": ("event", "updated"),
    "events_deleted": ("event", "deleted"),
    "events_skipped": ("event", "skipped"),
    "players_created": ("player", "created"),
    "players_updated": ("player", "updated"),
    "players_skipped": ("player", "skipped"),
    "venues_created": ("venue", "created"),
    "venues_updated": ("venue", "updated"),
    "tables_created": ("table", "created"),
    "tables_updated": ("table", "updated"),
}


def record_source_request_success(endpoint: str):
    """Record a successful upstream request."""
    source_api_requests_success_total.labels(endpoint=endpoint).inc()


def record_source_request_failure(endpoint: str, error_type: str = "unknown"):
    """Record a failed upstream request."""
    source_api_requests_failure_total.labels(endpoint=endpoint, error_type=error_type).inc()


def record_geocoder_request(outcome: str):
    geocoder_requests_total.labels(outcome=outcome).inc()


def record_sync_run(trigger: str, outcome: str, duration_seconds: float, stats: dict):
    """
    Record a finished sync run.

    Args:
        trigger: What started the run ("manual", "scheduled", "cli")
        outcome: "success" or "error"
        duration_seconds: Wall time of the run
        stats: Final run statistics
    """
    sync_runs_total.labels(trigger=trigger, outcome=outcome).inc()
    sync_run_duration_seconds.observe(duration_seconds)
    for key, (kind, action) in _STAT_LABELS.items():
        value = stats.get(key, 0)
        if value:
            sync_entities_total.labels(kind=kind, action=action).inc(value)


def update_circuit_breaker_state(service: str, state: str):
    circuit_breaker_state.labels(service=service).set(_BREAKER_STATE_VALUES.get(state, 0))


def update_scheduler_metrics():
    """Update scheduler status gauge."""
    from app.core.scheduler import get_scheduler

    scheduler = get_scheduler()
    scheduler_running.set(1 if scheduler and scheduler.running else 0)
