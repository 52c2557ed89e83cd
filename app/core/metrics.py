"""
Prometheus metrics for the rating tracker.

Metrics exposed:
- GeoGuessr request counters by endpoint and outcome
- Sync outcome counters (updated / unchanged / errored)
- Tracking rotation counters (admissions, evictions, skipped eviction reads)
- Tracked-set gauges and scheduler status
- Tracking cycle duration histogram
"""
from prometheus_client import Counter, Gauge, Histogram

# Upstream (GeoGuessr) metrics
geoguessr_requests_total = Counter(
    "geoguessr_requests_total",
    "Total GeoGuessr API requests",
    ["endpoint", "outcome"]
)

# Sync metrics
rating_sync_results_total = Counter(
    "rating_sync_results_total",
    "Rating sync outcomes per player",
    ["outcome"]
)

tracking_cycle_duration_seconds = Histogram(
    "tracking_cycle_duration_seconds",
    "Duration of a full tracking cycle in seconds",
    buckets=(30, 60, 120, 300, 600, 900, 1200, 1800, 3600)
)

# Tracking rotation metrics
tracking_admissions_total = Counter(
    "tracking_admissions_total",
    "Players admitted into the tracked set on demand",
    ["tier"]
)

tracking_evictions_total = Counter(
    "tracking_evictions_total",
    "Rotation players evicted to make room for a viewed player"
)

tracking_eviction_reads_skipped_total = Counter(
    "tracking_eviction_reads_skipped_total",
    "Eviction reads that failed and were skipped"
)

tracked_players = Gauge(
    "tracked_players",
    "Number of tracked players",
    ["tier"]
)

# Scheduler metrics
scheduler_running = Gauge(
    "scheduler_running",
    "Whether the tracking scheduler is running (1=running, 0=stopped)"
)

scheduler_jobs_total = Gauge(
    "scheduler_jobs_total",
    "Total number of scheduled jobs"
)


def record_geoguessr_request(endpoint: str, outcome: str) -> None:
    """Count one GeoGuessr request (outcome: success, http_error, transport_error, circuit_open, bad_payload)."""
    geoguessr_requests_total.labels(endpoint=endpoint, outcome=outcome).inc()


def record_sync_result(outcome: str) -> None:
    """Count one player sync (outcome: updated, unchanged, errored)."""
    rating_sync_results_total.labels(outcome=outcome).inc()


def record_admission(tier: str) -> None:
    tracking_admissions_total.labels(tier=tier).inc()


def record_eviction() -> None:
    tracking_evictions_total.inc()


def record_eviction_read_skipped() -> None:
    tracking_eviction_reads_skipped_total.inc()


def update_tracked_gauges(top_tier: int, rotation: int) -> None:
    tracked_players.labels(tier="top").set(top_tier)
    tracked_players.labels(tier="rotation").set(rotation)


def update_scheduler_metrics():
    """
    Update scheduler metrics.

    Call after starting or stopping the scheduler.
    """
    from app.core.scheduler import get_scheduler

    scheduler = get_scheduler()
    if scheduler and scheduler.running:
        scheduler_running.set(1)
        if scheduler.scheduler:
            scheduler_jobs_total.set(len(scheduler.scheduler.get_jobs()))
    else:
        scheduler_running.set(0)
        scheduler_jobs_total.set(0)
