"""
Lightweight metrics collection for Matchday.
Prometheus counters, histograms and gauges for the sync core and the API.
"""
from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
PROVIDER_REQUESTS = Counter(
    "md_provider_requests_total",
    "Total provider HTTP requests",
    ["provider", "endpoint", "status"],
)
CACHE_LOOKUPS = Counter(
    "md_cache_lookups_total",
    "Freshness cache lookups by outcome",
    ["result"],
)
LEAGUE_SYNCS = Counter(
    "md_league_syncs_total",
    "League sync decisions by reason and outcome",
    ["reason", "outcome"],
)
FIXTURES_RECONCILED = Counter(
    "md_fixtures_reconciled_total",
    "Fixtures written to the store, by outcome",
    ["outcome"],
)

# ── Histograms ──────────────────────────────────────────────────────────
PROVIDER_LATENCY = Histogram(
    "md_provider_latency_seconds",
    "Provider request latency in seconds",
    ["provider"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
SYNC_DURATION = Histogram(
    "md_sync_duration_seconds",
    "Time to resynchronize one league, one day or the in-play fixtures",
    ["kind"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
PROVIDER_QUOTA_USED = Gauge(
    "md_provider_quota_used",
    "Requests counted against today's provider quota",
    ["provider"],
)


def start_metrics_server(port: int | None = None, settings: Settings | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = settings or get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
