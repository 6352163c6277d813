"""
Metrics collection for the death verification services.
Process-wide prometheus_client collectors; labels are source names and outcomes, never person data.
"""
from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Info, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
SOURCE_REQUESTS = Counter(
    "vb_source_requests_total",
    "Total outbound HTTP requests to death record sources",
    ["source", "status"],
)
SOURCE_VERDICTS = Counter(
    "vb_source_verdicts_total",
    "Verdicts produced by each source adapter",
    ["source", "outcome"],
)
VERIFICATIONS = Counter(
    "vb_verifications_total",
    "Completed death verifications by outcome",
    ["outcome"],
)
CACHE_LOOKUPS = Counter(
    "vb_cache_lookups_total",
    "Verification cache lookups",
    ["result"],
)

# ── Histograms ──────────────────────────────────────────────────────────
SOURCE_LATENCY = Histogram(
    "vb_source_latency_seconds",
    "Source request latency in seconds",
    ["source"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
VERIFICATION_LATENCY = Histogram(
    "vb_verification_latency_seconds",
    "Wall-clock time of a full multi-source aggregation",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
CACHE_ENTRIES = Gauge(
    "vb_cache_entries",
    "Entries currently held by the verification cache (including stale)",
)
SOURCE_HEALTH = Gauge(
    "vb_source_health",
    "1 if the source answered the last health probe without error, else 0",
    ["source"],
)

# ── Info ────────────────────────────────────────────────────────────────
SERVICE_INFO = Info("vb_service", "Service build information")


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
