"""
Prometheus Metrics Registry

Provides Prometheus-compatible metrics for:
- HTTP request counts and latencies
- Push delivery outcomes per broadcast
- Registry size and cleanup removals
- Scheduled shop-close runs
"""
import re
import time
import logging
from prometheus_client import (
    Counter, Histogram, Gauge, Info,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)

logger = logging.getLogger(__name__)

# Custom registry so tests can import the module repeatedly without conflicts
REGISTRY = CollectorRegistry()

_start_time = time.time()

app_info = Info(
    'app',
    'Application information',
    registry=REGISTRY
)

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status_code'],
    registry=REGISTRY
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY
)

# ============================================================================
# Push Delivery Metrics
# ============================================================================

push_broadcasts_total = Counter(
    'push_broadcasts_total',
    'Total broadcast requests',
    ['source', 'status'],  # source: api, scheduler; status: sent, no_targets, transport_error
    registry=REGISTRY
)

push_deliveries_total = Counter(
    'push_deliveries_total',
    'Per-token delivery outcomes',
    ['outcome'],  # success, permanent_failure, transient_failure
    registry=REGISTRY
)

push_broadcast_duration_seconds = Histogram(
    'push_broadcast_duration_seconds',
    'Duration of the batched transport call in seconds',
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=REGISTRY
)

# ============================================================================
# Registry Metrics
# ============================================================================

registry_registrations = Gauge(
    'registry_registrations',
    'Distinct users with a registered push token',
    registry=REGISTRY
)

registry_cleanup_removed_total = Counter(
    'registry_cleanup_removed_total',
    'Registrations removed after permanent delivery failures',
    registry=REGISTRY
)

registry_orphaned_tokens_total = Counter(
    'registry_orphaned_tokens_total',
    'Permanently failed tokens with no resolvable owner',
    registry=REGISTRY
)

# ============================================================================
# Scheduler Metrics
# ============================================================================

shop_close_runs_total = Counter(
    'shop_close_runs_total',
    'Shop auto-close executions',
    ['status'],  # closed, skipped, error
    registry=REGISTRY
)

uptime_seconds = Gauge(
    'app_uptime_seconds',
    'Application uptime in seconds',
    registry=REGISTRY
)


# ============================================================================
# Helper Functions
# ============================================================================


def init_metrics(version: str = "1.0.0"):
    """Initialize metrics with application info."""
    global _start_time
    _start_time = time.time()

    app_info.info({
        'version': version,
        'name': 'ShopCast'
    })

    logger.info("Prometheus metrics initialized", extra={"version": version})


def record_request_metrics(
    method: str,
    path: str,
    status_code: int,
    response_time_seconds: float
):
    """Record HTTP request metrics."""
    normalized_path = _normalize_path(path)

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status_code=str(status_code)
    ).inc()

    http_request_duration_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(response_time_seconds)


def record_broadcast(
    source: str,
    status: str,
    success_count: int = 0,
    permanent_failures: int = 0,
    transient_failures: int = 0,
    duration_seconds: float = 0.0,
):
    """
    Record the outcome of one broadcast.

    Args:
        source: Who asked for the broadcast (api, scheduler)
        status: sent, no_targets or transport_error
        success_count: Tokens delivered
        permanent_failures: Tokens that will never succeed again
        transient_failures: Tokens that failed for temporary reasons
        duration_seconds: Time spent in the transport call
    """
    push_broadcasts_total.labels(source=source, status=status).inc()
    if success_count:
        push_deliveries_total.labels(outcome="success").inc(success_count)
    if permanent_failures:
        push_deliveries_total.labels(outcome="permanent_failure").inc(permanent_failures)
    if transient_failures:
        push_deliveries_total.labels(outcome="transient_failure").inc(transient_failures)
    if duration_seconds > 0:
        push_broadcast_duration_seconds.observe(duration_seconds)


def update_registration_count(count: int):
    registry_registrations.set(count)


def record_cleanup(removed: int, orphaned: int):
    if removed:
        registry_cleanup_removed_total.inc(removed)
    if orphaned:
        registry_orphaned_tokens_total.inc(orphaned)


def record_shop_close_run(status: str):
    shop_close_runs_total.labels(status=status).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output in text format."""
    uptime_seconds.set(time.time() - _start_time)
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def _normalize_path(path: str) -> str:
    """
    Normalize request path to avoid high cardinality.

    Replaces UUIDs and numeric IDs with placeholders.
    """
    path = re.sub(
        r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
        '{id}',
        path,
        flags=re.IGNORECASE
    )
    path = re.sub(r'/\d+', '/{id}', path)
    return path
