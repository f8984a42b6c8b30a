"""Prometheus metrics exported on ``/metrics``.

All series live in the default registry under the ``workspace_share_``
prefix, next to the process collectors prometheus_client registers there.
Label values are bounded: HTTP paths are route templates (see
``middleware._normalize_path``), never raw URLs carrying tokens or IDs.
"""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest

_PREFIX = "workspace_share"

LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


def _counter(name: str, documentation: str, *labels: str) -> Counter:
    return Counter(f"{_PREFIX}_{name}", documentation, labelnames=labels, registry=REGISTRY)


HTTP_REQUESTS_TOTAL = _counter(
    "http_requests_total",
    "Requests served, by method, route template and status.",
    "method", "path", "status",
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    f"{_PREFIX}_http_request_duration_seconds",
    "Wall time spent serving a request.",
    labelnames=("method", "path"),
    buckets=LATENCY_BUCKETS,
    registry=REGISTRY,
)

# level: owner | view | none | error
ACCESS_DECISIONS_TOTAL = _counter(
    "access_decisions_total",
    "Access resolver outcomes by effective level.",
    "level",
)

# action: an ActivityAction value
SHARE_EVENTS_TOTAL = _counter(
    "events_total",
    "Share and link lifecycle events recorded.",
    "action",
)

BEST_EFFORT_FAILURES_TOTAL = _counter(
    "best_effort_failures_total",
    "Failed best-effort writes (activity, lazy expiry, touch, access count).",
    "operation",
)


def metrics_text() -> tuple[bytes, str]:
    """Exposition body and its content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
