"""
Prometheus metrics for the message store server.

HTTP traffic is labelled by route template (``/messages/{message_id}``), not
by raw path, so message ids never become label values.
"""

from typing import Optional

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "HTTP requests served, by route template and status code",
    labelnames=["method", "path", "status"]
)

# Store round trips dominate, so the buckets stop at a few seconds
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Time spent serving an HTTP request",
    labelnames=["method", "path"],
    buckets=(.005, .01, .025, .05, .1, .25, .5, 1.0, 2.5, 5.0)
)

# outcome: ok, unavailable, connection_lost, failed, invalid, rejected
message_submissions_total = Counter(
    "message_submissions_total",
    "Message submissions by outcome",
    labelnames=["outcome"]
)

store_probes_total = Counter(
    "message_store_probes_total",
    "Reachability probes against the message store",
    labelnames=["result"]
)

message_store_available = Gauge(
    "message_store_available",
    "1 when the message store is reachable, 0 otherwise"
)


# =============================================================================
# Recorders
# =============================================================================

def record_http_request(method: str, route: Optional[str], status: int, latency_seconds: float) -> None:
    """
    Count one served request.

    Args:
        method: HTTP method
        route: matched route template, or None when no route matched
        status: response status code
        latency_seconds: wall time spent in the app
    """
    path = route or "unmatched"
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    request_latency_seconds.labels(method=method, path=path).observe(latency_seconds)


def record_submission_outcome(outcome: str) -> None:
    message_submissions_total.labels(outcome=outcome).inc()


def record_probe(reachable: bool) -> None:
    store_probes_total.labels(result="reachable" if reachable else "unreachable").inc()


def record_store_availability(available: bool) -> None:
    message_store_available.set(1 if available else 0)


def get_metrics() -> tuple[bytes, str]:
    """Current registry in the Prometheus text format, with its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
