"""
Prometheus metrics for Alexa request validation.

Tracks:
- Validation outcomes by rejection reason
- Certificate cache hit/miss ratio
- Certificate fetch latency and failures

Usage:
    from alexaverify.observability.metrics import track_validation, get_metrics_handler

    track_validation(accepted=False, reason="request_expired")

    # Expose metrics endpoint
    app.add_route("/metrics", get_metrics_handler())
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

request_validations_total = Counter(
    "alexa_request_validations_total",
    "Total Alexa request validations",
    ["result", "reason"],  # accepted/rejected, rejection reason or "none"
)

cert_cache_lookups_total = Counter(
    "alexa_cert_cache_lookups_total", "Signing certificate cache lookups", ["result"]
)

cert_fetch_failures_total = Counter(
    "alexa_cert_fetch_failures_total",
    "Signing certificate fetch failures",
    ["reason"],  # timeout, network, status, empty, too_large
)

cert_fetch_seconds = Histogram(
    "alexa_cert_fetch_seconds",
    "Latency of signing certificate fetches",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0),
)


def track_validation(accepted: bool, reason: str | None = None):
    """Record one pipeline outcome."""
    request_validations_total.labels(
        result="accepted" if accepted else "rejected", reason=reason or "none"
    ).inc()


def get_metrics_handler():
    """
    Get Starlette handler for /metrics endpoint.

    Returns:
        Async function that returns Prometheus metrics
    """

    async def metrics_handler(request):
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return metrics_handler
