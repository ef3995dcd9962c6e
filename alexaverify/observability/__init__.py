"""
Observability package for Alexa request validation.

Provides Prometheus metrics and the /metrics handler.
"""

from alexaverify.observability.metrics import get_metrics_handler, track_validation

__all__ = [
    "track_validation",
    "get_metrics_handler",
]
