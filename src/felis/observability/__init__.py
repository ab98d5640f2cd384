"""Observability module for Felis.

Provides metrics and structured logging:
- Prometheus counters for cache hits, misses and invalidations
- JSON structured logging with correlation IDs
"""

from felis.observability.logging import (
    LogContext,
    configure_logging,
    current_context,
    request_id_var,
    viewer_id_var,
)
from felis.observability.metrics import get_metrics, metrics_registry

__all__ = [
    # Logging
    "configure_logging",
    "current_context",
    "LogContext",
    "request_id_var",
    "viewer_id_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
]
