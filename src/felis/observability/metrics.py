"""Prometheus metrics for Felis.

Provides metrics collection for the cache layer:
- Cache metrics (hits, misses, errors, bypasses)
- Invalidation metrics (plans by mutation kind and path, failures)

Usage:
    from felis.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.cache_hits_total.labels(cache_type="list").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import REGISTRY, Counter, generate_latest

from felis.config import settings

logger = logging.getLogger(__name__)


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> "NoOpMetric":
        """Return self for chaining."""
        return self

    def inc(self, amount: float = 1) -> None:
        """No-op."""
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # Cache metrics
    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_errors_total: Any = None
    cache_bypass_total: Any = None
    cache_stale_writes_skipped_total: Any = None

    # Invalidation metrics
    invalidations_total: Any = None
    invalidation_failures_total: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            noop = NoOpMetric()
            self.cache_hits_total = noop
            self.cache_misses_total = noop
            self.cache_errors_total = noop
            self.cache_bypass_total = noop
            self.cache_stale_writes_skipped_total = noop
            self.invalidations_total = noop
            self.invalidation_failures_total = noop
            self._initialized = True
            return

        self._registry = REGISTRY

        self.cache_hits_total = Counter(
            "felis_cache_hits_total",
            "Cache hits",
            ["cache_type"],
        )

        self.cache_misses_total = Counter(
            "felis_cache_misses_total",
            "Cache misses",
            ["cache_type"],
        )

        self.cache_errors_total = Counter(
            "felis_cache_errors_total",
            "Cache operations that failed and were degraded",
            ["operation"],
        )

        self.cache_bypass_total = Counter(
            "felis_cache_bypass_total",
            "List queries served without the cache because no key could be derived",
        )

        self.cache_stale_writes_skipped_total = Counter(
            "felis_cache_stale_writes_skipped_total",
            "Loaded results not stored because an invalidation raced the load",
            ["cache_type"],
        )

        self.invalidations_total = Counter(
            "felis_invalidations_total",
            "Invalidation plans executed",
            ["kind", "path"],
        )

        self.invalidation_failures_total = Counter(
            "felis_invalidation_failures_total",
            "Individual purge calls that failed",
            ["target_type"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics or self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry
