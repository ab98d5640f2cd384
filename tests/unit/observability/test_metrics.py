"""Tests for metrics and structured logging."""

import json
import logging

import pytest

from felis.config import settings
from felis.observability.logging import ConsoleFormatter, JsonFormatter, LogContext
from felis.observability.metrics import MetricsRegistry, NoOpMetric


class TestMetricsRegistry:
    """Test metric registration."""

    def test_noop_when_disabled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Disabled metrics use no-op instances."""
        monkeypatch.setattr(settings, "enable_metrics", False)
        registry = MetricsRegistry()
        registry.initialize()

        assert isinstance(registry.cache_hits_total, NoOpMetric)
        assert isinstance(registry.invalidations_total, NoOpMetric)
        registry.cache_hits_total.labels(cache_type="list").inc()
        assert registry.generate_latest() == b"# Metrics disabled\n"

    def test_noop_metric_chains(self) -> None:
        """labels() returns the same no-op."""
        metric = NoOpMetric()
        assert metric.labels(kind="create", path="full") is metric
        metric.inc(3)


def make_record(message: str) -> logging.LogRecord:
    return logging.LogRecord(
        name="felis.cache.coordinator",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )


class TestLogging:
    """Test log formatting with correlation context."""

    def test_json_includes_context(self) -> None:
        """Context variables are added to JSON logs while active."""
        with LogContext(request_id="req-1", viewer_id="V1"):
            data = json.loads(JsonFormatter().format(make_record("Invalidation failed")))

        assert data["message"] == "Invalidation failed"
        assert data["level"] == "WARNING"
        assert data["request_id"] == "req-1"
        assert data["viewer_id"] == "V1"

    def test_context_reset_on_exit(self) -> None:
        """Context does not leak past the block."""
        with LogContext(request_id="req-1"):
            pass
        data = json.loads(JsonFormatter().format(make_record("x")))
        assert "request_id" not in data

    def test_console_format(self) -> None:
        """Console lines carry level, logger and viewer."""
        with LogContext(viewer_id="V1"):
            line = ConsoleFormatter(use_colors=False).format(make_record("Cache miss"))
        assert "WARNING" in line
        assert "felis.cache.coordinator" in line
        assert "viewer=V1" in line
