"""Self-monitoring metrics using prometheus_client."""
from typing import List
from prometheus_client import (
    CollectorRegistry, Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
)
import logging

logger = logging.getLogger(__name__)


class SelfMetrics:
    """Prometheus metrics describing ingestion and the persistence pipeline."""

    def __init__(self, registry=None, prefix=""):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.points_total = Counter(
            f"{prefix}points_ingested_total",
            "Total number of points accepted into memory",
            ["series"],
            registry=registry
        )

        self.rejected_total = Counter(
            f"{prefix}writes_rejected_total",
            "Total number of rejected writes",
            ["reason"],
            registry=registry
        )

        self.persist_errors_total = Counter(
            f"{prefix}persist_errors_total",
            "Total number of failed durable log appends",
            ["series"],
            registry=registry
        )

        self.render_failures_total = Counter(
            f"{prefix}render_failures_total",
            "Total number of failed plot renders",
            ["series"],
            registry=registry
        )

        self.persist_duration_seconds = Histogram(
            f"{prefix}persist_duration_seconds",
            "Duration of each durable log append in seconds",
            buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
            registry=registry
        )

        self.render_duration_seconds = Histogram(
            f"{prefix}render_duration_seconds",
            "Duration of each plot render in seconds",
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=registry
        )

        self.queue_depth = Gauge(
            f"{prefix}queue_depth",
            "Number of write jobs waiting or in progress",
            registry=registry
        )

        self.active_series = Gauge(
            f"{prefix}active_series",
            "Number of series held in memory",
            registry=registry
        )

    def record_ingested(self, series: str):
        """Record an accepted point."""
        self.points_total.labels(series=series).inc()

    def record_rejected(self, reason: str):
        """Record a rejected write."""
        self.rejected_total.labels(reason=reason).inc()

    def record_persist_error(self, series: str):
        """Record a failed append."""
        self.persist_errors_total.labels(series=series).inc()

    def record_persist_duration(self, duration: float):
        """Record append duration."""
        self.persist_duration_seconds.observe(duration)

    def record_render_failure(self, series: str):
        """Record a failed render."""
        self.render_failures_total.labels(series=series).inc()

    def record_render_duration(self, duration: float):
        """Record render duration."""
        self.render_duration_seconds.observe(duration)

    def set_queue_depth(self, depth: int):
        """Set persistence queue depth."""
        self.queue_depth.set(depth)

    def set_active_series(self, count: int):
        """Set active series count."""
        self.active_series.set(count)

    def exposition(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)


class MetricsFanout:
    """Forwards each self-metric call to every enabled backend."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, backends: List = None):
        self.backends = [b for b in (backends or []) if b is not None]

    def __getattr__(self, name):
        if not name.startswith(("record_", "set_")):
            raise AttributeError(name)

        def forward(*args, **kwargs):
            for backend in self.backends:
                try:
                    getattr(backend, name)(*args, **kwargs)
                except Exception as e:
                    logger.error(f"Self-metrics backend {type(backend).__name__} failed: {e}")

        return forward

    @property
    def prometheus(self):
        """The Prometheus backend, if enabled."""
        for backend in self.backends:
            if isinstance(backend, SelfMetrics):
                return backend
        return None
