"""OpenTelemetry push exporter for self-monitoring metrics."""
from typing import Dict
import logging
import threading

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.metrics.view import ExplicitBucketHistogramAggregation, View
from opentelemetry.sdk.resources import Resource

from sts.config import OTELExporterConfig

logger = logging.getLogger(__name__)

PERSIST_DURATION_BUCKETS = [0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
RENDER_DURATION_BUCKETS = [0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]


class OTELExporter:
    """Owns the meter provider pushing self-metrics over OTLP."""

    def __init__(self, config: OTELExporterConfig, metric_reader=None):
        """
        Initialize the exporter.

        Args:
            config: OTEL exporter configuration
            metric_reader: Reader to use instead of a periodic OTLP exporter
        """
        self.config = config
        self.meter_provider = None
        self.meter = None

        if config.enabled or metric_reader is not None:
            self._initialize_otel(metric_reader)

    def _initialize_otel(self, metric_reader=None):
        """Initialize OpenTelemetry SDK."""
        resource_attrs = {
            "service.name": "sts",
        }
        resource_attrs.update(self.config.resource)
        resource = Resource.create(resource_attrs)

        if metric_reader is None:
            from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

            exporter = OTLPMetricExporter(
                endpoint=self.config.endpoint,
                insecure=self.config.insecure,
                headers=tuple(self.config.headers.items()) if self.config.headers else None
            )
            metric_reader = PeriodicExportingMetricReader(
                exporter,
                export_interval_millis=self.config.export_interval_s * 1000
            )

        self.meter_provider = MeterProvider(
            resource=resource,
            metric_readers=[metric_reader],
            views=self._create_histogram_views()
        )
        self.meter = self.meter_provider.get_meter(__name__)

        logger.info(f"OTEL exporter initialized, pushing to {self.config.endpoint}")

    def _create_histogram_views(self):
        """Match the Prometheus bucket boundaries for duration histograms."""
        return [
            View(
                instrument_name=f"{self.config.prefix}persist_duration_seconds",
                aggregation=ExplicitBucketHistogramAggregation(boundaries=PERSIST_DURATION_BUCKETS)
            ),
            View(
                instrument_name=f"{self.config.prefix}render_duration_seconds",
                aggregation=ExplicitBucketHistogramAggregation(boundaries=RENDER_DURATION_BUCKETS)
            ),
        ]

    def self_metrics(self):
        """Create the self-metrics instruments on this exporter's meter."""
        if self.meter is None:
            return None
        return OTELSelfMetrics(self.meter, prefix=self.config.prefix)

    def shutdown(self):
        """Shutdown OTEL exporter."""
        if self.meter_provider is not None:
            self.meter_provider.shutdown()
            logger.info("OTEL exporter shutdown complete")


class OTELSelfMetrics:
    """Self-monitoring metrics for the OTEL exporter."""

    def __init__(self, meter, prefix=""):
        self.prefix = prefix

        self.points_counter = meter.create_counter(
            name=f"{prefix}points_ingested_total",
            description="Total number of points accepted into memory",
            unit="1"
        )

        self.rejected_counter = meter.create_counter(
            name=f"{prefix}writes_rejected_total",
            description="Total number of rejected writes",
            unit="1"
        )

        self.persist_errors_counter = meter.create_counter(
            name=f"{prefix}persist_errors_total",
            description="Total number of failed durable log appends",
            unit="1"
        )

        self.render_failures_counter = meter.create_counter(
            name=f"{prefix}render_failures_total",
            description="Total number of failed plot renders",
            unit="1"
        )

        self.persist_duration_histogram = meter.create_histogram(
            name=f"{prefix}persist_duration_seconds",
            description="Duration of each durable log append in seconds",
            unit="s"
        )

        self.render_duration_histogram = meter.create_histogram(
            name=f"{prefix}render_duration_seconds",
            description="Duration of each plot render in seconds",
            unit="s"
        )

        # UpDownCounters only take deltas; track what was last reported
        self.queue_depth_counter = meter.create_up_down_counter(
            name=f"{prefix}queue_depth",
            description="Number of write jobs waiting or in progress",
            unit="1"
        )

        self.active_series_counter = meter.create_up_down_counter(
            name=f"{prefix}active_series",
            description="Number of series held in memory",
            unit="1"
        )

        self._gauge_cumulative: Dict[str, int] = {}
        self._gauge_lock = threading.Lock()

    def record_ingested(self, series: str):
        """Record an accepted point."""
        self.points_counter.add(1, {"series": series})

    def record_rejected(self, reason: str):
        """Record a rejected write."""
        self.rejected_counter.add(1, {"reason": reason})

    def record_persist_error(self, series: str):
        """Record a failed append."""
        self.persist_errors_counter.add(1, {"series": series})

    def record_persist_duration(self, duration: float):
        self.persist_duration_histogram.record(duration)

    def record_render_failure(self, series: str):
        """Record a failed render."""
        self.render_failures_counter.add(1, {"series": series})

    def record_render_duration(self, duration: float):
        self.render_duration_histogram.record(duration)

    def set_queue_depth(self, depth: int):
        """Set persistence queue depth."""
        self._set_gauge("queue_depth", self.queue_depth_counter, depth)

    def set_active_series(self, count: int):
        """Set active series count."""
        self._set_gauge("active_series", self.active_series_counter, count)

    def _set_gauge(self, key: str, instrument, value: int):
        with self._gauge_lock:
            delta = value - self._gauge_cumulative.get(key, 0)
            if delta != 0:
                instrument.add(delta)
                self._gauge_cumulative[key] = value
