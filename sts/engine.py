"""Recorder engine wiring store, recovery, worker and exporters together."""
import logging
import time

from sts.config import Config
from sts.ingest import IngestService
from sts.metrics import MetricsFanout, SelfMetrics
from sts.otel_exporter import OTELExporter
from sts.recovery import recover
from sts.render import Renderer
from sts.store import SeriesStore
from sts.worker import PersistenceWorker

logger = logging.getLogger(__name__)


class RecorderEngine:
    """Owns every long-lived component of the recorder."""

    def __init__(self, config: Config, otel_metric_reader=None):
        self.config = config
        self.start_time = time.time()
        self.data_dir = config.storage.data_path
        self.image_dir = config.storage.image_path

        self._initialize_exporters(otel_metric_reader)

        self.store = SeriesStore()
        self.renderer = Renderer(config.render, self.image_dir, self_metrics=self.self_metrics)
        self.worker = PersistenceWorker(
            self.data_dir,
            renderer=self.renderer,
            queue_size=config.persistence.queue_size,
            self_metrics=self.self_metrics
        )
        self.service = IngestService(
            self.store,
            self.worker,
            enqueue_timeout_s=config.persistence.enqueue_timeout_s,
            self_metrics=self.self_metrics
        )
        self.recovered = False

        logger.info("Recorder engine initialized")

    def _initialize_exporters(self, otel_metric_reader=None):
        """Initialize Prometheus and OTEL self-metrics."""
        if self.config.exporters.prometheus.enabled:
            prom_metrics = SelfMetrics(prefix=self.config.exporters.prometheus.prefix)
            logger.info("Prometheus self-metrics enabled on /metrics")
        else:
            prom_metrics = None
            logger.info("Prometheus self-metrics disabled")

        self.otel_exporter = OTELExporter(self.config.exporters.otel, metric_reader=otel_metric_reader)
        otel_metrics = self.otel_exporter.self_metrics()
        if otel_metrics is None:
            logger.info("OTEL exporter disabled")

        self.self_metrics = MetricsFanout([prom_metrics, otel_metrics])

    def recover(self) -> int:
        """Rebuild the store from durable logs; run before serving traffic."""
        count = recover(self.store, self.data_dir, self.image_dir)
        self.self_metrics.set_active_series(len(self.store))
        self.recovered = True
        return count

    def start(self):
        """Recover if not done yet, then start the persistence worker."""
        logger.info(f"Using data directory {self.data_dir}")
        logger.info(f"Using image directory {self.image_dir}")
        if not self.recovered:
            self.recover()
        self.worker.start()

    def stop(self):
        """Drain pending writes and shut exporters down."""
        logger.info("Stopping recorder engine")
        self.worker.stop()
        self.otel_exporter.shutdown()
