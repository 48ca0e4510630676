"""Single-consumer persistence worker for durable logs and plots."""
import logging
import queue
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sts.durable_log import append_record, log_path
from sts.render import Renderer, RenderResult
from sts.series import WriteJob

logger = logging.getLogger(__name__)

_STOP = object()


class QueueFullError(Exception):
    """No queue slot became free within the enqueue timeout."""


@dataclass
class JobOutcome:
    """Result of processing one write job."""
    series_name: str
    persisted: bool
    rendered: bool = False
    error: Optional[str] = None
    render: Optional[RenderResult] = None


class PersistenceWorker:
    """
    Appends the newest point of each job to its durable log, then renders.

    Jobs are handled one at a time in arrival order. Capacity is bounded by
    slots: a producer reserves a slot before mutating the store, submits
    without blocking, and the slot is released once the job is processed.
    """

    def __init__(
        self,
        data_dir: Path,
        renderer: Optional[Renderer] = None,
        queue_size: int = 10000,
        self_metrics=None
    ):
        self.data_dir = Path(data_dir)
        self.renderer = renderer
        self.queue_size = queue_size
        self.self_metrics = self_metrics

        self._queue: "queue.Queue" = queue.Queue()
        self._slots = threading.BoundedSemaphore(queue_size)
        self._thread: Optional[threading.Thread] = None
        self._pending = 0
        self._pending_lock = threading.Lock()
        self.jobs_processed = 0

    @property
    def depth(self) -> int:
        """Number of jobs waiting or in progress."""
        with self._pending_lock:
            return self._pending

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def reserve(self, timeout: float) -> bool:
        """Reserve capacity for one job, waiting up to `timeout` seconds."""
        return self._slots.acquire(timeout=timeout)

    def release(self):
        """Give back a slot reserved with `reserve`."""
        self._slots.release()

    def submit(self, job: WriteJob):
        """Enqueue a job for which a slot has already been reserved."""
        with self._pending_lock:
            self._pending += 1
        self._queue.put_nowait(job)
        self._update_depth()

    def start(self):
        """Start the consumer thread."""
        if self.running:
            return
        self._thread = threading.Thread(
            target=self._run,
            name="persistence-worker",
            daemon=True
        )
        self._thread.start()
        logger.info(f"Persistence worker started (queue size {self.queue_size})")

    def stop(self, timeout: Optional[float] = None):
        """Process every pending job, then stop the consumer thread."""
        if not self.running:
            return
        logger.info(f"Stopping persistence worker ({self.depth} pending jobs)")
        self._queue.put(_STOP)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Persistence worker did not stop within timeout")
        else:
            self._thread = None

    def wait_idle(self, timeout: float = 10.0) -> bool:
        """Wait until every submitted job has been processed."""
        deadline = time.time() + timeout
        while self.depth:
            if time.time() >= deadline:
                return False
            time.sleep(0.005)
        return True

    def _run(self):
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self.process(job)
            except Exception as e:
                logger.error(f"Persistence worker error: {e}", exc_info=True)
            finally:
                self._queue.task_done()
                if job is not _STOP:
                    with self._pending_lock:
                        self._pending -= 1
                    self.release()
                    self._update_depth()

    def process(self, job: WriteJob) -> JobOutcome:
        """Persist the newest point of a job and render the series plot."""
        name = job.series_name
        path = log_path(self.data_dir, name)
        logger.info(
            f"Persistence worker received series {name} with "
            f"{len(job.points_snapshot)} values."
        )

        start = time.time()
        try:
            append_record(path, job.latest)
        except OSError as e:
            logger.error(f"Failed to persist point for series '{name}' to {path}: {e}")
            if self.self_metrics:
                self.self_metrics.record_persist_error(name)
            return JobOutcome(name, persisted=False, error=str(e))
        finally:
            if self.self_metrics:
                self.self_metrics.record_persist_duration(time.time() - start)

        self.jobs_processed += 1

        if self.renderer is None:
            return JobOutcome(name, persisted=True)

        result = self.renderer.render(name, path)
        return JobOutcome(
            name,
            persisted=True,
            rendered=result.success and not result.skipped,
            error=result.error,
            render=result
        )

    def _update_depth(self):
        if self.self_metrics:
            self.self_metrics.set_queue_depth(self.depth)
