"""Shared fixtures for recorder tests."""
import pytest

from sts.config import Config
from sts.store import SeriesStore
from sts.worker import PersistenceWorker
from sts.ingest import IngestService


def make_config(tmp_path, **overrides) -> Config:
    """Config rooted in a temporary directory with rendering disabled."""
    raw = {
        "storage": {
            "data_path": str(tmp_path / "data"),
            "image_path": str(tmp_path / "images"),
        },
        "render": {"enabled": False},
        "persistence": {"queue_size": 1000, "enqueue_timeout_s": 1.0},
    }
    for section, values in overrides.items():
        raw.setdefault(section, {}).update(values)
    return Config(**raw)


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def store():
    return SeriesStore()


@pytest.fixture
def worker(data_dir):
    worker = PersistenceWorker(data_dir, renderer=None, queue_size=1000)
    worker.start()
    yield worker
    worker.stop(timeout=5)


@pytest.fixture
def service(store, worker):
    return IngestService(store, worker, enqueue_timeout_s=1.0)
