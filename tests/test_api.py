"""End-to-end tests of the HTTP API."""
import pytest
from fastapi.testclient import TestClient

from sts.api import SeriesAPI
from sts.engine import RecorderEngine

from conftest import make_config


@pytest.fixture
def engine(tmp_path):
    engine = RecorderEngine(make_config(tmp_path))
    engine.start()
    yield engine
    engine.stop()


@pytest.fixture
def client(engine):
    api = SeriesAPI(engine.service, image_dir=engine.image_dir, self_metrics=engine.self_metrics)
    return TestClient(api.app)


def test_write_then_read_example(client, engine):
    response = client.post("/temp", json={"timeStamp": 1610000000, "value": 21.5})
    assert response.status_code == 200
    assert "2021-01-07 06:13:20 +0000" in response.text

    response = client.get("/temp")
    assert response.status_code == 200
    assert response.text == "Series temp has 1 values."

    assert engine.worker.wait_idle(timeout=5)
    assert (engine.data_dir / "temp.csv").read_text() == "1610000000,21.5\n"

    response = client.get("/missing")
    assert response.status_code == 404
    assert response.content == b""


def test_malformed_json_is_client_error(client, engine):
    response = client.post("/temp", content=b"not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert client.get("/temp").status_code == 404
    assert engine.worker.depth == 0


def test_invalid_payload_is_client_error(client):
    response = client.post("/temp", json={"timeStamp": "yesterday", "value": 1.0})

    assert response.status_code == 400
    assert "timeStamp" in response.json()["detail"]
    assert client.get("/temp").status_code == 404


def test_full_queue_returns_503(tmp_path):
    config = make_config(tmp_path, persistence={"queue_size": 1, "enqueue_timeout_s": 0.01})
    engine = RecorderEngine(config)
    engine.recover()
    client = TestClient(SeriesAPI(engine.service).app)

    assert client.post("/temp", json={"timeStamp": 1, "value": 1.0}).status_code == 200
    response = client.post("/temp", json={"timeStamp": 2, "value": 2.0})

    assert response.status_code == 503
    assert response.headers["retry-after"] == "1"
    assert client.get("/temp").text == "Series temp has 1 values."


def test_index_lists_series_sorted(client):
    client.post("/zeta", json={"timeStamp": 1, "value": 1.0})
    client.post("/alpha", json={"timeStamp": 2, "value": 2.0})

    response = client.get("/")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert response.text.index("alpha") < response.text.index("zeta")


def test_index_is_gzip_compressed(client):
    for i in range(10):
        client.post(f"/sensor-{i}", json={"timeStamp": i, "value": float(i)})

    response = client.get("/", headers={"Accept-Encoding": "gzip"})

    assert response.status_code == 200
    assert response.headers["content-encoding"] == "gzip"
    assert "sensor-9" in response.text

    short = client.get("/sensor-0", headers={"Accept-Encoding": "gzip"})
    assert "content-encoding" not in short.headers


def test_healthz_and_metrics(client):
    client.post("/temp", json={"timeStamp": 1, "value": 1.0})

    health = client.get("/healthz").json()
    assert health["status"] == "healthy"
    assert health["series"] == 1

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert 'sts_points_ingested_total{series="temp"} 1.0' in metrics.text


def test_restart_recovers_written_series(tmp_path):
    config = make_config(tmp_path)
    first = RecorderEngine(config)
    first.start()
    client = TestClient(SeriesAPI(first.service).app)
    for ts in [100, 50, 200]:
        assert client.post("/temp", json={"timeStamp": ts, "value": 1.5}).status_code == 200
    first.stop()

    second = RecorderEngine(config)
    second.start()
    try:
        client = TestClient(SeriesAPI(second.service).app)
        assert client.get("/temp").text == "Series temp has 3 values."
        assert [d.timestamp for d in second.store.get("temp").points] == [100, 50, 200]
    finally:
        second.stop()
