"""Tests for configuration loading."""
from pathlib import Path

import pytest

from sts.config import Config, load_config


def test_defaults_without_file(monkeypatch, tmp_path):
    monkeypatch.delenv("STS_DATA_PATH", raising=False)
    monkeypatch.delenv("STS_IMAGE_PATH", raising=False)
    monkeypatch.delenv("STS_RS_DATA_PATH", raising=False)
    monkeypatch.delenv("STS_RS_IMAGE_PATH", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    config = load_config()

    assert config.storage.data_path == tmp_path / ".sts" / "data"
    assert config.storage.image_path == tmp_path / ".sts" / "images"
    assert config.server.port == 8443
    assert config.persistence.queue_size == 10000
    assert config.render.executable == "gnuplot"
    assert config.exporters.prometheus.enabled
    assert not config.exporters.otel.enabled


def test_yaml_file_is_loaded(tmp_path, monkeypatch):
    monkeypatch.delenv("STS_DATA_PATH", raising=False)
    path = tmp_path / "sts.yaml"
    path.write_text(
        "global:\n"
        "  log_level: debug\n"
        "storage:\n"
        "  data_path: /srv/sts/data\n"
        "persistence:\n"
        "  queue_size: 5\n"
        "  enqueue_timeout_s: 0.5\n"
    )

    config = load_config(str(path))

    assert config.global_.log_level == "DEBUG"
    assert config.storage.data_path == Path("/srv/sts/data")
    assert config.persistence.queue_size == 5
    assert config.persistence.enqueue_timeout_s == 0.5


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "sts.yaml"
    path.write_text("storage:\n  data_path: /from/file\n")
    monkeypatch.setenv("STS_DATA_PATH", str(tmp_path / "env-data"))
    monkeypatch.setenv("STS_IMAGE_PATH", str(tmp_path / "env-images"))

    config = load_config(str(path))

    assert config.storage.data_path == tmp_path / "env-data"
    assert config.storage.image_path == tmp_path / "env-images"


def test_legacy_environment_names_are_honoured(tmp_path, monkeypatch):
    monkeypatch.delenv("STS_DATA_PATH", raising=False)
    monkeypatch.delenv("STS_IMAGE_PATH", raising=False)
    monkeypatch.setenv("STS_RS_DATA_PATH", str(tmp_path / "old-data"))
    monkeypatch.setenv("STS_RS_IMAGE_PATH", str(tmp_path / "old-images"))

    config = load_config()

    assert config.storage.data_path == tmp_path / "old-data"
    assert config.storage.image_path == tmp_path / "old-images"

    monkeypatch.setenv("STS_DATA_PATH", str(tmp_path / "new-data"))
    assert load_config().storage.data_path == tmp_path / "new-data"


def test_missing_file_raises():
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/sts.yaml")


@pytest.mark.parametrize("raw", [
    {"persistence": {"queue_size": 0}},
    {"global": {"log_level": "LOUD"}},
    {"server": {"ssl_keyfile": "key.pem"}},
])
def test_invalid_values_rejected(raw, tmp_path, monkeypatch):
    import yaml

    monkeypatch.delenv("LOG_LEVEL", raising=False)
    path = tmp_path / "bad.yaml"
    path.write_text(yaml.safe_dump(raw))

    with pytest.raises(ValueError, match="Configuration validation failed"):
        load_config(str(path))


def test_global_section_populates_by_alias_and_name():
    assert Config(**{"global": {"log_level": "warning"}}).global_.log_level == "WARNING"
    assert Config(global_={"log_level": "error"}).global_.log_level == "ERROR"
