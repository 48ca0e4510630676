"""Tests for the in-memory series store."""
import threading
from datetime import datetime, timedelta, timezone

from sts.series import Datum, Series
from sts.store import SeriesStore


def test_get_unknown_series_returns_none():
    store = SeriesStore()
    assert store.get("missing") is None
    assert "missing" not in store


def test_append_creates_series_with_first_point():
    store = SeriesStore()
    snapshot = store.append("temp", Datum(100, 1.5))

    assert snapshot == (Datum(100, 1.5),)
    series = store.get("temp")
    assert series.name == "temp"
    assert series.points == [Datum(100, 1.5)]
    assert len(store) == 1


def test_append_returns_full_snapshot_in_arrival_order():
    store = SeriesStore()
    for ts in [100, 50, 200]:
        snapshot = store.append("temp", Datum(ts, float(ts)))

    assert [d.timestamp for d in snapshot] == [100, 50, 200]


def test_get_returns_copy():
    """Mutating a returned series must not touch the store."""
    store = SeriesStore()
    store.append("temp", Datum(1, 1.0))

    copy = store.get("temp")
    copy.points.append(Datum(2, 2.0))

    assert len(store.get("temp")) == 1


def test_last_modified_tracks_latest_ingestion():
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ticks = iter([base, base + timedelta(seconds=5)])
    store = SeriesStore(clock=lambda: next(ticks))

    store.append("temp", Datum(1, 1.0))
    assert store.get("temp").last_modified == base

    store.append("temp", Datum(2, 2.0))
    assert store.get("temp").last_modified == base + timedelta(seconds=5)


def test_publish_runs_with_snapshot_before_return():
    store = SeriesStore()
    published = []

    snapshot = store.append("temp", Datum(1, 1.0), publish=published.append)

    assert published == [snapshot]


def test_publish_order_matches_store_order_under_contention():
    """The publish callback sees snapshots in the same order as the store."""
    store = SeriesStore()
    published = []
    barrier = threading.Barrier(20)

    def writer(i):
        barrier.wait()
        store.append("shared", Datum(i, float(i)), publish=lambda s: published.append(s[-1]))

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert published == store.get("shared").points
    assert len(published) == 20


def test_list_sorted_by_name():
    store = SeriesStore()
    store.append("zeta", Datum(1, 1.0))
    store.append("alpha", Datum(1, 1.0))
    store.append("alpha", Datum(2, 2.0))

    infos = store.list()
    assert [(i.name, i.count) for i in infos] == [("alpha", 2), ("zeta", 1)]


def test_load_inserts_recovered_series():
    store = SeriesStore()
    recovered = Series("temp", [Datum(5, 1.0)], datetime.fromtimestamp(5, tz=timezone.utc))

    store.load([recovered])
    store.append("temp", Datum(6, 2.0))

    assert len(store.get("temp")) == 2


def test_count():
    store = SeriesStore()
    assert store.count("temp") is None

    store.append("temp", Datum(1, 1.0))
    store.append("temp", Datum(2, 2.0))
    assert store.count("temp") == 2


def test_new_series_has_no_modification_time():
    series = Series("temp")

    assert series.last_modified is None
    assert len(series) == 0
