"""In-memory series store guarded by a single lock."""
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sts.series import Datum, Series, SeriesInfo

logger = logging.getLogger(__name__)

Snapshot = Tuple[Datum, ...]


class SeriesStore:
    """
    Mapping from series name to its points and last modification time.

    One lock covers the whole mapping. Every mutation copies the point list
    while the lock is held so callers never see the live list.
    """

    def __init__(self, clock: Callable[[], datetime] = None):
        self._series: Dict[str, Series] = {}
        self._lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get(self, name: str) -> Optional[Series]:
        """Return a copy of the named series, or None if it is unknown."""
        with self._lock:
            series = self._series.get(name)
            if series is None:
                return None
            return Series(name, list(series.points), series.last_modified)

    def count(self, name: str) -> Optional[int]:
        """Number of points in a series, or None if it is unknown."""
        with self._lock:
            series = self._series.get(name)
            return None if series is None else len(series.points)

    def append(
        self,
        name: str,
        datum: Datum,
        publish: Callable[[Snapshot], None] = None
    ) -> Snapshot:
        """
        Append a point, creating the series on first use.

        Args:
            name: Series name
            datum: Point to append
            publish: Called with the snapshot before the lock is released

        Returns:
            All points of the series as of this append
        """
        created = False
        with self._lock:
            series = self._series.get(name)
            if series is None:
                series = Series(name)
                self._series[name] = series
                created = True
            series.points.append(datum)
            series.last_modified = self._clock()
            snapshot = tuple(series.points)
            if publish is not None:
                publish(snapshot)

        if created:
            logger.info(f"Created series '{name}'")
        return snapshot

    def list(self) -> List[SeriesInfo]:
        """List all series sorted by name."""
        with self._lock:
            infos = [
                SeriesInfo(name, len(series.points), series.last_modified)
                for name, series in self._series.items()
            ]
        infos.sort(key=lambda info: info.name)
        return infos

    def load(self, recovered: Iterable[Series]):
        """Insert recovered series, replacing any with the same name."""
        with self._lock:
            for series in recovered:
                self._series[series.name] = series

    def __len__(self) -> int:
        with self._lock:
            return len(self._series)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._series
