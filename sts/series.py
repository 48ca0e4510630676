"""Data structures for time series points."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

INT64_MIN = -2 ** 63
INT64_MAX = 2 ** 63 - 1


def timestamp_to_datetime(timestamp: int) -> datetime:
    """
    Convert unix seconds to an aware UTC datetime.

    Raises:
        ValueError: If the timestamp is outside the int64 or calendar range
    """
    if not INT64_MIN <= timestamp <= INT64_MAX:
        raise ValueError(f"timestamp {timestamp} outside int64 range")
    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise ValueError(f"timestamp {timestamp} is not a representable date")


@dataclass(frozen=True)
class Datum:
    """A single timestamped measurement."""
    timestamp: int
    value: float

    def to_record(self) -> str:
        """Format as one durable log line (without newline)."""
        return f"{self.timestamp},{self.value!r}"


@dataclass
class Series:
    """A named series with its points in arrival order."""
    name: str
    points: List[Datum] = field(default_factory=list)
    last_modified: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class SeriesInfo:
    """Listing row for one series."""
    name: str
    count: int
    last_modified: datetime


@dataclass(frozen=True)
class WriteJob:
    """Snapshot of a series handed to the persistence worker."""
    series_name: str
    points_snapshot: Tuple[Datum, ...]

    @property
    def latest(self) -> Datum:
        return self.points_snapshot[-1]
