"""Request handling for series reads and writes."""
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, List, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from sts.series import Datum, SeriesInfo, WriteJob, timestamp_to_datetime
from sts.store import SeriesStore
from sts.worker import PersistenceWorker

logger = logging.getLogger(__name__)

SERIES_NAME_PATTERN = re.compile(r'[A-Za-z0-9_\-][A-Za-z0-9_.\-]{0,199}')


class DatumPayload(BaseModel):
    """JSON body of a write: `{"timeStamp": <int>, "value": <number>}`."""
    model_config = ConfigDict(strict=True, populate_by_name=True)

    timestamp: int = Field(alias="timeStamp")
    value: float

    @field_validator('timestamp')
    @classmethod
    def validate_timestamp(cls, v):
        """Timestamp must be an int64 that maps onto a calendar date."""
        timestamp_to_datetime(v)
        return v

    @field_validator('value')
    @classmethod
    def validate_value(cls, v):
        """Value must be a finite number."""
        if not math.isfinite(v):
            raise ValueError("value must be a finite number")
        return float(v)

    def to_datum(self) -> Datum:
        return Datum(self.timestamp, self.value)


@dataclass(frozen=True)
class Found:
    name: str
    count: int

    @property
    def message(self) -> str:
        return f"Series {self.name} has {self.count} values."


@dataclass(frozen=True)
class NotFound:
    name: str


@dataclass(frozen=True)
class Accepted:
    name: str
    datum: Datum
    point_count: int

    @property
    def message(self) -> str:
        dt = timestamp_to_datetime(self.datum.timestamp)
        return (
            f"Administered value {self.datum.value}, for parameter {self.name}, "
            f"for time {dt.strftime('%Y-%m-%d %H:%M:%S %z')}"
        )


@dataclass(frozen=True)
class Rejected:
    reason: str
    retryable: bool = False


ReadResult = Union[Found, NotFound]
WriteResult = Union[Accepted, Rejected]


def validate_series_name(name: str) -> bool:
    """
    Validate that a name maps onto a single log file.

    Names must match [A-Za-z0-9_-][A-Za-z0-9_.-]* and be at most 200 chars.
    """
    return SERIES_NAME_PATTERN.fullmatch(name) is not None


def describe_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic error into one line."""
    parts = []
    for err in error.errors():
        location = ".".join(str(loc) for loc in err["loc"]) or "body"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


class IngestService:
    """Validates writes, updates the store and hands points to the worker."""

    def __init__(
        self,
        store: SeriesStore,
        worker: PersistenceWorker,
        enqueue_timeout_s: float = 1.0,
        self_metrics=None
    ):
        self.store = store
        self.worker = worker
        self.enqueue_timeout_s = enqueue_timeout_s
        self.self_metrics = self_metrics

    def handle_read(self, name: str) -> ReadResult:
        """Look up a series without side effects."""
        count = self.store.count(name)
        if count is None:
            return NotFound(name)
        return Found(name, count)

    def handle_write(self, name: str, payload: Any) -> WriteResult:
        """
        Validate and ingest one point.

        Returns as soon as the point is in memory and its job is queued.
        """
        if not validate_series_name(name):
            return self._reject("invalid_name", f"Invalid series name: {name!r}")

        try:
            datum = DatumPayload.model_validate(payload).to_datum()
        except ValidationError as e:
            return self._reject("invalid_payload", describe_validation_error(e))

        if not self.worker.reserve(self.enqueue_timeout_s):
            logger.warning(
                f"Persistence queue full ({self.worker.depth} jobs), "
                f"rejecting write to '{name}'"
            )
            return self._reject(
                "queue_full",
                "Persistence queue is full, retry later",
                retryable=True
            )

        def publish(snapshot):
            self.worker.submit(WriteJob(name, snapshot))

        try:
            snapshot = self.store.append(name, datum, publish=publish)
        except Exception:
            self.worker.release()
            raise

        if self.self_metrics:
            self.self_metrics.record_ingested(name)
            self.self_metrics.set_active_series(len(self.store))

        return Accepted(name, datum, len(snapshot))

    def list_series(self) -> List[SeriesInfo]:
        """All series sorted by name."""
        return self.store.list()

    def _reject(self, reason: str, detail: str, retryable: bool = False) -> Rejected:
        logger.debug(f"Rejected write ({reason}): {detail}")
        if self.self_metrics:
            self.self_metrics.record_rejected(reason)
        return Rejected(detail, retryable=retryable)
