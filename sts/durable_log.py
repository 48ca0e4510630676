"""Append-only per-series CSV logs."""
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from sts.series import Datum, timestamp_to_datetime

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".csv"


def log_path(data_dir: Path, series_name: str) -> Path:
    """Path of the durable log for a series."""
    return Path(data_dir) / f"{series_name}{LOG_SUFFIX}"


def append_record(path: Path, datum: Datum):
    """
    Append one record and force it to stable storage.

    The line is built in full before a single write. A short write is rolled
    back so the next record always starts on a fresh line; a torn tail left
    by a crash is cut off by `truncate_torn_tail` before appending resumes.

    Raises:
        OSError: If the file cannot be opened, written or synced
    """
    line = f"{datum.to_record()}\n".encode("ascii")
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
    try:
        size = os.fstat(fd).st_size
        written = os.write(fd, line)
        if written != len(line):
            os.ftruncate(fd, size)
            raise OSError(f"Short write to {path}: {written} of {len(line)} bytes")
        os.fsync(fd)
    finally:
        os.close(fd)


def truncate_torn_tail(path: Path, chunk_size: int = 4096) -> int:
    """
    Cut an unterminated final record off a log.

    Appends use O_APPEND, so a new record written after a torn one would
    join it on the same line and both would be lost. Returns the number of
    bytes removed.

    Raises:
        OSError: If the file cannot be read, truncated or synced
    """
    with open(path, "rb+") as f:
        size = f.seek(0, os.SEEK_END)
        keep = 0
        pos = size
        while pos > 0:
            start = max(0, pos - chunk_size)
            f.seek(start)
            newline = f.read(pos - start).rfind(b"\n")
            if newline != -1:
                keep = start + newline + 1
                break
            pos = start

        if keep == size:
            return 0
        f.truncate(keep)
        f.flush()
        os.fsync(f.fileno())

    logger.warning(f"Truncated torn final record of {path} ({size - keep} bytes)")
    return size - keep


def parse_record(line: str) -> Datum:
    """
    Parse one `<timestamp>,<value>` record.

    Raises:
        ValueError: If the record is malformed
    """
    fields = line.strip().split(",")
    if len(fields) != 2:
        raise ValueError(f"expected 2 fields, got {len(fields)}")
    timestamp = int(fields[0])
    timestamp_to_datetime(timestamp)
    value = float(fields[1])
    if not math.isfinite(value):
        raise ValueError(f"non-finite value {fields[1]!r}")
    return Datum(timestamp, value)


@dataclass
class LogContents:
    """Records read back from one durable log."""
    points: List[Datum] = field(default_factory=list)
    skipped: int = 0

    @property
    def max_timestamp(self) -> Optional[int]:
        if not self.points:
            return None
        return max(p.timestamp for p in self.points)


def read_log(path: Path) -> LogContents:
    """
    Read every record of a log in file order.

    Malformed records, including a final line without its newline, are
    skipped with a warning. Blank lines are ignored.

    Raises:
        OSError: If the file cannot be read
    """
    contents = LogContents()
    with open(path, "r", encoding="ascii", errors="replace", newline="") as f:
        for line_no, line in enumerate(f, start=1):
            if not line.strip():
                continue
            if not line.endswith("\n"):
                contents.skipped += 1
                logger.warning(f"Skipping unterminated final record {path}:{line_no}")
                continue
            try:
                contents.points.append(parse_record(line))
            except ValueError as e:
                contents.skipped += 1
                logger.warning(f"Skipping malformed record {path}:{line_no}: {e}")
    return contents
