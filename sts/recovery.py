"""Startup recovery of the series store from durable logs."""
import logging
from pathlib import Path
from typing import List

from sts.durable_log import LOG_SUFFIX, read_log, truncate_torn_tail
from sts.series import Series, timestamp_to_datetime
from sts.store import SeriesStore

logger = logging.getLogger(__name__)


class RecoveryError(Exception):
    """A durable log could not be read during startup."""


def ensure_dir(directory: Path):
    """Create a directory and its parents if absent."""
    Path(directory).mkdir(parents=True, exist_ok=True)


def read_series(data_dir: Path) -> List[Series]:
    """
    Read every durable log in a directory.

    A torn final record is cut off the file so later appends start on a
    fresh line. Malformed records are skipped (see `read_log`); a log
    without any valid record yields no series since series are never empty.
    `last_modified` is the largest timestamp in the log, not the time of
    the scan.

    Raises:
        RecoveryError: If a log file cannot be read
    """
    result: List[Series] = []
    for file_path in sorted(Path(data_dir).glob(f"*{LOG_SUFFIX}")):
        if not file_path.is_file():
            continue

        logger.info(f"Reading data from {file_path}")
        try:
            truncate_torn_tail(file_path)
            contents = read_log(file_path)
        except OSError as e:
            raise RecoveryError(f"Cannot read durable log {file_path}: {e}") from e

        if not contents.points:
            logger.warning(f"No valid records in {file_path}, series not restored")
            continue

        last_modified = timestamp_to_datetime(contents.max_timestamp)
        result.append(Series(file_path.stem, contents.points, last_modified))

        logger.info(
            f"Finished reading {len(contents.points)} values from {file_path}"
            + (f" ({contents.skipped} malformed records skipped)" if contents.skipped else "")
        )
    return result


def recover(store: SeriesStore, data_dir: Path, image_dir: Path = None) -> int:
    """
    Rebuild the store from the durable logs in `data_dir`.

    Must run before the API accepts requests. Returns the number of series
    restored.
    """
    ensure_dir(data_dir)
    if image_dir is not None:
        ensure_dir(image_dir)

    recovered = read_series(data_dir)
    store.load(recovered)
    logger.info(
        f"Recovered {len(recovered)} series with "
        f"{sum(len(s) for s in recovered)} values from {data_dir}"
    )
    return len(recovered)
