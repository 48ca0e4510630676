"""Plot rendering through an external gnuplot process."""
import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sts.config import RenderConfig

logger = logging.getLogger(__name__)

GNUPLOT_COMMANDS = """set timefmt "%s";
set format x "%Y/%m/%d %H:%M:%S";
set xdata time;
set xtics rotate;
set terminal svg;
set xlabel 'Time';
set key off;
set datafile separator ",";
set autoscale;
set offsets 0.0, 0.0, 0.01, 0.01;
set grid;
set output"""


@dataclass
class RenderResult:
    """Outcome of one render attempt."""
    series_name: str
    success: bool
    image_path: Optional[Path] = None
    returncode: Optional[int] = None
    stderr: str = ""
    skipped: bool = False
    error: Optional[str] = None


def image_path(image_dir: Path, series_name: str) -> Path:
    """Path of the rendered plot for a series."""
    return Path(image_dir) / f"{series_name}.svg"


def build_script(series_name: str, log_file: Path, output: Path) -> str:
    """Build the gnuplot script plotting a durable log."""
    return (
        f"{GNUPLOT_COMMANDS} '{output}';\n"
        f"set title '{series_name} over time';\n"
        f"set ylabel '{series_name}';\n"
        f"plot '{log_file}' using 1:2 with lines notitle;"
    )


class Renderer:
    """Runs gnuplot against a series log to produce an SVG image."""

    def __init__(self, config: RenderConfig, image_dir: Path, self_metrics=None):
        self.config = config
        self.image_dir = Path(image_dir)
        self.self_metrics = self_metrics

    def render(self, series_name: str, log_file: Path) -> RenderResult:
        """
        Render the plot for a series.

        Never raises; every failure is logged and reported in the result.
        """
        if not self.config.enabled:
            return RenderResult(series_name, success=True, skipped=True)

        output = image_path(self.image_dir, series_name)
        script = build_script(series_name, log_file, output)
        start = time.time()

        try:
            completed = subprocess.run(
                [self.config.executable, "-e", script],
                capture_output=True,
                text=True,
                timeout=self.config.timeout_s
            )
        except FileNotFoundError:
            return self._failed(series_name, f"executable '{self.config.executable}' not found")
        except subprocess.TimeoutExpired:
            return self._failed(series_name, f"timed out after {self.config.timeout_s}s")
        except OSError as e:
            return self._failed(series_name, str(e))
        finally:
            if self.self_metrics:
                self.self_metrics.record_render_duration(time.time() - start)

        result = RenderResult(
            series_name,
            success=completed.returncode == 0,
            image_path=output,
            returncode=completed.returncode,
            stderr=completed.stderr or ""
        )
        self._log_command_output(result, completed.stdout)

        if not result.success and self.self_metrics:
            self.self_metrics.record_render_failure(series_name)
        return result

    def _failed(self, series_name: str, reason: str) -> RenderResult:
        logger.warning(f"Render of series '{series_name}' failed: {reason}")
        if self.self_metrics:
            self.self_metrics.record_render_failure(series_name)
        return RenderResult(series_name, success=False, error=reason)

    def _log_command_output(self, result: RenderResult, stdout: str):
        if not result.success:
            logger.warning(
                f"Gnuplot command for '{result.series_name}' failed with status code: "
                f"{result.returncode}"
            )
        if stdout:
            logger.info(f"Gnuplot command output: {stdout}")
        if result.stderr:
            logger.warning(f"Gnuplot command stderr:\n{result.stderr}")
