"""Console progress bar for the driver loop."""

from __future__ import annotations

import math
import sys
import time
from dataclasses import dataclass
from typing import Optional

from ..constants import SECONDS_PER_YEAR

ETA_EWMA_ALPHA = 0.1
ETA_MIN_SAMPLES = 3


@dataclass
class _IterationPace:
    """Exponentially smoothed wall time per driver iteration."""

    alpha: float = ETA_EWMA_ALPHA
    seconds: Optional[float] = None
    samples: int = 0
    _wall: Optional[float] = None
    _step: Optional[int] = None

    def observe(self, step_no: int, wall: float) -> None:
        if self._wall is not None and step_no > self._step:
            per_step = (wall - self._wall) / (step_no - self._step)
            if per_step > 0.0 and math.isfinite(per_step):
                prev = per_step if self.seconds is None else self.seconds
                self.seconds = self.alpha * per_step + (1.0 - self.alpha) * prev
                self.samples += 1
        self._wall = wall
        self._step = step_no

    def eta(self, remaining: int) -> float:
        if self.seconds is None or self.samples < ETA_MIN_SAMPLES:
            return math.nan
        return self.seconds * remaining


class ProgressReporter:
    """Single-line ``[####----]`` bar with model time, ETA and solver error."""

    def __init__(self, total_steps: int, *, enabled: bool = False, bar_width: int = 28) -> None:
        self.total_steps = max(int(total_steps), 1)
        self.enabled = bool(enabled) and total_steps > 0
        self.bar_width = int(bar_width)
        self.start = time.monotonic()
        self._pace = _IterationPace()
        self._done = False
        self._tty = sys.stdout.isatty()

    def update(self, step_no: int, sim_time_s: float, *, err: float | None = None) -> None:
        """Render the bar after iteration ``step_no`` (zero based)."""

        if not self.enabled or self._done:
            return
        self._pace.observe(step_no, time.monotonic())
        completed = min(step_no + 1, self.total_steps)
        frac = completed / self.total_steps
        filled = int(self.bar_width * frac)
        myr = sim_time_s / SECONDS_PER_YEAR / 1.0e6 if math.isfinite(sim_time_s) else math.nan
        parts = [
            f"[{'#' * filled}{'-' * (self.bar_width - filled)}]",
            f"{frac * 100:5.1f}%",
            f"it {completed}/{self.total_steps}",
            f"t={myr:.3g} Myr",
            _format_eta(self._pace.eta(self.total_steps - completed)),
        ]
        if err is not None and math.isfinite(err):
            parts.append(f"err={err:.3e}")
        self._done = completed >= self.total_steps
        self._emit(" ".join(parts))

    def _emit(self, line: str) -> None:
        if self._tty:
            sys.stdout.write(f"\r\033[2K{line}" + ("\n" if self._done else ""))
        else:
            sys.stdout.write(line + "\n")
        sys.stdout.flush()


def _format_eta(seconds: float) -> str:
    if not math.isfinite(seconds) or seconds < 0.0:
        return "ETA ?"
    for unit, scale in (("h", 3600.0), ("m", 60.0)):
        if seconds >= scale:
            return f"ETA {seconds / scale:.1f}{unit}"
    return f"ETA {seconds:.0f}s"


__all__ = ["ProgressReporter"]
