"""Small numeric and logging helpers shared by the solvers and the driver."""
from __future__ import annotations

import logging
import math
from typing import Mapping, Optional

import numpy as np


def rms(values: np.ndarray) -> float:
    """Root-mean-square of ``values``; an empty array gives 0."""

    arr = np.asarray(values, dtype=float)
    return float(np.sqrt(np.mean(np.square(arr)))) if arr.size else 0.0


def relative(numerator: float, denominator: float) -> float:
    """Return ``numerator / denominator`` with 0/0 mapped to 0 and x/0 to inf."""

    if denominator > 0.0:
        return numerator / denominator
    return 0.0 if numerator == 0.0 else math.inf


def format_exception_short(exc: BaseException) -> str:
    """``"ErrorType: message"`` for one-line log records."""

    return f"{type(exc).__name__}: {exc}"


def log_stage(log: logging.Logger, stage: str, *, extra: Optional[Mapping[str, object]] = None) -> None:
    """Log a driver stage transition at INFO, with optional ``key=value`` context."""

    if extra:
        context = " ".join(f"{key}={value}" for key, value in extra.items())
        log.info("stage=%s %s", stage, context)
    else:
        log.info("stage=%s", stage)


__all__ = [
    "rms",
    "relative",
    "format_exception_short",
    "log_stage",
]
