"""Structured warning classes for the :mod:`mantleconv` package."""
from __future__ import annotations


class MantleConvWarning(UserWarning):
    """Base warning class for mantleconv."""


class NumericalWarning(MantleConvWarning):
    """Numerical stability or accuracy warnings."""


class ConvergenceWarning(NumericalWarning):
    """A pseudo-transient solver exhausted its iteration budget above tolerance."""


__all__ = [
    "MantleConvWarning",
    "NumericalWarning",
    "ConvergenceWarning",
]
