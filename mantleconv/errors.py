"""Custom exceptions for the :mod:`mantleconv` package."""
from __future__ import annotations


class MantleConvError(Exception):
    """Base exception for mantle convection simulation errors."""


class ConfigurationError(MantleConvError, ValueError):
    """Invalid configuration file or parameter value."""


class InvalidDomainError(ConfigurationError):
    """Non-positive domain extents or cell counts; fatal at construction."""


class NumericalError(MantleConvError, RuntimeError):
    """Unrecoverable numerical failure, e.g. a non-finite field or time step."""


class CommunicationFault(MantleConvError, RuntimeError):
    """A halo exchange between grid partitions failed; the run is aborted."""


__all__ = [
    "MantleConvError",
    "ConfigurationError",
    "InvalidDomainError",
    "NumericalError",
    "CommunicationFault",
]
