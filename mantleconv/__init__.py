"""Core package for 2-D mantle thermal convection simulations."""
from . import constants, grid
from .errors import MantleConvError

__all__ = ["constants", "grid", "MantleConvError"]
