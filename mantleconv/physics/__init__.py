"""Physics modules for rheology, heat diffusion, Stokes flow and advection."""
from . import (
    viscosity,
    rheology,
    initfields,
    thermal,
    stokes,
    weno,
)

__all__ = [
    "viscosity",
    "rheology",
    "initfields",
    "thermal",
    "stokes",
    "weno",
]
