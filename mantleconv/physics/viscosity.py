"""Arrhenius creep law with depth-banded correction factors.

The effective viscosity

.. math::

    \\eta = \\mathrm{clamp}\\Big(\\eta_0 \\exp\\Big(\\frac{E_a + P V_a}{R T}
            - \\frac{E_a}{R T_0}\\Big) f(z), \\eta_{min}, \\eta_{max}\\Big)

depends on pressure, temperature and depth ``z``.  ``f`` is 1 in the upper
mantle, 10 in the lower mantle and 0.1 in the lowermost layer.  Extreme
exponentials overflow to ``inf`` or underflow to 0 and then land on the clamp
bounds; no error is raised.

:class:`CustomRheology` bundles the three consistent operations (viscosity,
strain rate from stress, stress from strain rate) into a strategy object that
is resolved once at setup.
"""
from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Callable, Tuple

import numpy as np

from .. import constants
from ..errors import ConfigurationError

__all__ = [
    "ArrheniusParams",
    "CustomRheology",
    "depth_correction",
    "viscosity",
    "strain_rate",
    "stress",
]

ArrayLike = float | np.ndarray


@dataclass(frozen=True)
class ArrheniusParams:
    """Parameters of the custom creep law.

    Attributes
    ----------
    eta0:
        Reference viscosity [Pa s].
    Ea:
        Activation energy [J mol⁻¹].
    Va:
        Activation volume [m³ mol⁻¹].
    T0:
        Reference temperature [K].
    R:
        Gas constant [J mol⁻¹ K⁻¹].
    cutoff:
        Clamp bounds ``(eta_min, eta_max)`` [Pa s].
    """

    eta0: float = 5.0e20
    Ea: float = 200.0e3
    Va: float = 2.6e-6
    T0: float = 1.6e3
    R: float = constants.R_GAS
    cutoff: Tuple[float, float] = (1.0e16, 1.0e25)

    def __post_init__(self) -> None:
        lo, hi = self.cutoff
        if not (0.0 < lo <= hi):
            raise ConfigurationError(f"viscosity cutoff must satisfy 0 < min <= max, got {self.cutoff}")
        if self.eta0 <= 0.0 or self.T0 <= 0.0 or self.R <= 0.0:
            raise ConfigurationError("eta0, T0 and R must be positive")


def depth_correction(depth: ArrayLike) -> ArrayLike:
    """Return the piecewise-constant viscosity factor at ``depth`` [m].

    Bands are checked shallow to deep; a depth exactly on a boundary belongs
    to the shallower band.
    """

    depth_arr = np.asarray(depth, dtype=float)
    factor = np.where(
        depth_arr <= constants.UPPER_MANTLE_DEPTH,
        constants.UPPER_MANTLE_FACTOR,
        np.where(
            depth_arr <= constants.LOWER_MANTLE_DEPTH,
            constants.LOWER_MANTLE_FACTOR,
            constants.LOWERMOST_MANTLE_FACTOR,
        ),
    )
    if np.ndim(depth) == 0:
        return float(factor)
    return factor


def viscosity(params: ArrheniusParams, P: ArrayLike = 0.0, T: ArrayLike = 273.0, depth: ArrayLike = 0.0) -> ArrayLike:
    """Clamped Arrhenius viscosity at pressure ``P``, temperature ``T`` and ``depth``."""

    P_arr = np.asarray(P, dtype=float)
    T_arr = np.asarray(T, dtype=float)
    with np.errstate(over="ignore", under="ignore"):
        eta = params.eta0 * np.exp(
            (params.Ea + P_arr * params.Va) / (params.R * T_arr) - params.Ea / (params.R * params.T0)
        )
        eta = eta * depth_correction(depth)
    eta = np.clip(eta, params.cutoff[0], params.cutoff[1])
    if eta.ndim == 0:
        return float(eta)
    return eta


def strain_rate(params: ArrheniusParams, tau_II: ArrayLike, P: ArrayLike = 0.0, T: ArrayLike = 273.0, depth: ArrayLike = 0.0) -> ArrayLike:
    """Second invariant of the strain rate produced by stress ``tau_II``."""

    return np.asarray(tau_II, dtype=float) / viscosity(params, P, T, depth) * 0.5


def stress(params: ArrheniusParams, eps_II: ArrayLike, P: ArrayLike = 0.0, T: ArrayLike = 273.0, depth: ArrayLike = 0.0) -> ArrayLike:
    """Second invariant of the deviatoric stress for strain rate ``eps_II``."""

    return 2.0 * viscosity(params, P, T, depth) * np.asarray(eps_II, dtype=float)


@dataclass(frozen=True)
class CustomRheology:
    """Creep law strategy exposing ``viscosity``, ``strain_rate`` and ``stress``.

    The callables share the bound parameter set so that
    ``stress(strain_rate(τ)) == τ`` wherever the viscosity is not clamped.
    """

    params: ArrheniusParams
    viscosity: Callable[..., ArrayLike]
    strain_rate: Callable[..., ArrayLike]
    stress: Callable[..., ArrayLike]

    @classmethod
    def arrhenius(cls, params: ArrheniusParams | None = None) -> "CustomRheology":
        bound = params if params is not None else ArrheniusParams()
        return cls(
            params=bound,
            viscosity=functools.partial(viscosity, bound),
            strain_rate=functools.partial(strain_rate, bound),
            stress=functools.partial(stress, bound),
        )
