"""Initial temperature and pressure fields.

The node temperature ``T`` has shape ``(nx+3, ny+1)``: vertex ``i`` of the
grid lives at ``T[i + GHOST_OFFSET]`` and the first and last rows along the
first axis are ghosts.  Generators that work on vertex coordinates therefore
write one row further along the first axis and never touch the
``BORDER_ROWS`` outermost rows.
"""
from __future__ import annotations

import logging
from typing import Sequence, Tuple

import numpy as np
from scipy.special import erf

from .. import constants
from . import _numba_kernels as kernels

__all__ = [
    "GHOST_OFFSET",
    "BORDER_ROWS",
    "half_space_temperature",
    "init_T",
    "apply_circular",
    "apply_random",
    "pin_boundaries",
    "init_P",
]

logger = logging.getLogger(__name__)

# Row of T holding vertex 0 along the first axis.
GHOST_OFFSET: int = 1
# Rows of T along the first axis that are not grid vertices.
BORDER_ROWS: int = 2


def half_space_temperature(
    z: np.ndarray,
    kappa: float,
    Tm: float,
    Tp: float,
    Tmin: float,
    age: float = constants.HALF_SPACE_AGE,
) -> np.ndarray:
    """Half-space cooling profile capped by a linear adiabat.

    Parameters
    ----------
    z:
        Vertical node coordinates [m]; only ``|z|`` is used.
    kappa:
        Thermal diffusivity [m² s⁻¹].
    Tm:
        Adiabat temperature at the core-mantle boundary [K].
    Tp:
        Potential (surface adiabat) temperature [K].
    Tmin:
        Surface temperature [K].
    age:
        Plate age of the cooling solution [s], 100 Myr by default.
    """

    depth = np.abs(np.asarray(z, dtype=float))
    adiabat = Tp + (Tm - Tp) / constants.MANTLE_DEPTH * depth
    half_space = Tmin + (Tm - Tmin) * erf(depth * 0.5 / np.sqrt(kappa * age))
    return np.minimum(adiabat, half_space)


def init_T(T: np.ndarray, z: np.ndarray, kappa: float, Tm: float, Tp: float, Tmin: float) -> np.ndarray:
    """Fill every row of ``T`` with the half-space cooling profile."""

    profile = half_space_temperature(z, kappa, Tm, Tp, Tmin)
    if profile.shape[0] != T.shape[1]:
        raise ValueError(f"profile length {profile.shape[0]} does not match T columns {T.shape[1]}")
    T[...] = profile[None, :]
    return T


def apply_circular(
    T: np.ndarray,
    dT: float,
    xc: float,
    yc: float,
    r: float,
    xvi: Tuple[np.ndarray, np.ndarray],
) -> np.ndarray:
    """Raise ``T`` by ``dT`` percent at the vertices within ``r`` of ``(xc, yc)``.

    Vertex ``i`` scales ``T[i + GHOST_OFFSET, j]``; the loop runs over the
    first ``T.shape[0] - BORDER_ROWS`` vertices, so the ghost rows are never
    modified.
    """

    x, y = xvi
    n_rows = T.shape[0] - BORDER_ROWS
    if x.shape[0] < n_rows or y.shape[0] < T.shape[1]:
        raise ValueError("vertex coordinates do not cover the temperature field")
    kernels.circular_perturbation_numba(
        T, dT / 100.0 + 1.0, float(xc), float(yc), float(r) ** 2,
        np.ascontiguousarray(x), np.ascontiguousarray(y), GHOST_OFFSET, n_rows,
    )
    return T


def apply_random(
    T: np.ndarray,
    dT: float,
    xbox: Sequence[float],
    ybox: Sequence[float],
    xvi: Tuple[np.ndarray, np.ndarray],
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Random perturbation of up to ``±dT/2`` percent inside a box.

    A vertex is selected when ``xbox[0] <= x <= xbox[1]`` and
    ``|ybox[0]| <= |y| <= |ybox[1]|``.  Each selected vertex draws its own
    factor from ``rng``; pass a seeded generator for reproducible fields.
    """

    rng = np.random.default_rng() if rng is None else rng
    x, y = xvi
    n_rows = T.shape[0] - BORDER_ROWS
    x = np.asarray(x)[:n_rows]
    y = np.asarray(y)[: T.shape[1]]
    in_x = (xbox[0] <= x) & (x <= xbox[1])
    in_y = (abs(ybox[0]) <= np.abs(y)) & (np.abs(y) <= abs(ybox[1]))
    mask = in_x[:, None] & in_y[None, :]
    dTi = rng.uniform(-0.5 * dT, 0.5 * dT, size=mask.shape)
    nodes = T[GHOST_OFFSET : GHOST_OFFSET + n_rows, :]
    nodes[mask] *= dTi[mask] / 100.0 + 1.0
    logger.debug("apply_random: perturbed %d of %d nodes", int(mask.sum()), mask.size)
    return T


def pin_boundaries(T: np.ndarray, Tmax: float, Tmin: float) -> np.ndarray:
    """Force the bottom row (``T[:, 0]``) to ``Tmax`` and the top row to ``Tmin``."""

    T[:, 0] = Tmax
    T[:, -1] = Tmin
    return T


def init_P(P: np.ndarray, rho_g: np.ndarray, z: np.ndarray) -> np.ndarray:
    """Lithostatic pressure ``P = ρg |z|`` at cell centres."""

    P[...] = rho_g * np.abs(np.asarray(z, dtype=float))[None, :]
    return P
