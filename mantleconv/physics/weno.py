"""Fifth-order WENO advection of node fields.

``weno_advection`` integrates ``∂u/∂t + V·∇u = 0`` over one time step with
the three-stage strong-stability-preserving Runge-Kutta scheme.  Spatial
derivatives use the Jiang-Shu/Jiang-Peng WENO5 reconstruction, upwinded on
the sign of the local velocity.  [@JiangPeng2000_SISC21_2126]
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from . import _numba_kernels as kernels

__all__ = ["WENO5", "weno_advection"]

logger = logging.getLogger(__name__)


@dataclass
class WENO5:
    """Workspace for advecting a field of shape ``ni``.

    ``ni`` is the node shape ``(nx+1, ny+1)`` of the advected field.  The
    stage buffers are reused across calls.
    """

    ni: Tuple[int, int]
    method: str = "JS"
    eps: float = 1.0e-6
    rhs: np.ndarray = field(init=False, repr=False)
    ut: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.method != "JS":
            raise ValueError(f"unsupported WENO method {self.method!r}")
        self.ni = tuple(int(n) for n in self.ni)
        self.rhs = np.zeros(self.ni)
        self.ut = np.zeros(self.ni)


def weno_advection(
    u: np.ndarray,
    V: Tuple[np.ndarray, np.ndarray],
    weno: WENO5,
    di: Tuple[float, float],
    dt: float,
) -> np.ndarray:
    """Advect ``u`` in place by the vertex velocity ``V = (Vx_v, Vy_v)``.

    ``u`` may be a view (e.g. the vertex rows of the temperature); only its
    elements are written.
    """

    if u.shape != weno.ni:
        raise ValueError(f"field shape {u.shape} does not match WENO workspace {weno.ni}")
    vx, vy = V
    if vx.shape != u.shape or vy.shape != u.shape:
        raise ValueError("velocity must be given at the nodes of the advected field")
    _dx, _dy = 1.0 / di[0], 1.0 / di[1]
    rhs, ut = weno.rhs, weno.ut

    # stage 1
    kernels.weno5_rhs_numba(rhs, u, vx, vy, _dx, _dy)
    ut[...] = u + dt * rhs
    # stage 2
    kernels.weno5_rhs_numba(rhs, ut, vx, vy, _dx, _dy)
    ut[...] = 0.75 * u + 0.25 * (ut + dt * rhs)
    # stage 3
    kernels.weno5_rhs_numba(rhs, ut, vx, vy, _dx, _dy)
    u[...] = u / 3.0 + 2.0 / 3.0 * (ut + dt * rhs)
    return u
