"""Thermal field state and the pseudo-transient heat diffusion solver (T1).

The solver integrates one implicit (backward Euler) step of

.. math::

    \\frac{\\partial T}{\\partial t} = \\nabla \\cdot (\\kappa \\nabla T)

with the accelerated pseudo-transient method: the diffusive flux relaxes
towards ``-κ∇T`` with damping ``θ`` while the temperature is advanced in
pseudo time until the residual of the implicit step vanishes.
[@Rass2022_GMD15_5757]
"""
from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np

from ..errors import ConfigurationError, NumericalError
from ..runtime.topology import GridTopology, halo_exchange
from ..warnings import ConvergenceWarning
from . import _numba_kernels as kernels
from .initfields import GHOST_OFFSET
from .rheology import CouplingArgs, MaterialParams

__all__ = [
    "ThermalBoundaryConditions",
    "ThermalArrays",
    "PTThermalCoeffs",
    "ThermalDiagnostics",
    "temperature2center",
    "thermal_bcs",
    "heatdiffusion_pt",
]

logger = logging.getLogger(__name__)

_SIDES = ("left", "right", "top", "bot")


def _side_flags(flags: Dict[str, bool], label: str) -> Dict[str, bool]:
    unknown = set(flags) - set(_SIDES)
    if unknown:
        raise ConfigurationError(f"{label}: unknown sides {sorted(unknown)}")
    return {side: bool(flags.get(side, False)) for side in _SIDES}


@dataclass(frozen=True)
class ThermalBoundaryConditions:
    """Per-side no-flux flags; sides without no-flux keep fixed temperatures."""

    no_flux: Dict[str, bool] = field(
        default_factory=lambda: {"left": True, "right": True, "top": False, "bot": False}
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "no_flux", _side_flags(self.no_flux, "no_flux"))


@dataclass
class ThermalArrays:
    """Temperature fields owned by the driver.

    ``T`` holds the vertex temperature plus one ghost row on each side of the
    first axis, shape ``(nx+3, ny+1)``.  ``Tc`` is the cell-centre projection
    and must be refreshed with :func:`temperature2center` after any change
    of ``T``.
    """

    T: np.ndarray
    T0: np.ndarray
    Tc: np.ndarray
    qTx: np.ndarray
    qTy: np.ndarray
    R: np.ndarray

    @classmethod
    def allocate(cls, ni: Tuple[int, int]) -> "ThermalArrays":
        nx, ny = ni
        return cls(
            T=np.zeros((nx + 3, ny + 1)),
            T0=np.zeros((nx + 3, ny + 1)),
            Tc=np.zeros((nx, ny)),
            qTx=np.zeros((nx + 2, ny + 1)),
            qTy=np.zeros((nx + 1, ny)),
            R=np.zeros((nx + 1, ny + 1)),
        )

    @property
    def nodes(self) -> np.ndarray:
        """View of the vertex temperatures, shape ``(nx+1, ny+1)``."""

        return self.T[GHOST_OFFSET:-GHOST_OFFSET, :]


def temperature2center(thermal: ThermalArrays) -> None:
    kernels.temperature2center_numba(thermal.Tc, thermal.T, GHOST_OFFSET)


def thermal_bcs(thermal: ThermalArrays, bc: ThermalBoundaryConditions) -> None:
    """Impose zero normal gradient on the no-flux sides."""

    T = thermal.T
    if bc.no_flux["left"]:
        T[0, :] = T[1, :]
    if bc.no_flux["right"]:
        T[-1, :] = T[-2, :]
    if bc.no_flux["bot"]:
        T[:, 0] = T[:, 1]
    if bc.no_flux["top"]:
        T[:, -1] = T[:, -2]


@dataclass(frozen=True)
class PTThermalCoeffs:
    """Pseudo-transient iteration parameters for heat diffusion.

    ``theta`` damps the flux update and ``beta`` is the inverse pseudo time
    step of the temperature update.  Both depend on the physical time step.
    """

    kappa: float
    dt: float
    di: Tuple[float, float]
    li: Tuple[float, float]
    CFL: float
    eps: float
    Re: float
    theta: float
    beta: float

    @classmethod
    def from_rheology(
        cls,
        rheology: MaterialParams,
        dt: float,
        di: Tuple[float, float],
        li: Tuple[float, float],
        *,
        eps: float = 1.0e-5,
        CFL: float = 1.0 / math.sqrt(2.1),
    ) -> "PTThermalCoeffs":
        return cls._build(rheology.thermal_diffusivity, dt, di, li, CFL, eps)

    @classmethod
    def _build(cls, kappa, dt, di, li, CFL, eps) -> "PTThermalCoeffs":
        if not (dt > 0.0 and math.isfinite(dt)):
            raise NumericalError(f"thermal time step must be positive and finite, got {dt!r}")
        lmax = max(li)
        dmin = min(di)
        Re = math.pi + math.sqrt(math.pi**2 + lmax**2 / (kappa * dt))
        theta = lmax / (Re * CFL * dmin)
        beta = Re * kappa / (CFL * dmin * lmax)
        return cls(kappa=kappa, dt=dt, di=tuple(di), li=tuple(li), CFL=CFL, eps=eps, Re=Re, theta=theta, beta=beta)

    def with_time_step(self, dt: float) -> "PTThermalCoeffs":
        """Return coefficients rebuilt for a new physical time step."""

        if dt == self.dt:
            return self
        return self._build(self.kappa, dt, self.di, self.li, self.CFL, self.eps)


@dataclass
class ThermalDiagnostics:
    err_evo: List[float] = field(default_factory=list)
    iter_evo: List[int] = field(default_factory=list)
    iterations: int = 0
    converged: bool = False

    @property
    def err(self) -> float:
        return self.err_evo[-1] if self.err_evo else math.nan


def _update_range(bc: ThermalBoundaryConditions, ni: Tuple[int, int]) -> Tuple[int, int, int, int]:
    # Bottom and top node rows are either fixed or copies of their neighbours.
    nx, ny = ni
    i0 = 0 if bc.no_flux["left"] else 1
    i1 = nx + 1 if bc.no_flux["right"] else nx
    return i0, i1, 1, ny


def heatdiffusion_pt(
    thermal: ThermalArrays,
    pt: PTThermalCoeffs,
    bc: ThermalBoundaryConditions,
    rheology: MaterialParams,
    args: CouplingArgs,
    dt: float,
    di: Tuple[float, float],
    *,
    topology: GridTopology,
    iter_max: int = 10_000,
    nout: int = 100,
    verbose: bool = False,
) -> ThermalDiagnostics:
    """Advance ``thermal.T`` by one implicit diffusion step of length ``dt``.

    The relative error ``max|R| dt / max|T|`` is checked every ``nout``
    iterations and after the last one.  Running out of iterations emits a
    :class:`~mantleconv.warnings.ConvergenceWarning` and keeps the last
    iterate.  ``args`` carries the fields a temperature-dependent
    conductivity would be evaluated on; constant conductivity ignores it.
    """

    pt = pt.with_time_step(dt)
    nx = thermal.Tc.shape[0]
    ny = thermal.Tc.shape[1]
    _dx, _dy = 1.0 / di[0], 1.0 / di[1]
    _dt = 1.0 / dt
    i0, i1, j0, j1 = _update_range(bc, (nx, ny))
    kappa = rheology.thermal_diffusivity

    thermal_bcs(thermal, bc)
    thermal.T0[...] = thermal.T
    thermal.qTx.fill(0.0)
    thermal.qTy.fill(0.0)
    thermal.R.fill(0.0)

    diag = ThermalDiagnostics()
    log = logger.info if verbose else logger.debug
    it = 0
    err = math.inf
    while it < iter_max:
        it += 1
        kernels.thermal_flux_numba(thermal.qTx, thermal.qTy, thermal.T, kappa, pt.theta, _dx, _dy)
        kernels.thermal_update_numba(
            thermal.T, thermal.T0, thermal.R, thermal.qTx, thermal.qTy, _dt, pt.beta, _dx, _dy, i0, i1, j0, j1
        )
        thermal_bcs(thermal, bc)
        if it % nout == 0 or it == iter_max:
            halo_exchange(topology, thermal.T)
            T_scale = float(np.max(np.abs(thermal.T)))
            err = float(np.max(np.abs(thermal.R))) * dt / T_scale if T_scale > 0.0 else 0.0
            diag.err_evo.append(err)
            diag.iter_evo.append(it)
            log("heatdiffusion_pt: iter=%d err=%.3e", it, err)
            if not math.isfinite(err):
                raise NumericalError(f"thermal solver diverged at iteration {it}")
            if err < pt.eps:
                diag.converged = True
                break
    diag.iterations = it
    if not diag.converged:
        warnings.warn(
            f"heat diffusion did not converge in {iter_max} iterations (err={err:.3e}, eps={pt.eps:.1e})",
            ConvergenceWarning,
            stacklevel=2,
        )
    temperature2center(thermal)
    return diag
