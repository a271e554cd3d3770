"""Stokes field state and the pseudo-transient momentum solver (S1).

The quasi-static momentum balance

.. math::

    \\nabla \\cdot \\tau - \\nabla P = \\rho g\\,\\hat{y}, \\qquad
    \\nabla \\cdot V = -\\frac{1}{K \\Delta t}(P - P_{old})

is relaxed on the staggered grid with the accelerated pseudo-transient method
(numerical Reynolds number ``Re``, pressure-to-shear ratio ``r``).  Velocities
live on cell faces, pressure and normal stresses at cell centres, shear
stress at vertices.  [@Rass2022_GMD15_5757]
"""
from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np

from ..errors import NumericalError
from ..runtime.helpers import relative, rms
from ..runtime.topology import GridTopology, allreduce_max, halo_exchange
from ..warnings import ConvergenceWarning
from . import _numba_kernels as kernels
from .rheology import CouplingArgs, MaterialParams
from .thermal import _side_flags

__all__ = [
    "VelocityBoundaryConditions",
    "StokesArrays",
    "PTStokesCoeffs",
    "StokesDiagnostics",
    "flow_bcs",
    "velocity2vertex",
    "momentum_solve",
    "compute_dt",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VelocityBoundaryConditions:
    """Per-side free-slip flags; sides without free slip are no-slip.

    The normal velocity vanishes on every side.
    """

    free_slip: Dict[str, bool] = field(
        default_factory=lambda: {"left": True, "right": True, "top": True, "bot": True}
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "free_slip", _side_flags(self.free_slip, "free_slip"))

    def signs(self) -> Tuple[float, float, float, float]:
        """Ghost multipliers ``(left, right, bot, top)``: 1 free slip, -1 no slip."""

        fs = self.free_slip
        return tuple(1.0 if fs[side] else -1.0 for side in ("left", "right", "bot", "top"))


@dataclass
class Velocity:
    Vx: np.ndarray
    Vy: np.ndarray


@dataclass
class SymmetricTensor:
    xx: np.ndarray
    yy: np.ndarray
    xy: np.ndarray
    II: np.ndarray

    @classmethod
    def zeros(cls, nx: int, ny: int) -> "SymmetricTensor":
        return cls(
            xx=np.zeros((nx, ny)),
            yy=np.zeros((nx, ny)),
            xy=np.zeros((nx + 1, ny + 1)),
            II=np.zeros((nx, ny)),
        )


@dataclass
class Viscosity:
    eta: np.ndarray
    eta_v: np.ndarray
    eta_tau: np.ndarray


@dataclass
class Residuals:
    Rx: np.ndarray
    Ry: np.ndarray
    RP: np.ndarray


@dataclass
class StokesArrays:
    """Pressure, velocity, stress and viscosity fields owned by the driver."""

    P: np.ndarray
    P0: np.ndarray
    divV: np.ndarray
    V: Velocity
    stress: SymmetricTensor
    stress_o: SymmetricTensor
    strain_rate: SymmetricTensor
    viscosity: Viscosity
    R: Residuals

    @classmethod
    def allocate(cls, ni: Tuple[int, int]) -> "StokesArrays":
        nx, ny = ni
        return cls(
            P=np.zeros((nx, ny)),
            P0=np.zeros((nx, ny)),
            divV=np.zeros((nx, ny)),
            V=Velocity(Vx=np.zeros((nx + 1, ny + 2)), Vy=np.zeros((nx + 2, ny + 1))),
            stress=SymmetricTensor.zeros(nx, ny),
            stress_o=SymmetricTensor.zeros(nx, ny),
            strain_rate=SymmetricTensor.zeros(nx, ny),
            viscosity=Viscosity(
                eta=np.ones((nx, ny)),
                eta_v=np.ones((nx + 1, ny + 1)),
                eta_tau=np.ones((nx, ny)),
            ),
            R=Residuals(Rx=np.zeros((nx - 1, ny)), Ry=np.zeros((nx, ny - 1)), RP=np.zeros((nx, ny))),
        )

    @property
    def velocity(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.V.Vx, self.V.Vy


def flow_bcs(stokes: StokesArrays, bc: VelocityBoundaryConditions) -> None:
    kernels.velocity_bcs_numba(stokes.V.Vx, stokes.V.Vy, *bc.signs())


def velocity2vertex(Vx_v: np.ndarray, Vy_v: np.ndarray, Vx: np.ndarray, Vy: np.ndarray) -> None:
    """Interpolate the staggered velocity to the ``(nx+1, ny+1)`` vertices."""

    kernels.velocity2vertex_numba(Vx_v, Vy_v, Vx, Vy)


@dataclass(frozen=True)
class PTStokesCoeffs:
    """Pseudo-transient iteration parameters of the Stokes solver."""

    eps: float
    CFL: float
    Re: float
    r: float
    l_tau: float
    Vpdtau: float
    theta_dtau: float
    eta_dtau: float

    @classmethod
    def from_domain(
        cls,
        li: Tuple[float, float],
        di: Tuple[float, float],
        *,
        eps: float = 1.0e-4,
        CFL: float = 0.8 / math.sqrt(2.1),
        Re: float = 3.0 * math.pi,
        r: float = 0.7,
    ) -> "PTStokesCoeffs":
        l_tau = min(li)
        Vpdtau = min(di) * CFL
        theta_dtau = l_tau * (r + 4.0 / 3.0) / (Re * Vpdtau)
        eta_dtau = Vpdtau * l_tau / Re
        return cls(eps=eps, CFL=CFL, Re=Re, r=r, l_tau=l_tau, Vpdtau=Vpdtau, theta_dtau=theta_dtau, eta_dtau=eta_dtau)


@dataclass
class StokesDiagnostics:
    """Convergence record of one momentum solve.

    ``err_evo1`` holds the error of every check and ``err_evo2`` the
    iteration at which it was taken.
    """

    err_evo1: List[float] = field(default_factory=list)
    err_evo2: List[int] = field(default_factory=list)
    norm_Rx: List[float] = field(default_factory=list)
    norm_Ry: List[float] = field(default_factory=list)
    norm_divV: List[float] = field(default_factory=list)
    iterations: int = 0
    converged: bool = False

    @property
    def err(self) -> float:
        return self.err_evo1[-1] if self.err_evo1 else math.nan


def _relative_errors(stokes: StokesArrays, rho_g: np.ndarray, di: Tuple[float, float]) -> Tuple[float, float, float]:
    """Momentum residuals relative to the buoyancy, continuity relative to ``|V|/Δ``."""

    force = rms(rho_g)
    v_scale = max(rms(stokes.V.Vx), rms(stokes.V.Vy))
    return (
        relative(rms(stokes.R.Rx), force),
        relative(rms(stokes.R.Ry), force),
        relative(rms(stokes.R.RP) * min(di), v_scale),
    )


def momentum_solve(
    stokes: StokesArrays,
    pt: PTStokesCoeffs,
    di: Tuple[float, float],
    flow_bc: VelocityBoundaryConditions,
    rho_g: np.ndarray,
    rheology: MaterialParams,
    args: CouplingArgs,
    dt: float,
    topology: GridTopology,
    *,
    iter_max: int = 150_000,
    nout: int = 1_000,
    viscosity_cutoff: Tuple[float, float] = (1.0e16, 1.0e24),
    iter_min: int = 100,
    verbose: bool = False,
) -> StokesDiagnostics:
    """Relax velocity, pressure and stress to the Stokes solution.

    ``stokes.viscosity`` must be current (see
    :func:`~mantleconv.physics.rheology.compute_viscosity`).  ``dt`` enters
    the visco-elastic stress update and the compressible pressure update; an
    incompressible, purely viscous medium ignores it.  ``args`` is the state
    the viscosity was evaluated on and is kept for strain-rate dependent
    laws.  The solve stops when the error drops below ``pt.eps`` after
    ``iter_min`` iterations.  Running out of iterations emits a
    :class:`~mantleconv.warnings.ConvergenceWarning` and leaves the last
    iterate in place.
    """

    _dx, _dy = 1.0 / di[0], 1.0 / di[1]
    G = rheology.elasticity.G
    _Gdt = 0.0 if not math.isfinite(dt) else 1.0 / (G * dt)
    Kb = rheology.elasticity.bulk_modulus
    _Kdt = 0.0 if not (math.isfinite(Kb) and math.isfinite(dt)) else 1.0 / (Kb * dt)
    r_theta = pt.r / pt.theta_dtau
    cutoff_lo, cutoff_hi = viscosity_cutoff
    np.clip(stokes.viscosity.eta, cutoff_lo, cutoff_hi, out=stokes.viscosity.eta)

    Vx, Vy = stokes.velocity
    tau, tau_o, eps = stokes.stress, stokes.stress_o, stokes.strain_rate
    visc = stokes.viscosity
    stokes.P0[...] = stokes.P

    diag = StokesDiagnostics()
    log = logger.info if verbose else logger.debug
    it = 0
    err = math.inf
    while it < iter_max:
        it += 1
        kernels.divergence_numba(stokes.divV, Vx, Vy, _dx, _dy)
        kernels.pressure_numba(stokes.P, stokes.P0, stokes.R.RP, stokes.divV, visc.eta, r_theta, _Kdt)
        kernels.strain_rate_numba(eps.xx, eps.yy, eps.xy, stokes.divV, Vx, Vy, _dx, _dy)
        kernels.stress_numba(
            tau.xx, tau.yy, tau.xy, tau_o.xx, tau_o.yy, tau_o.xy,
            eps.xx, eps.yy, eps.xy, visc.eta, visc.eta_v, _Gdt, pt.theta_dtau,
        )
        kernels.velocity_numba(
            Vx, Vy, stokes.R.Rx, stokes.R.Ry, stokes.P, tau.xx, tau.yy, tau.xy,
            rho_g, visc.eta_tau, pt.eta_dtau, _dx, _dy,
        )
        flow_bcs(stokes, flow_bc)
        halo_exchange(topology, Vx, Vy)

        if it % nout == 0 or it == iter_max:
            nRx, nRy, nRP = _relative_errors(stokes, rho_g, di)
            err = max(nRx, nRy, nRP)
            diag.norm_Rx.append(nRx)
            diag.norm_Ry.append(nRy)
            diag.norm_divV.append(nRP)
            diag.err_evo1.append(err)
            diag.err_evo2.append(it)
            log("momentum_solve: iter=%d err=%.3e Rx=%.3e Ry=%.3e divV=%.3e", it, err, nRx, nRy, nRP)
            if not math.isfinite(err):
                raise NumericalError(f"Stokes solver diverged at iteration {it}")
            if it > iter_min and err < pt.eps:
                diag.converged = True
                break

    diag.iterations = it
    tau_o.xx[...] = tau.xx
    tau_o.yy[...] = tau.yy
    tau_o.xy[...] = tau.xy
    if not diag.converged:
        warnings.warn(
            f"Stokes solver did not converge in {iter_max} iterations (err={err:.3e}, eps={pt.eps:.1e})",
            ConvergenceWarning,
            stacklevel=2,
        )
    return diag


def compute_dt(
    stokes: StokesArrays,
    di: Tuple[float, float],
    dt_diff: float,
    topology: GridTopology,
) -> float:
    """Return ``min(dt_diff, dt_adv)`` for the current velocity.

    ``dt_adv = min_k(d_k / max|V_k|) / (ndim + 0.1)`` with the maxima reduced
    over all partitions.  The state is only read, so repeated calls return the
    same value.
    """

    n = 1.0 / (len(di) + 0.1)
    dt_adv = math.inf
    for d, comp in zip(di, stokes.velocity):
        vmax = allreduce_max(topology, float(np.max(np.abs(comp))))
        if vmax > 0.0:
            dt_adv = min(dt_adv, d / vmax * n)
    dt = min(dt_diff, dt_adv)
    if not (dt > 0.0 and math.isfinite(dt)):
        raise NumericalError(f"time step must be positive and finite, got {dt!r}")
    return dt
