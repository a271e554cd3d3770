"""Material parameter bundle and the field evaluations built on it.

A :class:`MaterialParams` composes the custom creep law with density, heat
capacity, conductivity, elasticity, optional plasticity and gravity.  It is
created once at setup and shared read-only by every stage.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .. import constants
from ..errors import ConfigurationError
from . import _numba_kernels as kernels
from .viscosity import CustomRheology

__all__ = [
    "PTDensity",
    "ConstantHeatCapacity",
    "ConstantConductivity",
    "ConstantElasticity",
    "DruckerPrager",
    "ConstantGravity",
    "MaterialParams",
    "CouplingArgs",
    "compute_density",
    "compute_buoyancy",
    "compute_viscosity",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PTDensity:
    """Pressure and temperature dependent density ``ρ0 (1 - α (T - T0) + β P)``."""

    rho0: float = 3.1e3
    beta: float = 0.0
    T0: float = 0.0
    alpha: float = 1.5e-5

    def __call__(self, T, P):
        return self.rho0 * (1.0 - self.alpha * (T - self.T0) + self.beta * P)


@dataclass(frozen=True)
class ConstantHeatCapacity:
    Cp: float = 1.2e3


@dataclass(frozen=True)
class ConstantConductivity:
    k: float = 3.0


@dataclass(frozen=True)
class ConstantElasticity:
    """Shear modulus ``G`` [Pa] and Poisson ratio ``nu``."""

    G: float = 70.0e9
    nu: float = 0.5

    @property
    def bulk_modulus(self) -> float:
        """Bulk modulus; infinite (incompressible) for ``nu = 0.5``."""

        if self.nu >= 0.5:
            return math.inf
        return 2.0 * self.G * (1.0 + self.nu) / (3.0 * (1.0 - 2.0 * self.nu))

    @property
    def compressibility(self) -> float:
        return 1.0 / self.bulk_modulus


@dataclass(frozen=True)
class DruckerPrager:
    """Regularised Drucker-Prager yield criterion.

    ``C`` is the cohesion [Pa], ``phi`` the friction angle and ``psi`` the
    dilation angle [degrees], ``eta_vp`` the regularisation viscosity [Pa s].
    """

    C: float = 30.0e6
    phi: float = math.degrees(math.asin(0.01))
    eta_vp: float = 1.0e16
    psi: float = 0.0

    def yield_stress(self, P):
        phi = math.radians(self.phi)
        return self.C * math.cos(phi) + np.maximum(P, 0.0) * math.sin(phi)


@dataclass(frozen=True)
class ConstantGravity:
    g: float = constants.GRAVITY


@dataclass(frozen=True)
class MaterialParams:
    """Rheology model of a single mantle phase."""

    name: str
    phase: int
    density: PTDensity
    heat_capacity: ConstantHeatCapacity
    conductivity: ConstantConductivity
    creep: CustomRheology
    elasticity: ConstantElasticity
    gravity: ConstantGravity
    plasticity: Optional[DruckerPrager] = None

    @property
    def rho_cp(self) -> float:
        return self.density.rho0 * self.heat_capacity.Cp

    @property
    def thermal_diffusivity(self) -> float:
        """``κ = k / (Cp ρ0)`` [m² s⁻¹]."""

        return self.conductivity.k / self.rho_cp

    def __post_init__(self) -> None:
        if self.density.rho0 <= 0.0 or self.heat_capacity.Cp <= 0.0 or self.conductivity.k <= 0.0:
            raise ConfigurationError("density, heat capacity and conductivity must be positive")


@dataclass
class CouplingArgs:
    """Fields the rheology is evaluated on.

    ``T`` is the cell-centre temperature, ``P`` the pressure and ``depth`` the
    cell-centre depth, all of shape ``(nx, ny)``.  ``dt`` is the elastic
    relaxation time; ``inf`` treats the momentum balance as quasi-static.
    """

    T: np.ndarray
    P: np.ndarray
    depth: np.ndarray
    dt: float = math.inf


def compute_density(rheology: MaterialParams, args: CouplingArgs, out: np.ndarray | None = None) -> np.ndarray:
    rho = rheology.density(args.T, args.P)
    if out is None:
        return np.asarray(rho, dtype=float)
    out[...] = rho
    return out


def compute_buoyancy(rheology: MaterialParams, args: CouplingArgs, out: np.ndarray | None = None) -> np.ndarray:
    """Return ``ρ g`` at cell centres, written into ``out`` when given."""

    out = compute_density(rheology, args, out)
    out *= rheology.gravity.g
    return out


def compute_viscosity(
    stokes,
    args: CouplingArgs,
    rheology: MaterialParams,
    cutoff: Tuple[float, float],
) -> None:
    """Refresh ``stokes.viscosity`` from the creep law at ``(P, T, depth)``.

    With plasticity, cells whose strain rate would exceed the yield stress are
    capped at ``τy / (2 εII) + η_vp``.  The vertex viscosity ``ηv`` and the
    pseudo-transient viscosity ``ητ`` (local maximum) are refreshed too.
    """

    visc = stokes.viscosity
    eta = rheology.creep.viscosity(args.P, args.T, args.depth)
    if rheology.plasticity is not None:
        eII = stokes.strain_rate.II
        kernels.second_invariant_numba(eII, stokes.strain_rate.xx, stokes.strain_rate.yy, stokes.strain_rate.xy)
        tau_y = rheology.plasticity.yield_stress(args.P)
        yielding = eII > 0.0
        eta_pl = np.where(yielding, 0.5 * tau_y / np.where(yielding, eII, 1.0), np.inf)
        eta = np.minimum(eta, eta_pl + rheology.plasticity.eta_vp)
    np.clip(eta, cutoff[0], cutoff[1], out=visc.eta)
    kernels.center2vertex_numba(visc.eta_v, visc.eta)
    kernels.maxloc_numba(visc.eta_tau, visc.eta)
