"""Configuration schema for mantle convection runs.

This module defines Pydantic models that mirror the structure of the YAML
configuration files used by :mod:`mantleconv.run`.  Every section carries
defaults, so ``Config()`` (or :meth:`Config.default`) is the reference
configuration: a 2890 km deep, aspect-ratio 8 box with a circular thermal
anomaly, advanced for five iterations.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from . import constants
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_SIDES = ("left", "right", "top", "bot")


class Domain(BaseModel):
    """Physical extent and resolution of the box."""

    ly: float = Field(constants.MANTLE_DEPTH, gt=0.0, description="Box depth [m]")
    aspect_ratio: float = Field(8.0, gt=0.0, description="Width over depth, lx = aspect_ratio * ly")
    ny: int = Field(32, gt=0, description="Number of cells in the vertical direction")
    nx: Optional[int] = Field(
        None,
        gt=0,
        description="Number of cells in the horizontal direction; defaults to ny * aspect_ratio",
    )

    @property
    def lx(self) -> float:
        return self.ly * self.aspect_ratio

    def resolved_nx(self) -> int:
        if self.nx is not None:
            return int(self.nx)
        return max(int(round(self.ny * self.aspect_ratio)), 1)


class CreepParams(BaseModel):
    eta0: float = Field(5.0e20, gt=0.0, description="Reference viscosity [Pa s]")
    Ea: float = Field(200.0e3, ge=0.0, description="Activation energy [J/mol]")
    Va: float = Field(2.6e-6, ge=0.0, description="Activation volume [m^3/mol]")
    T0: float = Field(1.6e3, gt=0.0, description="Reference temperature [K]")
    R: float = Field(constants.R_GAS, gt=0.0, description="Gas constant [J/mol/K]")
    cutoff: Tuple[float, float] = Field((1.0e16, 1.0e25), description="Creep clamp bounds [Pa s]")

    @field_validator("cutoff")
    def _check_cutoff(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        lo, hi = value
        if not (0.0 < lo <= hi):
            raise ConfigurationError("rheology.creep.cutoff must satisfy 0 < min <= max")
        return value


class DensityParams(BaseModel):
    rho0: float = Field(3.1e3, gt=0.0, description="Reference density [kg/m^3]")
    alpha: float = Field(1.5e-5, ge=0.0, description="Thermal expansivity [1/K]")
    T0: float = Field(0.0, description="Reference temperature of the density law [K]")
    beta: Optional[float] = Field(
        None,
        ge=0.0,
        description="Compressibility [1/Pa]; defaults to the inverse bulk modulus of the elasticity section",
    )


class ElasticityParams(BaseModel):
    G: float = Field(70.0e9, gt=0.0, description="Shear modulus [Pa]")
    nu: float = Field(0.5, gt=-1.0, le=0.5, description="Poisson ratio; 0.5 is incompressible")


class PlasticityParams(BaseModel):
    enabled: bool = False
    C: float = Field(30.0e6, ge=0.0, description="Cohesion [Pa]")
    phi: float = Field(math.degrees(math.asin(0.01)), ge=0.0, lt=90.0, description="Friction angle [deg]")
    eta_vp: float = Field(1.0e16, ge=0.0, description="Regularisation viscosity [Pa s]")
    psi: float = Field(0.0, ge=0.0, description="Dilation angle [deg]")


class Rheology(BaseModel):
    name: str = "Mantle"
    phase: int = 1
    creep: CreepParams = CreepParams()
    density: DensityParams = DensityParams()
    Cp: float = Field(1.2e3, gt=0.0, description="Heat capacity [J/kg/K]")
    k: float = Field(3.0, gt=0.0, description="Thermal conductivity [W/m/K]")
    elasticity: ElasticityParams = ElasticityParams()
    plasticity: PlasticityParams = PlasticityParams()
    g: float = Field(constants.GRAVITY, gt=0.0, description="Gravitational acceleration [m/s^2]")


class CircularPerturbation(BaseModel):
    dT: float = Field(10.0, description="Amplitude [percent]")
    xc_frac: float = Field(0.5, description="Centre x as a fraction of lx")
    yc_frac: float = Field(-0.75, description="Centre y as a fraction of ly (negative is below the surface)")
    radius: float = Field(150.0e3, gt=0.0, description="Radius [m]")


class RandomPerturbation(BaseModel):
    dT: float = Field(5.0, ge=0.0, description="Full width of the uniform amplitude [percent]")
    xbox_frac: Tuple[float, float] = Field((1.0 / 8.0, 7.0 / 8.0), description="x bounds as fractions of lx")
    ybox: Tuple[float, float] = Field((-2000.0e3, -2600.0e3), description="y bounds [m], compared by |y|")

    @field_validator("xbox_frac")
    def _check_order(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        if value[0] > value[1]:
            raise ConfigurationError("thermal_init.random.xbox_frac must be ordered")
        return value


class ThermalInit(BaseModel):
    """Half-space cooling profile, anomaly and boundary temperatures."""

    adiabat: float = Field(0.3, ge=0.0, description="Adiabatic gradient [K/km]")
    Tp: float = Field(1900.0, gt=0.0, description="Potential temperature [K]")
    Tmin: float = Field(300.0, gt=0.0, description="Surface temperature [K]")
    Tmax: float = Field(3.5e3, gt=0.0, description="Core-mantle boundary temperature [K]")
    perturbation: Literal["circular", "random", "none"] = "circular"
    circular: CircularPerturbation = CircularPerturbation()
    random: RandomPerturbation = RandomPerturbation()

    @property
    def Tm(self) -> float:
        """Adiabat temperature at the base of the mantle [K]."""

        return self.Tp + self.adiabat * constants.MANTLE_DEPTH / 1.0e3

    @model_validator(mode="after")
    def _check_range(self) -> "ThermalInit":
        if self.Tmin >= self.Tmax:
            raise ConfigurationError("thermal_init.Tmin must be below Tmax")
        return self


def _check_sides(value: Dict[str, bool], label: str) -> Dict[str, bool]:
    unknown = set(value) - set(_SIDES)
    if unknown:
        raise ConfigurationError(f"{label}: unknown sides {sorted(unknown)}")
    return value


class ThermalBoundaries(BaseModel):
    no_flux: Dict[str, bool] = Field(
        default_factory=lambda: {"left": True, "right": True, "top": False, "bot": False}
    )

    @field_validator("no_flux")
    def _check(cls, value: Dict[str, bool]) -> Dict[str, bool]:
        return _check_sides(value, "boundaries.thermal.no_flux")


class FlowBoundaries(BaseModel):
    free_slip: Dict[str, bool] = Field(
        default_factory=lambda: {"left": True, "right": True, "top": True, "bot": True}
    )

    @field_validator("free_slip")
    def _check(cls, value: Dict[str, bool]) -> Dict[str, bool]:
        return _check_sides(value, "boundaries.flow.free_slip")


class Boundaries(BaseModel):
    thermal: ThermalBoundaries = ThermalBoundaries()
    flow: FlowBoundaries = FlowBoundaries()


class StokesSolver(BaseModel):
    """Pseudo-transient momentum solver controls."""

    eps: float = Field(1.0e-4, gt=0.0, description="Relative error tolerance")
    CFL: float = Field(0.8 / math.sqrt(2.1), gt=0.0)
    Re: float = Field(3.0 * math.pi, gt=0.0, description="Numerical Reynolds number")
    r: float = Field(0.7, gt=0.0, description="Pressure-to-shear relaxation ratio")
    iter_max: int = Field(150_000, gt=0)
    iter_min: int = Field(100, ge=0)
    nout: int = Field(1_000, gt=0, description="Error check interval [iterations]")
    viscosity_cutoff: Tuple[float, float] = Field((1.0e16, 1.0e24), description="Viscosity clamp [Pa s]")
    verbose: bool = False

    @field_validator("viscosity_cutoff")
    def _check_cutoff(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        lo, hi = value
        if not (0.0 < lo <= hi):
            raise ConfigurationError("stokes.viscosity_cutoff must satisfy 0 < min <= max")
        return value


class ThermalSolver(BaseModel):
    """Pseudo-transient heat diffusion controls."""

    eps: float = Field(1.0e-5, gt=0.0, description="Relative error tolerance")
    CFL: float = Field(1.0 / math.sqrt(2.1), gt=0.0)
    iter_max: int = Field(10_000, gt=0)
    nout: int = Field(100, gt=0, description="Error check interval [iterations]")
    verbose: bool = True


class Time(BaseModel):
    n_iterations: int = Field(5, ge=0, description="Number of driver iterations")


class Runtime(BaseModel):
    backend: Literal["threads", "serial"] = "threads"
    threads: Optional[int] = Field(None, ge=1, description="numba thread count; all cores when unset")
    partition_count: int = Field(1, ge=1)
    seed: Optional[int] = Field(None, description="Seed of the random perturbation generator")


class Progress(BaseModel):
    enable: bool = False


class Diagnostics(BaseModel):
    tolerance: float = Field(5.0e-4, gt=0.0, description="Pass threshold of the final Stokes error")


class Config(BaseModel):
    """Top-level configuration object."""

    domain: Domain = Domain()
    rheology: Rheology = Rheology()
    thermal_init: ThermalInit = ThermalInit()
    boundaries: Boundaries = Boundaries()
    stokes: StokesSolver = StokesSolver()
    thermal: ThermalSolver = ThermalSolver()
    time: Time = Time()
    runtime: Runtime = Runtime()
    progress: Progress = Progress()
    diagnostics: Diagnostics = Diagnostics()

    @classmethod
    def default(cls) -> "Config":
        return cls()


__all__ = [
    "Domain",
    "CreepParams",
    "DensityParams",
    "ElasticityParams",
    "PlasticityParams",
    "Rheology",
    "CircularPerturbation",
    "RandomPerturbation",
    "ThermalInit",
    "ThermalBoundaries",
    "FlowBoundaries",
    "Boundaries",
    "StokesSolver",
    "ThermalSolver",
    "Time",
    "Runtime",
    "Progress",
    "Diagnostics",
    "Config",
]
