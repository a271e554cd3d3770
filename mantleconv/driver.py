"""Time-stepping driver for 2-D thermal convection.

The driver owns the field state and advances it through a fixed sequence of
stages per iteration::

    MOMENTUM_SOLVE -> TIME_STEP_SELECT -> THERMAL_SOLVE -> ADVECT -> SYNCHRONIZED

1. Buoyancy and viscosity are re-evaluated on the current ``(Tc, P, depth)``
   with an infinite elastic relaxation time and the Stokes problem is
   relaxed to convergence.
2. The next time step is the smaller of the diffusive limit (fixed at setup)
   and the advective limit of the new velocity.
3. One implicit heat diffusion step of that length is taken.
4. The staggered velocity is interpolated to the nodes and the vertex rows of
   the temperature are advected with WENO5.
5. The temperature halo is exchanged, the cell-centre temperature refreshed
   and the clock advanced.

Solver non-convergence is reported through the diagnostics and
:class:`~mantleconv.warnings.ConvergenceWarning` but never stops the loop.
Communication faults propagate to the caller.
"""
from __future__ import annotations

import enum
import logging
import math
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import ConfigurationError
from .grid import Grid
from .physics.initfields import apply_circular, apply_random, init_P, init_T, pin_boundaries
from .physics.rheology import (
    ConstantConductivity,
    ConstantElasticity,
    ConstantGravity,
    ConstantHeatCapacity,
    CouplingArgs,
    DruckerPrager,
    MaterialParams,
    PTDensity,
    compute_buoyancy,
    compute_viscosity,
)
from .physics.stokes import (
    PTStokesCoeffs,
    StokesArrays,
    StokesDiagnostics,
    VelocityBoundaryConditions,
    compute_dt,
    flow_bcs,
    momentum_solve,
    velocity2vertex,
)
from .physics.thermal import (
    PTThermalCoeffs,
    ThermalArrays,
    ThermalBoundaryConditions,
    ThermalDiagnostics,
    heatdiffusion_pt,
    temperature2center,
    thermal_bcs,
)
from .physics.viscosity import ArrheniusParams, CustomRheology
from .physics.weno import WENO5, weno_advection
from .runtime.context import RuntimeContext
from .runtime.helpers import log_stage, rms
from .runtime.history import RunHistory
from .runtime.progress import ProgressReporter
from .runtime.topology import halo_exchange
from .schema import Config, Rheology

logger = logging.getLogger(__name__)

__all__ = [
    "DriverStage",
    "SimulationClock",
    "build_rheology",
    "ConvectionDriver",
    "thermal_convection2d",
]


class DriverStage(str, enum.Enum):
    INITIALIZING = "initializing"
    MOMENTUM_SOLVE = "momentum_solve"
    TIME_STEP_SELECT = "time_step_select"
    THERMAL_SOLVE = "thermal_solve"
    ADVECT = "advect"
    SYNCHRONIZED = "synchronized"
    DONE = "done"


@dataclass
class SimulationClock:
    """Elapsed model time [s] and completed iterations."""

    t: float = 0.0
    it: int = 0

    def advance(self, dt: float) -> None:
        self.t += dt
        self.it += 1


def build_rheology(section: Rheology) -> MaterialParams:
    """Assemble the material parameters of the single mantle phase."""

    creep = CustomRheology.arrhenius(ArrheniusParams(**section.creep.model_dump()))
    elasticity = ConstantElasticity(G=section.elasticity.G, nu=section.elasticity.nu)
    beta = section.density.beta if section.density.beta is not None else elasticity.compressibility
    plasticity = None
    if section.plasticity.enabled:
        plasticity = DruckerPrager(
            C=section.plasticity.C,
            phi=section.plasticity.phi,
            eta_vp=section.plasticity.eta_vp,
            psi=section.plasticity.psi,
        )
    return MaterialParams(
        name=section.name,
        phase=section.phase,
        density=PTDensity(rho0=section.density.rho0, beta=beta, T0=section.density.T0, alpha=section.density.alpha),
        heat_capacity=ConstantHeatCapacity(Cp=section.Cp),
        conductivity=ConstantConductivity(k=section.k),
        creep=creep,
        elasticity=elasticity,
        gravity=ConstantGravity(g=section.g),
        plasticity=plasticity,
    )


class ConvectionDriver:
    """Own the field state of one run and advance it iteration by iteration.

    Parameters
    ----------
    cfg:
        Validated run configuration.
    ctx:
        Runtime context whose topology matches the grid of ``cfg``.
    rng:
        Random source of the ``random`` perturbation; defaults to a generator
        seeded with ``cfg.runtime.seed``.
    """

    def __init__(self, cfg: Config, ctx: RuntimeContext, rng: Optional[np.random.Generator] = None) -> None:
        self.cfg = cfg
        self.ctx = ctx
        self.rng = rng if rng is not None else np.random.default_rng(cfg.runtime.seed)
        self.history = RunHistory()
        self.clock = SimulationClock()
        self.diagnostics: Optional[StokesDiagnostics] = None
        self.thermal_diagnostics: Optional[ThermalDiagnostics] = None
        self.stage = DriverStage.INITIALIZING
        self._enter(DriverStage.INITIALIZING)
        self._setup()

    @property
    def topology(self):
        return self.ctx.topology

    def _enter(self, stage: DriverStage, **extra) -> None:
        self.stage = stage
        self.history.stages.append(stage.value)
        log_stage(logger, stage.value, extra=extra or None)

    # ------------------------------------------------------------------
    # setup
    # ------------------------------------------------------------------
    def _setup(self) -> None:
        cfg = self.cfg
        dom = cfg.domain
        self.grid = Grid.from_aspect_ratio(dom.ny, dom.ly, dom.aspect_ratio, nx=dom.resolved_nx())
        grid = self.grid
        if tuple(self.topology.nxyz) != tuple(grid.ni):
            raise ConfigurationError(f"topology {self.topology.nxyz} does not match grid {grid.ni}")
        nx, ny = grid.ni
        di, li = grid.di, grid.lengths

        self.weno = WENO5((nx + 1, ny + 1))
        self.rheology = build_rheology(cfg.rheology)
        kappa = self.rheology.thermal_diffusivity
        self.dt_diff = 0.5 * min(di) ** 2 / kappa / 2.01
        self.dt = self.dt_diff

        # temperature
        self.thermal = ThermalArrays.allocate(grid.ni)
        self.thermal_bc = ThermalBoundaryConditions(no_flux=dict(cfg.boundaries.thermal.no_flux))
        ti = cfg.thermal_init
        init_T(self.thermal.T, grid.xvi[1], kappa, ti.Tm, ti.Tp, ti.Tmin)
        thermal_bcs(self.thermal, self.thermal_bc)
        self._perturb()
        pin_boundaries(self.thermal.T, ti.Tmax, ti.Tmin)
        halo_exchange(self.topology, self.thermal.T)
        temperature2center(self.thermal)

        # flow
        sc = cfg.stokes
        self.stokes = StokesArrays.allocate(grid.ni)
        self.pt_stokes = PTStokesCoeffs.from_domain(li, di, eps=sc.eps, CFL=sc.CFL, Re=sc.Re, r=sc.r)
        self.depth = grid.center_depth()
        self.rho_g = np.zeros(grid.ni)
        args = self.coupling_args()
        compute_buoyancy(self.rheology, args, out=self.rho_g)
        init_P(self.stokes.P, self.rho_g, grid.xci[1])
        compute_viscosity(self.stokes, args, self.rheology, sc.viscosity_cutoff)
        self.pt_thermal = PTThermalCoeffs.from_rheology(
            self.rheology, self.dt, di, li, eps=cfg.thermal.eps, CFL=cfg.thermal.CFL
        )
        self.flow_bc = VelocityBoundaryConditions(free_slip=dict(cfg.boundaries.flow.free_slip))
        flow_bcs(self.stokes, self.flow_bc)
        halo_exchange(self.topology, *self.stokes.velocity)

        self.Vx_v = np.zeros((nx + 1, ny + 1))
        self.Vy_v = np.zeros((nx + 1, ny + 1))
        self.T_weno = np.zeros((nx + 1, ny + 1))
        self.clock = SimulationClock()
        logger.info(
            "setup: ni=%s di=(%.3e, %.3e) kappa=%.3e dt_diff=%.3e perturbation=%s",
            grid.ni, di[0], di[1], kappa, self.dt_diff, ti.perturbation,
        )

    def _perturb(self) -> None:
        ti = self.cfg.thermal_init
        grid = self.grid
        if ti.perturbation == "circular":
            c = ti.circular
            apply_circular(self.thermal.T, c.dT, c.xc_frac * grid.lx, c.yc_frac * grid.ly, c.radius, grid.xvi)
        elif ti.perturbation == "random":
            rnd = ti.random
            xbox = (rnd.xbox_frac[0] * grid.lx, rnd.xbox_frac[1] * grid.lx)
            apply_random(self.thermal.T, rnd.dT, xbox, rnd.ybox, grid.xvi, rng=self.rng)

    def coupling_args(self) -> CouplingArgs:
        """Rheology evaluation context of the momentum solve (``dt = inf``)."""

        return CouplingArgs(T=self.thermal.Tc, P=self.stokes.P, depth=self.depth, dt=math.inf)

    # ------------------------------------------------------------------
    # stages
    # ------------------------------------------------------------------
    def _momentum_stage(self, args: CouplingArgs) -> None:
        sc = self.cfg.stokes
        compute_buoyancy(self.rheology, args, out=self.rho_g)
        compute_viscosity(self.stokes, args, self.rheology, sc.viscosity_cutoff)
        self.diagnostics = momentum_solve(
            self.stokes,
            self.pt_stokes,
            self.grid.di,
            self.flow_bc,
            self.rho_g,
            self.rheology,
            args,
            self.dt,
            self.topology,
            iter_max=sc.iter_max,
            nout=sc.nout,
            viscosity_cutoff=sc.viscosity_cutoff,
            iter_min=sc.iter_min,
            verbose=sc.verbose,
        )

    def _time_step_stage(self) -> None:
        self.dt = compute_dt(self.stokes, self.grid.di, self.dt_diff, self.topology)

    def _thermal_stage(self, args: CouplingArgs) -> None:
        tc = self.cfg.thermal
        self.pt_thermal = self.pt_thermal.with_time_step(self.dt)
        self.thermal_diagnostics = heatdiffusion_pt(
            self.thermal,
            self.pt_thermal,
            self.thermal_bc,
            self.rheology,
            args,
            self.dt,
            self.grid.di,
            topology=self.topology,
            iter_max=tc.iter_max,
            nout=tc.nout,
            verbose=tc.verbose,
        )

    def _advect_stage(self) -> None:
        nodes = self.thermal.nodes
        self.T_weno[...] = nodes
        velocity2vertex(self.Vx_v, self.Vy_v, *self.stokes.velocity)
        weno_advection(self.T_weno, (self.Vx_v, self.Vy_v), self.weno, self.grid.di, self.dt)
        nodes[...] = self.T_weno

    def _synchronize_stage(self) -> None:
        halo_exchange(self.topology, self.thermal.T)
        temperature2center(self.thermal)

    def step(self) -> StokesDiagnostics:
        """Run one full iteration and return its momentum diagnostics."""

        args = self.coupling_args()
        self._enter(DriverStage.MOMENTUM_SOLVE, it=self.clock.it)
        self._momentum_stage(args)
        self._enter(DriverStage.TIME_STEP_SELECT)
        self._time_step_stage()
        self._enter(DriverStage.THERMAL_SOLVE, dt=self.dt)
        self._thermal_stage(args)
        self._enter(DriverStage.ADVECT)
        self._advect_stage()
        self._enter(DriverStage.SYNCHRONIZED)
        self._synchronize_stage()
        self.clock.advance(self.dt)
        self._record()
        return self.diagnostics

    def _record(self) -> None:
        stokes_diag = self.diagnostics
        thermal_diag = self.thermal_diagnostics
        row = {
            "it": self.clock.it,
            "t": self.clock.t,
            "dt": self.dt,
            "stokes_err": stokes_diag.err,
            "stokes_iterations": stokes_diag.iterations,
            "stokes_converged": stokes_diag.converged,
            "thermal_err": thermal_diag.err,
            "thermal_iterations": thermal_diag.iterations,
            "thermal_converged": thermal_diag.converged,
            "T_mean": float(np.mean(self.thermal.nodes)),
            "V_rms": math.hypot(rms(self.Vx_v), rms(self.Vy_v)),
        }
        self.history.iterations.append_row(row)
        logger.info(
            "it=%d t=%.4e dt=%.4e stokes_err=%.3e (%d its) thermal_err=%.3e (%d its)",
            row["it"], row["t"], row["dt"], row["stokes_err"], row["stokes_iterations"],
            row["thermal_err"], row["thermal_iterations"],
        )

    def run(self, n_iterations: Optional[int] = None) -> Optional[StokesDiagnostics]:
        """Iterate until the clock reaches ``n_iterations`` and return the last diagnostics.

        ``n_iterations`` defaults to ``cfg.time.n_iterations``.  Returns
        ``None`` when no iteration was run.
        """

        n_iter = self.cfg.time.n_iterations if n_iterations is None else int(n_iterations)
        if n_iter < 0:
            raise ConfigurationError("n_iterations must be non-negative")
        progress = ProgressReporter(n_iter, enabled=self.cfg.progress.enable)
        start = time.perf_counter()
        while self.clock.it < n_iter:
            self.step()
            progress.update(self.clock.it - 1, self.clock.t, err=self.diagnostics.err)
        self.history.total_time_elapsed = time.perf_counter() - start
        self._enter(DriverStage.DONE, it=self.clock.it, t=self.clock.t)
        return self.diagnostics


def thermal_convection2d(
    cfg: Optional[Config] = None,
    ctx: Optional[RuntimeContext] = None,
    rng: Optional[np.random.Generator] = None,
) -> Optional[StokesDiagnostics]:
    """Run the configured convection problem and return the final Stokes diagnostics.

    When ``ctx`` is omitted a context is created from ``cfg.runtime`` and its
    topology is finalised on return, also when the run fails.
    """

    cfg = cfg if cfg is not None else Config.default()
    owns_ctx = ctx is None
    if owns_ctx:
        ctx = RuntimeContext.create(
            cfg.domain.resolved_nx(),
            cfg.domain.ny,
            backend=cfg.runtime.backend,
            threads=cfg.runtime.threads,
            partition_count=cfg.runtime.partition_count,
        )
    try:
        driver = ConvectionDriver(cfg, ctx, rng=rng)
        return driver.run()
    finally:
        if owns_ctx:
            ctx.close()
