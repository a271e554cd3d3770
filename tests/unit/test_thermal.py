import numpy as np
import pytest

from mantleconv.errors import CommunicationFault, ConfigurationError, NumericalError
from mantleconv.physics.rheology import (
    ConstantConductivity,
    ConstantElasticity,
    ConstantGravity,
    ConstantHeatCapacity,
    CouplingArgs,
    MaterialParams,
    PTDensity,
)
from mantleconv.physics.thermal import (
    PTThermalCoeffs,
    ThermalArrays,
    ThermalBoundaryConditions,
    heatdiffusion_pt,
    temperature2center,
    thermal_bcs,
)
from mantleconv.physics.viscosity import CustomRheology
from mantleconv.runtime.topology import finalize_topology, init_topology
from mantleconv.warnings import ConvergenceWarning

RHEOLOGY = MaterialParams(
    name="Mantle",
    phase=1,
    density=PTDensity(),
    heat_capacity=ConstantHeatCapacity(),
    conductivity=ConstantConductivity(),
    creep=CustomRheology.arrhenius(),
    elasticity=ConstantElasticity(),
    gravity=ConstantGravity(),
)


def _setup(grid, profile):
    thermal = ThermalArrays.allocate(grid.ni)
    thermal.T[...] = profile
    temperature2center(thermal)
    kappa = RHEOLOGY.thermal_diffusivity
    dt = 0.5 * min(grid.di) ** 2 / kappa / 2.01
    pt = PTThermalCoeffs.from_rheology(RHEOLOGY, dt, grid.di, grid.lengths)
    args = CouplingArgs(T=thermal.Tc, P=np.zeros(grid.ni), depth=grid.center_depth())
    topology = init_topology(*grid.ni)
    return thermal, pt, args, dt, topology


def test_array_shapes(small_grid):
    thermal = ThermalArrays.allocate(small_grid.ni)
    nx, ny = small_grid.ni
    assert thermal.T.shape == (nx + 3, ny + 1)
    assert thermal.Tc.shape == (nx, ny)
    assert thermal.nodes.shape == (nx + 1, ny + 1)
    assert np.shares_memory(thermal.nodes, thermal.T)


def test_temperature2center_averages_four_nodes(small_grid):
    thermal = ThermalArrays.allocate(small_grid.ni)
    thermal.T[...] = np.arange(thermal.T.size, dtype=float).reshape(thermal.T.shape)
    temperature2center(thermal)
    T = thermal.T
    np.testing.assert_allclose(thermal.Tc[0, 0], 0.25 * (T[1, 0] + T[2, 0] + T[1, 1] + T[2, 1]))
    nodes = thermal.nodes
    expected = 0.25 * (nodes[:-1, :-1] + nodes[1:, :-1] + nodes[:-1, 1:] + nodes[1:, 1:])
    np.testing.assert_allclose(thermal.Tc, expected)


def test_thermal_bcs_copy_adjacent_rows():
    thermal = ThermalArrays.allocate((4, 3))
    thermal.T[...] = np.random.default_rng(0).uniform(size=thermal.T.shape)
    thermal_bcs(thermal, ThermalBoundaryConditions())
    np.testing.assert_array_equal(thermal.T[0], thermal.T[1])
    np.testing.assert_array_equal(thermal.T[-1], thermal.T[-2])
    assert not np.array_equal(thermal.T[:, 0], thermal.T[:, 1])


def test_boundary_condition_sides_validated():
    with pytest.raises(ConfigurationError):
        ThermalBoundaryConditions(no_flux={"front": True})
    bc = ThermalBoundaryConditions(no_flux={"left": True})
    assert bc.no_flux == {"left": True, "right": False, "top": False, "bot": False}


def test_coefficients_follow_time_step(small_grid):
    pt = PTThermalCoeffs.from_rheology(RHEOLOGY, 1.0e12, small_grid.di, small_grid.lengths)
    assert pt.with_time_step(1.0e12) is pt
    shorter = pt.with_time_step(1.0e10)
    assert shorter.dt == 1.0e10
    assert shorter.Re > pt.Re
    with pytest.raises(NumericalError):
        pt.with_time_step(0.0)


def test_steady_linear_profile_is_preserved(small_grid):
    y = small_grid.xvi[1]
    profile = np.broadcast_to(3500.0 + (300.0 - 3500.0) * (y - y[0]) / (y[-1] - y[0]), (small_grid.nx + 3, small_grid.ny + 1))
    thermal, pt, args, dt, topology = _setup(small_grid, profile)
    before = thermal.T.copy()
    diag = heatdiffusion_pt(thermal, pt, ThermalBoundaryConditions(), RHEOLOGY, args, dt, small_grid.di, topology=topology, nout=10)
    assert diag.converged
    np.testing.assert_allclose(thermal.T, before, rtol=1e-10)
    assert topology.exchanges >= 1


def test_hot_spot_diffuses_and_converges(small_grid):
    profile = np.full((small_grid.nx + 3, small_grid.ny + 1), 1000.0)
    profile[8, 4] = 2000.0
    thermal, pt, args, dt, topology = _setup(small_grid, profile)
    bc = ThermalBoundaryConditions(no_flux={"left": True, "right": True, "top": True, "bot": True})
    diag = heatdiffusion_pt(thermal, pt, bc, RHEOLOGY, args, dt, small_grid.di, topology=topology, iter_max=5000, nout=10)
    assert diag.converged
    assert diag.err < pt.eps
    assert thermal.T[8, 4] < 2000.0
    assert thermal.T[7, 4] > 1000.0
    assert thermal.T.min() > 999.0
    # Tc refreshed at the end
    assert thermal.Tc.max() > 1000.0


def test_non_convergence_warns_and_keeps_iterate(small_grid):
    profile = np.full((small_grid.nx + 3, small_grid.ny + 1), 1000.0)
    profile[8, 4] = 2000.0
    thermal, pt, args, dt, topology = _setup(small_grid, profile)
    with pytest.warns(ConvergenceWarning):
        diag = heatdiffusion_pt(
            thermal, pt, ThermalBoundaryConditions(), RHEOLOGY, args, dt, small_grid.di,
            topology=topology, iter_max=2, nout=1,
        )
    assert not diag.converged
    assert diag.iterations == 2
    assert len(diag.err_evo) == 2


def test_exchange_on_finalised_topology_is_fatal(small_grid):
    profile = np.full((small_grid.nx + 3, small_grid.ny + 1), 1000.0)
    thermal, pt, args, dt, topology = _setup(small_grid, profile)
    finalize_topology(topology)
    with pytest.raises(CommunicationFault):
        heatdiffusion_pt(thermal, pt, ThermalBoundaryConditions(), RHEOLOGY, args, dt, small_grid.di, topology=topology, nout=1)


def test_budget_off_the_check_interval_still_reports_error(small_grid):
    profile = np.full((small_grid.nx + 3, small_grid.ny + 1), 1000.0)
    profile[8, 4] = 2000.0
    thermal, pt, args, dt, topology = _setup(small_grid, profile)
    with pytest.warns(ConvergenceWarning):
        diag = heatdiffusion_pt(
            thermal, pt, ThermalBoundaryConditions(), RHEOLOGY, args, dt, small_grid.di,
            topology=topology, iter_max=5, nout=2,
        )
    assert diag.iter_evo == [2, 4, 5]
    assert diag.iterations == 5
    assert np.isfinite(diag.err)
    assert diag.err == diag.err_evo[-1]
