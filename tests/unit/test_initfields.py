import numpy as np
import pytest
from scipy.special import erf

from mantleconv import constants
from mantleconv.physics import initfields
from mantleconv.physics.initfields import BORDER_ROWS, GHOST_OFFSET

KAPPA = 3.0 / (1200.0 * 3100.0)
TP = 1900.0
TM = TP + 0.3 * 2890.0
TMIN = 300.0
TMAX = 3500.0


def _temperature(grid):
    T = np.zeros((grid.nx + 3, grid.ny + 1))
    return initfields.init_T(T, grid.xvi[1], KAPPA, TM, TP, TMIN)


def test_index_offset_constants():
    assert GHOST_OFFSET == 1
    assert BORDER_ROWS == 2


def test_surface_temperature_is_tmin():
    profile = initfields.half_space_temperature(np.array([0.0]), KAPPA, TM, TP, TMIN)
    assert profile[0] == TMIN


def test_profile_formula_and_monotonic(small_grid):
    z = small_grid.xvi[1]
    profile = initfields.half_space_temperature(z, KAPPA, TM, TP, TMIN)
    depth = np.abs(z)
    adiabat = TP + (TM - TP) / 2890.0e3 * depth
    half_space = TMIN + (TM - TMIN) * erf(depth * 0.5 / np.sqrt(KAPPA * constants.HALF_SPACE_AGE))
    np.testing.assert_allclose(profile, np.minimum(adiabat, half_space))
    order = np.argsort(depth)
    assert np.all(np.diff(profile[order]) >= 0.0)


def test_init_T_fills_every_row_identically(small_grid):
    T = _temperature(small_grid)
    assert np.all(T == T[0][None, :])


def test_init_T_rejects_mismatched_profile(small_grid):
    T = np.zeros((small_grid.nx + 3, small_grid.ny + 4))
    with pytest.raises(ValueError):
        initfields.init_T(T, small_grid.xvi[1], KAPPA, TM, TP, TMIN)


def test_circular_perturbation_offset_and_border_rows(small_grid):
    T = _temperature(small_grid)
    before = T.copy()
    x, y = small_grid.xvi
    xc, yc, r = 0.5 * small_grid.lx, -0.75 * small_grid.ly, 400.0e3
    initfields.apply_circular(T, 10.0, xc, yc, r, small_grid.xvi)

    inside = (x[:, None] - xc) ** 2 + (y[None, :] - yc) ** 2 <= r**2
    n_rows = T.shape[0] - BORDER_ROWS
    expected = before.copy()
    expected[GHOST_OFFSET : GHOST_OFFSET + n_rows][inside[:n_rows]] *= 10.0 / 100.0 + 1.0
    np.testing.assert_array_equal(T, expected)
    assert inside.any()
    # first and last rows along the first axis are never touched
    np.testing.assert_array_equal(T[0], before[0])
    np.testing.assert_array_equal(T[-1], before[-1])


def test_circular_perturbation_leaves_outside_nodes_unchanged(small_grid):
    T = _temperature(small_grid)
    before = T.copy()
    initfields.apply_circular(T, 10.0, 10 * small_grid.lx, 0.0, 1.0, small_grid.xvi)
    np.testing.assert_array_equal(T, before)


def test_random_perturbation_within_bounds(small_grid):
    T = _temperature(small_grid)
    before = T.copy()
    xbox = (small_grid.lx / 8, 7 * small_grid.lx / 8)
    ybox = (-1000.0e3, -2600.0e3)
    initfields.apply_random(T, 5.0, xbox, ybox, small_grid.xvi, rng=np.random.default_rng(7))
    ratio = T / before
    assert np.all(ratio >= 1.0 - 0.025 - 1e-12)
    assert np.all(ratio <= 1.0 + 0.025 + 1e-12)
    x, y = small_grid.xvi
    in_box = ((xbox[0] <= x) & (x <= xbox[1]))[:, None] & ((1000.0e3 <= np.abs(y)) & (np.abs(y) <= 2600.0e3))[None, :]
    outside = np.ones_like(T, dtype=bool)
    outside[GHOST_OFFSET : GHOST_OFFSET + in_box.shape[0]][in_box] = False
    np.testing.assert_array_equal(T[outside], before[outside])
    assert np.any(ratio != 1.0)


def test_random_perturbation_reproducible_with_seed(small_grid):
    xbox = (0.0, small_grid.lx)
    ybox = (0.0, -small_grid.ly)
    T1 = initfields.apply_random(_temperature(small_grid), 5.0, xbox, ybox, small_grid.xvi, rng=np.random.default_rng(11))
    T2 = initfields.apply_random(_temperature(small_grid), 5.0, xbox, ybox, small_grid.xvi, rng=np.random.default_rng(11))
    np.testing.assert_array_equal(T1, T2)


def test_pin_boundaries_overrides_perturbation(small_grid):
    T = _temperature(small_grid)
    initfields.apply_circular(T, 50.0, 0.5 * small_grid.lx, 0.0, small_grid.ly, small_grid.xvi)
    initfields.pin_boundaries(T, TMAX, TMIN)
    assert np.all(T[:, 0] == TMAX)
    assert np.all(T[:, -1] == TMIN)


def test_init_P_is_lithostatic(small_grid):
    rho_g = np.full(small_grid.ni, 3100.0 * 9.81)
    P = np.zeros(small_grid.ni)
    initfields.init_P(P, rho_g, small_grid.xci[1])
    np.testing.assert_allclose(P, rho_g * np.abs(small_grid.xci[1])[None, :])
    assert np.all(P >= 0.0)
    # pressure grows with depth (towards y = -ly, i.e. decreasing column index)
    assert np.all(np.diff(P, axis=1) < 0.0)
