import numpy as np
import pytest

from mantleconv.errors import ConfigurationError
from mantleconv.physics import viscosity as visc
from mantleconv.physics.viscosity import ArrheniusParams, CustomRheology

PARAMS = ArrheniusParams()


@pytest.mark.parametrize(
    "depth, factor",
    [(0.0, 1.0), (660.0e3, 1.0), (660.001e3, 10.0), (2740.0e3, 10.0), (2740.001e3, 0.1)],
)
def test_depth_band_values(depth, factor):
    assert visc.depth_correction(depth) == factor


def test_depth_bands_are_exclusive_near_2700_km():
    depths = np.array([2699.0e3, 2700.0e3, 2720.0e3, 2739.0e3])
    np.testing.assert_array_equal(visc.depth_correction(depths), np.full(4, 10.0))


def test_reference_viscosity_at_reference_temperature():
    # At T = T0 and P = 0 the exponent vanishes.
    assert visc.viscosity(PARAMS, P=0.0, T=PARAMS.T0, depth=0.0) == pytest.approx(PARAMS.eta0)
    assert visc.viscosity(PARAMS, P=0.0, T=PARAMS.T0, depth=1000.0e3) == pytest.approx(10 * PARAMS.eta0)


def test_viscosity_within_clamp_bounds():
    rng = np.random.default_rng(3)
    P = rng.uniform(0.0, 2.0e11, 500)
    T = rng.uniform(1.0, 5.0e3, 500)
    depth = rng.uniform(0.0, 2890.0e3, 500)
    eta = visc.viscosity(PARAMS, P, T, depth)
    lo, hi = PARAMS.cutoff
    assert np.all(eta >= lo)
    assert np.all(eta <= hi)


def test_extreme_exponentials_clamp_without_warning():
    with np.errstate(all="raise"):
        cold = visc.viscosity(PARAMS, P=1.0e12, T=1.0e-3, depth=0.0)
        hot = visc.viscosity(PARAMS, P=0.0, T=1.0e12, depth=3000.0e3)
    assert cold == PARAMS.cutoff[1]
    assert hot == PARAMS.cutoff[0]


def test_stress_inverts_strain_rate_mid_range():
    tau = np.array([1.0e5, 3.0e6, 5.0e7])
    kwargs = dict(P=1.0e9, T=1800.0, depth=1200.0e3)
    eta = visc.viscosity(PARAMS, **kwargs)
    assert PARAMS.cutoff[0] < eta < PARAMS.cutoff[1]
    eps = visc.strain_rate(PARAMS, tau, **kwargs)
    np.testing.assert_allclose(visc.stress(PARAMS, eps, **kwargs), tau, rtol=1e-12)
    np.testing.assert_allclose(eps, tau / (2.0 * eta), rtol=1e-12)


def test_custom_rheology_binds_parameters_once():
    params = ArrheniusParams(eta0=1.0e21)
    creep = CustomRheology.arrhenius(params)
    assert creep.params is params
    assert creep.viscosity(0.0, params.T0, 0.0) == pytest.approx(1.0e21)
    eps = creep.strain_rate(2.0e6, 0.0, params.T0, 0.0)
    assert creep.stress(eps, 0.0, params.T0, 0.0) == pytest.approx(2.0e6)


def test_scalar_inputs_return_float():
    assert isinstance(visc.viscosity(PARAMS), float)
    assert isinstance(visc.depth_correction(100.0), float)


@pytest.mark.parametrize("cutoff", [(0.0, 1.0e20), (1.0e22, 1.0e20)])
def test_invalid_cutoff_rejected(cutoff):
    with pytest.raises(ConfigurationError):
        ArrheniusParams(cutoff=cutoff)
