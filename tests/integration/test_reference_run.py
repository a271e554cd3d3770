"""End-to-end run of the reference configuration."""

import math

import numpy as np
import pytest

from mantleconv.driver import ConvectionDriver
from mantleconv.runtime.context import RuntimeContext
from mantleconv.schema import Config


@pytest.mark.slow
def test_reference_run_converges():
    cfg = Config.default()
    ctx = RuntimeContext.create(cfg.domain.resolved_nx(), cfg.domain.ny, backend=cfg.runtime.backend)
    try:
        driver = ConvectionDriver(cfg, ctx, rng=np.random.default_rng(0))
        diagnostics = driver.run()
    finally:
        ctx.close()

    assert driver.clock.it == cfg.time.n_iterations
    assert math.isfinite(diagnostics.err)
    assert diagnostics.err < cfg.diagnostics.tolerance
    T = driver.thermal.T
    np.testing.assert_allclose(T[:, -1], cfg.thermal_init.Tmin)
    assert np.all(np.isfinite(T))


@pytest.mark.slow
def test_random_perturbation_run(small_config, serial_ctx):
    cfg = small_config.model_copy(deep=True)
    cfg.thermal_init.perturbation = "random"
    cfg.stokes.iter_max = 20_000
    cfg.stokes.nout = 500
    driver = ConvectionDriver(cfg, serial_ctx, rng=np.random.default_rng(11))
    diagnostics = driver.run()
    assert math.isfinite(diagnostics.err)
    assert driver.history.to_table().num_rows == cfg.time.n_iterations
