from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mantleconv.grid import Grid  # noqa: E402
from mantleconv.runtime.context import RuntimeContext  # noqa: E402
from mantleconv.schema import Config  # noqa: E402

SMALL_OVERRIDES = {
    "domain": {"ny": 8, "nx": 16, "aspect_ratio": 2.0},
    "stokes": {"iter_max": 400, "nout": 100, "iter_min": 100},
    "thermal": {"iter_max": 400, "nout": 100, "verbose": False},
    "time": {"n_iterations": 2},
    "runtime": {"backend": "serial", "seed": 1234},
}


@pytest.fixture
def small_grid() -> Grid:
    """16 x 8 cell box of half the mantle width."""

    return Grid.from_aspect_ratio(8, 2890.0e3, 2.0, nx=16)


@pytest.fixture
def small_config() -> Config:
    """Reference physics on a coarse grid with short solver budgets."""

    return Config(**SMALL_OVERRIDES)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(20240601)


@pytest.fixture
def serial_ctx(small_config: Config):
    ctx = RuntimeContext.create(
        small_config.domain.resolved_nx(),
        small_config.domain.ny,
        backend="serial",
    )
    yield ctx
    ctx.close()


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run the reference-resolution end-to-end tests marked slow.",
    )


def pytest_collection_modifyitems(config: pytest.Config, items) -> None:
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="needs --run-slow")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)
