import math
from pathlib import Path

import pytest

from mantleconv import config_utils
from mantleconv.errors import ConfigurationError
from mantleconv.schema import Config

ROOT = Path(__file__).resolve().parents[2]
BASE_CONFIG = ROOT / "configs" / "base.yml"


def test_default_is_reference_configuration():
    cfg = Config.default()
    assert cfg.domain.resolved_nx() == 256
    assert cfg.domain.ny == 32
    assert cfg.domain.lx == pytest.approx(8 * 2890.0e3)
    assert cfg.time.n_iterations == 5
    assert cfg.thermal_init.perturbation == "circular"
    assert cfg.thermal_init.Tm == pytest.approx(1900.0 + 0.3 * 2890.0)
    assert cfg.stokes.viscosity_cutoff == (1.0e16, 1.0e24)
    assert cfg.stokes.CFL == pytest.approx(0.8 / math.sqrt(2.1))
    assert cfg.diagnostics.tolerance == 5.0e-4


def test_base_yaml_matches_default():
    cfg = config_utils.load_config(BASE_CONFIG)
    assert cfg.domain.resolved_nx() == 256
    assert cfg.model_dump() == Config.default().model_dump()


def test_overrides_are_parsed_and_applied():
    cfg = config_utils.load_config(
        BASE_CONFIG,
        overrides=[
            "stokes.iter_max=2000",
            "thermal.verbose=false",
            "domain.nx=64",
            "thermal_init.perturbation=random",
            "stokes.viscosity_cutoff=[1e17, 1e23]",
        ],
    )
    assert cfg.stokes.iter_max == 2000
    assert cfg.thermal.verbose is False
    assert cfg.domain.resolved_nx() == 64
    assert cfg.thermal_init.perturbation == "random"
    assert cfg.stokes.viscosity_cutoff == (1.0e17, 1.0e23)


def test_load_without_path_uses_defaults():
    cfg = config_utils.load_config(None, overrides=["time.n_iterations=3"])
    assert cfg.time.n_iterations == 3
    assert cfg.domain.ny == 32


@pytest.mark.parametrize(
    "raw, expected",
    [("true", True), ("FALSE", False), ("none", None), ("3", 3), ("2.5e3", 2500.0), ("'text'", "text"), ("[1, 2]", [1, 2])],
)
def test_parse_override_value(raw, expected):
    assert config_utils.parse_override_value(raw) == expected


def test_parse_override_value_inf():
    assert math.isinf(config_utils.parse_override_value("inf"))


@pytest.mark.parametrize(
    "overrides",
    [["stokes.iter_max"], ["=3"], ["domain.ny=0"], ["thermal_init.perturbation=square"], ["boundaries.flow.free_slip.front=true"]],
)
def test_invalid_configuration_raises(overrides):
    with pytest.raises(ConfigurationError):
        config_utils.load_config(None, overrides=overrides)


def test_temperature_range_validated():
    with pytest.raises(ConfigurationError):
        config_utils.build_config({"thermal_init": {"Tmin": 4000.0}})


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        config_utils.load_config(tmp_path / "missing.yml")


def test_yaml_root_must_be_mapping(tmp_path):
    path = tmp_path / "list.yml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        config_utils.load_config(path)
