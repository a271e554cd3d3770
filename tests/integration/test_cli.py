import pytest

from mantleconv import run

pytestmark = pytest.mark.filterwarnings("ignore::mantleconv.warnings.ConvergenceWarning")

SMALL_ARGS = [
    "--override",
    "domain.nx=16",
    "domain.ny=8",
    "domain.aspect_ratio=2.0",
    "stokes.iter_max=200",
    "stokes.nout=100",
    "thermal.iter_max=200",
    "thermal.verbose=false",
    "runtime.backend=serial",
    "--iterations",
    "1",
    "--seed",
    "3",
]


def test_cli_runs_small_problem():
    assert run.main(SMALL_ARGS) == run.EXIT_OK


def test_cli_check_fails_above_tolerance():
    argv = SMALL_ARGS + ["--override", "diagnostics.tolerance=1e-30", "--check"]
    assert run.main(argv) == run.EXIT_TOLERANCE


@pytest.mark.parametrize(
    "argv",
    [
        ["--override", "domain.ny=0"],
        ["--override", "runtime.partition_count=2"],
        ["--override", "stokes.iter_max"],
        ["--config", "does/not/exist.yml"],
    ],
)
def test_cli_configuration_errors(argv):
    assert run.main(argv) == run.EXIT_CONFIG


def test_cli_communication_fault(monkeypatch):
    from mantleconv.runtime import topology

    def _broken(self, fields):
        raise OSError("link down")

    monkeypatch.setattr(topology.LocalTransport, "exchange", _broken)
    assert run.main(SMALL_ARGS) == run.EXIT_COMMUNICATION


def test_parser_collects_override_groups():
    args = run.build_parser().parse_args(["--override", "a=1", "b=2", "--override", "c=3", "--progress"])
    assert args.override == [["a=1", "b=2"], ["c=3"]]
    assert args.progress is True
    assert args.quiet is False
