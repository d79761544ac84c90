import pytest

from hypsys import Configuration, OutputLoader
from hypsys.__main__ import build_config, build_parser, main

QUICK = ["-c", "2", "-nx", "8", "-ny", "1", "-o", "1", "-dt", "0.01", "-tf", "0.02", "-q"]


@pytest.mark.parametrize(
    "argv",
    [
        ["-e", "2"],
        ["-s", "4"],
        ["-p", "3"],
        ["-c", "7"],
        ["-c", "1", "-ny", "1"],
        ["-o", "-1"],
        ["--bogus"],
        ["-nx", "eight"],
        ["--config", "does_not_exist.yaml"],
        QUICK + ["--partitions", "0"],
    ],
)
def test_invalid_arguments_return_error_code(argv, capsys):
    assert main(argv) == -1
    assert capsys.readouterr().err


def test_options_override_defaults():
    args = build_parser().parse_args(["-o", "2", "-e", "1", "-tol", "1e-8", "-no-vis"])
    config = build_config(args)
    assert config.order == 2
    assert config.scheme == 1
    assert config.tol == 1e-8
    assert config.visualization is False
    assert config.nx == Configuration().nx


def test_options_override_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    Configuration(setup=2, nx=8, ny=1, final_time=0.5).write_yaml(path)

    args = build_parser().parse_args(["--config", str(path), "-tf", "0.1", "-r", "1"])
    config = build_config(args)
    assert config.setup == 2
    assert config.nx == 8
    assert config.final_time == 0.1
    assert config.refinements == 1


def test_quick_run(capsys):
    assert main(QUICK) == 0
    out = capsys.readouterr().out
    assert "setup: 2" in out
    assert "Difference in solution mass" not in out


def test_quick_run_with_output(tmp_path):
    path = tmp_path / "out"
    assert main(QUICK + ["--path", str(path)]) == 0
    assert (path / "final.gf").exists()

    loader = OutputLoader(path)
    assert loader.config.order == 1
    assert loader.config.final_time == 0.02

    assert main(QUICK + ["--path", str(path)]) == -1
    assert main(QUICK + ["--path", str(path), "--overwrite"]) == 0


@pytest.mark.parametrize("scheme", ["0", "1"])
def test_partitioned_run(scheme):
    assert main(QUICK + ["-e", scheme, "--partitions", "3"]) == 0
