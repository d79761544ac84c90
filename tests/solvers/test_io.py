import numpy as np
import pytest

from hypsys import Configuration, HyperbolicSolver, OutputLoader, run_partitioned
from hypsys.tools.snapshots import SnapshotPlaceholder

CONFIG = Configuration(setup=2, nx=8, ny=1, order=1, dt=0.01, final_time=0.05)

OUTPUT_FILES = [
    "commit_details.txt",
    "config.yaml",
    "grid.mesh",
    "initial.gf",
    "final.gf",
    "errors.csv",
    "timings.txt",
    "snapshots/index.csv",
    "snapshots/minisnapshots.pkl",
    "snapshots/snapshot_0000.pkl",
    "snapshots/snapshot_0001.pkl",
]


def test_output_files(tmp_path):
    path = tmp_path / "out"
    solver = HyperbolicSolver(CONFIG, path=path)
    solver.run(verbose=False)

    for name in OUTPUT_FILES:
        assert (path / name).exists(), name
    assert (path / "grid.mesh").read_text().startswith("MFEM mesh v1.0")
    assert "FiniteElementCollection: L2_T2_1D_P1" in (path / "final.gf").read_text()


def test_OutputLoader(tmp_path):
    path = tmp_path / "out"
    solver = HyperbolicSolver(CONFIG, path=path)
    solver.run(verbose=False, snapshot_freq=2)

    loader = OutputLoader(path)

    assert loader.config == CONFIG
    assert loader.mesh.to_dict() == solver.mesh.to_dict()
    assert loader.space.n_dofs == solver.space.n_dofs
    assert loader.metadata["integrator"] == "ssprk3"
    assert loader.snapshots.times() == solver.snapshots.times()
    assert all(
        isinstance(s, SnapshotPlaceholder) for s in loader.snapshots.data.values()
    )
    assert np.array_equal(solver.snapshots[0]["u"], loader.snapshots[0]["u"])
    assert np.array_equal(solver.snapshots[-1]["u"], loader.snapshots[-1]["u"])
    assert loader.minisnapshots["t"] == solver.minisnapshots["t"]
    assert loader.errors["L1"].iloc[-1] == pytest.approx(solver.errors["L1"])


def test_existing_output_directory(tmp_path):
    path = tmp_path / "out"
    HyperbolicSolver(CONFIG, path=path).run(verbose=False)

    with pytest.raises(FileExistsError):
        HyperbolicSolver(CONFIG, path=path).run(verbose=False)

    solver = HyperbolicSolver(CONFIG, path=path, overwrite=True)
    solver.run(verbose=False)
    assert (path / "final.gf").exists()


def test_partitioned_output_is_written_once(tmp_path):
    path = tmp_path / "out"
    solvers = run_partitioned(CONFIG, 2, path=path)

    assert solvers[0].path == path
    assert solvers[1].path is None
    loader = OutputLoader(path)
    assert loader.metadata["n_partitions"] == 2
    assert np.array_equal(loader.snapshots[-1]["u"], solvers[0].snapshots[-1]["u"])
