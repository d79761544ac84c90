from dataclasses import replace

import numpy as np
import pytest

from hypsys import Configuration, HyperbolicSolver, run_partitioned

CONFIGS = [
    Configuration(setup=3, nx=16, ny=1, order=2, dt=0.002, final_time=0.04),
    Configuration(setup=1, nx=8, ny=8, order=2, dt=0.002, final_time=0.02),
    Configuration(
        setup=0, nx=6, ny=6, order=1, dt=0.002, final_time=0.02, ode_solver=1
    ),
]


@pytest.mark.parametrize("scheme", [0, 1])
@pytest.mark.parametrize("config", CONFIGS)
@pytest.mark.parametrize("nparts", [2, 3])
def test_partitioned_run_matches_serial(config, scheme, nparts):
    config = replace(config, scheme=scheme)
    serial = HyperbolicSolver(config)
    serial.run(verbose=False)

    solvers = run_partitioned(config, nparts)
    assert [s.comm.rank for s in solvers] == list(range(nparts))

    for solver in solvers:
        assert solver.n_steps == serial.n_steps
        assert solver.t == serial.t
        assert np.allclose(
            solver.snapshots[-1]["u"], serial.snapshots[-1]["u"], rtol=0, atol=1e-13
        )
        assert solver.mass_loss == pytest.approx(serial.mass_loss, rel=1e-9, abs=1e-14)
        if all(solver.physics.periodic):
            assert solver.mass_loss < 1e-12
        assert solver.max_stable_dt == pytest.approx(serial.max_stable_dt, rel=1e-14)

    # owned DOFs of all ranks cover the mesh exactly once
    owned = np.concatenate([s.dofs.owned for s in solvers])
    assert np.array_equal(np.sort(owned), np.arange(serial.space.n_dofs))


def test_parallel_refinements_keep_children_with_their_parent():
    config = Configuration(
        setup=3, nx=4, ny=4, order=1, dt=0.002, final_time=0.004, parallel_refinements=1
    )
    serial = HyperbolicSolver(config)
    serial.run(verbose=False)
    solvers = run_partitioned(config, 4)

    assert serial.mesh.shape == (8, 8)
    for solver in solvers:
        assert solver.dofs.owned_elements.size == 16
        assert np.allclose(
            solver.snapshots[-1]["u"], serial.snapshots[-1]["u"], rtol=0, atol=1e-13
        )
