import dataclasses

import numpy as np
import pytest

from hypsys import Configuration, HyperbolicSolver


def stable_config(config: Configuration, n_steps: int, safety: float = 0.9):
    dt = safety * HyperbolicSolver(config).max_stable_dt
    return dataclasses.replace(config, dt=dt, final_time=n_steps * dt)


@pytest.mark.parametrize(
    "config",
    [
        Configuration(setup=1, nx=8, ny=8, order=2, ode_solver=1, scheme=1),
        Configuration(setup=3, nx=16, ny=1, order=3, ode_solver=1, scheme=1),
        Configuration(setup=0, nx=6, ny=6, order=1, ode_solver=1, scheme=1),
    ],
)
def test_mcl_forward_euler_preserves_local_bounds(config):
    config = dataclasses.replace(stable_config(config, 20), check_bounds=True)
    solver = HyperbolicSolver(config)
    solver.run(verbose=False)

    assert solver.n_steps == 20
    assert all(n == 0 for n in solver.minisnapshots["n_bound_violations"])
    assert min(solver.minisnapshots["u_min"]) >= -1e-12
    assert max(solver.minisnapshots["u_max"]) <= 1 + 1e-12


def test_standard_violates_bounds_where_mcl_does_not():
    base = Configuration(setup=3, nx=16, ny=1, order=3, check_bounds=True)
    base = stable_config(dataclasses.replace(base, scheme=1), 1, safety=0.5)
    base = dataclasses.replace(base, final_time=1.0)

    standard = HyperbolicSolver(dataclasses.replace(base, scheme=0, ode_solver=3))
    standard.run(verbose=False)
    mcl = HyperbolicSolver(dataclasses.replace(base, scheme=1, ode_solver=1))
    mcl.run(verbose=False)

    assert mcl.t == pytest.approx(1.0)
    assert max(standard.minisnapshots["n_bound_violations"]) > 0
    assert max(mcl.minisnapshots["n_bound_violations"]) == 0
    assert min(standard.minisnapshots["u_min"]) < -1e-3
    assert max(standard.minisnapshots["u_max"]) > 1 + 1e-3
    assert min(mcl.minisnapshots["u_min"]) >= -1e-12
    assert max(mcl.minisnapshots["u_max"]) <= 1 + 1e-12


def test_warns_about_unstable_time_step():
    config = Configuration(setup=2, nx=8, ny=1, order=0, scheme=1, dt=0.1)
    with pytest.warns(UserWarning, match="exceeds the largest bounds-preserving"):
        solver = HyperbolicSolver(config)
    assert solver.max_stable_dt == pytest.approx(1 / 32)


def test_bound_violations_are_counted():
    config = Configuration(
        setup=3, nx=16, ny=1, order=3, ode_solver=1, scheme=0, check_bounds=True
    )
    config = stable_config(dataclasses.replace(config, scheme=1), 10)
    solver = HyperbolicSolver(dataclasses.replace(config, scheme=0))
    solver.run(verbose=False)

    assert solver.minisnapshots["n_bound_violations"][0] == 0
    assert max(solver.minisnapshots["n_bound_violations"]) > 0
    assert np.isnan(solver.residual)


@pytest.mark.parametrize("setup, scheme", [(0, 1), (3, 0), (3, 1)])
def test_single_element_run(setup, scheme):
    config = Configuration(
        setup=setup,
        nx=1,
        ny=1,
        order=0,
        scheme=scheme,
        ode_solver=1,
        dt=0.1,
        final_time=0.2,
        check_bounds=True,
    )
    solver = HyperbolicSolver(config)
    solver.run(verbose=False)

    assert solver.n_steps == 2
    assert max(solver.minisnapshots["n_bound_violations"]) == 0
    assert np.all(np.isfinite(solver.arrays["u"]))
