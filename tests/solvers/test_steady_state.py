import numpy as np
import pytest

from hypsys import Configuration, EvolutionState, HyperbolicSolver


def steady_config(**kwargs) -> Configuration:
    defaults = dict(
        setup=0, nx=16, ny=1, order=0, ode_solver=1, dt=1 / 32, final_time=100.0
    )
    defaults.update(kwargs)
    return Configuration(**defaults)


def test_upwind_pseudo_time_stepping_converges():
    solver = HyperbolicSolver(steady_config(scheme=0))
    assert solver.evolution.state is EvolutionState.PSEUDO_TIME_STEPPING
    solver.run(verbose=False)

    assert solver.evolution.state is EvolutionState.CONVERGED
    assert solver.evolution.reached_tolerance
    assert solver.t < solver.config.final_time
    assert solver.residual < solver.config.tol

    u = solver.arrays["u"]
    assert np.array_equal(u, solver.evolution.u_old)
    assert np.allclose(u, 1.0, rtol=0, atol=1e-10)
    assert solver.errors["Linf"] < 1e-10


def test_residual_decreases():
    solver = HyperbolicSolver(steady_config(scheme=0))
    solver.run(verbose=False)

    residuals = np.array(solver.minisnapshots["residual"])
    assert np.isnan(residuals[0])
    assert np.all(np.diff(residuals[1:]) <= 1e-12)


def test_mcl_pseudo_time_stepping_converges():
    solver = HyperbolicSolver(steady_config(scheme=1, dt=1 / 128, tol=1e-10))
    assert solver.config.dt <= solver.max_stable_dt
    solver.run(verbose=False)

    assert solver.evolution.reached_tolerance
    assert np.min(solver.minisnapshots["u_min"]) >= -1e-12
    assert np.max(solver.minisnapshots["u_max"]) <= 1 + 1e-12
    assert np.allclose(solver.arrays["u"], 1.0, rtol=0, atol=1e-8)


def test_time_exhaustion_keeps_latest_solution():
    solver = HyperbolicSolver(steady_config(scheme=0, final_time=0.25))
    solver.run(verbose=False)

    assert solver.n_steps == 8
    assert not solver.evolution.reached_tolerance
    assert solver.evolution.state is EvolutionState.CONVERGED
    assert np.array_equal(
        solver.evolution.final_solution(solver.arrays["u"]), solver.arrays["u"]
    )


def test_multistage_pseudo_time_stepping_warns():
    with pytest.warns(UserWarning, match="forward Euler"):
        HyperbolicSolver(steady_config(ode_solver=3))


def test_transient_problem_has_no_residual():
    solver = HyperbolicSolver(
        Configuration(setup=2, nx=8, ny=1, order=1, dt=0.01, final_time=0.05)
    )
    solver.run(verbose=False)
    assert solver.evolution.state is EvolutionState.TRANSIENT
    assert np.all(np.isnan(solver.minisnapshots["residual"]))
