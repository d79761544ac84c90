import numpy as np
import pandas as pd
import pytest

from hypsys.config import Configuration
from hypsys.fe_space import DGSpace
from hypsys.hyperbolic_system import Advection, build_hyperbolic_system
from hypsys.mesh import CartesianMesh


def test_registry():
    assert isinstance(build_hyperbolic_system(Configuration(problem=0)), Advection)
    with pytest.raises(ValueError, match="Unknown hyperbolic system: 7"):
        build_hyperbolic_system(Configuration(problem=7))


def test_unknown_setup():
    with pytest.raises(ValueError, match="Unknown advection setup: 9"):
        Advection(Configuration(setup=9))


def test_rotation_requires_2d():
    with pytest.raises(ValueError, match="requires a 2D mesh"):
        Advection(Configuration(setup=1, ny=1))


@pytest.mark.parametrize(
    "setup, steady, periodic",
    [(0, True, False), (1, False, False), (2, False, True), (3, False, True)],
)
def test_capabilities(setup, steady, periodic):
    physics = Advection(Configuration(setup=setup))
    assert physics.steady_state == steady
    assert physics.solution_known
    assert not physics.time_dependent_bc
    assert physics.periodic == (periodic, periodic)


def test_flux_is_linear_in_u():
    physics = Advection(Configuration(setup=1))
    x = np.random.default_rng(0).random((10, 2))
    u = np.linspace(-1, 1, 10)
    assert np.allclose(physics.evaluate_flux(u, x), u[:, np.newaxis] * physics.velocity(x))


@pytest.mark.parametrize("setup", [0, 1])
def test_velocity_is_divergence_free(setup):
    physics = Advection(Configuration(setup=setup))
    x = np.random.default_rng(1).random((20, 2))
    eps = 1e-6
    div = np.zeros(20)
    for d in range(2):
        shift = np.zeros(2)
        shift[d] = eps
        v_plus = physics.velocity(x + shift)[:, d]
        v_minus = physics.velocity(x - shift)[:, d]
        div += (v_plus - v_minus) / (2 * eps)
    assert np.allclose(div, 0.0, atol=1e-8)


@pytest.mark.parametrize("setup, dim", [(1, 2), (2, 1), (2, 2), (3, 1), (3, 2)])
def test_exact_solution_is_periodic_in_time(setup, dim):
    config = Configuration(setup=setup, ny=1 if dim == 1 else 16)
    physics = Advection(config)
    x = np.random.default_rng(2).random((50, dim))
    assert np.allclose(physics.exact_solution(x, 1.0), physics.initial_condition(x))


def test_steady_state_starts_from_zero():
    physics = Advection(Configuration(setup=0))
    x = np.random.default_rng(3).random((5, 2))
    assert np.array_equal(physics.initial_condition(x), np.zeros(5))
    assert np.array_equal(physics.inflow(x, 0.0), physics.exact_solution(x, 0.0))


def test_compute_and_write_errors(tmp_path):
    config = Configuration(setup=0, ny=1, nx=4, order=2)
    physics = Advection(config)
    space = DGSpace(CartesianMesh(nx=4), 2)
    elements = np.arange(4)

    # the 1D steady solution is the constant 1
    errors = physics.compute_errors(space, np.ones(space.n_dofs), elements, 0.0, 1.0)
    assert set(errors) == {"L1", "L2", "Linf"}
    assert all(v == pytest.approx(0.0, abs=1e-14) for v in errors.values())

    errors = physics.compute_errors(
        space, np.full(space.n_dofs, 0.5), elements, 0.0, 1.0
    )
    assert errors["L1"] == pytest.approx(0.5)
    assert errors["L2"] == pytest.approx(0.5)
    assert errors["Linf"] == pytest.approx(0.5)

    physics.write_errors(errors, tmp_path)
    physics.write_errors(errors, tmp_path)
    df = pd.read_csv(tmp_path / "errors.csv")
    assert len(df) == 2
    assert list(df.columns) == ["problem", "setup", "order", "scheme", "L1", "L2", "Linf"]
    assert df["scheme"].iloc[0] == "STANDARD"
