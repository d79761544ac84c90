import numpy as np
import pytest

from hypsys import Configuration, HyperbolicSolver


def l1_error(nx: int, order: int, scheme: int = 0, ny: int = 1) -> float:
    config = Configuration(
        setup=2,
        nx=nx,
        ny=ny,
        order=order,
        scheme=scheme,
        ode_solver=3,
        dt=1e-3,
        final_time=0.25,
    )
    solver = HyperbolicSolver(config)
    solver.run(verbose=False)
    return solver.errors["L1"]


def test_high_order_converges_under_refinement():
    coarse, fine = l1_error(8, 2), l1_error(16, 2)
    assert coarse / fine > 2.5


def test_high_order_is_more_accurate_than_piecewise_constant():
    assert l1_error(16, 2) < l1_error(16, 0)


@pytest.mark.parametrize("order", [1, 2])
def test_limited_solution_converges(order):
    coarse, fine = l1_error(8, order, scheme=1), l1_error(16, order, scheme=1)
    assert coarse / fine > 1.5


def test_2d_errors_decrease():
    errors = np.array([l1_error(n, 1, ny=n) for n in (4, 8)])
    assert errors[1] < errors[0]
