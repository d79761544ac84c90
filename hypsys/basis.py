from functools import lru_cache
from typing import Tuple

import numpy as np
from scipy.special import comb


def bernstein(p: int, x: np.ndarray) -> np.ndarray:
    """
    Evaluate the Bernstein polynomials of degree p on [0, 1].

    Args:
        p: Polynomial degree.
        x: Points in [0, 1]. Has shape (n,).

    Returns:
        Array of shape (n, p + 1) whose column k is B_k^p(x).
    """
    x = np.asarray(x, dtype=float)[:, np.newaxis]
    k = np.arange(p + 1)
    return comb(p, k) * x**k * (1 - x) ** (p - k)


def bernstein_derivative(p: int, x: np.ndarray) -> np.ndarray:
    """
    Evaluate the derivatives of the Bernstein polynomials of degree p on [0, 1],

        d/dx B_k^p = p (B_{k-1}^{p-1} - B_k^{p-1}).

    Returns:
        Array of shape (n, p + 1).
    """
    x = np.asarray(x, dtype=float)
    out = np.zeros((x.size, p + 1))
    if p == 0:
        return out
    lower = bernstein(p - 1, x)
    out[:, 1:] += p * lower
    out[:, :-1] -= p * lower
    return out


@lru_cache(maxsize=None)
def gauss_legendre(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Gauss-Legendre points and weights on [0, 1]. The weights sum to 1.
    """
    points, weights = np.polynomial.legendre.leggauss(n)
    return 0.5 * (points + 1), 0.5 * weights


def bernstein_nodes(p: int) -> np.ndarray:
    """
    Equispaced nodes on [0, 1] at which Bernstein coefficients are interpolated.
    """
    if p == 0:
        return np.array([0.5])
    return np.linspace(0, 1, p + 1)
