"""
Scalar profiles evaluated at points `x` of shape (n, dim). Every profile returns
values in [0, 1].
"""

from typing import Optional, Sequence

import numpy as np


def _wrap(
    x: np.ndarray, lower: Sequence[float], upper: Sequence[float]
) -> np.ndarray:
    lower = np.asarray(lower, dtype=float)[: x.shape[1]]
    length = np.asarray(upper, dtype=float)[: x.shape[1]] - lower
    return lower + np.mod(x - lower, length)


def translate(
    x: np.ndarray,
    t: float,
    velocity: Sequence[float],
    lower: Sequence[float] = (0.0, 0.0),
    upper: Sequence[float] = (1.0, 1.0),
) -> np.ndarray:
    """
    Trace points back along a constant velocity on a periodic box.

    Args:
        x: Points. Has shape (n, dim).
        t: Time.
        velocity: Constant velocity of length dim.
        lower, upper: Corners of the periodic box.

    Returns:
        Departure points inside the box. Has shape (n, dim).
    """
    return _wrap(x - t * np.asarray(velocity, dtype=float), lower, upper)


def sinus(x: np.ndarray) -> np.ndarray:
    """
    Smooth profile, periodic on [0, 1] in each dimension:

        u = 0.5 + 0.5 sin(2 pi (x + y))
    """
    return 0.5 + 0.5 * np.sin(2 * np.pi * np.sum(x, axis=1))


def square(x: np.ndarray, width: float = 0.5) -> np.ndarray:
    """
    Indicator of the centered box of side `width` in the unit box.
    """
    lo, hi = 0.5 - width / 2, 0.5 + width / 2
    return np.all((x >= lo) & (x <= hi), axis=1).astype(float)


def constant(x: np.ndarray, value: float = 1.0) -> np.ndarray:
    return np.full(x.shape[0], float(value))


def circular_profile(r: np.ndarray) -> np.ndarray:
    """
    Radial profile with a step on 0.15 <= r <= 0.45 and a smooth cosine-squared
    bump on 0.55 <= r <= 0.85.
    """
    out = np.zeros_like(r, dtype=float)
    out[(r >= 0.15) & (r <= 0.45)] = 1.0
    bump = (r >= 0.55) & (r <= 0.85)
    out[bump] = np.cos(10 * np.pi * (r[bump] - 0.7) / 3) ** 2
    return out


def rotate(
    x: np.ndarray, angle: float, center: Optional[Sequence[float]] = None
) -> np.ndarray:
    """
    Rotate 2D points counterclockwise by `angle` about `center`.
    """
    c = np.array([0.5, 0.5] if center is None else center, dtype=float)
    cos, sin = np.cos(angle), np.sin(angle)
    dx, dy = x[:, 0] - c[0], x[:, 1] - c[1]
    return np.stack([c[0] + cos * dx - sin * dy, c[1] + sin * dx + cos * dy], axis=1)


def solid_body_rotation(x: np.ndarray) -> np.ndarray:
    """
    Slotted cylinder, sharp cone and smooth hump (LeVeque, 1996) in the unit
    square, each of radius 0.15.
    """
    X, Y = x[:, 0], x[:, 1]
    out = np.zeros(x.shape[0])

    # slotted cylinder
    r = np.hypot(X - 0.5, Y - 0.75) / 0.15
    slot = (np.abs(X - 0.5) < 0.025) & (Y < 0.85)
    out[(r <= 1) & ~slot] = 1.0

    # cone
    r = np.hypot(X - 0.5, Y - 0.25) / 0.15
    inside = r <= 1
    out[inside] = 1 - r[inside]

    # hump
    r = np.hypot(X - 0.25, Y - 0.5) / 0.15
    inside = r <= 1
    out[inside] = 0.25 * (1 + np.cos(np.pi * r[inside]))

    return out
