"""
Norms of discrete errors. The `*_sum` functions return the unnormalized partial
sums a partitioned solution reduces over its ranks before normalizing.
"""

from typing import Optional

import numpy as np


def _total_weight(array: np.ndarray, weights: Optional[np.ndarray]) -> float:
    if weights is None:
        return float(array.size)
    return float(np.sum(np.broadcast_to(weights, array.shape)))


def l1_sum(array: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    """
    Weighted sum of absolute values, sum_i w_i |a_i|.
    """
    array = np.abs(np.asarray(array, dtype=float))
    return float(np.sum(array if weights is None else weights * array))


def l2_sum(array: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    """
    Weighted sum of squares, sum_i w_i a_i^2.
    """
    array = np.square(np.asarray(array, dtype=float))
    return float(np.sum(array if weights is None else weights * array))


def l1_norm(array: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    """
    Compute the (weighted) mean absolute value of an array.
    """
    array = np.asarray(array, dtype=float)
    return l1_sum(array, weights) / _total_weight(array, weights)


def l2_norm(array: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    """
    Compute the (weighted) root mean square of an array.
    """
    array = np.asarray(array, dtype=float)
    return float(np.sqrt(l2_sum(array, weights) / _total_weight(array, weights)))


def linf_norm(array: np.ndarray) -> float:
    """
    Compute the L-infinity norm of an array, 0 for an empty array.
    """
    return float(np.max(np.abs(array), initial=0.0))
