"""Core utility functions with no internal dependencies.

This module provides fundamental numerical helpers used throughout the
package without depending on other phqdif modules, avoiding circular
imports.
"""

import numpy as np
from numpy.typing import NDArray
from scipy.special import logsumexp as _scipy_logsumexp


def sigmoid(x: NDArray[np.floating] | float) -> NDArray[np.floating] | float:
    """Compute sigmoid function with numerical stability.

    Uses the identity sigmoid(-x) = 1 - sigmoid(x) to avoid overflow
    for large negative values.

    Parameters
    ----------
    x : array_like or float
        Input values.

    Returns
    -------
    array_like or float
        Sigmoid of input, same shape as input.
    """
    x = np.asarray(x, dtype=np.float64)
    e = np.exp(-np.abs(x))
    result = np.where(x >= 0, 1.0 / (1.0 + e), e / (1.0 + e))
    return float(result) if result.ndim == 0 else result


def logsumexp(
    a: NDArray[np.float64],
    axis: int | None = None,
    keepdims: bool = False,
) -> NDArray[np.float64]:
    """Log of the sum of exponentials along an axis."""
    return _scipy_logsumexp(a, axis=axis, keepdims=keepdims)


def standardize(values: NDArray[np.float64], ddof: int = 1) -> NDArray[np.float64]:
    """Rescale values to mean 0 and standard deviation 1.

    Parameters
    ----------
    values : ndarray
        Values to rescale.
    ddof : int
        Delta degrees of freedom for the standard deviation.

    Returns
    -------
    ndarray
        Standardized copy of ``values``.

    Raises
    ------
    ValueError
        If the values have zero spread.
    """
    values = np.asarray(values, dtype=np.float64)
    sd = values.std(ddof=ddof)
    if not np.isfinite(sd) or sd <= 0:
        raise ValueError("Cannot standardize values with zero variance")
    return (values - values.mean()) / sd
