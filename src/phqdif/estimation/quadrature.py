"""Gauss-Hermite quadrature for numerical integration over the latent trait."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.special import roots_hermite


class GaussHermiteQuadrature:
    """Gauss-Hermite quadrature for integrating over normal distributions.

    This class provides nodes (quadrature points) and weights for
    numerically approximating integrals of the form:

        ∫ f(x) × φ(x) dx ≈ Σ w_i × f(x_i)

    where φ(x) is the standard normal density. Integrals against a
    different normal density N(μ, σ²) reuse the same nodes with the
    weights multiplied by the density ratio φ_{μ,σ}(x_i) / φ(x_i), which
    keeps the node grid fixed while a group's latent distribution moves
    during EM.

    Parameters
    ----------
    n_points : int, default=41
        Number of quadrature points.

    Attributes
    ----------
    nodes : ndarray of shape (n_points,)
        Quadrature nodes (points).
    weights : ndarray of shape (n_points,)
        Quadrature weights; they sum to 1.

    Examples
    --------
    >>> quad = GaussHermiteQuadrature(n_points=41)
    >>> # Approximate E[X²] where X ~ N(0,1) - should be 1
    >>> np.sum(quad.weights * quad.nodes**2)
    1.0
    """

    def __init__(self, n_points: int = 41) -> None:
        if n_points < 5:
            raise ValueError("n_points must be at least 5")

        self.n_points = n_points

        # scipy returns physicist's Hermite roots: ∫ f(x) exp(-x²) dx
        nodes, weights = roots_hermite(n_points)
        self._nodes = nodes * np.sqrt(2)
        self._weights = weights / np.sqrt(np.pi)

    @property
    def nodes(self) -> NDArray[np.float64]:
        return self._nodes.copy()

    @property
    def weights(self) -> NDArray[np.float64]:
        return self._weights.copy()

    def log_weights(self, mean: float = 0.0, var: float = 1.0) -> NDArray[np.float64]:
        """Normalized log weights for integrating against N(mean, var).

        Parameters
        ----------
        mean : float
            Mean of the target normal distribution.
        var : float
            Variance of the target normal distribution.

        Returns
        -------
        ndarray of shape (n_points,)
            Log weights that sum (after exponentiation) to 1.
        """
        if var <= 0:
            raise ValueError(f"var must be positive, got {var}")
        x = self._nodes
        log_ratio = (
            -0.5 * np.log(var) - 0.5 * (x - mean) ** 2 / var + 0.5 * x**2
        )
        log_w = np.log(self._weights) + log_ratio
        return log_w - np.logaddexp.reduce(log_w)
