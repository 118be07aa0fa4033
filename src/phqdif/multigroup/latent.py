from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from phqdif.constants import PROB_EPSILON, REGULARIZATION_EPSILON
from phqdif.estimation.quadrature import GaussHermiteQuadrature


@dataclass
class GroupLatentDistribution:
    """Normal latent distribution for one group.

    Attributes
    ----------
    mean : float
        Latent mean.
    var : float
        Latent variance.
    is_reference : bool
        Whether this is the reference group with mean 0 and variance 1
        fixed for identification.
    """

    mean: float = 0.0
    var: float = 1.0
    is_reference: bool = False

    @property
    def sd(self) -> float:
        return float(np.sqrt(self.var))

    @property
    def n_free_parameters(self) -> int:
        return 0 if self.is_reference else 2

    def copy(self) -> GroupLatentDistribution:
        return GroupLatentDistribution(
            mean=self.mean, var=self.var, is_reference=self.is_reference
        )


class MultigroupLatentDensity:
    """Collection of group-specific latent distributions.

    One reference group keeps N(0, 1); the other groups' means and variances
    are re-estimated from the posterior weights each EM cycle.

    Parameters
    ----------
    n_groups : int
        Number of groups.
    reference_group : int
        Index of the reference group (0-indexed).
    """

    def __init__(self, n_groups: int = 2, reference_group: int = 0) -> None:
        if n_groups < 2:
            raise ValueError("n_groups must be at least 2")
        if reference_group < 0 or reference_group >= n_groups:
            raise ValueError(
                f"reference_group must be in [0, {n_groups}), got {reference_group}"
            )

        self.n_groups = n_groups
        self.reference_group = reference_group
        self.distributions = [
            GroupLatentDistribution(is_reference=(g == reference_group))
            for g in range(n_groups)
        ]

    def log_weights(
        self,
        quadrature: GaussHermiteQuadrature,
        group_idx: int,
    ) -> NDArray[np.float64]:
        """Log prior weights of the quadrature nodes for one group."""
        dist = self.distributions[group_idx]
        return quadrature.log_weights(dist.mean, dist.var)

    def update(
        self,
        theta_points: NDArray[np.float64],
        weights: NDArray[np.float64],
        group_idx: int,
    ) -> None:
        """Update a group's mean and variance from expected node counts.

        Parameters
        ----------
        theta_points : ndarray of shape (n_quad,)
            Quadrature nodes.
        weights : ndarray of shape (n_quad,)
            Posterior weights summed across persons.
        group_idx : int
            Group index to update.
        """
        dist = self.distributions[group_idx]
        if dist.is_reference:
            return

        weights_sum = weights.sum()
        if weights_sum < PROB_EPSILON:
            return

        weights_norm = weights / weights_sum
        mean = float(np.sum(weights_norm * theta_points))
        var = float(np.sum(weights_norm * (theta_points - mean) ** 2))
        dist.mean = mean
        dist.var = max(var, REGULARIZATION_EPSILON)

    @property
    def n_parameters(self) -> int:
        """Total number of free parameters across all distributions."""
        return sum(d.n_free_parameters for d in self.distributions)

    def copy(self) -> MultigroupLatentDensity:
        new_density = MultigroupLatentDensity(self.n_groups, self.reference_group)
        new_density.distributions = [d.copy() for d in self.distributions]
        return new_density
