"""Graded Response Model for ordered PHQ-9 response categories."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from phqdif._core import sigmoid
from phqdif.constants import PROB_CLIP_MAX, PROB_CLIP_MIN, PROB_EPSILON
from phqdif.models.base import PolytomousItemModel


class GradedResponseModel(PolytomousItemModel):
    """Graded Response Model (GRM) - Samejima (1969).

    The GRM is a cumulative logit model for ordered polytomous responses.
    It models the probability of responding in category k or higher:

    P*(X ≥ k|θ) = 1 / (1 + exp(-a(θ - b_k)))

    The probability of responding in exactly category k is:

    P(X = k|θ) = P*(X ≥ k|θ) - P*(X ≥ k+1|θ)

    Parameters
    ----------
    n_items : int
        Number of items.
    n_categories : int
        Number of response categories per item. Categories are 0, 1, ..., K-1.
    item_names : list of str, optional
        Names for each item.

    Attributes
    ----------
    discrimination : ndarray of shape (n_items,)
        Item discrimination (slope) parameters.
    thresholds : ndarray of shape (n_items, n_categories - 1)
        Ordered category boundary locations.

    Examples
    --------
    >>> model = GradedResponseModel(n_items=9, n_categories=4)
    >>> theta = np.linspace(-3, 3, 100)
    >>> probs = model.probability(theta, item_idx=0)
    >>> print(probs.shape)  # (100, 4)
    """

    model_name = "GRM"

    def _initialize_parameters(self) -> None:
        """Initialize parameters with default values."""
        self._parameters["discrimination"] = np.ones(self.n_items)
        self._parameters["thresholds"] = np.tile(
            np.linspace(-2, 2, self._n_categories - 1), (self.n_items, 1)
        )

    def initialize_from_data(self, responses: NDArray[np.int_]) -> None:
        """Set start values from marginal cumulative proportions.

        Thresholds start at -logit(P(X ≥ k)), which are ordered because the
        cumulative proportions decrease in k. Discriminations start at 1.

        Parameters
        ----------
        responses : ndarray of shape (n_persons, n_items)
            Response matrix.
        """
        responses = np.asarray(responses)
        thresholds = np.zeros((self.n_items, self._n_categories - 1))
        for j in range(self.n_items):
            for k in range(1, self._n_categories):
                p = np.clip(np.mean(responses[:, j] >= k), PROB_CLIP_MIN, PROB_CLIP_MAX)
                thresholds[j, k - 1] = -np.log(p / (1 - p))
            thresholds[j] = np.maximum.accumulate(thresholds[j])
        self._parameters["discrimination"] = np.ones(self.n_items)
        self._parameters["thresholds"] = thresholds

    @property
    def discrimination(self) -> NDArray[np.float64]:
        """Item discrimination parameters."""
        return self._parameters["discrimination"]

    @property
    def thresholds(self) -> NDArray[np.float64]:
        """Item threshold parameters."""
        return self._parameters["thresholds"]

    def cumulative_probability(
        self,
        theta: NDArray[np.float64],
        item_idx: int,
    ) -> NDArray[np.float64]:
        """Compute P*(X ≥ k|θ) for every category boundary of one item.

        Parameters
        ----------
        theta : ndarray of shape (n_points,)
            Latent trait values.
        item_idx : int
            Item index.

        Returns
        -------
        ndarray of shape (n_points, n_categories - 1)
            Cumulative probabilities, non-increasing across columns.
        """
        theta = np.asarray(theta, dtype=np.float64).ravel()
        a = self._parameters["discrimination"][item_idx]
        b = self._parameters["thresholds"][item_idx]
        return sigmoid(a * (theta[:, None] - b[None, :]))

    def probability(
        self,
        theta: NDArray[np.float64],
        item_idx: int,
    ) -> NDArray[np.float64]:
        """Compute category probabilities for one item.

        Parameters
        ----------
        theta : ndarray of shape (n_points,)
            Latent trait values.
        item_idx : int
            Item index.

        Returns
        -------
        ndarray of shape (n_points, n_categories)
            Category probabilities; rows sum to 1.
        """
        cum = self.cumulative_probability(theta, item_idx)
        n_points = cum.shape[0]
        bounded = np.column_stack([np.ones(n_points), cum, np.zeros(n_points)])
        return bounded[:, :-1] - bounded[:, 1:]

    def log_probability_table(
        self,
        theta: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Log category probabilities for all items at all theta points.

        Returns
        -------
        ndarray of shape (n_items, n_points, n_categories)
        """
        return np.stack(
            [
                np.log(np.clip(self.probability(theta, j), PROB_EPSILON, None))
                for j in range(self.n_items)
            ]
        )

    def log_likelihood_batch(
        self,
        responses: NDArray[np.int_],
        theta: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Log-likelihood of every response pattern at every theta point.

        Parameters
        ----------
        responses : ndarray of shape (n_persons, n_items)
            Response matrix with categories 0, 1, ..., K-1.
        theta : ndarray of shape (n_points,)
            Latent trait values (e.g. quadrature nodes).

        Returns
        -------
        ndarray of shape (n_persons, n_points)
        """
        responses = np.asarray(responses)
        log_probs = self.log_probability_table(theta)
        n_points = log_probs.shape[1]
        ll = np.zeros((responses.shape[0], n_points))
        for j in range(self.n_items):
            ll += log_probs[j][:, responses[:, j]].T
        return ll
