"""Expected A Posteriori (EAP) scoring under group-specific priors."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from phqdif._core import logsumexp, standardize
from phqdif.estimation.quadrature import GaussHermiteQuadrature
from phqdif.results.score_result import ScoreResult
from phqdif.utils.collapse import collapse_patterns

if TYPE_CHECKING:
    from phqdif.multigroup.results import MultigroupFitResult


class EAPScorer:
    """Expected A Posteriori (EAP) ability estimation.

    EAP scoring computes the posterior mean of theta given the response pattern:

    θ_EAP = E[θ|X] = ∫ θ × L(X|θ) × π_g(θ) dθ / ∫ L(X|θ) × π_g(θ) dθ

    where L is the likelihood under the respondent's group-specific item
    parameters and π_g is the group's estimated latent distribution.

    The posterior standard deviation (PSD) is returned as the standard error:

    PSD = sqrt(E[(θ - θ_EAP)²|X])

    Parameters
    ----------
    n_quadpts : int, default=41
        Number of quadrature points.
    standardize : bool, default=True
        Rescale the posterior means to mean 0 and SD 1 (ddof=1) over all
        respondents.

    Examples
    --------
    >>> scorer = EAPScorer(n_quadpts=41)
    >>> result = scorer.score(fit, responses, group_index)
    >>> print(result.theta)
    """

    def __init__(self, n_quadpts: int = 41, standardize: bool = True) -> None:
        if n_quadpts < 5:
            raise ValueError("n_quadpts should be at least 5")

        self.n_quadpts = n_quadpts
        self.standardize = standardize

    def score(
        self,
        fit: MultigroupFitResult,
        responses: NDArray[np.int_],
        group_index: NDArray[np.int_],
        variant: str | None = None,
        person_ids: list | None = None,
    ) -> ScoreResult:
        """Compute EAP scores for all persons.

        Parameters
        ----------
        fit : MultigroupFitResult
            Fitted two-group model.
        responses : ndarray of shape (n_persons, n_items)
            Response matrix.
        group_index : ndarray of shape (n_persons,)
            Group index (0 = reference) of each person.
        variant : str, optional
            Name of the invariance variant, stored on the result.
        person_ids : list, optional
            Identifiers for each person.

        Returns
        -------
        ScoreResult
            Theta estimates with posterior standard deviations.
        """
        if not fit.model.is_fitted:
            raise ValueError("Model must be fitted before scoring")

        responses = np.asarray(responses)
        group_index = np.asarray(group_index)
        if responses.shape[0] != group_index.shape[0]:
            raise ValueError(
                f"responses has {responses.shape[0]} rows but group_index has "
                f"{group_index.shape[0]}"
            )

        quadrature = GaussHermiteQuadrature(n_points=self.n_quadpts)
        quad_points = quadrature.nodes

        theta_eap = np.zeros(responses.shape[0])
        theta_se = np.zeros(responses.shape[0])

        for g, dist in enumerate(fit.latent_distributions):
            mask = group_index == g
            if not np.any(mask):
                continue

            collapsed = collapse_patterns(responses[mask])
            group_model = fit.model.get_group_model(g)

            log_likes = group_model.log_likelihood_batch(collapsed.patterns, quad_points)
            log_posterior = log_likes + quadrature.log_weights(dist.mean, dist.var)[None, :]
            log_posterior -= logsumexp(log_posterior, axis=1, keepdims=True)
            posterior = np.exp(log_posterior)

            eap = posterior @ quad_points
            variance = np.sum(posterior * (quad_points[None, :] - eap[:, None]) ** 2, axis=1)

            theta_eap[mask] = collapsed.expand(eap)
            theta_se[mask] = collapsed.expand(np.sqrt(variance))

        theta = standardize(theta_eap) if self.standardize else theta_eap.copy()

        return ScoreResult(
            theta=theta,
            raw_theta=theta_eap,
            standard_error=theta_se,
            method="EAP",
            variant=variant,
            person_ids=person_ids,
        )
