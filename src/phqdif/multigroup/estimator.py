from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize

from phqdif._core import logsumexp, sigmoid
from phqdif.constants import PROB_EPSILON
from phqdif.errors import ConvergenceError
from phqdif.estimation.quadrature import GaussHermiteQuadrature
from phqdif.multigroup.latent import MultigroupLatentDensity
from phqdif.multigroup.results import MultigroupFitResult
from phqdif.utils.collapse import CollapsedData, collapse_patterns

if TYPE_CHECKING:
    from phqdif.multigroup.invariance import InvarianceSpec
    from phqdif.multigroup.model import MultigroupModel


DISCRIMINATION_BOUNDS = (0.1, 5.0)
THRESHOLD_BOUNDS = (-6.0, 6.0)


class MultigroupEMEstimator:
    """EM estimator for the two-group graded response model.

    Item parameters and the focal group's latent mean and variance are
    estimated by marginal maximum likelihood, integrating over Gauss-Hermite
    quadrature nodes. Invariant items are optimized once on expected counts
    pooled over both groups; free items are optimized per group.

    Parameters
    ----------
    n_quadpts : int
        Number of quadrature points for numerical integration.
    max_iter : int
        Maximum number of EM cycles.
    tol : float
        Convergence tolerance for the absolute log-likelihood change.
    verbose : bool
        Print iteration progress.
    prob_epsilon : float
        Minimum probability for numerical stability.
    item_optim_maxiter : int
        Maximum iterations for item parameter optimization.
    item_optim_ftol : float
        Tolerance for item parameter optimization.
    seed : int, optional
        Recorded on the result. Estimation is deterministic.
    """

    def __init__(
        self,
        n_quadpts: int = 41,
        max_iter: int = 500,
        tol: float = 1e-3,
        verbose: bool = False,
        prob_epsilon: float = PROB_EPSILON,
        item_optim_maxiter: int = 50,
        item_optim_ftol: float = 1e-8,
        seed: int | None = None,
    ) -> None:
        if n_quadpts < 5:
            raise ValueError("n_quadpts must be at least 5")
        if max_iter < 1:
            raise ValueError("max_iter must be at least 1")
        if tol <= 0:
            raise ValueError("tol must be positive")

        self.n_quadpts = n_quadpts
        self.max_iter = max_iter
        self.tol = tol
        self.verbose = verbose
        self.prob_epsilon = prob_epsilon
        self.item_optim_maxiter = item_optim_maxiter
        self.item_optim_ftol = item_optim_ftol
        self.seed = seed

        self._quadrature = GaussHermiteQuadrature(n_points=n_quadpts)
        self._latent_density: MultigroupLatentDensity | None = None
        self._convergence_history: list[float] = []

    def fit(
        self,
        model: MultigroupModel,
        responses: list[NDArray[np.int_]],
        invariance: InvarianceSpec,
        reference_group: int = 0,
    ) -> MultigroupFitResult:
        """Fit the multigroup model with simultaneous EM.

        Parameters
        ----------
        model : MultigroupModel
            The multigroup model to fit; updated in place.
        responses : list of ndarray
            Response matrices, one per group, each (n_persons_g, n_items).
        invariance : InvarianceSpec
            Items constrained equal across groups.
        reference_group : int
            Index of the group whose latent distribution is fixed at N(0, 1).

        Returns
        -------
        MultigroupFitResult
            Fitted model results.

        Raises
        ------
        IdentifiabilityError
            If fewer than two items are invariant.
        ConvergenceError
            If the log-likelihood has not stabilized after ``max_iter`` cycles.
        """
        if len(responses) != model.n_groups:
            raise ValueError(
                f"Number of response matrices ({len(responses)}) must match "
                f"n_groups ({model.n_groups})"
            )

        responses = [np.asarray(r, dtype=np.int_) for r in responses]
        for g, r in enumerate(responses):
            if r.ndim != 2 or r.shape[1] != model.n_items:
                raise ValueError(
                    f"Group {g} responses must have shape (n, {model.n_items})"
                )

        invariance.validate(model.item_names)
        invariance.apply_to_model(model)

        collapsed = [collapse_patterns(r) for r in responses]
        indicators = [self._category_indicators(c, model) for c in collapsed]

        self._latent_density = MultigroupLatentDensity(
            n_groups=model.n_groups,
            reference_group=reference_group,
        )

        pooled = np.vstack(responses)
        for g in range(model.n_groups):
            model.get_group_model(g).initialize_from_data(pooled)

        self._convergence_history = []
        prev_ll = -np.inf
        ll_change = np.inf
        converged = False
        n_iterations = 0

        for iteration in range(self.max_iter):
            posterior_weights, group_lls = self._e_step(model, collapsed)

            current_ll = float(sum(group_lls))
            self._convergence_history.append(current_ll)
            n_iterations = iteration + 1

            if self.verbose:
                print(f"Iteration {n_iterations}: LL = {current_ll:.4f}")

            ll_change = abs(current_ll - prev_ll)
            if ll_change < self.tol:
                converged = True
                if self.verbose:
                    print(f"Converged at iteration {n_iterations}")
                break

            prev_ll = current_ll

            self._m_step(model, indicators, posterior_weights)

            for g in range(model.n_groups):
                n_k = posterior_weights[g].sum(axis=0)
                self._latent_density.update(self._quadrature.nodes, n_k, g)

        if not converged:
            raise ConvergenceError(
                f"EM did not converge in {self.max_iter} iterations "
                f"(last LL change {ll_change:.2e}, tol {self.tol:.0e})"
            )

        model.mark_fitted()

        group_n = [r.shape[0] for r in responses]
        total_n = sum(group_n)
        n_params = model.n_parameters + self._latent_density.n_parameters

        return MultigroupFitResult(
            model=model,
            invariance=invariance,
            log_likelihood=current_ll,
            n_iterations=n_iterations,
            converged=converged,
            group_log_likelihoods=[float(ll) for ll in group_lls],
            group_n_observations=group_n,
            latent_distributions=[d.copy() for d in self._latent_density.distributions],
            aic=-2 * current_ll + 2 * n_params,
            bic=-2 * current_ll + np.log(total_n) * n_params,
            n_parameters=n_params,
            n_observations=total_n,
            n_quadpts=self.n_quadpts,
            seed=self.seed,
        )

    @staticmethod
    def _category_indicators(
        collapsed: CollapsedData,
        model: MultigroupModel,
    ) -> list[NDArray[np.float64]]:
        """One-hot category indicators per item, each (n_patterns, K)."""
        eye = np.eye(model.n_categories)
        return [eye[collapsed.patterns[:, j]] for j in range(model.n_items)]

    def _e_step(
        self,
        model: MultigroupModel,
        collapsed: list[CollapsedData],
    ) -> tuple[list[NDArray[np.float64]], list[float]]:
        """E-step: frequency-weighted posterior weights for each group.

        Returns
        -------
        posterior_weights : list of ndarray
            Per group, shape (n_patterns_g, n_quad); rows sum to the
            pattern frequency.
        group_lls : list of float
            Marginal log-likelihood per group.
        """
        quad_points = self._quadrature.nodes

        posterior_weights = []
        group_lls = []

        for g in range(model.n_groups):
            group_model = model.get_group_model(g)
            data = collapsed[g]

            log_likelihoods = group_model.log_likelihood_batch(data.patterns, quad_points)
            log_prior = self._latent_density.log_weights(self._quadrature, g)

            log_joint = log_likelihoods + log_prior[None, :]
            log_marginal = logsumexp(log_joint, axis=1, keepdims=True)
            post_w = np.exp(log_joint - log_marginal) * data.frequencies[:, None]

            posterior_weights.append(post_w)
            group_lls.append(data.weighted_sum(log_marginal.ravel()))

        return posterior_weights, group_lls

    def _m_step(
        self,
        model: MultigroupModel,
        indicators: list[list[NDArray[np.float64]]],
        posterior_weights: list[NDArray[np.float64]],
    ) -> None:
        """M-step: update item parameters respecting invariance constraints."""
        for item_idx in range(model.n_items):
            # r[g] has shape (n_quad, K): expected respondents per node and category
            r = [
                posterior_weights[g].T @ indicators[g][item_idx]
                for g in range(model.n_groups)
            ]

            if model.is_item_shared(item_idx):
                params = self._optimize_item(
                    model.get_item_parameters(item_idx, 0), np.sum(r, axis=0)
                )
                model.set_item_parameters(item_idx, params)
            else:
                for g in range(model.n_groups):
                    params = self._optimize_item(
                        model.get_item_parameters(item_idx, g), r[g]
                    )
                    model.set_item_parameters(item_idx, params, group_idx=g)

    def _optimize_item(
        self,
        current: NDArray[np.float64],
        r_kc: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Maximize one item's expected log-likelihood over [a, b_1..b_{K-1}]."""
        quad_points = self._quadrature.nodes
        eps = self.prob_epsilon
        n_thresholds = current.shape[0] - 1

        def neg_expected_log_likelihood(
            params: NDArray[np.float64],
        ) -> tuple[float, NDArray[np.float64]]:
            a = params[0]
            b = params[1:]
            centered = quad_points[:, None] - b[None, :]
            cum = sigmoid(a * centered)

            n_quad = quad_points.shape[0]
            ones = np.ones((n_quad, 1))
            zeros = np.zeros((n_quad, 1))
            bounded = np.hstack([ones, cum, zeros])
            probs = np.clip(bounded[:, :-1] - bounded[:, 1:], eps, None)

            ll = np.sum(r_kc * np.log(probs))

            ratio = r_kc / probs
            w = cum * (1 - cum)
            d_cum_da = np.hstack([zeros, w * centered, zeros])
            d_probs_da = d_cum_da[:, :-1] - d_cum_da[:, 1:]
            grad_a = np.sum(ratio * d_probs_da)
            grad_b = -np.sum(a * w * (ratio[:, :-1] - ratio[:, 1:]), axis=0)

            return -ll, -np.concatenate([[grad_a], grad_b])

        bounds = [DISCRIMINATION_BOUNDS] + [THRESHOLD_BOUNDS] * n_thresholds
        x0 = np.clip(
            current,
            [lo for lo, _ in bounds],
            [hi for _, hi in bounds],
        )

        result = minimize(
            neg_expected_log_likelihood,
            x0=x0,
            jac=True,
            method="L-BFGS-B",
            bounds=bounds,
            options={"maxiter": self.item_optim_maxiter, "ftol": self.item_optim_ftol},
        )
        return result.x

    @property
    def convergence_history(self) -> list[float]:
        """Log-likelihood history across iterations."""
        return self._convergence_history.copy()
