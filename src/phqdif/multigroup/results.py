from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import pandas as pd

if TYPE_CHECKING:
    from phqdif.multigroup.invariance import InvarianceSpec
    from phqdif.multigroup.latent import GroupLatentDistribution
    from phqdif.multigroup.model import MultigroupModel


@dataclass
class MultigroupFitResult:
    """Results from a two-group GRM fit.

    Attributes
    ----------
    model : MultigroupModel
        The fitted multigroup model.
    invariance : InvarianceSpec
        Invariance constraints used in the fit.
    log_likelihood : float
        Marginal log-likelihood summed over groups.
    n_iterations : int
        Number of EM cycles until convergence.
    converged : bool
        Whether the log-likelihood change fell below the tolerance.
    group_log_likelihoods : list[float]
        Per-group marginal log-likelihood.
    group_n_observations : list[int]
        Sample size per group.
    latent_distributions : list[GroupLatentDistribution]
        Estimated latent distributions per group.
    aic : float
        Akaike Information Criterion.
    bic : float
        Bayesian Information Criterion.
    n_parameters : int
        Free item and latent parameters.
    n_observations : int
        Total sample size.
    n_quadpts : int
        Quadrature points used during estimation.
    seed : int, optional
        Seed passed to the estimator.
    """

    model: MultigroupModel
    invariance: InvarianceSpec
    log_likelihood: float
    n_iterations: int
    converged: bool
    group_log_likelihoods: list[float]
    group_n_observations: list[int]
    latent_distributions: list[GroupLatentDistribution]
    aic: float
    bic: float
    n_parameters: int
    n_observations: int
    n_quadpts: int
    seed: int | None = None

    @property
    def n_groups(self) -> int:
        return self.model.n_groups

    @property
    def group_labels(self) -> list[str]:
        return self.model.group_labels

    @property
    def item_names(self) -> list[str]:
        return self.model.item_names

    def coef(self, group: int | str | None = None) -> pd.DataFrame:
        """Extract item parameters for one or both groups.

        Parameters
        ----------
        group : int, str, or None
            Group index, label, or None for both groups.

        Returns
        -------
        DataFrame
            One row per item (and group) with ``discrimination``,
            ``threshold_1`` .. ``threshold_3`` and ``invariant``.
        """
        if group is None:
            groups = list(range(self.n_groups))
        elif isinstance(group, str):
            if group not in self.group_labels:
                raise ValueError(f"Unknown group label: {group}")
            groups = [self.group_labels.index(group)]
        else:
            groups = [group]

        rows = []
        for g in groups:
            params = self.model.get_group_parameters(g)
            for item_idx, name in enumerate(self.item_names):
                row = {
                    "group": self.group_labels[g],
                    "item": name,
                    "discrimination": params["discrimination"][item_idx],
                }
                for k, b in enumerate(params["thresholds"][item_idx], start=1):
                    row[f"threshold_{k}"] = b
                row["invariant"] = self.model.is_item_shared(item_idx)
                rows.append(row)

        frame = pd.DataFrame(rows)
        if group is not None:
            frame = frame.drop(columns="group").set_index("item")
        return frame

    def latent_pars(self) -> pd.DataFrame:
        """Latent means and variances per group."""
        return pd.DataFrame(
            [
                {
                    "group": self.group_labels[g],
                    "is_reference": dist.is_reference,
                    "mean": dist.mean,
                    "variance": dist.var,
                }
                for g, dist in enumerate(self.latent_distributions)
            ]
        )

    def fit_statistics(self) -> dict[str, float]:
        return {
            "log_likelihood": self.log_likelihood,
            "AIC": self.aic,
            "BIC": self.bic,
            "n_parameters": self.n_parameters,
            "n_observations": self.n_observations,
            "converged": self.converged,
            "n_iterations": self.n_iterations,
        }

    def summary(self) -> str:
        """Generate formatted summary string."""
        lines = []
        lines.append("=" * 60)
        lines.append("Two-group GRM Results")
        lines.append("=" * 60)
        lines.append(f"Model: {self.model.model_name}")
        lines.append(f"Invariance: {self.invariance.label or 'custom'}")
        invariant = [self.item_names[i] for i in sorted(self.invariance.invariant_items)]
        free = [self.item_names[i] for i in self.invariance.free_items]
        lines.append(f"  Invariant items: {', '.join(invariant)}")
        lines.append(f"  Free items: {', '.join(free) if free else 'none'}")
        lines.append("")

        lines.append("Fit Statistics:")
        lines.append("-" * 40)
        lines.append(f"  Log-likelihood: {self.log_likelihood:.4f}")
        lines.append(f"  AIC: {self.aic:.4f}")
        lines.append(f"  BIC: {self.bic:.4f}")
        lines.append(f"  Free parameters: {self.n_parameters}")
        lines.append(f"  Converged: {self.converged}")
        lines.append(f"  Iterations: {self.n_iterations}")
        lines.append("")

        lines.append("Groups:")
        lines.append("-" * 40)
        for g, dist in enumerate(self.latent_distributions):
            ref_str = " (reference)" if dist.is_reference else ""
            lines.append(
                f"  {self.group_labels[g]}{ref_str}: "
                f"n={self.group_n_observations[g]}, "
                f"mean={dist.mean:.4f}, var={dist.var:.4f}, "
                f"LL={self.group_log_likelihoods[g]:.4f}"
            )
        lines.append("=" * 60)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"MultigroupFitResult("
            f"invariance={self.invariance.label or sorted(self.invariance.invariant_items)}, "
            f"LL={self.log_likelihood:.2f}, "
            f"converged={self.converged})"
        )
