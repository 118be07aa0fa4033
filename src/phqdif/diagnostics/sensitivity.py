"""Release-and-test sensitivity of trait scores to single-item invariance."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from phqdif.constants import ITEM_NAMES
from phqdif.multigroup import InvarianceSpec, compare_invariance_step, estimate_theta

if TYPE_CHECKING:
    from phqdif.multigroup.invariance import InvarianceTestResult
    from phqdif.multigroup.results import MultigroupFitResult
    from phqdif.results.score_result import ScoreResult


@dataclass(frozen=True)
class SensitivityResult:
    """Shift in standardized theta when one item is released.

    Attributes
    ----------
    item : str
        Released item.
    mean_signed : float
        Mean of (alternate - baseline).
    mean_absolute : float
        Mean of |alternate - baseline|.
    max_absolute : float
        Largest |alternate - baseline|.
    proportion_exceeding : float
        Share of respondents with |alternate - baseline| > threshold.
    threshold : float
        Practical-significance threshold in SD units.
    scores : ScoreResult
        Standardized scores from the released fit.
    fit : MultigroupFitResult
        Fit with the item released.
    lrt : InvarianceTestResult, optional
        Released versus fully constrained fit, when the constrained fit
        was supplied.
    """

    item: str
    mean_signed: float
    mean_absolute: float
    max_absolute: float
    proportion_exceeding: float
    threshold: float
    scores: ScoreResult
    fit: MultigroupFitResult
    lrt: InvarianceTestResult | None = None

    @property
    def impactful(self) -> bool:
        return self.proportion_exceeding > 0

    @property
    def theta(self) -> NDArray[np.float64]:
        return self.scores.theta

    def to_dict(self) -> dict[str, float | str | bool]:
        row = {
            "item": self.item,
            "mean_signed": self.mean_signed,
            "mean_absolute": self.mean_absolute,
            "max_absolute": self.max_absolute,
            "proportion_exceeding": self.proportion_exceeding,
            "threshold": self.threshold,
            "impactful": self.impactful,
        }
        if self.lrt is not None:
            row.update(lrt_chi2=self.lrt.chi2, lrt_df=self.lrt.df, lrt_p=self.lrt.p_value)
        return row


def theta_difference(
    alternate: NDArray[np.float64],
    baseline: NDArray[np.float64],
    threshold: float = 0.3,
) -> dict[str, float]:
    """Summaries of the person-level difference between two score vectors."""
    alternate = np.asarray(alternate, dtype=np.float64)
    baseline = np.asarray(baseline, dtype=np.float64)
    if alternate.shape != baseline.shape:
        raise ValueError(
            f"Score vectors differ in shape: {alternate.shape} vs {baseline.shape}"
        )
    if threshold < 0:
        raise ValueError("threshold must be non-negative")

    diff = alternate - baseline
    abs_diff = np.abs(diff)
    return {
        "mean_signed": float(diff.mean()),
        "mean_absolute": float(abs_diff.mean()),
        "max_absolute": float(abs_diff.max()),
        "proportion_exceeding": float(np.mean(abs_diff > threshold)),
    }


def release_and_test(
    data: NDArray[np.int_],
    groups: NDArray,
    item: int | str,
    baseline_theta: NDArray[np.float64],
    threshold: float = 0.3,
    constrained_fit: MultigroupFitResult | None = None,
    item_names: list[str] | None = None,
    **fit_kwargs,
) -> SensitivityResult:
    """Refit with one item released and compare scores to a baseline.

    Parameters
    ----------
    data : ndarray of shape (n_persons, n_items)
        Response matrix.
    groups : ndarray of shape (n_persons,)
        Group membership.
    item : int or str
        Item to release, by index or name.
    baseline_theta : ndarray of shape (n_persons,)
        Standardized baseline scores (usually the fully constrained fit).
    threshold : float
        Practical-significance threshold for |difference|, in SD units.
    constrained_fit : MultigroupFitResult, optional
        Fully constrained fit for the likelihood ratio test.
    item_names : list of str, optional
        Item names. Default: ``phq_1`` .. ``phq_9``.
    **fit_kwargs
        Passed to the two-group model fit.

    Returns
    -------
    SensitivityResult
        Difference summaries, alternate scores and the released fit.
    """
    names = list(item_names) if item_names is not None else list(ITEM_NAMES)
    if isinstance(item, str):
        if item not in names:
            raise ValueError(f"Unknown item: {item}")
        item_idx = names.index(item)
    else:
        item_idx = int(item)
        if item_idx < 0 or item_idx >= len(names):
            raise ValueError(f"item index {item_idx} out of range")
    item_name = names[item_idx]

    spec = InvarianceSpec.releasing(
        len(names), [item_idx], label=f"release_{item_name}"
    )
    fit, scores = estimate_theta(data, groups, spec, item_names=names, **fit_kwargs)
    summary = theta_difference(scores.theta, baseline_theta, threshold)

    lrt = None
    if constrained_fit is not None:
        lrt = compare_invariance_step(
            constrained_fit, fit, f"{constrained_fit.invariance.label} vs {spec.label}"
        )

    return SensitivityResult(
        item=item_name,
        threshold=threshold,
        scores=scores,
        fit=fit,
        lrt=lrt,
        **summary,
    )
