"""Ordinal logistic regression DIF detection with iterative purification.

Each item is tested with three nested cumulative logit models of the item
response on a provisional trait score:

    (1) item ~ theta
    (2) item ~ theta + group
    (3) item ~ theta + group + theta:group

The 1-2 comparison captures uniform DIF, 2-3 non-uniform DIF and 1-3 the
total. Items flagged by the chosen criterion leave the anchor set, the trait
score is re-estimated from the remaining anchors, and the scan repeats until
the flagged set stops changing.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Literal

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats

from phqdif.constants import ITEM_NAMES, MIN_ANCHOR_ITEMS
from phqdif.diagnostics._ordinal import (
    design_matrix,
    fit_ordinal,
    nagelkerke_r2,
    null_log_likelihood,
)
from phqdif.errors import IdentifiabilityError, NonConvergenceError
from phqdif.multigroup import InvarianceSpec, estimate_theta
from phqdif.utils.data import encode_groups, validate_responses

if TYPE_CHECKING:
    from phqdif.multigroup.results import MultigroupFitResult
    from phqdif.results.score_result import ScoreResult


DIFClassification = Literal["none", "uniform", "non-uniform"]


@dataclass(frozen=True)
class DIFCriterion:
    """Flagging rule for the ordinal logistic DIF scan.

    Parameters
    ----------
    criterion : {'r2', 'chisqr', 'beta'}
        ``'r2'`` flags an item when any Nagelkerke R² change reaches
        ``r2_change``; ``'chisqr'`` when any likelihood ratio p-value is
        below ``alpha``; ``'beta'`` when the relative change of the theta
        coefficient reaches ``beta_change``.
    r2_change : float
        Pseudo-R² change threshold.
    alpha : float
        Significance level.
    beta_change : float
        Proportional theta coefficient change threshold.
    """

    criterion: Literal["r2", "chisqr", "beta"] = "r2"
    r2_change: float = 0.02
    alpha: float = 0.01
    beta_change: float = 0.1

    def __post_init__(self) -> None:
        if self.criterion not in ("r2", "chisqr", "beta"):
            raise ValueError(f"Unknown DIF criterion: {self.criterion}")
        if self.r2_change < 0:
            raise ValueError("r2_change must be non-negative")
        if not 0 < self.alpha < 1:
            raise ValueError("alpha must be in (0, 1)")
        if self.beta_change < 0:
            raise ValueError("beta_change must be non-negative")

    def classify(self, item_stats: ItemDIFStatistics) -> DIFClassification:
        """Classify one item's statistics as no, uniform or non-uniform DIF."""
        if self.criterion == "r2":
            steps = (item_stats.r2_12, item_stats.r2_13, item_stats.r2_23)
            hits = [s >= self.r2_change for s in steps]
        elif self.criterion == "chisqr":
            steps = (item_stats.p12, item_stats.p13, item_stats.p23)
            hits = [p < self.alpha for p in steps]
        else:
            if item_stats.beta12 >= self.beta_change:
                return "uniform"
            return "none"

        if not any(hits):
            return "none"
        return "non-uniform" if hits[2] else "uniform"


@dataclass(frozen=True)
class ItemDIFStatistics:
    """Nested ordinal model comparison for one item."""

    item: str
    n_obs: int
    ll1: float
    ll2: float
    ll3: float
    r2_1: float
    r2_2: float
    r2_3: float
    beta1: float
    beta2: float
    flagged: bool = False
    classification: DIFClassification = "none"

    @property
    def chi12(self) -> float:
        return max(2.0 * (self.ll2 - self.ll1), 0.0)

    @property
    def chi13(self) -> float:
        return max(2.0 * (self.ll3 - self.ll1), 0.0)

    @property
    def chi23(self) -> float:
        return max(2.0 * (self.ll3 - self.ll2), 0.0)

    @property
    def p12(self) -> float:
        return float(stats.chi2.sf(self.chi12, df=1))

    @property
    def p13(self) -> float:
        return float(stats.chi2.sf(self.chi13, df=2))

    @property
    def p23(self) -> float:
        return float(stats.chi2.sf(self.chi23, df=1))

    @property
    def r2_12(self) -> float:
        return self.r2_2 - self.r2_1

    @property
    def r2_13(self) -> float:
        return self.r2_3 - self.r2_1

    @property
    def r2_23(self) -> float:
        return self.r2_3 - self.r2_2

    @property
    def beta12(self) -> float:
        """Proportional change of the theta coefficient when group is added."""
        if self.beta1 == 0:
            return np.inf if self.beta2 != 0 else 0.0
        return abs((self.beta1 - self.beta2) / self.beta1)

    def to_dict(self) -> dict[str, float | str | bool]:
        return {
            "item": self.item,
            "n_obs": self.n_obs,
            "chi12": self.chi12,
            "p12": self.p12,
            "chi13": self.chi13,
            "p13": self.p13,
            "chi23": self.chi23,
            "p23": self.p23,
            "beta12": self.beta12,
            "r2_1": self.r2_1,
            "r2_2": self.r2_2,
            "r2_3": self.r2_3,
            "r2_12": self.r2_12,
            "r2_13": self.r2_13,
            "r2_23": self.r2_23,
            "flagged": self.flagged,
            "classification": self.classification,
        }


def compute_item_dif(
    item_responses: NDArray[np.int_],
    theta: NDArray[np.float64],
    group_index: NDArray[np.int_],
    item_name: str,
    criterion: DIFCriterion | None = None,
) -> ItemDIFStatistics:
    """Fit the three nested ordinal models for one item.

    Parameters
    ----------
    item_responses : ndarray of shape (n_persons,)
        Responses to the item.
    theta : ndarray of shape (n_persons,)
        Matching trait score.
    group_index : ndarray of shape (n_persons,)
        Group indicator, 0 or 1.
    item_name : str
        Item identifier.
    criterion : DIFCriterion, optional
        Flagging rule. Default: R² change of 0.02.

    Returns
    -------
    ItemDIFStatistics
        Log-likelihoods, pseudo-R² values, theta coefficients and the
        resulting flag.
    """
    criterion = criterion or DIFCriterion()
    y = np.asarray(item_responses)
    n_obs = y.shape[0]
    ll_null = null_log_likelihood(y)

    fits = [
        fit_ordinal(y, design_matrix(theta)),
        fit_ordinal(y, design_matrix(theta, group_index)),
        fit_ordinal(y, design_matrix(theta, group_index, interaction=True)),
    ]
    lls = [float(f.llf) for f in fits]
    r2s = [nagelkerke_r2(ll, ll_null, n_obs) for ll in lls]

    item_stats = ItemDIFStatistics(
        item=item_name,
        n_obs=n_obs,
        ll1=lls[0],
        ll2=lls[1],
        ll3=lls[2],
        r2_1=r2s[0],
        r2_2=r2s[1],
        r2_3=r2s[2],
        beta1=float(np.asarray(fits[0].params)[0]),
        beta2=float(np.asarray(fits[1].params)[0]),
    )
    classification = criterion.classify(item_stats)
    return replace(
        item_stats, flagged=classification != "none", classification=classification
    )


@dataclass
class DIFResult:
    """Outcome of the purified DIF scan.

    Attributes
    ----------
    anchors : list of str
        Items treated as invariant in the final iteration.
    flagged : list of str
        Items flagged for DIF.
    statistics : list of ItemDIFStatistics
        Per-item statistics from the final iteration.
    scores : ScoreResult
        DIF-calibrated trait scores from the final anchor set.
    fit : MultigroupFitResult
        Two-group model fitted with the final anchor set.
    criterion : DIFCriterion
        Flagging rule used.
    n_iterations : int
        Purification iterations run.
    history : list of frozenset
        Flagged item names after each iteration.
    """

    anchors: list[str]
    flagged: list[str]
    statistics: list[ItemDIFStatistics]
    scores: ScoreResult
    fit: MultigroupFitResult
    criterion: DIFCriterion
    n_iterations: int
    history: list[frozenset[str]] = field(default_factory=list)

    @property
    def theta(self) -> NDArray[np.float64]:
        return self.scores.theta

    def to_dataframe(self) -> pd.DataFrame:
        """Per-item DIF table indexed by item."""
        return pd.DataFrame([s.to_dict() for s in self.statistics]).set_index("item")

    def summary(self) -> str:
        lines = []
        lines.append("=" * 60)
        lines.append("Ordinal Logistic Regression DIF")
        lines.append("=" * 60)
        lines.append(f"Criterion: {self.criterion.criterion}")
        lines.append(f"Iterations: {self.n_iterations}")
        lines.append(f"Anchors: {', '.join(self.anchors)}")
        lines.append(f"Flagged: {', '.join(self.flagged) if self.flagged else 'none'}")
        lines.append("-" * 60)
        lines.append(
            f"{'item':<8}{'chi12':>9}{'chi13':>9}{'chi23':>9}"
            f"{'R2_12':>8}{'R2_13':>8}{'R2_23':>8}  class"
        )
        for s in self.statistics:
            lines.append(
                f"{s.item:<8}{s.chi12:>9.2f}{s.chi13:>9.2f}{s.chi23:>9.2f}"
                f"{s.r2_12:>8.4f}{s.r2_13:>8.4f}{s.r2_23:>8.4f}  {s.classification}"
            )
        lines.append("=" * 60)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"DIFResult(flagged={self.flagged}, "
            f"n_anchors={len(self.anchors)}, "
            f"n_iterations={self.n_iterations})"
        )


def scan_dif(
    data: NDArray[np.int_],
    groups: NDArray,
    criterion: DIFCriterion | None = None,
    max_iter: int = 10,
    item_names: Sequence[str] | None = None,
    verbose: bool = False,
    **fit_kwargs,
) -> DIFResult:
    """Detect DIF items with iterative anchor purification.

    Parameters
    ----------
    data : ndarray of shape (n_persons, n_items)
        Response matrix.
    groups : ndarray of shape (n_persons,)
        Group membership; exactly two values.
    criterion : DIFCriterion, optional
        Flagging rule. Default: Nagelkerke R² change >= 0.02.
    max_iter : int
        Maximum number of purification iterations.
    item_names : sequence of str, optional
        Item names. Default: ``phq_1`` .. ``phq_9``.
    verbose : bool
        Print the flagged set after each iteration.
    **fit_kwargs
        Passed to the two-group model fit (``n_quadpts``, ``tol``, ...).

    Returns
    -------
    DIFResult
        Final anchors, flagged items, statistics and calibrated scores.

    Raises
    ------
    IdentifiabilityError
        If the flagged items would leave fewer than two anchors.
    NonConvergenceError
        If the flagged set has not stabilized after ``max_iter`` iterations.
    """
    if max_iter < 1:
        raise ValueError("max_iter must be at least 1")
    criterion = criterion or DIFCriterion()

    data = np.asarray(data)
    names = list(item_names) if item_names is not None else list(ITEM_NAMES)
    responses = validate_responses(data, len(names), item_names=names)
    group_index, _ = encode_groups(groups)
    n_items = len(names)

    anchors = list(range(n_items))
    previous: frozenset[str] = frozenset()
    history: list[frozenset[str]] = []

    for iteration in range(1, max_iter + 1):
        spec = InvarianceSpec(frozenset(anchors), n_items, label="dif")
        fit, scores = estimate_theta(
            responses, groups, spec, item_names=names, **fit_kwargs
        )

        statistics = [
            compute_item_dif(
                responses[:, j], scores.theta, group_index, names[j], criterion
            )
            for j in range(n_items)
        ]
        flagged = frozenset(s.item for s in statistics if s.flagged)
        history.append(flagged)

        if verbose:
            print(
                f"Iteration {iteration}: flagged = "
                f"{sorted(flagged, key=names.index) or 'none'}"
            )

        if flagged == previous:
            return DIFResult(
                anchors=[names[j] for j in anchors],
                flagged=[n for n in names if n in flagged],
                statistics=statistics,
                scores=scores,
                fit=fit,
                criterion=criterion,
                n_iterations=iteration,
                history=history,
            )

        anchors = [j for j in range(n_items) if names[j] not in flagged]
        if len(anchors) < MIN_ANCHOR_ITEMS:
            raise IdentifiabilityError(
                f"{len(flagged)} items flagged for DIF; fewer than "
                f"{MIN_ANCHOR_ITEMS} anchors would remain",
                item=", ".join(n for n in names if n in flagged),
            )
        previous = flagged

    raise NonConvergenceError(
        f"DIF purification did not stabilize in {max_iter} iterations",
        history=history,
    )
