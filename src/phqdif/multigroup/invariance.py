from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from scipy import stats

from phqdif.constants import MIN_ANCHOR_ITEMS
from phqdif.errors import IdentifiabilityError

if TYPE_CHECKING:
    from phqdif.multigroup.model import MultigroupModel
    from phqdif.multigroup.results import MultigroupFitResult


@dataclass(frozen=True)
class InvarianceSpec:
    """Set of items whose parameters are constrained equal across groups.

    Invariant items share discrimination and thresholds between groups and
    link the two latent scales; every other item gets separately estimated
    parameters per group.

    Parameters
    ----------
    invariant_items : frozenset of int
        Indices of the invariant (anchor) items.
    n_items : int
        Total number of items.
    label : str, optional
        Name of the model variant, e.g. ``"constrained"``.
    """

    invariant_items: frozenset[int]
    n_items: int
    label: str | None = None

    def __post_init__(self) -> None:
        bad = [i for i in self.invariant_items if i < 0 or i >= self.n_items]
        if bad:
            raise ValueError(f"Invariant item indices out of range: {sorted(bad)}")

    @classmethod
    def full(cls, n_items: int, label: str | None = "constrained") -> InvarianceSpec:
        """All items invariant."""
        return cls(frozenset(range(n_items)), n_items, label)

    @classmethod
    def releasing(
        cls,
        n_items: int,
        released: Iterable[int],
        label: str | None = None,
    ) -> InvarianceSpec:
        """All items invariant except ``released``."""
        released = set(released)
        return cls(frozenset(set(range(n_items)) - released), n_items, label)

    @property
    def free_items(self) -> list[int]:
        """Items with group-specific parameters."""
        return [i for i in range(self.n_items) if i not in self.invariant_items]

    def is_invariant(self, item_idx: int) -> bool:
        return item_idx in self.invariant_items

    def validate(self, item_names: Sequence[str] | None = None) -> None:
        """Require enough anchors to identify the focal group's scale.

        Raises
        ------
        IdentifiabilityError
            If fewer than two items are invariant.
        """
        if len(self.invariant_items) < MIN_ANCHOR_ITEMS:
            names = item_names or [str(i) for i in range(self.n_items)]
            anchors = [names[i] for i in sorted(self.invariant_items)]
            raise IdentifiabilityError(
                f"{len(self.invariant_items)} invariant item(s) {anchors}; at least "
                f"{MIN_ANCHOR_ITEMS} are needed to identify the two-group model"
            )

    def apply_to_model(self, model: MultigroupModel) -> None:
        """Mark invariant items as shared and the rest as group-specific."""
        for item_idx in range(self.n_items):
            if self.is_invariant(item_idx):
                model.set_shared_item(item_idx)
            else:
                model.set_group_specific_item(item_idx)

    def __repr__(self) -> str:
        parts = [f"invariant={sorted(self.invariant_items)}"]
        if self.label:
            parts.insert(0, f"label={self.label}")
        return f"InvarianceSpec({', '.join(parts)})"


def parse_invariance(
    invariance: InvarianceSpec | Iterable[int | str] | None,
    item_names: Sequence[str],
) -> InvarianceSpec:
    """Parse an invariance specification.

    Parameters
    ----------
    invariance : InvarianceSpec, iterable of int or str, or None
        Either a spec, the invariant items given by index or name, or None
        for full invariance.
    item_names : sequence of str
        Item names used to resolve names to indices.

    Returns
    -------
    InvarianceSpec
        Parsed invariance specification.
    """
    n_items = len(item_names)
    if invariance is None:
        return InvarianceSpec.full(n_items)
    if isinstance(invariance, InvarianceSpec):
        if invariance.n_items != n_items:
            raise ValueError(
                f"InvarianceSpec covers {invariance.n_items} items, data has {n_items}"
            )
        return invariance

    indices = set()
    for item in invariance:
        if isinstance(item, str):
            if item not in item_names:
                raise ValueError(f"Unknown item: {item}")
            indices.add(list(item_names).index(item))
        else:
            indices.add(int(item))
    return InvarianceSpec(frozenset(indices), n_items)


def invariance_lrt(
    constrained: MultigroupFitResult,
    free: MultigroupFitResult,
) -> dict[str, float]:
    """Likelihood ratio test for nested invariance models.

    Parameters
    ----------
    constrained : MultigroupFitResult
        More constrained model (e.g., all items invariant).
    free : MultigroupFitResult
        Less constrained model (e.g., one item released).

    Returns
    -------
    dict
        Dictionary with 'chi2', 'df', 'p_value'.

    Raises
    ------
    ValueError
        If the models are not nested (constrained should have higher -2LL).
    """
    ll_free = free.log_likelihood
    ll_constrained = constrained.log_likelihood

    chi2 = -2 * (ll_constrained - ll_free)

    # EM stopping tolerance can leave chi2 slightly negative
    if chi2 < -1.0:
        raise ValueError(
            f"Models may not be nested: constrained LL ({ll_constrained:.4f}) > "
            f"free LL ({ll_free:.4f})"
        )
    chi2 = max(chi2, 0.0)

    df = free.n_parameters - constrained.n_parameters
    if df <= 0:
        raise ValueError(
            f"Constrained model must have fewer parameters: "
            f"constrained={constrained.n_parameters}, free={free.n_parameters}"
        )

    p_value = float(stats.chi2.sf(chi2, df))

    return {
        "chi2": chi2,
        "df": df,
        "p_value": p_value,
    }


@dataclass(frozen=True)
class InvarianceTestResult:
    """Result of comparing a constrained fit against a less constrained one."""

    comparison: str
    chi2: float
    df: int
    p_value: float
    delta_aic: float
    delta_bic: float
    significant: bool


def compare_invariance_step(
    constrained: MultigroupFitResult,
    free: MultigroupFitResult,
    comparison_name: str,
    alpha: float = 0.05,
) -> InvarianceTestResult:
    """Test a single relaxation of the invariance constraints.

    Parameters
    ----------
    constrained : MultigroupFitResult
        More constrained model.
    free : MultigroupFitResult
        Less constrained model.
    comparison_name : str
        Name for this comparison (e.g., "constrained vs release_phq_3").
    alpha : float
        Significance level.

    Returns
    -------
    InvarianceTestResult
        Test results.
    """
    lrt = invariance_lrt(constrained, free)

    return InvarianceTestResult(
        comparison=comparison_name,
        chi2=lrt["chi2"],
        df=int(lrt["df"]),
        p_value=lrt["p_value"],
        delta_aic=constrained.aic - free.aic,
        delta_bic=constrained.bic - free.bic,
        significant=lrt["p_value"] < alpha,
    )

