"""Response-curve projection of per-item and sum-score regression models.

Item responses (ordinal), elevated-symptom indicators (binary) and the sum
score (linear, quartic in theta) are regressed on a trait score and group.
Predictions over a theta grid crossed with both groups give the curves and
the average between-group differences that summarize practical impact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np
import pandas as pd
import statsmodels.api as sm
from numpy.typing import NDArray

from phqdif.constants import (
    GROUP_COLUMN,
    SUM_COLUMN,
    SUM_SCORE_CUTOFF,
    WEIGHT_COLUMN,
)
from phqdif.diagnostics._ordinal import (
    GROUP_TERM,
    design_matrix,
    fit_ordinal,
    nagelkerke_r2,
    null_log_likelihood,
)
from phqdif.errors import InputValidationError

ResponseModelKind = Literal["ordinal", "binary", "sum"]

POLYNOMIAL_DEGREE = 4

# model specification label -> whether theta x group terms are included
SPECIFICATIONS = {"main": False, "interaction": True}


def polynomial_design(
    theta: NDArray[np.float64],
    group: NDArray[np.int_],
    interaction: bool = True,
) -> pd.DataFrame:
    """Quartic polynomial in theta plus group, optionally crossed with group."""
    theta = np.asarray(theta, dtype=np.float64)
    group = np.asarray(group, dtype=np.float64)
    columns: dict[str, NDArray[np.float64]] = {}
    for power in range(1, POLYNOMIAL_DEGREE + 1):
        name = "theta" if power == 1 else f"theta^{power}"
        columns[name] = theta**power
    columns[GROUP_TERM] = group
    if interaction:
        for power in range(1, POLYNOMIAL_DEGREE + 1):
            name = "theta" if power == 1 else f"theta^{power}"
            columns[f"{name}:group"] = theta**power * group
    return pd.DataFrame(columns)


@dataclass(frozen=True)
class ItemResponseModel:
    """A fitted regression of one outcome on theta and group.

    Attributes
    ----------
    outcome : str
        Modelled column.
    kind : {'ordinal', 'binary', 'sum'}
        Cumulative logit, binary logit or OLS.
    theta : str
        Trait score column used as predictor.
    interaction : bool
        Whether theta x group terms are included.
    coefficients : DataFrame
        One row per predictor term: estimate, effect (odds ratio for the
        logit kinds), 95% interval of the effect and p-value.
    pseudo_r2 : float
        Nagelkerke R² for the logit kinds, R² for OLS.
    n_obs : int
        Observations used in the fit.
    categories : tuple of int
        Observed outcome categories (ordinal kind).
    """

    outcome: str
    kind: ResponseModelKind
    theta: str
    interaction: bool
    coefficients: pd.DataFrame
    pseudo_r2: float
    n_obs: int
    categories: tuple[int, ...] = ()
    results: Any = field(default=None, repr=False, compare=False)

    @property
    def specification(self) -> str:
        return "interaction" if self.interaction else "main"

    def design(
        self,
        theta: NDArray[np.float64],
        group: NDArray[np.int_],
    ) -> NDArray[np.float64]:
        """Predictor matrix in the column order used at fit time."""
        if self.kind == "ordinal":
            frame = design_matrix(theta, group, self.interaction)
        elif self.kind == "binary":
            frame = sm.add_constant(
                design_matrix(theta, group, self.interaction), has_constant="add"
            )
        else:
            frame = sm.add_constant(
                polynomial_design(theta, group, self.interaction), has_constant="add"
            )
        return frame.to_numpy()

    def predict(
        self,
        theta: NDArray[np.float64],
        group: NDArray[np.int_],
    ) -> NDArray[np.float64]:
        """Model predictions: category probabilities (ordinal), P(y = 1)
        (binary) or expected value (sum)."""
        return np.asarray(
            self.results.model.predict(self.results.params, exog=self.design(theta, group))
        )


def _coefficient_table(
    results: Any,
    exog_columns: list[str],
    terms: list[str],
    exponentiate: bool,
) -> pd.DataFrame:
    # exog coefficients come first; ordinal thresholds follow them
    k = len(exog_columns)
    params = pd.Series(np.asarray(results.params)[:k], index=exog_columns)
    conf = pd.DataFrame(
        np.asarray(results.conf_int())[:k], index=exog_columns, columns=["lower", "upper"]
    )
    pvalues = pd.Series(np.asarray(results.pvalues)[:k], index=exog_columns)

    transform = np.exp if exponentiate else (lambda x: x)
    effect_name = "odds_ratio" if exponentiate else "effect"
    rows = []
    for term in terms:
        rows.append(
            {
                "term": term,
                "estimate": float(params[term]),
                effect_name: float(transform(params[term])),
                "ci_lower": float(transform(conf.loc[term, "lower"])),
                "ci_upper": float(transform(conf.loc[term, "upper"])),
                "p_value": float(pvalues[term]),
            }
        )
    return pd.DataFrame(rows)


def fit_item_response_model(
    frame: pd.DataFrame,
    outcome: str,
    theta: str = "theta_constrained",
    group: str = GROUP_COLUMN,
    interaction: bool = True,
    kind: ResponseModelKind = "ordinal",
) -> ItemResponseModel:
    """Fit a regression of ``outcome`` on theta and group.

    Parameters
    ----------
    frame : DataFrame
        Analysis table containing ``outcome``, ``theta`` and ``group``.
    outcome : str
        Item, elevated indicator or sum-score column.
    theta : str
        Trait score column.
    group : str
        Binary group column.
    interaction : bool
        Include theta x group terms.
    kind : {'ordinal', 'binary', 'sum'}
        ``'ordinal'``: cumulative logit for an item. ``'binary'``: logit for
        an elevated indicator. ``'sum'``: OLS on a quartic in theta.

    Returns
    -------
    ItemResponseModel
        Immutable fitted model record.

    Raises
    ------
    InputValidationError
        If ``outcome`` has a single observed value.
    """
    for column in (outcome, theta, group):
        if column not in frame.columns:
            raise ValueError(f"Column not found: {column}")

    if frame[outcome].nunique() < 2:
        raise InputValidationError(
            "zero variance; no response model can be fitted",
            item=outcome,
        )

    y = frame[outcome].to_numpy()
    x_theta = frame[theta].to_numpy(dtype=np.float64)
    x_group = frame[group].to_numpy()
    n_obs = y.shape[0]

    if kind == "ordinal":
        exog = design_matrix(x_theta, x_group, interaction)
        results = fit_ordinal(y, exog)
        pseudo_r2 = nagelkerke_r2(float(results.llf), null_log_likelihood(y), n_obs)
        coefficients = _coefficient_table(
            results, list(exog.columns), list(exog.columns), exponentiate=True
        )
        categories = tuple(int(c) for c in results.model.labels)
    elif kind == "binary":
        exog = sm.add_constant(design_matrix(x_theta, x_group, interaction), has_constant="add")
        results = sm.Logit(y.astype(np.float64), exog).fit(disp=0)
        pseudo_r2 = nagelkerke_r2(float(results.llf), float(results.llnull), n_obs)
        terms = [c for c in exog.columns if c != "const"]
        coefficients = _coefficient_table(results, list(exog.columns), terms, exponentiate=True)
        categories = (0, 1)
    elif kind == "sum":
        exog = sm.add_constant(polynomial_design(x_theta, x_group, interaction), has_constant="add")
        results = sm.OLS(y.astype(np.float64), exog).fit()
        pseudo_r2 = float(results.rsquared)
        terms = [c for c in exog.columns if c != "const"]
        coefficients = _coefficient_table(results, list(exog.columns), terms, exponentiate=False)
        categories = ()
    else:
        raise ValueError(f"Unknown response model kind: {kind}")

    return ItemResponseModel(
        outcome=outcome,
        kind=kind,
        theta=theta,
        interaction=interaction,
        coefficients=coefficients,
        pseudo_r2=pseudo_r2,
        n_obs=n_obs,
        categories=categories,
        results=results,
    )


def evaluation_grid(
    theta_values: NDArray[np.float64],
    step: float = 0.01,
    groups: tuple[int, int] = (0, 1),
) -> pd.DataFrame:
    """Theta from the observed minimum to maximum crossed with both groups.

    Parameters
    ----------
    theta_values : ndarray
        Observed trait scores defining the range.
    step : float
        Grid spacing in theta units.
    groups : tuple of int
        Group values to cross with the theta sweep.

    Returns
    -------
    DataFrame
        Columns ``theta`` and ``group``; the full theta sweep for the first
        group, then for the second.
    """
    if step <= 0:
        raise ValueError("step must be positive")
    theta_values = np.asarray(theta_values, dtype=np.float64)
    if theta_values.size == 0 or not np.all(np.isfinite(theta_values)):
        raise ValueError("theta_values must be non-empty and finite")

    lo, hi = float(theta_values.min()), float(theta_values.max())
    # 1e-9 keeps hi on the grid when (hi - lo) is a float multiple of step
    n_points = int(np.floor((hi - lo) / step + 1e-9)) + 1
    sweep = lo + step * np.arange(n_points)

    return pd.DataFrame(
        {
            "theta": np.tile(sweep, len(groups)),
            "group": np.repeat(np.asarray(groups, dtype=np.int_), n_points),
        }
    )


@dataclass(frozen=True)
class ResponseCurve:
    """Predictions of one response model over an evaluation grid."""

    outcome: str
    kind: ResponseModelKind
    table: pd.DataFrame

    @property
    def probability_columns(self) -> list[str]:
        return [c for c in self.table.columns if c.startswith("p_")]

    def group_curve(self, group: int) -> pd.DataFrame:
        return self.table[self.table["group"] == group].reset_index(drop=True)

    def to_dataframe(self) -> pd.DataFrame:
        return self.table.copy()


def project(model: ItemResponseModel, grid: pd.DataFrame) -> ResponseCurve:
    """Predict a response model over a grid of theta and group values.

    Returns
    -------
    ResponseCurve
        Grid columns plus ``expected`` and, for the ordinal kind,
        ``p_0`` .. ``p_{K-1}`` (for the binary kind, ``p_1``).
    """
    theta = grid["theta"].to_numpy(dtype=np.float64)
    group = grid["group"].to_numpy()
    predictions = model.predict(theta, group)

    table = grid.loc[:, ["theta", "group"]].reset_index(drop=True)
    if model.kind == "ordinal":
        n_levels = max(model.categories) + 1
        probs = np.zeros((theta.shape[0], n_levels))
        probs[:, list(model.categories)] = predictions
        table["expected"] = probs @ np.arange(n_levels)
        for k in range(n_levels):
            table[f"p_{k}"] = probs[:, k]
    elif model.kind == "binary":
        table["expected"] = predictions
        table["p_1"] = predictions
    else:
        table["expected"] = predictions

    return ResponseCurve(outcome=model.outcome, kind=model.kind, table=table)


def average_difference(curve: ResponseCurve, column: str = "expected") -> dict[str, float]:
    """Average group 1 minus group 0 prediction over the grid.

    Returns
    -------
    dict
        ``signed``: mean difference; ``unsigned``: mean absolute difference.
    """
    g0 = curve.group_curve(0).sort_values("theta")
    g1 = curve.group_curve(1).sort_values("theta")
    if not np.array_equal(g0["theta"].to_numpy(), g1["theta"].to_numpy()):
        raise ValueError("Both groups must be evaluated at the same theta values")

    diff = g1[column].to_numpy() - g0[column].to_numpy()
    return {"signed": float(diff.mean()), "unsigned": float(np.abs(diff).mean())}


def classification_impact(
    frame: pd.DataFrame,
    curve: ResponseCurve,
    cutoff: float = SUM_SCORE_CUTOFF,
    sum_column: str = SUM_COLUMN,
    group_column: str = GROUP_COLUMN,
    weight_column: str = WEIGHT_COLUMN,
) -> pd.DataFrame:
    """Screening prevalence per group and the theta at which each group's
    predicted sum score reaches the cutoff.

    Parameters
    ----------
    frame : DataFrame
        Analysis table.
    curve : ResponseCurve
        Projection of a sum-score model.
    cutoff : float
        Sum-score screening cutoff.

    Returns
    -------
    DataFrame
        One row per group: ``n``, ``prevalence``, ``weighted_prevalence``
        (NaN without a weight column) and ``theta_at_cutoff`` (NaN when the
        predicted sum never reaches the cutoff on the grid).
    """
    if curve.kind != "sum":
        raise ValueError("classification_impact needs a sum-score curve")

    rows = []
    for g in sorted(frame[group_column].unique()):
        sub = frame[frame[group_column] == g]
        elevated = (sub[sum_column] >= cutoff).to_numpy(dtype=np.float64)
        weighted = np.nan
        if weight_column in sub.columns:
            weights = sub[weight_column].to_numpy(dtype=np.float64)
            known = np.isfinite(weights)
            if weights[known].sum() > 0:
                weighted = float(np.average(elevated[known], weights=weights[known]))

        group_curve = curve.group_curve(int(g)).sort_values("theta")
        reached = group_curve[group_curve["expected"] >= cutoff]
        theta_at_cutoff = float(reached["theta"].iloc[0]) if len(reached) else np.nan

        rows.append(
            {
                "group": int(g),
                "n": int(len(sub)),
                "prevalence": float(elevated.mean()),
                "weighted_prevalence": weighted,
                "theta_at_cutoff": theta_at_cutoff,
            }
        )
    return pd.DataFrame(rows)
