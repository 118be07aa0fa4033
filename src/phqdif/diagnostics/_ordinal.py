"""Shared helpers for the ordinal logistic regressions used in DIF analysis."""

from __future__ import annotations

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from statsmodels.miscmodels.ordinal_model import OrderedModel

THETA_TERM = "theta"
GROUP_TERM = "group"
INTERACTION_TERM = "theta:group"


def design_matrix(
    theta: NDArray[np.float64],
    group: NDArray[np.int_] | None = None,
    interaction: bool = False,
) -> pd.DataFrame:
    """Build the predictor frame for ``theta [+ group [+ theta:group]]``.

    No intercept column is added; ordinal models absorb it into the
    thresholds.
    """
    theta = np.asarray(theta, dtype=np.float64)
    columns = {THETA_TERM: theta}
    if group is not None:
        group = np.asarray(group, dtype=np.float64)
        columns[GROUP_TERM] = group
        if interaction:
            columns[INTERACTION_TERM] = theta * group
    elif interaction:
        raise ValueError("interaction requires a group indicator")
    return pd.DataFrame(columns)


def fit_ordinal(y: NDArray[np.int_], exog: pd.DataFrame):
    """Fit a cumulative logit model of ``y`` on ``exog``.

    Returns
    -------
    OrderedResults
        Fitted statsmodels results; ``model.labels`` holds the observed
        response categories in order.
    """
    model = OrderedModel(np.asarray(y), exog, distr="logit")
    return model.fit(method="bfgs", maxiter=1000, disp=False)


def null_log_likelihood(y: NDArray[np.int_]) -> float:
    """Log-likelihood of the thresholds-only model, from category counts."""
    _, counts = np.unique(np.asarray(y), return_counts=True)
    n = counts.sum()
    return float(np.sum(counts * np.log(counts / n)))


def nagelkerke_r2(llf: float, ll_null: float, n_obs: int) -> float:
    """Nagelkerke pseudo-R²: Cox-Snell R² rescaled to a maximum of 1.

    Parameters
    ----------
    llf : float
        Log-likelihood of the fitted model.
    ll_null : float
        Log-likelihood of the intercept-only model.
    n_obs : int
        Number of observations.
    """
    cox_snell = 1.0 - np.exp(2.0 * (ll_null - llf) / n_obs)
    max_r2 = 1.0 - np.exp(2.0 * ll_null / n_obs)
    if max_r2 <= 0:
        return 0.0
    return float(cox_snell / max_r2)
