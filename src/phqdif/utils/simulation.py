"""Two-group GRM data simulation for PHQ-9 shaped item sets."""

from __future__ import annotations

from collections.abc import Mapping

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from phqdif._core import sigmoid
from phqdif.constants import (
    GROUP_COLUMN,
    ITEM_NAMES,
    LABEL_COLUMN,
    N_CATEGORIES,
    SUM_COLUMN,
    WEIGHT_COLUMN,
)

DEFAULT_DISCRIMINATION = np.array([2.0, 2.2, 1.6, 1.5, 1.4, 1.8, 1.5, 1.3, 1.7])
DEFAULT_THRESHOLDS = np.array([-0.5, 0.6, 1.4])[None, :] + np.array(
    [-0.2, 0.0, 0.1, -0.3, 0.2, 0.3, 0.2, 0.4, 0.9]
)[:, None]

GROUP_LABELS = ("NHANES", "HMS")


def simulate_grm(
    theta: NDArray[np.float64],
    discrimination: NDArray[np.float64],
    thresholds: NDArray[np.float64],
    rng: np.random.Generator,
) -> NDArray[np.int_]:
    """Simulate graded responses for given person and item parameters.

    Parameters
    ----------
    theta : ndarray of shape (n_persons,)
        Person trait values.
    discrimination : ndarray of shape (n_items,)
        Item slopes.
    thresholds : ndarray of shape (n_items, n_categories - 1)
        Ordered category boundaries.
    rng : numpy.random.Generator
        Random number generator.

    Returns
    -------
    ndarray of shape (n_persons, n_items)
        Responses in 0..n_categories-1.
    """
    theta = np.asarray(theta, dtype=np.float64)
    # (n_persons, n_items, K-1) cumulative P*(X >= k)
    cum_probs = sigmoid(
        discrimination[None, :, None] * (theta[:, None, None] - thresholds[None, :, :])
    )
    u = rng.random((theta.shape[0], discrimination.shape[0]))
    return np.sum(u[:, :, None] < cum_probs, axis=2).astype(np.int_)


def simulate_two_groups(
    n_per_group: int = 1000,
    discrimination: NDArray[np.float64] | None = None,
    thresholds: NDArray[np.float64] | None = None,
    group_means: tuple[float, float] = (0.0, 0.0),
    group_sds: tuple[float, float] = (1.0, 1.0),
    threshold_shift: Mapping[int, float] | None = None,
    seed: int | None = None,
) -> tuple[NDArray[np.int_], NDArray[np.int_]]:
    """Simulate responses for two groups from one graded response model.

    Parameters
    ----------
    n_per_group : int
        Respondents per group.
    discrimination : ndarray of shape (n_items,), optional
        Item slopes. Default: PHQ-9 shaped values.
    thresholds : ndarray of shape (n_items, 3), optional
        Item thresholds. Default: PHQ-9 shaped values.
    group_means, group_sds : tuple of float
        Latent mean and SD of group 0 and group 1.
    threshold_shift : mapping of int to float, optional
        Item index to the amount added to all of that item's thresholds in
        group 1 only. Shifted items carry uniform DIF.
    seed : int, optional
        Random seed for reproducibility.

    Returns
    -------
    responses : ndarray of shape (2 * n_per_group, n_items)
        Group 0 respondents first, then group 1.
    groups : ndarray of shape (2 * n_per_group,)
        Group indicator, 0 or 1.

    Examples
    --------
    >>> responses, groups = simulate_two_groups(1000, threshold_shift={3: 1.0}, seed=7)
    >>> responses.shape
    (2000, 9)
    """
    if n_per_group < 1:
        raise ValueError("n_per_group must be positive")

    rng = np.random.default_rng(seed)

    a = DEFAULT_DISCRIMINATION if discrimination is None else np.asarray(discrimination)
    b = DEFAULT_THRESHOLDS if thresholds is None else np.asarray(thresholds)
    if b.shape != (a.shape[0], b.shape[1]):
        raise ValueError("thresholds must have one row per item")

    blocks = []
    for g in range(2):
        b_g = b.copy()
        if g == 1 and threshold_shift:
            for item_idx, shift in threshold_shift.items():
                b_g[item_idx] += shift
        theta = rng.normal(group_means[g], group_sds[g], size=n_per_group)
        blocks.append(simulate_grm(theta, a, b_g, rng))

    responses = np.vstack(blocks)
    groups = np.repeat(np.array([0, 1], dtype=np.int_), n_per_group)
    return responses, groups


def simulate_dataset(
    n_per_group: int = 1000,
    with_weights: bool = False,
    seed: int | None = None,
    **kwargs,
) -> pd.DataFrame:
    """Simulate an analysis table with the PHQ-9 input columns.

    Parameters
    ----------
    n_per_group : int
        Respondents per group.
    with_weights : bool
        Add a ``scaled_weight`` column with mean 1 within each group.
    seed : int, optional
        Random seed for reproducibility.
    **kwargs
        Passed to :func:`simulate_two_groups`.

    Returns
    -------
    DataFrame
        Columns ``phq_1`` .. ``phq_9``, ``phq_sum``, ``sample_hms``,
        ``sample_char`` and optionally ``scaled_weight``.
    """
    rng = np.random.default_rng(seed)
    responses, groups = simulate_two_groups(
        n_per_group, seed=int(rng.integers(2**31)), **kwargs
    )
    if responses.shape[1] != len(ITEM_NAMES) or responses.max() >= N_CATEGORIES:
        raise ValueError("simulate_dataset produces the nine four-category items only")

    frame = pd.DataFrame(responses, columns=list(ITEM_NAMES))
    frame[SUM_COLUMN] = responses.sum(axis=1)
    frame[GROUP_COLUMN] = groups
    frame[LABEL_COLUMN] = np.where(groups == 1, GROUP_LABELS[1], GROUP_LABELS[0])
    if with_weights:
        raw = rng.lognormal(0.0, 0.5, size=groups.shape[0])
        frame[WEIGHT_COLUMN] = raw / pd.Series(raw).groupby(groups).transform("mean").to_numpy()
    return frame
