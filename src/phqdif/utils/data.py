"""Data validation for response matrices and the analysis input table."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from phqdif.constants import (
    GROUP_COLUMN,
    ITEM_NAMES,
    LABEL_COLUMN,
    N_CATEGORIES,
    N_ITEMS,
    SUM_COLUMN,
    WEIGHT_COLUMN,
)
from phqdif.errors import InputValidationError


def validate_responses(
    responses: NDArray | list,
    n_items: int = N_ITEMS,
    n_categories: int = N_CATEGORIES,
    item_names: Sequence[str] | None = None,
) -> NDArray[np.int_]:
    """Validate a response matrix.

    Parameters
    ----------
    responses : array-like of shape (n_persons, n_items)
        Response matrix to validate.
    n_items : int
        Expected number of items.
    n_categories : int
        Number of response categories; valid values are 0, ..., K-1.
    item_names : sequence of str, optional
        Item names used in error messages.

    Returns
    -------
    ndarray of shape (n_persons, n_items)
        Validated response matrix with integer dtype.

    Raises
    ------
    InputValidationError
        If the matrix has the wrong shape, contains missing or
        out-of-range values, or an item has zero variance.
    """
    responses = np.asarray(responses)
    names = list(item_names) if item_names is not None else list(ITEM_NAMES[:n_items])

    if responses.ndim != 2:
        raise InputValidationError(f"responses must be 2D, got {responses.ndim}D")

    n_persons, n_cols = responses.shape
    if n_persons == 0:
        raise InputValidationError("responses cannot be empty")
    if n_cols != n_items:
        raise InputValidationError(f"responses has {n_cols} items, expected {n_items}")

    as_float = responses.astype(np.float64)
    for j in range(n_items):
        column = as_float[:, j]
        if np.any(np.isnan(column)):
            raise InputValidationError("missing responses", item=names[j])
        if np.any(column != np.round(column)):
            raise InputValidationError("non-integer responses", item=names[j])
        if column.min() < 0 or column.max() > n_categories - 1:
            raise InputValidationError(
                f"responses outside 0..{n_categories - 1}", item=names[j]
            )
        if column.min() == column.max():
            raise InputValidationError(
                f"zero variance (all responses are {int(column[0])})", item=names[j]
            )

    return as_float.astype(np.int_)


def encode_groups(groups: NDArray | list) -> tuple[NDArray[np.int_], list[str]]:
    """Map a two-valued group vector to indices 0 and 1.

    The first sorted group value becomes the reference group (index 0).

    Returns
    -------
    group_index : ndarray of shape (n_persons,)
        Group index of each person.
    labels : list of str
        Label of each group index.

    Raises
    ------
    InputValidationError
        If there are not exactly two groups or labels are missing.
    """
    groups = np.asarray(groups)
    if groups.ndim != 1:
        raise InputValidationError(f"groups must be 1D, got {groups.ndim}D")
    if pd.isna(groups).any():
        raise InputValidationError("groups contains missing values")

    unique_groups, group_index = np.unique(groups, return_inverse=True)
    if len(unique_groups) != 2:
        raise InputValidationError(
            f"exactly 2 groups required, found {len(unique_groups)}"
        )
    return np.asarray(group_index).ravel().astype(np.int_), [
        str(g) for g in unique_groups
    ]


def check_group_variance(
    responses: NDArray[np.int_],
    group_index: NDArray[np.int_],
    items: Sequence[int],
    item_names: Sequence[str],
    group_labels: Sequence[str],
) -> None:
    """Require within-group variance for items with group-specific parameters.

    Raises
    ------
    InputValidationError
        If any listed item has a single observed category within a group.
    """
    for g, label in enumerate(group_labels):
        group_responses = responses[group_index == g]
        if group_responses.shape[0] == 0:
            raise InputValidationError("group has no respondents", group=label)
        for j in items:
            column = group_responses[:, j]
            if column.min() == column.max():
                raise InputValidationError(
                    "zero variance within group; group-specific parameters "
                    "cannot be estimated",
                    item=item_names[j],
                    group=label,
                )


def validate_dataset(frame: pd.DataFrame) -> pd.DataFrame:
    """Check the analysis input table and return a typed copy.

    Required columns are the nine items, the sum score, the binary group
    indicator and the group label. A sampling weight column is optional.

    Raises
    ------
    InputValidationError
        On missing columns or values, out-of-range responses, a sum score
        that is not the item total, or anything other than two groups.
    """
    required = [*ITEM_NAMES, SUM_COLUMN, GROUP_COLUMN, LABEL_COLUMN]
    missing = [c for c in required if c not in frame.columns]
    if missing:
        raise InputValidationError(f"missing columns: {', '.join(missing)}")

    columns = required + ([WEIGHT_COLUMN] if WEIGHT_COLUMN in frame.columns else [])
    out = frame.loc[:, columns].copy()

    if out[required].isna().any().any():
        bad = [c for c in required if out[c].isna().any()]
        raise InputValidationError(f"missing values in {', '.join(bad)}")

    responses = validate_responses(out[list(ITEM_NAMES)].to_numpy())
    for j, name in enumerate(ITEM_NAMES):
        out[name] = responses[:, j]

    total = responses.sum(axis=1)
    if not np.array_equal(total, out[SUM_COLUMN].to_numpy()):
        n_bad = int(np.sum(total != out[SUM_COLUMN].to_numpy()))
        raise InputValidationError(
            f"{SUM_COLUMN} does not equal the item total for {n_bad} respondents"
        )
    out[SUM_COLUMN] = total

    if not pd.api.types.is_numeric_dtype(out[GROUP_COLUMN]):
        raise InputValidationError(f"{GROUP_COLUMN} must be a 0/1 indicator")
    encode_groups(out[GROUP_COLUMN].to_numpy())
    if not set(out[GROUP_COLUMN].unique()) <= {0, 1}:
        raise InputValidationError(f"{GROUP_COLUMN} must be coded 0 and 1")
    labels_per_group = out.groupby(GROUP_COLUMN)[LABEL_COLUMN].nunique()
    if (labels_per_group != 1).any():
        raise InputValidationError(
            f"each {GROUP_COLUMN} value must have exactly one {LABEL_COLUMN}"
        )
    out[GROUP_COLUMN] = out[GROUP_COLUMN].astype(np.int_)

    if WEIGHT_COLUMN in out.columns:
        weights = pd.to_numeric(out[WEIGHT_COLUMN], errors="coerce")
        if (weights < 0).any():
            raise InputValidationError(f"{WEIGHT_COLUMN} must be non-negative")
        out[WEIGHT_COLUMN] = weights.astype(np.float64)

    return out.reset_index(drop=True)
