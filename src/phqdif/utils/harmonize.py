"""Harmonization of the HMS and NHANES PHQ-9 extracts into one analysis table.

The functions take already-loaded DataFrames; reading the source files is
left to the caller.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from phqdif.constants import (
    GROUP_COLUMN,
    ITEM_NAMES,
    LABEL_COLUMN,
    N_CATEGORIES,
    SUM_COLUMN,
    WEIGHT_COLUMN,
)
from phqdif.errors import InputValidationError

HMS_ITEMS = tuple(f"phq9_{k}" for k in range(1, 10))
HMS_WEIGHT = "nrweight"
NHANES_ITEMS = tuple(f"DPQ0{k}0" for k in range(1, 10))
NHANES_ID = "SEQN"
NHANES_WEIGHT = "WTINTPRP"

OUTPUT_COLUMNS = [*ITEM_NAMES, SUM_COLUMN, GROUP_COLUMN, LABEL_COLUMN, WEIGHT_COLUMN]


def _require(frame: pd.DataFrame, columns: list[str], source: str) -> None:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise InputValidationError(f"{source} data missing columns: {', '.join(missing)}")


def scale_weights(weights: pd.Series) -> pd.Series:
    """Rescale sampling weights to mean 1, ignoring missing values."""
    weights = pd.to_numeric(weights, errors="coerce").astype(np.float64)
    if (weights < 0).any():
        raise InputValidationError("sampling weights must be non-negative")
    mean = weights.mean()
    if not np.isfinite(mean) or mean <= 0:
        raise InputValidationError("sampling weights have no positive values")
    return weights / mean


def _valid_codes(items: pd.DataFrame) -> pd.DataFrame:
    """Keep codes 0..3; anything else (refused, don't know) becomes missing."""
    items = items.apply(pd.to_numeric, errors="coerce")
    return items.where(items.isin(range(N_CATEGORIES)))


def _finish(items: pd.DataFrame, weights: pd.Series, group: int, label: str) -> pd.DataFrame:
    out = items.copy()
    out.columns = list(ITEM_NAMES)
    out[SUM_COLUMN] = out[list(ITEM_NAMES)].sum(axis=1, skipna=False)
    out[GROUP_COLUMN] = group
    out[LABEL_COLUMN] = label
    out[WEIGHT_COLUMN] = scale_weights(weights).to_numpy()
    return out.loc[:, OUTPUT_COLUMNS].reset_index(drop=True)


def harmonize_hms(frame: pd.DataFrame) -> pd.DataFrame:
    """Recode the HMS extract (items coded 1-4) to the analysis columns.

    Parameters
    ----------
    frame : DataFrame
        Columns ``phq9_1`` .. ``phq9_9`` and ``nrweight``.

    Returns
    -------
    DataFrame
        Items 0-3, ``phq_sum``, ``sample_hms = 1``, ``sample_char = "HMS"``
        and ``scaled_weight``. Rows with invalid codes keep missing items.
    """
    _require(frame, [*HMS_ITEMS, HMS_WEIGHT], "HMS")
    items = frame.loc[:, list(HMS_ITEMS)].apply(pd.to_numeric, errors="coerce") - 1
    return _finish(_valid_codes(items), frame[HMS_WEIGHT], group=1, label="HMS")


def harmonize_nhanes(phq: pd.DataFrame, demographics: pd.DataFrame) -> pd.DataFrame:
    """Merge the NHANES PHQ and demographics tables and recode items.

    Parameters
    ----------
    phq : DataFrame
        Columns ``SEQN`` and ``DPQ010`` .. ``DPQ090`` (codes 7 and 9 mean
        refused and don't know).
    demographics : DataFrame
        Columns ``SEQN`` and ``WTINTPRP``.

    Returns
    -------
    DataFrame
        Items 0-3, ``phq_sum``, ``sample_hms = 0``, ``sample_char = "NHANES"``
        and ``scaled_weight``.
    """
    _require(phq, [NHANES_ID, *NHANES_ITEMS], "NHANES PHQ")
    _require(demographics, [NHANES_ID, NHANES_WEIGHT], "NHANES demographics")
    if demographics[NHANES_ID].duplicated().any():
        raise InputValidationError("NHANES demographics has duplicate respondent ids")

    merged = phq.merge(
        demographics.loc[:, [NHANES_ID, NHANES_WEIGHT]], on=NHANES_ID, how="left"
    )
    items = _valid_codes(merged.loc[:, list(NHANES_ITEMS)])
    return _finish(items, merged[NHANES_WEIGHT], group=0, label="NHANES")


def combine_samples(*samples: pd.DataFrame, verbose: bool = False) -> pd.DataFrame:
    """Stack harmonized samples and drop respondents with any missing item."""
    if not samples:
        raise ValueError("at least one sample is required")
    combined = pd.concat(samples, ignore_index=True)
    complete = combined.dropna(subset=list(ITEM_NAMES)).copy()

    if verbose:
        print(f"Dropped {len(combined) - len(complete)} incomplete cases, kept {len(complete)}")

    for column in [*ITEM_NAMES, SUM_COLUMN, GROUP_COLUMN]:
        complete[column] = complete[column].astype(np.int_)
    return complete.reset_index(drop=True)
