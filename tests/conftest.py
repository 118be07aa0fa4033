"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from phqdif.multigroup import estimate_theta, fit_multigroup
from phqdif.utils.simulation import simulate_dataset, simulate_two_groups

FAST_FIT = {"n_quadpts": 21, "tol": 1e-2}

SHIFTED_ITEM = 5


@pytest.fixture
def rng():
    """Reproducible random number generator."""
    return np.random.default_rng(42)


@pytest.fixture
def fast_fit():
    """Fit options for quick two-group fits."""
    return dict(FAST_FIT)


@pytest.fixture(scope="session")
def small_two_group():
    """Two groups of 300 with invariant items."""
    responses, groups = simulate_two_groups(300, group_means=(0.0, 0.4), seed=3)
    return {"responses": responses, "groups": groups}


@pytest.fixture(scope="session")
def fitted_constrained(small_two_group):
    """Fully constrained two-group fit on the small sample."""
    return fit_multigroup(
        small_two_group["responses"], small_two_group["groups"], **FAST_FIT
    )


@pytest.fixture(scope="session")
def fitted_core(small_two_group):
    """Two-group fit with only the first two items invariant."""
    return fit_multigroup(
        small_two_group["responses"],
        small_two_group["groups"],
        invariant_items=[0, 1],
        **FAST_FIT,
    )


@pytest.fixture(scope="session")
def no_dif_data():
    """1000 respondents per group, no item functions differently."""
    responses, groups = simulate_two_groups(1000, seed=11)
    return {"responses": responses, "groups": groups}


@pytest.fixture(scope="session")
def dif_data():
    """1000 respondents per group; group 1 thresholds of one item shifted by +1."""
    responses, groups = simulate_two_groups(
        1000, threshold_shift={SHIFTED_ITEM: 1.0}, seed=11
    )
    return {"responses": responses, "groups": groups, "item": SHIFTED_ITEM}


@pytest.fixture(scope="session")
def no_dif_baseline(no_dif_data):
    """Fully constrained fit and standardized scores for the no-DIF data."""
    return estimate_theta(no_dif_data["responses"], no_dif_data["groups"])


@pytest.fixture(scope="session")
def dif_baseline(dif_data):
    """Fully constrained fit and standardized scores for the shifted data."""
    return estimate_theta(dif_data["responses"], dif_data["groups"])


@pytest.fixture
def analysis_frame():
    """Simulated analysis table with sampling weights."""
    return simulate_dataset(250, with_weights=True, seed=5)


@pytest.fixture(scope="session")
def scored_frame():
    """Analysis table with a constrained theta column for curve fitting."""
    frame = simulate_dataset(400, with_weights=True, group_means=(0.0, 0.3), seed=8)
    responses = frame[[f"phq_{k}" for k in range(1, 10)]].to_numpy()
    _, scores = estimate_theta(responses, frame["sample_hms"].to_numpy(), **FAST_FIT)
    frame[scores.column_name] = scores.theta
    return frame
