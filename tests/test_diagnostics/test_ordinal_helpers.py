"""Tests for the ordinal regression helpers."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from phqdif.diagnostics._ordinal import (
    design_matrix,
    fit_ordinal,
    nagelkerke_r2,
    null_log_likelihood,
)


class TestDesignMatrix:
    def test_theta_only(self):
        frame = design_matrix(np.array([0.1, 0.2]))
        assert list(frame.columns) == ["theta"]

    def test_interaction(self):
        frame = design_matrix(np.array([1.0, 2.0]), np.array([0, 1]), interaction=True)
        assert list(frame.columns) == ["theta", "group", "theta:group"]
        assert_allclose(frame["theta:group"], [0.0, 2.0])

    def test_interaction_requires_group(self):
        with pytest.raises(ValueError, match="group"):
            design_matrix(np.array([1.0]), interaction=True)


class TestNagelkerke:
    def test_null_model_is_zero(self):
        assert nagelkerke_r2(-100.0, -100.0, 50) == 0.0

    def test_bounded(self):
        r2 = nagelkerke_r2(-20.0, -100.0, 100)
        assert 0 < r2 <= 1

    def test_null_log_likelihood(self):
        y = np.array([0, 0, 1, 1])
        assert_allclose(null_log_likelihood(y), 4 * np.log(0.5))


class TestFitOrdinal:
    def test_recovers_positive_slope(self, rng):
        theta = rng.standard_normal(800)
        latent = 1.5 * theta + rng.logistic(size=800)
        y = np.digitize(latent, [-1.0, 0.5, 2.0])

        results = fit_ordinal(y, design_matrix(theta))
        slope = np.asarray(results.params)[0]

        assert 1.1 < slope < 1.9
        assert list(results.model.labels) == [0, 1, 2, 3]
        assert results.llf > null_log_likelihood(y)
