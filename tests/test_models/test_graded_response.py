"""Tests for the graded response model."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from phqdif.models import GradedResponseModel


class TestGradedResponseModel:
    """Tests for GRM probabilities and likelihoods."""

    def test_default_parameters(self):
        """Test default parameter shapes."""
        model = GradedResponseModel(n_items=9, n_categories=4)

        assert model.discrimination.shape == (9,)
        assert model.thresholds.shape == (9, 3)
        assert not model.is_fitted

    def test_probabilities_sum_to_one(self):
        """Category probabilities form a distribution at every theta."""
        model = GradedResponseModel(n_items=3, n_categories=4)
        theta = np.linspace(-4, 4, 51)

        for j in range(3):
            probs = model.probability(theta, j)
            assert probs.shape == (51, 4)
            assert np.all(probs >= 0)
            assert_allclose(probs.sum(axis=1), 1.0, atol=1e-10)

    def test_cumulative_probability_monotone(self):
        """P*(X >= k) decreases in k and increases in theta."""
        model = GradedResponseModel(n_items=1, n_categories=4)
        theta = np.linspace(-3, 3, 25)
        cum = model.cumulative_probability(theta, 0)

        assert np.all(np.diff(cum, axis=1) <= 0)
        assert np.all(np.diff(cum, axis=0) >= 0)

    def test_initialize_from_data_ordered(self, rng):
        """Start values are ordered thresholds."""
        responses = rng.integers(0, 4, size=(200, 5))
        model = GradedResponseModel(n_items=5, n_categories=4)
        model.initialize_from_data(responses)

        assert np.all(np.diff(model.thresholds, axis=1) >= 0)
        assert_allclose(model.discrimination, 1.0)

    def test_log_likelihood_batch_matches_probabilities(self):
        """Pattern log-likelihood equals the sum of item log-probabilities."""
        model = GradedResponseModel(n_items=2, n_categories=4)
        theta = np.array([-1.0, 0.0, 1.5])
        pattern = np.array([[2, 0]])

        ll = model.log_likelihood_batch(pattern, theta)
        expected = np.log(model.probability(theta, 0)[:, 2]) + np.log(
            model.probability(theta, 1)[:, 0]
        )
        assert_allclose(ll[0], expected)

    def test_invalid_n_categories(self):
        """Test that fewer than two categories raises."""
        with pytest.raises(ValueError, match="at least 2"):
            GradedResponseModel(n_items=3, n_categories=1)

    def test_copy_is_independent(self):
        """Test that copies do not share parameter arrays."""
        model = GradedResponseModel(n_items=2, n_categories=4)
        clone = model.copy()
        clone.set_item_parameter(0, "discrimination", 2.5)

        assert model.discrimination[0] == 1.0
        assert clone.discrimination[0] == 2.5
