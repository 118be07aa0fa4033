"""Tests for release-and-test sensitivity analysis."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from phqdif import run_item_batch
from phqdif.diagnostics import release_and_test, theta_difference
from phqdif.scoring import fscores


class TestThetaDifference:
    def test_summaries(self):
        alternate = np.array([0.0, 0.5, -0.2, 1.0])
        baseline = np.array([0.0, 0.1, 0.0, 0.2])
        summary = theta_difference(alternate, baseline, threshold=0.3)

        assert_allclose(summary["mean_signed"], (0.0 + 0.4 - 0.2 + 0.8) / 4)
        assert_allclose(summary["mean_absolute"], (0.0 + 0.4 + 0.2 + 0.8) / 4)
        assert_allclose(summary["max_absolute"], 0.8)
        assert_allclose(summary["proportion_exceeding"], 0.5)

    def test_zero_threshold_counts_every_change(self):
        alternate = np.array([0.01, -0.02, 0.03])
        summary = theta_difference(alternate, np.zeros(3), threshold=0.0)
        assert summary["proportion_exceeding"] == 1.0

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="shape"):
            theta_difference(np.zeros(3), np.zeros(4))

    def test_negative_threshold(self):
        with pytest.raises(ValueError, match="non-negative"):
            theta_difference(np.zeros(3), np.zeros(3), threshold=-0.1)


class TestReleaseAndTest:
    def test_release_changes_scores(self, small_two_group, fitted_constrained, fast_fit):
        baseline = fscores(
            fitted_constrained, small_two_group["responses"], small_two_group["groups"]
        ).theta
        result = release_and_test(
            small_two_group["responses"],
            small_two_group["groups"],
            "phq_4",
            baseline,
            constrained_fit=fitted_constrained,
            **fast_fit,
        )

        assert result.item == "phq_4"
        assert result.mean_absolute > 0
        assert result.max_absolute >= result.mean_absolute
        assert result.fit.invariance.free_items == [3]
        assert result.scores.column_name == "theta_release_phq_4"
        assert result.lrt is not None
        assert result.lrt.df == 4
        assert "lrt_p" in result.to_dict()

    def test_zero_threshold_impactful(self, small_two_group, fitted_constrained, fast_fit):
        baseline = fscores(
            fitted_constrained, small_two_group["responses"], small_two_group["groups"]
        ).theta
        result = release_and_test(
            small_two_group["responses"],
            small_two_group["groups"],
            2,
            baseline,
            threshold=0.0,
            **fast_fit,
        )

        assert result.item == "phq_3"
        assert result.impactful
        assert result.proportion_exceeding > 0.5
        assert result.lrt is None

    def test_zero_threshold_flags_every_item(
        self, small_two_group, fitted_constrained, fast_fit
    ):
        baseline = fscores(
            fitted_constrained, small_two_group["responses"], small_two_group["groups"]
        ).theta
        items = [f"phq_{k}" for k in range(1, 10)]

        batch = run_item_batch(
            lambda item: release_and_test(
                small_two_group["responses"],
                small_two_group["groups"],
                item,
                baseline,
                threshold=0.0,
                **fast_fit,
            ),
            items,
        )

        assert batch.ok
        assert list(batch.results) == items
        assert all(result.impactful for result in batch.results.values())

    def test_unknown_item(self, small_two_group):
        with pytest.raises(ValueError, match="Unknown item"):
            release_and_test(
                small_two_group["responses"],
                small_two_group["groups"],
                "phq_12",
                np.zeros(600),
            )

    def test_index_out_of_range(self, small_two_group):
        with pytest.raises(ValueError, match="out of range"):
            release_and_test(
                small_two_group["responses"], small_two_group["groups"], 9, np.zeros(600)
            )

    def test_shifted_item_exceeds_noise_floor(
        self, no_dif_data, no_dif_baseline, dif_data, dif_baseline
    ):
        item = dif_data["item"]
        _, clean_scores = no_dif_baseline
        _, shifted_scores = dif_baseline

        noise = release_and_test(
            no_dif_data["responses"], no_dif_data["groups"], item, clean_scores.theta
        )
        signal = release_and_test(
            dif_data["responses"], dif_data["groups"], item, shifted_scores.theta
        )

        assert signal.mean_absolute > noise.mean_absolute
