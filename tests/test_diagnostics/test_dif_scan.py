"""Tests for ordinal logistic DIF detection with purification."""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from phqdif.diagnostics import (
    DIFCriterion,
    ItemDIFStatistics,
    compute_item_dif,
    scan_dif,
)
from phqdif.errors import IdentifiabilityError, NonConvergenceError


def _stats(**overrides):
    values = dict(
        item="phq_1",
        n_obs=100,
        ll1=-120.0,
        ll2=-118.0,
        ll3=-117.5,
        r2_1=0.30,
        r2_2=0.31,
        r2_3=0.312,
        beta1=2.0,
        beta2=1.9,
    )
    values.update(overrides)
    return ItemDIFStatistics(**values)


class TestDIFCriterion:
    def test_defaults(self):
        criterion = DIFCriterion()
        assert criterion.criterion == "r2"
        assert criterion.r2_change == 0.02

    def test_unknown_criterion(self):
        with pytest.raises(ValueError, match="Unknown DIF criterion"):
            DIFCriterion("lrt")

    def test_r2_below_threshold(self):
        assert DIFCriterion().classify(_stats()) == "none"

    def test_r2_uniform(self):
        assert DIFCriterion().classify(_stats(r2_2=0.33, r2_3=0.331)) == "uniform"

    def test_r2_non_uniform(self):
        assert DIFCriterion().classify(_stats(r2_2=0.30, r2_3=0.33)) == "non-uniform"

    def test_chisqr(self):
        criterion = DIFCriterion("chisqr", alpha=0.01)
        assert criterion.classify(_stats(ll2=-110.0, ll3=-110.0)) == "uniform"
        assert criterion.classify(_stats(ll2=-119.9, ll3=-119.8)) == "none"

    def test_beta(self):
        criterion = DIFCriterion("beta", beta_change=0.1)
        assert criterion.classify(_stats(beta2=1.5)) == "uniform"
        assert criterion.classify(_stats(beta2=1.95)) == "none"


class TestItemDIFStatistics:
    def test_chi_square_statistics(self):
        s = _stats()
        assert_allclose(s.chi12, 4.0)
        assert_allclose(s.chi13, 5.0)
        assert_allclose(s.chi23, 1.0)

    def test_negative_chi_square_clamped(self):
        s = _stats(ll2=-120.5)
        assert s.chi12 == 0.0
        assert s.p12 == 1.0

    def test_beta12(self):
        assert_allclose(_stats(beta1=2.0, beta2=1.5).beta12, 0.25)

    def test_to_dict_keys(self):
        row = _stats().to_dict()
        for key in ("item", "chi12", "chi13", "chi23", "beta12", "r2_12", "r2_13", "r2_23"):
            assert key in row


class TestComputeItemDIF:
    def test_shifted_item_detected(self, rng):
        n = 1500
        theta = rng.standard_normal(n)
        group = np.repeat([0, 1], n // 2)
        latent = 2.0 * theta - 1.5 * group + rng.logistic(size=n)
        y = np.digitize(latent, [-1.0, 1.0, 2.5])

        s = compute_item_dif(y, theta, group, "phq_x")

        assert s.flagged
        assert s.classification == "uniform"
        assert s.r2_12 > 0.02
        assert s.p12 < 1e-6

    def test_clean_item_not_flagged(self, rng):
        n = 1500
        theta = rng.standard_normal(n)
        group = np.repeat([0, 1], n // 2)
        latent = 2.0 * theta + rng.logistic(size=n)
        y = np.digitize(latent, [-1.0, 1.0, 2.5])

        s = compute_item_dif(y, theta, group, "phq_x")

        assert not s.flagged
        assert s.r2_13 < 0.02
        assert s.r2_2 >= s.r2_1 - 1e-8


class TestScanDIF:
    def test_no_dif_keeps_anchors(self, no_dif_data, no_dif_baseline):
        result = scan_dif(no_dif_data["responses"], no_dif_data["groups"])
        _, constrained = no_dif_baseline

        assert len(result.anchors) >= 7
        assert np.mean(np.abs(result.theta - constrained.theta)) < 0.1

    def test_shifted_item_flagged_alone(self, dif_data):
        result = scan_dif(dif_data["responses"], dif_data["groups"])
        shifted = f"phq_{dif_data['item'] + 1}"

        assert result.flagged == [shifted]
        assert shifted not in result.anchors
        assert len(result.anchors) == 8
        assert result.history[-1] == frozenset({shifted})

    def test_deterministic(self, dif_data):
        first = scan_dif(dif_data["responses"], dif_data["groups"], seed=1)
        second = scan_dif(dif_data["responses"], dif_data["groups"], seed=1)

        assert first.anchors == second.anchors
        assert_array_equal(first.theta, second.theta)

    def test_result_table(self, no_dif_data):
        result = scan_dif(no_dif_data["responses"], no_dif_data["groups"])
        table = result.to_dataframe()

        assert list(table.index) == [f"phq_{k}" for k in range(1, 10)]
        assert {"chi12", "r2_13", "beta12", "flagged", "classification"} <= set(table.columns)
        assert "Ordinal Logistic Regression DIF" in result.summary()

    def test_purification_limit(self, dif_data):
        """Flagged set changes after the first pass, so one pass cannot settle."""
        with pytest.raises(NonConvergenceError) as excinfo:
            scan_dif(dif_data["responses"], dif_data["groups"], max_iter=1)
        assert len(excinfo.value.history) == 1

    def test_too_many_flags(self, small_two_group, fast_fit):
        criterion = DIFCriterion("beta", beta_change=0.0)
        with pytest.raises(IdentifiabilityError, match="anchors") as excinfo:
            scan_dif(
                small_two_group["responses"],
                small_two_group["groups"],
                criterion=criterion,
                **fast_fit,
            )
        flagged = excinfo.value.item.split(", ")
        assert len(flagged) > 7
        assert all(name.startswith("phq_") for name in flagged)
        assert f"item={excinfo.value.item}" in str(excinfo.value)

    def test_invalid_max_iter(self, small_two_group):
        with pytest.raises(ValueError, match="max_iter"):
            scan_dif(small_two_group["responses"], small_two_group["groups"], max_iter=0)
