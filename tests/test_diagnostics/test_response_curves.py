"""Tests for response-curve models and their projections."""

import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_allclose

from phqdif.diagnostics import (
    average_difference,
    classification_impact,
    evaluation_grid,
    fit_item_response_model,
    project,
)
from phqdif.diagnostics.curves import ResponseCurve, polynomial_design
from phqdif.errors import InputValidationError


@pytest.fixture
def curve_frame(scored_frame):
    frame = scored_frame.copy()
    frame["phq_2_elevated"] = (frame["phq_2"] >= 2).astype(int)
    return frame


class TestEvaluationGrid:
    def test_step_and_endpoints(self):
        grid = evaluation_grid(np.array([-1.0, 0.3, 1.0]), step=0.5)
        sweep = grid[grid["group"] == 0]["theta"].to_numpy()

        assert_allclose(sweep, [-1.0, -0.5, 0.0, 0.5, 1.0])
        assert len(grid) == 10
        assert list(grid["group"].unique()) == [0, 1]

    def test_fine_step_includes_maximum(self):
        grid = evaluation_grid(np.array([-2.0, 1.0]), step=0.01)
        sweep = grid[grid["group"] == 1]["theta"].to_numpy()

        assert len(sweep) == 301
        assert_allclose(sweep[-1], 1.0)

    def test_invalid_step(self):
        with pytest.raises(ValueError, match="step"):
            evaluation_grid(np.array([0.0, 1.0]), step=0)

    def test_non_finite(self):
        with pytest.raises(ValueError):
            evaluation_grid(np.array([0.0, np.nan]))


class TestPolynomialDesign:
    def test_columns(self):
        frame = polynomial_design(np.array([2.0]), np.array([1]), interaction=True)
        assert list(frame.columns[:5]) == ["theta", "theta^2", "theta^3", "theta^4", "group"]
        assert frame["theta^4:group"].iloc[0] == 16.0

    def test_no_interaction(self):
        frame = polynomial_design(np.array([2.0]), np.array([1]), interaction=False)
        assert frame.shape[1] == 5


class TestOrdinalCurves:
    def test_coefficients(self, curve_frame):
        model = fit_item_response_model(curve_frame, "phq_3")

        assert model.kind == "ordinal"
        assert list(model.coefficients["term"]) == ["theta", "group", "theta:group"]
        assert {"estimate", "odds_ratio", "ci_lower", "ci_upper", "p_value"} <= set(
            model.coefficients.columns
        )
        assert model.coefficients.loc[0, "estimate"] > 0
        assert 0 < model.pseudo_r2 < 1
        assert model.categories == (0, 1, 2, 3)

    def test_probabilities_sum_to_one(self, curve_frame):
        model = fit_item_response_model(curve_frame, "phq_3")
        grid = evaluation_grid(curve_frame["theta_constrained"].to_numpy(), step=0.05)
        curve = project(model, grid)
        probs = curve.table[["p_0", "p_1", "p_2", "p_3"]].to_numpy()

        assert np.all((probs >= 0) & (probs <= 1))
        assert_allclose(probs.sum(axis=1), 1.0, atol=1e-6)
        assert_allclose(curve.table["expected"], probs @ np.arange(4))

    def test_expected_increases_with_theta(self, curve_frame):
        model = fit_item_response_model(curve_frame, "phq_1", interaction=False)
        curve = project(model, evaluation_grid(np.array([-2.0, 2.0]), step=0.1))
        expected = curve.group_curve(0)["expected"].to_numpy()

        assert np.all(np.diff(expected) > 0)

    def test_idempotent(self, curve_frame):
        model = fit_item_response_model(curve_frame, "phq_3")
        grid = evaluation_grid(curve_frame["theta_constrained"].to_numpy(), step=0.05)

        first = project(model, grid).to_dataframe()
        second = project(model, grid).to_dataframe()
        pd.testing.assert_frame_equal(first, second)

    def test_missing_column(self, curve_frame):
        with pytest.raises(ValueError, match="Column not found"):
            fit_item_response_model(curve_frame, "phq_3", theta="theta_dif")

    def test_unknown_kind(self, curve_frame):
        with pytest.raises(ValueError, match="Unknown response model kind"):
            fit_item_response_model(curve_frame, "phq_3", kind="poisson")


class TestBinaryAndSumCurves:
    def test_binary(self, curve_frame):
        model = fit_item_response_model(curve_frame, "phq_2_elevated", kind="binary")
        curve = project(model, evaluation_grid(np.array([-2.0, 2.0]), step=0.1))

        assert "const" not in list(model.coefficients["term"])
        assert "odds_ratio" in model.coefficients.columns
        assert_allclose(curve.table["p_1"], curve.table["expected"])
        assert np.all((curve.table["p_1"] > 0) & (curve.table["p_1"] < 1))

    def test_constant_indicator_rejected(self, curve_frame):
        frame = curve_frame.assign(phq_2_elevated=0)

        with pytest.raises(InputValidationError, match="zero variance") as excinfo:
            fit_item_response_model(frame, "phq_2_elevated", kind="binary")
        assert excinfo.value.item == "phq_2_elevated"

    def test_specification_label(self, curve_frame):
        main = fit_item_response_model(
            curve_frame, "phq_2_elevated", interaction=False, kind="binary"
        )
        assert main.specification == "main"
        assert "theta:group" not in list(main.coefficients["term"])

    def test_sum(self, curve_frame):
        model = fit_item_response_model(curve_frame, "phq_sum", kind="sum")

        assert "effect" in model.coefficients.columns
        assert len(model.coefficients) == 9
        assert model.pseudo_r2 > 0.5

        curve = project(model, evaluation_grid(curve_frame["theta_constrained"].to_numpy()))
        assert curve.probability_columns == []


class TestImpactSummaries:
    def test_average_difference(self):
        table = pd.DataFrame(
            {
                "theta": [0.0, 1.0, 0.0, 1.0],
                "group": [0, 0, 1, 1],
                "expected": [1.0, 2.0, 1.5, 1.0],
            }
        )
        result = average_difference(ResponseCurve("phq_1", "ordinal", table))

        assert_allclose(result["signed"], (0.5 - 1.0) / 2)
        assert_allclose(result["unsigned"], (0.5 + 1.0) / 2)

    def test_average_difference_misaligned(self):
        table = pd.DataFrame(
            {"theta": [0.0, 1.0, 0.0], "group": [0, 0, 1], "expected": [1.0, 2.0, 1.5]}
        )
        with pytest.raises(ValueError, match="same theta"):
            average_difference(ResponseCurve("phq_1", "ordinal", table))

    def test_no_group_effect_small_difference(self, curve_frame):
        model = fit_item_response_model(curve_frame, "phq_4")
        curve = project(model, evaluation_grid(curve_frame["theta_constrained"].to_numpy()))
        result = average_difference(curve)

        assert abs(result["signed"]) <= result["unsigned"]
        assert result["unsigned"] < 0.3

    def test_classification_impact(self, curve_frame):
        model = fit_item_response_model(curve_frame, "phq_sum", kind="sum")
        curve = project(model, evaluation_grid(curve_frame["theta_constrained"].to_numpy()))
        table = classification_impact(curve_frame, curve, cutoff=10)

        assert list(table["group"]) == [0, 1]
        assert table["n"].sum() == len(curve_frame)
        assert np.all((table["prevalence"] >= 0) & (table["prevalence"] <= 1))
        assert table["weighted_prevalence"].notna().all()

    def test_classification_needs_sum_curve(self, curve_frame):
        model = fit_item_response_model(curve_frame, "phq_3")
        curve = project(model, evaluation_grid(np.array([-1.0, 1.0]), step=0.5))
        with pytest.raises(ValueError, match="sum-score"):
            classification_impact(curve_frame, curve)
