"""Tests for the staged analysis pipeline and batch runner."""

import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_allclose

from phqdif import (
    AnalysisConfig,
    BatchResult,
    add_theta_variants,
    prepare_dataset,
    project_curves,
    run_analysis,
    run_item_batch,
    run_sensitivity,
)
from phqdif.analysis import resolve_n_jobs
from phqdif.diagnostics import DIFCriterion
from phqdif.errors import ConvergenceError, InputValidationError, PhqDifError
from phqdif.utils import simulate_dataset

ITEMS = [f"phq_{k}" for k in range(1, 10)]


@pytest.fixture(scope="module")
def fast_config():
    return AnalysisConfig(n_quadpts=21, tol=1e-2, grid_step=0.05, seed=0)


@pytest.fixture(scope="module")
def pipeline_frame():
    return simulate_dataset(300, with_weights=True, group_means=(0.0, 0.3), seed=21)


@pytest.fixture(scope="module")
def analysis_result(pipeline_frame, fast_config):
    return run_analysis(pipeline_frame, fast_config)


class TestRunItemBatch:
    def test_serial(self):
        batch = run_item_batch(lambda item: item.upper(), ["a", "b"])
        assert batch.results == {"a": "A", "b": "B"}
        assert batch.ok

    def test_threaded_keeps_order(self):
        batch = run_item_batch(lambda item: len(item), ITEMS, n_jobs=4)
        assert list(batch.results) == ITEMS

    def test_failures_collected(self):
        def task(item):
            if item == "phq_2":
                raise ConvergenceError("no luck", item=item)
            if item == "phq_3":
                raise np.linalg.LinAlgError("singular")
            return 1

        batch = run_item_batch(task, ITEMS[:4], n_jobs=2)

        assert set(batch.results) == {"phq_1", "phq_4"}
        assert [f.item for f in batch.failures] == ["phq_2", "phq_3"]
        assert batch.failures[0].error_type == "ConvergenceError"
        assert "item=phq_2" in batch.failures[0].message
        assert list(batch.failures_dataframe().columns) == ["item", "error_type", "message"]

    def test_other_errors_propagate(self):
        def task(item):
            raise KeyError(item)

        with pytest.raises(KeyError):
            run_item_batch(task, ["phq_1"])

    def test_resolve_n_jobs(self):
        assert resolve_n_jobs(3) == 3
        assert resolve_n_jobs(-1) >= 1


class TestAnalysisConfig:
    def test_defaults(self):
        config = AnalysisConfig()
        assert config.n_quadpts == 41
        assert config.tol == 1e-3
        assert config.dif_criterion == DIFCriterion()
        assert config.fit_kwargs() == {"n_quadpts": 41, "max_iter": 500, "tol": 1e-3, "seed": None}

    def test_invalid(self):
        with pytest.raises(ValueError):
            AnalysisConfig(grid_step=0)
        with pytest.raises(ValueError):
            AnalysisConfig(n_jobs=0)
        with pytest.raises(ValueError, match="Unknown curve specifications"):
            AnalysisConfig(curve_specifications=("main", "quadratic"))
        with pytest.raises(ValueError, match="cannot be empty"):
            AnalysisConfig(curve_specifications=())


class TestPrepareDataset:
    def test_elevated_columns(self, analysis_frame):
        dataset = prepare_dataset(analysis_frame)

        for item in ITEMS:
            expected = (dataset.frame[item] >= 2).astype(int)
            assert (dataset.frame[f"{item}_elevated"] == expected).all()
        assert "phq_1_elevated" not in analysis_frame.columns

    def test_group_summary(self, analysis_frame):
        summary = prepare_dataset(analysis_frame).group_summary()

        assert summary.shape[0] == 18
        assert_allclose(summary[["p_0", "p_1", "p_2", "p_3"]].sum(axis=1), 1.0)
        assert set(summary.index.get_level_values("group")) == {"NHANES", "HMS"}

    def test_invalid_input(self, analysis_frame):
        with pytest.raises(InputValidationError):
            prepare_dataset(analysis_frame.drop(columns="phq_sum"))


class TestStages:
    def test_theta_variants_do_not_mutate(self, analysis_frame, fast_config):
        dataset = prepare_dataset(analysis_frame)
        before = dataset.frame.copy()
        stage = add_theta_variants(dataset, fast_config)

        pd.testing.assert_frame_equal(dataset.frame, before)
        assert {"theta_constrained", "theta_core"} <= set(stage.dataset.frame.columns)
        assert set(stage.fits) == {"constrained", "core"}
        assert stage.fits["core"].invariance.invariant_items == frozenset({0, 1})

    def test_sensitivity_stage(self, analysis_frame, fast_config):
        stage = add_theta_variants(prepare_dataset(analysis_frame), fast_config)
        sensitivity = run_sensitivity(stage, stage.fits["constrained"], fast_config)

        assert sensitivity.batch.ok
        assert list(sensitivity.results) == ITEMS
        for item in sensitivity.results:
            assert f"theta_release_{item}" in sensitivity.dataset.frame.columns
        assert "theta_release_phq_1" not in stage.dataset.frame.columns
        table = sensitivity.to_dataframe()
        assert {"mean_signed", "mean_absolute", "proportion_exceeding", "impactful"} <= set(
            table.columns
        )

    def test_curves_need_theta(self, analysis_frame, fast_config):
        with pytest.raises(ValueError, match="theta_constrained"):
            project_curves(prepare_dataset(analysis_frame), fast_config)

    def test_constant_indicator_recorded_as_failure(self, analysis_frame, fast_config):
        frame = analysis_frame.copy()
        frame["phq_9"] = frame["phq_9"].clip(upper=1)
        frame["phq_sum"] = frame[ITEMS].sum(axis=1)
        dataset = prepare_dataset(frame)
        sum_score = dataset.frame["phq_sum"].to_numpy(dtype=float)
        dataset = dataset.with_columns(
            {"theta_constrained": (sum_score - sum_score.mean()) / sum_score.std(ddof=1)}
        )

        stage = project_curves(dataset, fast_config)

        failed = {f.item: f for f in stage.failures}
        assert set(failed) == {"phq_9_elevated:main", "phq_9_elevated:interaction"}
        assert all(f.error_type == "InputValidationError" for f in failed.values())
        assert ("phq_9_elevated", "main") not in stage.models
        assert "phq_9_elevated" not in set(stage.impact["item"])
        assert ("phq_9", "interaction") in stage.models


class TestRunAnalysis:
    def test_all_stages(self, analysis_result):
        assert isinstance(analysis_result.sensitivity.batch, BatchResult)
        columns = set(analysis_result.dataset.frame.columns)
        assert {"theta_constrained", "theta_core", "theta_dif"} <= columns

    def test_standardized_scores(self, analysis_result):
        frame = analysis_result.dataset.frame
        for column in ("theta_constrained", "theta_core", "theta_dif"):
            assert_allclose(frame[column].mean(), 0.0, atol=1e-10)
            assert_allclose(frame[column].std(ddof=1), 1.0, atol=1e-10)

    def test_both_specifications(self, analysis_result):
        models = analysis_result.curves.models

        assert analysis_result.curves.failures == []
        assert len(models) == 38
        for outcome in ("phq_1", "phq_1_elevated", "phq_sum"):
            assert not models[(outcome, "main")].interaction
            assert models[(outcome, "interaction")].interaction
        main_terms = set(models[("phq_1", "main")].coefficients["term"])
        interaction_terms = set(models[("phq_1", "interaction")].coefficients["term"])
        assert main_terms < interaction_terms

    def test_impact_table(self, analysis_result):
        impact = analysis_result.curves.impact

        assert list(impact.columns) == ["item", "specification", "kind", "signed", "unsigned"]
        assert len(impact) == 38
        assert set(impact["specification"]) == {"main", "interaction"}
        assert (impact["unsigned"] >= impact["signed"].abs() - 1e-12).all()

    def test_curve_probabilities(self, analysis_result):
        curve = analysis_result.curves.curves[("phq_1", "interaction")]
        probs = curve.table[curve.probability_columns].to_numpy()
        assert_allclose(probs.sum(axis=1), 1.0, atol=1e-6)

    def test_classification(self, analysis_result):
        classification = analysis_result.curves.classification
        assert classification is not None
        assert len(classification) == 2

    def test_tables(self, analysis_result):
        coefficients = analysis_result.curves.coefficient_table()
        assert {"term", "estimate", "outcome", "specification", "kind"} <= set(
            coefficients.columns
        )
        r2 = analysis_result.curves.pseudo_r2_table()
        assert len(r2) == 38
        assert r2["pseudo_r2"].between(0, 1).all()

    def test_dif_shift(self, analysis_result):
        assert analysis_result.dif.mean_abs_theta_shift >= 0

    def test_summary(self, analysis_result):
        text = analysis_result.summary()
        assert "PHQ-9 Measurement Invariance Analysis" in text
        assert "Anchors" in text

    def test_input_not_mutated(self, pipeline_frame, analysis_result):
        assert "theta_constrained" not in pipeline_frame.columns

    def test_errors_share_base(self):
        assert issubclass(InputValidationError, PhqDifError)
        assert issubclass(InputValidationError, ValueError)
