"""Staged PHQ-9 invariance analysis.

Each stage takes the previous stage's output and returns a new object; the
analysis table gains derived columns by copy, never in place:

    prepare_dataset -> add_theta_variants -> run_dif_scan
        -> run_sensitivity -> project_curves

Per-item work (release-and-test refits, response-curve fits) runs through
:func:`run_item_batch`, which collects per-item failures instead of aborting
the batch.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Hashable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from phqdif.config import AnalysisConfig
from phqdif.constants import (
    ELEVATED_CATEGORY,
    GROUP_COLUMN,
    ITEM_NAMES,
    LABEL_COLUMN,
    N_CATEGORIES,
    SUM_COLUMN,
    WEIGHT_COLUMN,
)
from phqdif.diagnostics.curves import (
    SPECIFICATIONS,
    ItemResponseModel,
    ResponseCurve,
    average_difference,
    classification_impact,
    evaluation_grid,
    fit_item_response_model,
    project,
)
from phqdif.diagnostics.dif import DIFResult, scan_dif
from phqdif.diagnostics.sensitivity import SensitivityResult, release_and_test
from phqdif.errors import PhqDifError
from phqdif.multigroup import InvarianceSpec, estimate_theta
from phqdif.multigroup.results import MultigroupFitResult
from phqdif.results.score_result import ScoreResult
from phqdif.utils.data import validate_dataset

T = TypeVar("T")

# (outcome, specification) key of a response model
CurveKey = tuple[str, str]


def resolve_n_jobs(n_jobs: int) -> int:
    """Resolve n_jobs configuration, including -1 for all cores."""
    if n_jobs == -1:
        return os.cpu_count() or 1
    return n_jobs


@dataclass(frozen=True)
class ItemFailure:
    """A per-item task that raised a recoverable analysis error."""

    item: str
    error_type: str
    message: str


@dataclass
class BatchResult(Generic[T]):
    """Successful per-item results and the failures collected alongside."""

    results: dict[Hashable, T]
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def failures_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [vars(f) for f in self.failures], columns=["item", "error_type", "message"]
        )


def _item_label(item: Hashable) -> str:
    if isinstance(item, tuple):
        return ":".join(str(part) for part in item)
    return str(item)


def run_item_batch(
    func: Callable[[Any], T],
    items: Iterable[Hashable],
    n_jobs: int = 1,
) -> BatchResult[T]:
    """Apply ``func`` to every item, serially or in a thread pool.

    Analysis errors, ``ValueError`` and ``LinAlgError`` raised for one item
    are recorded as :class:`ItemFailure` and the remaining items still run.
    Any other exception propagates.

    Parameters
    ----------
    func : callable
        Per-item task taking the item identifier.
    items : iterable
        Item identifiers: names, or tuples such as (outcome, specification)
        which failures report joined with ":".
    n_jobs : int
        Worker threads; 1 runs serially and -1 uses all cores.

    Returns
    -------
    BatchResult
        Results keyed by item, in input order, plus failures.
    """
    items = list(items)

    def call(item: Hashable) -> tuple[Hashable, Any, ItemFailure | None]:
        try:
            return item, func(item), None
        except (PhqDifError, ValueError, np.linalg.LinAlgError) as exc:
            return item, None, ItemFailure(_item_label(item), type(exc).__name__, str(exc))

    worker_count = resolve_n_jobs(n_jobs)
    if worker_count == 1 or len(items) <= 1:
        outcomes = [call(item) for item in items]
    else:
        with ThreadPoolExecutor(max_workers=min(worker_count, len(items))) as executor:
            outcomes = list(executor.map(call, items))

    results = {}
    failures = []
    for item, value, failure in outcomes:
        if failure is None:
            results[item] = value
        else:
            failures.append(failure)
    return BatchResult(results=results, failures=failures)


@dataclass(frozen=True)
class AnalysisDataset:
    """Validated analysis table plus derived columns added by later stages."""

    frame: pd.DataFrame

    @property
    def responses(self) -> NDArray[np.int_]:
        return self.frame[list(ITEM_NAMES)].to_numpy(dtype=np.int_)

    @property
    def groups(self) -> NDArray[np.int_]:
        return self.frame[GROUP_COLUMN].to_numpy(dtype=np.int_)

    @property
    def n_persons(self) -> int:
        return len(self.frame)

    @property
    def theta_columns(self) -> list[str]:
        return [c for c in self.frame.columns if c.startswith("theta_")]

    def with_columns(self, columns: dict[str, NDArray]) -> AnalysisDataset:
        """Copy of the dataset with extra or replaced columns."""
        frame = self.frame.copy()
        for name, values in columns.items():
            frame[name] = values
        return AnalysisDataset(frame)

    def group_summary(self) -> pd.DataFrame:
        """Sample size and item category distribution per group.

        Returns
        -------
        DataFrame
            Indexed by (group label, item) with ``n``, ``mean`` and the
            category proportions ``p_0`` .. ``p_3``.
        """
        rows = []
        for g, sub in self.frame.groupby(GROUP_COLUMN, sort=True):
            label = sub[LABEL_COLUMN].iloc[0]
            for item in ITEM_NAMES:
                counts = sub[item].value_counts().reindex(range(N_CATEGORIES), fill_value=0)
                row = {"group": label, "item": item, "n": len(sub), "mean": sub[item].mean()}
                for k in range(N_CATEGORIES):
                    row[f"p_{k}"] = counts[k] / len(sub)
                rows.append(row)
        return pd.DataFrame(rows).set_index(["group", "item"])


def prepare_dataset(frame: pd.DataFrame) -> AnalysisDataset:
    """Validate the input table and add the elevated-symptom indicators."""
    validated = validate_dataset(frame)
    for item in ITEM_NAMES:
        validated[f"{item}_elevated"] = (validated[item] >= ELEVATED_CATEGORY).astype(np.int_)
    return AnalysisDataset(validated)


@dataclass(frozen=True)
class ThetaStage:
    """Dataset with ``theta_constrained`` and ``theta_core`` columns."""

    dataset: AnalysisDataset
    fits: dict[str, MultigroupFitResult]
    scores: dict[str, ScoreResult]


def add_theta_variants(dataset: AnalysisDataset, config: AnalysisConfig) -> ThetaStage:
    """Fit the fully constrained and core-symptom-anchored models."""
    n_items = len(ITEM_NAMES)
    variants = [
        InvarianceSpec.full(n_items, label="constrained"),
        InvarianceSpec(frozenset(config.core_items), n_items, label="core"),
    ]

    fits = {}
    scores = {}
    for spec in variants:
        if config.verbose:
            print(f"Fitting {spec}")
        fit, score = estimate_theta(
            dataset.responses, dataset.groups, spec, **config.fit_kwargs()
        )
        fits[spec.label] = fit
        scores[spec.label] = score

    new_dataset = dataset.with_columns({s.column_name: s.theta for s in scores.values()})
    return ThetaStage(dataset=new_dataset, fits=fits, scores=scores)


@dataclass(frozen=True)
class DIFStage:
    """Dataset with ``theta_dif`` and the purified DIF scan."""

    dataset: AnalysisDataset
    result: DIFResult

    @property
    def mean_abs_theta_shift(self) -> float:
        """Mean |theta_dif - theta_constrained| over respondents."""
        frame = self.dataset.frame
        return float(np.mean(np.abs(frame["theta_dif"] - frame["theta_constrained"])))


def run_dif_scan(stage: ThetaStage, config: AnalysisConfig) -> DIFStage:
    """Run the purified DIF scan and add its calibrated scores."""
    dataset = stage.dataset
    result = scan_dif(
        dataset.responses,
        dataset.groups,
        criterion=config.dif_criterion,
        max_iter=config.dif_max_iter,
        verbose=config.verbose,
        **config.fit_kwargs(),
    )
    return DIFStage(
        dataset=dataset.with_columns({"theta_dif": result.theta}),
        result=result,
    )


@dataclass(frozen=True)
class SensitivityStage:
    """Dataset with one ``theta_release_<item>`` column per released item."""

    dataset: AnalysisDataset
    batch: BatchResult[SensitivityResult]

    @property
    def results(self) -> dict[str, SensitivityResult]:
        return self.batch.results

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([r.to_dict() for r in self.results.values()]).set_index("item")


def run_sensitivity(
    stage: DIFStage | ThetaStage,
    constrained_fit: MultigroupFitResult,
    config: AnalysisConfig,
) -> SensitivityStage:
    """Release each item in turn and compare with ``theta_constrained``."""
    dataset = stage.dataset
    responses = dataset.responses
    groups = dataset.groups
    baseline = dataset.frame["theta_constrained"].to_numpy()

    def release(item: str) -> SensitivityResult:
        if config.verbose:
            print(f"Releasing {item}")
        return release_and_test(
            responses,
            groups,
            item,
            baseline,
            threshold=config.sensitivity_threshold,
            constrained_fit=constrained_fit,
            **config.fit_kwargs(),
        )

    batch = run_item_batch(release, ITEM_NAMES, n_jobs=config.n_jobs)
    new_dataset = dataset.with_columns(
        {f"theta_release_{item}": r.theta for item, r in batch.results.items()}
    )
    return SensitivityStage(dataset=new_dataset, batch=batch)


@dataclass(frozen=True)
class CurveStage:
    """Fitted response models, their projections and impact summaries.

    Models and curves are keyed by ``(outcome, specification)``, where the
    specification is ``"main"`` (theta and group) or ``"interaction"``
    (adding theta x group terms).
    """

    models: dict[CurveKey, ItemResponseModel]
    curves: dict[CurveKey, ResponseCurve]
    impact: pd.DataFrame
    classification: pd.DataFrame | None
    failures: list[ItemFailure]

    def coefficient_table(self) -> pd.DataFrame:
        """Coefficient tables of every response model, stacked."""
        frames = [
            m.coefficients.assign(outcome=outcome, specification=spec, kind=m.kind)
            for (outcome, spec), m in self.models.items()
        ]
        return pd.concat(frames, ignore_index=True)

    def pseudo_r2_table(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "outcome": outcome,
                    "specification": spec,
                    "kind": m.kind,
                    "pseudo_r2": m.pseudo_r2,
                }
                for (outcome, spec), m in self.models.items()
            ]
        )


def _curve_outcomes() -> dict[str, str]:
    outcomes = {item: "ordinal" for item in ITEM_NAMES}
    outcomes.update({f"{item}_elevated": "binary" for item in ITEM_NAMES})
    outcomes[SUM_COLUMN] = "sum"
    return outcomes


def project_curves(dataset: AnalysisDataset, config: AnalysisConfig) -> CurveStage:
    """Fit response models for every item, indicator and the sum score under
    each configured specification and project them over a theta grid crossed
    with both groups.

    The classification table uses the interaction sum-score curve when that
    specification is fitted, otherwise the main-effects one.
    """
    frame = dataset.frame
    theta = config.projection_theta
    if theta not in frame.columns:
        raise ValueError(f"Column not found: {theta}")

    grid = evaluation_grid(frame[theta].to_numpy(), step=config.grid_step)
    outcomes = _curve_outcomes()
    keys = [(outcome, spec) for spec in config.curve_specifications for outcome in outcomes]

    def fit_and_project(key: CurveKey) -> tuple[ItemResponseModel, ResponseCurve, dict]:
        outcome, spec = key
        model = fit_item_response_model(
            frame,
            outcome,
            theta=theta,
            group=GROUP_COLUMN,
            interaction=SPECIFICATIONS[spec],
            kind=outcomes[outcome],
        )
        curve = project(model, grid)
        return model, curve, average_difference(curve)

    batch = run_item_batch(fit_and_project, keys, n_jobs=config.n_jobs)

    models = {key: r[0] for key, r in batch.results.items()}
    curves = {key: r[1] for key, r in batch.results.items()}
    impact = pd.DataFrame(
        [
            {"item": outcome, "specification": spec, "kind": outcomes[outcome], **r[2]}
            for (outcome, spec), r in batch.results.items()
        ],
        columns=["item", "specification", "kind", "signed", "unsigned"],
    )

    classification = None
    for spec in ("interaction", "main"):
        if (SUM_COLUMN, spec) in curves:
            classification = classification_impact(
                frame,
                curves[(SUM_COLUMN, spec)],
                cutoff=config.sum_cutoff,
                weight_column=WEIGHT_COLUMN,
            )
            break

    return CurveStage(
        models=models,
        curves=curves,
        impact=impact,
        classification=classification,
        failures=batch.failures,
    )


@dataclass(frozen=True)
class AnalysisResult:
    """Outputs of every analysis stage."""

    config: AnalysisConfig
    dataset: AnalysisDataset
    theta: ThetaStage
    dif: DIFStage
    sensitivity: SensitivityStage
    curves: CurveStage

    @property
    def failures(self) -> list[ItemFailure]:
        return self.sensitivity.batch.failures + self.curves.failures

    def summary(self) -> str:
        dif = self.dif.result
        lines = []
        lines.append("=" * 60)
        lines.append("PHQ-9 Measurement Invariance Analysis")
        lines.append("=" * 60)
        lines.append(f"Respondents: {self.dataset.n_persons}")
        for label, fit in self.theta.fits.items():
            lines.append(f"  {label}: LL={fit.log_likelihood:.2f}, BIC={fit.bic:.2f}")
        lines.append(f"DIF items: {', '.join(dif.flagged) if dif.flagged else 'none'}")
        lines.append(f"Anchors: {', '.join(dif.anchors)}")
        lines.append(f"Mean |theta_dif - theta_constrained|: {self.dif.mean_abs_theta_shift:.4f}")
        impactful = [r.item for r in self.sensitivity.results.values() if r.impactful]
        lines.append(f"Impactful releases: {', '.join(impactful) if impactful else 'none'}")
        if self.failures:
            lines.append(f"Failures: {len(self.failures)}")
            for f in self.failures:
                lines.append(f"  {f.item}: {f.error_type}: {f.message}")
        lines.append("=" * 60)
        return "\n".join(lines)


def run_analysis(frame: pd.DataFrame, config: AnalysisConfig | None = None) -> AnalysisResult:
    """Run every stage of the analysis on an input table.

    Parameters
    ----------
    frame : DataFrame
        Columns ``phq_1`` .. ``phq_9``, ``phq_sum``, ``sample_hms``,
        ``sample_char`` and optionally ``scaled_weight``.
    config : AnalysisConfig, optional
        Analysis options.

    Returns
    -------
    AnalysisResult
        Every stage's output.

    Raises
    ------
    InputValidationError
        If the table violates the input contract.
    ConvergenceError
        If a whole-sample fit or the DIF purification fails to converge.
    IdentifiabilityError
        If DIF flags leave fewer than two anchors.
    """
    config = config or AnalysisConfig()

    dataset = prepare_dataset(frame)
    theta_stage = add_theta_variants(dataset, config)
    dif_stage = run_dif_scan(theta_stage, config)
    sensitivity_stage = run_sensitivity(
        dif_stage, theta_stage.fits["constrained"], config
    )
    curve_stage = project_curves(sensitivity_stage.dataset, config)

    return AnalysisResult(
        config=config,
        dataset=sensitivity_stage.dataset,
        theta=theta_stage,
        dif=dif_stage,
        sensitivity=sensitivity_stage,
        curves=curve_stage,
    )
