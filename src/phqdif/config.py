"""Options for the staged PHQ-9 invariance analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from phqdif.constants import CORE_ITEMS, SUM_SCORE_CUTOFF
from phqdif.diagnostics.curves import SPECIFICATIONS
from phqdif.diagnostics.dif import DIFCriterion


@dataclass(frozen=True)
class AnalysisConfig:
    """Configuration bundle for :func:`phqdif.analysis.run_analysis`.

    Parameters
    ----------
    n_quadpts : int
        Quadrature points for the two-group GRM.
    max_iter : int
        Maximum EM iterations per fit.
    tol : float
        EM convergence tolerance on the log-likelihood change.
    seed : int, optional
        Recorded on every fit.
    dif_criterion : DIFCriterion
        Flagging rule for the DIF scan.
    dif_max_iter : int
        Maximum purification iterations.
    sensitivity_threshold : float
        |theta difference| counted as practically significant.
    core_items : tuple of int
        Items held invariant in the core-symptom variant.
    projection_theta : str
        Trait score column used by the response-curve models.
    curve_specifications : tuple of str
        Response-curve model specifications to fit for every outcome:
        "main" (theta and group) and/or "interaction" (adding theta x group).
    grid_step : float
        Theta spacing of the projection grid.
    sum_cutoff : float
        Sum-score screening cutoff.
    n_jobs : int
        Worker threads for per-item work; -1 uses all cores.
    verbose : bool
        Print stage progress.
    """

    n_quadpts: int = 41
    max_iter: int = 500
    tol: float = 1e-3
    seed: int | None = None
    dif_criterion: DIFCriterion = field(default_factory=DIFCriterion)
    dif_max_iter: int = 10
    sensitivity_threshold: float = 0.3
    core_items: tuple[int, ...] = CORE_ITEMS
    projection_theta: str = "theta_constrained"
    curve_specifications: tuple[str, ...] = ("main", "interaction")
    grid_step: float = 0.01
    sum_cutoff: float = SUM_SCORE_CUTOFF
    n_jobs: int = 1
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.grid_step <= 0:
            raise ValueError("grid_step must be positive")
        if self.sensitivity_threshold < 0:
            raise ValueError("sensitivity_threshold must be non-negative")
        if self.n_jobs == 0 or self.n_jobs < -1:
            raise ValueError("n_jobs must be positive or -1")
        if not self.curve_specifications:
            raise ValueError("curve_specifications cannot be empty")
        unknown = set(self.curve_specifications) - set(SPECIFICATIONS)
        if unknown:
            raise ValueError(f"Unknown curve specifications: {sorted(unknown)}")

    def fit_kwargs(self) -> dict[str, Any]:
        """Keyword arguments shared by every two-group model fit."""
        return {
            "n_quadpts": self.n_quadpts,
            "max_iter": self.max_iter,
            "tol": self.tol,
            "seed": self.seed,
        }
