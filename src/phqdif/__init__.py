from phqdif._version import __version__
from phqdif.analysis import (
    AnalysisDataset,
    AnalysisResult,
    BatchResult,
    ItemFailure,
    add_theta_variants,
    prepare_dataset,
    project_curves,
    run_analysis,
    run_dif_scan,
    run_item_batch,
    run_sensitivity,
)
from phqdif.config import AnalysisConfig
from phqdif.diagnostics.curves import (
    average_difference,
    classification_impact,
    evaluation_grid,
    fit_item_response_model,
    project,
)
from phqdif.diagnostics.dif import DIFCriterion, DIFResult, scan_dif
from phqdif.diagnostics.sensitivity import SensitivityResult, release_and_test
from phqdif.errors import (
    ConvergenceError,
    IdentifiabilityError,
    InputValidationError,
    NonConvergenceError,
    PhqDifError,
)
from phqdif.estimation.quadrature import GaussHermiteQuadrature
from phqdif.models.polytomous import GradedResponseModel
from phqdif.multigroup import (
    InvarianceSpec,
    MultigroupFitResult,
    estimate_theta,
    fit_multigroup,
)
from phqdif.results.score_result import ScoreResult
from phqdif.scoring import fscores
from phqdif.utils.data import validate_dataset, validate_responses
from phqdif.utils.simulation import simulate_dataset, simulate_two_groups

__all__ = [
    "__version__",
    "run_analysis",
    "prepare_dataset",
    "add_theta_variants",
    "run_dif_scan",
    "run_sensitivity",
    "project_curves",
    "run_item_batch",
    "AnalysisConfig",
    "AnalysisDataset",
    "AnalysisResult",
    "BatchResult",
    "ItemFailure",
    "fit_multigroup",
    "estimate_theta",
    "fscores",
    "InvarianceSpec",
    "MultigroupFitResult",
    "ScoreResult",
    "GradedResponseModel",
    "GaussHermiteQuadrature",
    "scan_dif",
    "DIFCriterion",
    "DIFResult",
    "release_and_test",
    "SensitivityResult",
    "fit_item_response_model",
    "evaluation_grid",
    "project",
    "average_difference",
    "classification_impact",
    "validate_dataset",
    "validate_responses",
    "simulate_two_groups",
    "simulate_dataset",
    "PhqDifError",
    "ConvergenceError",
    "NonConvergenceError",
    "IdentifiabilityError",
    "InputValidationError",
]
