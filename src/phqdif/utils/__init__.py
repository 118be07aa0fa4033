from phqdif.utils.collapse import CollapsedData, collapse_patterns
from phqdif.utils.data import (
    check_group_variance,
    encode_groups,
    validate_dataset,
    validate_responses,
)
from phqdif.utils.harmonize import (
    combine_samples,
    harmonize_hms,
    harmonize_nhanes,
    scale_weights,
)
from phqdif.utils.simulation import simulate_dataset, simulate_grm, simulate_two_groups

__all__ = [
    "CollapsedData",
    "collapse_patterns",
    "validate_responses",
    "validate_dataset",
    "encode_groups",
    "check_group_variance",
    "harmonize_hms",
    "harmonize_nhanes",
    "combine_samples",
    "scale_weights",
    "simulate_two_groups",
    "simulate_dataset",
    "simulate_grm",
]
