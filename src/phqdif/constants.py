"""Constants for numerical stability and the fixed PHQ-9 item layout.

These are true constants that should not be user-configurable.
For configurable values, use function arguments with defaults.
"""

PROB_EPSILON: float = 1e-10
"""Small value to prevent log(0) and division by zero in probability calculations."""

PROB_CLIP_MIN: float = 0.005
"""Minimum cumulative proportion used when deriving threshold start values."""

PROB_CLIP_MAX: float = 0.995
"""Maximum cumulative proportion used when deriving threshold start values."""

REGULARIZATION_EPSILON: float = 1e-6
"""Lower bound on an estimated latent variance."""

N_ITEMS: int = 9
"""Number of PHQ-9 items."""

N_CATEGORIES: int = 4
"""Response categories per item: 0 = not at all ... 3 = nearly every day."""

ITEM_NAMES: tuple[str, ...] = tuple(f"phq_{i}" for i in range(1, N_ITEMS + 1))
"""Column names of the item responses."""

CORE_ITEMS: tuple[int, ...] = (0, 1)
"""Indices of the two core symptoms (anhedonia, depressed mood)."""

ELEVATED_CATEGORY: int = 2
"""Responses at or above this category count as an elevated symptom."""

SUM_SCORE_CUTOFF: int = 10
"""Conventional PHQ-9 cutoff for probable major depression."""

MIN_ANCHOR_ITEMS: int = 2
"""Minimum invariant items needed to link the two group scales."""

SUM_COLUMN: str = "phq_sum"
GROUP_COLUMN: str = "sample_hms"
LABEL_COLUMN: str = "sample_char"
WEIGHT_COLUMN: str = "scaled_weight"
