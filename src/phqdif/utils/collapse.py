"""Response pattern collapsing for EM estimation and scoring.

PHQ-9 data contain many repeated response patterns (most commonly the
all-zero pattern), so likelihoods are evaluated once per unique pattern and
weighted by its frequency.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True)
class CollapsedData:
    """Container for collapsed response data.

    Attributes
    ----------
    patterns : ndarray of shape (n_patterns, n_items)
        Unique response patterns.
    frequencies : ndarray of shape (n_patterns,)
        Frequency count for each pattern.
    indices : ndarray of shape (n_persons,)
        Index mapping each original person to their pattern.
    """

    patterns: NDArray[np.int_]
    frequencies: NDArray[np.int_]
    indices: NDArray[np.int_]

    @property
    def n_persons(self) -> int:
        return int(self.indices.shape[0])

    @property
    def n_patterns(self) -> int:
        return int(self.patterns.shape[0])

    def expand(self, pattern_values: NDArray[np.float64]) -> NDArray[np.float64]:
        """Expand pattern-level values back to person level.

        Parameters
        ----------
        pattern_values : ndarray of shape (n_patterns, ...)
            Values computed at the pattern level.

        Returns
        -------
        ndarray of shape (n_persons, ...)
        """
        return np.asarray(pattern_values)[self.indices]

    def weighted_sum(self, pattern_values: NDArray[np.float64]) -> float:
        """Frequency-weighted sum of pattern-level values."""
        return float(np.sum(self.frequencies * np.asarray(pattern_values)))


def collapse_patterns(responses: NDArray[np.int_]) -> CollapsedData:
    """Collapse identical response patterns.

    Parameters
    ----------
    responses : ndarray of shape (n_persons, n_items)
        Response matrix.

    Returns
    -------
    CollapsedData
        Unique patterns, frequencies and the person-to-pattern mapping.

    Examples
    --------
    >>> data = np.array([[1, 0, 3], [0, 2, 0], [1, 0, 3], [1, 0, 3]])
    >>> collapsed = collapse_patterns(data)
    >>> collapsed.n_patterns
    2
    >>> collapsed.frequencies
    array([1, 3])
    """
    responses = np.asarray(responses, dtype=np.int_)
    if responses.ndim != 2:
        raise ValueError(f"responses must be 2D, got {responses.ndim}D")

    patterns, indices, counts = np.unique(
        responses,
        axis=0,
        return_inverse=True,
        return_counts=True,
    )
    return CollapsedData(
        patterns=patterns,
        frequencies=counts,
        indices=np.asarray(indices).ravel(),
    )
