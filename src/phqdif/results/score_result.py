"""Result container for person scoring."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.typing import NDArray


@dataclass
class ScoreResult:
    """Container for person theta estimates from one model variant.

    Parameters
    ----------
    theta : ndarray of shape (n_persons,)
        Scores used downstream. Standardized to mean 0 and SD 1 (ddof=1)
        over all respondents unless scoring was asked not to.
    raw_theta : ndarray of shape (n_persons,)
        Posterior means on the reference group's latent metric.
    standard_error : ndarray of shape (n_persons,)
        Posterior standard deviations on the raw metric.
    method : str
        Scoring method used.
    variant : str, optional
        Name of the invariance variant that produced the scores.
    person_ids : list, optional
        Identifiers for each person.

    Examples
    --------
    >>> scores = fscores(fit, responses, group_index)
    >>> scores.to_dataframe().head()
    """

    theta: NDArray[np.float64]
    raw_theta: NDArray[np.float64]
    standard_error: NDArray[np.float64]
    method: str
    variant: str | None = None
    person_ids: list | None = None

    @property
    def n_persons(self) -> int:
        """Number of persons scored."""
        return self.theta.shape[0]

    @property
    def column_name(self) -> str:
        """Column name used for these scores in analysis tables."""
        return f"theta_{self.variant}" if self.variant else "theta"

    def to_dataframe(self) -> pd.DataFrame:
        """Convert results to a pandas DataFrame.

        Returns
        -------
        pandas.DataFrame
            Columns ``theta``, ``raw_theta`` and ``se``.
        """
        df = pd.DataFrame(
            {
                "theta": self.theta,
                "raw_theta": self.raw_theta,
                "se": self.standard_error,
            }
        )

        if self.person_ids is not None:
            df.index = self.person_ids
            df.index.name = "person"

        return df

    def to_array(self, include_se: bool = False) -> NDArray[np.float64]:
        if not include_se:
            return self.theta.copy()
        return np.column_stack([self.theta, self.standard_error])

    def __repr__(self) -> str:
        return (
            f"ScoreResult(n_persons={self.n_persons}, "
            f"method='{self.method}', "
            f"variant={self.variant!r})"
        )
