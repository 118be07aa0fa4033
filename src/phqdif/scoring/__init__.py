"""Person scoring for fitted two-group models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from phqdif.results.score_result import ScoreResult
from phqdif.scoring.eap import EAPScorer

if TYPE_CHECKING:
    from phqdif.multigroup.results import MultigroupFitResult


def fscores(
    fit: MultigroupFitResult,
    responses: NDArray[np.int_],
    group_index: NDArray[np.int_],
    n_quadpts: int | None = None,
    standardize: bool = True,
    variant: str | None = None,
    person_ids: list | None = None,
) -> ScoreResult:
    """Estimate person abilities (theta scores).

    Parameters
    ----------
    fit : MultigroupFitResult
        Fitted two-group model.
    responses : ndarray of shape (n_persons, n_items)
        Response matrix.
    group_index : ndarray of shape (n_persons,)
        Group index of each person (0 = reference group).
    n_quadpts : int, optional
        Number of quadrature points. Default: the number used in the fit.
    standardize : bool, default=True
        Rescale to mean 0 and SD 1 over all respondents.
    variant : str, optional
        Name of the invariance variant, stored on the result.
    person_ids : list, optional
        Identifiers for each person in the output.

    Returns
    -------
    ScoreResult
        Object containing theta estimates and standard errors.

    Examples
    --------
    >>> fit = fit_multigroup(responses, groups, invariant_items=[0, 1])
    >>> scores = fscores(fit, responses, group_index, variant="core")
    >>> scores.to_dataframe()
    """
    scorer = EAPScorer(
        n_quadpts=n_quadpts if n_quadpts is not None else fit.n_quadpts,
        standardize=standardize,
    )
    return scorer.score(
        fit, responses, group_index, variant=variant, person_ids=person_ids
    )


__all__ = ["EAPScorer", "ScoreResult", "fscores"]
