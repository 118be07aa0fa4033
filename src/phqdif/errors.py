"""Exception hierarchy for the PHQ-9 invariance analysis.

Every error can carry the item and group it concerns so that batch runs can
report which part of the analysis failed.
"""

from __future__ import annotations


class PhqDifError(Exception):
    """Base class for analysis errors.

    Parameters
    ----------
    message : str
        Description of the failure.
    item : str, optional
        Item the failure concerns.
    group : str, optional
        Group the failure concerns.
    """

    def __init__(
        self,
        message: str,
        item: str | None = None,
        group: str | None = None,
    ) -> None:
        self.item = item
        self.group = group
        context = []
        if item is not None:
            context.append(f"item={item}")
        if group is not None:
            context.append(f"group={group}")
        if context:
            message = f"{message} [{', '.join(context)}]"
        super().__init__(message)


class ConvergenceError(PhqDifError, RuntimeError):
    """An iterative procedure did not converge within its iteration budget."""


class NonConvergenceError(ConvergenceError):
    """The DIF purification loop did not reach a stable flagged-item set.

    Attributes
    ----------
    history : list of frozenset
        Flagged item names at each iteration.
    """

    def __init__(
        self,
        message: str,
        history: list[frozenset[str]] | None = None,
        item: str | None = None,
        group: str | None = None,
    ) -> None:
        self.history = list(history or [])
        super().__init__(message, item=item, group=group)


class IdentifiabilityError(PhqDifError, ValueError):
    """Too few invariant items to identify the two-group model."""


class InputValidationError(PhqDifError, ValueError):
    """Response data violate the input contract."""
