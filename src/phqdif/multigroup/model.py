from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from phqdif.models.polytomous import GradedResponseModel


class MultigroupModel:
    """Container for group-specific GRMs with item-level equality constraints.

    This class holds one copy of the item model per group and tracks, item
    by item, whether the item's parameters are shared across groups
    (invariant) or estimated separately.

    Parameters
    ----------
    base_model : GradedResponseModel
        Template model defining item structure. Copied for each group.
    n_groups : int
        Number of groups.
    group_labels : list[str], optional
        Human-readable labels for each group.
    """

    def __init__(
        self,
        base_model: GradedResponseModel,
        n_groups: int = 2,
        group_labels: list[str] | None = None,
    ) -> None:
        if n_groups < 2:
            raise ValueError("n_groups must be at least 2")

        self.n_groups = n_groups
        self.n_items = base_model.n_items
        self.n_categories = base_model.n_categories
        self.model_name = base_model.model_name
        self.item_names = base_model.item_names.copy()

        if group_labels is None:
            self.group_labels = [f"Group_{g}" for g in range(n_groups)]
        else:
            if len(group_labels) != n_groups:
                raise ValueError(
                    f"group_labels length ({len(group_labels)}) must match n_groups ({n_groups})"
                )
            self.group_labels = list(group_labels)

        self._group_models = [base_model.copy() for _ in range(n_groups)]
        self._shared_items: set[int] = set(range(self.n_items))

    @property
    def group_models(self) -> list[GradedResponseModel]:
        """Get list of group-specific models."""
        return self._group_models

    @property
    def parameter_names(self) -> list[str]:
        return self._group_models[0].parameter_names

    @property
    def is_fitted(self) -> bool:
        return all(m.is_fitted for m in self._group_models)

    @property
    def shared_items(self) -> list[int]:
        return sorted(self._shared_items)

    @property
    def free_items(self) -> list[int]:
        return [i for i in range(self.n_items) if i not in self._shared_items]

    def get_group_model(self, group_idx: int) -> GradedResponseModel:
        if group_idx < 0 or group_idx >= self.n_groups:
            raise IndexError(f"group_idx {group_idx} out of range [0, {self.n_groups})")
        return self._group_models[group_idx]

    def get_group_parameters(self, group_idx: int) -> dict[str, NDArray[np.float64]]:
        return self.get_group_model(group_idx).parameters

    def set_shared_item(self, item_idx: int) -> None:
        """Constrain an item's parameters to be equal across groups."""
        self._check_item(item_idx)
        self._shared_items.add(item_idx)

    def set_group_specific_item(self, item_idx: int) -> None:
        """Let an item's parameters differ between groups."""
        self._check_item(item_idx)
        self._shared_items.discard(item_idx)

    def is_item_shared(self, item_idx: int) -> bool:
        self._check_item(item_idx)
        return item_idx in self._shared_items

    def set_item_parameters(
        self,
        item_idx: int,
        params: NDArray[np.float64],
        group_idx: int | None = None,
    ) -> None:
        """Write a packed ``[a, b_1, ..., b_{K-1}]`` vector into group models.

        Parameters
        ----------
        item_idx : int
            Item index.
        params : ndarray of shape (n_categories,)
            Discrimination followed by ordered thresholds.
        group_idx : int, optional
            Group to update. None updates every group (shared item).
        """
        groups = range(self.n_groups) if group_idx is None else [group_idx]
        thresholds = np.maximum.accumulate(np.asarray(params[1:], dtype=np.float64))
        for g in groups:
            group_model = self._group_models[g]
            group_model.set_item_parameter(item_idx, "discrimination", params[0])
            group_model.set_item_parameter(item_idx, "thresholds", thresholds)

    def get_item_parameters(self, item_idx: int, group_idx: int = 0) -> NDArray[np.float64]:
        """Packed ``[a, b_1, ..., b_{K-1}]`` vector of one item in one group."""
        params = self.get_group_model(group_idx).get_item_parameters(item_idx)
        return np.concatenate([params["discrimination"], params["thresholds"]])

    def mark_fitted(self) -> None:
        for m in self._group_models:
            m._is_fitted = True

    @property
    def n_parameters(self) -> int:
        """Total number of free item parameters accounting for constraints."""
        per_item = self.n_categories
        n_free = len(self.free_items)
        return per_item * (len(self._shared_items) + n_free * self.n_groups)

    def _check_item(self, item_idx: int) -> None:
        if item_idx < 0 or item_idx >= self.n_items:
            raise IndexError(f"item_idx {item_idx} out of range [0, {self.n_items})")

    def __repr__(self) -> str:
        return (
            f"MultigroupModel(model={self.model_name}, "
            f"n_groups={self.n_groups}, "
            f"n_items={self.n_items}, "
            f"shared={self.shared_items})"
        )
