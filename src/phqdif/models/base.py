from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Self

import numpy as np
from numpy.typing import NDArray


class BaseItemModel(ABC):
    model_name: str = "BaseModel"

    def __init__(
        self,
        n_items: int,
        item_names: list[str] | None = None,
    ) -> None:
        if n_items <= 0:
            raise ValueError("n_items must be positive")

        self.n_items = n_items
        self.item_names = list(item_names or [f"Item_{i}" for i in range(n_items)])

        if len(self.item_names) != n_items:
            raise ValueError(
                f"Length of item_names ({len(self.item_names)}) must match n_items ({n_items})"
            )

        self._parameters: dict[str, NDArray[np.float64]] = {}
        self._is_fitted: bool = False
        self._initialize_parameters()

    @abstractmethod
    def _initialize_parameters(self) -> None: ...

    @abstractmethod
    def probability(
        self,
        theta: NDArray[np.float64],
        item_idx: int,
    ) -> NDArray[np.float64]: ...

    @abstractmethod
    def log_likelihood_batch(
        self,
        responses: NDArray[np.int_],
        theta: NDArray[np.float64],
    ) -> NDArray[np.float64]: ...

    @property
    def parameters(self) -> dict[str, NDArray[np.float64]]:
        return {k: v.copy() for k, v in self._parameters.items()}

    @property
    def parameter_names(self) -> list[str]:
        return list(self._parameters.keys())

    @property
    def is_fitted(self) -> bool:
        return self._is_fitted

    @property
    def n_parameters(self) -> int:
        return sum(p.size for p in self._parameters.values())

    def get_item_parameters(self, item_idx: int) -> dict[str, NDArray[np.float64]]:
        if item_idx < 0 or item_idx >= self.n_items:
            raise IndexError(f"Item index {item_idx} out of range [0, {self.n_items})")
        return {
            name: np.atleast_1d(values[item_idx]).copy()
            for name, values in self._parameters.items()
        }

    def set_item_parameter(
        self,
        item_idx: int,
        param_name: str,
        value: float | NDArray[np.float64],
    ) -> None:
        if param_name not in self._parameters:
            raise ValueError(f"Unknown parameter: {param_name}")
        values = self._parameters[param_name]
        if values.ndim == 1:
            values[item_idx] = float(np.asarray(value).ravel()[0])
        else:
            values[item_idx] = np.asarray(value, dtype=np.float64)

    def copy(self) -> Self:
        new_model = self._empty_copy()
        new_model._parameters = {k: v.copy() for k, v in self._parameters.items()}
        new_model._is_fitted = self._is_fitted
        return new_model

    def _empty_copy(self) -> Self:
        return self.__class__(n_items=self.n_items, item_names=self.item_names.copy())

    def __repr__(self) -> str:
        status = "fitted" if self._is_fitted else "not fitted"
        return f"{self.__class__.__name__}(n_items={self.n_items}, {status})"


class PolytomousItemModel(BaseItemModel):
    def __init__(
        self,
        n_items: int,
        n_categories: int,
        item_names: list[str] | None = None,
    ) -> None:
        if n_categories < 2:
            raise ValueError(f"n_categories must be at least 2, got {n_categories}")
        self._n_categories = n_categories
        super().__init__(n_items, item_names)

    @property
    def n_categories(self) -> int:
        return self._n_categories

    def _empty_copy(self) -> Self:
        return self.__class__(
            n_items=self.n_items,
            n_categories=self._n_categories,
            item_names=self.item_names.copy(),
        )
