"""
Validated, read-only training data shared by every tree of a forest.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, dtype=np.float64, order="C", copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class Dataset:
    """Covariates, outcomes and sample weights of the training observations.

    Attributes:
        X: Covariate matrix of shape ``(n, p)``.
        y: Outcome vector of shape ``(n,)``.
        sample_weight: Non-negative observation weights of shape ``(n,)``.
    """

    X: np.ndarray
    y: np.ndarray
    sample_weight: np.ndarray

    @property
    def num_samples(self) -> int:
        return int(self.X.shape[0])

    @property
    def num_features(self) -> int:
        return int(self.X.shape[1])

    @classmethod
    def from_arrays(
        cls,
        X: np.ndarray,
        y: np.ndarray,
        sample_weight: Optional[np.ndarray] = None,
    ) -> "Dataset":
        """Validate raw arrays and wrap them in an immutable dataset.

        Args:
            X: Covariate matrix ``(n, p)``.
            y: Outcomes ``(n,)``.
            sample_weight: Optional non-negative weights ``(n,)``.

        Returns:
            A :class:`Dataset` holding read-only copies of the inputs.

        Raises:
            ValueError: If shapes disagree, the data is empty, or any value
                is non-finite or any weight is negative.
        """
        X_arr = np.asarray(X, dtype=np.float64)
        y_arr = np.asarray(y, dtype=np.float64).reshape(-1)
        if X_arr.ndim != 2:
            raise ValueError("X must be a two-dimensional array.")
        n, p = X_arr.shape
        if n == 0 or p == 0:
            raise ValueError("X must contain at least one observation and one variable.")
        if y_arr.shape[0] != n:
            raise ValueError(f"X has {n} rows but y has {y_arr.shape[0]} entries.")
        if not np.all(np.isfinite(X_arr)):
            raise ValueError("X contains non-finite values.")
        if not np.all(np.isfinite(y_arr)):
            raise ValueError("y contains non-finite values.")
        if sample_weight is None:
            w_arr = np.ones(n, dtype=np.float64)
        else:
            w_arr = np.asarray(sample_weight, dtype=np.float64).reshape(-1)
            if w_arr.shape[0] != n:
                raise ValueError(f"X has {n} rows but sample_weight has {w_arr.shape[0]} entries.")
            if not np.all(np.isfinite(w_arr)):
                raise ValueError("sample_weight contains non-finite values.")
            if np.any(w_arr < 0.0):
                raise ValueError("sample_weight must be non-negative.")
            if not np.sum(w_arr) > 0.0:
                raise ValueError("sample_weight must have positive total mass.")
        return cls(X=_frozen(X_arr), y=_frozen(y_arr), sample_weight=_frozen(w_arr))


def check_query_matrix(X: np.ndarray, num_features: int) -> np.ndarray:
    """Coerce query points to a finite ``(m, p)`` float matrix.

    A one-dimensional input is treated as a single query point.
    """
    X_arr = np.asarray(X, dtype=np.float64)
    if X_arr.ndim == 1:
        X_arr = X_arr.reshape(1, -1)
    if X_arr.ndim != 2:
        raise ValueError("Query points must be a one- or two-dimensional array.")
    if X_arr.shape[1] != num_features:
        raise ValueError(f"Query points have {X_arr.shape[1]} columns, expected {num_features}.")
    if not np.all(np.isfinite(X_arr)):
        raise ValueError("Query points contain non-finite values.")
    return np.ascontiguousarray(X_arr)
