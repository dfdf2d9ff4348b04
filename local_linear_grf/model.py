"""
High-level orchestration and public API for local linear forests.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence, Union

import numpy as np

from .analysis import variable_importance
from .config import PredictionConfig, TrainingConfig
from .data import Dataset
from .forest import Forest, train_forest
from .prediction import PredictionResult, predict, predict_oob, tune_ll_lambda


def train_ll_forest(
    X: np.ndarray,
    y: np.ndarray,
    *,
    sample_weight: Optional[np.ndarray] = None,
    **options: Any,
) -> Forest:
    """Validate the data and train a forest; ``options`` are :class:`TrainingConfig` fields."""
    data = Dataset.from_arrays(X, y, sample_weight)
    return train_forest(data, TrainingConfig(**options))


def predict_ll_forest(forest: Forest, X_test: np.ndarray, **options: Any) -> PredictionResult:
    """Predict with a trained forest; ``options`` are :class:`PredictionConfig` fields."""
    return predict(forest, X_test, PredictionConfig(**options))


class LocalLinearForest:
    """Regression forest with optional local linear corrections."""

    def __init__(self, forest: Forest):
        self.forest = forest

    @classmethod
    def fit(
        cls,
        X: np.ndarray,
        y: np.ndarray,
        sample_weight: Optional[np.ndarray] = None,
        num_trees: int = 2000,
        sample_fraction: float = 0.5,
        sample_with_replacement: bool = False,
        mtry: Optional[int] = None,
        min_node_size: int = 5,
        honesty: bool = True,
        honesty_fraction: float = 0.5,
        honesty_prune_leaves: bool = True,
        ci_group_size: int = 2,
        enable_ll_split: bool = False,
        ll_split_lambda: float = 0.1,
        ll_split_weight_penalty: bool = False,
        ll_split_variables: Optional[Sequence[int]] = None,
        ll_split_cutoff: Optional[int] = None,
        num_workers: int = 1,
        progress: bool = False,
        seed: Optional[int] = None,
    ) -> "LocalLinearForest":
        """Fit a forest; see :class:`TrainingConfig` for the options."""
        forest = train_ll_forest(
            X,
            y,
            sample_weight=sample_weight,
            num_trees=num_trees,
            sample_fraction=sample_fraction,
            sample_with_replacement=sample_with_replacement,
            mtry=mtry,
            min_node_size=min_node_size,
            honesty=honesty,
            honesty_fraction=honesty_fraction,
            honesty_prune_leaves=honesty_prune_leaves,
            ci_group_size=ci_group_size,
            enable_ll_split=enable_ll_split,
            ll_split_lambda=ll_split_lambda,
            ll_split_weight_penalty=ll_split_weight_penalty,
            ll_split_variables=ll_split_variables,
            ll_split_cutoff=ll_split_cutoff,
            num_workers=num_workers,
            progress=progress,
            seed=seed,
        )
        return cls(forest)

    def predict(
        self,
        Xnew: np.ndarray,
        linear_correction_variables: Optional[Sequence[int]] = None,
        ll_lambda: Optional[Union[float, str]] = None,
        ll_weight_penalty: bool = False,
        estimate_variance: bool = False,
        num_workers: int = 1,
        progress: bool = False,
    ) -> PredictionResult:
        """Predict new points, with a local linear correction when variables are given."""
        config = PredictionConfig(
            linear_correction_variables=linear_correction_variables,
            ll_lambda=ll_lambda,
            ll_weight_penalty=ll_weight_penalty,
            estimate_variance=estimate_variance,
            num_workers=num_workers,
            progress=progress,
        )
        return predict(self.forest, Xnew, config)

    def predict_oob(
        self,
        linear_correction_variables: Optional[Sequence[int]] = None,
        ll_lambda: Optional[Union[float, str]] = None,
        ll_weight_penalty: bool = False,
        estimate_variance: bool = False,
        num_workers: int = 1,
        progress: bool = False,
    ) -> PredictionResult:
        config = PredictionConfig(
            linear_correction_variables=linear_correction_variables,
            ll_lambda=ll_lambda,
            ll_weight_penalty=ll_weight_penalty,
            estimate_variance=estimate_variance,
            num_workers=num_workers,
            progress=progress,
        )
        return predict_oob(self.forest, config)

    def tune_ll_lambda(
        self,
        linear_correction_variables: Sequence[int],
        ll_weight_penalty: bool = False,
    ) -> float:
        return tune_ll_lambda(self.forest, linear_correction_variables, ll_weight_penalty)

    def variable_importance(self, decay_exponent: float = 2.0, max_depth: int = 4) -> np.ndarray:
        return variable_importance(self.forest, decay_exponent, max_depth)
