"""
Forest predictions: weighted averages and local linear corrections.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import DEFAULT_LAMBDA_PATH, PredictionConfig
from .data import Dataset, check_query_matrix
from .forest import Forest
from .parallel import run_parallel
from .ridge import RidgeFit, solve_ridge
from .variance import grouped_variance
from .weights import ForestWeights, aggregate_weights, locate_leaves

logger = logging.getLogger(__name__)


@dataclass
class PredictionResult:
    """Predictions for a batch of query points.

    Attributes:
        predictions: Point predictions ``(m,)``; NaN where no tree contributed.
        variance_estimates: Variance of each prediction, or ``None`` when not
            requested.
        ll_lambda: Ridge penalty used for the local linear correction, or
            ``None`` for plain forest predictions.
    """

    predictions: np.ndarray
    variance_estimates: Optional[np.ndarray]
    ll_lambda: Optional[float]


def regression_prediction(data: Dataset, weights: ForestWeights) -> float:
    """Forest-weighted mean outcome ``sum a_i w_i y_i / sum a_i w_i``."""
    if len(weights) == 0:
        return float("nan")
    aw = weights.values * data.sample_weight[weights.indices]
    total = float(np.sum(aw))
    if not total > 0.0:
        return float("nan")
    return float(aw @ data.y[weights.indices]) / total


def local_linear_fit(
    data: Dataset,
    x: np.ndarray,
    weights: ForestWeights,
    variables: Sequence[int],
    lam: float,
    weight_penalty: bool = False,
) -> RidgeFit:
    """Ridge regression of the outcomes on the forest weights, anchored at ``x``.

    The returned fit's intercept is the local linear prediction at ``x``.
    """
    idx = weights.indices
    aw = weights.values * data.sample_weight[idx]
    return solve_ridge(data.X[idx], data.y[idx], aw, x, lam, weight_penalty, variables)


def _tree_means(values: np.ndarray, indices: np.ndarray, leaf_samples: List[np.ndarray]) -> Tuple[np.ndarray, List[bool]]:
    """Average ``values`` (aligned with ``indices``) over each tree's leaf."""
    psi = np.zeros(len(leaf_samples), dtype=float)
    usable = []
    for b, leaf in enumerate(leaf_samples):
        if leaf.shape[0] == 0:
            usable.append(False)
            continue
        psi[b] = float(np.mean(values[np.searchsorted(indices, leaf)]))
        usable.append(True)
    return psi, usable


def regression_variance(
    data: Dataset,
    leaf_samples: List[np.ndarray],
    weights: ForestWeights,
    prediction: float,
    ci_group_size: int,
) -> float:
    """Variance of a plain forest prediction."""
    if len(weights) == 0 or np.isnan(prediction):
        return float("nan")
    idx = weights.indices
    w = data.sample_weight[idx]
    psi, usable = _tree_means(w * (data.y[idx] - prediction), idx, leaf_samples)
    mean_weight, _ = _tree_means(w, idx, leaf_samples)
    avg_w = float(np.mean(mean_weight[np.asarray(usable, dtype=bool)]))
    if not avg_w > 0.0:
        return float("nan")
    return grouped_variance(psi, usable, ci_group_size) / (avg_w * avg_w)


def local_linear_variance(
    data: Dataset,
    leaf_samples: List[np.ndarray],
    weights: ForestWeights,
    fit: RidgeFit,
    ci_group_size: int,
) -> float:
    """Variance of a local linear prediction from pseudo-residuals.

    Each training point contributes ``w_i * (zeta . d_i) * (y_i - d_i . beta)``,
    its linearized influence on the intercept; the per-tree leaf averages of
    these terms feed :func:`grouped_variance`.
    """
    if len(weights) == 0 or np.isnan(fit.intercept):
        return float("nan")
    idx = weights.indices
    design = fit.design(data.X[idx])
    residuals = data.y[idx] - design @ fit.coefficients
    pseudo = data.sample_weight[idx] * (design @ fit.zeta) * residuals
    psi, usable = _tree_means(pseudo, idx, leaf_samples)
    return grouped_variance(psi, usable, ci_group_size)


def predict_point(
    forest: Forest,
    x: np.ndarray,
    variables: Optional[Sequence[int]] = None,
    ll_lambda: float = 0.0,
    ll_weight_penalty: bool = False,
    estimate_variance: bool = False,
    oob_index: Optional[int] = None,
) -> Tuple[float, float]:
    """Predict a single query point.

    Args:
        forest: Trained forest.
        x: Query point ``(p,)``.
        variables: Local linear correction variables; ``None`` predicts the
            forest-weighted mean.
        ll_lambda: Ridge penalty of the correction.
        ll_weight_penalty: Scale the penalty by the Gram diagonal.
        estimate_variance: Also compute a variance estimate.
        oob_index: Exclude trees that drew this training observation.

    Returns:
        A tuple ``(prediction, variance)``; the variance is NaN when not
        requested.
    """
    leaf_samples = locate_leaves(forest, x, oob_index)
    weights = aggregate_weights(leaf_samples)
    data = forest.data
    variance = float("nan")
    if variables is None:
        prediction = regression_prediction(data, weights)
        if estimate_variance:
            variance = regression_variance(data, leaf_samples, weights, prediction, forest.ci_group_size)
        return prediction, variance
    if len(weights) == 0:
        return float("nan"), variance
    fit = local_linear_fit(data, x, weights, variables, ll_lambda, ll_weight_penalty)
    if estimate_variance:
        variance = local_linear_variance(data, leaf_samples, weights, fit, forest.ci_group_size)
    return fit.intercept, variance


def _lambda_path_errors(
    forest: Forest,
    variables: Sequence[int],
    weight_penalty: bool,
    lambda_path: Sequence[float],
    oob: bool,
) -> np.ndarray:
    data = forest.data
    preds = np.full((data.num_samples, len(lambda_path)), np.nan)
    for i in range(data.num_samples):
        x = data.X[i]
        weights = aggregate_weights(locate_leaves(forest, x, i if oob else None))
        if len(weights) == 0:
            continue
        for k, lam in enumerate(lambda_path):
            preds[i, k] = local_linear_fit(data, x, weights, variables, lam, weight_penalty).intercept
    complete = np.all(np.isfinite(preds), axis=1)
    if not np.any(complete):
        return np.full(len(lambda_path), np.nan)
    return np.mean((preds[complete] - data.y[complete, None]) ** 2, axis=0)


def tune_ll_lambda(
    forest: Forest,
    variables: Sequence[int],
    weight_penalty: bool = False,
    lambda_path: Sequence[float] = DEFAULT_LAMBDA_PATH,
) -> float:
    """Pick the local linear ridge penalty with the smallest out-of-bag error.

    Every training point is predicted by the trees that did not draw it, once
    per candidate penalty; the penalty with the smallest mean squared error
    wins, ties going to the smaller penalty. When no training point has
    out-of-bag trees, in-sample weights are used instead.

    Args:
        forest: Trained forest.
        variables: Local linear correction variables.
        weight_penalty: Scale the penalty by the Gram diagonal.
        lambda_path: Candidate penalties.

    Returns:
        The selected penalty.
    """
    path = sorted(float(lam) for lam in lambda_path)
    errors = _lambda_path_errors(forest, variables, weight_penalty, path, oob=True)
    if np.all(np.isnan(errors)):
        logger.warning("No out-of-bag predictions available; tuning ll_lambda on in-sample weights.")
        errors = _lambda_path_errors(forest, variables, weight_penalty, path, oob=False)
    if np.all(np.isnan(errors)):
        return path[0]
    chosen = path[int(np.nanargmin(errors))]
    logger.debug("Selected ll_lambda=%g from %d candidates.", chosen, len(path))
    return chosen


def _predict_chunk(
    task: Tuple[Forest, np.ndarray, Optional[np.ndarray], Optional[Sequence[int]], float, bool, bool]
) -> Tuple[np.ndarray, np.ndarray]:
    forest, X_chunk, oob_rows, variables, lam, weight_penalty, estimate_variance = task
    preds = np.empty(X_chunk.shape[0], dtype=float)
    variances = np.empty(X_chunk.shape[0], dtype=float)
    for r in range(X_chunk.shape[0]):
        oob_index = None if oob_rows is None else int(oob_rows[r])
        preds[r], variances[r] = predict_point(
            forest, X_chunk[r], variables, lam, weight_penalty, estimate_variance, oob_index
        )
    return preds, variances


def _run_predictions(
    forest: Forest,
    X: np.ndarray,
    config: PredictionConfig,
    oob: bool,
) -> PredictionResult:
    config.validate_for(forest.data.num_features)
    if config.estimate_variance and forest.ci_group_size < 2:
        raise ValueError("Variance estimates need a forest trained with ci_group_size >= 2.")

    variables = None
    lam: Optional[float] = None
    if config.local_linear:
        variables = [int(j) for j in config.linear_correction_variables]
        lam = config.ll_lambda
        if lam is None:
            lam = tune_ll_lambda(forest, variables, config.ll_weight_penalty, config.lambda_path)

    m = X.shape[0]
    # One chunk per worker; every chunk carries a pickled copy of the forest.
    num_chunks = max(1, min(m, config.num_workers))
    rows = np.array_split(np.arange(m), num_chunks)
    tasks = [
        (
            forest,
            X[chunk],
            chunk if oob else None,
            variables,
            0.0 if lam is None else lam,
            config.ll_weight_penalty,
            config.estimate_variance,
        )
        for chunk in rows
        if chunk.size > 0
    ]
    results = run_parallel(_predict_chunk, tasks, "Predicting", config.num_workers, config.progress)
    predictions = np.concatenate([r[0] for r in results]) if results else np.zeros(0)
    variances = np.concatenate([r[1] for r in results]) if results else np.zeros(0)
    return PredictionResult(
        predictions=predictions,
        variance_estimates=variances if config.estimate_variance else None,
        ll_lambda=lam,
    )


def predict(forest: Forest, X: np.ndarray, config: Optional[PredictionConfig] = None) -> PredictionResult:
    """Predict a batch of query points.

    Args:
        forest: Trained forest.
        X: Query points ``(m, p)``.
        config: Prediction options; defaults to plain forest predictions.

    Returns:
        A :class:`PredictionResult`.

    Raises:
        ValueError: If the query points or options are invalid.
    """
    config = config or PredictionConfig()
    X_arr = check_query_matrix(X, forest.data.num_features)
    return _run_predictions(forest, X_arr, config, oob=False)


def predict_oob(forest: Forest, config: Optional[PredictionConfig] = None) -> PredictionResult:
    """Out-of-bag predictions for every training observation."""
    config = config or PredictionConfig()
    return _run_predictions(forest, np.asarray(forest.data.X), config, oob=True)
