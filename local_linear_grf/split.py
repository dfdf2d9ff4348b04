"""
Split search routines for regression and ridge-residual trees.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import numpy as np

from .ridge import RidgeFit, solve_ridge


def best_split_for_node(
    node_rows: np.ndarray,
    X: np.ndarray,
    responses: np.ndarray,
    weights: np.ndarray,
    variables: np.ndarray,
    min_leaf: int,
) -> Optional[Dict[str, Any]]:
    """Find the CART split maximizing the weighted between-child score.

    The score ``S_L^2 / W_L + S_R^2 / W_R`` (``S`` weighted response sums,
    ``W`` weight sums) is maximized, which minimizes the weighted
    within-child sum of squares. Candidate thresholds are midpoints between
    consecutive distinct values and rows with ``x <= threshold`` go left.

    Variables are scanned in ascending order and an incumbent is only
    replaced by a strictly better score, so ties go to the lowest variable
    index and then the lowest threshold.

    Args:
        node_rows: Training indices in the node ``(m,)``.
        X: Full training covariate matrix.
        responses: Responses aligned with ``node_rows``.
        weights: Sample weights aligned with ``node_rows``.
        variables: Candidate split variables.
        min_leaf: Minimum number of rows on each side of a split.

    Returns:
        ``None`` when no admissible split exists, otherwise a dictionary with
        ``feature``, ``threshold``, ``objective`` and the ``left``/``right``
        training indices.
    """
    n = node_rows.shape[0]
    if n < 2 * min_leaf:
        return None
    best = None
    best_obj = -np.inf
    left_counts = np.arange(1, n, dtype=np.int64)
    right_counts = n - left_counts
    size_mask = (left_counts >= min_leaf) & (right_counts >= min_leaf)
    for j in np.sort(np.asarray(variables, dtype=np.int64)):
        xj = X[node_rows, j]
        ord_idx = np.argsort(xj, kind="mergesort")
        x_sorted = xj[ord_idx]
        if x_sorted[0] == x_sorted[-1]:
            continue
        w_sorted = weights[ord_idx]
        wy_sorted = w_sorted * responses[ord_idx]
        sumL = np.cumsum(wy_sorted)[:-1]
        weightL = np.cumsum(w_sorted)[:-1]
        sumR = float(np.sum(wy_sorted)) - sumL
        weightR = float(np.sum(w_sorted)) - weightL
        valid_mask = size_mask & (np.diff(x_sorted) > 0) & (weightL > 0) & (weightR > 0)
        if not np.any(valid_mask):
            continue
        valid_idx = np.where(valid_mask)[0]
        obj = np.full(n - 1, -np.inf, dtype=float)
        obj[valid_idx] = (
            sumL[valid_idx] ** 2 / weightL[valid_idx] + sumR[valid_idx] ** 2 / weightR[valid_idx]
        )
        local_best = int(np.argmax(obj))
        local_best_obj = float(obj[local_best])
        if local_best_obj > best_obj:
            nL = local_best + 1
            thr = 0.5 * (x_sorted[local_best] + x_sorted[local_best + 1])
            best_obj = local_best_obj
            best = {
                "feature": int(j),
                "threshold": float(thr),
                "objective": local_best_obj,
                "left": node_rows[ord_idx[:nL]],
                "right": node_rows[ord_idx[nL:]],
            }
    return best


def fit_overall_ridge(
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    variables: np.ndarray,
    lam: float,
    weight_penalty: bool,
) -> RidgeFit:
    """Ridge fit on the whole dataset, reused by large nodes."""
    anchor = np.average(X, axis=0, weights=weights)
    return solve_ridge(X, y, weights, anchor, lam, weight_penalty, variables)


def ll_split_residuals(
    node_rows: np.ndarray,
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    variables: np.ndarray,
    lam: float,
    weight_penalty: bool,
    cutoff: int,
    overall_fit: Optional[RidgeFit],
) -> np.ndarray:
    """Relabel a node's outcomes as residuals from a ridge regression.

    Nodes with more than ``cutoff`` rows reuse ``overall_fit``; smaller nodes
    fit their own ridge regression, anchored at the node's weighted mean.

    Args:
        node_rows: Training indices in the node.
        X: Full training covariate matrix.
        y: Full training outcome vector.
        weights: Full sample-weight vector.
        variables: Covariates entering the ridge design.
        lam: Split-time ridge penalty.
        weight_penalty: Scale the penalty by the Gram diagonal.
        cutoff: Node size above which ``overall_fit`` is used.
        overall_fit: Full-dataset fit from :func:`fit_overall_ridge`.

    Returns:
        Residuals ``y - fitted`` aligned with ``node_rows``.
    """
    X_node = X[node_rows]
    y_node = y[node_rows]
    if overall_fit is not None and node_rows.shape[0] > cutoff:
        fit = overall_fit
    else:
        w_node = weights[node_rows]
        if float(np.sum(w_node)) > 0.0:
            anchor = np.average(X_node, axis=0, weights=w_node)
        else:
            anchor = np.mean(X_node, axis=0)
        fit = solve_ridge(X_node, y_node, w_node, anchor, lam, weight_penalty, variables)
        if np.isnan(fit.intercept):
            return y_node - np.mean(y_node)
    return y_node - fit.predict(X_node)
