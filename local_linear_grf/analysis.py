"""
Summaries of how a trained forest uses its variables.
"""
from __future__ import annotations

import numpy as np

from .forest import Forest


def split_frequencies(forest: Forest, max_depth: int = 4) -> np.ndarray:
    """Count the splits on each variable at each depth.

    Args:
        forest: Trained forest.
        max_depth: Number of depths (starting at the root) to count.

    Returns:
        An integer array of shape ``(max_depth, p)``.
    """
    if max_depth < 1:
        raise ValueError("max_depth must be at least 1.")
    counts = np.zeros((max_depth, forest.data.num_features), dtype=np.int64)
    for tree in forest.trees:
        depths = tree.node_depths()
        for node in range(tree.num_nodes):
            if tree.is_leaf(node) or depths[node] >= max_depth:
                continue
            counts[depths[node], tree.split_vars[node]] += 1
    return counts


def variable_importance(forest: Forest, decay_exponent: float = 2.0, max_depth: int = 4) -> np.ndarray:
    """Depth-weighted share of splits made on each variable.

    The split share of every depth is weighted by ``(depth + 1) ** -decay_exponent``
    and the result normalized to sum to one (all zeros if nothing was split).
    """
    counts = split_frequencies(forest, max_depth).astype(float)
    totals = counts.sum(axis=1, keepdims=True)
    shares = np.divide(counts, totals, out=np.zeros_like(counts), where=totals > 0)
    depth_weights = np.arange(1, max_depth + 1, dtype=float) ** -decay_exponent
    importance = depth_weights @ shares
    total = float(np.sum(importance))
    if total > 0.0:
        importance /= total
    return importance
