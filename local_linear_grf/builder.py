"""
Growing a single honest regression tree.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Tuple

import numpy as np

from .data import Dataset
from .ridge import RidgeFit
from .split import best_split_for_node, ll_split_residuals
from .tree import Tree, prune_empty_leaves, repopulate_leaves
from .utils import RNG


@dataclass(frozen=True)
class GrowthParams:
    """Per-forest settings resolved against the training data."""

    mtry: int
    min_node_size: int
    honesty: bool
    honesty_prune_leaves: bool
    enable_ll_split: bool = False
    ll_split_lambda: float = 0.1
    ll_split_weight_penalty: bool = False
    ll_split_variables: Optional[np.ndarray] = None
    ll_split_cutoff: int = 0


def grow_tree(
    data: Dataset,
    split_samples: np.ndarray,
    honest_samples: np.ndarray,
    params: GrowthParams,
    rng: RNG,
    overall_fit: Optional[RidgeFit] = None,
) -> Tree:
    """Grow one tree on ``split_samples`` and fill its leaves.

    Nodes are processed breadth first and numbered in creation order; node
    ``k`` draws its candidate variables from ``rng.child(k)``. A node with
    fewer than ``2 * min_node_size`` samples, or without an admissible split,
    becomes a leaf.

    Args:
        data: Training data.
        split_samples: Indices used to choose splits.
        honest_samples: Indices used to populate leaves when honesty is on;
            ignored otherwise.
        params: Resolved growth settings.
        rng: Stream owned by this tree.
        overall_fit: Full-data ridge fit for ridge-residual splitting.

    Returns:
        The grown :class:`Tree`.
    """
    drawn = np.concatenate([split_samples, honest_samples]) if params.honesty else split_samples
    tree = Tree(drawn)
    root = tree.add_node()
    queue: Deque[Tuple[int, np.ndarray]] = deque([(root, split_samples)])
    p = data.num_features

    while queue:
        node, rows = queue.popleft()
        best = None
        if rows.shape[0] >= 2 * params.min_node_size:
            variables = rng.child(node).variable_subset(p, params.mtry)
            if params.enable_ll_split:
                responses = ll_split_residuals(
                    rows,
                    data.X,
                    data.y,
                    data.sample_weight,
                    params.ll_split_variables,
                    params.ll_split_lambda,
                    params.ll_split_weight_penalty,
                    params.ll_split_cutoff,
                    overall_fit,
                )
            else:
                responses = data.y[rows]
            best = best_split_for_node(
                rows,
                data.X,
                responses,
                data.sample_weight[rows],
                variables,
                params.min_node_size,
            )
        if best is None:
            tree.leaf_samples[node] = rows
            continue
        left, right = tree.set_split(node, best["feature"], best["threshold"])
        queue.append((left, best["left"]))
        queue.append((right, best["right"]))

    if params.honesty:
        repopulate_leaves(tree, data.X, honest_samples)
        if params.honesty_prune_leaves:
            prune_empty_leaves(tree)
    return tree
