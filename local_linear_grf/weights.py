"""
Forest kernel weights for a query point.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .forest import Forest
from .tree import find_leaf

_EMPTY = np.zeros(0, dtype=np.int64)


@dataclass
class ForestWeights:
    """Sparse weight vector over the training observations.

    Attributes:
        indices: Sorted training indices with positive weight.
        values: Weights aligned with ``indices``.
        num_contributing_trees: Trees whose leaf for the query was non-empty.
    """

    indices: np.ndarray
    values: np.ndarray
    num_contributing_trees: int

    def __len__(self) -> int:
        return int(self.indices.shape[0])

    def total(self) -> float:
        return float(np.sum(self.values))

    def to_dense(self, num_samples: int) -> np.ndarray:
        dense = np.zeros(num_samples, dtype=float)
        dense[self.indices] = self.values
        return dense


def locate_leaves(forest: Forest, x: np.ndarray, oob_index: Optional[int] = None) -> List[np.ndarray]:
    """Honest samples of the leaf reached by ``x`` in every tree.

    Args:
        forest: Trained forest.
        x: Query point ``(p,)``.
        oob_index: When given, trees that drew this training observation
            contribute an empty array instead.

    Returns:
        One index array per tree, in tree order.
    """
    out: List[np.ndarray] = []
    for tree in forest.trees:
        if oob_index is not None and tree.was_drawn(oob_index):
            out.append(_EMPTY)
            continue
        out.append(tree.leaf_samples[find_leaf(tree, x)])
    return out


def aggregate_weights(leaf_samples: List[np.ndarray]) -> ForestWeights:
    """Turn per-tree leaf memberships into normalized forest weights.

    Each member of a non-empty leaf receives ``1 / |leaf|`` from its tree and
    the totals are divided by the number of contributing trees, so the
    weights sum to one whenever any tree contributes. When every tree
    contributes this is exactly ``1 / (B * |leaf|)`` per tree.

    Args:
        leaf_samples: Output of :func:`locate_leaves`.

    Returns:
        A :class:`ForestWeights`; empty when no tree contributes.
    """
    members = [leaf for leaf in leaf_samples if leaf.shape[0] > 0]
    if not members:
        return ForestWeights(_EMPTY, np.zeros(0, dtype=float), 0)
    all_idx = np.concatenate(members)
    all_w = np.concatenate([np.full(leaf.shape[0], 1.0 / leaf.shape[0]) for leaf in members])
    indices, inverse = np.unique(all_idx, return_inverse=True)
    values = np.bincount(inverse.reshape(-1), weights=all_w, minlength=indices.shape[0])
    values /= float(len(members))
    return ForestWeights(indices.astype(np.int64), values, len(members))


def compute_forest_weights(forest: Forest, x: np.ndarray, oob_index: Optional[int] = None) -> ForestWeights:
    """Compute the forest weights of every training observation for ``x``."""
    return aggregate_weights(locate_leaves(forest, np.asarray(x, dtype=float), oob_index))
