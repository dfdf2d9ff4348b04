"""
Tree data structures and traversal helpers.
"""
from __future__ import annotations

from typing import List

import numpy as np

NO_CHILD = -1

_EMPTY = np.zeros(0, dtype=np.int64)


class Tree:
    """Binary regression tree stored as an arena of nodes.

    Node ``k`` splits on ``split_vars[k]`` at ``split_values[k]`` and sends
    rows with ``x[var] <= value`` to ``left[k]``, the rest to ``right[k]``.
    Leaves have ``left[k] == right[k] == NO_CHILD`` and hold the indices of
    their (honest) training observations in ``leaf_samples[k]``. Node 0 is
    the root.

    Attributes:
        drawn_samples: Sorted unique indices of every observation the tree
            was trained on, split and honest halves combined.
    """

    __slots__ = ("split_vars", "split_values", "left", "right", "leaf_samples", "drawn_samples")

    def __init__(self, drawn_samples: np.ndarray):
        self.split_vars: List[int] = []
        self.split_values: List[float] = []
        self.left: List[int] = []
        self.right: List[int] = []
        self.leaf_samples: List[np.ndarray] = []
        self.drawn_samples: np.ndarray = np.unique(drawn_samples).astype(np.int64)

    @property
    def num_nodes(self) -> int:
        return len(self.left)

    def add_node(self) -> int:
        self.split_vars.append(NO_CHILD)
        self.split_values.append(0.0)
        self.left.append(NO_CHILD)
        self.right.append(NO_CHILD)
        self.leaf_samples.append(_EMPTY)
        return self.num_nodes - 1

    def is_leaf(self, node: int) -> bool:
        return self.left[node] == NO_CHILD

    def set_split(self, node: int, var: int, value: float) -> tuple[int, int]:
        """Turn ``node`` into an internal node and allocate its children."""
        left = self.add_node()
        right = self.add_node()
        self.split_vars[node] = int(var)
        self.split_values[node] = float(value)
        self.left[node] = left
        self.right[node] = right
        self.leaf_samples[node] = _EMPTY
        return left, right

    def leaves(self) -> List[int]:
        """Ids of the leaves reachable from the root, in breadth-first order."""
        out: List[int] = []
        queue = [0]
        while queue:
            node = queue.pop(0)
            if self.is_leaf(node):
                out.append(node)
            else:
                queue.append(self.left[node])
                queue.append(self.right[node])
        return out

    def node_depths(self) -> List[int]:
        depths = [0] * self.num_nodes
        for node in range(self.num_nodes):
            if not self.is_leaf(node):
                depths[self.left[node]] = depths[node] + 1
                depths[self.right[node]] = depths[node] + 1
        return depths

    def was_drawn(self, sample: int) -> bool:
        pos = int(np.searchsorted(self.drawn_samples, sample))
        return pos < self.drawn_samples.shape[0] and int(self.drawn_samples[pos]) == sample


def find_leaf(tree: Tree, x_row: np.ndarray) -> int:
    """Traverse a tree and return the id of the leaf reached by ``x_row``.

    Args:
        tree: The tree whose partition is being queried.
        x_row: Feature row (``shape == (p,)``) whose path is evaluated.

    Returns:
        The arena index of the leaf containing ``x_row``.
    """
    node = 0
    while tree.left[node] != NO_CHILD:
        if x_row[tree.split_vars[node]] <= tree.split_values[node]:
            node = tree.left[node]
        else:
            node = tree.right[node]
    return node


def find_leaves(tree: Tree, X_mat: np.ndarray) -> np.ndarray:
    """Vectorized helper returning leaf ids for every row of a matrix.

    Args:
        tree: The tree used to evaluate the partition.
        X_mat: Feature matrix `(n, p)` subject to traversal.

    Returns:
        A NumPy array of shape `(n,)` containing leaf ids.
    """
    nodes = np.zeros(X_mat.shape[0], dtype=np.int64)
    active = np.arange(X_mat.shape[0])
    left = np.asarray(tree.left, dtype=np.int64)
    right = np.asarray(tree.right, dtype=np.int64)
    split_vars = np.asarray(tree.split_vars, dtype=np.int64)
    split_values = np.asarray(tree.split_values, dtype=float)
    while active.size > 0:
        current = nodes[active]
        internal = left[current] != NO_CHILD
        active = active[internal]
        current = current[internal]
        if active.size == 0:
            break
        go_left = X_mat[active, split_vars[current]] <= split_values[current]
        nodes[active] = np.where(go_left, left[current], right[current])
    return nodes


def repopulate_leaves(tree: Tree, X: np.ndarray, samples: np.ndarray) -> None:
    """Replace every leaf's members with the given samples routed down the tree."""
    for node in range(tree.num_nodes):
        if tree.is_leaf(node):
            tree.leaf_samples[node] = _EMPTY
    if samples.size == 0:
        return
    leaf_ids = find_leaves(tree, X[samples])
    order = np.argsort(leaf_ids, kind="mergesort")
    sorted_ids = leaf_ids[order]
    sorted_samples = samples[order]
    bounds = np.flatnonzero(np.diff(sorted_ids)) + 1
    for ids, members in zip(np.split(sorted_ids, bounds), np.split(sorted_samples, bounds)):
        tree.leaf_samples[int(ids[0])] = members.astype(np.int64)


def prune_empty_leaves(tree: Tree) -> None:
    """Collapse internal nodes that have an empty leaf child.

    Children always have larger ids than their parent, so sweeping ids in
    descending order sees every subtree already pruned. A node with an empty
    child takes over the other child's contents; the arena is compacted at
    the end so that only reachable nodes remain.
    """
    empty = [tree.is_leaf(k) and tree.leaf_samples[k].size == 0 for k in range(tree.num_nodes)]
    for node in range(tree.num_nodes - 1, -1, -1):
        if tree.is_leaf(node):
            continue
        left, right = tree.left[node], tree.right[node]
        if not (empty[left] or empty[right]):
            continue
        keep = right if empty[left] else left
        tree.split_vars[node] = tree.split_vars[keep]
        tree.split_values[node] = tree.split_values[keep]
        tree.left[node] = tree.left[keep]
        tree.right[node] = tree.right[keep]
        tree.leaf_samples[node] = tree.leaf_samples[keep]
        empty[node] = empty[keep]
    _compact(tree)


def _compact(tree: Tree) -> None:
    new_id = {0: 0}
    order = [0]
    pos = 0
    while pos < len(order):
        node = order[pos]
        pos += 1
        if not tree.is_leaf(node):
            for child in (tree.left[node], tree.right[node]):
                new_id[child] = len(order)
                order.append(child)
    split_vars = [tree.split_vars[k] for k in order]
    split_values = [tree.split_values[k] for k in order]
    left = [new_id[tree.left[k]] if not tree.is_leaf(k) else NO_CHILD for k in order]
    right = [new_id[tree.right[k]] if not tree.is_leaf(k) else NO_CHILD for k in order]
    leaf_samples = [tree.leaf_samples[k] for k in order]
    tree.split_vars = split_vars
    tree.split_values = split_values
    tree.left = left
    tree.right = right
    tree.leaf_samples = leaf_samples
