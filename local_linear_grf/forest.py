"""
Training a forest of honest regression trees.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np

from .builder import GrowthParams, grow_tree
from .config import TrainingConfig
from .data import Dataset
from .parallel import run_parallel
from .ridge import RidgeFit
from .split import fit_overall_ridge
from .tree import Tree
from .utils import GROUP_STREAM, RNG, TREE_STREAM, draw_tree_sample, honest_partition, subsample_size

logger = logging.getLogger(__name__)


class Forest:
    """Trained ensemble together with the data and settings that produced it.

    Trees are stored in training order; tree ``g * ci_group_size + j`` is the
    ``j``-th tree of half-sample group ``g``. Nothing in a forest is mutated
    after :func:`train_forest` returns.
    """

    __slots__ = ("trees", "config", "data", "overall_fit")

    def __init__(
        self,
        trees: List[Tree],
        config: TrainingConfig,
        data: Dataset,
        overall_fit: Optional[RidgeFit] = None,
    ):
        self.trees = trees
        self.config = config
        self.data = data
        self.overall_fit = overall_fit

    @property
    def num_trees(self) -> int:
        return len(self.trees)

    @property
    def ci_group_size(self) -> int:
        return self.config.ci_group_size

    @property
    def num_groups(self) -> int:
        return self.num_trees // self.ci_group_size


def _growth_params(config: TrainingConfig, n: int, p: int) -> GrowthParams:
    ll_vars = None
    if config.enable_ll_split:
        if config.ll_split_variables is None:
            ll_vars = np.arange(p, dtype=np.int64)
        else:
            ll_vars = np.asarray(config.ll_split_variables, dtype=np.int64)
    return GrowthParams(
        mtry=config.resolved_mtry(p),
        min_node_size=config.min_node_size,
        honesty=config.honesty,
        honesty_prune_leaves=config.honesty_prune_leaves,
        enable_ll_split=config.enable_ll_split,
        ll_split_lambda=config.ll_split_lambda,
        ll_split_weight_penalty=config.ll_split_weight_penalty,
        ll_split_variables=ll_vars,
        ll_split_cutoff=config.resolved_ll_split_cutoff(n),
    )


def _check_sample_sizes(config: TrainingConfig, n: int) -> int:
    size = subsample_size(n, config.sample_fraction)
    if config.ci_group_size > 1:
        size = min(size, n // 2)
    if size < 1:
        raise ValueError("The subsample drawn for each tree is empty; increase sample_fraction or the sample size.")
    if config.honesty and size < 2:
        raise ValueError("Honesty needs at least two observations per tree; increase sample_fraction.")
    return size


def _train_group(
    task: Tuple[int, Dataset, TrainingConfig, GrowthParams, int, int, Optional[RidgeFit]]
) -> List[Tree]:
    """Grow the trees of one half-sample group."""
    group, data, config, params, tree_size, entropy, overall_fit = task
    root = RNG(entropy)
    n = data.num_samples
    if config.ci_group_size > 1:
        population = np.sort(root.child(GROUP_STREAM, group).choice(np.arange(n), n // 2, False))
    else:
        population = np.arange(n, dtype=np.int64)

    trees: List[Tree] = []
    for j in range(config.ci_group_size):
        b = group * config.ci_group_size + j
        tree_rng = root.child(TREE_STREAM, b)
        sample = draw_tree_sample(tree_rng, population, tree_size, config.sample_with_replacement)
        if config.honesty:
            split_samples, honest_samples = honest_partition(tree_rng, sample, config.honesty_fraction)
        else:
            split_samples, honest_samples = sample, np.zeros(0, dtype=np.int64)
        trees.append(grow_tree(data, split_samples, honest_samples, params, tree_rng, overall_fit))
    return trees


def train_forest(data: Dataset, config: TrainingConfig) -> Forest:
    """Train a forest on validated data.

    Trees are grown in groups of ``ci_group_size`` sharing a half sample.
    Groups are independent and may run on separate worker processes; the
    result does not depend on ``num_workers``.

    Args:
        data: Training observations.
        config: Training options.

    Returns:
        The trained :class:`Forest`.

    Raises:
        ValueError: If the options are incompatible with the data.
    """
    n, p = data.num_samples, data.num_features
    config.validate_for(n, p)
    tree_size = _check_sample_sizes(config, n)
    params = _growth_params(config, n, p)
    entropy = RNG(config.seed).entropy

    overall_fit = None
    if config.enable_ll_split:
        overall_fit = fit_overall_ridge(
            data.X,
            data.y,
            data.sample_weight,
            params.ll_split_variables,
            config.ll_split_lambda,
            config.ll_split_weight_penalty,
        )

    num_groups = config.num_trees // config.ci_group_size
    logger.debug(
        "Training %d trees in %d groups (n=%d, p=%d, mtry=%d, ll_split=%s).",
        config.num_trees,
        num_groups,
        n,
        p,
        params.mtry,
        config.enable_ll_split,
    )
    tasks = [(g, data, config, params, tree_size, entropy, overall_fit) for g in range(num_groups)]
    grouped = run_parallel(_train_group, tasks, "Training trees", config.num_workers, config.progress)
    trees = [tree for group in grouped for tree in group]
    return Forest(trees, config, data, overall_fit)
