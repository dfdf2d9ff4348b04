"""
Half-sampling variance estimates for forest predictions.

Trees are trained in groups sharing a half sample. For a query point every
tree ``b`` produces an influence value ``psi_b``; the spread of the group
means estimates the variance of the forest prediction after removing the
within-group noise.
"""
from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)


def debias_variance(var_between: float, group_noise: float, num_good_groups: int) -> float:
    """Remove the within-group noise from the between-group variance.

    Uses a Bayesian correction that shrinks ``var_between - group_noise``
    towards a non-negative value instead of clipping it.

    Args:
        var_between: Mean squared group-mean influence.
        group_noise: Estimated noise of a group mean due to finite group size.
        num_good_groups: Groups that contributed.

    Returns:
        A non-negative variance estimate.
    """
    initial_estimate = var_between - group_noise
    initial_se = max(var_between, group_noise) * math.sqrt(2.0 / num_good_groups)
    if not initial_se > 0.0:
        return max(initial_estimate, 0.0)
    ratio = initial_estimate / initial_se
    numerator = math.exp(-ratio * ratio / 2.0) / math.sqrt(2.0 * math.pi)
    denominator = 0.5 * math.erfc(-ratio / math.sqrt(2.0))
    if denominator <= 0.0:
        return 0.0
    return max(initial_estimate + initial_se * numerator / denominator, 0.0)


def grouped_variance(psi: np.ndarray, usable: Sequence[bool], ci_group_size: int) -> float:
    """Half-sampling variance of the mean of per-tree influence values.

    Args:
        psi: Influence value of every tree ``(B,)``.
        usable: Whether each tree's leaf for the query was non-empty. Groups
            containing an unusable tree are skipped.
        ci_group_size: Trees per group; must be at least 2.

    Returns:
        The debiased variance, or NaN when no group is usable.

    Raises:
        ValueError: If ``ci_group_size`` is smaller than 2.
    """
    if ci_group_size < 2:
        raise ValueError("Variance estimates need ci_group_size >= 2.")
    psi = np.asarray(psi, dtype=float)
    usable_arr = np.asarray(usable, dtype=bool)
    num_groups = psi.shape[0] // ci_group_size
    psi_by_group = psi[: num_groups * ci_group_size].reshape(num_groups, ci_group_size)
    good = usable_arr[: num_groups * ci_group_size].reshape(num_groups, ci_group_size).all(axis=1)
    num_good_groups = int(np.sum(good))
    if num_good_groups == 0:
        logger.warning("No tree group has a non-empty leaf for this point; variance is NaN.")
        return float("nan")
    good_psi = psi_by_group[good]
    group_means = good_psi.mean(axis=1)
    var_between = float(np.sum(group_means ** 2)) / num_good_groups
    var_total = float(np.sum(good_psi ** 2)) / (num_good_groups * ci_group_size)
    group_noise = (var_total - var_between) / (ci_group_size - 1)
    return debias_variance(var_between, group_noise, num_good_groups)
