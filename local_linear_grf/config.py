"""
Training and prediction configuration for local linear forests.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

DEFAULT_LAMBDA_PATH: Tuple[float, ...] = (0.0, 0.001, 0.01, 0.05, 0.1, 0.3, 0.5, 0.7, 1.0, 10.0)


def _check_variables(variables: Optional[Sequence[int]], p: int, name: str) -> None:
    if variables is None:
        return
    if len(variables) == 0:
        raise ValueError(f"{name} must contain at least one variable.")
    for j in variables:
        if not 0 <= int(j) < p:
            raise ValueError(f"{name} contains index {j}, outside [0, {p}).")


@dataclass
class TrainingConfig:
    """Options controlling how a forest is grown.

    Args:
        num_trees: Number of trees; must be a multiple of ``ci_group_size``.
        sample_fraction: Fraction of the observations drawn for each tree.
        sample_with_replacement: Bootstrap instead of subsampling. Only
            available when ``ci_group_size == 1``.
        mtry: Candidate variables drawn at each node. ``None`` selects
            ``min(ceil(sqrt(p) + 20), p)``.
        min_node_size: Minimum number of split samples in a leaf.
        honesty: Grow splits on one half of each tree's sample and fill the
            leaves with the other half.
        honesty_fraction: Share of the tree's sample used to choose splits.
        honesty_prune_leaves: Prune leaves left empty by the honest half.
        ci_group_size: Trees per half-sample group; ``>= 2`` enables variance
            estimates.
        enable_ll_split: Split on ridge residuals instead of raw outcomes.
        ll_split_lambda: Ridge penalty used when computing split residuals.
        ll_split_weight_penalty: Scale the split penalty by each variable's
            Gram diagonal.
        ll_split_variables: Variables used by the split-time ridge fit.
            ``None`` uses every variable.
        ll_split_cutoff: Nodes larger than this reuse the full-data ridge
            coefficients. ``None`` selects ``floor(sqrt(n))``.
        num_workers: Worker processes; ``1`` trains in-process.
        progress: Show a tqdm progress bar.
        seed: Seed for every random stream in the forest.
    """

    num_trees: int = 2000
    sample_fraction: float = 0.5
    sample_with_replacement: bool = False
    mtry: Optional[int] = None
    min_node_size: int = 5
    honesty: bool = True
    honesty_fraction: float = 0.5
    honesty_prune_leaves: bool = True
    ci_group_size: int = 2
    enable_ll_split: bool = False
    ll_split_lambda: float = 0.1
    ll_split_weight_penalty: bool = False
    ll_split_variables: Optional[Sequence[int]] = None
    ll_split_cutoff: Optional[int] = None
    num_workers: int = 1
    progress: bool = False
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.num_trees < 1:
            raise ValueError("num_trees must be positive.")
        if self.ci_group_size < 1:
            raise ValueError("ci_group_size must be at least 1.")
        if self.num_trees % self.ci_group_size != 0:
            raise ValueError("num_trees must be a multiple of ci_group_size.")
        if not 0.0 < self.sample_fraction <= 1.0:
            raise ValueError("sample_fraction must lie in (0, 1].")
        if self.ci_group_size > 1:
            if self.sample_fraction > 0.5:
                raise ValueError("sample_fraction must be at most 0.5 when ci_group_size > 1.")
            if self.sample_with_replacement:
                raise ValueError("sample_with_replacement requires ci_group_size == 1.")
        if not 0.0 < self.honesty_fraction < 1.0:
            raise ValueError("honesty_fraction must lie in (0, 1).")
        if self.min_node_size < 1:
            raise ValueError("min_node_size must be at least 1.")
        if self.mtry is not None and self.mtry < 1:
            raise ValueError("mtry must be at least 1.")
        if self.ll_split_lambda < 0.0:
            raise ValueError("ll_split_lambda must be non-negative.")
        if self.ll_split_cutoff is not None and self.ll_split_cutoff < 0:
            raise ValueError("ll_split_cutoff must be non-negative.")
        if self.num_workers < 1:
            raise ValueError("num_workers must be at least 1.")

    def validate_for(self, n: int, p: int) -> None:
        """Check the options that depend on the training data shape."""
        if self.min_node_size >= n:
            raise ValueError(f"min_node_size ({self.min_node_size}) must be smaller than the sample size ({n}).")
        if self.mtry is not None and self.mtry > p:
            raise ValueError(f"mtry ({self.mtry}) exceeds the number of variables ({p}).")
        _check_variables(self.ll_split_variables, p, "ll_split_variables")

    def resolved_mtry(self, p: int) -> int:
        if self.mtry is not None:
            return int(self.mtry)
        return min(int(math.ceil(math.sqrt(p) + 20)), p)

    def resolved_ll_split_cutoff(self, n: int) -> int:
        if self.ll_split_cutoff is not None:
            return int(self.ll_split_cutoff)
        return int(math.floor(math.sqrt(n)))


@dataclass
class PredictionConfig:
    """Options controlling forest predictions.

    Args:
        linear_correction_variables: Variables in the local-linear correction.
            ``None`` returns plain forest averages.
        ll_lambda: Ridge penalty of the correction, or ``None``/``"auto"`` to
            pick it from ``lambda_path`` by out-of-bag error.
        ll_weight_penalty: Scale the penalty by each variable's weighted Gram
            diagonal.
        estimate_variance: Also return variance estimates.
        lambda_path: Candidate penalties for the automatic search.
        num_workers: Worker processes; ``1`` predicts in-process.
        progress: Show a tqdm progress bar.
    """

    linear_correction_variables: Optional[Sequence[int]] = None
    ll_lambda: Optional[Union[float, str]] = None
    ll_weight_penalty: bool = False
    estimate_variance: bool = False
    lambda_path: Tuple[float, ...] = DEFAULT_LAMBDA_PATH
    num_workers: int = 1
    progress: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.ll_lambda, str):
            if self.ll_lambda != "auto":
                raise ValueError("ll_lambda must be a non-negative number, None or 'auto'.")
            self.ll_lambda = None
        elif self.ll_lambda is not None:
            self.ll_lambda = float(self.ll_lambda)
            if not self.ll_lambda >= 0.0:
                raise ValueError("ll_lambda must be non-negative.")
        self.lambda_path = tuple(float(lam) for lam in self.lambda_path)
        if len(self.lambda_path) == 0:
            raise ValueError("lambda_path must not be empty.")
        if any(not lam >= 0.0 for lam in self.lambda_path):
            raise ValueError("lambda_path entries must be non-negative.")
        if self.num_workers < 1:
            raise ValueError("num_workers must be at least 1.")

    @property
    def local_linear(self) -> bool:
        return self.linear_correction_variables is not None

    def validate_for(self, p: int) -> None:
        _check_variables(self.linear_correction_variables, p, "linear_correction_variables")
