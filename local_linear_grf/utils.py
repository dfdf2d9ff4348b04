"""
Random streams and sampling helpers shared by the forest trainer.
"""
from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np

# Leading spawn-key entries separating the stream families of one forest.
GROUP_STREAM = 0
TREE_STREAM = 1


class RNG:
    """Random-number convenience wrapper addressed by a spawn key.

    Every stream of a forest is derived from the same entropy and a distinct
    spawn key, so a tree or a node can rebuild its own generator without
    consuming draws from any other stream.

    Args:
        seed: Optional seed for the root ``SeedSequence``.
        spawn_key: Integer path identifying this stream.

    Attributes:
        seed_seq: The ``SeedSequence`` backing this stream.
        rng: The NumPy ``Generator`` used for sampling.
    """

    def __init__(self, seed: Optional[int] = None, spawn_key: Sequence[int] = ()):
        self.seed_seq = np.random.SeedSequence(seed, spawn_key=tuple(int(k) for k in spawn_key))
        self.rng = np.random.default_rng(self.seed_seq)

    @property
    def entropy(self) -> int:
        return int(self.seed_seq.entropy)

    def child(self, *key: int) -> "RNG":
        """Return the independent stream at ``spawn_key + key``."""
        return RNG(self.entropy, self.seed_seq.spawn_key + tuple(key))

    def choice(self, population: np.ndarray, size: int, replace: bool) -> np.ndarray:
        """Sample elements of ``population``.

        Args:
            population: One-dimensional array to draw from.
            size: Number of samples to draw.
            replace: Whether to sample with replacement.

        Returns:
            A NumPy array of ``size`` elements of ``population``.
        """
        return self.rng.choice(population, size=size, replace=replace)

    def variable_subset(self, p: int, mtry: int) -> np.ndarray:
        """Draw ``mtry`` distinct variable indices, returned in ascending order."""
        chosen = self.rng.choice(p, size=min(mtry, p), replace=False)
        return np.sort(chosen).astype(np.int64)


def subsample_size(num_samples: int, fraction: float) -> int:
    return int(math.ceil(fraction * num_samples))


def draw_tree_sample(
    rng: RNG,
    population: np.ndarray,
    size: int,
    replace: bool,
) -> np.ndarray:
    """Draw the observations a single tree is trained on."""
    return np.sort(rng.choice(population, size, replace)).astype(np.int64)


def honest_partition(
    rng: RNG,
    sample: np.ndarray,
    honesty_fraction: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Split a tree sample into split-selection and honest halves.

    The partition is made on unique indices, so a bootstrap duplicate can
    never appear on both sides; multiplicities are preserved within a side.

    Args:
        rng: Stream owned by the tree.
        sample: Indices drawn for the tree (may contain duplicates).
        honesty_fraction: Share of the unique indices used for splitting.

    Returns:
        A tuple ``(split_samples, honest_samples)`` of sorted index arrays.
    """
    unique = np.unique(sample)
    shuffled = rng.rng.permutation(unique)
    cut = subsample_size(unique.shape[0], honesty_fraction)
    split_set = np.sort(shuffled[:cut])
    in_split = np.isin(sample, split_set)
    return np.sort(sample[in_split]), np.sort(sample[~in_split])
