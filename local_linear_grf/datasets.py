"""Data generation utilities matching benchmarks from the local linear forest literature."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

import numpy as np

DGPName = Literal["friedman", "linear", "step"]


@dataclass
class RegressionData:
    X: np.ndarray
    Y: np.ndarray
    mu: np.ndarray
    dgp: str


def _friedman(X: np.ndarray) -> np.ndarray:
    """Friedman (1991) test function on the first five covariates."""
    return (
        10.0 * np.sin(np.pi * X[:, 0] * X[:, 1])
        + 20.0 * (X[:, 2] - 0.5) ** 2
        + 10.0 * X[:, 3]
        + 5.0 * X[:, 4]
    )


def generate_regression_data(
    n: int,
    p: int,
    dgp: DGPName,
    sigma_noise: float = 1.0,
    seed: Optional[int] = None,
) -> RegressionData:
    """Generate synthetic regression data with a known conditional mean.

    Args:
        n: Number of observations to draw.
        p: Number of covariates.
        dgp: ``"friedman"`` (needs ``p >= 5``), ``"linear"`` (``3 * x_1``) or
            ``"step"`` (a jump in ``x_1`` plus a linear trend in ``x_2``).
        sigma_noise: Standard deviation of the Gaussian noise.
        seed: Optional RNG seed for reproducibility.

    Returns:
        A :class:`RegressionData` with covariates, outcomes and the true
        conditional mean.

    Raises:
        ValueError: If the DGP is unknown or ``p`` is too small for it.
    """
    rng = np.random.default_rng(seed)
    X = rng.uniform(0.0, 1.0, size=(n, p))

    if dgp == "friedman":
        if p < 5:
            raise ValueError("The friedman DGP needs at least 5 covariates.")
        mu = _friedman(X)
    elif dgp == "linear":
        mu = 3.0 * X[:, 0]
    elif dgp == "step":
        if p < 2:
            raise ValueError("The step DGP needs at least 2 covariates.")
        mu = np.where(X[:, 0] > 0.5, 2.0, 0.0) + 4.0 * X[:, 1]
    else:
        raise ValueError(f"Unsupported DGP '{dgp}'.")

    Y = mu + rng.normal(scale=sigma_noise, size=n) if sigma_noise > 0 else mu.copy()
    return RegressionData(X=X, Y=Y, mu=mu, dgp=dgp)
