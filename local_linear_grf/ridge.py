"""
Weighted ridge regression anchored at a point, used for local linear
corrections at prediction time and for ridge-residual splitting.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from numpy.linalg import LinAlgError
from numpy.linalg import cond as nla_cond
from numpy.linalg import solve as nla_solve

# Equilibrated systems worse conditioned than this are treated as rank deficient.
MAX_CONDITION_NUMBER = 1e12
MIN_WEIGHT_MASS = 1e-12


@dataclass
class RidgeFit:
    """Result of :func:`solve_ridge`.

    Attributes:
        intercept: Fitted value at the anchor point (``mu``).
        slope: Coefficients of the centred variables (``theta``); zeros when
            the solver fell back to the weighted mean.
        anchor: Full-length anchor point the design was centred on.
        variables: Indices of the covariates in the design.
        coefficients: ``[intercept, *slope]``.
        zeta: First row of the inverse penalized Gram matrix, in design
            coordinates. Used for pseudo-residuals in variance estimates.
        fallback: True when the ridge system was degenerate.
    """

    intercept: float
    slope: np.ndarray
    anchor: np.ndarray
    variables: np.ndarray
    coefficients: np.ndarray
    zeta: np.ndarray
    fallback: bool = False

    def design(self, X: np.ndarray) -> np.ndarray:
        return local_design(X, self.anchor, self.variables)

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Evaluate the fitted hyperplane at the rows of ``X``."""
        return self.design(X) @ self.coefficients


def local_design(X: np.ndarray, anchor: np.ndarray, variables: np.ndarray) -> np.ndarray:
    """Build ``[1, X[:, variables] - anchor[variables]]``."""
    X = np.asarray(X, dtype=float)
    centred = X[:, variables] - anchor[variables]
    return np.column_stack([np.ones(X.shape[0]), centred])


def penalty_diagonal(gram: np.ndarray, lam: float, weight_penalty: bool) -> np.ndarray:
    """Diagonal ridge penalty for a design whose first column is the intercept.

    With ``weight_penalty`` the penalty of each variable is scaled by its own
    entry of the Gram diagonal, otherwise every slope gets ``lam``.
    """
    k = gram.shape[0]
    diag = np.zeros(k, dtype=float)
    if k > 1:
        if weight_penalty:
            diag[1:] = lam * np.diag(gram)[1:]
        else:
            diag[1:] = lam
    return diag


def _fallback_fit(
    y: np.ndarray,
    weights: np.ndarray,
    total: float,
    anchor: np.ndarray,
    variables: np.ndarray,
) -> RidgeFit:
    k = variables.shape[0] + 1
    zeta = np.zeros(k, dtype=float)
    if total > MIN_WEIGHT_MASS:
        mean = float(weights @ y) / total
        zeta[0] = 1.0 / total
    else:
        mean = float("nan")
    coefficients = np.zeros(k, dtype=float)
    coefficients[0] = mean
    return RidgeFit(
        intercept=mean,
        slope=np.zeros(k - 1, dtype=float),
        anchor=anchor,
        variables=variables,
        coefficients=coefficients,
        zeta=zeta,
        fallback=True,
    )


def solve_ridge(
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    x0: Optional[np.ndarray] = None,
    lam: float = 0.0,
    weight_penalty: bool = False,
    variables: Optional[Sequence[int]] = None,
) -> RidgeFit:
    """Solve the anchored weighted ridge problem.

    Minimizes ``sum_i w_i (y_i - mu - (x_i - x0) . theta)^2 + penalty(theta)``
    over ``(mu, theta)`` where only ``variables`` enter the design and the
    intercept is unpenalized.

    Args:
        X: Covariates ``(m, p)``.
        y: Responses ``(m,)``.
        weights: Non-negative weights ``(m,)``.
        x0: Anchor point ``(p,)``. Defaults to the origin.
        lam: Non-negative ridge penalty.
        weight_penalty: Scale the penalty by the Gram diagonal instead of
            penalizing every variable equally.
        variables: Covariate subset; ``None`` uses every column.

    Returns:
        A :class:`RidgeFit`. Zero weight mass yields a NaN intercept and a
        singular or ill-conditioned system yields the weighted mean with zero
        slope; both set ``fallback``.

    Raises:
        ValueError: If ``lam`` is negative or the array shapes disagree.
    """
    if not lam >= 0.0:
        raise ValueError("Ridge penalty must be non-negative.")
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float).reshape(-1)
    weights = np.asarray(weights, dtype=float).reshape(-1)
    if X.ndim != 2 or X.shape[0] != y.shape[0] or y.shape != weights.shape:
        raise ValueError("X, y, and weights must describe the same observations.")
    p = X.shape[1]
    anchor = np.zeros(p, dtype=float) if x0 is None else np.asarray(x0, dtype=float).reshape(-1)
    var_idx = np.arange(p, dtype=np.int64) if variables is None else np.asarray(variables, dtype=np.int64)

    total = float(np.sum(weights))
    if not total > MIN_WEIGHT_MASS:
        return _fallback_fit(y, weights, total, anchor, var_idx)

    D = local_design(X, anchor, var_idx)
    DtW = D.T * weights
    gram = DtW @ D
    rhs = DtW @ y
    penalized = gram + np.diag(penalty_diagonal(gram, lam, weight_penalty))
    # Solve the diagonally equilibrated system so the conditioning test does
    # not depend on the units of the covariates.
    scale_sq = np.diag(penalized)
    if not np.all(scale_sq > 0.0):
        return _fallback_fit(y, weights, total, anchor, var_idx)
    scale = np.sqrt(scale_sq)
    equilibrated = penalized / np.outer(scale, scale)
    try:
        if nla_cond(equilibrated) > MAX_CONDITION_NUMBER:
            raise LinAlgError("ill-conditioned ridge system")
        beta = nla_solve(equilibrated, rhs / scale) / scale
        e_one = np.zeros(beta.shape[0], dtype=float)
        e_one[0] = 1.0 / scale[0]
        zeta = nla_solve(equilibrated.T, e_one) / scale
    except LinAlgError:
        return _fallback_fit(y, weights, total, anchor, var_idx)
    return RidgeFit(
        intercept=float(beta[0]),
        slope=beta[1:].copy(),
        anchor=anchor,
        variables=var_idx,
        coefficients=beta,
        zeta=zeta,
        fallback=False,
    )
