import numpy as np
import pytest

from local_linear_grf.ridge import solve_ridge
from local_linear_grf.split import best_split_for_node, fit_overall_ridge, ll_split_residuals


def _step_data(n=200, seed=0):
    rng = np.random.default_rng(seed)
    X = rng.uniform(size=(n, 2))
    y = 5.0 * X[:, 0] + np.where(X[:, 1] > 0.5, 1.0, 0.0) + rng.normal(scale=0.01, size=n)
    return X, y


def test_cart_finds_obvious_step():
    rng = np.random.default_rng(1)
    X = rng.uniform(size=(100, 3))
    y = np.where(X[:, 2] > 0.4, 3.0, 0.0)
    rows = np.arange(100)
    best = best_split_for_node(rows, X, y[rows], np.ones(100), np.arange(3), min_leaf=5)
    assert best["feature"] == 2
    left_max = X[best["left"], 2].max()
    right_min = X[best["right"], 2].min()
    assert left_max <= best["threshold"] < right_min
    assert left_max < 0.4 < right_min


def test_partition_is_disjoint_and_complete():
    X, y = _step_data()
    rows = np.arange(20, 180)
    best = best_split_for_node(rows, X, y[rows], np.ones(rows.size), np.arange(2), min_leaf=7)
    merged = np.sort(np.concatenate([best["left"], best["right"]]))
    np.testing.assert_array_equal(merged, rows)
    assert best["left"].size >= 7 and best["right"].size >= 7


def test_no_split_when_node_too_small():
    X, y = _step_data(n=10)
    rows = np.arange(10)
    assert best_split_for_node(rows, X, y, np.ones(10), np.arange(2), min_leaf=6) is None


def test_no_split_on_constant_covariates():
    X = np.ones((12, 2))
    y = np.arange(12, dtype=float)
    rows = np.arange(12)
    assert best_split_for_node(rows, X, y, np.ones(12), np.arange(2), min_leaf=1) is None


def test_min_leaf_restricts_thresholds():
    X = np.arange(10, dtype=float).reshape(-1, 1)
    y = np.array([100.0] + [0.0] * 9)
    rows = np.arange(10)
    best = best_split_for_node(rows, X, y, np.ones(10), np.arange(1), min_leaf=3)
    assert best["left"].size == 3
    assert best["threshold"] == pytest.approx(2.5)


def test_ties_go_to_lowest_variable_index():
    x = np.linspace(0.0, 1.0, 20)
    X = np.column_stack([x, x, x])
    y = np.where(x > 0.5, 1.0, 0.0)
    rows = np.arange(20)
    best = best_split_for_node(rows, X, y, np.ones(20), np.array([2, 1]), min_leaf=2)
    assert best["feature"] == 1


def test_sample_weights_enter_objective():
    X = np.arange(6, dtype=float).reshape(-1, 1)
    y = np.array([0.0, 0.0, 0.0, 10.0, 0.0, 0.0])
    rows = np.arange(6)
    unweighted = best_split_for_node(rows, X, y, np.ones(6), np.arange(1), min_leaf=1)
    weighted = best_split_for_node(rows, X, y, np.array([1.0, 1.0, 1.0, 0.0, 1.0, 1.0]), np.arange(1), min_leaf=1)
    assert unweighted["objective"] > 0.0
    assert weighted["objective"] == pytest.approx(0.0)


def test_ridge_residuals_change_the_chosen_variable():
    X, y = _step_data()
    rows = np.arange(X.shape[0])
    weights = np.ones(rows.size)
    raw = best_split_for_node(rows, X, y, weights, np.arange(2), min_leaf=10)
    residuals = ll_split_residuals(rows, X, y, weights, np.array([0]), 0.0, False, cutoff=rows.size, overall_fit=None)
    relabelled = best_split_for_node(rows, X, residuals, weights, np.arange(2), min_leaf=10)
    assert raw["feature"] == 0
    assert relabelled["feature"] == 1


def test_large_nodes_reuse_overall_fit():
    X, y = _step_data()
    weights = np.ones(X.shape[0])
    variables = np.array([0])
    overall = fit_overall_ridge(X, y, weights, variables, 0.1, False)
    rows = np.arange(50, 150)

    large = ll_split_residuals(rows, X, y, weights, variables, 0.1, False, cutoff=99, overall_fit=overall)
    np.testing.assert_allclose(large, y[rows] - overall.predict(X[rows]))

    small = ll_split_residuals(rows, X, y, weights, variables, 0.1, False, cutoff=100, overall_fit=overall)
    anchor = X[rows].mean(axis=0)
    node_fit = solve_ridge(X[rows], y[rows], weights[rows], anchor, 0.1, False, variables)
    np.testing.assert_allclose(small, y[rows] - node_fit.predict(X[rows]))
