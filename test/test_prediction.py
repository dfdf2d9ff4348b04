import numpy as np
import pytest

from local_linear_grf import (
    DEFAULT_LAMBDA_PATH,
    Dataset,
    PredictionConfig,
    TrainingConfig,
    predict,
    predict_oob,
    train_forest,
    tune_ll_lambda,
)
from local_linear_grf import prediction as prediction_module
from local_linear_grf.datasets import generate_regression_data
from local_linear_grf.forest import Forest
from local_linear_grf.prediction import local_linear_fit
from local_linear_grf.tree import Tree
from local_linear_grf.variance import debias_variance
from local_linear_grf.weights import compute_forest_weights

_SINGLE_TREE = dict(num_trees=1, ci_group_size=1, sample_fraction=1.0, honesty=False, mtry=1)


def _rmse(a, b):
    return float(np.sqrt(np.mean((a - b) ** 2)))


@pytest.fixture(scope="module")
def friedman_forest():
    d = generate_regression_data(n=300, p=5, dgp="friedman", sigma_noise=0.5, seed=0)
    return train_forest(Dataset.from_arrays(d.X, d.Y), TrainingConfig(num_trees=40, seed=1))


def test_single_tree_predicts_leaf_outcome():
    X = np.array([[0.0], [1.0], [2.0], [3.0]])
    forest = train_forest(Dataset.from_arrays(X, X[:, 0]), TrainingConfig(min_node_size=1, **_SINGLE_TREE))
    result = predict(forest, np.array([[0.9]]))
    assert result.predictions[0] == pytest.approx(1.0)
    assert result.variance_estimates is None
    assert result.ll_lambda is None


def test_single_split_predicts_leaf_means():
    x = np.arange(20, dtype=float)
    forest = train_forest(Dataset.from_arrays(x[:, None], x), TrainingConfig(min_node_size=10, **_SINGLE_TREE))
    result = predict(forest, np.array([[3.0], [15.0]]))
    np.testing.assert_allclose(result.predictions, [4.5, 14.5])


def test_local_linear_recovers_linear_signal():
    rng = np.random.default_rng(0)
    X = rng.uniform(size=(80, 1))
    y = 3.0 * X[:, 0]
    forest = train_forest(Dataset.from_arrays(X, y), TrainingConfig(num_trees=10, seed=0))
    queries = np.array([[0.1], [0.45], [0.8]])
    result = predict(forest, queries, PredictionConfig(linear_correction_variables=[0], ll_lambda=0.0))
    np.testing.assert_allclose(result.predictions, 3.0 * queries[:, 0], atol=1e-8)
    assert result.ll_lambda == 0.0

    weights = compute_forest_weights(forest, queries[1])
    fit = local_linear_fit(forest.data, queries[1], weights, [0], 0.0)
    assert fit.slope[0] == pytest.approx(3.0, rel=1e-8)


def test_predictions_are_repeatable(friedman_forest):
    X_new = generate_regression_data(n=20, p=5, dgp="friedman", seed=5).X
    config = PredictionConfig(linear_correction_variables=[0, 1, 3], ll_lambda=0.1, estimate_variance=True)
    a = predict(friedman_forest, X_new, config)
    b = predict(friedman_forest, X_new, config)
    np.testing.assert_array_equal(a.predictions, b.predictions)
    np.testing.assert_array_equal(a.variance_estimates, b.variance_estimates)


def test_parallel_prediction_matches_serial(friedman_forest):
    X_new = generate_regression_data(n=15, p=5, dgp="friedman", seed=6).X
    serial = predict(friedman_forest, X_new)
    parallel = predict(friedman_forest, X_new, PredictionConfig(num_workers=2))
    np.testing.assert_array_equal(serial.predictions, parallel.predictions)


@pytest.mark.parametrize("variables", [None, [0, 1, 2, 3, 4]])
def test_variance_estimates_are_finite_and_non_negative(friedman_forest, variables):
    X_new = generate_regression_data(n=25, p=5, dgp="friedman", seed=7).X
    config = PredictionConfig(linear_correction_variables=variables, ll_lambda=0.1, estimate_variance=True)
    result = predict(friedman_forest, X_new, config)
    assert result.variance_estimates.shape == (25,)
    assert np.all(np.isfinite(result.variance_estimates))
    assert np.all(result.variance_estimates >= 0.0)


def test_variance_needs_tree_groups():
    d = generate_regression_data(n=60, p=2, dgp="linear", seed=0)
    forest = train_forest(Dataset.from_arrays(d.X, d.Y), TrainingConfig(num_trees=5, ci_group_size=1, seed=0))
    with pytest.raises(ValueError):
        predict(forest, d.X[:3], PredictionConfig(estimate_variance=True))


def test_auto_lambda_comes_from_path(friedman_forest):
    X_new = generate_regression_data(n=10, p=5, dgp="friedman", seed=8).X
    result = predict(friedman_forest, X_new, PredictionConfig(linear_correction_variables=[0, 3], ll_lambda="auto"))
    assert result.ll_lambda in DEFAULT_LAMBDA_PATH
    assert np.all(np.isfinite(result.predictions))


def test_tuning_single_candidate_returns_it(friedman_forest):
    assert tune_ll_lambda(friedman_forest, [3], lambda_path=(0.3,)) == 0.3


def test_local_linear_beats_plain_forest_on_linear_signal():
    train = generate_regression_data(n=400, p=2, dgp="linear", sigma_noise=0.1, seed=1)
    test = generate_regression_data(n=100, p=2, dgp="linear", sigma_noise=0.1, seed=2)
    forest = train_forest(Dataset.from_arrays(train.X, train.Y), TrainingConfig(num_trees=60, seed=3))
    plain = predict(forest, test.X)
    corrected = predict(forest, test.X, PredictionConfig(linear_correction_variables=[0], ll_lambda=0.1))
    assert _rmse(corrected.predictions, test.mu) < _rmse(plain.predictions, test.mu)


def test_out_of_bag_predictions(friedman_forest):
    result = predict_oob(friedman_forest, PredictionConfig(estimate_variance=True))
    n = friedman_forest.data.num_samples
    assert result.predictions.shape == (n,)
    assert np.all(np.isfinite(result.predictions))
    assert np.all(result.variance_estimates >= 0.0)
    in_sample = predict(friedman_forest, friedman_forest.data.X)
    assert not np.allclose(result.predictions, in_sample.predictions)


def test_scaling_sample_weights_leaves_predictions_unchanged():
    d = generate_regression_data(n=100, p=3, dgp="step", sigma_noise=0.3, seed=4)
    config = TrainingConfig(num_trees=10, seed=5)
    base = train_forest(Dataset.from_arrays(d.X, d.Y), config)
    doubled = train_forest(Dataset.from_arrays(d.X, d.Y, sample_weight=np.full(100, 2.0)), config)
    np.testing.assert_allclose(predict(base, d.X[:10]).predictions, predict(doubled, d.X[:10]).predictions)


def test_invalid_prediction_requests(friedman_forest):
    with pytest.raises(ValueError):
        predict(friedman_forest, np.zeros((3, 4)))
    with pytest.raises(ValueError):
        predict(friedman_forest, np.array([[np.nan, 0.0, 0.0, 0.0, 0.0]]))
    with pytest.raises(ValueError):
        predict(friedman_forest, np.zeros((2, 5)), PredictionConfig(linear_correction_variables=[5]))
    with pytest.raises(ValueError):
        PredictionConfig(linear_correction_variables=[0], ll_lambda=-1.0)
    with pytest.raises(ValueError):
        PredictionConfig(ll_lambda="smallest")


def test_local_linear_correction_survives_large_covariate_units():
    rng = np.random.default_rng(0)
    X = rng.uniform(0.0, 1e7, size=(80, 1))
    y = 3.0 * X[:, 0]
    forest = train_forest(Dataset.from_arrays(X, y), TrainingConfig(num_trees=10, seed=0))
    result = predict(forest, np.array([[4.5e6]]), PredictionConfig(linear_correction_variables=[0], ll_lambda=0.0))
    assert result.predictions[0] == pytest.approx(1.35e7, rel=1e-8)


def _hand_built_forest():
    """Two groups of two single-leaf trees over eight points."""
    X = np.arange(8, dtype=float).reshape(-1, 1)
    y = np.array([1.0, 3.0, 2.0, 6.0, 4.0, 7.0, 5.0, 9.0])
    w = np.array([1.0, 2.0, 1.0, 3.0, 2.0, 1.0, 1.0, 2.0])
    leaves = [np.array([0, 1, 2, 3]), np.array([2, 3, 4, 5, 6]), np.array([4, 5, 6, 7]), np.array([0, 1, 6, 7])]
    trees = []
    for leaf in leaves:
        tree = Tree(leaf)
        tree.add_node()
        tree.leaf_samples[0] = leaf
        trees.append(tree)
    forest = Forest(trees, TrainingConfig(num_trees=4, ci_group_size=2), Dataset.from_arrays(X, y, w))
    return forest, leaves, X, y, w


def _group_variance(psi):
    group_means = psi.reshape(-1, 2).mean(axis=1)
    var_between = np.mean(group_means ** 2)
    var_total = np.mean(psi ** 2)
    return debias_variance(var_between, var_total - var_between, group_means.size)


def test_plain_variance_from_leaf_influence():
    forest, leaves, X, y, w = _hand_built_forest()
    alpha = np.zeros(8)
    for leaf in leaves:
        alpha[leaf] += 1.0 / (len(leaves) * leaf.size)
    mu = np.sum(alpha * w * y) / np.sum(alpha * w)
    psi = np.array([np.mean(w[leaf] * (y[leaf] - mu)) for leaf in leaves])
    avg_w = np.mean([np.mean(w[leaf]) for leaf in leaves])

    result = predict(forest, np.array([[3.0]]), PredictionConfig(estimate_variance=True))
    assert result.predictions[0] == pytest.approx(mu, rel=1e-12)
    assert result.variance_estimates[0] == pytest.approx(_group_variance(psi) / avg_w ** 2, rel=1e-10)


def test_local_linear_variance_from_pseudo_residuals():
    forest, leaves, X, y, w = _hand_built_forest()
    x0, lam = 3.5, 0.1
    alpha = np.zeros(8)
    for leaf in leaves:
        alpha[leaf] += 1.0 / (len(leaves) * leaf.size)
    D = np.column_stack([np.ones(8), X[:, 0] - x0])
    aw = alpha * w
    penalized = (D.T * aw) @ D + np.diag([0.0, lam])
    beta = np.linalg.solve(penalized, (D.T * aw) @ y)
    zeta = np.linalg.inv(penalized)[0]
    pseudo = w * (D @ zeta) * (y - D @ beta)
    psi = np.array([np.mean(pseudo[leaf]) for leaf in leaves])

    config = PredictionConfig(linear_correction_variables=[0], ll_lambda=lam, estimate_variance=True)
    result = predict(forest, np.array([[x0]]), config)
    assert result.predictions[0] == pytest.approx(beta[0], rel=1e-10)
    assert result.variance_estimates[0] == pytest.approx(_group_variance(psi), rel=1e-8)


def test_prediction_uses_one_chunk_per_worker(monkeypatch, friedman_forest):
    seen = []

    def serial(func, tasks, desc, workers=1, progress=False):
        seen.append(len(tasks))
        return [func(task) for task in tasks]

    monkeypatch.setattr(prediction_module, "run_parallel", serial)
    X_new = generate_regression_data(n=30, p=5, dgp="friedman", seed=9).X
    predict(friedman_forest, X_new, PredictionConfig(num_workers=3))
    predict(friedman_forest, X_new)
    assert seen == [3, 1]
