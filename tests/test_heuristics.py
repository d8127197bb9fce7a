# Test for minimum correlation / proportional minimum variance heuristics
import numpy as np
import pandas as pd
import pytest

from riskalloc.core.errors import InvalidCovarianceError
from riskalloc.optim.heuristics import min_corr_weights, min_var_weights
from riskalloc.optim.risk_budgeting import equal_risk_budget_weights


def test_min_corr_published_example():
    # Varadi et al. (2012), apéndice
    sigma = [
        [0.0196, 0.02268, 0.02618],
        [0.02268, 0.0324, 0.02772],
        [0.02618, 0.02772, 0.0484],
    ]
    w = min_corr_weights(sigma)
    assert np.allclose(w, [0.21, 0.31, 0.48], atol=1e-2)
    assert abs(w.sum() - 1.0) < 1e-12


def test_min_corr_two_assets_is_inverse_volatility():
    rng = np.random.default_rng(11)
    for _ in range(5):
        A = rng.normal(size=(2, 2))
        cov = A @ A.T + 0.01 * np.eye(2)
        w = min_corr_weights(cov)
        expected = equal_risk_budget_weights([cov[0, 0], cov[1, 1]])
        assert np.allclose(w, expected, atol=1e-8)


def test_min_var_published_example():
    # hoja Minimum Variance Algorithm
    cov = [
        [0.000090, 0.000044, 0.000028, 0.000034],
        [0.000044, 0.000084, 0.000068, 0.000039],
        [0.000028, 0.000068, 0.000101, 0.000036],
        [0.000034, 0.000039, 0.000036, 0.000039],
    ]
    w = min_var_weights(cov)
    assert np.allclose(w, [0.18, 0.07, 0.07, 0.68], atol=1e-2)


def test_min_var_equal_row_averages_is_inverse_variance():
    cov = np.diag([0.04, 0.04, 0.04])
    assert np.allclose(min_var_weights(cov), 1 / 3)


def test_labels_and_validation():
    df = pd.DataFrame(np.diag([0.01, 0.04]), index=["A", "B"], columns=["A", "B"])
    w = min_corr_weights(df)
    assert isinstance(w, pd.Series)
    assert list(w.index) == ["A", "B"]
    assert np.allclose(w.values, [2 / 3, 1 / 3])
    assert np.allclose(min_corr_weights([[0.04]]), [1.0])
    with pytest.raises(InvalidCovarianceError):
        min_var_weights([[0.0, 0.0], [0.0, 0.01]])
