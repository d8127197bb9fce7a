# Test for equal risk bounding
import itertools

import numpy as np
import pytest

from riskalloc.core.errors import InfeasibleError
from riskalloc.core.logger import JsonRunLogger
from riskalloc.optim.risk_bounding import (
    RiskBoundingConfig,
    bounding_violations,
    equal_risk_bounding_weights,
    solve_equal_risk_bounding,
)
from riskalloc.optim.risk_budgeting import equal_risk_contribution_weights, risk_contributions

SIGMA_3 = np.array([
    [1.0, -0.9, 0.6],
    [-0.9, 1.0, -0.2],
    [0.6, -0.2, 4.0],
])

# Cesarone & Tardella, tabla 2
SIGMA_5 = np.array([
    [1 / 100, 21 / 5000, -147 / 10000, 4 / 625, -31 / 2000],
    [21 / 5000, 1 / 25, -57 / 5000, -21 / 1250, 21 / 500],
    [-147 / 10000, -57 / 5000, 9 / 100, 36 / 625, 3 / 125],
    [4 / 625, -21 / 1250, 36 / 625, 4 / 25, 1 / 250],
    [-31 / 2000, 21 / 500, 3 / 125, 1 / 250, 1 / 4],
])


def test_three_assets_drops_the_volatile_one():
    w = equal_risk_bounding_weights(SIGMA_3)
    assert np.allclose(w, [0.5, 0.5, 0.0], atol=1e-8)


def test_published_five_assets_example():
    w, rc = equal_risk_bounding_weights(SIGMA_5, output_risk=True)
    assert np.allclose(w, [0.583, 0.157, 0.186, 0.0, 0.074], atol=1e-3)
    assert w[3] == 0.0
    # v(S) = contribución común de los activos incluidos
    rcs = risk_contributions(w, SIGMA_5)
    assert np.allclose(rcs[w > 0], rc, rtol=1e-6)


def test_bounding_condition_holds_at_solution():
    res = solve_equal_risk_bounding(SIGMA_5)
    assert res.converged
    assert abs(res.weights.sum() - 1.0) < 1e-12
    assert res.subset == [1, 2, 3, 5]
    # ningún activo supera la contribución común
    rcs = risk_contributions(res.weights, SIGMA_5)
    assert (rcs <= res.risk_contribution * (1 + 1e-6)).all()


def test_ties_resolved_by_lowest_index():
    # activos 3 y 4 idénticos: se excluye primero el 3, después el 4
    S = np.array([
        [1.0, -0.9, 0.6, 0.6],
        [-0.9, 1.0, -0.2, -0.2],
        [0.6, -0.2, 4.0, 4.0],
        [0.6, -0.2, 4.0, 4.0],
    ])
    lg = JsonRunLogger(log_dir=None)
    w = equal_risk_bounding_weights(S, run_logger=lg)
    assert np.allclose(w, [0.5, 0.5, 0.0, 0.0], atol=1e-8)
    rounds = [r for r in lg.records if r["event"] == "erb_round"]
    assert [(r["assets"], r["action"]) for r in rounds] == [([3], "exclude"), ([4], "exclude")]
    assert rounds[1]["risk_contribution"] < rounds[0]["risk_contribution"]
    assert lg.records[-1]["event"] == "erb_solve"


def test_diagonal_keeps_every_asset():
    S = np.diag([0.01, 0.04, 0.09])
    res = solve_equal_risk_bounding(S)
    assert res.subset == [1, 2, 3]
    assert res.n_rounds == 0
    assert np.allclose(res.weights, [6 / 11, 3 / 11, 2 / 11], atol=1e-10)


def test_not_psd_is_infeasible():
    with pytest.raises(InfeasibleError):
        equal_risk_bounding_weights([[1.0, 2.0], [2.0, 1.0]])


def test_invalid_config():
    with pytest.raises(ValueError):
        RiskBoundingConfig(rtol=-1.0)
    with pytest.raises(ValueError):
        RiskBoundingConfig(max_exact_assets=-1)


def _factor_covariance(rng, n, k):
    B = rng.normal(scale=0.2, size=(n, k))
    return B @ B.T + np.diag(rng.uniform(0.001, 0.02, size=n))


def _best_subset_value(S):
    n = S.shape[0]
    best = np.inf
    for k in range(1, n + 1):
        for idx in itertools.combinations(range(n), k):
            sub = S[np.ix_(idx, idx)]
            w = equal_risk_contribution_weights(sub)
            best = min(best, float(w @ sub @ w) / k)
    return best


def test_matches_enumeration_on_factor_covariances():
    rng = np.random.default_rng(1129)
    for _ in range(16):
        n = int(rng.integers(4, 9))
        S = _factor_covariance(rng, n, int(rng.integers(1, 3)))
        res = solve_equal_risk_bounding(S)
        assert res.exact and res.converged
        assert abs(res.risk_contribution - _best_subset_value(S)) <= 1e-6 * res.risk_contribution
        # el máximo de las contribuciones es v(S)
        rcs = risk_contributions(res.weights, S)
        assert rcs.max() <= res.risk_contribution * (1 + 1e-6)


def test_local_search_only_keeps_bounding_condition():
    cfg = RiskBoundingConfig(max_exact_assets=0)
    res = solve_equal_risk_bounding(SIGMA_5, cfg)
    assert not res.exact
    assert res.subset == [1, 2, 3, 5]
    mask = res.weights > 0
    assert bounding_violations(SIGMA_5, mask, res.weights[mask], res.risk_contribution) == []


def test_bounding_violations_on_small_subsets():
    # con S = {1} re-admitir 2 o 3 baja RC_1 a primer orden
    assert bounding_violations(SIGMA_3, np.array([True, False, False]), np.ones(1), 1.0) == [1, 2]
    # en el óptimo S = {1, 2} el activo 3 ya no la viola
    mask = np.array([True, True, False])
    assert bounding_violations(SIGMA_3, mask, np.array([0.5, 0.5]), 0.025) == []


def test_exact_pass_is_logged():
    lg = JsonRunLogger(log_dir=None)
    solve_equal_risk_bounding(SIGMA_5, run_logger=lg)
    rec = [r for r in lg.records if r["event"] == "erb_exact"][0]
    assert rec["n_subsets"] == 31
    assert rec["improved"] is False
