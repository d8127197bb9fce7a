# Test for the SMO quadratic program solver
import warnings

import numpy as np
import pytest

from riskalloc.core.errors import ConvergenceWarning, DimensionError, InfeasibleError
from riskalloc.core.guards import validate_weights
from riskalloc.core.logger import JsonRunLogger
from riskalloc.optim.qp import QPConfig, solve_qp

BAI = np.array([
    [94.868, 33.750, 12.325, -1.178, 8.778],
    [33.750, 445.642, 98.955, -7.901, 84.954],
    [12.325, 98.955, 117.265, 0.503, 45.184],
    [-1.178, -7.901, 0.503, 5.460, 1.057],
    [8.778, 84.954, 45.184, 1.057, 34.126],
])


def _random_psd(rng, n):
    A = rng.normal(size=(n, n))
    return A @ A.T / n + 0.05 * np.eye(n)


def test_interior_solution_matches_closed_form():
    # Σ diagonal y óptimo dentro de la caja: x_i ∝ 1/d_i
    d = np.array([1.0, 2.0, 4.0])
    res = solve_qp(np.diag(d), config=QPConfig(eps=1e-10))
    expected = (1.0 / d) / (1.0 / d).sum()
    assert res.converged
    assert np.allclose(res.x, expected, atol=1e-8)


def test_general_equality_coefficients():
    # min 1/2 ||x||² s.t. b'x = r → x = r b / ||b||²
    res = solve_qp(np.eye(2), b=[2.0, 1.0], r=1.0, l=-10.0, u=10.0, config=QPConfig(eps=1e-12))
    assert np.allclose(res.x, [0.4, 0.2], atol=1e-9)
    res = solve_qp(np.eye(2), b=[1.0, -1.0], r=0.5, l=-1.0, u=1.0, config=QPConfig(eps=1e-12))
    assert np.allclose(res.x, [0.25, -0.25], atol=1e-9)


def test_linear_term_drives_solution_to_bound():
    res = solve_qp(np.eye(2), p=[-1.0, 0.0], config=QPConfig(eps=1e-10))
    assert np.allclose(res.x, [1.0, 0.0], atol=1e-9)
    assert abs(res.objective - (-0.5)) < 1e-9


def test_feasibility_and_monotone_objective_on_random_problems():
    rng = np.random.default_rng(7)
    for n in (3, 6, 10):
        Q = _random_psd(rng, n)
        p = rng.normal(scale=0.1, size=n)
        l = np.full(n, 0.02)
        u = np.full(n, 0.4)
        res = solve_qp(Q, p, None, 1.0, l, u, QPConfig(eps=1e-8, track_objective=True))
        validate_weights(res.x, l, u, total=1.0, tol=1e-8)
        path = res.objective_path
        assert path.size == res.n_iter + 1
        assert (np.diff(path) <= 1e-12).all()
        assert abs(path[-1] - res.objective) < 1e-10


def test_exhausted_iterations_warn_and_return_iterate():
    with pytest.warns(ConvergenceWarning):
        res = solve_qp(BAI, config=QPConfig(eps=1e-10, max_iter=1))
    assert not res.converged
    # una pasada = n actualizaciones de pares
    assert res.n_iter == 5
    assert abs(res.x.sum() - 1.0) < 1e-12


def test_iteration_cap_scales_with_dimension():
    with pytest.warns(ConvergenceWarning, match="2 passes"):
        res5 = solve_qp(BAI, config=QPConfig(eps=1e-10, max_iter=2))
    assert res5.n_iter == 10
    # mismo problema embebido en 10 activos (copia diagonal por bloques)
    big = np.kron(np.eye(2), BAI)
    with pytest.warns(ConvergenceWarning):
        res10 = solve_qp(big, config=QPConfig(eps=1e-10, max_iter=2))
    assert res10.n_iter == 20


def test_invalid_inputs():
    with pytest.raises(InfeasibleError):
        solve_qp(np.eye(2), l=[0.6, 0.6])
    with pytest.raises(InfeasibleError):
        solve_qp(np.eye(2), l=[0.5, 0.0], u=[0.4, 1.0])
    with pytest.raises(ValueError):
        solve_qp(np.eye(2), b=[1.0, 0.0])
    with pytest.raises(DimensionError):
        solve_qp(np.eye(2), p=[1.0, 2.0, 3.0])
    with pytest.raises(DimensionError):
        solve_qp([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])


def test_run_logger_records_solve():
    lg = JsonRunLogger(log_dir=None)
    with warnings.catch_warnings():
        warnings.simplefilter("error", ConvergenceWarning)
        solve_qp(BAI, run_logger=lg)
    rec = lg.records[-1]
    assert rec["event"] == "qp_solve"
    assert rec["converged"] is True
    assert rec["n"] == 5
