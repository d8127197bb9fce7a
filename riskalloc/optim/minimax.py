# riskalloc/optim/minimax.py
from __future__ import annotations
from typing import Union
import numpy as np
import polars as pl
from scipy.optimize import linprog

from ..core.errors import DimensionError
from ..core.utils import clean_returns_matrix


def _returns_by_asset(returns: Union[np.ndarray, pl.DataFrame]) -> np.ndarray:
    """(n activos, T periodos). Un DataFrame polars wide (date + tickers) viene como (T, n)."""
    if isinstance(returns, pl.DataFrame):
        df = clean_returns_matrix(returns)
        cols = [c for c in df.columns if c != "date"]
        R = df.select(cols).to_numpy().T
    else:
        R = np.asarray(returns, dtype=float)
    if R.ndim != 2 or R.size == 0:
        raise DimensionError("Returns must be a non-empty (assets × periods) matrix")
    if not np.isfinite(R).all():
        raise ValueError("Returns contain NaN/Inf")
    return R


def minimax_weights(
    returns: Union[np.ndarray, pl.DataFrame],
    partial_investment: bool = False,
) -> np.ndarray:
    """
    Cartera minimax (Young, 1998): maximiza el peor retorno periódico.
    LP:
      max M
      s.t. Σ_i R_it w_i ≥ M   ∀t
           sum w_i = 1   (≤ 1 si partial_investment)
           w_i ≥ 0,  M libre

    `returns`: ndarray (activos × periodos) o DataFrame polars (periodos × activos,
    columna 'date' opcional). Devuelve (n+1,): los n pesos y después M.
    """
    R = _returns_by_asset(returns)
    N, T = R.shape

    # variables: [w(0..N-1), M]
    n_var = N + 1
    c = np.zeros(n_var)
    c[N] = -1.0  # max M

    # M − R_t·w ≤ 0
    A = np.zeros((T, n_var))
    A[:, :N] = -R.T
    A[:, N] = 1.0
    b = np.zeros(T)

    budget = np.zeros((1, n_var))
    budget[0, :N] = 1.0
    bounds = [(0.0, None)] * N + [(None, None)]

    if partial_investment:
        res = linprog(c, A_ub=np.vstack([A, budget]), b_ub=np.append(b, 1.0), bounds=bounds, method="highs")
    else:
        res = linprog(c, A_ub=A, b_ub=b, A_eq=budget, b_eq=np.array([1.0]), bounds=bounds, method="highs")
    if not res.success:
        raise RuntimeError(f"Minimax LP failed: {res.message}")

    w_opt = np.clip(res.x[:N], 0.0, None)
    if not partial_investment:
        # normaliza por si redondeos
        s = float(np.sum(w_opt))
        if s != 0:
            w_opt = w_opt / s
    return np.append(w_opt, res.x[N])


__all__ = ["minimax_weights"]
