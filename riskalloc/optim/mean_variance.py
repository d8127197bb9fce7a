# riskalloc/optim/mean_variance.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ..core.guards import resolve_bounds, validate_covariance
from ..core.logger import JsonRunLogger
from ..core.matrix import MatrixLike
from ..core.utils import as_weights_output, corr_from_cov, symmetrize
from .qp import QPConfig, solve_qp

# ──────────────────────────────────────────────────────────────────────────────
# Carteras de mínima varianza sobre el solver QP (SMO)
#   GMV: min 1/2 w'Σw  s.t. ∑w = 1, l ≤ w ≤ u
#   MDP: GMV sobre ρ, re-escalada por 1/σ_i (Choueifaty & Coignard)
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MinVarianceConfig:
    """
    eps / max_iter: se pasan al QP (violación KKT máxima y nº de pasadas).
    min_weights / max_weights: cotas por activo (None → 0 y 1).
    """
    eps: float = 1e-4
    max_iter: int = 10000
    min_weights: Optional[Sequence[float]] = None
    max_weights: Optional[Sequence[float]] = None


def _min_variance(S: np.ndarray, lo: np.ndarray, hi: np.ndarray, config: MinVarianceConfig, run_logger):
    qp_config = QPConfig(eps=config.eps, max_iter=config.max_iter)
    res = solve_qp(S, None, None, 1.0, lo, hi, qp_config, run_logger=run_logger)
    return res.x


def global_minimum_variance_weights(
    sigma: MatrixLike,
    config: MinVarianceConfig = MinVarianceConfig(),
    *,
    run_logger: Optional[JsonRunLogger] = None,
):
    """
    Global Minimum Variance long-only con caja opcional.
    Cotas infactibles → InfeasibleError; sin converger → ConvergenceWarning (del QP).
    """
    Sv = validate_covariance(sigma)
    lo, hi = resolve_bounds(Sv.nrows, config.min_weights, config.max_weights)
    w = _min_variance(symmetrize(Sv.values), lo, hi, config, run_logger)
    return as_weights_output(w, Sv.labels)


def most_diversified_weights(
    sigma: MatrixLike,
    config: MinVarianceConfig = MinVarianceConfig(),
    *,
    run_logger: Optional[JsonRunLogger] = None,
):
    """
    Most Diversified Portfolio: maximiza σ'w / sqrt(w'Σw) (long-only, ∑w=1).
    Se resuelve como GMV sobre la matriz de correlación y se divide por σ_i.
    Las cotas por activo no se conservan con ese cambio de escala: no se admiten.
    """
    if config.min_weights is not None or config.max_weights is not None:
        raise ValueError("Weight bounds are not supported for the most diversified portfolio")
    Sv = validate_covariance(sigma)
    S = symmetrize(Sv.values)
    n = Sv.nrows
    lo, hi = resolve_bounds(n)
    y = _min_variance(corr_from_cov(S), lo, hi, config, run_logger)
    w = y / np.sqrt(np.diag(S))
    w = w / w.sum()
    return as_weights_output(w, Sv.labels)


def equal_weights(n: int) -> np.ndarray:
    """1/n para cada activo."""
    if int(n) != n or n < 1:
        raise ValueError("Number of assets must be a positive integer")
    return np.full(int(n), 1.0 / n)


__all__ = [
    "MinVarianceConfig",
    "global_minimum_variance_weights",
    "most_diversified_weights",
    "equal_weights",
]
