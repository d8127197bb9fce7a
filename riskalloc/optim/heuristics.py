# riskalloc/optim/heuristics.py
from __future__ import annotations

import numpy as np
from scipy.stats import norm, rankdata

from ..core.guards import validate_covariance
from ..core.matrix import MatrixLike
from ..core.utils import as_weights_output, corr_from_cov, symmetrize
from .risk_budgeting import equal_risk_budget_weights

# ──────────────────────────────────────────────────────────────────────────────
# Heurísticas sin optimizador: transforman una medida media de dependencia con la
# CDF normal (1 − Φ(z)) y la combinan con las volatilidades.
#   MinCorr: Varadi, Kapler, Bee & Rittenhouse (2012), The Minimum Correlation Algorithm
#   MVA:     hoja "Minimum Variance Algorithm" de los mismos autores
# ──────────────────────────────────────────────────────────────────────────────

def _adjusted(x: np.ndarray) -> np.ndarray:
    """1 − Φ((x − μ)/s) con s la desviación muestral; s = 0 (o un solo valor) → 1/2."""
    mu = float(np.mean(x))
    sd = float(np.std(x, ddof=1)) if x.size > 1 else 0.0
    if not sd > 0.0:
        return np.full(x.shape, 0.5)
    return 1.0 - norm.cdf((x - mu) / sd)


def min_corr_weights(sigma: MatrixLike):
    """
    Minimum Correlation Algorithm.

    1. ρ a partir de Σ; las correlaciones fuera de la diagonal se transforman en
       A_ij = 1 − Φ((ρ_ij − μ)/s), con A_ii = 0.
    2. Media por fila de A; rango descendente (la mayor media recibe rango 1) y
       pesos proporcionales al rango.
    3. Correlación ajustada de cartera: pesos de rango · A, normalizada.
    4. Escala por 1/σ_i y renormaliza.

    Con dos activos las medias coinciden y el resultado es el inverse-volatility.
    """
    Sv = validate_covariance(sigma)
    S = symmetrize(Sv.values)
    n = Sv.nrows
    if n == 1:
        return as_weights_output(np.ones(1), Sv.labels)

    R = corr_from_cov(S)
    iu = np.triu_indices(n, k=1)
    A = np.zeros((n, n))
    A[iu] = _adjusted(R[iu])
    A = A + A.T

    avg = A.sum(axis=1) / (n - 1)
    rank = rankdata(-avg)  # empates → rango medio
    m = (rank / rank.sum()) @ A
    m = m / m.sum()

    w = m * equal_risk_budget_weights(np.diag(S))
    return as_weights_output(w / w.sum(), Sv.labels)


def min_var_weights(sigma: MatrixLike):
    """
    Proportional Minimum Variance (MVA).

    Covarianza media de cada fila (diagonal incluida) → 1 − Φ((c_i − μ)/s),
    normalizada a suma 1, y después w_i ∝ ese valor / σ_i².
    """
    Sv = validate_covariance(sigma)
    S = symmetrize(Sv.values)
    A = _adjusted(S.mean(axis=1))
    A = A / A.sum()
    w = A / np.diag(S)
    return as_weights_output(w / w.sum(), Sv.labels)


__all__ = ["min_corr_weights", "min_var_weights"]
