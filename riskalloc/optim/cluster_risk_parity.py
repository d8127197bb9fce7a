# riskalloc/optim/cluster_risk_parity.py
from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..core.errors import ConvergenceWarning
from ..core.guards import validate_covariance
from ..core.logger import JsonRunLogger, log_event
from ..core.matrix import MatrixLike
from ..core.utils import as_weights_output, symmetrize
from .clustering import resolve_clusters
from .risk_budgeting import RiskBudgetingConfig, solve_risk_budgeting_array

# ──────────────────────────────────────────────────────────────────────────────
# Cluster Risk Parity (Roncalli & Weisang)
#   1) ERC dentro de cada cluster → carteras "sintéticas" (columnas de W, n×k)
#   2) Σ_c = Wᵀ Σ W  (covarianza entre clusters)
#   3) ERC sobre Σ_c → c (k,)
#   4) w = W c
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClusterRiskParityConfig:
    """
    clustering_mode: "ftca" (automático por correlación) o "manual".
    clusters: partición 1-based de los activos (solo en modo manual).
    threshold / max_cluster_size: parámetros de FTCA (None → media de ρ / sin tope).
    eps / max_iter: se pasan a los ERC intra e inter cluster.
    """
    clustering_mode: str = "ftca"
    clusters: Optional[Sequence[Sequence[int]]] = None
    threshold: Optional[float] = None
    max_cluster_size: Optional[int] = None
    eps: float = 1e-8
    max_iter: int = 10000


@dataclass
class ClusterRiskParityResult:
    weights: np.ndarray
    clusters: List[List[int]]
    cluster_weights: np.ndarray   # c, reparto entre clusters
    embedding: np.ndarray         # W (n×k)
    converged: bool
    labels: Optional[List[str]] = None


def _cluster_embedding(S: np.ndarray, clusters: List[List[int]], rb_config: RiskBudgetingConfig):
    n, k = S.shape[0], len(clusters)
    W = np.zeros((n, k))
    converged = True
    for c, members in enumerate(clusters):
        idx = np.asarray(members, dtype=int) - 1
        m = idx.size
        res = solve_risk_budgeting_array(S[np.ix_(idx, idx)], np.full(m, 1.0 / m), rb_config)
        W[idx, c] = res.weights
        converged &= res.converged
    return W, converged


def solve_cluster_risk_parity(
    sigma: MatrixLike,
    config: ClusterRiskParityConfig = ClusterRiskParityConfig(),
    *,
    run_logger: Optional[JsonRunLogger] = None,
) -> ClusterRiskParityResult:
    # Validación completa (Σ y partición) antes de cualquier cálculo
    Sv = validate_covariance(sigma)
    clusters = resolve_clusters(
        Sv,
        config.clustering_mode,
        config.clusters,
        threshold=config.threshold,
        max_cluster_size=config.max_cluster_size,
        run_logger=run_logger,
    )
    S = symmetrize(Sv.values)
    rb_config = RiskBudgetingConfig(eps=config.eps, max_iter=config.max_iter)

    W, converged = _cluster_embedding(S, clusters, rb_config)
    C = symmetrize(W.T @ S @ W)
    k = C.shape[0]
    outer = solve_risk_budgeting_array(C, np.full(k, 1.0 / k), rb_config)
    converged &= outer.converged
    w = W @ outer.weights

    if not converged:
        warnings.warn("Cluster risk parity: some ERC solves did not converge", ConvergenceWarning, stacklevel=2)
    log_event(run_logger, "crp_solve", n=Sv.nrows, n_clusters=k, clusters=clusters, converged=converged)
    return ClusterRiskParityResult(w, clusters, outer.weights, W, converged, Sv.labels)


def cluster_risk_parity_weights(
    sigma: MatrixLike,
    config: ClusterRiskParityConfig = ClusterRiskParityConfig(),
    *,
    run_logger: Optional[JsonRunLogger] = None,
):
    """
    Pesos CRP. Con un único cluster o todo singletons coincide con el ERC simple.
    """
    res = solve_cluster_risk_parity(sigma, config, run_logger=run_logger)
    return as_weights_output(res.weights, res.labels)


__all__ = [
    "ClusterRiskParityConfig", "ClusterRiskParityResult",
    "solve_cluster_risk_parity", "cluster_risk_parity_weights",
]
