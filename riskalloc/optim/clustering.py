# riskalloc/optim/clustering.py
from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np
from scipy.cluster.hierarchy import DisjointSet

from ..core.errors import InvalidClusteringError
from ..core.guards import validate_clusters, validate_covariance
from ..core.logger import JsonRunLogger, log_event
from ..core.matrix import MatrixLike
from ..core.utils import corr_from_cov, symmetrize

CLUSTERING_MODES = ("ftca", "manual")


def _pairs_by_correlation(R: np.ndarray):
    """Pares (i<j) ordenados por ρ descendente; empates por (i, j) lexicográfico."""
    iu, ju = np.triu_indices(R.shape[0], k=1)
    rho = R[iu, ju]
    order = np.lexsort((ju, iu, -rho))
    return iu[order], ju[order], rho[order]


def default_threshold(R: np.ndarray) -> float:
    """Umbral por defecto: correlación media fuera de la diagonal (0 si n = 1)."""
    iu, ju = np.triu_indices(R.shape[0], k=1)
    if iu.size == 0:
        return 0.0
    return float(np.mean(R[iu, ju]))


def ftca_clusters(
    sigma: MatrixLike,
    threshold: Optional[float] = None,
    *,
    max_cluster_size: Optional[int] = None,
    is_covariance: bool = True,
    run_logger: Optional[JsonRunLogger] = None,
) -> List[List[int]]:
    """
    Fast Threshold Clustering: agrupa activos por correlación.

    - Σ se normaliza a ρ (is_covariance=False si ya es una correlación).
    - Se recorren los pares por ρ descendente y se fusionan sus clusters (union-find)
      mientras ρ_ij > τ, si no están ya juntos y si la fusión no supera max_cluster_size.
    - Los activos nunca fusionados quedan como singletons.

    Devuelve la partición con índices 1-based, cada cluster ordenado y los
    clusters ordenados por su menor índice.
    """
    Sv = validate_covariance(sigma)
    R = corr_from_cov(Sv.values) if is_covariance else np.clip(symmetrize(Sv.values), -1.0, 1.0)
    n = Sv.nrows
    tau = default_threshold(R) if threshold is None else float(threshold)
    if max_cluster_size is not None and int(max_cluster_size) < 1:
        raise ValueError("max_cluster_size must be a positive integer")

    ds = DisjointSet(range(n))
    for i, j, rho in zip(*_pairs_by_correlation(R)):
        if rho <= tau:
            break
        a, b = int(i), int(j)
        if ds.connected(a, b):
            continue
        if max_cluster_size is not None and ds.subset_size(a) + ds.subset_size(b) > max_cluster_size:
            continue
        ds.merge(a, b)

    clusters = sorted((sorted(k + 1 for k in s) for s in ds.subsets()), key=lambda c: c[0])
    log_event(run_logger, "ftca_clusters", n=n, threshold=tau, n_clusters=len(clusters), clusters=clusters)
    return clusters


def resolve_clusters(
    sigma: MatrixLike,
    mode: str = "ftca",
    clusters: Optional[Sequence[Sequence[int]]] = None,
    *,
    threshold: Optional[float] = None,
    max_cluster_size: Optional[int] = None,
    run_logger: Optional[JsonRunLogger] = None,
) -> List[List[int]]:
    """
    Devuelve la partición a usar: FTCA o la manual del caller, validada antes de
    cualquier cálculo numérico. Lanza InvalidClusteringError con el fallo concreto.
    """
    if mode not in CLUSTERING_MODES:
        raise InvalidClusteringError("unsupported clustering method")
    if mode == "manual":
        n = validate_covariance(sigma).nrows
        check = validate_clusters(clusters, n)
        if not check.ok:
            raise InvalidClusteringError(check.error)
        return [sorted(int(i) for i in c) for c in clusters]
    return ftca_clusters(sigma, threshold, max_cluster_size=max_cluster_size, run_logger=run_logger)


__all__ = ["CLUSTERING_MODES", "default_threshold", "ftca_clusters", "resolve_clusters"]
