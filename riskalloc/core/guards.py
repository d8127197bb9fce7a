from __future__ import annotations
import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from .errors import DimensionError, InfeasibleError, InvalidBudgetError, InvalidCovarianceError
from .matrix import MatrixLike, MatrixView, as_matrix_view


def box_feasible(lo: Union[float, np.ndarray], hi: Union[float, np.ndarray], total: float = 1.0, n: Optional[int] = None) -> bool:
    """
    Comprueba si existe w con sum=total y lo ≤ w ≤ hi (cotas escalares con n, o vectores).
    """
    if n is not None:
        lo = np.full(n, float(lo)) if np.isscalar(lo) else np.asarray(lo, dtype=float)
        hi = np.full(n, float(hi)) if np.isscalar(hi) else np.asarray(hi, dtype=float)
    lo = np.asarray(lo, dtype=float)
    hi = np.asarray(hi, dtype=float)
    tol = 1e-12 * max(1.0, abs(total))
    return bool((lo <= hi).all() and lo.sum() <= total + tol and hi.sum() >= total - tol)


def validate_weights(
    w: np.ndarray,
    w_min: Union[float, np.ndarray] = 0.0,
    w_max: Union[float, np.ndarray] = 1.0,
    total: float = 1.0,
    tol: float = 1e-8,
) -> None:
    """
    Valida suma presupuesto y caja con tolerancia; levanta AssertionError si falla.
    """
    w = np.asarray(w, dtype=float)
    assert np.isfinite(w).all(), "Weights contain NaN/Inf"
    assert abs(float(w.sum()) - total) < tol, f"Weights do not sum to {total}"
    assert (w >= np.asarray(w_min) - tol).all() and (w <= np.asarray(w_max) + tol).all(), "Weights out of bounds"


# ─────────────────────────────────────────────────────────
# Σ, presupuestos y cotas
# ─────────────────────────────────────────────────────────
def validate_covariance(sigma: MatrixLike) -> MatrixView:
    """
    Σ cuadrada, finita y con diagonal estrictamente positiva. Devuelve la vista validada.
    (La simetría se impone después con 0.5*(Σ+Σᵀ); asimetrías de estimación se toleran.)
    """
    S = as_matrix_view(sigma)
    if not S.is_square():
        raise DimensionError(f"Covariance matrix must be square, got {S.shape}")
    if not np.isfinite(S.values).all():
        raise InvalidCovarianceError("Covariance matrix contains NaN/Inf")
    if (np.diag(S.values) <= 0.0).any():
        raise InvalidCovarianceError("Covariance matrix diagonal must be strictly positive")
    return S


def normalize_budgets(budgets: Optional[Sequence[float]], n: int) -> np.ndarray:
    """
    Presupuestos de riesgo: por defecto 1/n; si vienen, deben ser n valores > 0 (se normalizan a suma 1).
    """
    if budgets is None:
        return np.full(n, 1.0 / n)
    b = np.asarray(budgets, dtype=float).reshape(-1)
    if b.size != n:
        raise DimensionError(f"Risk budgets length {b.size} does not match {n} assets")
    if not np.isfinite(b).all() or (b <= 0.0).any():
        raise InvalidBudgetError("Risk budgets must be finite and strictly positive")
    s = float(b.sum())
    if not s > 0.0:
        raise InvalidBudgetError("Risk budgets must sum to a positive value")
    return b / s


def resolve_bounds(
    n: int,
    min_weights: Optional[Sequence[float]] = None,
    max_weights: Optional[Sequence[float]] = None,
    total: float = 1.0,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Cotas por activo (por defecto 0 y 1). Falla si la caja no admite sum=total.
    """
    lo = np.zeros(n) if min_weights is None else np.asarray(min_weights, dtype=float).reshape(-1)
    hi = np.ones(n) if max_weights is None else np.asarray(max_weights, dtype=float).reshape(-1)
    if lo.size != n or hi.size != n:
        raise DimensionError(f"Weight bounds must have {n} entries")
    if not (np.isfinite(lo).all() and np.isfinite(hi).all()):
        raise InfeasibleError("Weight bounds must be finite")
    if not box_feasible(lo, hi, total):
        raise InfeasibleError(f"Infeasible bounds: need sum(lower) ≤ {total} ≤ sum(upper) and lower ≤ upper")
    return lo, hi


# ─────────────────────────────────────────────────────────
# Clustering manual: validación pura (resultado etiquetado)
# ─────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ClusterValidation:
    ok: bool
    error: Optional[str] = None


def validate_clusters(clusters: Optional[Sequence[Sequence[int]]], n: int) -> ClusterValidation:
    """
    Comprueba que `clusters` (índices 1-based) es una partición exacta de {1..n}.
    No lanza: devuelve ClusterValidation(ok, error) con el primer fallo encontrado:
      - cluster vacío (posición 0-based del cluster)
      - índice fuera de [1..n]
      - índice duplicado
      - índice ausente (el menor)
    """
    seen = np.zeros(n + 1, dtype=bool)
    for k, cluster in enumerate(clusters or []):
        if len(cluster) == 0:
            return ClusterValidation(False, f"empty cluster at index: {k}")
        for idx in cluster:
            if isinstance(idx, (bool, np.bool_)) or int(idx) != idx:
                return ClusterValidation(False, f"asset index out of bounds: {idx}")
            idx = int(idx)
            if idx < 1 or idx > n:
                return ClusterValidation(False, f"asset index out of bounds: {idx}")
            if seen[idx]:
                return ClusterValidation(False, f"duplicate asset index: {idx}")
            seen[idx] = True
    for idx in range(1, n + 1):
        if not seen[idx]:
            return ClusterValidation(False, f"missing asset index: {idx}")
    return ClusterValidation(True)
