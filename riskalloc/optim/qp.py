# riskalloc/optim/qp.py
from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from ..core.errors import ConvergenceWarning, DimensionError, InfeasibleError
from ..core.guards import box_feasible
from ..core.logger import JsonRunLogger, log_event
from ..core.matrix import MatrixLike, as_matrix_view
from ..core.utils import project_to_box_simplex, symmetrize

VectorLike = Union[np.ndarray, Sequence[float], float, None]

# ──────────────────────────────────────────────────────────────────────────────
# QP convexa con una igualdad lineal y caja:
#   min  1/2 x'Qx + p'x
#   s.t. b'x = r,   l ≤ x ≤ u
# Generalized SMO (Keerthi & Gilbert, 2002): cada iteración optimiza en forma
# cerrada el par (i, j) que más viola las condiciones KKT.
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class QPConfig:
    """
    eps: tolerancia sobre la violación KKT máxima (F_j − F_i).
    max_iter: número máximo de pasadas; una pasada son n actualizaciones de pares,
              así que el tope interno es max_iter · n (n_iter cuenta pares).
    track_objective: guarda el objetivo tras cada iteración (diagnóstico).
    """
    eps: float = 1e-4
    max_iter: int = 10000
    track_objective: bool = False

    def __post_init__(self):
        if not self.eps > 0:
            raise ValueError("eps must be strictly positive")
        if int(self.max_iter) < 1:
            raise ValueError("max_iter must be a positive integer")


@dataclass
class QPResult:
    x: np.ndarray
    objective: float
    converged: bool
    n_iter: int
    kkt_gap: float
    objective_path: Optional[np.ndarray] = None


def _as_vector(v: VectorLike, n: int, name: str, default: float) -> np.ndarray:
    if v is None:
        return np.full(n, float(default))
    if np.isscalar(v):
        return np.full(n, float(v))
    out = np.asarray(v, dtype=float).reshape(-1)
    if out.size != n:
        raise DimensionError(f"{name} must have {n} entries, got {out.size}")
    return out


def _max_violating_pair(F: np.ndarray, y: np.ndarray, lb: np.ndarray, ub: np.ndarray) -> Tuple[int, int, float]:
    """
    i = argmin F sobre {y_i < ub_i} (puede subir), j = argmax F sobre {y_j > lb_j} (puede bajar).
    Devuelve (i, j, F_j − F_i); gap ≤ 0 si no hay par (óptimo).
    """
    can_up = y < ub
    can_down = y > lb
    if not can_up.any() or not can_down.any():
        return -1, -1, 0.0
    i = int(np.argmin(np.where(can_up, F, np.inf)))
    j = int(np.argmax(np.where(can_down, F, -np.inf)))
    return i, j, float(F[j] - F[i])


def solve_qp(
    Q: MatrixLike,
    p: VectorLike = None,
    b: VectorLike = None,
    r: float = 1.0,
    l: VectorLike = None,
    u: VectorLike = None,
    config: QPConfig = QPConfig(),
    *,
    run_logger: Optional[JsonRunLogger] = None,
) -> QPResult:
    """
    Resuelve la QP con SMO generalizado. Por defecto p=0, b=1, r=1, l=0, u=1
    (cartera long-only totalmente invertida).

    - Cambio de variables y_i = b_i x_i: la igualdad pasa a ∑y = r con cajas transformadas.
    - Punto inicial factible: proyección del punto uniforme sobre {∑y=r} ∩ caja.
    - Si se agotan las max_iter pasadas devuelve el iterado actual con converged=False y
      emite ConvergenceWarning (no lanza).
    """
    Qv = as_matrix_view(Q)
    if not Qv.is_square():
        raise DimensionError(f"Q must be square, got {Qv.shape}")
    n = Qv.nrows
    Qm = symmetrize(Qv.values)
    if not np.isfinite(Qm).all():
        raise ValueError("Q contains NaN/Inf")

    p = _as_vector(p, n, "p", 0.0)
    b = _as_vector(b, n, "b", 1.0)
    l = _as_vector(l, n, "l", 0.0)
    u = _as_vector(u, n, "u", 1.0)
    r = float(r)
    if (b == 0.0).any():
        raise ValueError("All coefficients of the equality constraint must be non-zero")
    if (l > u).any():
        raise InfeasibleError("Lower bounds must not exceed upper bounds")

    # Caja en el espacio y = b∘x
    lb = np.where(b > 0, b * l, b * u)
    ub = np.where(b > 0, b * u, b * l)
    if not box_feasible(lb, ub, r):
        raise InfeasibleError("Infeasible QP: the equality constraint cannot be met within the bounds")

    y = project_to_box_simplex(np.full(n, r / n), lb, ub, total=r)
    x = y / b
    g = Qm @ x + p  # gradiente
    path = [0.5 * float(x @ (g + p))] if config.track_objective else None

    max_updates = int(config.max_iter) * n
    converged = False
    n_iter = 0
    gap = np.inf
    while True:
        F = g / b
        i, j, gap = _max_violating_pair(F, y, lb, ub)
        if gap <= config.eps:
            converged = True
            break
        if n_iter >= max_updates:
            break

        # Sub-problema 1D: y_i += t, y_j -= t, t ∈ [0, cap]
        bi, bj = b[i], b[j]
        curv = Qm[i, i] / (bi * bi) + Qm[j, j] / (bj * bj) - 2.0 * Qm[i, j] / (bi * bj)
        room_i = ub[i] - y[i]
        room_j = y[j] - lb[j]
        cap = min(room_i, room_j)
        t = min(gap / curv, cap) if curv > 0.0 else cap

        xi_old, xj_old = x[i], x[j]
        if t >= room_i:
            y[i] = ub[i]
        else:
            y[i] += t
        if t >= room_j:
            y[j] = lb[j]
        else:
            y[j] -= t
        x[i] = y[i] / bi
        x[j] = y[j] / bj
        g += Qm[:, i] * (x[i] - xi_old) + Qm[:, j] * (x[j] - xj_old)

        n_iter += 1
        if path is not None:
            path.append(0.5 * float(x @ (g + p)))

    objective = 0.5 * float(x @ (Qm @ x)) + float(p @ x)
    if not converged:
        warnings.warn(
            f"QP solver did not converge in {config.max_iter} passes ({max_updates} pair updates, KKT gap {gap:.3e} > eps {config.eps:.1e})",
            ConvergenceWarning,
            stacklevel=2,
        )
    log_event(run_logger, "qp_solve", n=n, n_iter=n_iter, converged=converged, kkt_gap=gap, objective=objective)

    return QPResult(
        x=x,
        objective=objective,
        converged=converged,
        n_iter=n_iter,
        kkt_gap=float(max(gap, 0.0)),
        objective_path=None if path is None else np.asarray(path),
    )


__all__ = ["QPConfig", "QPResult", "solve_qp"]
