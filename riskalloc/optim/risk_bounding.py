# riskalloc/optim/risk_bounding.py
from __future__ import annotations

import itertools
import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.errors import ConvergenceWarning, InfeasibleError
from ..core.guards import validate_covariance
from ..core.logger import JsonRunLogger, log_event
from ..core.matrix import MatrixLike
from ..core.utils import as_weights_output, symmetrize
from .risk_budgeting import RiskBudgetingConfig, solve_risk_budgeting_array

# ──────────────────────────────────────────────────────────────────────────────
# Equal Risk Bounding (Cesarone & Tardella, 2017)
#   min_w max_i w_i (Σw)_i   s.t. ∑w = 1, w ≥ 0
# El óptimo es un ERC sobre algún subconjunto S (cero fuera de S). El valor de S es
# la contribución común v(S) = w_S'Σ_S w_S / |S|, y el óptimo global es min_S v(S).
# Dos fases:
#   1) refinamiento desde el universo completo: movimientos de un activo y, cuando
#      ninguno mejora, movimientos de grupo guiados por la condición de acotación;
#   2) certificado exacto: recorrido de todos los subconjuntos (n ≤ max_exact_assets)
#      con poda por la cota v(S) ≥ λ_min(Σ_S) / |S|².
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RiskBoundingConfig:
    """
    eps / max_iter: se pasan a cada re-solve ERC.
    rtol: mejora relativa mínima de v para aceptar un movimiento; dentro de rtol
          dos candidatos se consideran empatados (gana el menor índice).
    max_rounds: tope de movimientos de la búsqueda local (None → n²).
    max_exact_assets: hasta este tamaño de universo el resultado se certifica
          recorriendo todos los subconjuntos; por encima queda la búsqueda local.
    """
    eps: float = 1e-8
    max_iter: int = 10000
    rtol: float = 1e-9
    max_rounds: Optional[int] = None
    max_exact_assets: int = 12

    def __post_init__(self):
        if not self.eps > 0:
            raise ValueError("eps must be strictly positive")
        if int(self.max_iter) < 1:
            raise ValueError("max_iter must be a positive integer")
        if self.rtol < 0:
            raise ValueError("rtol must be non-negative")
        if int(self.max_exact_assets) < 0:
            raise ValueError("max_exact_assets must be non-negative")


@dataclass
class RiskBoundingResult:
    weights: np.ndarray
    subset: List[int]          # índices 1-based con peso > 0
    risk_contribution: float   # v(S), contribución común dentro de S
    n_rounds: int
    n_solves: int
    converged: bool
    labels: Optional[List[str]] = None
    exact: bool = False        # True si el subconjunto quedó certificado por recorrido completo


class _SubsetEvaluator:
    """ERC sobre sub-matrices con caché por subconjunto (tupla de índices 0-based)."""

    def __init__(self, S: np.ndarray, rb_config: RiskBudgetingConfig):
        self.S = S
        self.rb_config = rb_config
        self.cache: Dict[Tuple[int, ...], Tuple[float, np.ndarray]] = {}
        self.n_solves = 0
        self.all_converged = True

    def __call__(self, key: Tuple[int, ...]) -> Tuple[float, np.ndarray]:
        hit = self.cache.get(key)
        if hit is not None:
            return hit
        idx = np.asarray(key, dtype=int)
        k = idx.size
        res = solve_risk_budgeting_array(self.S[np.ix_(idx, idx)], np.full(k, 1.0 / k), self.rb_config)
        self.n_solves += 1
        self.all_converged &= res.converged
        out = (res.volatility ** 2 / k, res.weights)
        self.cache[key] = out
        return out


def _key(mask: np.ndarray) -> Tuple[int, ...]:
    return tuple(np.flatnonzero(mask).tolist())


def _flipped(mask: np.ndarray, assets: Sequence[int]) -> np.ndarray:
    out = mask.copy()
    out[list(assets)] = ~out[list(assets)]
    return out


def bounding_violations(S: np.ndarray, mask: np.ndarray, w_sub: np.ndarray, v: float) -> List[int]:
    """
    Activos excluidos (0-based) que violan la condición de acotación.

    Re-admitir k con peso ε, tomado a prorrata de S, deja
      RC_i ≈ v (1 − 2ε) + ε w_i Σ_ik,   i ∈ S,
    así que k baja todas las contribuciones a primer orden si max_i w_i Σ_ik < 2v.
    """
    idx = np.flatnonzero(mask)
    out = []
    for k in np.flatnonzero(~mask):
        if float(np.max(w_sub * S[idx, k])) < 2.0 * v:
            out.append(int(k))
    return out


def _candidate_moves(S: np.ndarray, mask: np.ndarray, w_sub: np.ndarray, v: float) -> List[Tuple[Tuple[int, ...], str]]:
    """
    Movimientos de grupo: re-admitir juntos todos los que violan la acotación y
    excluir los m activos de menor peso (m = 2 .. |S| − 1).
    """
    moves: List[Tuple[Tuple[int, ...], str]] = []
    admit = bounding_violations(S, mask, w_sub, v)
    if len(admit) >= 2:
        moves.append((tuple(admit), "include"))
    idx = np.flatnonzero(mask)
    order = idx[np.lexsort((idx, w_sub))]  # peso ascendente, menor índice primero
    for m in range(2, idx.size):
        moves.append((tuple(sorted(order[:m].tolist())), "exclude"))
    return moves


def _best_move(evaluate, mask, v, moves, rtol):
    """Primer movimiento (en orden) con la menor v; mejora estricta fuera de la banda rtol."""
    best, best_v = None, v
    for assets, action in moves:
        vk, _ = evaluate(_key(_flipped(mask, assets)))
        if vk >= v * (1.0 - rtol):
            continue
        if best is None or vk < best_v * (1.0 - rtol):
            best, best_v = (assets, action), vk
    return best


def _exact_search(S: np.ndarray, evaluate: _SubsetEvaluator, v: float, rtol: float):
    """
    Recorre los subconjuntos por tamaño y en orden lexicográfico. Solo sustituye al
    incumbente con una mejora estricta, de modo que los empates conservan el primero.
    Cota usada para podar: w'Σw ≥ λ_min ‖w‖² ≥ λ_min / k  →  v(S) ≥ λ_min(Σ_S) / k².
    """
    n = S.shape[0]
    best_key, best_v = None, v
    n_checked = n_pruned = 0
    for k in range(1, n + 1):
        for key in itertools.combinations(range(n), k):
            n_checked += 1
            lam = float(np.linalg.eigvalsh(S[np.ix_(key, key)])[0])
            if lam / (k * k) >= best_v * (1.0 - rtol):
                n_pruned += 1
                continue
            vk, _ = evaluate(key)
            if vk < best_v * (1.0 - rtol):
                best_key, best_v = key, vk
    return best_key, n_checked, n_pruned


def solve_equal_risk_bounding(
    sigma: MatrixLike,
    config: RiskBoundingConfig = RiskBoundingConfig(),
    *,
    run_logger: Optional[JsonRunLogger] = None,
) -> RiskBoundingResult:
    """
    Búsqueda del subconjunto ERB.

    Cada ronda prueba todos los movimientos de un activo (re-admitir uno excluido,
    excluir uno incluido mientras |S| > 1) y aplica el que más baja v(S). Si ninguno
    mejora, prueba los movimientos de grupo. v decrece estrictamente ronda a ronda,
    así que no hay ciclos. Empates (dentro de rtol): gana el menor índice.

    Un óptimo local de esa búsqueda no siempre es global; con n ≤ max_exact_assets
    el recorrido completo de subconjuntos lo certifica o lo reemplaza.
    """
    Sv = validate_covariance(sigma)
    S = symmetrize(Sv.values)
    n = Sv.nrows
    scale = float(np.max(np.diag(S)))
    if Sv.min_eigenvalue() < -1e-8 * scale:
        raise InfeasibleError("Covariance matrix is not positive semi-definite; no ERC subset can be trusted")

    rb_config = RiskBudgetingConfig(eps=config.eps, max_iter=config.max_iter)
    evaluate = _SubsetEvaluator(S, rb_config)
    max_rounds = n * n if config.max_rounds is None else int(config.max_rounds)

    mask = np.ones(n, dtype=bool)
    v, w_sub = evaluate(_key(mask))
    n_rounds = 0
    converged = False
    while True:
        size = int(mask.sum())
        singles = [((k,), "include" if not mask[k] else "exclude") for k in range(n) if not (mask[k] and size == 1)]
        best = _best_move(evaluate, mask, v, singles, config.rtol)
        if best is None:
            best = _best_move(evaluate, mask, v, _candidate_moves(S, mask, w_sub, v), config.rtol)
        if best is None:
            converged = True
            break
        if n_rounds >= max_rounds:
            break

        assets, action = best
        mask = _flipped(mask, assets)
        v, w_sub = evaluate(_key(mask))
        n_rounds += 1
        log_event(
            run_logger, "erb_round",
            round=n_rounds,
            assets=[a + 1 for a in assets],
            action=action,
            risk_contribution=v,
        )

    exact = n <= int(config.max_exact_assets)
    if exact:
        key, n_checked, n_pruned = _exact_search(S, evaluate, v, config.rtol)
        if key is not None:
            mask = np.zeros(n, dtype=bool)
            mask[list(key)] = True
            v, w_sub = evaluate(key)
        log_event(
            run_logger, "erb_exact",
            n_subsets=n_checked, n_pruned=n_pruned, improved=key is not None, risk_contribution=v,
        )
        converged = True

    if not converged:
        warnings.warn(
            f"Equal risk bounding search stopped after {max_rounds} rounds",
            ConvergenceWarning,
            stacklevel=2,
        )
    if not evaluate.all_converged:
        warnings.warn("Some ERC re-solves did not converge", ConvergenceWarning, stacklevel=2)

    w = np.zeros(n)
    w[mask] = w_sub
    subset = (np.flatnonzero(mask) + 1).tolist()
    log_event(run_logger, "erb_solve", n=n, subset=subset, n_rounds=n_rounds, n_solves=evaluate.n_solves, converged=converged)
    return RiskBoundingResult(w, subset, float(v), n_rounds, evaluate.n_solves, converged, Sv.labels, exact)


def equal_risk_bounding_weights(
    sigma: MatrixLike,
    config: RiskBoundingConfig = RiskBoundingConfig(),
    *,
    output_risk: bool = False,
    run_logger: Optional[JsonRunLogger] = None,
):
    """
    Pesos ERB (cero para los activos excluidos). Con output_risk=True devuelve
    (w, contribución común al riesgo).
    """
    res = solve_equal_risk_bounding(sigma, config, run_logger=run_logger)
    w = as_weights_output(res.weights, res.labels)
    if output_risk:
        return w, res.risk_contribution
    return w


__all__ = [
    "RiskBoundingConfig", "RiskBoundingResult",
    "bounding_violations",
    "solve_equal_risk_bounding", "equal_risk_bounding_weights",
]
