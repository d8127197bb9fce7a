# riskalloc/optim/risk_budgeting.py
from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..core.errors import ConvergenceWarning, InvalidCovarianceError
from ..core.guards import normalize_budgets, validate_covariance
from ..core.logger import JsonRunLogger, log_event
from ..core.matrix import MatrixLike
from ..core.utils import as_weights_output, symmetrize

# ──────────────────────────────────────────────────────────────────────────────
# Risk budgeting por descenso coordenado cíclico (Griveau-Billion, Richard, Roncalli)
#   min_w  f(w) = 1/2 w'Σw − Σ_i b_i log(w_i),   w > 0
# Condición de primer orden coordenada a coordenada:
#   Σ_ii w_i² + c_i w_i − b_i = 0,   c_i = Σ_{j≠i} Σ_ij w_j
# El óptimo re-escalado a ∑w = 1 cumple w_i (Σw)_i / w'Σw = b_i.
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RiskBudgetingConfig:
    """
    eps: tolerancia sobre el cambio relativo de w entre barridos completos.
    max_iter: número máximo de barridos.
    closed_form_2x2: usa la fórmula cerrada de Bruder & Roncalli cuando n = 2.
    """
    eps: float = 1e-8
    max_iter: int = 10000
    closed_form_2x2: bool = True

    def __post_init__(self):
        if not self.eps > 0:
            raise ValueError("eps must be strictly positive")
        if int(self.max_iter) < 1:
            raise ValueError("max_iter must be a positive integer")


@dataclass
class RiskBudgetingResult:
    weights: np.ndarray
    volatility: float
    converged: bool
    n_iter: int
    labels: Optional[list] = None


def risk_contributions(w: np.ndarray, Sigma: np.ndarray, *, normalize: bool = False) -> np.ndarray:
    """
    Devuelve contribución al riesgo por activo:
      RC_i = w_i * (Σ w)_i
    Si normalize=True, divide por wᵀΣw para obtener % que suma 1.
    """
    w = np.asarray(w, dtype=float).reshape(-1)
    Sigma = np.asarray(Sigma, dtype=float)
    mrc = Sigma @ w
    rc = w * mrc
    if normalize:
        tot = float(w @ mrc)
        return rc / (tot if abs(tot) > 1e-16 else 1.0)
    return rc


def _positive_root(a: float, c: float, b: float) -> float:
    """Raíz positiva de a x² + c x − b = 0 (a, b > 0), sin cancelación."""
    disc = math.sqrt(c * c + 4.0 * a * b)
    if c >= 0.0:
        return 2.0 * b / (c + disc)
    return (disc - c) / (2.0 * a)


def _ccd(S: np.ndarray, b: np.ndarray, eps: float, max_iter: int) -> Tuple[np.ndarray, bool, int]:
    """
    Barridos cíclicos sobre las coordenadas. Devuelve (w sin normalizar, converged, n_barridos).
    """
    d = np.diag(S)
    # Arranque: solución exacta si Σ fuese diagonal (w_i = √b_i / σ_i)
    w = np.sqrt(b) / np.sqrt(d)
    n = w.size
    for sweep in range(1, max_iter + 1):
        Sw = S @ w  # se recalcula en cada barrido para no acumular deriva
        max_dw = 0.0
        for i in range(n):
            c = Sw[i] - d[i] * w[i]
            wi = _positive_root(d[i], c, b[i])
            dw = wi - w[i]
            if dw != 0.0:
                Sw += S[:, i] * dw
                w[i] = wi
                max_dw = max(max_dw, abs(dw))
        if max_dw <= eps * float(np.max(w)):
            return w, True, sweep
    return w, False, max_iter


def _two_assets_closed_form(S: np.ndarray, b: np.ndarray) -> Optional[np.ndarray]:
    """
    Bruder & Roncalli, n = 2. None si el denominador degenera (se cae a CCD).
    """
    s1, s2 = math.sqrt(S[0, 0]), math.sqrt(S[1, 1])
    rho = S[0, 1] / (s1 * s2)
    b1 = float(b[0])
    num = (b1 - 0.5) * rho * s1 * s2 - b1 * s2 * s2 + s1 * s2 * math.sqrt((b1 - 0.5) ** 2 * rho * rho + b1 * (1.0 - b1))
    den = (1.0 - b1) * s1 * s1 - b1 * s2 * s2 + 2.0 * (b1 - 0.5) * rho * s1 * s2
    if abs(den) <= 1e-12 * (s1 * s1 + s2 * s2):
        return None
    w1 = num / den
    if not 0.0 < w1 < 1.0:
        return None
    return np.array([w1, 1.0 - w1])


def solve_risk_budgeting_array(
    S: np.ndarray,
    b: np.ndarray,
    config: RiskBudgetingConfig = RiskBudgetingConfig(),
) -> RiskBudgetingResult:
    """
    Núcleo sobre arrays ya validados (Σ simétrica con diagonal > 0, b > 0 con suma 1).
    Lo reutilizan el risk bounding y el cluster risk parity sobre sub-matrices.
    """
    n = S.shape[0]
    if n == 1:
        w = np.ones(1)
        return RiskBudgetingResult(w, math.sqrt(float(S[0, 0])), True, 0)

    w = _two_assets_closed_form(S, b) if (n == 2 and config.closed_form_2x2) else None
    if w is not None:
        converged, n_iter = True, 0
    else:
        w, converged, n_iter = _ccd(S, b, config.eps, int(config.max_iter))
        w = w / w.sum()

    vol = math.sqrt(max(float(w @ S @ w), 0.0))
    return RiskBudgetingResult(w, vol, converged, n_iter)


def solve_risk_budgeting(
    sigma: MatrixLike,
    budgets: Optional[Sequence[float]] = None,
    config: RiskBudgetingConfig = RiskBudgetingConfig(),
    *,
    run_logger: Optional[JsonRunLogger] = None,
) -> RiskBudgetingResult:
    """
    Valida entradas y resuelve. Si no converge: ConvergenceWarning + mejor iterado.
    """
    Sv = validate_covariance(sigma)
    S = symmetrize(Sv.values)
    b = normalize_budgets(budgets, Sv.nrows)

    res = solve_risk_budgeting_array(S, b, config)
    if not np.isfinite(res.weights).all():
        raise InvalidCovarianceError("Risk budgeting produced non-finite weights; check that sigma is PSD")
    if not res.converged:
        warnings.warn(
            f"Risk budgeting did not converge in {config.max_iter} sweeps",
            ConvergenceWarning,
            stacklevel=2,
        )
    log_event(run_logger, "rb_solve", n=Sv.nrows, n_iter=res.n_iter, converged=res.converged, volatility=res.volatility)
    res.labels = Sv.labels
    return res


def risk_budgeting_weights(
    sigma: MatrixLike,
    budgets: Optional[Sequence[float]] = None,
    config: RiskBudgetingConfig = RiskBudgetingConfig(),
    *,
    output_volatility: bool = False,
    run_logger: Optional[JsonRunLogger] = None,
) -> Union[np.ndarray, pd.Series, Tuple[Union[np.ndarray, pd.Series], float]]:
    """
    Pesos de risk budgeting (long-only, ∑w=1) cuyo reparto de riesgo iguala `budgets`.
    Con output_volatility=True devuelve (w, sqrt(w'Σw)).
    """
    res = solve_risk_budgeting(sigma, budgets, config, run_logger=run_logger)
    w = as_weights_output(res.weights, res.labels)
    if output_volatility:
        return w, res.volatility
    return w


def equal_risk_contribution_weights(
    sigma: MatrixLike,
    config: RiskBudgetingConfig = RiskBudgetingConfig(),
    *,
    output_volatility: bool = False,
    run_logger: Optional[JsonRunLogger] = None,
):
    """ERC: risk budgeting con presupuestos uniformes 1/n."""
    return risk_budgeting_weights(sigma, None, config, output_volatility=output_volatility, run_logger=run_logger)


def equal_risk_budget_weights(variances: Sequence[float]) -> np.ndarray:
    """
    Inverse-volatility: w_i ∝ 1/σ_i. Es el ERC exacto cuando las correlaciones son nulas.
    """
    v = np.asarray(variances, dtype=float).reshape(-1)
    if v.size == 0 or not np.isfinite(v).all() or (v <= 0.0).any():
        raise InvalidCovarianceError("Variances must be finite and strictly positive")
    inv = 1.0 / np.sqrt(v)
    return inv / inv.sum()


__all__ = [
    "RiskBudgetingConfig", "RiskBudgetingResult",
    "risk_contributions",
    "solve_risk_budgeting_array", "solve_risk_budgeting",
    "risk_budgeting_weights", "equal_risk_contribution_weights",
    "equal_risk_budget_weights",
]
