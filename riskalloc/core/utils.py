from __future__ import annotations
import numpy as np
import pandas as pd
import polars as pl
from typing import Optional, Sequence, Union

ArrayLike = Union[np.ndarray, Sequence[float], float]

# ─────────────────────────────────────────────────────────
# Matrices de covarianza: simetría y correlación
# ─────────────────────────────────────────────────────────
def symmetrize(S: np.ndarray) -> np.ndarray:
    S = np.asarray(S, dtype=float)
    return 0.5 * (S + S.T)


def corr_from_cov(S: np.ndarray) -> np.ndarray:
    d = np.sqrt(np.clip(np.diag(S), 1e-16, None))
    R = (S / d[:, None]) / d[None, :]
    R = np.clip(0.5 * (R + R.T), -1.0, 1.0)
    np.fill_diagonal(R, 1.0)
    return R


# ─────────────────────────────────────────────────────────
# Proyección caja + {sum = total} via bisección del multiplicador
# ─────────────────────────────────────────────────────────
def _sum_clipped(v: np.ndarray, tau: float, lo: np.ndarray, hi: np.ndarray) -> float:
    return float(np.clip(v - tau, lo, hi).sum())


def project_to_box_simplex(
    v: np.ndarray,
    w_min: ArrayLike = 0.0,
    w_max: ArrayLike = 1.0,
    total: float = 1.0,
    tol: float = 1e-14,
    max_iter: int = 200,
) -> np.ndarray:
    """
    Proyecta v a la intersección {sum=total} ∩ {w_min ≤ w_i ≤ w_max} por bisección del lagrangiano.
    Cotas escalares o por activo. Requisito: caja factible (lo comprueba el caller con box_feasible).

    Estrategia:
      hallamos tau tal que sum(clip(v - tau, w_min, w_max)) = total, y el residuo
      numérico de la bisección se reparte en orden de índice entre los activos con holgura,
      de modo que la suma es exacta y la caja se respeta.
    """
    v = np.asarray(v, dtype=float).reshape(-1)
    n = v.size
    if n == 0:
        return v
    lo = np.broadcast_to(np.asarray(w_min, dtype=float), (n,))
    hi = np.broadcast_to(np.asarray(w_max, dtype=float), (n,))

    # Cotas iniciales para tau: en tau_lo todo queda en hi, en tau_hi todo en lo
    tau_lo = float(np.min(v - hi)) - 1.0
    tau_hi = float(np.max(v - lo)) + 1.0

    for _ in range(max_iter):
        tau = 0.5 * (tau_lo + tau_hi)
        f_tau = _sum_clipped(v, tau, lo, hi) - total
        if abs(f_tau) <= tol:
            break
        if f_tau > 0.0:
            tau_lo = tau
        else:
            tau_hi = tau

    x = np.clip(v - tau, lo, hi)

    # Ajuste final del residuo (suma exacta sin salir de la caja)
    resid = total - float(x.sum())
    for k in range(n):
        if resid == 0.0:
            break
        if resid > 0.0:
            step = min(resid, hi[k] - x[k])
        else:
            step = -min(-resid, x[k] - lo[k])
        x[k] += step
        resid -= step
    return x


# ─────────────────────────────────────────────────────────
# Limpieza de retornos (Polars)
# ─────────────────────────────────────────────────────────
def clean_returns_matrix(returns_wide: pl.DataFrame) -> pl.DataFrame:
    """
    Elimina columnas totalmente vacías y filas con NaN/Inf.
    Asume que si existe, la columna temporal se llama 'date'.
    """
    df = returns_wide
    # Asegura tipo float
    cols_float = [c for c in df.columns if c != "date"]
    df = df.with_columns([pl.col(c).cast(pl.Float64) for c in cols_float])

    # Quita columnas completamente nulas
    keep = ["date"] if "date" in df.columns else []
    for c in cols_float:
        n_null = df.select(pl.col(c).is_null().sum()).item()
        if n_null < df.height:
            keep.append(c)
    df = df.select(keep)

    # Filtro filas con finitos en todas las series numéricas
    numeric_cols = [c for c in df.columns if c != "date"]
    if numeric_cols:
        df = df.filter(pl.all_horizontal([pl.col(c).is_finite().fill_null(False) for c in numeric_cols]))
    return df


# ─────────────────────────────────────────────────────────
# Salida: ndarray o pd.Series etiquetada
# ─────────────────────────────────────────────────────────
def as_weights_output(w: np.ndarray, labels: Optional[Sequence[str]] = None) -> Union[np.ndarray, pd.Series]:
    """
    Si la entrada venía etiquetada (pd.DataFrame), devuelve pd.Series con los mismos tickers.
    """
    w = np.asarray(w, dtype=float)
    if labels is None:
        return w
    return pd.Series(w, index=list(labels), name="weight")
