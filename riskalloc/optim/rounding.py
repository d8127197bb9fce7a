# riskalloc/optim/rounding.py
from __future__ import annotations
from typing import Sequence
import numpy as np


def rounded_weights(weights: Sequence[float], k: int) -> np.ndarray:
    """
    Redondea w (long-only, ∑w=1) a la rejilla {0, 1/k, ..., 1} conservando ∑=1.
    Método del mayor resto (Hamilton): suelo de k·w y las unidades restantes a los
    mayores restos; empates → menor índice.
    """
    if int(k) != k or k < 1:
        raise ValueError("k must be a positive integer")
    k = int(k)
    w = np.asarray(weights, dtype=float).reshape(-1)
    if w.size == 0 or not np.isfinite(w).all() or (w < -1e-12).any():
        raise ValueError("Weights must be finite and non-negative")
    if abs(float(w.sum()) - 1.0) > 1e-8:
        raise ValueError("Weights must sum to 1")

    x = k * np.clip(w, 0.0, None)
    units = np.floor(x + 1e-12)
    frac = np.clip(x - units, 0.0, None)
    left = k - int(units.sum())
    if left > 0:
        # orden estable: a igual resto gana el menor índice
        order = np.argsort(-frac, kind="stable")
        units[order[:left]] += 1.0
    return units / k


__all__ = ["rounded_weights"]
