# riskalloc/viz/plot_utils.py
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import polars as pl
import plotly.graph_objects as go

from ..core.guards import validate_clusters
from ..core.errors import InvalidClusteringError
from ..core.utils import corr_from_cov, symmetrize
from ..optim.cluster_risk_parity import ClusterRiskParityResult
from ..optim.risk_budgeting import risk_contributions


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────

ArrayLike = Union[np.ndarray, Sequence[float], pd.Series]


def _to_numpy_matrix(x: Union[np.ndarray, pl.DataFrame, pd.DataFrame]) -> np.ndarray:
    if isinstance(x, np.ndarray):
        return x
    if isinstance(x, pl.DataFrame):
        return x.to_numpy()
    if isinstance(x, pd.DataFrame):
        return x.to_numpy(dtype=float)
    raise TypeError("Expected np.ndarray, polars.DataFrame or pandas.DataFrame")


def _weights_and_labels(weights: ArrayLike, labels: Optional[Sequence[str]]) -> Tuple[np.ndarray, List[str]]:
    # pd.Series etiquetada (salida de los solvers con DataFrame) → usa su índice
    if isinstance(weights, pd.Series) and labels is None:
        labels = [str(i) for i in weights.index]
    w = np.asarray(weights, dtype=float)
    if w.ndim != 1:
        raise ValueError("weights must be 1D")
    if labels is None:
        labels = [f"A{i + 1}" for i in range(w.size)]
    if len(w) != len(labels):
        raise ValueError("weights and labels must align")
    return w, list(labels)


def cluster_order(clusters: Sequence[Sequence[int]]) -> np.ndarray:
    """Orden 0-based de los activos concatenando los clusters (1-based) tal cual vienen."""
    return np.asarray([i - 1 for c in clusters for i in c], dtype=int)


# ──────────────────────────────────────────────────────────────────────────────
# 1) Correlation Heatmap (ordenado por clusters)
# ──────────────────────────────────────────────────────────────────────────────

def corr_heatmap(
    Sigma_or_Corr: Union[np.ndarray, pl.DataFrame, pd.DataFrame],
    labels: Optional[Sequence[str]] = None,
    *,
    is_cov: bool = True,
    clusters: Optional[Sequence[Sequence[int]]] = None,
    zlim: Tuple[float, float] = (-1.0, 1.0),
    title: str = "Correlation Heatmap",
) -> go.Figure:
    """
    Heatmap de correlación.
    - Acepta Σ o ρ. Si is_cov=True, convierte a ρ primero.
    - Con `clusters` (partición 1-based, p.ej. la de FTCA) reordena los activos
      por cluster y recuadra cada bloque.
    """
    M = _to_numpy_matrix(Sigma_or_Corr)
    if labels is None and isinstance(Sigma_or_Corr, pd.DataFrame):
        labels = [str(c) for c in Sigma_or_Corr.columns]
    Corr = corr_from_cov(M) if is_cov else np.clip(symmetrize(M), -1.0, 1.0)

    n = Corr.shape[0]
    if labels is None:
        labels = [f"A{i + 1}" for i in range(n)]

    if clusters is not None:
        check = validate_clusters(clusters, n)
        if not check.ok:
            raise InvalidClusteringError(check.error)
        order = cluster_order(clusters)
        Corr_ord = Corr[np.ix_(order, order)]
        labels_ord = [labels[i] for i in order]
    else:
        Corr_ord, labels_ord = Corr, list(labels)

    fig = go.Figure(
        data=go.Heatmap(
            z=Corr_ord,
            x=labels_ord,
            y=labels_ord,
            zmin=zlim[0],
            zmax=zlim[1],
            colorbar=dict(title="ρ"),
            hovertemplate="x=%{x}<br>y=%{y}<br>ρ=%{z:.3f}<extra></extra>",
        )
    )
    if clusters is not None:
        start = 0
        for c in clusters:
            end = start + len(c)
            fig.add_shape(
                type="rect",
                x0=start - 0.5, x1=end - 0.5, y0=start - 0.5, y1=end - 0.5,
                line=dict(width=2, color="black"),
            )
            start = end
    fig.update_layout(
        title=title,
        xaxis=dict(tickangle=45, automargin=True),
        yaxis=dict(autorange="reversed"),
        margin=dict(l=60, r=20, t=60, b=60),
    )
    return fig


# ──────────────────────────────────────────────────────────────────────────────
# 2) Weights Barplot
# ──────────────────────────────────────────────────────────────────────────────

def weights_bar(
    weights: ArrayLike,
    labels: Optional[Sequence[str]] = None,
    *,
    sort: bool = True,
    topn: Optional[int] = None,
    horizontal: bool = True,
    title: str = "Portfolio Weights",
) -> go.Figure:
    """
    Barras de pesos (ndarray o la pd.Series etiquetada que devuelven los solvers).
    """
    w, labels = _weights_and_labels(weights, labels)

    idx = np.arange(len(w))
    if sort:
        idx = np.argsort(w, kind="stable")
    if topn is not None:
        idx = idx[-topn:]

    w_plot = w[idx]
    l_plot = [labels[i] for i in idx]

    if horizontal:
        fig = go.Figure(go.Bar(x=w_plot, y=l_plot, orientation="h", hovertemplate="%{y}: %{x:.2%}<extra></extra>"))
        fig.update_layout(xaxis_tickformat=".0%", title=title, margin=dict(l=80, r=20, t=60, b=40))
    else:
        fig = go.Figure(go.Bar(x=l_plot, y=w_plot, hovertemplate="%{x}: %{y:.2%}<extra></extra>"))
        fig.update_layout(yaxis_tickformat=".0%", title=title, margin=dict(l=40, r=20, t=60, b=80))
    return fig


# ──────────────────────────────────────────────────────────────────────────────
# 3) Risk Contributions bar
# ──────────────────────────────────────────────────────────────────────────────

def risk_contributions_bar(
    weights: ArrayLike,
    Sigma: Union[np.ndarray, pd.DataFrame],
    labels: Optional[Sequence[str]] = None,
    *,
    normalize: bool = True,
    budgets: Optional[ArrayLike] = None,
    title: str = "Risk Contributions",
) -> go.Figure:
    """
    Barras de RC_i = w_i (Σw)_i (en % del riesgo total si normalize=True).
    Con `budgets` añade el presupuesto objetivo como marcador para comparar.
    """
    w, labels = _weights_and_labels(weights, labels)
    S = _to_numpy_matrix(Sigma)
    if S.shape != (w.size, w.size):
        raise ValueError("Sigma must be (N,N) aligned with weights")
    rc = risk_contributions(w, S, normalize=normalize)

    fig = go.Figure(go.Bar(x=rc, y=labels, orientation="h", name="RC",
                           hovertemplate="%{y}: %{x:.4f}<extra></extra>"))
    if budgets is not None:
        b = np.asarray(budgets, dtype=float)
        if b.shape != w.shape:
            raise ValueError("budgets must align with weights")
        fig.add_trace(go.Scatter(x=b / b.sum() if normalize else b, y=labels, mode="markers", name="Budget",
                                 marker=dict(size=10, symbol="diamond")))
    fig.update_layout(
        title=title, margin=dict(l=80, r=20, t=60, b=40),
        xaxis_title="Contribution", yaxis_title="",
        xaxis_tickformat=".0%" if normalize else None,
    )
    return fig


# ──────────────────────────────────────────────────────────────────────────────
# 4) Cluster Risk Parity: reparto por cluster (barras apiladas)
# ──────────────────────────────────────────────────────────────────────────────

def cluster_allocation_bar(
    result: ClusterRiskParityResult,
    labels: Optional[Sequence[str]] = None,
    *,
    title: str = "Cluster Risk Parity Allocation",
) -> go.Figure:
    """
    Una barra por cluster (peso total c_k), apilando el peso de cada activo miembro.
    """
    if labels is None:
        labels = result.labels
    w, labels = _weights_and_labels(result.weights, labels)
    names = [f"C{k + 1}" for k in range(len(result.clusters))]

    fig = go.Figure()
    for k, members in enumerate(result.clusters):
        for i in members:
            fig.add_trace(go.Bar(
                x=[names[k]], y=[w[i - 1]], name=labels[i - 1],
                hovertemplate=f"{labels[i - 1]}: %{{y:.2%}}<extra></extra>",
            ))
    fig.update_layout(
        barmode="stack", title=title, yaxis_tickformat=".0%",
        margin=dict(l=60, r=20, t=60, b=40), showlegend=True,
    )
    return fig


__all__ = [
    "cluster_order",
    "corr_heatmap",
    "weights_bar",
    "risk_contributions_bar",
    "cluster_allocation_bar",
]
