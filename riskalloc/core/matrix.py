# riskalloc/core/matrix.py
from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from .errors import DimensionError
from .utils import corr_from_cov

MatrixLike = Union["MatrixView", np.ndarray, pd.DataFrame, pd.Series, Sequence[Sequence[float]], Sequence[float]]


class MatrixView:
    """
    Vista inmutable de una matriz densa (n×m) o de un vector columna (n×1).

    - Acepta listas de listas, np.ndarray, pd.DataFrame / pd.Series o otra MatrixView.
    - Un vector 1D se interpreta como columna n×1.
    - Guarda una copia de solo lectura: el array del caller nunca se toca.
    - Índices 0-based (convención Python); los índices 1-based del dominio
      sólo aparecen en la API de clustering.

    Todas las operaciones devuelven una MatrixView nueva (o un escalar).
    """

    __slots__ = ("_a", "_labels")

    def __init__(self, data: MatrixLike, labels: Optional[Sequence[str]] = None):
        if isinstance(data, MatrixView):
            arr = data._a
            if labels is None:
                labels = data._labels
        else:
            if isinstance(data, pd.DataFrame):
                if labels is None:
                    labels = [str(c) for c in data.columns]
                data = data.to_numpy(dtype=float)
            elif isinstance(data, pd.Series):
                if labels is None:
                    labels = [str(c) for c in data.index]
                data = data.to_numpy(dtype=float)
            try:
                arr = np.array(data, dtype=float)
            except (TypeError, ValueError):
                raise DimensionError("Matrix rows must all have the same length")

        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        if arr.ndim != 2:
            raise DimensionError(f"Expected a 2D matrix or a 1D vector, got ndim={arr.ndim}")
        if arr.size == 0:
            raise DimensionError("Empty matrix")

        arr = np.array(arr, dtype=float, copy=True)
        arr.setflags(write=False)
        self._a = arr

        if labels is not None:
            labels = [str(x) for x in labels]
            if len(labels) != arr.shape[1] and not (arr.shape[1] == 1 and len(labels) == arr.shape[0]):
                raise DimensionError("labels length does not match the matrix columns")
        self._labels = labels

    # ── accesores ────────────────────────────────────────────────────────────

    @property
    def shape(self) -> tuple[int, int]:
        return self._a.shape

    @property
    def nrows(self) -> int:
        return self._a.shape[0]

    @property
    def ncols(self) -> int:
        return self._a.shape[1]

    @property
    def values(self) -> np.ndarray:
        """Array de solo lectura (no copia)."""
        return self._a

    @property
    def labels(self) -> Optional[list[str]]:
        return None if self._labels is None else list(self._labels)

    def get(self, i: int, j: int = 0) -> float:
        self._check_index(i, self.nrows, "row")
        self._check_index(j, self.ncols, "column")
        return float(self._a[i, j])

    def row(self, i: int) -> "MatrixView":
        self._check_index(i, self.nrows, "row")
        return MatrixView(self._a[i:i + 1, :])

    def column(self, j: int) -> "MatrixView":
        self._check_index(j, self.ncols, "column")
        return MatrixView(self._a[:, j:j + 1])

    def diagonal(self) -> "MatrixView":
        if not self.is_square():
            raise DimensionError(f"Diagonal requires a square matrix, got {self.shape}")
        return MatrixView(np.diag(self._a).copy())

    def to_vector(self) -> np.ndarray:
        """Copia 1D de un vector fila/columna."""
        if not self.is_vector():
            raise DimensionError(f"Expected a vector, got shape {self.shape}")
        return self._a.reshape(-1).copy()

    # ── álgebra ──────────────────────────────────────────────────────────────

    def transpose(self) -> "MatrixView":
        labels = self._labels if self.is_square() else None
        return MatrixView(self._a.T, labels=labels)

    def multiply(self, other: MatrixLike) -> "MatrixView":
        B = other if isinstance(other, MatrixView) else MatrixView(other)
        if self.ncols != B.nrows:
            raise DimensionError(f"Cannot multiply {self.shape} by {B.shape}")
        return MatrixView(self._a @ B._a)

    def submatrix(self, rows: Sequence[int], cols: Optional[Sequence[int]] = None) -> "MatrixView":
        """Extrae filas/columnas (0-based). Si cols es None, usa las mismas que rows."""
        r = np.asarray(rows, dtype=int)
        c = r if cols is None else np.asarray(cols, dtype=int)
        if r.size == 0 or c.size == 0:
            raise DimensionError("Empty submatrix selection")
        if r.min() < 0 or r.max() >= self.nrows or c.min() < 0 or c.max() >= self.ncols:
            raise DimensionError("Submatrix indices out of bounds")
        labels = [self._labels[k] for k in c] if self._labels is not None else None
        return MatrixView(self._a[np.ix_(r, c)], labels=labels)

    # ── propiedades de Σ ─────────────────────────────────────────────────────

    def is_square(self) -> bool:
        return self.nrows == self.ncols

    def is_vector(self) -> bool:
        return self.nrows == 1 or self.ncols == 1

    def is_symmetric(self, tol: float = 1e-10) -> bool:
        if not self.is_square():
            return False
        return bool(np.allclose(self._a, self._a.T, rtol=0.0, atol=tol))

    def min_eigenvalue(self) -> float:
        if not self.is_square():
            raise DimensionError(f"Eigenvalues require a square matrix, got {self.shape}")
        S = 0.5 * (self._a + self._a.T)
        return float(np.min(np.linalg.eigvalsh(S)))

    def to_correlation(self) -> "MatrixView":
        """ρ_ij = Σ_ij / (σ_i σ_j), recortada a [-1, 1] y simetrizada."""
        if not self.is_square():
            raise DimensionError(f"Correlation requires a square matrix, got {self.shape}")
        return MatrixView(corr_from_cov(self._a), labels=self._labels)

    # ── misc ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _check_index(k: int, size: int, what: str) -> None:
        if not 0 <= k < size:
            raise DimensionError(f"{what} index {k} out of range [0, {size})")

    def __repr__(self) -> str:
        return f"MatrixView(shape={self.shape})"


def as_matrix_view(x: MatrixLike) -> MatrixView:
    return x if isinstance(x, MatrixView) else MatrixView(x)


__all__ = ["MatrixView", "MatrixLike", "as_matrix_view"]
