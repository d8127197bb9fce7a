# riskalloc/core/errors.py
from __future__ import annotations


class AllocationError(ValueError):
    """Base de los errores de validación de entradas."""


class DimensionError(AllocationError):
    """Formas incompatibles (matriz vs presupuestos, cotas, producto)."""


class InvalidBudgetError(AllocationError):
    """Presupuestos de riesgo no positivos o degenerados."""


class InvalidClusteringError(AllocationError):
    """Partición manual inválida o modo de clustering no soportado."""


class InfeasibleError(AllocationError):
    """No existe punto factible (cotas incompatibles, Σ no PSD)."""


class InvalidCovarianceError(AllocationError):
    """Σ con diagonal no positiva o valores no finitos."""


class ConvergenceWarning(UserWarning):
    """Se agotó max_iter: se devuelve el mejor iterado, no se lanza."""


__all__ = [
    "AllocationError",
    "DimensionError",
    "InvalidBudgetError",
    "InvalidClusteringError",
    "InfeasibleError",
    "InvalidCovarianceError",
    "ConvergenceWarning",
]
