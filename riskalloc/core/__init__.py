
from .errors import (
    AllocationError,
    DimensionError,
    InvalidBudgetError,
    InvalidClusteringError,
    InfeasibleError,
    InvalidCovarianceError,
    ConvergenceWarning,
)
from .matrix import MatrixView, as_matrix_view
from .utils import (
    corr_from_cov,
    project_to_box_simplex,
    clean_returns_matrix,
)
from .guards import (
    box_feasible,
    validate_weights,
    validate_covariance,
    normalize_budgets,
    resolve_bounds,
    validate_clusters,
    ClusterValidation,
)
from .logger import JsonRunLogger
