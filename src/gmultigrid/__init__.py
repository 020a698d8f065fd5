"""
Geometric Multigrid

A V-cycle solver framework for linear systems on discretized geometric
domains, where each level only needs a matrix-vector product, with support
for saddle-point systems carrying linear equality constraints.
"""

# Version information
from ._version import __version__, get_version_info

from .exceptions import (
    MultigridError, DimensionMismatchError, SingularSystemError, ConvergenceError,
    HierarchyError, MalformedHierarchyError
)
from .core import (
    VectorMultiplier, MatrixMultiplier, LinearOperatorMultiplier, MultigridDomain, Level
)
from .operators import MultigridOperator, InterpolationOperator, adjoint_mismatch
from .constraints import (
    DomainConstraints, LinearConstraints, NullSpaceProjector, IdentityProjector,
    ConstraintProjector, saddle_matrix
)
from .solvers import (
    MultigridHierarchy, Smoother, JacobiSmoother, GaussSeidelSmoother, RichardsonSmoother
)
from .config import MultigridConfig, HierarchyConfig, SolverConfig
from .domains import ChainDomain

__all__ = [
    "__version__",
    "get_version_info",
    "MultigridError",
    "DimensionMismatchError",
    "SingularSystemError",
    "ConvergenceError",
    "HierarchyError",
    "MalformedHierarchyError",
    "VectorMultiplier",
    "MatrixMultiplier",
    "LinearOperatorMultiplier",
    "MultigridDomain",
    "Level",
    "MultigridOperator",
    "InterpolationOperator",
    "adjoint_mismatch",
    "DomainConstraints",
    "LinearConstraints",
    "NullSpaceProjector",
    "IdentityProjector",
    "ConstraintProjector",
    "saddle_matrix",
    "MultigridHierarchy",
    "Smoother",
    "JacobiSmoother",
    "GaussSeidelSmoother",
    "RichardsonSmoother",
    "MultigridConfig",
    "HierarchyConfig",
    "SolverConfig",
    "ChainDomain",
]
