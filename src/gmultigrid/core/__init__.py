"""Core abstractions for geometric multigrid."""

from .multiplier import (
    VectorMultiplier, MatrixMultiplier, LinearOperatorMultiplier, ProjectedMultiplier
)
from .domain import MultigridDomain, Level

__all__ = [
    "VectorMultiplier",
    "MatrixMultiplier",
    "LinearOperatorMultiplier",
    "ProjectedMultiplier",
    "MultigridDomain",
    "Level",
]
