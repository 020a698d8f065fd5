"""Multigrid hierarchy, V-cycle solver and smoothers."""

from .base import BaseSolver, ConvergenceHistory
from .hierarchy import MultigridHierarchy
from .smoothers import (
    Smoother, JacobiSmoother, GaussSeidelSmoother, RichardsonSmoother, make_smoother
)

__all__ = [
    "BaseSolver",
    "ConvergenceHistory",
    "MultigridHierarchy",
    "Smoother",
    "JacobiSmoother",
    "GaussSeidelSmoother",
    "RichardsonSmoother",
    "make_smoother",
]
