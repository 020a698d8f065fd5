"""Prolongation and restriction operators for multigrid methods."""

from .base import MultigridOperator, adjoint_mismatch
from .transfer import InterpolationOperator, block_interpolation

__all__ = ["MultigridOperator", "InterpolationOperator", "block_interpolation", "adjoint_mismatch"]
