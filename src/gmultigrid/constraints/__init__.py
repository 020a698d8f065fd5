"""Constraint blocks and null-space projectors for saddle-point problems."""

from .base import DomainConstraints, saddle_matrix
from .linear import LinearConstraints, pin_vertices, mean_value
from .projector import NullSpaceProjector, IdentityProjector, ConstraintProjector, projector_for

__all__ = [
    "DomainConstraints",
    "saddle_matrix",
    "LinearConstraints",
    "pin_vertices",
    "mean_value",
    "NullSpaceProjector",
    "IdentityProjector",
    "ConstraintProjector",
    "projector_for",
]
