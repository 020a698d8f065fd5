"""One-dimensional chain (polyline) domain with a Laplacian-type operator."""

import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import aslinearoperator
from typing import Optional
import logging

from ..constraints.base import saddle_matrix
from ..constraints.linear import LinearConstraints
from ..constraints.projector import NullSpaceProjector, projector_for
from ..core.domain import MultigridDomain
from ..core.multiplier import MatrixMultiplier, LinearOperatorMultiplier, VectorMultiplier
from ..operators.transfer import InterpolationOperator, block_interpolation

logger = logging.getLogger(__name__)


class ChainDomain(MultigridDomain):
    """
    A chain of vertices on a line carrying ``components`` unknowns each.

    The operator is the edge-length weighted graph Laplacian plus an
    optional lumped-mass shift. With ``boundary='dirichlet'`` both ends see
    a ghost vertex held at zero, which makes the operator positive definite;
    with ``boundary='neumann'`` it is singular unless ``shift > 0`` or a
    constraint (e.g. a fixed mean) removes the constant mode.

    Coarsening keeps every other vertex plus both endpoints, interpolates
    linearly in position, forms the Galerkin operator ``Jᵗ A J`` and
    restricts constraints to ``B J``.
    """

    def __init__(
        self,
        positions: np.ndarray,
        components: int = 1,
        boundary: str = "dirichlet",
        shift: float = 0.0,
        constraints: Optional[LinearConstraints] = None,
        matrix_free: bool = False,
        matrix=None
    ):
        """
        Initialize chain domain.

        Args:
            positions: Strictly increasing vertex coordinates
            components: Unknowns per vertex
            boundary: 'dirichlet' or 'neumann'
            shift: Lumped-mass shift added to the Laplacian
            constraints: Optional linear constraints on all unknowns
            matrix_free: Expose the operator only through a LinearOperator
            matrix: Explicit operator, used instead of assembling one
        """
        positions = np.asarray(positions, dtype=np.float64)
        if positions.ndim != 1 or positions.size < 2:
            raise ValueError("Chain needs at least 2 vertex positions")
        if np.any(np.diff(positions) <= 0):
            raise ValueError("Chain positions must be strictly increasing")
        if components < 1:
            raise ValueError(f"components must be positive, got {components}")
        if boundary not in ["dirichlet", "neumann"]:
            raise ValueError(f"Unknown boundary type: {boundary}")

        self.positions = positions
        self.components = components
        self.boundary = boundary
        self.shift = shift
        self.matrix_free = matrix_free

        if matrix is None:
            matrix = self._assemble()
        self.matrix = sp.csr_matrix(matrix, dtype=np.float64)

        n_rows = self.num_rows()
        if self.matrix.shape != (n_rows, n_rows):
            raise ValueError(f"Operator shape {self.matrix.shape} does not match {n_rows} rows")

        if constraints is not None and constraints.num_expected_cols() != n_rows:
            raise ValueError(f"Constraints expect {constraints.num_expected_cols()} columns, "
                             f"domain has {n_rows} rows")
        self.constraints = constraints

        if matrix_free:
            self._multiplier: VectorMultiplier = LinearOperatorMultiplier(
                aslinearoperator(self.matrix), diagonal=self.matrix.diagonal(),
                name=f"Chain[{n_rows}]")
        else:
            self._multiplier = MatrixMultiplier(self.matrix, name=f"Chain[{n_rows}]")

        self._projector = projector_for(constraints, n_rows)

    @classmethod
    def uniform(cls, num_vertices: int, length: float = 1.0, **kwargs) -> 'ChainDomain':
        """Chain of equally spaced vertices on ``[0, length]``."""
        return cls(np.linspace(0.0, length, num_vertices), **kwargs)

    def _assemble(self) -> sp.csr_matrix:
        n = self.positions.size
        weights = 1.0 / np.diff(self.positions)

        diag = np.zeros(n)
        diag[:-1] += weights
        diag[1:] += weights
        if self.boundary == "dirichlet":
            diag[0] += weights[0]
            diag[-1] += weights[-1]

        if self.shift:
            lengths = np.diff(self.positions)
            mass = np.zeros(n)
            mass[:-1] += 0.5 * lengths
            mass[1:] += 0.5 * lengths
            diag += self.shift * mass

        laplacian = sp.diags([-weights, diag, -weights], [-1, 0, 1], format="csr")
        return block_interpolation(laplacian, self.components)

    def _interpolation(self, keep: np.ndarray) -> sp.csr_matrix:
        """Linear interpolation from the kept vertices to all vertices."""
        n = self.positions.size
        rows, cols, vals = [], [], []

        for k in range(len(keep) - 1):
            left, right = keep[k], keep[k + 1]
            span = self.positions[right] - self.positions[left]
            for i in range(left, right):
                t = (self.positions[i] - self.positions[left]) / span
                rows.extend([i, i])
                cols.extend([k, k + 1])
                vals.extend([1.0 - t, t])

        rows.append(n - 1)
        cols.append(len(keep) - 1)
        vals.append(1.0)

        matrix = sp.coo_matrix((vals, (rows, cols)), shape=(n, len(keep))).tocsr()
        matrix.eliminate_zeros()
        return matrix

    def coarsen(self, operator: InterpolationOperator) -> 'ChainDomain':
        n = self.positions.size
        if n < 3:
            raise ValueError(f"Cannot coarsen a chain of {n} vertices")

        keep = np.arange(0, n, 2)
        if keep[-1] != n - 1:
            keep = np.append(keep, n - 1)

        interpolation = block_interpolation(self._interpolation(keep), self.components)
        operator.set_matrix(interpolation)

        coarse_matrix = (interpolation.T @ self.matrix @ interpolation).tocsr()
        coarse_constraints = (self.constraints.coarsened(interpolation)
                              if self.constraints is not None else None)

        logger.debug(f"Coarsened chain: {n} -> {keep.size} vertices")
        return ChainDomain(
            self.positions[keep],
            components=self.components,
            boundary=self.boundary,
            shift=self.shift,
            constraints=coarse_constraints,
            matrix_free=self.matrix_free,
            matrix=coarse_matrix,
        )

    def get_multiplier(self) -> VectorMultiplier:
        return self._multiplier

    def get_full_matrix(self) -> np.ndarray:
        if self.constraints is not None and self.constraints.num_constraint_rows() > 0:
            return saddle_matrix(self.matrix, self.constraints)
        return self.matrix.toarray()

    def num_vertices(self) -> int:
        return self.positions.size

    def num_rows(self) -> int:
        return self.positions.size * self.components

    def make_new_operator(self) -> InterpolationOperator:
        return InterpolationOperator(name=f"Interpolation[{self.num_vertices()}]")

    def get_constraint_projector(self) -> NullSpaceProjector:
        return self._projector

    def get_constraints(self) -> Optional[LinearConstraints]:
        return self.constraints
