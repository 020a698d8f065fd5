"""Linear equality constraints ``B x = t``."""

import numpy as np
import scipy.linalg
import scipy.sparse as sp
from typing import List, Optional, Sequence
import logging

from .base import DomainConstraints, Triplet
from ..exceptions import check_length

logger = logging.getLogger(__name__)


class LinearConstraints(DomainConstraints):
    """
    A fixed linear constraint set ``B x = t`` on a tracked state ``x``.

    The state is the current iterate of an outer (e.g. Newton or gradient)
    loop. The residual written by ``negative_constraint_values`` is
    ``-(B x - t)``, so a linear solve against it yields a step that restores
    the constraints. With the default zero state this is just ``t``.
    """

    def __init__(self, matrix, targets: Optional[np.ndarray] = None, name: str = "LinearConstraints"):
        """
        Initialize constraint set.

        Args:
            matrix: Constraint matrix B (C x N), dense or sparse
            targets: Desired values t (length C); zeros if omitted
            name: Human-readable name
        """
        self.name = name
        self.matrix = sp.csr_matrix(matrix, dtype=np.float64)

        n_rows, n_cols = self.matrix.shape
        self.targets = np.zeros(n_rows) if targets is None else np.array(targets, dtype=np.float64)
        check_length(self.targets, n_rows, f"{name} targets")

        self.state = np.zeros(n_cols)

    def num_constraint_rows(self) -> int:
        return self.matrix.shape[0]

    def num_expected_cols(self) -> int:
        return self.matrix.shape[1]

    def add_triplets(self, triplets: List[Triplet]) -> None:
        coo = self.matrix.tocoo()
        triplets.extend(zip(coo.row.tolist(), coo.col.tolist(), coo.data.tolist()))

    def set_target_values(self, targets: np.ndarray) -> None:
        targets[:] = self.targets

    def negative_constraint_values(self, out: np.ndarray, targets: np.ndarray) -> None:
        out[:] = -(self.matrix @ self.state - targets)

    def set_state(self, state: np.ndarray) -> None:
        """Set the iterate the constraint residual is evaluated at."""
        check_length(state, self.num_expected_cols(), f"{self.name} state")
        self.state = np.array(state, dtype=np.float64)

    def residual(self, x: np.ndarray) -> np.ndarray:
        """Compute ``B x - t``."""
        check_length(x, self.num_expected_cols(), f"{self.name} vector")
        return self.matrix @ x - self.targets

    def coarsened(self, interpolation, tolerance: float = 1e-10) -> Optional['LinearConstraints']:
        """
        Constraint set seen by a coarse level: ``(B J) x_c = t``.

        Coarse vectors satisfying it prolong to fine vectors satisfying ``B x = t``.
        Several fine constraints can collapse onto the same coarse unknowns (for
        example, neighbouring pinned vertices between two kept vertices), so the
        rows of ``B J`` are reduced to a linearly independent subset with a
        column-pivoted QR. Kept rows keep their own targets. The null space of
        the coarse set is unchanged by the reduction.

        Args:
            interpolation: Interpolation J (N x N_c), dense or sparse
            tolerance: Relative threshold on the diagonal of R below which rows
                count as dependent

        Returns:
            Coarse constraint set, or None if every row of ``B J`` vanishes
        """
        coarse_matrix = sp.csr_matrix(self.matrix @ interpolation)
        n_rows = coarse_matrix.shape[0]
        if n_rows == 0:
            return LinearConstraints(coarse_matrix, self.targets, self.name)

        _, r, pivots = scipy.linalg.qr(coarse_matrix.toarray().T, mode="economic", pivoting=True)
        magnitudes = np.abs(np.diag(r))
        largest = magnitudes.max(initial=0.0)
        rank = int(np.sum(magnitudes > tolerance * largest)) if largest > 0 else 0

        if rank == 0:
            logger.debug(f"Coarsened {self.name}: every constraint row vanished")
            return None

        keep = np.sort(pivots[:rank])
        if rank < n_rows:
            logger.debug(f"Coarsened {self.name}: dropped {n_rows - rank} dependent rows "
                         f"of {n_rows}")
            coarse_matrix = coarse_matrix[keep]

        coarse = LinearConstraints(coarse_matrix, self.targets[keep], self.name)
        logger.debug(f"Coarsened {self.name}: {self.matrix.shape} -> {coarse.matrix.shape}")
        return coarse

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(name='{self.name}', "
                f"rows={self.num_constraint_rows()}, cols={self.num_expected_cols()})")


def pin_vertices(
    num_vertices: int,
    vertices: Sequence[int],
    values: Optional[Sequence[float]] = None,
    components: int = 1
) -> LinearConstraints:
    """
    Constraint set fixing every component of the given vertices.

    Args:
        num_vertices: Number of vertices in the domain
        vertices: Indices of the pinned vertices
        values: Pinned value per constrained row (len(vertices) * components); zeros if omitted
        components: Unknowns per vertex
    """
    rows, cols = [], []
    for k, vertex in enumerate(vertices):
        if not 0 <= vertex < num_vertices:
            raise ValueError(f"Vertex {vertex} out of range for {num_vertices} vertices")
        for c in range(components):
            rows.append(k * components + c)
            cols.append(vertex * components + c)

    shape = (len(rows), num_vertices * components)
    matrix = sp.coo_matrix((np.ones(len(rows)), (rows, cols)), shape=shape)
    return LinearConstraints(matrix, values, name="PinnedVertices")


def mean_value(num_vertices: int, value: float = 0.0, weights: Optional[np.ndarray] = None) -> LinearConstraints:
    """Single-row constraint fixing the (weighted) mean of a scalar field."""
    if weights is None:
        weights = np.ones(num_vertices)
    weights = np.asarray(weights, dtype=np.float64)
    check_length(weights, num_vertices, "mean weights")

    row = (weights / weights.sum()).reshape(1, -1)
    return LinearConstraints(row, np.array([value]), name="MeanValue")
