"""Constraint blocks for saddle-point multigrid problems."""

from abc import ABC, abstractmethod
import numpy as np
import scipy.sparse as sp
from typing import List, Tuple
import logging

from ..exceptions import DimensionMismatchError, check_length

logger = logging.getLogger(__name__)

Triplet = Tuple[int, int, float]


class DomainConstraints(ABC):
    """
    Interface for a linear constraint set that can be part of a saddle problem.

    A saddle matrix has the block form::

        [ A    Bᵗ ]
        [ B    0  ]

    where ``A`` is the kernel of the problem and ``B`` (C x N) holds all
    constraint rows. Subclasses implement five operations:

    - ``num_constraint_rows()``: C, the number of rows the constraints occupy
    - ``num_expected_cols()``: N, the number of degrees of freedom
    - ``add_triplets(triplets)``: append the ``(row, col, value)`` entries of B
    - ``set_target_values(targets)``: write the desired value of each constraint
    - ``negative_constraint_values(out, targets)``: write the negated
      constraint residual for the current state

    Everything else here is built on those five.
    """

    @abstractmethod
    def num_constraint_rows(self) -> int:
        pass

    @abstractmethod
    def num_expected_cols(self) -> int:
        pass

    @abstractmethod
    def add_triplets(self, triplets: List[Triplet]) -> None:
        pass

    @abstractmethod
    def set_target_values(self, targets: np.ndarray) -> None:
        pass

    @abstractmethod
    def negative_constraint_values(self, out: np.ndarray, targets: np.ndarray) -> None:
        pass

    def saddle_num_rows(self) -> int:
        """Dimension of the full square saddle matrix."""
        return self.num_constraint_rows() + self.num_expected_cols()

    def _collect_triplets(self) -> List[Triplet]:
        triplets: List[Triplet] = []
        self.add_triplets(triplets)

        n_rows = self.num_constraint_rows()
        n_cols = self.num_expected_cols()
        for row, col, _ in triplets:
            if not (0 <= row < n_rows and 0 <= col < n_cols):
                raise DimensionMismatchError(
                    "constraint triplet", n_rows, row,
                    message=(f"constraint triplet ({row}, {col}) out of range: rows must lie in "
                             f"[0, {n_rows}) and columns in [0, {n_cols})"))
        return triplets

    def fill_constraint_matrix(self) -> sp.csr_matrix:
        """
        Assemble the constraint block B alone, without offsets.

        Returns:
            Sparse matrix of shape (num_constraint_rows, num_expected_cols)
        """
        triplets = self._collect_triplets()
        shape = (self.num_constraint_rows(), self.num_expected_cols())

        if not triplets:
            return sp.csr_matrix(shape, dtype=np.float64)

        rows, cols, vals = zip(*triplets)
        # duplicate entries are summed, matching triplet assembly semantics
        return sp.coo_matrix((vals, (rows, cols)), shape=shape, dtype=np.float64).tocsr()

    def fill_dense_block(self, matrix: np.ndarray) -> None:
        """
        Write B and Bᵗ into a pre-sized dense saddle matrix.

        B goes into the lower-left block starting at row ``num_expected_cols()``,
        Bᵗ into the upper-right block starting at the same column. The kernel
        block and the lower-right zero block are left untouched.
        """
        size = self.saddle_num_rows()
        if matrix.shape != (size, size):
            raise DimensionMismatchError("dense saddle matrix", size,
                                         matrix.shape[0] if matrix.shape[0] != size else matrix.shape[1])

        offset = self.num_expected_cols()
        block = self.fill_constraint_matrix().toarray()

        matrix[offset:, :offset] = block
        matrix[:offset, offset:] = block.T

    def update_target_values(self, targets: np.ndarray) -> np.ndarray:
        """
        Refresh ``targets`` with the current desired constraint values.

        A vector of the wrong length is replaced by zeros of length C first,
        so callers should use the returned array.
        """
        n_constrs = self.num_constraint_rows()
        if targets is None or np.asarray(targets).shape != (n_constrs,):
            targets = np.zeros(n_constrs)

        self.set_target_values(targets)
        return targets

    def fill_constraint_values(self, b: np.ndarray, targets: np.ndarray, offset: int) -> float:
        """
        Write the negated constraint residual into ``b[offset:offset + C]``.

        Returns:
            Infinity norm of the written block
        """
        n_constrs = self.num_constraint_rows()
        check_length(targets, n_constrs, "constraint targets")
        if offset < 0 or offset + n_constrs > b.shape[0]:
            raise DimensionMismatchError("constraint rows in right-hand side",
                                         offset + n_constrs, b.shape[0])

        values = np.zeros(n_constrs)
        self.negative_constraint_values(values, targets)
        b[offset:offset + n_constrs] = values

        return float(np.max(np.abs(values))) if n_constrs > 0 else 0.0


def saddle_matrix(kernel, constraints: DomainConstraints) -> np.ndarray:
    """
    Assemble the dense saddle matrix ``[[A, Bᵗ], [B, 0]]``.

    Args:
        kernel: Dense or sparse N x N matrix A
        constraints: Constraint set with N expected columns

    Returns:
        Dense symmetric indefinite matrix of size N + C
    """
    n = constraints.num_expected_cols()
    if kernel.shape != (n, n):
        raise DimensionMismatchError("saddle kernel block", n, kernel.shape[0])

    full = np.zeros((constraints.saddle_num_rows(), constraints.saddle_num_rows()))
    full[:n, :n] = kernel.toarray() if sp.issparse(kernel) else kernel
    constraints.fill_dense_block(full)

    logger.debug(f"Assembled saddle matrix: N={n}, C={constraints.num_constraint_rows()}")
    return full
