"""Matrix-backed grid transfer operators for multigrid methods."""

import numpy as np
import scipy.linalg
import scipy.sparse as sp
from scipy.sparse.linalg import splu
from typing import Optional
import logging

from .base import MultigridOperator
from ..exceptions import HierarchyError, check_length

logger = logging.getLogger(__name__)


class InterpolationOperator(MultigridOperator):
    """
    Transfer operator defined by a sparse interpolation matrix ``J``.

    ``J`` has one row per fine unknown and one column per coarse unknown.
    An operator created empty (as returned by a domain's
    ``make_new_operator``) is populated by ``Coarsen`` through
    :meth:`set_matrix`.

    The pseudoinverse is applied through a sparse LU factorization of the
    normal matrix ``JᵗJ`` when ``J`` has full column rank, and through a dense
    Moore-Penrose pseudoinverse otherwise. Either is built once, on first use.
    """

    def __init__(self, matrix: Optional[sp.spmatrix] = None, name: str = "Interpolation"):
        """
        Initialize interpolation operator.

        Args:
            matrix: Interpolation matrix J (fine x coarse), or None to populate later
            name: Human-readable name
        """
        super().__init__(name)
        self.matrix: Optional[sp.csr_matrix] = None
        self._transpose: Optional[sp.csr_matrix] = None
        self._normal_lu = None
        self._dense_pinv: Optional[np.ndarray] = None

        if matrix is not None:
            self.set_matrix(matrix)

    def set_matrix(self, matrix) -> None:
        """Populate the operator with interpolation matrix ``J``."""
        matrix = sp.csr_matrix(matrix, dtype=np.float64)
        if matrix.shape[0] < matrix.shape[1]:
            raise ValueError(f"Interpolation matrix must not have more coarse columns "
                             f"than fine rows, got shape {matrix.shape}")

        self.matrix = matrix
        self._transpose = matrix.T.tocsr()
        self._normal_lu = None
        self._dense_pinv = None

        logger.debug(f"{self.name}: interpolation {matrix.shape[0]} <- {matrix.shape[1]}, "
                     f"nnz={matrix.nnz}")

    def is_ready(self) -> bool:
        return self.matrix is not None

    def _require_matrix(self) -> sp.csr_matrix:
        if self.matrix is None:
            raise HierarchyError(f"{self.name} used before coarsening populated it")
        return self.matrix

    @property
    def fine_rows(self) -> int:
        return self._require_matrix().shape[0]

    @property
    def coarse_rows(self) -> int:
        return self._require_matrix().shape[1]

    def prolong(self, v_coarse: np.ndarray) -> np.ndarray:
        """Compute ``J v_coarse``."""
        matrix = self._require_matrix()
        check_length(v_coarse, matrix.shape[1], f"{self.name} coarse vector")
        return matrix @ v_coarse

    def restrict_with_transpose(self, v_fine: np.ndarray) -> np.ndarray:
        """Compute ``Jᵗ v_fine``."""
        matrix = self._require_matrix()
        check_length(v_fine, matrix.shape[0], f"{self.name} fine vector")
        return self._transpose @ v_fine

    def restrict_with_pinv(self, v_fine: np.ndarray) -> np.ndarray:
        """Compute ``J⁺ v_fine``, the least-squares preimage of ``v_fine`` under ``J``."""
        matrix = self._require_matrix()
        check_length(v_fine, matrix.shape[0], f"{self.name} fine vector")

        if self._normal_lu is None and self._dense_pinv is None:
            self._factorize()

        if self._normal_lu is not None:
            return self._normal_lu.solve(self._transpose @ v_fine)
        return self._dense_pinv @ v_fine

    def _factorize(self) -> None:
        normal = (self._transpose @ self.matrix).tocsc()
        try:
            lu = splu(normal)
        except RuntimeError:
            lu = None

        if lu is not None and np.all(np.abs(lu.U.diagonal()) > 1e-12 * max(1.0, abs(normal).max())):
            self._normal_lu = lu
            logger.debug(f"{self.name}: factorized normal matrix for pseudoinverse")
        else:
            logger.info(f"{self.name}: interpolation is rank deficient, "
                        f"using dense pseudoinverse")
            self._dense_pinv = scipy.linalg.pinv(self.matrix.toarray())


def block_interpolation(matrix, components: int) -> sp.csr_matrix:
    """
    Expand a per-vertex interpolation matrix to vector-valued unknowns.

    Unknowns are ordered vertex-major (all components of vertex 0 first), so
    the result is ``J ⊗ I_components``.
    """
    if components < 1:
        raise ValueError(f"components must be positive, got {components}")
    if components == 1:
        return sp.csr_matrix(matrix, dtype=np.float64)
    return sp.kron(matrix, sp.identity(components), format="csr")
