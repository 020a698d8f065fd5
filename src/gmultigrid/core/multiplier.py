"""Matrix-vector multipliers consumed by the multigrid hierarchy."""

from abc import ABC, abstractmethod
import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import LinearOperator
from typing import Optional, Union, TYPE_CHECKING
import logging

from ..exceptions import check_length

if TYPE_CHECKING:
    from ..constraints.projector import NullSpaceProjector

logger = logging.getLogger(__name__)

MatrixLike = Union[np.ndarray, sp.spmatrix]


class VectorMultiplier(ABC):
    """
    Abstract matrix-vector product ``w = A v``.

    Implementations must be safe to call repeatedly and re-entrantly; the
    hierarchy calls ``multiply`` at least three times per level per V-cycle.
    """

    def __init__(self, name: str = "VectorMultiplier"):
        self.name = name

    @abstractmethod
    def num_rows(self) -> int:
        """Number of rows (and columns) of the square operator."""
        pass

    @abstractmethod
    def _apply(self, v: np.ndarray) -> np.ndarray:
        """Compute the product for a vector of the correct length."""
        pass

    def multiply(self, v: np.ndarray) -> np.ndarray:
        """
        Apply the operator.

        Args:
            v: Input vector of length ``num_rows()``

        Returns:
            New vector ``A v``
        """
        check_length(v, self.num_rows(), f"{self.name} input")
        return np.asarray(self._apply(v), dtype=np.float64).reshape(-1)

    def diagonal(self) -> np.ndarray:
        """Diagonal of ``A``; matrix-free multipliers may not provide it."""
        raise NotImplementedError(f"{self.name} does not expose its diagonal")

    def get_matrix(self) -> Optional[MatrixLike]:
        """Explicit matrix if one is held, otherwise None."""
        return None

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', rows={self.num_rows()})"


class MatrixMultiplier(VectorMultiplier):
    """Multiplier backed by an explicit dense or sparse matrix."""

    def __init__(self, matrix: MatrixLike, name: str = "MatrixMultiplier"):
        super().__init__(name)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ValueError(f"Multiplier matrix must be square, got shape {matrix.shape}")

        if sp.issparse(matrix):
            self.matrix = sp.csr_matrix(matrix, dtype=np.float64)
        else:
            self.matrix = np.asarray(matrix, dtype=np.float64)

    def num_rows(self) -> int:
        return self.matrix.shape[0]

    def _apply(self, v: np.ndarray) -> np.ndarray:
        return self.matrix @ v

    def diagonal(self) -> np.ndarray:
        if sp.issparse(self.matrix):
            return self.matrix.diagonal()
        return np.diag(self.matrix).copy()

    def get_matrix(self) -> MatrixLike:
        return self.matrix


class LinearOperatorMultiplier(VectorMultiplier):
    """
    Matrix-free multiplier wrapping a :class:`scipy.sparse.linalg.LinearOperator`.

    An optional diagonal can be supplied so that Jacobi smoothing remains
    available without materializing the operator.
    """

    def __init__(
        self,
        operator: LinearOperator,
        diagonal: Optional[np.ndarray] = None,
        name: str = "LinearOperatorMultiplier"
    ):
        super().__init__(name)
        if operator.shape[0] != operator.shape[1]:
            raise ValueError(f"Linear operator must be square, got shape {operator.shape}")

        self.operator = operator
        self._diagonal = None if diagonal is None else np.asarray(diagonal, dtype=np.float64)

        if self._diagonal is not None:
            check_length(self._diagonal, operator.shape[0], f"{name} diagonal")

    def num_rows(self) -> int:
        return self.operator.shape[0]

    def _apply(self, v: np.ndarray) -> np.ndarray:
        return self.operator.matvec(v)

    def diagonal(self) -> np.ndarray:
        if self._diagonal is None:
            return super().diagonal()
        return self._diagonal.copy()


class ProjectedMultiplier(VectorMultiplier):
    """
    Computes ``P A P v`` where ``P`` projects onto the null space of a
    level's constraints.

    Smoothing this operator keeps iterates on the constraint manifold and
    makes the smoother's fixed point the constrained solution. The diagonal
    of the unprojected operator is passed through for Jacobi-type smoothers.
    """

    def __init__(self, multiplier: VectorMultiplier, projector: 'NullSpaceProjector'):
        super().__init__(f"Projected[{multiplier.name}]")
        self.base = multiplier
        self.projector = projector
        self._matrix = None

    def num_rows(self) -> int:
        return self.base.num_rows()

    def _apply(self, v: np.ndarray) -> np.ndarray:
        return self.projector.project(self.base.multiply(self.projector.project(v)))

    def diagonal(self) -> np.ndarray:
        return self.base.diagonal()

    def get_matrix(self) -> Optional[MatrixLike]:
        """
        Explicit ``P A P + s (I - P)`` if the base holds a matrix, otherwise None.

        The second term only acts on the range of the constraint rows, so the
        matrix agrees with :meth:`multiply` on the constraint null space but
        stays nonsingular there. ``s`` is the mean diagonal magnitude of ``A``.
        Built on first use and cached.
        """
        if self._matrix is None:
            base = self.base.get_matrix()
            if base is None:
                return None

            n = self.num_rows()
            dense = base.toarray() if sp.issparse(base) else np.asarray(base, dtype=np.float64)
            projection = np.column_stack([self.projector.project(e) for e in np.eye(n)])

            scale = float(np.mean(np.abs(np.diag(dense)))) if n else 0.0
            if scale == 0.0:
                scale = 1.0

            explicit = projection @ dense @ projection + scale * (np.eye(n) - projection)
            explicit = 0.5 * (explicit + explicit.T)
            # roundoff from the projection would otherwise fill pinned rows
            explicit[np.abs(explicit) <= 1e-14 * np.abs(explicit).max(initial=0.0)] = 0.0

            self._matrix = sp.csr_matrix(explicit)
            logger.debug(f"Assembled explicit {self.name}: {self._matrix.nnz} nonzeros")
        return self._matrix
