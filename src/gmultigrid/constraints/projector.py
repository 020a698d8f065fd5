"""Null-space projectors keeping iterates consistent with a constraint set."""

from abc import ABC, abstractmethod
import numpy as np
import scipy.linalg
import scipy.sparse as sp
from typing import Optional
import logging

from ..exceptions import SingularSystemError, check_length

logger = logging.getLogger(__name__)


class NullSpaceProjector(ABC):
    """
    Abstract projector associated with a constraint matrix ``B``.

    Implementations may cache a factorization at construction time but must
    not mutate state while projecting, so a hierarchy can be solved
    re-entrantly.
    """

    def __init__(self, name: str = "NullSpaceProjector"):
        self.name = name

    @property
    @abstractmethod
    def num_constraints(self) -> int:
        """Number of constraint rows handled by this projector."""
        pass

    @abstractmethod
    def project(self, v: np.ndarray) -> np.ndarray:
        """Project ``v`` onto the null space of ``B``."""
        pass

    @abstractmethod
    def particular_solution(self, values: np.ndarray) -> np.ndarray:
        """Minimum-norm ``x`` with ``B x = values``."""
        pass

    @abstractmethod
    def lagrange_multipliers(self, residual: np.ndarray) -> np.ndarray:
        """Least-squares ``λ`` with ``Bᵗ λ ≈ residual``."""
        pass

    def project_onto_constraints(self, v: np.ndarray, values: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Nearest point to ``v`` satisfying ``B x = values``.

        With ``values`` omitted this is the plain null-space projection.
        """
        if values is None:
            return self.project(v)
        x_p = self.particular_solution(values)
        return x_p + self.project(v - x_p)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', constraints={self.num_constraints})"


class IdentityProjector(NullSpaceProjector):
    """Projector of an unconstrained level; every operation is a no-op."""

    def __init__(self, num_rows: Optional[int] = None):
        super().__init__("Identity")
        self.num_rows = num_rows

    @property
    def num_constraints(self) -> int:
        return 0

    def project(self, v: np.ndarray) -> np.ndarray:
        if self.num_rows is not None:
            check_length(v, self.num_rows, "projected vector")
        return np.array(v, dtype=np.float64)

    def particular_solution(self, values: np.ndarray) -> np.ndarray:
        check_length(values, 0, "constraint values")
        if self.num_rows is None:
            raise ValueError("Identity projector without a row count has no particular solution")
        return np.zeros(self.num_rows)

    def lagrange_multipliers(self, residual: np.ndarray) -> np.ndarray:
        return np.zeros(0)


class ConstraintProjector(NullSpaceProjector):
    """
    Orthogonal projector ``P = I - Bᵗ (B Bᵗ)⁻¹ B``.

    ``B Bᵗ`` is Cholesky-factorized once on construction; a rank-deficient
    constraint matrix is rejected there rather than at solve time.
    """

    def __init__(self, matrix, name: str = "ConstraintProjector"):
        """
        Initialize projector.

        Args:
            matrix: Constraint matrix B (C x N), dense or sparse
            name: Human-readable name
        """
        super().__init__(name)
        self.matrix = sp.csr_matrix(matrix, dtype=np.float64)
        self._transpose = self.matrix.T.tocsr()

        gram = (self.matrix @ self._transpose).toarray()
        try:
            self._factor = scipy.linalg.cho_factor(gram, lower=True)
        except np.linalg.LinAlgError as e:
            raise SingularSystemError(f"{name}: constraint rows are linearly dependent ({e})") from e

        diag = np.abs(np.diag(self._factor[0]))
        if diag.size and diag.min() < 1e-10 * max(1.0, diag.max()):
            raise SingularSystemError(f"{name}: constraint rows are numerically dependent",
                                      condition_number=(diag.max() / diag.min()) ** 2)

        logger.debug(f"{name}: factorized {gram.shape[0]}x{gram.shape[0]} constraint Gram matrix")

    @property
    def num_constraints(self) -> int:
        return self.matrix.shape[0]

    @property
    def num_cols(self) -> int:
        return self.matrix.shape[1]

    def _solve_gram(self, rhs: np.ndarray) -> np.ndarray:
        return scipy.linalg.cho_solve(self._factor, rhs)

    def project(self, v: np.ndarray) -> np.ndarray:
        check_length(v, self.num_cols, "projected vector")
        return v - self._transpose @ self._solve_gram(self.matrix @ v)

    def particular_solution(self, values: np.ndarray) -> np.ndarray:
        check_length(values, self.num_constraints, "constraint values")
        return self._transpose @ self._solve_gram(values)

    def lagrange_multipliers(self, residual: np.ndarray) -> np.ndarray:
        check_length(residual, self.num_cols, "primal residual")
        return self._solve_gram(self.matrix @ residual)

    def constraint_residual(self, x: np.ndarray, values: np.ndarray) -> np.ndarray:
        """Compute ``B x - values``."""
        check_length(x, self.num_cols, "constrained vector")
        return self.matrix @ x - values


def projector_for(constraints, num_rows: int) -> NullSpaceProjector:
    """Build the projector matching a constraint set, or an identity projector if there is none."""
    if constraints is None or constraints.num_constraint_rows() == 0:
        return IdentityProjector(num_rows)
    return ConstraintProjector(constraints.fill_constraint_matrix(),
                               name=f"Projector[{getattr(constraints, 'name', 'constraints')}]")
