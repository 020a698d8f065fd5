"""Domain interface and per-level records of a multigrid hierarchy."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import numpy as np
import scipy.linalg
from typing import Optional, Tuple, TYPE_CHECKING
import logging

from ..exceptions import SingularSystemError, check_length

if TYPE_CHECKING:
    from .multiplier import VectorMultiplier
    from ..constraints.base import DomainConstraints
    from ..constraints.projector import NullSpaceProjector
    from ..operators.base import MultigridOperator

logger = logging.getLogger(__name__)


class MultigridDomain(ABC):
    """
    One level of a geometric multigrid problem.

    A domain owns its multiplier, its constraint set and projector (if any),
    and knows how to produce the next-coarser domain. Domains never refer
    back to the hierarchy they live in.
    """

    max_condition_number: float = 1e14
    _direct_factor = None

    @abstractmethod
    def coarsen(self, operator: 'MultigridOperator') -> 'MultigridDomain':
        """
        Produce the next-coarser domain.

        Args:
            operator: Empty operator from :meth:`make_new_operator`, populated
                here with the interpolation linking the two levels

        Returns:
            Coarser domain with strictly fewer rows
        """
        pass

    @abstractmethod
    def get_multiplier(self) -> 'VectorMultiplier':
        pass

    @abstractmethod
    def get_full_matrix(self) -> np.ndarray:
        """Dense matrix of the level; the saddle matrix if the level is constrained."""
        pass

    @abstractmethod
    def num_vertices(self) -> int:
        pass

    @abstractmethod
    def num_rows(self) -> int:
        pass

    @abstractmethod
    def make_new_operator(self) -> 'MultigridOperator':
        pass

    @abstractmethod
    def get_constraint_projector(self) -> 'NullSpaceProjector':
        """Projector for this level's constraints, or an identity projector."""
        pass

    def get_constraints(self) -> Optional['DomainConstraints']:
        """Constraint set of this level, None when unconstrained."""
        return None

    def num_constraint_rows(self) -> int:
        constraints = self.get_constraints()
        return 0 if constraints is None else constraints.num_constraint_rows()

    def full_size(self) -> int:
        """Size of :meth:`get_full_matrix`: rows plus constraint rows."""
        return self.num_rows() + self.num_constraint_rows()

    def direct_solve(self, b: np.ndarray, max_condition_number: Optional[float] = None) -> np.ndarray:
        """
        Solve with a dense LU factorization of the full matrix.

        The condition number and the factorization are computed on the first
        call and reused afterwards; the full matrix of a domain must not change
        once it has been solved against.

        Args:
            b: Right-hand side of length :meth:`full_size`
            max_condition_number: Largest accepted condition number; the
                domain's ``max_condition_number`` if omitted

        Returns:
            Solution of the same length

        Raises:
            SingularSystemError: matrix is singular or its condition number
                exceeds the threshold
        """
        check_length(b, self.full_size(), "direct solve right-hand side")
        if max_condition_number is None:
            max_condition_number = self.max_condition_number

        condition, lu_and_piv = self._direct_factorization()
        if lu_and_piv is None or condition > max_condition_number:
            size = self.full_size()
            raise SingularSystemError(
                f"Direct solve on {size}x{size} matrix is ill-conditioned "
                f"(cond = {condition:.2e})", condition_number=condition)

        return scipy.linalg.lu_solve(lu_and_piv, b)

    def _direct_factorization(self) -> Tuple[float, Optional[tuple]]:
        if self._direct_factor is None:
            matrix = self.get_full_matrix()
            condition = float(np.linalg.cond(matrix))

            lu_and_piv = None
            if np.isfinite(condition):
                try:
                    lu_and_piv = scipy.linalg.lu_factor(matrix, check_finite=True)
                except (ValueError, np.linalg.LinAlgError) as e:
                    raise SingularSystemError(f"Direct solve failed: {e}", condition_number=condition) from e

            logger.debug(f"Direct solve factorization: size={matrix.shape[0]}, cond={condition:.2e}")
            self._direct_factor = (condition, lu_and_piv)
        return self._direct_factor

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(vertices={self.num_vertices()}, "
                f"rows={self.num_rows()}, constraints={self.num_constraint_rows()})")


@dataclass(frozen=True)
class Level:
    """One entry of a multigrid hierarchy, finest first."""
    index: int
    domain: MultigridDomain
    num_vertices: int
    num_rows: int
    multiplier: 'VectorMultiplier'
    projector: 'NullSpaceProjector'
    constraints: Optional['DomainConstraints'] = None
    operator: Optional['MultigridOperator'] = None

    @property
    def is_coarsest(self) -> bool:
        return self.operator is None

    @property
    def is_constrained(self) -> bool:
        return self.constraints is not None and self.constraints.num_constraint_rows() > 0
