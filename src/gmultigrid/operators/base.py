"""Base class for prolongation/restriction operators."""

from abc import ABC, abstractmethod
import numpy as np
from typing import Optional


class MultigridOperator(ABC):
    """
    Abstract transfer operator between a level and the next-coarser one.

    All three maps are associated with one interpolation matrix ``J``
    (fine rows x coarse columns):

    - ``prolong``: ``J v`` (coarse -> fine)
    - ``restrict_with_transpose``: ``Jᵗ v`` (fine -> coarse), for residuals
    - ``restrict_with_pinv``: ``J⁺ v`` (fine -> coarse), for solution states

    ``prolong`` and ``restrict_with_transpose`` must be exact adjoints.
    """

    def __init__(self, name: str = "MultigridOperator"):
        """
        Initialize base operator.

        Args:
            name: Human-readable name for the operator
        """
        self.name = name

    @property
    @abstractmethod
    def fine_rows(self) -> int:
        """Number of rows on the fine side."""
        pass

    @property
    @abstractmethod
    def coarse_rows(self) -> int:
        """Number of rows on the coarse side."""
        pass

    @abstractmethod
    def prolong(self, v_coarse: np.ndarray) -> np.ndarray:
        """Interpolate a coarse vector up to the fine level."""
        pass

    @abstractmethod
    def restrict_with_transpose(self, v_fine: np.ndarray) -> np.ndarray:
        """Restrict a fine vector with the transpose of the interpolation."""
        pass

    @abstractmethod
    def restrict_with_pinv(self, v_fine: np.ndarray) -> np.ndarray:
        """Restrict a fine vector with the pseudoinverse of the interpolation."""
        pass

    def is_ready(self) -> bool:
        """Whether the operator holds interpolation data."""
        return True

    def __str__(self) -> str:
        """String representation of the operator."""
        return self.name

    def __repr__(self) -> str:
        """Detailed representation of the operator."""
        return f"{self.__class__.__name__}(name='{self.name}')"


def adjoint_mismatch(
    operator: MultigridOperator,
    rng: Optional[np.random.Generator] = None,
    trials: int = 3
) -> float:
    """
    Measure how far ``prolong`` and ``restrict_with_transpose`` are from adjoint.

    Computes ``|<J u, v> - <u, Jᵗ v>|`` for random ``u`` (coarse) and ``v``
    (fine), relative to ``‖J u‖ ‖v‖``, and returns the worst trial.
    """
    rng = rng if rng is not None else np.random.default_rng()
    worst = 0.0

    for _ in range(trials):
        u = rng.standard_normal(operator.coarse_rows)
        v = rng.standard_normal(operator.fine_rows)

        prolonged = operator.prolong(u)
        lhs = float(np.dot(prolonged, v))
        rhs = float(np.dot(u, operator.restrict_with_transpose(v)))

        scale = max(np.linalg.norm(prolonged) * np.linalg.norm(v), np.finfo(float).tiny)
        worst = max(worst, abs(lhs - rhs) / scale)

    return worst
