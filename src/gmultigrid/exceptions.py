"""Exception types raised by the multigrid framework."""

from typing import Optional

import numpy as np


class MultigridError(Exception):
    """Base class for all multigrid framework errors."""


class DimensionMismatchError(MultigridError, ValueError):
    """A vector or matrix does not have the size the receiving level expects."""

    def __init__(self, what: str, expected: int, actual: int, message: Optional[str] = None):
        self.what = what
        self.expected = expected
        self.actual = actual
        super().__init__(message or f"{what}: expected length {expected}, got {actual}")


class SingularSystemError(MultigridError, np.linalg.LinAlgError):
    """A direct solve or constraint factorization hit a singular or ill-conditioned matrix."""

    def __init__(self, message: str, condition_number: Optional[float] = None):
        self.condition_number = condition_number
        super().__init__(message)


class ConvergenceError(MultigridError, RuntimeError):
    """The V-cycle iteration cap was reached before the tolerance was met."""

    def __init__(self, residual_norm: float, iterations: int, tolerance: float,
                 constraint_residual: Optional[float] = None):
        self.residual_norm = residual_norm
        self.iterations = iterations
        self.tolerance = tolerance
        self.constraint_residual = constraint_residual
        message = (f"No convergence after {iterations} iterations: "
                   f"residual = {residual_norm:.2e}, tolerance = {tolerance:.2e}")
        if constraint_residual is not None:
            message += f", constraint residual = {constraint_residual:.2e}"
        super().__init__(message)


class HierarchyError(MultigridError, RuntimeError):
    """A hierarchy component was used before it was set up."""


class MalformedHierarchyError(HierarchyError):
    """Coarsening failed to strictly reduce the number of rows."""

    def __init__(self, level: int, fine_rows: int, coarse_rows: int):
        self.level = level
        self.fine_rows = fine_rows
        self.coarse_rows = coarse_rows
        super().__init__(f"Coarsening level {level} did not reduce the problem size: "
                         f"{fine_rows} rows -> {coarse_rows} rows")


def check_length(vector: np.ndarray, expected: int, what: str = "vector") -> None:
    """Raise DimensionMismatchError unless ``vector`` is 1-D with ``expected`` entries."""
    vector = np.asarray(vector)
    if vector.ndim != 1 or vector.shape[0] != expected:
        raise DimensionMismatchError(what, expected, int(vector.size))
