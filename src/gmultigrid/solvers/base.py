"""Base classes for iterative solvers."""

from abc import ABC, abstractmethod
import numpy as np
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


class ConvergenceHistory:
    """Track convergence history for solvers."""

    def __init__(self):
        """Initialize convergence history."""
        self.residual_norms = []
        self.constraint_residuals = []
        self.iteration_times = []

    def record_iteration(
        self,
        residual_norm: float,
        iteration_time: float,
        constraint_residual: Optional[float] = None
    ) -> None:
        """Record an iteration."""
        self.residual_norms.append(residual_norm)
        self.iteration_times.append(iteration_time)
        self.constraint_residuals.append(constraint_residual)

    def get_convergence_rate(self) -> float:
        """Estimate asymptotic convergence rate."""
        if len(self.residual_norms) < 3:
            return 0.0

        # Use last few iterations to estimate rate
        recent_residuals = self.residual_norms[-5:]

        ratios = []
        for i in range(1, len(recent_residuals)):
            if recent_residuals[i-1] > 0:
                ratio = recent_residuals[i] / recent_residuals[i-1]
                if 0 < ratio < 1:  # Converging
                    ratios.append(ratio)

        return float(np.mean(ratios)) if ratios else 0.0

    def clear(self) -> None:
        """Clear convergence history."""
        self.residual_norms.clear()
        self.constraint_residuals.clear()
        self.iteration_times.clear()


class BaseSolver(ABC):
    """Abstract base class for iterative solvers."""

    def __init__(
        self,
        max_iterations: int = 100,
        tolerance: float = 1e-8,
        verbose: bool = False,
        name: str = "BaseSolver"
    ):
        """
        Initialize base solver.

        Args:
            max_iterations: Maximum number of iterations
            tolerance: Default convergence tolerance
            verbose: Log every iteration at INFO level
            name: Solver name for logging
        """
        if max_iterations <= 0:
            raise ValueError("Max iterations must be positive")
        if tolerance <= 0:
            raise ValueError("Tolerance must be positive")

        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.verbose = verbose
        self.name = name

        # Convergence tracking for the most recent solve
        self.history = ConvergenceHistory()
        self.converged = False
        self.final_residual = float('inf')
        self.iterations_performed = 0

        logger.info(f"Initialized {name}: max_iter={max_iterations}, tol={tolerance}")

    @abstractmethod
    def solve(self, rhs: np.ndarray, tolerance: Optional[float] = None) -> np.ndarray:
        """
        Solve the linear system.

        Args:
            rhs: Right-hand side vector
            tolerance: Relative residual tolerance; the solver default if omitted

        Returns:
            Solution vector
        """
        pass

    def check_convergence(self, residual_norm: float, iteration: int, tolerance: float) -> bool:
        """
        Check convergence criteria.

        Args:
            residual_norm: Current relative residual norm
            iteration: Current iteration number
            tolerance: Tolerance in effect for this solve

        Returns:
            True if converged
        """
        converged = residual_norm < tolerance

        if converged:
            logger.info(f"{self.name} converged in {iteration} iterations: "
                        f"residual = {residual_norm:.2e}")
        elif iteration >= self.max_iterations:
            logger.warning(f"{self.name} reached max iterations ({self.max_iterations}): "
                           f"residual = {residual_norm:.2e}")

        return converged

    def log_iteration(self, iteration: int, residual_norm: float) -> None:
        """Log iteration information."""
        message = f"{self.name} iteration {iteration}: residual = {residual_norm:.2e}"
        if self.verbose:
            logger.info(message)
        else:
            logger.debug(message)

    def get_convergence_info(self) -> Dict[str, Any]:
        """
        Get convergence information for the most recent solve.

        Returns:
            Dictionary with convergence statistics
        """
        return {
            "converged": self.converged,
            "iterations": self.iterations_performed,
            "final_residual": self.final_residual,
            "convergence_rate": self.history.get_convergence_rate(),
            "residual_history": self.history.residual_norms.copy(),
            "constraint_history": self.history.constraint_residuals.copy(),
            "total_time": sum(self.history.iteration_times),
            "average_time_per_iteration": (
                float(np.mean(self.history.iteration_times))
                if self.history.iteration_times else 0.0
            ),
        }

    def reset(self) -> None:
        """Reset solver state."""
        self.history.clear()
        self.converged = False
        self.final_residual = float('inf')
        self.iterations_performed = 0

        logger.debug(f"Reset {self.name} solver state")
