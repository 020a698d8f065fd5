"""Multigrid hierarchy and recursive V-cycle solver."""

import numpy as np
from typing import Dict, Any, Optional, List, Tuple, TYPE_CHECKING
import time
import logging

from .base import BaseSolver
from .smoothers import Smoother, make_smoother
from ..config.settings import MultigridConfig
from ..core.domain import Level
from ..core.multiplier import ProjectedMultiplier, VectorMultiplier
from ..exceptions import (
    ConvergenceError, DimensionMismatchError, HierarchyError, MalformedHierarchyError,
    check_length
)
from ..operators.base import adjoint_mismatch

if TYPE_CHECKING:
    from ..core.domain import MultigridDomain

logger = logging.getLogger(__name__)


class MultigridHierarchy(BaseSolver):
    """
    Geometric multigrid hierarchy solved by repeated V-cycles.

    The chain of levels is built once from the finest domain by repeated
    coarsening and is immutable afterwards; the same hierarchy serves any
    number of right-hand sides.

    Levels that carry constraints are handled in null-space form: the
    solution is split into the minimum-norm particular solution of the
    constraint rows plus a correction in the null space of the constraints,
    and the correction is found by smoothing ``P A P`` and projecting after
    every smoothing pass and coarse-grid correction. Constrained coarsest
    levels solve the full saddle system directly.

    Solves only read the levels, so concurrent solves are safe when every
    collaborator is read-only; the convergence history kept on the instance
    describes whichever solve finished last.
    """

    def __init__(
        self,
        finest_domain: 'MultigridDomain',
        smoother: Optional[Smoother] = None,
        config: Optional[MultigridConfig] = None,
        verbose: bool = False
    ):
        """
        Build the hierarchy.

        Args:
            finest_domain: Finest level domain
            smoother: Smoother used on every level; built from the config if omitted
            config: Hierarchy and solver configuration
            verbose: Log every V-cycle at INFO level
        """
        config = config if config is not None else MultigridConfig()
        config.validate()
        solver_config = config.solver

        super().__init__(solver_config.max_iterations, solver_config.tolerance, verbose, "Multigrid")

        self.config = config
        self.constraint_tolerance = solver_config.constraint_tolerance
        self.pre_smooth_iterations = solver_config.pre_smooth_iterations
        self.post_smooth_iterations = solver_config.post_smooth_iterations
        self.smoother = smoother if smoother is not None else make_smoother(
            solver_config.smoother_type, solver_config.smoother_relaxation)

        self.levels: Tuple[Level, ...] = tuple(self._build_hierarchy(finest_domain))
        self._smoothing_multipliers: Tuple[VectorMultiplier, ...] = tuple(
            ProjectedMultiplier(level.multiplier, level.projector) if level.is_constrained
            else level.multiplier
            for level in self.levels
        )

        finest = self.levels[0]
        self._constraint_matrix = (finest.constraints.fill_constraint_matrix()
                                   if finest.is_constrained else None)
        self.lagrange_multipliers = np.zeros(0)

        if solver_config.verify_operators:
            self.verify_operators(solver_config.adjoint_tolerance)

        logger.info(f"Setup complete: {len(self.levels)} levels, "
                    f"rows {' -> '.join(str(n) for n in self.level_sizes())}")

    def _build_hierarchy(self, finest_domain: 'MultigridDomain') -> List[Level]:
        """Coarsen until the level is small enough or the depth limit is reached."""
        max_levels = self.config.hierarchy.max_levels
        coarsest_size = self.config.hierarchy.coarsest_size

        levels = []
        domain = finest_domain

        for index in range(max_levels):
            num_rows = domain.num_rows()

            if num_rows <= coarsest_size or index == max_levels - 1:
                if num_rows > coarsest_size:
                    logger.warning(f"Stopping hierarchy at max_levels={max_levels} with "
                                   f"{num_rows} rows on the coarsest level")
                levels.append(self._make_level(index, domain, None))
                break

            operator = domain.make_new_operator()
            coarse_domain = domain.coarsen(operator)
            coarse_rows = coarse_domain.num_rows()

            if coarse_rows >= num_rows:
                raise MalformedHierarchyError(index, num_rows, coarse_rows)

            if not operator.is_ready():
                raise HierarchyError(f"Coarsening level {index} did not populate its operator")
            if operator.fine_rows != num_rows or operator.coarse_rows != coarse_rows:
                raise HierarchyError(
                    f"Operator at level {index} maps {operator.fine_rows} <- {operator.coarse_rows} "
                    f"rows, expected {num_rows} <- {coarse_rows}")

            levels.append(self._make_level(index, domain, operator))
            logger.debug(f"Coarsened level {index}: {num_rows} -> {coarse_rows} rows")
            domain = coarse_domain

        return levels

    def _make_level(self, index: int, domain: 'MultigridDomain', operator) -> Level:
        num_rows = domain.num_rows()
        num_vertices = domain.num_vertices()
        if num_rows < num_vertices:
            raise HierarchyError(f"Level {index} has fewer rows ({num_rows}) "
                                 f"than vertices ({num_vertices})")

        multiplier = domain.get_multiplier()
        if multiplier.num_rows() != num_rows:
            raise DimensionMismatchError(f"multiplier at level {index}", num_rows, multiplier.num_rows())

        return Level(
            index=index,
            domain=domain,
            num_vertices=num_vertices,
            num_rows=num_rows,
            multiplier=multiplier,
            projector=domain.get_constraint_projector(),
            constraints=domain.get_constraints(),
            operator=operator,
        )

    @property
    def num_levels(self) -> int:
        return len(self.levels)

    def level_sizes(self) -> List[int]:
        """Number of rows per level, finest first."""
        return [level.num_rows for level in self.levels]

    def verify_operators(self, tolerance: float = 1e-10) -> List[float]:
        """
        Check that every level's prolongation and transpose restriction are adjoint.

        Returns:
            Relative mismatch per non-coarsest level

        Raises:
            HierarchyError: a mismatch exceeds ``tolerance``
        """
        rng = np.random.default_rng(0)
        mismatches = []

        for level in self.levels[:-1]:
            mismatch = adjoint_mismatch(level.operator, rng)
            mismatches.append(mismatch)
            if mismatch > tolerance:
                logger.warning(f"Level {level.index} operator is not self-adjoint: "
                               f"mismatch = {mismatch:.2e}")
                raise HierarchyError(f"Operator at level {level.index} fails the adjoint check "
                                     f"(mismatch {mismatch:.2e} > {tolerance:.2e})")

        return mismatches

    def solve(self, rhs: np.ndarray, tolerance: Optional[float] = None) -> np.ndarray:
        """
        Solve ``A x = rhs`` (with the finest level's constraints, if any).

        Args:
            rhs: Right-hand side on the finest level
            tolerance: Relative residual tolerance; the configured one if omitted

        Returns:
            Solution vector on the finest level
        """
        return self.vcycle_solve(rhs, self.tolerance if tolerance is None else tolerance)

    def vcycle_solve(self, rhs: np.ndarray, tolerance: float) -> np.ndarray:
        """
        Iterate V-cycles from zero until the relative residual drops below ``tolerance``.

        For a constrained finest level, the constraint right-hand side ``c`` is
        the negated constraint residual reported by the constraint set, and
        the residual measured is ``sqrt(‖P(b - A x)‖² + ‖B x - c‖²) / ‖[b; c]‖``.

        Raises:
            ConvergenceError: ``max_iterations`` V-cycles did not reach ``tolerance``
        """
        if tolerance <= 0:
            raise ValueError("Tolerance must be positive")

        finest = self.levels[0]
        n = finest.num_rows
        check_length(rhs, n, "right-hand side")
        b = np.asarray(rhs, dtype=np.float64)

        self.reset()
        self.lagrange_multipliers = np.zeros(finest.projector.num_constraints)

        values = self._constraint_values(finest, b)
        rhs_norm = np.sqrt(np.dot(b, b) + np.dot(values, values))

        if rhs_norm == 0.0:
            logger.debug("Zero right-hand side: returning zero solution")
            self.converged = True
            self.final_residual = 0.0
            return np.zeros(n)

        projector = finest.projector
        multiplier = finest.multiplier

        # x = particular + correction, correction confined to the constraint null space
        particular = projector.particular_solution(values) if finest.is_constrained else np.zeros(n)
        reduced_rhs = projector.project(b - multiplier.multiply(particular))
        correction = np.zeros(n)

        residual_norm = float('inf')
        constraint_residual = None

        for iteration in range(1, self.max_iterations + 1):
            iteration_start = time.time()

            correction = self._v_cycle(0, reduced_rhs, correction)
            x = particular + correction

            primal = projector.project(b - multiplier.multiply(x))
            squared = np.dot(primal, primal)
            if self._constraint_matrix is not None:
                constraint_block = self._constraint_matrix @ x - values
                constraint_residual = float(np.max(np.abs(constraint_block)))
                squared += np.dot(constraint_block, constraint_block)
            residual_norm = float(np.sqrt(squared) / rhs_norm)

            self.history.record_iteration(residual_norm, time.time() - iteration_start,
                                          constraint_residual)
            self.log_iteration(iteration, residual_norm)
            self.iterations_performed = iteration
            self.final_residual = residual_norm

            if self.check_convergence(residual_norm, iteration, tolerance):
                self.converged = True
                break
        else:
            raise ConvergenceError(residual_norm, self.max_iterations, tolerance, constraint_residual)

        if constraint_residual is not None:
            scale = max(1.0, float(np.max(np.abs(values))))
            if constraint_residual > self.constraint_tolerance * scale:
                self.converged = False
                raise ConvergenceError(residual_norm, self.iterations_performed, tolerance,
                                       constraint_residual)
            self.lagrange_multipliers = projector.lagrange_multipliers(b - multiplier.multiply(x))

        return x

    def _constraint_values(self, level: Level, b: np.ndarray) -> np.ndarray:
        """Refresh targets and collect the constraint right-hand side of a solve."""
        if not level.is_constrained:
            return np.zeros(0)

        constraints = level.constraints
        n = level.num_rows
        targets = constraints.update_target_values(None)

        full_rhs = np.zeros(n + constraints.num_constraint_rows())
        full_rhs[:n] = b
        initial_violation = constraints.fill_constraint_values(full_rhs, targets, n)
        logger.debug(f"Constraint right-hand side: max violation = {initial_violation:.2e}")

        return full_rhs[n:].copy()

    def _v_cycle(self, index: int, rhs: np.ndarray, x: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Apply one V-cycle at level ``index``.

        Args:
            index: Level index (0 = finest)
            rhs: Right-hand side at this level
            x: Current estimate, or None to start from zero

        Returns:
            Updated estimate
        """
        level = self.levels[index]

        if level.is_coarsest:
            return self._solve_coarse(level, rhs)

        multiplier = self._smoothing_multipliers[index]
        x = np.zeros(level.num_rows) if x is None else x

        # Pre-smoothing
        self.smoother.smooth(x, rhs, multiplier, self.pre_smooth_iterations)
        x = self._project(level, x)

        # Restrict residual to the coarse level
        residual = rhs - multiplier.multiply(x)
        coarse_level = self.levels[index + 1]
        coarse_rhs = self._project(coarse_level, level.operator.restrict_with_transpose(residual))

        # Coarse-grid correction, starting from zero
        coarse_correction = self._v_cycle(index + 1, coarse_rhs)
        x = x + level.operator.prolong(coarse_correction)
        x = self._project(level, x)

        # Post-smoothing
        self.smoother.smooth(x, rhs, multiplier, self.post_smooth_iterations)
        return self._project(level, x)

    @staticmethod
    def _project(level: Level, v: np.ndarray) -> np.ndarray:
        return level.projector.project(v) if level.is_constrained else v

    def _solve_coarse(self, level: Level, rhs: np.ndarray) -> np.ndarray:
        """Direct solve; constrained levels solve the saddle system with zero constraint rows."""
        domain = level.domain
        full_rhs = np.zeros(domain.full_size())
        full_rhs[:level.num_rows] = rhs

        solution = domain.direct_solve(
            full_rhs, max_condition_number=self.config.solver.max_condition_number)
        return np.asarray(solution, dtype=np.float64)[:level.num_rows]

    def restrict_solution(self, x: np.ndarray, level: int) -> np.ndarray:
        """Restrict a finest-level state down to ``level`` with the pseudoinverse."""
        self._check_level_index(level)
        for current in self.levels[:level]:
            x = current.operator.restrict_with_pinv(x)
        return x

    def prolong_solution(self, x: np.ndarray, level: int) -> np.ndarray:
        """Interpolate a state on ``level`` up to the finest level."""
        self._check_level_index(level)
        for current in reversed(self.levels[:level]):
            x = current.operator.prolong(x)
        return x

    def _check_level_index(self, level: int) -> None:
        if not 0 <= level < len(self.levels):
            raise IndexError(f"Level {level} out of range for {len(self.levels)} levels")

    def get_convergence_info(self) -> Dict[str, Any]:
        """Get extended convergence information."""
        base_info = super().get_convergence_info()

        mg_info = {
            "num_levels": len(self.levels),
            "level_sizes": self.level_sizes(),
            "constrained_levels": [level.index for level in self.levels if level.is_constrained],
            "smoother": self.smoother.name,
            "pre_smooth_iterations": self.pre_smooth_iterations,
            "post_smooth_iterations": self.post_smooth_iterations,
            "lagrange_multipliers": self.lagrange_multipliers.copy(),
        }

        return {**base_info, **mg_info}
