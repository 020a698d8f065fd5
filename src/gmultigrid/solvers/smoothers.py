"""Smoothing operators for multigrid methods."""

from abc import ABC, abstractmethod
import weakref
import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import spsolve_triangular
from typing import Optional, TYPE_CHECKING
import logging

from ..exceptions import check_length

if TYPE_CHECKING:
    from ..core.multiplier import VectorMultiplier

logger = logging.getLogger(__name__)


class Smoother(ABC):
    """
    Relaxation step applied before and after coarse-grid correction.

    ``smooth`` mutates the estimate in place and also returns it.
    """

    def __init__(self, relaxation_parameter: float = 1.0, name: str = "Smoother"):
        """
        Initialize smoother.

        Args:
            relaxation_parameter: Relaxation parameter (ω)
            name: Smoother name
        """
        self.omega = relaxation_parameter
        self.name = name

        if not 0 < relaxation_parameter <= 2:
            logger.warning(f"Relaxation parameter {relaxation_parameter} may cause instability")

    def smooth(
        self,
        x: np.ndarray,
        rhs: np.ndarray,
        multiplier: 'VectorMultiplier',
        num_iterations: int = 1
    ) -> np.ndarray:
        """
        Apply smoothing iterations.

        Args:
            x: Current estimate, updated in place
            rhs: Right-hand side
            multiplier: Operator of the level being smoothed
            num_iterations: Number of sweeps

        Returns:
            The smoothed estimate (same array as ``x``)
        """
        n = multiplier.num_rows()
        check_length(x, n, f"{self.name} estimate")
        check_length(rhs, n, f"{self.name} right-hand side")

        if num_iterations > 0:
            self._sweep(x, rhs, multiplier, num_iterations)
            logger.debug(f"Applied {num_iterations} {self.name} smoothing iterations")
        return x

    @abstractmethod
    def _sweep(self, x: np.ndarray, rhs: np.ndarray, multiplier: 'VectorMultiplier',
               num_iterations: int) -> None:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(omega={self.omega})"


class JacobiSmoother(Smoother):
    """
    Weighted Jacobi smoother.

    Updates: x <- x + ω D⁻¹ (b - A x), with D the diagonal of the multiplier.
    """

    def __init__(self, relaxation_parameter: float = 2.0/3.0):
        """
        Initialize Jacobi smoother.

        Args:
            relaxation_parameter: Relaxation parameter (optimal ≈ 2/3 for Laplacian)
        """
        super().__init__(relaxation_parameter, "Jacobi")

    def _sweep(self, x, rhs, multiplier, num_iterations):
        diagonal = multiplier.diagonal()
        if np.any(diagonal == 0):
            raise ValueError(f"{self.name} smoothing requires a nonzero diagonal")

        inv_diag = self.omega / diagonal
        for _ in range(num_iterations):
            x += inv_diag * (rhs - multiplier.multiply(x))


class GaussSeidelSmoother(Smoother):
    """
    Gauss-Seidel / SOR smoother on an explicit matrix.

    ``sweep`` selects 'forward', 'backward' or 'symmetric' ordering; the
    symmetric variant keeps the V-cycle a symmetric operator.
    """

    def __init__(self, relaxation_parameter: float = 1.0, sweep: str = "symmetric"):
        """
        Initialize Gauss-Seidel smoother.

        Args:
            relaxation_parameter: SOR parameter (1.0 = pure Gauss-Seidel)
            sweep: Sweep ordering ('forward', 'backward', 'symmetric')
        """
        if sweep not in ["forward", "backward", "symmetric"]:
            raise ValueError(f"Unknown sweep ordering: {sweep}")

        super().__init__(relaxation_parameter, "Gauss-Seidel")
        self.sweep = sweep
        self._splittings = weakref.WeakKeyDictionary()

    def splitting(self, multiplier: 'VectorMultiplier') -> tuple:
        """
        Triangular factors ``(forward, backward, forward_rest, backward_rest)``
        of the multiplier's matrix, computed once per multiplier.
        """
        cached = self._splittings.get(multiplier)
        if cached is not None:
            return cached

        matrix = multiplier.get_matrix()
        if matrix is None:
            raise ValueError(f"{self.name} smoothing requires a multiplier with an explicit matrix")

        matrix = sp.csr_matrix(matrix)
        diag = sp.diags(matrix.diagonal())
        lower = sp.tril(matrix, k=-1)
        upper = sp.triu(matrix, k=1)

        omega = self.omega
        factors = (
            (diag + omega * lower).tocsr(),
            (diag + omega * upper).tocsr(),
            (omega * upper + (omega - 1.0) * diag).tocsr(),
            (omega * lower + (omega - 1.0) * diag).tocsr(),
        )
        self._splittings[multiplier] = factors
        logger.debug(f"Split {multiplier} for {self.sweep} {self.name}")
        return factors

    def _sweep(self, x, rhs, multiplier, num_iterations):
        forward, backward, forward_rest, backward_rest = self.splitting(multiplier)
        omega = self.omega

        for _ in range(num_iterations):
            if self.sweep in ("forward", "symmetric"):
                x[:] = spsolve_triangular(forward, omega * rhs - forward_rest @ x, lower=True)
            if self.sweep in ("backward", "symmetric"):
                x[:] = spsolve_triangular(backward, omega * rhs - backward_rest @ x, lower=False)


class RichardsonSmoother(Smoother):
    """
    Matrix-free Richardson smoother: x <- x + (ω / λmax) (b - A x).

    When no spectral bound is given, λmax is estimated once per multiplier
    by power iteration.
    """

    def __init__(
        self,
        relaxation_parameter: float = 1.0,
        spectral_bound: Optional[float] = None,
        power_iterations: int = 30
    ):
        super().__init__(relaxation_parameter, "Richardson")
        self.spectral_bound = spectral_bound
        self.power_iterations = power_iterations
        self._bounds = weakref.WeakKeyDictionary()

    def estimate_spectral_bound(self, multiplier: 'VectorMultiplier') -> float:
        """Estimate the largest eigenvalue magnitude of a symmetric multiplier."""
        if self.spectral_bound is not None:
            return self.spectral_bound

        cached = self._bounds.get(multiplier)
        if cached is not None:
            return cached

        rng = np.random.default_rng(0)
        v = rng.standard_normal(multiplier.num_rows())
        v /= np.linalg.norm(v)
        estimate = 0.0

        for _ in range(self.power_iterations):
            w = multiplier.multiply(v)
            norm = np.linalg.norm(w)
            if norm == 0.0:
                break
            estimate = norm
            v = w / norm

        # power iteration underestimates; pad so the step stays stable
        bound = 1.1 * estimate if estimate > 0 else 1.0
        self._bounds[multiplier] = bound
        logger.debug(f"Estimated spectral bound {bound:.3e} for {multiplier}")
        return bound

    def _sweep(self, x, rhs, multiplier, num_iterations):
        step = self.omega / self.estimate_spectral_bound(multiplier)
        for _ in range(num_iterations):
            x += step * (rhs - multiplier.multiply(x))


def make_smoother(smoother_type: str = "jacobi", relaxation: Optional[float] = None) -> Smoother:
    """
    Create a smoother by name.

    Args:
        smoother_type: 'jacobi', 'gauss_seidel', 'symmetric_gauss_seidel' or 'richardson'
        relaxation: Relaxation parameter; the smoother's default if omitted
    """
    kwargs = {} if relaxation is None else {"relaxation_parameter": relaxation}

    if smoother_type == "jacobi":
        return JacobiSmoother(**kwargs)
    if smoother_type == "gauss_seidel":
        return GaussSeidelSmoother(sweep="forward", **kwargs)
    if smoother_type == "symmetric_gauss_seidel":
        return GaussSeidelSmoother(sweep="symmetric", **kwargs)
    if smoother_type == "richardson":
        return RichardsonSmoother(**kwargs)

    raise ValueError(f"Invalid smoother type: {smoother_type}")
