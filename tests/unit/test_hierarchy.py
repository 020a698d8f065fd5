"""Unit tests for the multigrid hierarchy and V-cycle."""

import logging

import numpy as np
import pytest
import scipy.sparse as sp
import sys
from pathlib import Path

# Add src to Python path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from gmultigrid.constraints.base import saddle_matrix
from gmultigrid.constraints.linear import pin_vertices
from gmultigrid.constraints.projector import IdentityProjector
from gmultigrid.core.domain import MultigridDomain
from gmultigrid.core.multiplier import MatrixMultiplier, ProjectedMultiplier
from gmultigrid.domains import ChainDomain
from gmultigrid.exceptions import (
    ConvergenceError, DimensionMismatchError, HierarchyError, MalformedHierarchyError,
    SingularSystemError
)
from gmultigrid.operators.transfer import InterpolationOperator
from gmultigrid.solvers import MultigridHierarchy, GaussSeidelSmoother


class StuckDomain(MultigridDomain):
    """Domain whose coarsening keeps the same number of rows."""

    def __init__(self, n=8, populate=True):
        self.n = n
        self.populate = populate
        self.matrix = sp.identity(n, format="csr") * 2.0

    def coarsen(self, operator):
        if self.populate:
            operator.set_matrix(sp.identity(self.n))
        return StuckDomain(self.n, self.populate)

    def get_multiplier(self):
        return MatrixMultiplier(self.matrix)

    def get_full_matrix(self):
        return self.matrix.toarray()

    def num_vertices(self):
        return self.n

    def num_rows(self):
        return self.n

    def make_new_operator(self):
        return InterpolationOperator()

    def get_constraint_projector(self):
        return IdentityProjector(self.n)


class UnpopulatedDomain(ChainDomain):
    """Chain whose coarsening forgets to fill in the operator."""

    def coarsen(self, operator):
        return ChainDomain.uniform(self.num_vertices() // 2)


def pinned_chain(num_vertices=17, values=(1.0, 2.0)):
    constraints = pin_vertices(num_vertices, [0, num_vertices - 1], values=list(values))
    return ChainDomain.uniform(num_vertices, constraints=constraints)


def contiguous_pinned_chain(num_vertices=17):
    """Neumann chain with its first four vertices pinned to 0.5."""
    constraints = pin_vertices(num_vertices, [0, 1, 2, 3], values=[0.5] * 4)
    return ChainDomain.uniform(num_vertices, boundary="neumann", constraints=constraints)



class TestHierarchySetup:
    """Test cases for building the level chain."""

    def test_levels(self, chain16, small_config):
        """Test coarsening stops once a level is small enough."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)

        assert hierarchy.num_levels == 4
        assert hierarchy.level_sizes() == [16, 9, 5, 3]
        assert hierarchy.levels[-1].is_coarsest
        assert not hierarchy.levels[0].is_coarsest
        assert [level.index for level in hierarchy.levels] == [0, 1, 2, 3]

    def test_default_config_single_level(self, chain16):
        """Test a domain below the default coarsest size is solved directly."""
        hierarchy = MultigridHierarchy(chain16)

        assert hierarchy.num_levels == 1

    def test_max_levels(self, chain16, small_config, caplog):
        """Test the depth limit stops coarsening with a warning."""
        small_config.hierarchy.max_levels = 2

        with caplog.at_level(logging.WARNING, logger="gmultigrid"):
            hierarchy = MultigridHierarchy(chain16, config=small_config)

        assert hierarchy.level_sizes() == [16, 9]
        assert any("max_levels" in record.getMessage() for record in caplog.records)

    def test_malformed_hierarchy(self, small_config):
        """Test coarsening that does not shrink the level is detected."""
        with pytest.raises(MalformedHierarchyError) as exc_info:
            MultigridHierarchy(StuckDomain(8), config=small_config)

        assert exc_info.value.level == 0
        assert exc_info.value.fine_rows == 8
        assert exc_info.value.coarse_rows == 8

    def test_unpopulated_operator(self, small_config):
        """Test an operator left empty by coarsening is detected."""
        with pytest.raises(HierarchyError):
            MultigridHierarchy(UnpopulatedDomain(np.linspace(0, 1, 16)), config=small_config)

    def test_invalid_config(self, chain16, small_config):
        """Test configuration is validated on construction."""
        small_config.solver.max_iterations = 0

        with pytest.raises(ValueError):
            MultigridHierarchy(chain16, config=small_config)

    def test_smoother_from_config(self, chain16, small_config):
        """Test the configured smoother is used when none is given."""
        small_config.solver.smoother_type = "symmetric_gauss_seidel"
        hierarchy = MultigridHierarchy(chain16, config=small_config)

        assert isinstance(hierarchy.smoother, GaussSeidelSmoother)

    def test_constrained_levels(self, small_config):
        """Test constraints are carried to every level."""
        hierarchy = MultigridHierarchy(pinned_chain(), config=small_config)

        assert hierarchy.level_sizes() == [17, 9, 5, 3]
        assert all(level.is_constrained for level in hierarchy.levels)
        assert isinstance(hierarchy._smoothing_multipliers[0], ProjectedMultiplier)

    def test_contiguous_pins(self, small_config):
        """Test pins sharing coarse vertices still give a full-rank chain of levels."""
        hierarchy = MultigridHierarchy(contiguous_pinned_chain(), config=small_config)

        assert hierarchy.level_sizes() == [17, 9, 5, 3]
        assert [level.constraints.num_constraint_rows() for level in hierarchy.levels] == [4, 3, 2, 2]
        assert all(level.projector.num_constraints == level.constraints.num_constraint_rows()
                   for level in hierarchy.levels)

    def test_domain_threshold_untouched(self, chain16, small_config):
        """Test building a hierarchy leaves the domain's condition limit alone."""
        small_config.solver.max_condition_number = 1e8
        hierarchy = MultigridHierarchy(chain16, config=small_config)

        assert all(level.domain.max_condition_number == 1e14 for level in hierarchy.levels)

    def test_verify_operators(self, chain16, small_config):
        """Test adjoint verification passes for the chain interpolation."""
        small_config.solver.verify_operators = True
        hierarchy = MultigridHierarchy(chain16, config=small_config)

        mismatches = hierarchy.verify_operators()
        assert len(mismatches) == hierarchy.num_levels - 1
        assert max(mismatches) < 1e-12

    def test_verify_operators_failure(self, chain16, small_config):
        """Test a non-adjoint operator fails verification."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)
        operator = hierarchy.levels[1].operator
        operator._transpose = 2.0 * operator._transpose

        with pytest.raises(HierarchyError):
            hierarchy.verify_operators()


class TestVCycleSolve:
    """Test cases for V-cycle solves."""

    def test_converges(self, chain16, small_config, rng):
        """Test the solve reaches the tolerance and matches the direct solve."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)
        b = rng.standard_normal(16)

        x = hierarchy.solve(b, tolerance=1e-10)

        A = chain16.get_full_matrix()
        assert np.linalg.norm(b - A @ x) < 1e-6 * np.linalg.norm(b)
        np.testing.assert_allclose(x, chain16.direct_solve(b), rtol=1e-4, atol=1e-8)
        assert hierarchy.converged

    def test_tolerance_override(self, chain16, small_config, rng):
        """Test a per-solve tolerance is honoured."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)
        b = rng.standard_normal(16)

        hierarchy.solve(b, tolerance=1e-2)
        loose = hierarchy.iterations_performed
        hierarchy.solve(b, tolerance=1e-10)

        assert hierarchy.iterations_performed > loose
        assert hierarchy.final_residual < 1e-10

    def test_residual_decreases(self, chain16, small_config, rng):
        """Test every V-cycle reduces the residual."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)
        hierarchy.solve(rng.standard_normal(16), tolerance=1e-10)

        history = hierarchy.history.residual_norms
        assert all(later < earlier for earlier, later in zip(history, history[1:]))
        assert hierarchy.history.get_convergence_rate() < 0.5

    def test_zero_rhs(self, chain16, small_config):
        """Test a zero right-hand side returns zero without iterating."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)

        x = hierarchy.solve(np.zeros(16))

        np.testing.assert_array_equal(x, 0.0)
        assert hierarchy.iterations_performed == 0
        assert hierarchy.converged

    def test_convergence_error(self, chain16, small_config, rng):
        """Test exhausting the iteration cap raises ConvergenceError."""
        small_config.solver.max_iterations = 1
        hierarchy = MultigridHierarchy(chain16, config=small_config)

        with pytest.raises(ConvergenceError) as exc_info:
            hierarchy.solve(rng.standard_normal(16), tolerance=1e-14)

        assert exc_info.value.iterations == 1
        assert exc_info.value.residual_norm > 1e-14
        assert exc_info.value.constraint_residual is None
        assert not hierarchy.converged

    def test_invalid_tolerance(self, chain16, small_config):
        """Test non-positive tolerances are refused."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)

        with pytest.raises(ValueError):
            hierarchy.solve(np.ones(16), tolerance=0.0)

    def test_wrong_rhs_length(self, chain16, small_config):
        """Test the right-hand side must match the finest level."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)

        with pytest.raises(DimensionMismatchError):
            hierarchy.solve(np.ones(9))

    def test_single_level(self, chain16, small_config, rng):
        """Test a one-level hierarchy is a direct solve."""
        small_config.hierarchy.max_levels = 1
        hierarchy = MultigridHierarchy(chain16, config=small_config)
        b = rng.standard_normal(16)

        x = hierarchy.solve(b)

        assert hierarchy.iterations_performed == 1
        np.testing.assert_allclose(x, chain16.direct_solve(b))

    def test_constrained_solve(self, small_config, rng):
        """Test a pinned chain matches the saddle direct solve."""
        domain = pinned_chain(17, values=(1.0, -2.0))
        hierarchy = MultigridHierarchy(domain, config=small_config)
        b = rng.standard_normal(17)

        x = hierarchy.solve(b, tolerance=1e-10)

        assert x[0] == pytest.approx(1.0, abs=1e-10)
        assert x[-1] == pytest.approx(-2.0, abs=1e-10)

        full_rhs = np.concatenate([b, [1.0, -2.0]])
        reference = domain.direct_solve(full_rhs)
        np.testing.assert_allclose(x, reference[:17], atol=1e-8)
        np.testing.assert_allclose(hierarchy.lagrange_multipliers, reference[17:], atol=1e-6)

    def test_constrained_zero_primal_rhs(self, small_config):
        """Test nonzero constraint targets alone drive the solve."""
        domain = pinned_chain(17, values=(1.0, 1.0))
        hierarchy = MultigridHierarchy(domain, config=small_config)

        x = hierarchy.solve(np.zeros(17), tolerance=1e-10)

        A = saddle_matrix(domain.matrix, domain.constraints)
        reference = np.linalg.solve(A, np.concatenate([np.zeros(17), [1.0, 1.0]]))
        np.testing.assert_allclose(x, reference[:17], atol=1e-5)
        assert hierarchy.history.constraint_residuals[-1] < 1e-10

    @pytest.mark.parametrize("smoother_type", ["gauss_seidel", "symmetric_gauss_seidel"])
    def test_constrained_gauss_seidel(self, small_config, rng, smoother_type):
        """Test Gauss-Seidel smoothing solves a pinned chain."""
        small_config.solver.smoother_type = smoother_type
        domain = pinned_chain(17, values=(1.0, 2.0))
        hierarchy = MultigridHierarchy(domain, config=small_config)
        b = rng.standard_normal(17)

        x = hierarchy.solve(b, tolerance=1e-10)

        reference = domain.direct_solve(np.concatenate([b, [1.0, 2.0]]))
        np.testing.assert_allclose(x, reference[:17], atol=1e-8)
        assert hierarchy.converged

    def test_contiguous_pins_solve(self, small_config, rng):
        """Test a block of pinned vertices matches the saddle direct solve."""
        domain = contiguous_pinned_chain()
        hierarchy = MultigridHierarchy(domain, config=small_config)
        b = rng.standard_normal(17)

        x = hierarchy.solve(b, tolerance=1e-10)

        reference = domain.direct_solve(np.concatenate([b, domain.constraints.targets]))
        np.testing.assert_allclose(x, reference[:17], atol=1e-8)
        np.testing.assert_allclose(x[:4], [0.5, 0.5, 0.5, 0.5], atol=1e-10)

    def test_ill_conditioned_coarse_solve(self, chain16, small_config, rng):
        """Test a coarsest solve over the condition limit surfaces from solve."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)
        b = rng.standard_normal(16)
        hierarchy.solve(b)
        assert hierarchy.converged

        hierarchy.config.solver.max_condition_number = 1.5
        with pytest.raises(SingularSystemError) as exc_info:
            hierarchy.solve(b)

        assert exc_info.value.condition_number > 1.5
        assert not hierarchy.converged

    def test_singular_coarse_solve(self, small_config):
        """Test a floating Neumann chain fails on its singular coarsest level."""
        domain = ChainDomain.uniform(16, boundary="neumann")
        hierarchy = MultigridHierarchy(domain, config=small_config)

        with pytest.raises(SingularSystemError):
            hierarchy.solve(np.linspace(-1.0, 1.0, 16))
        assert not hierarchy.converged

    def test_coarse_factorization_reused(self, chain16, small_config, rng, monkeypatch):
        """Test the coarsest level is factorized once over many V-cycles."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)
        coarsest = hierarchy.levels[-1].domain
        assembled = []
        original = coarsest.get_full_matrix

        def counting_full_matrix():
            assembled.append(1)
            return original()

        monkeypatch.setattr(coarsest, "get_full_matrix", counting_full_matrix)
        hierarchy.solve(rng.standard_normal(16), tolerance=1e-10)
        hierarchy.solve(rng.standard_normal(16), tolerance=1e-10)

        assert hierarchy.iterations_performed > 1
        assert len(assembled) == 1


class TestTransfers:
    """Test cases for moving states between levels."""

    def test_prolong_then_restrict(self, chain16, small_config):
        """Test pseudoinverse restriction undoes prolongation across levels."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)
        coarse = np.array([0.0, 1.0, 2.0, 1.0, 0.0])

        fine = hierarchy.prolong_solution(coarse, 2)
        assert fine.shape == (16,)
        np.testing.assert_allclose(hierarchy.restrict_solution(fine, 2), coarse, atol=1e-12)

    def test_level_zero_is_identity(self, chain16, small_config):
        """Test level 0 transfers return the input."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)
        x = np.arange(16.0)

        np.testing.assert_array_equal(hierarchy.restrict_solution(x, 0), x)
        np.testing.assert_array_equal(hierarchy.prolong_solution(x, 0), x)

    def test_invalid_level(self, chain16, small_config):
        """Test out-of-range levels are refused."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)

        with pytest.raises(IndexError):
            hierarchy.restrict_solution(np.zeros(16), 4)
        with pytest.raises(IndexError):
            hierarchy.prolong_solution(np.zeros(3), -1)


class TestConvergenceInfo:
    """Test cases for convergence reporting."""

    def test_info(self, chain16, small_config, rng):
        """Test convergence info combines solver and hierarchy details."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)
        hierarchy.solve(rng.standard_normal(16))

        info = hierarchy.get_convergence_info()

        assert info["converged"]
        assert info["num_levels"] == 4
        assert info["level_sizes"] == [16, 9, 5, 3]
        assert info["constrained_levels"] == []
        assert info["smoother"] == "Jacobi"
        assert len(info["residual_history"]) == info["iterations"]
        assert info["lagrange_multipliers"].size == 0

    def test_history_reset_between_solves(self, chain16, small_config, rng):
        """Test each solve starts a fresh history."""
        hierarchy = MultigridHierarchy(chain16, config=small_config)

        hierarchy.solve(rng.standard_normal(16))
        first = len(hierarchy.history.residual_norms)
        hierarchy.solve(rng.standard_normal(16))

        assert len(hierarchy.history.residual_norms) == hierarchy.iterations_performed
        assert first > 0
