"""
Test Suite for the Geometric Multigrid Framework

Test Categories:
    - Unit tests: Individual component testing (operators, constraints,
      projectors, multipliers, smoothers, hierarchy, configuration)
    - Integration tests: End-to-end solves on reference chain domains
"""

import numpy as np
import sys
from pathlib import Path

# Add src directory to path for imports
test_dir = Path(__file__).parent
src_dir = test_dir.parent / 'src'
sys.path.insert(0, str(src_dir))

# Test configuration
TEST_CONFIG = {
    'tolerance': 1e-6,
    'tight_tolerance': 1e-10,
    'chain_sizes': [16, 17, 33, 65],
    'max_iterations': 100,
}


# Test data generators
def generate_chain_problem(num_vertices=16, seed=0):
    """Generate a smooth-plus-noise right-hand side on a uniform chain."""
    rng = np.random.default_rng(seed)
    x = np.linspace(0, 1, num_vertices)
    rhs = np.sin(np.pi * x) + 0.1 * rng.standard_normal(num_vertices)
    return x, rhs


def random_interpolation(num_fine=12, num_coarse=5, seed=0):
    """Random dense interpolation matrix with full column rank."""
    rng = np.random.default_rng(seed)
    return rng.standard_normal((num_fine, num_coarse))


__all__ = ['TEST_CONFIG', 'generate_chain_problem', 'random_interpolation']
