"""Shared fixtures for the multigrid test suite."""

import logging

import numpy as np
import pytest

from gmultigrid.config import MultigridConfig
from gmultigrid.domains import ChainDomain

from . import TEST_CONFIG


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(1234)


@pytest.fixture
def chain16():
    """16-vertex Dirichlet chain, the standard small test domain."""
    return ChainDomain.uniform(16)


@pytest.fixture
def small_config():
    """Configuration that coarsens small chains down to three vertices."""
    config = MultigridConfig()
    config.hierarchy.coarsest_size = 3
    config.solver.max_iterations = TEST_CONFIG['max_iterations']
    config.solver.tolerance = TEST_CONFIG['tolerance']
    return config


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep solver INFO chatter out of test output."""
    logger = logging.getLogger("gmultigrid")
    original = logger.level
    logger.setLevel(logging.WARNING)
    yield
    logger.setLevel(original)
