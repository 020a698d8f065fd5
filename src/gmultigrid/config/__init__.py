"""Configuration management for multigrid hierarchies."""

from .settings import (
    MultigridConfig, HierarchyConfig, SolverConfig, LoggingConfig,
    create_default_config, create_accuracy_config
)

__all__ = [
    "MultigridConfig",
    "HierarchyConfig",
    "SolverConfig",
    "LoggingConfig",
    "create_default_config",
    "create_accuracy_config",
]
