"""Configuration classes for multigrid hierarchy and solver settings."""

import json
import yaml
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional, Union
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


@dataclass
class HierarchyConfig:
    """Configuration for building the coarsening hierarchy."""
    max_levels: int = 20
    coarsest_size: int = 32

    def validate(self) -> None:
        """Validate hierarchy configuration."""
        if self.max_levels < 1:
            raise ValueError("Must allow at least 1 level")

        if self.coarsest_size < 1:
            raise ValueError("Coarsest size must be positive")


@dataclass
class SolverConfig:
    """Configuration for the V-cycle solver."""
    max_iterations: int = 100
    tolerance: float = 1e-8
    constraint_tolerance: float = 1e-8
    pre_smooth_iterations: int = 2
    post_smooth_iterations: int = 2
    smoother_type: str = "jacobi"
    smoother_relaxation: Optional[float] = None
    max_condition_number: float = 1e14
    verify_operators: bool = False
    adjoint_tolerance: float = 1e-10

    def validate(self) -> None:
        """Validate solver configuration."""
        if self.max_iterations <= 0:
            raise ValueError("Max iterations must be positive")

        if self.tolerance <= 0 or self.constraint_tolerance <= 0:
            raise ValueError("Tolerance must be positive")

        if self.pre_smooth_iterations < 0 or self.post_smooth_iterations < 0:
            raise ValueError("Smoothing iterations must be non-negative")

        valid_smoothers = ["jacobi", "gauss_seidel", "symmetric_gauss_seidel", "richardson"]
        if self.smoother_type not in valid_smoothers:
            raise ValueError(f"Invalid smoother type: {self.smoother_type}")

        if self.smoother_relaxation is not None and not 0 < self.smoother_relaxation <= 2:
            logger.warning(f"Relaxation parameter {self.smoother_relaxation} may cause instability")

        if self.max_condition_number <= 1:
            raise ValueError("Max condition number must exceed 1")


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_output: Optional[str] = None
    console_output: bool = True
    colored_console: bool = False

    def validate(self) -> None:
        """Validate logging configuration."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level not in valid_levels:
            raise ValueError(f"Invalid logging level: {self.level}")


@dataclass
class MultigridConfig:
    """Complete configuration for a multigrid hierarchy."""
    hierarchy: HierarchyConfig = None
    solver: SolverConfig = None
    logging: LoggingConfig = None

    def __post_init__(self):
        """Initialize default configurations if not provided."""
        if self.hierarchy is None:
            self.hierarchy = HierarchyConfig()
        if self.solver is None:
            self.solver = SolverConfig()
        if self.logging is None:
            self.logging = LoggingConfig()

    def validate(self) -> None:
        """Validate all configuration sections."""
        self.hierarchy.validate()
        self.solver.validate()
        self.logging.validate()

        if self.hierarchy.max_levels == 1 and self.solver.pre_smooth_iterations > 0:
            logger.info("Single-level hierarchy: smoothing settings are unused, "
                        "every solve is direct")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'MultigridConfig':
        """Create configuration from dictionary."""
        config = cls()

        if 'hierarchy' in config_dict:
            config.hierarchy = HierarchyConfig(**config_dict['hierarchy'])

        if 'solver' in config_dict:
            config.solver = SolverConfig(**config_dict['solver'])

        if 'logging' in config_dict:
            config.logging = LoggingConfig(**config_dict['logging'])

        return config

    @classmethod
    def from_json(cls, json_path: Union[str, Path]) -> 'MultigridConfig':
        """Load configuration from JSON file."""
        json_path = Path(json_path)

        if not json_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {json_path}")

        with open(json_path, 'r') as f:
            config_dict = json.load(f)

        config = cls.from_dict(config_dict)
        config.validate()

        logger.info(f"Loaded configuration from {json_path}")
        return config

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> 'MultigridConfig':
        """Load configuration from YAML file."""
        yaml_path = Path(yaml_path)

        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        config = cls.from_dict(config_dict)
        config.validate()

        logger.info(f"Loaded configuration from {yaml_path}")
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            'hierarchy': asdict(self.hierarchy),
            'solver': asdict(self.solver),
            'logging': asdict(self.logging)
        }

    def to_json(self, json_path: Union[str, Path], indent: int = 2) -> None:
        """Save configuration to JSON file."""
        json_path = Path(json_path)
        json_path.parent.mkdir(parents=True, exist_ok=True)

        with open(json_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=indent)

        logger.info(f"Saved configuration to {json_path}")

    def to_yaml(self, yaml_path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        yaml_path = Path(yaml_path)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)

        with open(yaml_path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, indent=2)

        logger.info(f"Saved configuration to {yaml_path}")

    def setup_logging(self) -> None:
        """Setup logging based on configuration."""
        from ..utils.logging_utils import setup_logging

        numeric_level = getattr(logging, self.logging.level.upper(), None)
        if not isinstance(numeric_level, int):
            raise ValueError(f'Invalid log level: {self.logging.level}')

        setup_logging(
            level=numeric_level,
            format_string=self.logging.format,
            log_file=self.logging.file_output,
            console_output=self.logging.console_output,
            colored_console=self.logging.colored_console
        )

    def __str__(self) -> str:
        """String representation of configuration."""
        return (f"MultigridConfig(max_levels={self.hierarchy.max_levels}, "
                f"coarsest_size={self.hierarchy.coarsest_size}, "
                f"smoother={self.solver.smoother_type})")


def create_default_config() -> MultigridConfig:
    """Create default configuration."""
    return MultigridConfig()


def create_accuracy_config() -> MultigridConfig:
    """Create configuration optimized for accuracy."""
    config = MultigridConfig()
    config.solver.tolerance = 1e-12
    config.solver.constraint_tolerance = 1e-12
    config.solver.max_iterations = 300
    config.solver.pre_smooth_iterations = 3
    config.solver.post_smooth_iterations = 3
    config.solver.smoother_type = "symmetric_gauss_seidel"
    config.solver.verify_operators = True

    return config
