"""Logging utilities for multigrid solvers."""

import logging
import sys
from pathlib import Path
from typing import Optional, Union
from contextlib import contextmanager

PACKAGE_LOGGER = "gmultigrid"


class ColoredFormatter(logging.Formatter):
    """Colored console formatter for better readability."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record):
        """Add color to the level name without leaking it into other handlers."""
        original = record.levelname
        if original in self.COLORS:
            record.levelname = self.COLORS[original] + original + self.COLORS['RESET']
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup_logging(
    level: Union[str, int] = logging.INFO,
    format_string: Optional[str] = None,
    log_file: Optional[Union[str, Path]] = None,
    console_output: bool = True,
    colored_console: bool = True,
    logger_name: str = PACKAGE_LOGGER
) -> logging.Logger:
    """
    Setup logging for the multigrid package.

    Handlers are attached to the package logger rather than the root logger,
    so applications embedding the solver keep their own configuration.

    Args:
        level: Logging level
        format_string: Custom format string
        log_file: Path to log file (optional)
        console_output: Enable console output
        colored_console: Use colored console output
        logger_name: Logger to configure

    Returns:
        The configured logger
    """
    if format_string is None:
        format_string = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    package_logger = logging.getLogger(logger_name)
    package_logger.setLevel(level)

    # Clear existing handlers
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        formatter_cls = ColoredFormatter if colored_console else logging.Formatter
        console_handler.setFormatter(formatter_cls(format_string))
        package_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(format_string))
        package_logger.addHandler(file_handler)

    package_logger.info(f"Logging initialized: level={logging.getLevelName(level)}, "
                        f"console={console_output}, file={log_file is not None}")
    return package_logger


def get_logger(name: str, level: Optional[Union[str, int]] = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__)
        level: Optional override level for this logger
    """
    logger = logging.getLogger(name)

    if level is not None:
        logger.setLevel(level)

    return logger


class LoggingContext:
    """Context manager for temporary logging configuration."""

    def __init__(self, level: Union[str, int], logger_name: Optional[str] = None):
        """
        Initialize logging context.

        Args:
            level: Temporary logging level
            logger_name: Specific logger to modify (None for root)
        """
        self.new_level = level
        self.logger_name = logger_name
        self.original_level = None
        self.logger = None

    def __enter__(self):
        """Enter context - set new logging level."""
        self.logger = logging.getLogger(self.logger_name)
        self.original_level = self.logger.level
        self.logger.setLevel(self.new_level)
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context - restore original logging level."""
        if self.logger and self.original_level is not None:
            self.logger.setLevel(self.original_level)


@contextmanager
def silence_logger(logger_name: str = PACKAGE_LOGGER):
    """Context manager to temporarily silence a specific logger."""
    logger = logging.getLogger(logger_name)
    original_level = logger.level
    logger.setLevel(logging.CRITICAL + 1)
    try:
        yield logger
    finally:
        logger.setLevel(original_level)


@contextmanager
def debug_logging(logger_name: Optional[str] = PACKAGE_LOGGER):
    """Context manager to temporarily enable debug logging."""
    with LoggingContext(logging.DEBUG, logger_name) as logger:
        yield logger
