"""Utility functions for multigrid solvers."""

from .logging_utils import setup_logging, get_logger, LoggingContext, silence_logger, debug_logging

__all__ = [
    "setup_logging",
    "get_logger",
    "LoggingContext",
    "silence_logger",
    "debug_logging",
]
