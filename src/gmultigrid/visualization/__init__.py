"""Visualization of multigrid convergence and hierarchy structure."""

from .convergence_plots import ConvergencePlotter

__all__ = ["ConvergencePlotter"]
