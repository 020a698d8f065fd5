"""Convergence visualization tools for residual history and hierarchy structure."""

import numpy as np
import matplotlib.pyplot as plt
from typing import Dict, List, Optional, Any, Sequence
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


class ConvergencePlotter:
    """
    Plots for multigrid solves.

    Takes the dictionaries returned by ``MultigridHierarchy.get_convergence_info``.
    """

    def __init__(self, output_dir: Optional[str] = None):
        """Initialize convergence plotter."""
        self.output_dir = Path(output_dir) if output_dir else None
        if self.output_dir is not None:
            self.output_dir.mkdir(parents=True, exist_ok=True)

        self.markers = ['o', 's', '^', 'v', 'D', '<', '>', 'p']

    def plot_residual_history(
        self,
        runs: Dict[str, Dict[str, Any]],
        title: str = "V-cycle Convergence",
        tolerance: Optional[float] = None,
        save_name: Optional[str] = None
    ) -> plt.Figure:
        """
        Plot relative residual per V-cycle for one or more solves.

        Args:
            runs: Dict of {label: convergence_info}
            title: Plot title
            tolerance: Draw the tolerance as a horizontal line
            save_name: Filename to save under ``output_dir``

        Returns:
            Matplotlib figure object
        """
        fig, ax = plt.subplots(figsize=(8, 6))

        for i, (label, info) in enumerate(runs.items()):
            residuals = np.asarray(info["residual_history"])
            if residuals.size == 0:
                logger.warning(f"No residual history for run '{label}'")
                continue

            iterations = np.arange(1, residuals.size + 1)
            rate = info.get("convergence_rate", 0.0)
            legend = f"{label} (ρ ≈ {rate:.3f})" if rate else label
            ax.semilogy(iterations, residuals, marker=self.markers[i % len(self.markers)],
                        linewidth=2, label=legend)

            constraints = [c for c in info.get("constraint_history", []) if c is not None]
            if constraints:
                ax.semilogy(iterations[-len(constraints):], constraints, linestyle=':',
                            linewidth=1.5, label=f"{label} constraints (max)")

        if tolerance is not None:
            ax.axhline(tolerance, color='k', linestyle='--', alpha=0.7, label='tolerance')

        ax.set_xlabel("V-cycle", fontsize=12)
        ax.set_ylabel("Relative residual", fontsize=12)
        ax.set_title(title, fontsize=14)
        ax.grid(True, alpha=0.3)
        if ax.get_legend_handles_labels()[0]:
            ax.legend(loc='best')

        fig.tight_layout()

        if save_name:
            self._save_figure(fig, save_name)

        return fig

    def plot_level_sizes(
        self,
        level_sizes: Sequence[int],
        constrained_levels: Optional[List[int]] = None,
        save_name: Optional[str] = None
    ) -> plt.Figure:
        """Bar chart of rows per level, finest first."""
        constrained_levels = set(constrained_levels or [])
        fig, ax = plt.subplots(figsize=(8, 4))

        indices = np.arange(len(level_sizes))
        colors = ['tab:orange' if i in constrained_levels else 'tab:blue' for i in indices]
        ax.bar(indices, level_sizes, color=colors)

        ax.set_xticks(indices)
        ax.set_xlabel("Level (0 = finest)")
        ax.set_ylabel("Rows")
        ax.set_yscale('log')
        ax.set_title("Multigrid hierarchy")
        fig.tight_layout()

        if save_name:
            self._save_figure(fig, save_name)

        return fig

    def _save_figure(self, fig: plt.Figure, save_name: str) -> Path:
        if self.output_dir is None:
            raise ValueError("ConvergencePlotter was created without an output directory")

        path = self.output_dir / save_name
        fig.savefig(path, dpi=150, bbox_inches='tight')
        logger.info(f"Saved figure to {path}")
        return path
