"""
Basic example: Solve a 1D Poisson problem with constraints using V-cycles.

Problem 1: -u'' = f on [0,1], u(0) = u(1) = 0 imposed by pinning both ends
           Exact solution: u(x) = sin(πx)
Problem 2: -u'' = f on [0,1], u'(0) = u'(1) = 0, mean(u) = 0
           Exact solution: u(x) = cos(πx)

Both are saddle-point systems; the hierarchy solves them in null-space form.
"""

import numpy as np
import matplotlib.pyplot as plt
import sys
from pathlib import Path

# Add src to Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gmultigrid import ChainDomain, MultigridHierarchy, MultigridConfig
from gmultigrid.constraints import pin_vertices, mean_value
from gmultigrid.visualization import ConvergencePlotter


def lumped_mass(x):
    """Row sums of the linear finite element mass matrix."""
    h = np.diff(x)
    mass = np.zeros_like(x)
    mass[:-1] += 0.5 * h
    mass[1:] += 0.5 * h
    return mass


def solve_problem(label, domain, rhs, exact, config):
    hierarchy = MultigridHierarchy(domain, config=config, verbose=True)
    solution = hierarchy.solve(rhs)
    info = hierarchy.get_convergence_info()

    error = solution - exact
    print(f"\n{label}")
    print(f"  Levels: {' -> '.join(str(n) for n in info['level_sizes'])}")
    print(f"  Converged: {info['converged']} in {info['iterations']} V-cycles")
    print(f"  Final residual: {info['final_residual']:.2e}")
    print(f"  Convergence rate: {info['convergence_rate']:.3f}")
    print(f"  Max error vs exact: {np.max(np.abs(error)):.2e}")
    print(f"  Lagrange multipliers: {np.array2string(info['lagrange_multipliers'], precision=3)}")

    return solution, info


def main():
    """Solve both constrained problems and plot the results."""

    print("=" * 60)
    print("Geometric Multigrid - Constrained 1D Poisson Example")
    print("=" * 60)

    n = 129
    x = np.linspace(0.0, 1.0, n)
    mass = lumped_mass(x)

    config = MultigridConfig()
    config.hierarchy.coarsest_size = 5
    config.solver.tolerance = 1e-10
    config.setup_logging()

    # Problem 1: homogeneous ends pinned on a Neumann chain
    pinned = ChainDomain(x, boundary="neumann", constraints=pin_vertices(n, [0, n - 1]))
    rhs = mass * np.pi**2 * np.sin(np.pi * x)
    u_pinned, info_pinned = solve_problem("Pinned ends", pinned, rhs, np.sin(np.pi * x), config)

    # Problem 2: pure Neumann, constant mode removed by the mean constraint
    floating = ChainDomain(x, boundary="neumann", constraints=mean_value(n, weights=mass))
    rhs = mass * np.pi**2 * np.cos(np.pi * x)
    u_mean, info_mean = solve_problem("Zero mean", floating, rhs, np.cos(np.pi * x), config)

    create_plots(x, u_pinned, u_mean, {"pinned ends": info_pinned, "zero mean": info_mean},
                 config.solver.tolerance)

    return u_pinned, u_mean


def create_plots(x, u_pinned, u_mean, runs, tolerance):
    """Plot solutions and convergence histories."""
    output_dir = Path(__file__).parent / "output"

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(x, u_pinned, label="pinned ends")
    ax.plot(x, np.sin(np.pi * x), 'k:', label="sin(πx)")
    ax.plot(x, u_mean, label="zero mean")
    ax.plot(x, np.cos(np.pi * x), 'k--', label="cos(πx)")
    ax.set_xlabel("x")
    ax.set_ylabel("u")
    ax.grid(True, alpha=0.3)
    ax.legend()

    output_dir.mkdir(exist_ok=True)
    fig.savefig(output_dir / "constrained_chain_solutions.png", dpi=150, bbox_inches='tight')
    plt.close(fig)

    plotter = ConvergencePlotter(output_dir=str(output_dir))
    fig = plotter.plot_residual_history(runs, tolerance=tolerance,
                                        save_name="constrained_chain_convergence.png")
    plt.close(fig)

    print(f"\nPlots saved to: {output_dir}")


if __name__ == "__main__":
    main()
