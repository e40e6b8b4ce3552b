"""
Visualization utilities for bounded transport runs.

This module provides functions for plotting field profiles and the
per-step iteration history of the bounded solver.
"""

import os
import numpy as np
from typing import Dict, List, Optional, Sequence
from pathlib import Path

# Lazy import matplotlib to avoid issues when not installed
_plt = None


def _ensure_matplotlib():
    """Ensure matplotlib is available and configured."""
    global _plt
    if _plt is None:
        import matplotlib
        matplotlib.use('Agg')  # Non-interactive backend
        import matplotlib.pyplot as plt
        _plt = plt
    return _plt


def plot_profiles(x: np.ndarray, profiles: Dict[str, np.ndarray],
                  output_dir: str, case_name: str = "profile",
                  bounds: Optional[Sequence[float]] = None) -> str:
    """
    Plot one or more cell-centred profiles against x.

    Parameters
    ----------
    x : ndarray
        Cell centre coordinates.
    profiles : dict
        Label -> field values, one line per entry.
    output_dir : str
        Output directory for the PDF.
    case_name : str
        Base name for the output file.
    bounds : (psi_min, psi_max), optional
        Drawn as dashed horizontal lines.

    Returns
    -------
    output_path : str
        Path to saved PDF file.
    """
    plt = _ensure_matplotlib()

    fig, ax = plt.subplots(figsize=(10, 5))
    for label, values in profiles.items():
        ax.plot(x, values, '.-', lw=1.2, ms=3, label=label)

    if bounds is not None:
        for level in bounds:
            ax.axhline(level, color='k', ls='--', lw=0.8, alpha=0.6)

    ax.set_xlabel('x')
    ax.set_ylabel(r'$\psi$')
    ax.set_title('Field Profiles')
    ax.grid(True, alpha=0.3)
    ax.legend()

    plt.tight_layout()

    Path(output_dir).mkdir(parents=True, exist_ok=True)
    output_path = os.path.join(output_dir, f'{case_name}_profiles.pdf')
    plt.savefig(output_path, dpi=100)
    plt.close(fig)

    return output_path


def plot_iteration_history(iterations: List[int], violations: List[float],
                           output_dir: str,
                           case_name: str = "bounded") -> Optional[str]:
    """
    Plot bounded-solve iterations and residual violation per time step.

    Parameters
    ----------
    iterations : list of int
        Iterations used at each time step.
    violations : list of float
        Maximum bound violation left at each time step.
    output_dir : str
        Output directory.
    case_name : str
        Base name for output file.

    Returns
    -------
    output_path : str or None
        Path to saved PDF, or None if there is no data.
    """
    if len(iterations) == 0:
        return None

    plt = _ensure_matplotlib()

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(10, 7), sharex=True)
    steps = np.arange(1, len(iterations) + 1)

    ax1.step(steps, iterations, 'b-', where='mid', lw=1.5)
    ax1.set_ylabel('Iterations')
    ax1.set_title('Bounded Solve History')
    ax1.grid(True, alpha=0.3)

    # Floor keeps converged steps visible on the log axis
    ax2.semilogy(steps, np.maximum(np.asarray(violations, dtype=float), 1e-16), 'r-', lw=1.5)
    ax2.set_xlabel('Time step')
    ax2.set_ylabel('Max bound violation')
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()

    Path(output_dir).mkdir(parents=True, exist_ok=True)
    output_path = os.path.join(output_dir, f'{case_name}_history.pdf')
    plt.savefig(output_path, dpi=100)
    plt.close(fig)

    return output_path
