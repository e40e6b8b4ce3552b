"""
I/O module for bounded transport runs.

Provides PDF plots of profiles and solver history.
"""

from .plotting import plot_profiles, plot_iteration_history

__all__ = ['plot_profiles', 'plot_iteration_history']
