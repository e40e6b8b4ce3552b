"""
Tests for PDF plotting with the Agg backend.
"""

import numpy as np

from bounded_transport.io.plotting import plot_profiles, plot_iteration_history


def test_plot_profiles(tmp_path):
    x = np.linspace(0.0, 1.0, 20)
    path = plot_profiles(x, {'initial': np.sin(x), 'final': np.cos(x)},
                         str(tmp_path / "out"), "case", bounds=(0.0, 1.0))
    assert path.endswith("case_profiles.pdf")
    assert (tmp_path / "out" / "case_profiles.pdf").stat().st_size > 0


def test_plot_iteration_history(tmp_path):
    path = plot_iteration_history([1, 2, 3], [0.0, 1e-3, 0.0], str(tmp_path), "case")
    assert path.endswith("case_history.pdf")
    assert (tmp_path / "case_history.pdf").exists()


def test_plot_iteration_history_empty(tmp_path):
    assert plot_iteration_history([], [], str(tmp_path)) is None
    assert not any(tmp_path.iterdir())
