"""Bounded transport of a phase volume fraction."""

from bounded_transport.grid.mesh import FVMesh
from bounded_transport.phases.base import PhaseModel
from bounded_transport.solvers.bounded_solver import (
    BoundedSolveResult, bounded_solve_unit_density,
)


def solve_phase_fraction(phase: PhaseModel, mesh: FVMesh, phi_corr, delta_t: float,
                         sp=None, su=None, **kwargs) -> BoundedSolveResult:
    """Advance phase.alpha in place, bounded to [0, phase.alpha_max].

    Extra keyword arguments (config, realizer, exchange, boundary_values)
    are passed to the bounded solver.
    """
    return bounded_solve_unit_density(
        mesh, phase.alpha, phase.phi, phi_corr,
        phase.alpha_max, 0.0, delta_t, sp=sp, su=su, **kwargs,
    )
