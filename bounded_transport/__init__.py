"""
Bounded transport correction engine.

One implicit Euler step of d(rho psi)/dt + div(phi psi) = Su + Sp psi with a
limited corrective face flux that keeps psi inside local and global bounds
while conserving the transported quantity.
"""

from .grid import FVMesh, BoundaryPatch, MeshError
from .numerics import BoundsError, CellBounds, compute_bounds, limit_face
from .solvers import (
    LinearSolveError,
    SolverStageError,
    SolveStage,
    BoundedSolveResult,
    UpwindRealizer,
    SerialExchange,
    bounded_solve,
    bounded_solve_unit_density,
)
from .config import BoundedSolverConfig

__all__ = [
    # Mesh
    'FVMesh',
    'BoundaryPatch',
    'MeshError',
    # Bounds and limiter
    'BoundsError',
    'CellBounds',
    'compute_bounds',
    'limit_face',
    # Solver
    'LinearSolveError',
    'SolverStageError',
    'SolveStage',
    'BoundedSolveResult',
    'UpwindRealizer',
    'SerialExchange',
    'bounded_solve',
    'bounded_solve_unit_density',
    'BoundedSolverConfig',
]
