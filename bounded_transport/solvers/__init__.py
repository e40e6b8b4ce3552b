"""
Solver components for bounded scalar transport.

This package provides:
    - Upwind implicit realizer (direct or GMRES linear solve)
    - Halo exchange contract
    - Implicit bounded solver loop
    - Factory helpers for realizers and demo cases
"""

from .realizer import (
    LinearSolveError,
    TransportEquation,
    LinearSystemRealizer,
    UpwindRealizer,
)

from .exchange import (
    HaloExchange,
    SerialExchange,
    check_exchange,
    exchange_boundary_values,
)

from .factory import (
    AdvectionCase,
    create_realizer,
    build_case,
)

from .bounded_solver import (
    SolveStage,
    SolverStageError,
    IterationRecord,
    BoundedSolveResult,
    bounded_solve,
    bounded_solve_unit_density,
)

__all__ = [
    # Realizer
    'LinearSolveError',
    'TransportEquation',
    'LinearSystemRealizer',
    'UpwindRealizer',
    # Exchange
    'HaloExchange',
    'SerialExchange',
    'check_exchange',
    'exchange_boundary_values',
    # Factory
    'AdvectionCase',
    'create_realizer',
    'build_case',
    # Bounded solver
    'SolveStage',
    'SolverStageError',
    'IterationRecord',
    'BoundedSolveResult',
    'bounded_solve',
    'bounded_solve_unit_density',
]
