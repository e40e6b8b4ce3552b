"""
Numerical kernels for bounded scalar transport.

This module provides:
- Upwind and corrective face fluxes
- Face and cell Courant numbers
- Local bounds and violation checks
- Face correction limiter
"""

from .fluxes import (
    upwind_face_flux,
    correction_flux,
    net_outflow,
    face_contributions,
    boundary_net_outflow,
    total_quantity,
)

from .courant import (
    face_courant,
    cell_courant,
    courant_lambda,
)

from .bounds import (
    BoundsError,
    CellBounds,
    check_bound_order,
    compute_bounds,
    find_violations,
    bound_violation,
    max_violation,
    global_unboundedness,
    neighbourhood_minimum,
)

from .limiter import (
    CellPrediction,
    limit_face,
    limit_corrections,
)

__all__ = [
    # Fluxes
    'upwind_face_flux',
    'correction_flux',
    'net_outflow',
    'face_contributions',
    'boundary_net_outflow',
    'total_quantity',
    # Courant numbers
    'face_courant',
    'cell_courant',
    'courant_lambda',
    # Bounds
    'BoundsError',
    'CellBounds',
    'check_bound_order',
    'compute_bounds',
    'find_violations',
    'bound_violation',
    'max_violation',
    'global_unboundedness',
    'neighbourhood_minimum',
    # Limiter
    'CellPrediction',
    'limit_face',
    'limit_corrections',
]
