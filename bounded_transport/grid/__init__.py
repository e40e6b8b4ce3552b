"""
Mesh connectivity for the bounded transport engine.

This module provides:
- FVMesh / BoundaryPatch: owner/neighbour connectivity with validation
- Generators for 1-D chains, periodic rings and 2-D cartesian blocks
"""

from .mesh import (
    FVMesh,
    BoundaryPatch,
    MeshError,
)

from .generators import (
    chain_mesh,
    chain_flux,
    ring_mesh,
    cartesian_mesh,
    cartesian_flux,
)

__all__ = [
    # Connectivity
    'FVMesh',
    'BoundaryPatch',
    'MeshError',
    # Generators
    'chain_mesh',
    'chain_flux',
    'ring_mesh',
    'cartesian_mesh',
    'cartesian_flux',
]
