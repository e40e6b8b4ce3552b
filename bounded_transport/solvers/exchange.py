"""
Halo exchange contract for partitioned meshes.

The bounded solver calls the exchange once per iteration: a barrier, then
the cell values seen across every processor patch, and a global reduction
for the convergence decision. Only the contract lives here; partitioning
and communication are provided by the caller.
"""

from typing import Optional, Protocol

import numpy as np

from bounded_transport.constants import PROCESSOR
from bounded_transport.grid.mesh import FVMesh, BoundaryPatch, MeshError


class HaloExchange(Protocol):
    """Communication primitives used by the bounded solver."""

    def exchange(self, patch: BoundaryPatch, cell_values: np.ndarray) -> np.ndarray:
        """Values of the remote cells adjacent to each face of `patch`."""
        ...

    def barrier(self) -> None:
        ...

    def global_max(self, value: float) -> float:
        ...

    def global_min(self, value: float) -> float:
        ...


class SerialExchange:
    """Single-process exchange: no remote partitions."""

    def exchange(self, patch: BoundaryPatch, cell_values: np.ndarray) -> np.ndarray:
        raise MeshError(
            f"Patch '{patch.name}' is a processor patch but the run is serial"
        )

    def barrier(self) -> None:
        pass

    def global_max(self, value: float) -> float:
        return value

    def global_min(self, value: float) -> float:
        return value


def check_exchange(mesh: FVMesh, exchange: Optional[HaloExchange]) -> HaloExchange:
    """Return a usable exchange for the mesh, raising MeshError if none exists."""
    if exchange is None:
        exchange = SerialExchange()
    if mesh.has_processor_patches and isinstance(exchange, SerialExchange):
        names = [p.name for p in mesh.patches if p.kind == PROCESSOR]
        raise MeshError(f"Processor patches {names} need a halo exchange")
    return exchange


def exchange_boundary_values(mesh: FVMesh, exchange: HaloExchange,
                             psi: np.ndarray,
                             boundary_values: Optional[np.ndarray] = None) -> np.ndarray:
    """Boundary values with processor faces filled from the exchange."""
    values = mesh.resolve_boundary_values(psi, boundary_values)
    for patch, sl in mesh.patch_slices():
        if patch.kind == PROCESSOR:
            values[sl] = exchange.exchange(patch, psi)
    return values
