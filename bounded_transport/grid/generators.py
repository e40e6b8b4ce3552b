"""
Simple mesh generators for tests and demonstration cases.

- chain_mesh: 1-D row of cells with an inlet and an outlet patch
- ring_mesh: periodic 1-D row of cells (no boundary)
- cartesian_mesh: 2-D structured block with four fixedValue walls

Each generator that prescribes a flow also provides a matching
divergence-free face flux.
"""

import numpy as np
from typing import Optional, Sequence

from bounded_transport.constants import FIXED_VALUE, ZERO_GRADIENT
from bounded_transport.grid.mesh import FVMesh, BoundaryPatch, MeshError


def chain_mesh(n_cells: int, length: float = 1.0,
               inlet_value: float = 0.0,
               volumes: Optional[Sequence[float]] = None) -> FVMesh:
    """1-D chain of cells: inlet | 0 | 1 | ... | n-1 | outlet.

    Internal face f joins cell f (owner) to cell f+1 (neighbour). The inlet
    is a fixedValue patch on cell 0, the outlet a zeroGradient patch on the
    last cell. Boundary face order is [inlet, outlet].
    """
    if n_cells < 1:
        raise MeshError(f"chain_mesh needs at least one cell, got {n_cells}")
    if volumes is None:
        volumes = np.full(n_cells, length / n_cells)
    owner = np.arange(n_cells - 1)
    neighbour = np.arange(1, n_cells)
    patches = [
        BoundaryPatch("inlet", [0], kind=FIXED_VALUE, value=inlet_value),
        BoundaryPatch("outlet", [n_cells - 1], kind=ZERO_GRADIENT),
    ]
    return FVMesh(owner, neighbour, volumes, patches)


def chain_flux(mesh: FVMesh, flux: float) -> np.ndarray:
    """Uniform flux along a chain_mesh (positive: inlet -> outlet).

    Boundary faces are oriented outward, so the inlet carries -flux.
    """
    phi = np.full(mesh.n_faces, float(flux))
    phi[mesh.patch_face_slice("inlet")] = -float(flux)
    return phi


def ring_mesh(n_cells: int, volume: float = 1.0) -> FVMesh:
    """Periodic chain: face f joins cell f to cell (f+1) mod n."""
    if n_cells < 3:
        raise MeshError(f"ring_mesh needs at least three cells, got {n_cells}")
    owner = np.arange(n_cells)
    neighbour = (owner + 1) % n_cells
    return FVMesh(owner, neighbour, np.full(n_cells, float(volume)))


def cartesian_mesh(nx: int, ny: int, lx: float = 1.0, ly: float = 1.0,
                   boundary_value: float = 0.0) -> FVMesh:
    """2-D structured block of nx x ny cells, cell index c = j*nx + i.

    Internal faces: x-faces (i,j)->(i+1,j) first, then y-faces (i,j)->(i,j+1).
    Patches: left, right, bottom, top, all fixedValue `boundary_value`.
    """
    if nx < 1 or ny < 1:
        raise MeshError(f"cartesian_mesh needs nx, ny >= 1, got {nx} x {ny}")
    dx = lx / nx
    dy = ly / ny
    index = np.arange(nx * ny).reshape(ny, nx)

    x_owner = index[:, :-1].ravel()
    x_neighbour = index[:, 1:].ravel()
    y_owner = index[:-1, :].ravel()
    y_neighbour = index[1:, :].ravel()

    patches = [
        BoundaryPatch("left", index[:, 0], kind=FIXED_VALUE, value=boundary_value),
        BoundaryPatch("right", index[:, -1], kind=FIXED_VALUE, value=boundary_value),
        BoundaryPatch("bottom", index[0, :], kind=FIXED_VALUE, value=boundary_value),
        BoundaryPatch("top", index[-1, :], kind=FIXED_VALUE, value=boundary_value),
    ]
    return FVMesh(
        np.concatenate([x_owner, y_owner]),
        np.concatenate([x_neighbour, y_neighbour]),
        np.full(nx * ny, dx * dy),
        patches,
    )


def cartesian_flux(nx: int, ny: int, u: float, v: float,
                   lx: float = 1.0, ly: float = 1.0) -> np.ndarray:
    """Face flux of a uniform velocity (u, v) on a cartesian_mesh."""
    dx = lx / nx
    dy = ly / ny
    n_x_faces = (nx - 1) * ny
    n_y_faces = nx * (ny - 1)
    return np.concatenate([
        np.full(n_x_faces, u * dy),
        np.full(n_y_faces, v * dx),
        np.full(ny, -u * dy),   # left
        np.full(ny, u * dy),    # right
        np.full(nx, -v * dx),   # bottom
        np.full(nx, v * dx),    # top
    ])
