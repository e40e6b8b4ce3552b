"""
Courant numbers of a face flux.

Face Courant number:
    Co_f = |phi_f| dt / (rho_f V_f),   V_f = min(V_owner, V_neighbour)

Cell Courant number:
    Co_c = 0.5 * dt * sum_f |phi_f| / (rho_c V_c)

The implicit bounded solve needs more re-limiting passes as Co grows,
because the implicit response carries the correction further downstream
than a one-cell explicit prediction assumes.
"""

import numpy as np
import numpy.typing as npt

from bounded_transport.grid.mesh import FVMesh

NDArrayFloat = npt.NDArray[np.floating]


def face_courant(mesh: FVMesh, phi: NDArrayFloat, rho: NDArrayFloat,
                 delta_t: float) -> NDArrayFloat:
    """Courant number of every face, in the mesh face layout."""
    vol = mesh.volumes
    bc = mesh.boundary_cells

    volume_f = np.concatenate([
        np.minimum(vol[mesh.owner], vol[mesh.neighbour]),
        vol[bc],
    ])
    rho_f = np.concatenate([
        0.5 * (rho[mesh.owner] + rho[mesh.neighbour]),
        rho[bc],
    ])
    return np.abs(phi) * delta_t / (rho_f * volume_f)


def cell_courant(mesh: FVMesh, phi: NDArrayFloat, rho: NDArrayFloat,
                 delta_t: float) -> NDArrayFloat:
    """Courant number of every cell."""
    n_int = mesh.n_internal
    abs_phi = np.abs(phi)
    sum_phi = np.zeros(mesh.n_cells)
    np.add.at(sum_phi, mesh.owner, abs_phi[:n_int])
    np.add.at(sum_phi, mesh.neighbour, abs_phi[:n_int])
    np.add.at(sum_phi, mesh.boundary_cells, abs_phi[n_int:])
    return 0.5 * delta_t * sum_phi / (rho * mesh.volumes)


def courant_lambda(face_co: NDArrayFloat, coefficient: float) -> NDArrayFloat:
    """Initial limiter coefficient 1 / max(coefficient * Co_f, 1).

    A coefficient <= 0 disables the Courant-based start (all ones).
    """
    if coefficient <= 0.0:
        return np.ones_like(face_co)
    return 1.0 / np.maximum(coefficient * face_co, 1.0)
