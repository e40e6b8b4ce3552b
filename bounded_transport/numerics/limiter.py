"""
Face correction limiter.

Computes a coefficient lambda_f in [0, prior_f] per face so that the limited
corrective flux lambda_f * phiCorr_f cannot push either incident cell out of
its bounds in an explicit update from the reference field psi:

    psi_i' = psi_i + dt/(rho_i V_i) * (sum of admitted inflow - admitted outflow)

Sign Convention:
    - phiCorr_f > 0 drains the owner (lower bound) and feeds the neighbour
      (upper bound); phiCorr_f < 0 the reverse
    - Boundary faces are limited by their owner; processor faces also by the
      fraction of the remote cell, received through the halo exchange

Sweeps:
    1. One-pass Zalesak limit: each cell admits the fraction of its total
       requested inflow (outflow) that fits below its upper (above its lower)
       bound. Always explicit-bounded.
    2+. Relaxation: the outflow (inflow) admitted by the previous sweep is
       counted as extra room for inflow (outflow). Coefficients form a
       non-decreasing sequence and every sweep stays explicit-bounded.

Reference: Zalesak (1979), "Fully multidimensional flux-corrected transport
algorithms for fluids", J. Comput. Phys. 31, 335-362.
"""

import numpy as np
import numpy.typing as npt
from numba import njit
from typing import NamedTuple, Optional, Tuple

from bounded_transport.constants import PROCESSOR
from bounded_transport.grid.mesh import FVMesh
from bounded_transport.numerics.bounds import CellBounds

NDArrayFloat = npt.NDArray[np.floating]


class CellPrediction(NamedTuple):
    """Current value of a cell and its predicted extremes.

    lowest: value after all requested outgoing correction.
    highest: value after all requested incoming correction.
    """
    value: float
    lowest: float
    highest: float


# =============================================================================
# Scalar kernels
# =============================================================================

@njit(cache=True)
def _gain_fraction(value, highest, upper):
    """Fraction of the requested inflow that keeps value <= upper."""
    if highest <= upper:
        return 1.0
    if value >= upper:
        return 0.0
    return (upper - value) / (highest - value)


@njit(cache=True)
def _loss_fraction(value, lowest, lower):
    """Fraction of the requested outflow that keeps value >= lower."""
    if lowest >= lower:
        return 1.0
    if value <= lower:
        return 0.0
    return (value - lower) / (value - lowest)


@njit(cache=True)
def _face_coefficient(flux, owner_gain, owner_loss, neighbour_gain,
                      neighbour_loss, prior):
    if flux > 0.0:
        return min(owner_loss, neighbour_gain, prior)
    if flux < 0.0:
        return min(owner_gain, neighbour_loss, prior)
    return prior


def limit_face(requested_flux: float,
               owner_bounds: Tuple[float, float],
               neighbour_bounds: Tuple[float, float],
               owner_value: CellPrediction,
               neighbour_value: CellPrediction,
               prior_coefficient: float = 1.0) -> float:
    """Limiting coefficient of a single face.

    Parameters
    ----------
    requested_flux : float
        Corrective flux, positive from owner to neighbour.
    owner_bounds, neighbour_bounds : (lower, upper)
        Admissible interval of each incident cell.
    owner_value, neighbour_value : CellPrediction
        Current value and predicted extremes of each incident cell.
    prior_coefficient : float
        Coefficient from the previous iteration; the result never exceeds it.

    Returns
    -------
    float in [0, prior_coefficient]
    """
    if requested_flux == 0.0:
        return float(prior_coefficient)

    o_lower, o_upper = owner_bounds
    n_lower, n_upper = neighbour_bounds
    return float(_face_coefficient(
        requested_flux,
        _gain_fraction(owner_value.value, owner_value.highest, o_upper),
        _loss_fraction(owner_value.value, owner_value.lowest, o_lower),
        _gain_fraction(neighbour_value.value, neighbour_value.highest, n_upper),
        _loss_fraction(neighbour_value.value, neighbour_value.lowest, n_lower),
        prior_coefficient,
    ))


# =============================================================================
# Vectorised kernels
# =============================================================================

@njit(cache=True)
def _accumulate(flux, weight, owner, neighbour, boundary_cells, n_cells):
    """Per-cell sums of weighted incoming and outgoing face flux."""
    flux_in = np.zeros(n_cells)
    flux_out = np.zeros(n_cells)
    n_int = owner.shape[0]

    for f in range(n_int):
        q = weight[f] * flux[f]
        if q > 0.0:
            flux_out[owner[f]] += q
            flux_in[neighbour[f]] += q
        elif q < 0.0:
            flux_in[owner[f]] -= q
            flux_out[neighbour[f]] -= q

    for b in range(boundary_cells.shape[0]):
        q = weight[n_int + b] * flux[n_int + b]
        if q > 0.0:
            flux_out[boundary_cells[b]] += q
        elif q < 0.0:
            flux_in[boundary_cells[b]] -= q

    return flux_in, flux_out


@njit(cache=True)
def _cell_fractions(value, flux_in, flux_out, rdt_mass, lower, upper,
                    room_gain, room_loss):
    """Admissible inflow/outflow fraction of every cell."""
    n = value.shape[0]
    gain = np.ones(n)
    loss = np.ones(n)

    for i in range(n):
        v = value[i]
        c = rdt_mass[i]
        upper_eff = v + max(upper[i] - v, 0.0) + room_gain[i] / c
        lower_eff = v - max(v - lower[i], 0.0) - room_loss[i] / c
        gain[i] = _gain_fraction(v, v + flux_in[i] / c, upper_eff)
        loss[i] = _loss_fraction(v, v - flux_out[i] / c, lower_eff)

    return gain, loss


@njit(cache=True)
def _face_coefficients(flux, prior, owner, neighbour, boundary_cells,
                       gain, loss, remote_gain, remote_loss):
    n_int = owner.shape[0]
    coeff = np.empty(flux.shape[0])

    for f in range(n_int):
        o = owner[f]
        n = neighbour[f]
        coeff[f] = _face_coefficient(flux[f], gain[o], loss[o], gain[n], loss[n], prior[f])

    for b in range(boundary_cells.shape[0]):
        f = n_int + b
        c = boundary_cells[b]
        coeff[f] = _face_coefficient(flux[f], gain[c], loss[c],
                                     remote_gain[b], remote_loss[b], prior[f])

    return coeff


# =============================================================================
# Public API
# =============================================================================

def _remote_fractions(mesh: FVMesh, gain: NDArrayFloat, loss: NDArrayFloat,
                      exchange) -> Tuple[NDArrayFloat, NDArrayFloat]:
    """Fractions of the cells on the far side of each boundary face."""
    remote_gain = np.ones(mesh.n_boundary)
    remote_loss = np.ones(mesh.n_boundary)
    if exchange is None:
        return remote_gain, remote_loss

    for patch, sl in mesh.patch_slices():
        if patch.kind == PROCESSOR:
            remote_gain[sl] = exchange.exchange(patch, gain)
            remote_loss[sl] = exchange.exchange(patch, loss)
    return remote_gain, remote_loss


def limit_corrections(mesh: FVMesh, phi_corr: NDArrayFloat, psi_ref: NDArrayFloat,
                      bounds: CellBounds, rdt_mass: NDArrayFloat,
                      prior: Optional[NDArrayFloat] = None,
                      n_limiter_iter: int = 3,
                      exchange=None) -> NDArrayFloat:
    """Limiting coefficients of all faces.

    Parameters
    ----------
    mesh : FVMesh
        Connectivity.
    phi_corr : ndarray, shape (n_faces,)
        Requested corrective flux.
    psi_ref : ndarray, shape (n_cells,)
        Field the explicit predictions start from.
    bounds : CellBounds
        Admissible interval per cell.
    rdt_mass : ndarray, shape (n_cells,)
        rho * V / dt per cell; converts flux to a change of psi.
    prior : ndarray, shape (n_faces,), optional
        Upper cap per face (previous coefficients). Defaults to ones.
    n_limiter_iter : int
        Total sweeps: one Zalesak pass followed by relaxation passes.
    exchange : HaloExchange, optional
        Supplies remote fractions on processor faces.

    Returns
    -------
    lam : ndarray, shape (n_faces,)
        Coefficients in [0, prior].
    """
    n_cells = mesh.n_cells
    flux = np.ascontiguousarray(phi_corr, dtype=np.float64)
    value = np.ascontiguousarray(psi_ref, dtype=np.float64)
    rdt_mass = np.ascontiguousarray(rdt_mass, dtype=np.float64)
    prior = np.ones(mesh.n_faces) if prior is None else np.ascontiguousarray(prior, dtype=np.float64)
    lower = np.ascontiguousarray(bounds.lower, dtype=np.float64)
    upper = np.ascontiguousarray(bounds.upper, dtype=np.float64)

    flux_in, flux_out = _accumulate(flux, np.ones(mesh.n_faces), mesh.owner,
                                    mesh.neighbour, mesh.boundary_cells, n_cells)
    room_gain = np.zeros(n_cells)
    room_loss = np.zeros(n_cells)
    lam = prior.copy()

    for _ in range(max(n_limiter_iter, 1)):
        gain, loss = _cell_fractions(value, flux_in, flux_out, rdt_mass, lower, upper,
                                     room_gain, room_loss)
        remote_gain, remote_loss = _remote_fractions(mesh, gain, loss, exchange)
        lam = _face_coefficients(flux, prior, mesh.owner, mesh.neighbour,
                                 mesh.boundary_cells, gain, loss,
                                 remote_gain, remote_loss)
        # Admitted correction becomes room for the opposite direction
        room_loss, room_gain = _accumulate(flux, lam, mesh.owner, mesh.neighbour,
                                           mesh.boundary_cells, n_cells)

    return lam
