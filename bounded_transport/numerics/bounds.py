"""
Local and global bounds of a cell field.

For every cell the admissible interval starts at the cell's own value, is
widened by the values of its face neighbours (internal faces, fixedValue
faces and processor faces), optionally widened by a fraction of the global
range, and finally clamped to [psi_min, psi_max]. Transport alone therefore
never creates a new local extremum.

Violation helpers compare a trial field against those intervals.
"""

import numpy as np
import numpy.typing as npt
from numba import njit
from typing import NamedTuple, Optional

from bounded_transport.constants import ZERO_GRADIENT, PROCESSOR
from bounded_transport.grid.mesh import FVMesh

NDArrayFloat = npt.NDArray[np.floating]


class BoundsError(ValueError):
    """Exception raised for malformed global bounds (psi_max < psi_min)."""
    pass


class CellBounds(NamedTuple):
    """Per-cell admissible interval [lower, upper]."""
    lower: NDArrayFloat
    upper: NDArrayFloat

    def union(self, other: "CellBounds") -> "CellBounds":
        """Smallest intervals containing both self and other."""
        return CellBounds(np.minimum(self.lower, other.lower),
                          np.maximum(self.upper, other.upper))

    def contains(self, values: NDArrayFloat, tolerance: float = 0.0) -> bool:
        return not np.any(find_violations(values, self, tolerance))


def check_bound_order(psi_max: float, psi_min: float) -> None:
    """Raise BoundsError unless psi_min <= psi_max (both finite)."""
    if not (np.isfinite(psi_max) and np.isfinite(psi_min)):
        raise BoundsError(f"Bounds must be finite, got [{psi_min}, {psi_max}]")
    if psi_max < psi_min:
        raise BoundsError(f"Upper bound {psi_max} is below lower bound {psi_min}")


# =============================================================================
# Numba Kernel
# =============================================================================

@njit(cache=True)
def _local_extrema(values, owner, neighbour, boundary_cells, boundary_values,
                   boundary_active):
    """Min/max over each cell and its face neighbours."""
    lower = values.copy()
    upper = values.copy()

    for f in range(owner.shape[0]):
        o = owner[f]
        n = neighbour[f]
        vo = values[o]
        vn = values[n]
        if vn < lower[o]:
            lower[o] = vn
        if vn > upper[o]:
            upper[o] = vn
        if vo < lower[n]:
            lower[n] = vo
        if vo > upper[n]:
            upper[n] = vo

    for b in range(boundary_cells.shape[0]):
        if not boundary_active[b]:
            continue
        c = boundary_cells[b]
        vb = boundary_values[b]
        if vb < lower[c]:
            lower[c] = vb
        if vb > upper[c]:
            upper[c] = vb

    return lower, upper


# =============================================================================
# Bounds
# =============================================================================

def compute_bounds(values: NDArrayFloat, mesh: FVMesh, psi_min: float, psi_max: float,
                   boundary_values: Optional[NDArrayFloat] = None,
                   extrema_coefficient: float = 0.0) -> CellBounds:
    """Local extrema of `values` clamped to the global bounds.

    Parameters
    ----------
    values : ndarray, shape (n_cells,)
        Field the extrema are taken from.
    mesh : FVMesh
        Connectivity.
    psi_min, psi_max : float
        Global bounds.
    boundary_values : ndarray, shape (n_boundary,), optional
        Values on boundary faces. Defaults to the fixedValue patch values;
        processor faces only take part when values are supplied.
    extrema_coefficient : float
        Widen each interval by this fraction of (psi_max - psi_min) before
        clamping. 0 keeps strict local extrema.

    Returns
    -------
    CellBounds
    """
    check_bound_order(psi_max, psi_min)
    values = np.ascontiguousarray(values, dtype=np.float64)

    active = ~mesh.kind_mask(ZERO_GRADIENT)
    if boundary_values is None:
        active &= ~mesh.kind_mask(PROCESSOR)
    face_values = mesh.resolve_boundary_values(values, boundary_values)

    lower, upper = _local_extrema(values, mesh.owner, mesh.neighbour,
                                  mesh.boundary_cells, face_values,
                                  np.ascontiguousarray(active, dtype=np.bool_))

    if extrema_coefficient > 0.0:
        widen = extrema_coefficient * (psi_max - psi_min)
        lower -= widen
        upper += widen

    return CellBounds(np.clip(lower, psi_min, psi_max), np.clip(upper, psi_min, psi_max))


# =============================================================================
# Violations
# =============================================================================

def find_violations(values: NDArrayFloat, bounds: CellBounds,
                    tolerance: float = 0.0) -> np.ndarray:
    """Boolean mask of cells outside their bounds by more than `tolerance`."""
    return (values > bounds.upper + tolerance) | (values < bounds.lower - tolerance)


def bound_violation(values: NDArrayFloat, bounds: CellBounds) -> NDArrayFloat:
    """Per-cell distance outside the bounds (0 inside)."""
    excess = np.maximum(values - bounds.upper, bounds.lower - values)
    return np.maximum(excess, 0.0)


def max_violation(values: NDArrayFloat, bounds: CellBounds) -> float:
    if values.size == 0:
        return 0.0
    return float(np.max(bound_violation(values, bounds)))


def global_unboundedness(values: NDArrayFloat, psi_min: float, psi_max: float) -> float:
    """How far the field leaves [psi_min, psi_max] (0 when inside)."""
    if values.size == 0:
        return 0.0
    return max(float(np.max(values)) - psi_max, psi_min - float(np.min(values)), 0.0)


def neighbourhood_minimum(values: NDArrayFloat, mesh: FVMesh) -> NDArrayFloat:
    """Minimum of each cell's value and its internal-face neighbours' values."""
    out = np.array(values, dtype=np.float64)
    np.minimum.at(out, mesh.owner, values[mesh.neighbour])
    np.minimum.at(out, mesh.neighbour, values[mesh.owner])
    return out
