"""
Unstructured finite-volume mesh connectivity.

Cells are joined by internal faces with an (owner, neighbour) pair; boundary
faces belong to patches and carry a single owner cell. Geometry beyond cell
volumes is not needed by the bounded transport engine: fluxes are supplied
per face by the caller.

Face Layout:
    - Internal faces first, in the order of `owner` / `neighbour`
    - Boundary faces next, patch by patch in the order of `patches`
    - Face fields have length n_faces = n_internal + n_boundary
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple, Union

from bounded_transport.constants import (
    FIXED_VALUE, ZERO_GRADIENT, PROCESSOR, PATCH_KINDS,
)


class MeshError(Exception):
    """Exception raised for inconsistent mesh connectivity or field sizes."""
    pass


@dataclass
class BoundaryPatch:
    """A named group of boundary faces.

    Attributes
    ----------
    name : str
        Patch name.
    face_cells : ndarray of int
        Owner cell of each boundary face.
    kind : str
        "fixedValue"   - inflow carries `value`, which also enters local bounds
        "zeroGradient" - the face takes the owner cell value
        "processor"    - the face couples to another partition; values arrive
                         through a halo exchange
    value : float or ndarray
        Boundary value(s) of the transported field for fixedValue patches.
    """
    name: str
    face_cells: np.ndarray
    kind: str = FIXED_VALUE
    value: Union[float, np.ndarray] = 0.0

    def __post_init__(self):
        self.face_cells = np.atleast_1d(np.asarray(self.face_cells, dtype=np.int64))
        if self.kind not in PATCH_KINDS:
            raise MeshError(
                f"Patch '{self.name}': unknown kind '{self.kind}'. "
                f"Use one of {PATCH_KINDS}"
            )
        value = np.asarray(self.value, dtype=np.float64)
        if value.ndim > 1 or (value.ndim == 1 and value.size != self.size):
            raise MeshError(
                f"Patch '{self.name}': {value.size} values for {self.size} faces"
            )

    @property
    def size(self) -> int:
        return int(self.face_cells.size)

    def values(self) -> np.ndarray:
        """Boundary values broadcast to one entry per face."""
        return np.broadcast_to(
            np.asarray(self.value, dtype=np.float64), (self.size,)
        ).copy()


@dataclass
class FVMesh:
    """Cell/face connectivity of a finite-volume mesh.

    Validation runs on construction, so a mesh that exists is structurally
    sound: every face references existing cells, no face joins a cell to
    itself and every volume is positive.
    """
    owner: np.ndarray
    neighbour: np.ndarray
    volumes: np.ndarray
    patches: List[BoundaryPatch] = field(default_factory=list)

    def __post_init__(self):
        self.owner = np.atleast_1d(np.asarray(self.owner, dtype=np.int64))
        self.neighbour = np.atleast_1d(np.asarray(self.neighbour, dtype=np.int64))
        self.volumes = np.atleast_1d(np.asarray(self.volumes, dtype=np.float64))
        self.patches = list(self.patches)
        self.validate()

        if self.patches:
            self._boundary_cells = np.concatenate([p.face_cells for p in self.patches])
        else:
            self._boundary_cells = np.zeros(0, dtype=np.int64)
        self._boundary_kinds = np.concatenate(
            [np.full(p.size, p.kind, dtype=object) for p in self.patches]
        ) if self.patches else np.zeros(0, dtype=object)

    # -------------------------------------------------------------------------
    # Sizes
    # -------------------------------------------------------------------------

    @property
    def n_cells(self) -> int:
        return int(self.volumes.size)

    @property
    def n_internal(self) -> int:
        return int(self.owner.size)

    @property
    def n_boundary(self) -> int:
        return int(sum(p.size for p in self.patches))

    @property
    def n_faces(self) -> int:
        return self.n_internal + self.n_boundary

    # -------------------------------------------------------------------------
    # Boundary addressing
    # -------------------------------------------------------------------------

    @property
    def boundary_cells(self) -> np.ndarray:
        """Owner cell of every boundary face, in face order."""
        return self._boundary_cells

    def kind_mask(self, kind: str) -> np.ndarray:
        """Boolean mask over boundary faces of the given patch kind."""
        return self._boundary_kinds == kind

    @property
    def has_processor_patches(self) -> bool:
        return any(p.kind == PROCESSOR for p in self.patches)

    def patch_slices(self) -> Iterator[Tuple[BoundaryPatch, slice]]:
        """Yield (patch, slice) with slices into boundary-face arrays."""
        start = 0
        for patch in self.patches:
            yield patch, slice(start, start + patch.size)
            start += patch.size

    def patch_face_slice(self, name: str) -> slice:
        """Slice of a patch in the full face layout."""
        for patch, sl in self.patch_slices():
            if patch.name == name:
                return slice(self.n_internal + sl.start, self.n_internal + sl.stop)
        raise KeyError(f"No patch named '{name}'")

    def patch_values(self) -> np.ndarray:
        """Boundary values from the patch definitions (0 for non-fixedValue)."""
        values = np.zeros(self.n_boundary)
        for patch, sl in self.patch_slices():
            if patch.kind == FIXED_VALUE:
                values[sl] = patch.values()
        return values

    def resolve_boundary_values(self, psi: np.ndarray,
                                boundary_values: np.ndarray = None) -> np.ndarray:
        """Value of `psi` seen on every boundary face.

        fixedValue and processor faces take `boundary_values` (or the patch
        values when None); zeroGradient faces take the owner cell value.
        """
        if boundary_values is None:
            values = self.patch_values()
        else:
            values = np.array(boundary_values, dtype=np.float64)
            if values.shape != (self.n_boundary,):
                raise MeshError(
                    f"boundary_values has shape {values.shape}, "
                    f"expected ({self.n_boundary},)"
                )
        zero_gradient = self.kind_mask(ZERO_GRADIENT)
        values[zero_gradient] = psi[self._boundary_cells[zero_gradient]]
        return values

    # -------------------------------------------------------------------------
    # Field checks
    # -------------------------------------------------------------------------

    def cell_field(self, values, name: str) -> np.ndarray:
        """Broadcast a scalar or check a per-cell array."""
        arr = np.asarray(values, dtype=np.float64)
        if arr.ndim == 0:
            return np.full(self.n_cells, float(arr))
        if arr.shape != (self.n_cells,):
            raise MeshError(f"{name} has shape {arr.shape}, expected ({self.n_cells},)")
        return arr

    def face_field(self, values, name: str) -> np.ndarray:
        """Check a per-face array in the full face layout."""
        arr = np.asarray(values, dtype=np.float64)
        if arr.shape != (self.n_faces,):
            raise MeshError(f"{name} has shape {arr.shape}, expected ({self.n_faces},)")
        return arr

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate(self) -> None:
        """Check connectivity; raise MeshError on the first inconsistency."""
        if self.volumes.ndim != 1 or self.volumes.size == 0:
            raise MeshError("Mesh must have at least one cell")
        invalid = ~np.isfinite(self.volumes) | (self.volumes <= 0.0)
        if np.any(invalid):
            bad = int(np.flatnonzero(invalid)[0])
            raise MeshError(f"Cell {bad} has invalid volume {self.volumes[bad]}")

        if self.owner.shape != self.neighbour.shape or self.owner.ndim != 1:
            raise MeshError(
                f"owner {self.owner.shape} and neighbour {self.neighbour.shape} "
                "must be 1-D arrays of equal length"
            )

        n_cells = self.volumes.size
        for label, cells in (("owner", self.owner), ("neighbour", self.neighbour)):
            invalid = (cells < 0) | (cells >= n_cells)
            if np.any(invalid):
                face = int(np.flatnonzero(invalid)[0])
                raise MeshError(
                    f"Internal face {face}: {label} {cells[face]} is not a cell "
                    f"(n_cells = {n_cells})"
                )

        self_joined = self.owner == self.neighbour
        if np.any(self_joined):
            face = int(np.flatnonzero(self_joined)[0])
            raise MeshError(f"Internal face {face} joins cell {self.owner[face]} to itself")

        names = set()
        for patch in self.patches:
            if patch.name in names:
                raise MeshError(f"Duplicate patch name '{patch.name}'")
            names.add(patch.name)
            invalid = (patch.face_cells < 0) | (patch.face_cells >= n_cells)
            if np.any(invalid):
                face = int(np.flatnonzero(invalid)[0])
                raise MeshError(
                    f"Patch '{patch.name}' face {face}: cell {patch.face_cells[face]} "
                    f"is not a cell (n_cells = {n_cells})"
                )

    def summary(self) -> Dict[str, int]:
        return {
            'n_cells': self.n_cells,
            'n_internal': self.n_internal,
            'n_boundary': self.n_boundary,
            'n_patches': len(self.patches),
        }
