"""
Linear system realizer: one implicit Euler step of

    d(rho psi)/dt + div(phi psi) = Su + Sp psi - div(phiCorr)

with first-order upwind convection. The corrective flux enters only the
right-hand side, so the matrix keeps the M-matrix structure of the upwind
scheme.

Matrix Rows (cell P, V = volume):
    diagonal   rho V/dt - Sp V + sum of outgoing phi
    off-diag   -(inflow phi) from each upwind internal neighbour
    rhs        rho V/dt psi_old + Su V + inflow at fixedValue/processor faces
               - net outflow of the explicit corrective flux

zeroGradient boundary faces carry the cell value, so their flux is implicit
in either direction.
"""

import warnings
from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np
import numpy.typing as npt
import scipy.sparse as sp
from scipy.sparse.linalg import spsolve, MatrixRankWarning

from bounded_transport.constants import ZERO_GRADIENT
from bounded_transport.grid.mesh import FVMesh
from bounded_transport.numerics.fluxes import net_outflow

NDArrayFloat = npt.NDArray[np.floating]


class LinearSolveError(RuntimeError):
    """Exception raised when the linear system cannot be solved."""
    pass


@dataclass
class TransportEquation:
    """Discretised transport equation for one time step.

    Attributes
    ----------
    mesh : FVMesh
    rho : ndarray (n_cells,)
        Density, constant over the step.
    psi_old : ndarray (n_cells,)
        Field at the start of the step.
    phi : ndarray (n_faces,)
        Advecting mass flux.
    sp, su : ndarray (n_cells,)
        Implicit and explicit source coefficients (per unit volume).
    delta_t : float
    boundary_values : ndarray (n_boundary,), optional
        Inflow values on fixedValue and processor faces.
    explicit_flux : ndarray (n_faces,), optional
        Limited corrective flux added as an explicit source.
    """
    mesh: FVMesh
    rho: NDArrayFloat
    psi_old: NDArrayFloat
    phi: NDArrayFloat
    sp: NDArrayFloat
    su: NDArrayFloat
    delta_t: float
    boundary_values: Optional[NDArrayFloat] = None
    explicit_flux: Optional[NDArrayFloat] = None

    @property
    def rdt_mass(self) -> NDArrayFloat:
        """rho V / dt per cell."""
        return self.rho * self.mesh.volumes / self.delta_t


class LinearSystemRealizer(Protocol):
    """Anything that turns a TransportEquation into the new field."""

    def solve(self, equation: TransportEquation) -> NDArrayFloat:
        ...


class UpwindRealizer:
    """Implicit Euler + first-order upwind realizer.

    Parameters
    ----------
    method : str
        "direct" - scipy.sparse.linalg.spsolve
        "gmres"  - JAX GMRES(m) with Jacobi preconditioning
    tol, restart, maxiter :
        GMRES settings (ignored by the direct method).
    """

    def __init__(self, method: str = "direct", tol: float = 1e-12,
                 restart: int = 30, maxiter: int = 1000):
        if method not in ("direct", "gmres"):
            raise ValueError(f"Unknown linear solver method '{method}'")
        self.method = method
        self.tol = tol
        self.restart = restart
        self.maxiter = maxiter

    def assemble(self, equation: TransportEquation):
        """Build (A, b) for the equation as a CSR matrix and a vector."""
        mesh = equation.mesh
        n = mesh.n_cells
        n_int = mesh.n_internal
        phi = equation.phi
        vol = mesh.volumes

        rdt_mass = equation.rdt_mass
        diag = rdt_mass - equation.sp * vol
        rhs = rdt_mass * equation.psi_old + equation.su * vol

        # Internal faces
        phi_i = phi[:n_int]
        pos = np.maximum(phi_i, 0.0)
        neg = np.minimum(phi_i, 0.0)
        np.add.at(diag, mesh.owner, pos)
        np.subtract.at(diag, mesh.neighbour, neg)

        # Boundary faces
        phi_b = phi[n_int:]
        bc = mesh.boundary_cells
        zero_gradient = mesh.kind_mask(ZERO_GRADIENT)
        implicit_b = np.where(zero_gradient, phi_b, np.maximum(phi_b, 0.0))
        np.add.at(diag, bc, implicit_b)

        if mesh.n_boundary:
            inflow_values = mesh.resolve_boundary_values(equation.psi_old, equation.boundary_values)
            inflow = np.where(zero_gradient, 0.0, -np.minimum(phi_b, 0.0) * inflow_values)
            np.add.at(rhs, bc, inflow)

        if equation.explicit_flux is not None:
            rhs -= net_outflow(mesh, equation.explicit_flux)

        # Owner row takes -inflow from neighbour when phi < 0, and vice versa
        rows = np.concatenate([np.arange(n), mesh.neighbour, mesh.owner])
        cols = np.concatenate([np.arange(n), mesh.owner, mesh.neighbour])
        vals = np.concatenate([diag, -pos, neg])
        A = sp.csr_matrix((vals, (rows, cols)), shape=(n, n))
        return A, rhs

    def solve(self, equation: TransportEquation) -> NDArrayFloat:
        A, rhs = self.assemble(equation)
        if self.method == "direct":
            psi = self._solve_direct(A, rhs)
        else:
            psi = self._solve_gmres(A, rhs, equation.psi_old)

        if not np.all(np.isfinite(psi)):
            raise LinearSolveError("Linear solve produced non-finite values")
        return psi

    def _solve_direct(self, A, rhs) -> NDArrayFloat:
        with warnings.catch_warnings():
            warnings.simplefilter("error", MatrixRankWarning)
            try:
                return np.asarray(spsolve(A.tocsc(), rhs), dtype=np.float64)
            except MatrixRankWarning as exc:
                raise LinearSolveError(f"Singular transport matrix: {exc}") from exc

    def _solve_gmres(self, A, rhs, x0) -> NDArrayFloat:
        from bounded_transport.numerics.gmres import (
            gmres, csr_operator, csr_matvec, jacobi_preconditioner,
        )
        from bounded_transport.numerics.jax_config import jnp

        result = gmres(csr_matvec, csr_operator(A), jnp.asarray(rhs),
                       x0=jnp.asarray(x0), tol=self.tol, restart=self.restart,
                       maxiter=self.maxiter, preconditioner=jacobi_preconditioner)
        if not result.converged:
            raise LinearSolveError(
                f"GMRES did not converge: residual {result.residual_norm:.3e} "
                f"after {result.iterations} iterations"
            )
        return np.asarray(result.x, dtype=np.float64)
