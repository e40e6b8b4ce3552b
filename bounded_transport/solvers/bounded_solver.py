"""
Implicit bounded solver for one time step of scalar transport.

Solves

    d(rho psi)/dt + div(phi psi) = Su + Sp psi - div(lambda phiCorr)

where lambda in [0, 1] per face is the largest coefficient found that keeps
the implicit solution inside local bounds. The upwind part is implicit; the
limited correction enters as an explicit source.

Stages:
    INIT          validate inputs, snapshot psi0, lambda = 1 (or Courant start)
    BASE_SOLVE    solve without correction -> psi_bd
    LIMIT         face coefficients from explicit predictions around psi_bd
    APPLY         solve with lambda * phiCorr as explicit source
    CHECK_BOUNDS  compare with the local bounds of psi0
    ITERATE       scale lambda by the measured admissible ratio, back to LIMIT
    CONVERGED / MAX_ITER_REACHED

Bounds:
    Local extrema of psi0 and its boundary values, each interval widened just
    enough to hold the cell's own psi_bd. The correction may move a cell
    anywhere inside the range of its old neighbourhood, but never further out
    of it than the uncorrected implicit step already goes.

Tightening:
    The solved field is affine in lambda * phiCorr, so for a violating cell
    the admissible ratio r = (bound - psi_bd) / (psi - psi_bd) says how much
    of the applied correction it can take.
    - First tightening: lambda on every face of a violating cell and of its
      face neighbours is multiplied by the smallest r in that neighbourhood,
      then LIMIT runs again with these coefficients as the cap.
    - Any later tightening, and the last permitted iteration: lambda is
      multiplied by min(r) over all cells. Every cell then lies between
      psi_bd and its previous value, so the solve converges within three
      iterations whenever psi_bd is inside [psi_min, psi_max].

Reference: Weller (2006), "Bounded explicit and implicit second-order schemes
for scalar transport", OpenCFD report TR/HGW/06.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

import numpy as np
import numpy.typing as npt
from loguru import logger

from bounded_transport.config.schema import BoundedSolverConfig
from bounded_transport.constants import PROCESSOR, ROOT_VSMALL
from bounded_transport.grid.mesh import FVMesh, MeshError
from bounded_transport.numerics.bounds import (
    CellBounds, check_bound_order, compute_bounds, bound_violation,
    global_unboundedness, neighbourhood_minimum,
)
from bounded_transport.numerics.courant import face_courant, courant_lambda
from bounded_transport.numerics.limiter import limit_corrections
from bounded_transport.solvers.exchange import (
    HaloExchange, check_exchange, exchange_boundary_values,
)
from bounded_transport.solvers.factory import create_realizer
from bounded_transport.solvers.realizer import (
    LinearSolveError, LinearSystemRealizer, TransportEquation,
)

NDArrayFloat = npt.NDArray[np.floating]


class SolveStage(Enum):
    INIT = "init"
    BASE_SOLVE = "base_solve"
    LIMIT = "limit"
    APPLY = "apply"
    CHECK_BOUNDS = "check_bounds"
    ITERATE = "iterate"
    CONVERGED = "converged"
    MAX_ITER_REACHED = "max_iter_reached"


class SolverStageError(LinearSolveError):
    """Linear-solve failure inside the bounded loop, tagged with where it happened."""

    def __init__(self, message: str, stage: SolveStage, iteration: int):
        super().__init__(f"{stage.value} (iteration {iteration}): {message}")
        self.stage = stage
        self.iteration = iteration


@dataclass
class IterationRecord:
    """Diagnostics of one Limit/Apply/Check pass."""
    iteration: int
    max_violation: float
    n_violations: int
    min_coefficient: float
    uniform_scaling: bool
    coefficients: Optional[NDArrayFloat] = None
    psi: Optional[NDArrayFloat] = None


@dataclass
class BoundedSolveResult:
    """Outcome of bounded_solve.

    Attributes
    ----------
    converged : bool
        All cells inside their bounds within tolerance.
    stage : SolveStage
        CONVERGED or MAX_ITER_REACHED.
    iterations : int
        Number of Apply solves after the base solve.
    max_violation : float
        Largest remaining bound violation (0 when converged).
    max_courant : float
        Largest face Courant number of the advecting flux.
    coefficients : ndarray (n_faces,)
        Final limiter coefficients.
    bounds : CellBounds
        Bounds the field was checked against.
    base_unboundedness : float
        How far the uncorrected solve left [psi_min, psi_max].
    history : list of IterationRecord
    """
    converged: bool
    stage: SolveStage
    iterations: int
    max_violation: float
    max_courant: float
    coefficients: NDArrayFloat
    bounds: CellBounds
    base_unboundedness: float = 0.0
    history: List[IterationRecord] = field(default_factory=list)


def _check_inplace(values, size: int, name: str) -> None:
    if not isinstance(values, np.ndarray) or not np.issubdtype(values.dtype, np.floating):
        raise TypeError(f"{name} must be a float numpy array (it is updated in place)")
    if values.shape != (size,):
        raise MeshError(f"{name} has shape {values.shape}, expected ({size},)")


def _realize(realizer: LinearSystemRealizer, equation: TransportEquation,
             stage: SolveStage, iteration: int) -> NDArrayFloat:
    try:
        return realizer.solve(equation)
    except LinearSolveError as exc:
        raise SolverStageError(str(exc), stage, iteration) from exc


def _admissible_ratio(psi: NDArrayFloat, psi_bd: NDArrayFloat, bounds: CellBounds,
                      over: np.ndarray, under: np.ndarray) -> NDArrayFloat:
    """Fraction of psi - psi_bd each violating cell can keep (1 elsewhere)."""
    ratio = np.ones_like(psi)
    step = psi - psi_bd

    up = over & (step > ROOT_VSMALL)
    ratio[up] = (bounds.upper[up] - psi_bd[up]) / step[up]
    down = under & (step < -ROOT_VSMALL)
    ratio[down] = (bounds.lower[down] - psi_bd[down]) / step[down]

    # psi_bd already outside its bounds
    ratio[(over & ~up) | (under & ~down)] = 0.0
    return np.clip(ratio, 0.0, 1.0)


def _face_factors(mesh: FVMesh, cell_factor: NDArrayFloat,
                  exchange: HaloExchange) -> NDArrayFloat:
    """Smaller cell factor of the two sides of each face."""
    n_int = mesh.n_internal
    factor = np.empty(mesh.n_faces)
    factor[:n_int] = np.minimum(cell_factor[mesh.owner], cell_factor[mesh.neighbour])
    boundary = cell_factor[mesh.boundary_cells]
    for patch, sl in mesh.patch_slices():
        if patch.kind == PROCESSOR:
            boundary[sl] = np.minimum(boundary[sl], exchange.exchange(patch, cell_factor))
    factor[n_int:] = boundary
    return factor


def bounded_solve(mesh: FVMesh, rho, psi: NDArrayFloat, phi, phi_corr: NDArrayFloat,
                  sp, su, psi_max: float, psi_min: float, delta_t: float, *,
                  config: Optional[BoundedSolverConfig] = None,
                  realizer: Optional[LinearSystemRealizer] = None,
                  exchange: Optional[HaloExchange] = None,
                  boundary_values: Optional[NDArrayFloat] = None) -> BoundedSolveResult:
    """Advance psi by one bounded implicit step.

    Parameters
    ----------
    mesh : FVMesh
        Connectivity and cell volumes.
    rho : float or ndarray (n_cells,)
        Density.
    psi : ndarray (n_cells,)
        Field at the old time; overwritten with the new field.
    phi : ndarray (n_faces,)
        Advecting mass flux (positive leaves the owner / the domain).
    phi_corr : ndarray (n_faces,)
        Requested corrective flux; overwritten with lambda * phi_corr.
    sp, su : float or ndarray (n_cells,)
        Implicit and explicit sources per unit volume.
    psi_max, psi_min : float
        Global bounds of psi.
    delta_t : float
        Time step.
    config : BoundedSolverConfig, optional
        Iteration, tolerance and limiter settings.
    realizer : LinearSystemRealizer, optional
        Defaults to the realizer described by config.linear_solver.
    exchange : HaloExchange, optional
        Required when the mesh has processor patches.
    boundary_values : ndarray (n_boundary,), optional
        Inflow values on fixedValue faces; defaults to the patch values.

    Returns
    -------
    BoundedSolveResult

    Raises
    ------
    BoundsError
        psi_max < psi_min.
    MeshError
        Array sizes do not match the mesh, or processor patches lack an exchange.
    SolverStageError
        The linear solve failed.
    """
    # ---- INIT ----
    stage = SolveStage.INIT
    config = BoundedSolverConfig() if config is None else config
    config.validate()
    check_bound_order(psi_max, psi_min)
    if not delta_t > 0.0:
        raise ValueError(f"delta_t must be positive, got {delta_t}")

    _check_inplace(psi, mesh.n_cells, "psi")
    _check_inplace(phi_corr, mesh.n_faces, "phi_corr")
    phi = mesh.face_field(phi, "phi")
    rho = mesh.cell_field(rho, "rho")
    sp = mesh.cell_field(sp, "sp")
    su = mesh.cell_field(su, "su")
    if np.any(rho <= 0.0):
        raise ValueError("rho must be positive")
    exchange = check_exchange(mesh, exchange)
    if realizer is None:
        realizer = create_realizer(config.linear_solver)

    tolerance = config.tolerance
    limiter_cfg = config.limiter
    psi0 = psi.copy()

    exchange.barrier()
    bvals0 = exchange_boundary_values(mesh, exchange, psi0, boundary_values)
    face_co = face_courant(mesh, phi, rho, delta_t)
    max_courant = exchange.global_max(float(face_co.max()) if face_co.size else 0.0)
    lam = courant_lambda(face_co, limiter_cfg.courant_coefficient)
    rdt_mass = rho * mesh.volumes / delta_t

    # ---- BASE_SOLVE ----
    stage = SolveStage.BASE_SOLVE
    base = TransportEquation(mesh, rho, psi0, phi, sp, su, delta_t, bvals0)
    psi_bd = _realize(realizer, base, stage, 0)

    bounds = compute_bounds(psi0, mesh, psi_min, psi_max, bvals0,
                            limiter_cfg.extrema_coefficient)
    base_value = np.clip(psi_bd, psi_min, psi_max)
    bounds = bounds.union(CellBounds(base_value, base_value))

    base_unbounded = exchange.global_max(global_unboundedness(psi_bd, psi_min, psi_max))
    if base_unbounded > tolerance:
        logger.warning(
            f"Uncorrected solve leaves [{psi_min}, {psi_max}] by {base_unbounded:.3e}; "
            "check the time step and sources"
        )

    # ---- LIMIT / APPLY / CHECK_BOUNDS ----
    tightened = False
    uniform = False
    history = []
    psi_new = psi_bd
    worst = 0.0
    iteration = 0

    for iteration in range(1, config.max_iter + 1):
        exchange.barrier()

        if not uniform:
            stage = SolveStage.LIMIT
            lam = limit_corrections(
                mesh, phi_corr, psi_bd, bounds, rdt_mass, prior=lam,
                n_limiter_iter=limiter_cfg.n_limiter_iter, exchange=exchange,
            )

        stage = SolveStage.APPLY
        psi_new = _realize(realizer, replace(base, explicit_flux=lam * phi_corr),
                           stage, iteration)

        stage = SolveStage.CHECK_BOUNDS
        violation = bound_violation(psi_new, bounds)
        worst = exchange.global_max(float(violation.max()))
        over = psi_new > bounds.upper + tolerance
        under = psi_new < bounds.lower - tolerance

        min_lam = float(lam.min()) if lam.size else 1.0
        history.append(IterationRecord(
            iteration=iteration,
            max_violation=worst,
            n_violations=int(np.count_nonzero(over | under)),
            min_coefficient=min_lam,
            uniform_scaling=uniform,
            coefficients=lam.copy() if config.keep_history else None,
            psi=psi_new.copy() if config.keep_history else None,
        ))
        logger.debug(
            f"Bounded solve iteration {iteration}: max violation {worst:.3e}, "
            f"min lambda {min_lam:.4f}"
        )

        if worst <= tolerance:
            stage = SolveStage.CONVERGED
            break
        if iteration == config.max_iter:
            stage = SolveStage.MAX_ITER_REACHED
            break

        stage = SolveStage.ITERATE
        ratio = _admissible_ratio(psi_new, psi_bd, bounds, over, under)
        if tightened or iteration + 1 == config.max_iter:
            lam = lam * exchange.global_min(float(ratio.min()))
            uniform = True
        else:
            lam = lam * _face_factors(mesh, neighbourhood_minimum(ratio, mesh), exchange)
            tightened = True

    converged = stage == SolveStage.CONVERGED
    if not converged:
        logger.warning(
            f"Bounded solve reached {config.max_iter} iterations with "
            f"max bound violation {worst:.3e} (Co_max = {max_courant:.3g})"
        )

    psi[:] = psi_new
    phi_corr *= lam

    return BoundedSolveResult(
        converged=converged,
        stage=stage,
        iterations=iteration,
        max_violation=0.0 if converged else worst,
        max_courant=max_courant,
        coefficients=lam,
        bounds=bounds,
        base_unboundedness=base_unbounded,
        history=history,
    )


def bounded_solve_unit_density(mesh: FVMesh, psi: NDArrayFloat, phi,
                               phi_corr: NDArrayFloat, psi_max: float, psi_min: float,
                               delta_t: float, sp=None, su=None,
                               **kwargs) -> BoundedSolveResult:
    """bounded_solve with rho = 1; omitted sources are zero."""
    return bounded_solve(
        mesh, 1.0, psi, phi, phi_corr,
        0.0 if sp is None else sp,
        0.0 if su is None else su,
        psi_max, psi_min, delta_t, **kwargs,
    )
