"""
Solver Factory Module.

Builds realizers and demo cases from configuration objects so that scripts
and tests share one initialization path.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from loguru import logger

from bounded_transport.config.schema import CaseConfig, LinearSolverConfig
from bounded_transport.grid.generators import chain_mesh, chain_flux
from bounded_transport.grid.mesh import FVMesh
from bounded_transport.solvers.realizer import UpwindRealizer


@dataclass
class AdvectionCase:
    """Mesh, initial field and flux of a demo case."""
    mesh: FVMesh
    psi: np.ndarray
    phi: np.ndarray
    delta_t: float
    x: np.ndarray


def create_realizer(config: Optional[LinearSolverConfig] = None) -> UpwindRealizer:
    """Create the upwind realizer described by a LinearSolverConfig."""
    config = LinearSolverConfig() if config is None else config
    return UpwindRealizer(
        method=config.method,
        tol=config.tol,
        restart=config.restart,
        maxiter=config.maxiter,
    )


def build_case(config: Optional[CaseConfig] = None) -> AdvectionCase:
    """
    Build the 1-D step advection case.

    A chain of `n_cells` cells carries a uniform velocity; psi is psi_max on
    [step_start, step_end] and psi_min elsewhere. The time step follows from
    the requested Courant number.
    """
    config = CaseConfig() if config is None else config
    if config.n_cells < 1:
        raise ValueError(f"n_cells must be >= 1, got {config.n_cells}")
    if config.velocity <= 0.0 or config.courant <= 0.0:
        raise ValueError("velocity and courant must be positive")

    dx = config.length / config.n_cells
    mesh = chain_mesh(config.n_cells, length=config.length, inlet_value=config.inlet_value)
    phi = chain_flux(mesh, config.velocity)
    x = (np.arange(config.n_cells) + 0.5) * dx

    psi = np.where((x >= config.step_start) & (x <= config.step_end),
                   config.psi_max, config.psi_min).astype(np.float64)
    delta_t = config.courant * dx / config.velocity

    logger.debug(f"Step advection case: {config.n_cells} cells, dt = {delta_t:.4g}")
    return AdvectionCase(mesh=mesh, psi=psi, phi=phi, delta_t=delta_t, x=x)
