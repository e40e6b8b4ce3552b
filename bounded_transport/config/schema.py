"""
Configuration schema for the bounded transport solver.

Dataclass-based configuration that can be loaded from YAML or constructed programmatically.
Upper/lower bounds are passed per solve call, never stored here.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional

from bounded_transport.constants import (
    DEFAULT_MAX_ITER, DEFAULT_LIMITER_SWEEPS, DEFAULT_BOUND_TOLERANCE,
)

LINEAR_SOLVER_METHODS = ("direct", "gmres")


@dataclass
class LimiterConfig:
    """Face correction limiter configuration."""

    n_limiter_iter: int = DEFAULT_LIMITER_SWEEPS  # Zalesak pass + relaxation passes
    extrema_coefficient: float = 0.0   # Widen local bounds by this fraction of the global range
    courant_coefficient: float = 0.0   # Initial lambda = 1/max(coeff*Co, 1); 0 disables


@dataclass
class LinearSolverConfig:
    """Linear system realizer configuration."""

    # "direct" (scipy spsolve) or "gmres" (JAX GMRES(m) with Jacobi)
    method: str = "direct"
    tol: float = 1e-12         # Relative tolerance for GMRES
    restart: int = 30          # GMRES(m) restart parameter
    maxiter: int = 1000        # Maximum GMRES iterations (across restarts)


@dataclass
class BoundedSolverConfig:
    """Bounded solve iteration settings."""

    max_iter: int = DEFAULT_MAX_ITER
    tolerance: float = DEFAULT_BOUND_TOLERANCE
    keep_history: bool = False  # Record lambda and field of every iteration
    limiter: LimiterConfig = field(default_factory=LimiterConfig)
    linear_solver: LinearSolverConfig = field(default_factory=LinearSolverConfig)

    def validate(self) -> None:
        """Raise ValueError for settings the solver cannot run with."""
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")
        if self.tolerance < 0.0:
            raise ValueError(f"tolerance must be >= 0, got {self.tolerance}")
        if self.limiter.n_limiter_iter < 1:
            raise ValueError(f"n_limiter_iter must be >= 1, got {self.limiter.n_limiter_iter}")
        if self.limiter.extrema_coefficient < 0.0:
            raise ValueError("extrema_coefficient must be >= 0")
        if self.linear_solver.method not in LINEAR_SOLVER_METHODS:
            raise ValueError(
                f"Unknown linear solver '{self.linear_solver.method}'. "
                f"Use one of {LINEAR_SOLVER_METHODS}"
            )
        if self.linear_solver.restart < 1:
            raise ValueError(f"restart must be >= 1, got {self.linear_solver.restart}")


@dataclass
class CaseConfig:
    """1-D step advection demo case."""

    n_cells: int = 50
    length: float = 1.0
    velocity: float = 1.0
    courant: float = 0.5       # Sets dt = courant * dx / velocity
    n_steps: int = 40
    scheme: str = "downwind"   # Corrective flux: "central", "downwind" or "none"
    step_start: float = 0.1    # Step profile psi = psi_max on [step_start, step_end]
    step_end: float = 0.3
    inlet_value: float = 0.0
    psi_min: float = 0.0
    psi_max: float = 1.0


@dataclass
class OutputConfig:
    """Output configuration."""

    directory: str = "output/advection"
    case_name: str = "step"
    plot: bool = True


@dataclass
class DeviceConfig:
    """Device/GPU configuration (used by the GMRES realizer)."""

    # Device selection: "auto", "cpu", or GPU index ("0", "1", "cuda:0", etc.)
    device: Optional[str] = "cpu"


@dataclass
class SimulationConfig:
    """Complete simulation configuration."""

    case: CaseConfig = field(default_factory=CaseConfig)
    solver: BoundedSolverConfig = field(default_factory=BoundedSolverConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)

    def to_dict(self) -> dict:
        """Convert to nested dictionary."""
        return asdict(self)


# Preset configurations
def smoke_preset() -> CaseConfig:
    """Tiny case for fast testing."""
    return CaseConfig(n_cells=20, n_steps=5)


def standard_preset() -> CaseConfig:
    """Default resolution."""
    return CaseConfig()


def fine_preset() -> CaseConfig:
    """Fine chain at a high Courant number."""
    return CaseConfig(n_cells=400, courant=2.0, n_steps=100)
