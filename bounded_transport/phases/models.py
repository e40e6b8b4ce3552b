"""
Concrete phase variants.

- constant: uniform properties, alpha in [0, 1]
- packed: dispersed particles with a maximum packing fraction
"""

from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from bounded_transport.phases.base import register_phase


@register_phase("constant")
@dataclass
class ConstantPropertyPhase:
    """Phase with constant density, viscosity and conductivity."""
    name: str
    alpha: np.ndarray
    phi: np.ndarray
    rho: float = 1.0
    mu: float = 1.0e-3
    kappa: float = 0.0
    alpha_max: float = 1.0
    turbulence: Optional[Any] = None
    U: Optional[np.ndarray] = None

    def __post_init__(self):
        self.alpha = np.array(self.alpha, dtype=np.float64)
        self.phi = np.array(self.phi, dtype=np.float64)
        if self.U is not None:
            self.U = np.array(self.U, dtype=np.float64)
            if self.U.ndim == 0 or self.U.shape[0] != self.alpha.size:
                raise ValueError(
                    f"Phase '{self.name}': U needs one row per cell ({self.alpha.size})"
                )
        if self.rho <= 0.0:
            raise ValueError(f"Phase '{self.name}': rho must be positive")
        if not 0.0 < self.alpha_max <= 1.0:
            raise ValueError(f"Phase '{self.name}': alpha_max must be in (0, 1]")


@register_phase("packed")
@dataclass
class PackedParticlePhase(ConstantPropertyPhase):
    """Dispersed particles; alpha cannot exceed the random close packing limit."""
    alpha_max: float = 0.63
    diameter: float = 1.0e-4
