"""
Phase protocol and name registry.

A phase exposes the fields a bounded phase-fraction solve needs. The bounded
solver never sees a phase; `solve_phase_fraction` passes the plain arrays.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol, Union

import numpy as np


class PhaseModel(Protocol):
    """Accessors every phase variant provides."""

    name: str
    alpha: np.ndarray          # Volume fraction per cell, updated in place
    alpha_max: float           # Upper bound of alpha
    phi: np.ndarray            # Volumetric face flux of the phase
    U: Optional[np.ndarray]    # Cell velocity, shape (n_cells, dim); None when only phi is known
    rho: Union[float, np.ndarray]
    mu: Union[float, np.ndarray]
    kappa: Union[float, np.ndarray]
    turbulence: Optional[Any]  # Turbulence model of the phase, None when laminar


_PHASE_REGISTRY: Dict[str, Callable[..., PhaseModel]] = {}


def register_phase(name: str):
    """Class decorator adding a phase constructor under `name`."""
    def decorator(cls):
        if name in _PHASE_REGISTRY:
            raise ValueError(f"Phase '{name}' is already registered")
        _PHASE_REGISTRY[name] = cls
        return cls
    return decorator


def create_phase(name: str, **kwargs) -> PhaseModel:
    """Construct a registered phase by name."""
    try:
        constructor = _PHASE_REGISTRY[name]
    except KeyError:
        raise KeyError(f"Unknown phase '{name}'. Available: {available_phases()}") from None
    return constructor(**kwargs)


def available_phases() -> List[str]:
    return sorted(_PHASE_REGISTRY)
