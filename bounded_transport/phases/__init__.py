"""
Phase layer: protocol, registry and bounded phase-fraction transport.
"""

from .base import (
    PhaseModel,
    register_phase,
    create_phase,
    available_phases,
)

from .models import (
    ConstantPropertyPhase,
    PackedParticlePhase,
)

from .transport import solve_phase_fraction

__all__ = [
    # Protocol and registry
    'PhaseModel',
    'register_phase',
    'create_phase',
    'available_phases',
    # Variants
    'ConstantPropertyPhase',
    'PackedParticlePhase',
    # Transport
    'solve_phase_fraction',
]
