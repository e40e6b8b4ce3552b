"""
Configuration module for the bounded transport solver.

Provides YAML-based configuration with dataclass schema.
"""

from .schema import (
    SimulationConfig,
    CaseConfig,
    BoundedSolverConfig,
    LimiterConfig,
    LinearSolverConfig,
    OutputConfig,
    DeviceConfig,
    smoke_preset,
    standard_preset,
    fine_preset,
)

from .loader import (
    load_yaml,
    from_dict,
    apply_cli_overrides,
    save_yaml,
)

__all__ = [
    # Schema classes
    'SimulationConfig',
    'CaseConfig',
    'BoundedSolverConfig',
    'LimiterConfig',
    'LinearSolverConfig',
    'OutputConfig',
    'DeviceConfig',
    # Presets
    'smoke_preset',
    'standard_preset',
    'fine_preset',
    # Loader functions
    'load_yaml',
    'from_dict',
    'apply_cli_overrides',
    'save_yaml',
]
