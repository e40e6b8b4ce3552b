"""
YAML configuration loader with validation.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Union
from dataclasses import fields, is_dataclass

from .schema import (
    SimulationConfig, CaseConfig, BoundedSolverConfig, OutputConfig, DeviceConfig,
    smoke_preset, standard_preset, fine_preset,
)


def _merge_dict(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _coerce_type(value, field_type):
    """Coerce value to the expected field type."""
    # YAML reads "1e-10" (no dot) as a string
    if field_type == float and isinstance(value, (str, int)) and not isinstance(value, bool):
        try:
            return float(value)
        except ValueError:
            return value
    if field_type == int and isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return value
    return value


def _dict_to_dataclass(cls, data: dict):
    """Convert a nested dictionary to a dataclass instance."""
    if not is_dataclass(cls):
        return data

    field_types = {f.name: f.type for f in fields(cls)}
    kwargs = {}

    for key, value in data.items():
        if key not in field_types:
            continue  # Skip unknown fields

        field_type = field_types[key]

        if is_dataclass(field_type) and isinstance(value, dict):
            kwargs[key] = _dict_to_dataclass(field_type, value)
        else:
            kwargs[key] = _coerce_type(value, field_type)

    return cls(**kwargs)


def load_yaml(path: Union[str, Path]) -> SimulationConfig:
    """
    Load simulation configuration from a YAML file.

    Args:
        path: Path to YAML configuration file

    Returns:
        SimulationConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If solver settings are invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}

    return from_dict(data)


def from_dict(data: Dict[str, Any]) -> SimulationConfig:
    """
    Create SimulationConfig from a dictionary.

    Handles nested structures and applies defaults for missing values.
    """
    data = dict(data)

    preset = data.pop('preset', None)
    if preset:
        case_preset = {
            'smoke': smoke_preset(),
            'standard': standard_preset(),
            'fine': fine_preset(),
        }.get(preset)
        if case_preset is None:
            raise ValueError(f"Unknown preset '{preset}'. Use smoke, standard or fine")
        case_data = data.get('case', {})
        preset_dict = {f.name: getattr(case_preset, f.name) for f in fields(CaseConfig)}
        data['case'] = _merge_dict(preset_dict, case_data)

    config_dict = {}

    if 'case' in data:
        config_dict['case'] = _dict_to_dataclass(CaseConfig, data['case'])

    if 'solver' in data:
        config_dict['solver'] = _dict_to_dataclass(BoundedSolverConfig, data['solver'])

    if 'output' in data:
        config_dict['output'] = _dict_to_dataclass(OutputConfig, data['output'])

    if 'device' in data:
        config_dict['device'] = _dict_to_dataclass(DeviceConfig, data['device'])

    config = SimulationConfig(**config_dict)
    config.solver.validate()
    return config


def apply_cli_overrides(config: SimulationConfig, args) -> SimulationConfig:
    """
    Apply command-line argument overrides to a configuration.

    Only overrides values that were explicitly set (not None).

    Args:
        config: Base configuration
        args: argparse.Namespace with CLI arguments

    Returns:
        Updated SimulationConfig
    """
    config_dict = config.to_dict()

    cli_mapping = {
        # Case
        'n_cells': ('case', 'n_cells'),
        'n_steps': ('case', 'n_steps'),
        'courant': ('case', 'courant'),
        'velocity': ('case', 'velocity'),
        'scheme': ('case', 'scheme'),

        # Solver
        'max_iter': ('solver', 'max_iter'),
        'tolerance': ('solver', 'tolerance'),
        'n_limiter_iter': ('solver', 'limiter', 'n_limiter_iter'),
        'courant_coefficient': ('solver', 'limiter', 'courant_coefficient'),
        'method': ('solver', 'linear_solver', 'method'),

        # Output
        'output_dir': ('output', 'directory'),
        'case_name': ('output', 'case_name'),

        # Device
        'device': ('device', 'device'),
    }

    for cli_name, config_path in cli_mapping.items():
        if hasattr(args, cli_name):
            value = getattr(args, cli_name)
            if value is not None:
                target = config_dict
                for key in config_path[:-1]:
                    target = target[key]
                target[config_path[-1]] = value

    if getattr(args, 'no_plot', False):
        config_dict['output']['plot'] = False

    return from_dict(config_dict)


def save_yaml(config: SimulationConfig, path: Union[str, Path]) -> None:
    """Save configuration to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w') as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
