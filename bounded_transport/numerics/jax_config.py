"""JAX configuration for the Krylov solver: 64-bit precision and device selection."""

import os
import subprocess
from typing import Optional, List, Tuple

from loguru import logger

_device_configured = False


def _query_nvidia_smi(field: str) -> List[Tuple[int, float]]:
    """Query one per-GPU field through nvidia-smi.

    Returns list of (gpu_id, value) tuples, empty when no GPU is visible.
    """
    try:
        result = subprocess.run(
            ['nvidia-smi', f'--query-gpu=index,{field}', '--format=csv,noheader,nounits'],
            capture_output=True, text=True, timeout=5
        )
        if result.returncode != 0:
            return []

        rows = []
        for line in result.stdout.strip().split('\n'):
            parts = line.split(',')
            if len(parts) >= 2:
                rows.append((int(parts[0].strip()), float(parts[1].strip())))
        return rows
    except (subprocess.TimeoutExpired, FileNotFoundError, ValueError):
        return []


def select_device(device: Optional[str] = None) -> Optional[int]:
    """Select the CUDA device before the first JAX computation.

    Parameters
    ----------
    device : str, optional
        - None or "auto": least utilized GPU, ties broken by free memory
        - "cpu": force CPU
        - "0", "cuda:1", "gpu:1": specific GPU index

    Returns
    -------
    gpu_id : int or None
        Selected GPU ID, or None if the CPU (or default device) is used.

    Notes
    -----
    Sets CUDA_VISIBLE_DEVICES, which JAX reads when its backend is first
    initialised. Later calls are ignored.
    """
    global _device_configured

    if _device_configured:
        return None

    if device is None or device == "auto":
        utilizations = _query_nvidia_smi('utilization.gpu')
        if not utilizations:
            logger.debug("No GPUs detected or nvidia-smi not available, using default device")
            _device_configured = True
            return None

        memory = dict(_query_nvidia_smi('memory.free'))
        scored = sorted(utilizations, key=lambda x: (x[1], -memory.get(x[0], 0)))
        best_gpu = scored[0][0]
        logger.info(f"Auto-selected GPU {best_gpu} (lowest utilization)")
        os.environ['CUDA_VISIBLE_DEVICES'] = str(best_gpu)
        _device_configured = True
        return best_gpu

    if device.lower() == "cpu":
        logger.info("Forcing CPU device")
        os.environ['CUDA_VISIBLE_DEVICES'] = ''
        _device_configured = True
        return None

    device_str = device.lower()
    for prefix in ['cuda:', 'gpu:']:
        if device_str.startswith(prefix):
            device_str = device_str[len(prefix):]
            break

    try:
        gpu_id = int(device_str)
    except ValueError:
        raise ValueError(f"Invalid device: {device}. "
                         f"Use 'auto', 'cpu', or GPU index (e.g., '0', 'cuda:1')")
    logger.info(f"Using specified GPU {gpu_id}")
    os.environ['CUDA_VISIBLE_DEVICES'] = str(gpu_id)
    _device_configured = True
    return gpu_id


import jax
import jax.numpy as jnp

jax.config.update("jax_enable_x64", True)


def get_device_info() -> str:
    """Get available JAX devices as string."""
    devices = jax.devices()
    device_strs = [f"{d.platform}:{d.id}" for d in devices]
    return f"JAX devices: {device_strs}"


__all__ = ['jax', 'jnp', 'get_device_info', 'select_device']
