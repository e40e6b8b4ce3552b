"""
Shared pytest fixtures for the test suite.

Small meshes with hand-checked solutions, plus a loguru capture helper.
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from loguru import logger

from bounded_transport.grid import chain_mesh


# =============================================================================
# Mesh Fixtures
# =============================================================================

@pytest.fixture
def chain3():
    """Three unit-volume cells, inlet fixed at 1.0, zeroGradient outlet."""
    return chain_mesh(3, length=3.0, inlet_value=1.0)


@pytest.fixture
def chain3_open():
    """Three unit-volume cells, inlet fixed at 0.0."""
    return chain_mesh(3, length=3.0, inlet_value=0.0)


# =============================================================================
# Logging
# =============================================================================

@pytest.fixture
def log_messages():
    """Collect loguru messages at WARNING and above."""
    messages = []
    handler_id = logger.add(lambda msg: messages.append(msg.record["message"]),
                            level="WARNING")
    yield messages
    logger.remove(handler_id)
