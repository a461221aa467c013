"""Pytest configuration and shared fixtures for HeatStack tests."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest


# Add project root to path so imports work
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from stack_model.config import DEFAULT_CONFIG_PATH, SimulationConfig, load_config  # noqa: E402
from stack_model.materials import Layer, Material, Stack  # noqa: E402
from stack_model.provider import MaterialProvider  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s [%(levelname)s] %(message)s",
    )


# ===================================================================
# SHARED FIXTURES
# ===================================================================


@pytest.fixture
def config() -> SimulationConfig:
    """Load the default simulation configuration."""
    return load_config(DEFAULT_CONFIG_PATH)


@pytest.fixture
def provider(config: SimulationConfig) -> MaterialProvider:
    return MaterialProvider(config)


@pytest.fixture
def default_stack(provider: MaterialProvider) -> Stack:
    """Four-layer TPS / carbon fibre / glue / steel stack at l/L = 0."""
    return provider.build_stack(0.0)


def make_slab(
    conductivities: tuple[float, ...] = (0.2, 0.4),
    thickness: float = 0.01,
    num_points: int = 11,
) -> Stack:
    """Gridded stack of slow, insulation-like layers of equal thickness.

    With ρ = 160 kg/m³ and c = 1200 J/kg/K the diffusivities are ~1e-6 m²/s,
    so the slab relaxes to steady state within a few hundred seconds.
    """
    layers = [
        Layer(
            material=Material(f"Slab{j}", k, 160.0, 1200.0),
            thickness=thickness,
            num_points=num_points,
        )
        for j, k in enumerate(conductivities)
    ]
    stack = Stack(layers=layers)
    stack.generate_grid()
    return stack


@pytest.fixture
def slab_factory():
    """Factory for slow slabs; see :func:`make_slab`."""
    return make_slab


@pytest.fixture
def slab() -> Stack:
    """Two-layer slow slab, 2 x 1 cm, uniform 1 mm spacing."""
    return make_slab()
