"""Global pytest configuration and shared fixtures for ivp_engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest

from ivp_engine.ode import ODE

if TYPE_CHECKING:
    from numpy.typing import NDArray

    FloatArray = NDArray[np.floating]

# -----------------------------------------------------------------------------
# Markers
# -----------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used by the test suite."""
    config.addinivalue_line(
        "markers",
        "convergence: mark test as an empirical order-of-accuracy check",
    )


# -----------------------------------------------------------------------------
# Shared problems
# -----------------------------------------------------------------------------


class CountingRHS:
    """Right-hand side wrapper that counts its evaluations."""

    def __init__(self, func) -> None:  # noqa: ANN001
        self.func = func
        self.calls = 0

    def __call__(self, t: float, y: FloatArray) -> FloatArray:
        self.calls += 1
        return self.func(t, y)


@pytest.fixture
def decay_ode() -> ODE:
    """y' = -y."""
    return ODE(size=1, rhs=lambda t, y: -y)  # noqa: ARG005


@pytest.fixture
def growth_ode() -> ODE:
    """y' = y."""
    return ODE(size=1, rhs=lambda t, y: y.copy())  # noqa: ARG005


@pytest.fixture
def oscillator_ode() -> ODE:
    """Harmonic oscillator y = [q, v], q' = v, v' = -q."""
    return ODE(size=2, rhs=lambda t, y: np.array([y[1], -y[0]]))  # noqa: ARG005


@pytest.fixture
def counting_decay() -> CountingRHS:
    """Counting right-hand side of y' = -y."""
    return CountingRHS(lambda t, y: -y)  # noqa: ARG005
