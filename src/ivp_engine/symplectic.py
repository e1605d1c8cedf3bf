# src/ivp_engine/symplectic.py
"""Störmer-Verlet kernels for separable second-order systems.

The state is laid out as ``y = [q, v]`` with ``q' = v`` and ``v' = a(t, q)``;
the right-hand side must return ``[v, a(t, q)]``. One step is a half kick,
a drift and a half kick:

    v_half = v0 + h/2 * a(t0, q0)
    q1     = q0 + h * v_half
    v1     = v_half + h/2 * a(t1, q1)

The Arenstorf kernels integrate the planar restricted three-body problem in
the rotating frame (Earth-Moon, mass ratio :data:`ARENSTORF_MU`) with the
Hamiltonian form of the same scheme. They work on canonical momenta
internally and convert from and to velocities at the step boundary, so the
published state has the same layout as :func:`arenstorf_rhs`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from .errors import ConfigurationError, raise_invalid_parameter
from .kernels import StepResult, SteppingKernel
from .properties import PropertyKey
from .tableaux import STORMER_VERLET

if TYPE_CHECKING:
    from .properties import PropertyBag
    from .solver import Solver

ARENSTORF_MU = 0.012277471
"""Moon mass fraction of the Arenstorf problem."""

ARENSTORF_INITIAL_VALUES = (0.994, 0.0, 0.0, -2.00158510637908252240537862224)
"""Initial state of the closed Arenstorf orbit."""

ARENSTORF_PERIOD = 17.0652165601579625588917206249
"""Period of the closed Arenstorf orbit."""

_ODD_SIZE_MSG = "{name} needs an even state size [q, v], got {size}"
_ARENSTORF_SIZE_MSG = "{name} integrates a 4-component state, got {size}"


def arenstorf_rhs(t: float, y: NDArray[np.floating]) -> NDArray[np.floating]:  # noqa: ARG001
    """
    Right-hand side of the Arenstorf orbit problem in the rotating frame.

    Args:
        t: Time (unused; the problem is autonomous).
        y: State [x, y, x', y'].

    Returns:
        dy/dt.
    """
    mu = ARENSTORF_MU
    muhat = 1.0 - mu
    y = np.asarray(y, dtype=float)
    d1 = ((y[0] + mu) ** 2 + y[1] ** 2) ** 1.5
    d2 = ((y[0] - muhat) ** 2 + y[1] ** 2) ** 1.5
    return np.array(
        [
            y[2],
            y[3],
            y[0] + 2.0 * y[3] - muhat * (y[0] + mu) / d1 - mu * (y[0] - muhat) / d2,
            y[1] - 2.0 * y[2] - muhat * y[1] / d1 - mu * y[1] / d2,
        ]
    )


# =============================================================================
# Separable Störmer-Verlet
# =============================================================================


class StormerVerlet(SteppingKernel):
    """Fixed-step Störmer-Verlet for ``y = [q, v]``, two RHS calls per step."""

    def __init__(self, *, name: str | None = None) -> None:
        super().__init__(STORMER_VERLET, name=name)

    def begin_stepping(self, solver: Solver, bag: PropertyBag) -> None:
        if solver.ode.size % 2:
            raise ConfigurationError(_ODD_SIZE_MSG.format(name=self.name, size=solver.ode.size))
        super().begin_stepping(solver, bag)

    def advance(
        self,
        t0: float,
        y0: NDArray[np.floating],
        t1: float,
        *,
        previous_accepted: bool = False,  # noqa: ARG002
    ) -> StepResult:
        h = t1 - t0
        m = y0.shape[0] // 2
        q0, v0 = y0[:m], y0[m:]

        f0 = self.ode.f(t0, y0)
        v_half = v0 + 0.5 * h * f0[m:]
        q1 = q0 + h * v_half

        f1 = self.ode.f(t1, np.concatenate([q1, v0]))
        v1 = v_half + 0.5 * h * f1[m:]

        return StepResult(
            y1=np.concatenate([q1, v1]),
            y_embedded=None,
            stage_values=np.vstack([f0, f1]),
        )


# =============================================================================
# Arenstorf orbit
# =============================================================================


def _to_momenta(y: NDArray[np.floating]) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    q = np.array(y[:2], dtype=float)
    p = np.array([y[2] - y[1], y[3] + y[0]])
    return q, p


def _to_state(q: NDArray[np.floating], p: NDArray[np.floating]) -> NDArray[np.floating]:
    return np.array([q[0], q[1], p[0] + q[1], p[1] - q[0]])


def _solve_rotation(v: NDArray[np.floating], d: float) -> NDArray[np.floating]:
    """Solve [[1, -d], [d, 1]] x = v."""
    return np.array([v[0] + d * v[1], v[1] - d * v[0]]) / (1.0 + d * d)


def _potential_gradient(q: NDArray[np.floating]) -> NDArray[np.floating]:
    mu = ARENSTORF_MU
    muhat = 1.0 - mu
    d1 = ((q[0] + mu) ** 2 + q[1] ** 2) ** 1.5
    d2 = ((q[0] - muhat) ** 2 + q[1] ** 2) ** 1.5
    return np.array(
        [
            muhat * (q[0] + mu) / d1 + mu * (q[0] - muhat) / d2,
            muhat * q[1] / d1 + mu * q[1] / d2,
        ]
    )


def _hamiltonian_q(q: NDArray[np.floating], p: NDArray[np.floating]) -> NDArray[np.floating]:
    return _potential_gradient(q) + np.array([-p[1], p[0]])


def _verlet_step(
    q0: NDArray[np.floating],
    p0: NDArray[np.floating],
    h: float,
) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    # The Coriolis terms are linear, so both implicit half steps reduce to the
    # same 2x2 rotation solve.
    d = 0.5 * h
    p_half = _solve_rotation(p0 - d * _potential_gradient(q0), d)
    drift = np.array([2.0 * p_half[0] + q0[1], 2.0 * p_half[1] - q0[0]])
    q1 = _solve_rotation(q0 + d * drift, d)
    p1 = p_half - d * _hamiltonian_q(q1, p_half)
    return q1, p1


class ArenstorfStormerVerlet(SteppingKernel):
    """Fixed-step Störmer-Verlet specialized to the Arenstorf orbit.

    The right-hand side of the run is not evaluated; only its size is checked.
    """

    _extra_supplied: tuple[PropertyKey, ...] = ()

    def __init__(self, *, name: str | None = None) -> None:
        super().__init__(STORMER_VERLET, supplied=self._extra_supplied, name=name)

    def begin_stepping(self, solver: Solver, bag: PropertyBag) -> None:
        if solver.ode.size != 4:
            raise ConfigurationError(
                _ARENSTORF_SIZE_MSG.format(name=self.name, size=solver.ode.size)
            )
        super().begin_stepping(solver, bag)

    def advance(
        self,
        t0: float,
        y0: NDArray[np.floating],
        t1: float,
        *,
        previous_accepted: bool = False,  # noqa: ARG002
    ) -> StepResult:
        q0, p0 = _to_momenta(y0)
        q1, p1 = _verlet_step(q0, p0, t1 - t0)
        return StepResult(y1=_to_state(q1, p1), y_embedded=None, stage_values=np.empty((0, 4)))


def step_density(q: NDArray[np.floating], p: NDArray[np.floating], alpha: float) -> float:
    """
    Control function G(q, p) of the arclength reparameterization.

    The step density rho evolves as rho' = G(q, p); the physical step is
    epsilon / rho.

    Args:
        q: Position.
        p: Canonical momentum.
        alpha: Scaling of the control function.

    Returns:
        G(q, p).
    """
    mu = ARENSTORF_MU
    muhat = 1.0 - mu
    vx = p[0] + q[1]
    vy = p[1] - q[0]
    r1sq = q[1] * q[1] + (q[0] + mu) ** 2
    r2sq = q[1] * q[1] + (q[0] - muhat) ** 2
    vsq = vx * vx + vy * vy

    a = mu * (q[0] - muhat) * r1sq + muhat * (q[0] + mu) * r2sq - p[1] * r1sq * r2sq
    b = (q[0] + mu) * r2sq * vsq + (q[0] - muhat) * r1sq * vsq + vy * r1sq * r2sq
    c = mu * q[1] * r1sq + muhat * q[1] * r2sq + p[0] * r1sq * r2sq
    d = q[1] * (r1sq + r2sq) * vsq - vx * r1sq * r2sq

    numerator = vx * a - vx * b + vy * c - vy * d
    return float(alpha * numerator / (r1sq * r2sq * vsq))


class AdaptiveArenstorfStormerVerlet(ArenstorfStormerVerlet):
    """Arclength-adaptive Störmer-Verlet for the Arenstorf orbit.

    The kernel advances the step density rho with a symmetric half update
    around each step and takes the physical step ``epsilon / rho_half``,
    ignoring the step proposed by the solver. It republishes FINAL_TIME with
    the time actually reached, always accepts, and publishes the next
    physical step size. Use it with
    :class:`~ivp_engine.solver.SymmetricVariableStepSolver`.

    Args:
        epsilon: Step in the reparameterized time.
        alpha: Scaling of :func:`step_density`.
        name: Optional module name.
    """

    # FINAL_TIME is chained: read from the solver, rewritten with the time reached.
    _extra_supplied = (
        PropertyKey.FINAL_TIME,
        PropertyKey.STEP_ACCEPTED,
        PropertyKey.NEXT_STEP_SIZE,
    )

    def __init__(self, epsilon: float, alpha: float, *, name: str | None = None) -> None:
        if not np.isfinite(epsilon) or epsilon <= 0:
            raise_invalid_parameter("epsilon", expected="positive and finite", got=epsilon)
        if not np.isfinite(alpha):
            raise_invalid_parameter("alpha", expected="finite", got=alpha)
        super().__init__(name=name)
        self.epsilon = float(epsilon)
        self.alpha = float(alpha)
        self.rho = 1.0
        self._next_step = self.epsilon

    def reset(self) -> None:
        self.rho = 1.0
        self._next_step = self.epsilon

    def step(self, bag: PropertyBag) -> None:
        t0 = bag.time(PropertyKey.INITIAL_TIME)
        y0 = bag.vector(PropertyKey.INITIAL_VALUES)
        q0, p0 = _to_momenta(y0)

        rho_half = self.rho + 0.5 * self.epsilon * step_density(q0, p0, self.alpha)
        h = self.epsilon / rho_half
        q1, p1 = _verlet_step(q0, p0, h)

        g1 = step_density(q1, p1, self.alpha)
        self.rho = rho_half + 0.5 * self.epsilon * g1
        self._next_step = self.epsilon / (rho_half + self.epsilon * g1)

        bag[PropertyKey.FINAL_VALUES] = _to_state(q1, p1)
        bag[PropertyKey.STAGE_VALUES] = np.empty((0, 4))
        bag[PropertyKey.FINAL_TIME] = t0 + h
        bag[PropertyKey.STEP_ACCEPTED] = True
        bag[PropertyKey.NEXT_STEP_SIZE] = self._next_step
