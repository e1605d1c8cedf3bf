# src/ivp_engine/interpolants.py
"""Dense-output interpolants attached to schemes.

An interpolant reconstructs the solution inside an accepted step
[t0, t0 + h] from the step endpoints and, when available, the stage
derivatives. Every interpolant returns the *increment*

    y(t0 + theta * h) - y0,    0 <= theta <= 1

so callers add y0 themselves.

Stage values layout:
    - single tableau schemes: array of shape (n_stages, n) holding k_i,
    - additive (IMEX) schemes: :class:`AdditiveStages` with one such array per
      part.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np
from numpy.typing import NDArray

_STAGES_TYPE_MSG = "{name} needs stage values of shape (n_stages, n); got {got!r}"
_ADDITIVE_STAGES_MSG = "AdditiveInterpolant needs AdditiveStages, got {typ}"


@dataclass(frozen=True, slots=True)
class AdditiveStages:
    """Stage derivatives of one additive Runge-Kutta step.

    Attributes:
        explicit: Explicit-part stage derivatives, shape (n_stages, n).
        implicit: Implicit-part stage derivatives, shape (n_stages, n).
    """

    explicit: NDArray[np.floating]
    implicit: NDArray[np.floating]


class Interpolant(Protocol):
    """Dense-output rule for one step."""

    def evaluate(
        self,
        y0: NDArray[np.floating],
        y1: NDArray[np.floating],
        theta: float,
        dt: float,
        stage_values: object,
    ) -> NDArray[np.floating]:
        """Return y(t0 + theta*dt) - y0."""
        ...


class LinearInterpolant:
    """Straight line between the step endpoints (first order)."""

    def evaluate(
        self,
        y0: NDArray[np.floating],
        y1: NDArray[np.floating],
        theta: float,
        dt: float,  # noqa: ARG002
        stage_values: object,  # noqa: ARG002
    ) -> NDArray[np.floating]:
        """
        Evaluate the linear increment.

        Args:
            y0: State at the start of the step.
            y1: State at the end of the step.
            theta: Normalized position inside the step.
            dt: Step size (unused).
            stage_values: Stage derivatives (unused).

        Returns:
            (y1 - y0) * theta.
        """
        return (np.asarray(y1) - np.asarray(y0)) * float(theta)

    def __repr__(self) -> str:
        return "LinearInterpolant()"


class PolynomialInterpolant:
    """Continuous Runge-Kutta extension with polynomial weights.

    The weight of stage i is b_i(theta) = sum_j C[i, j] * theta**(j + 1), so the
    increment is dt * sum_i b_i(theta) * k_i.
    """

    def __init__(self, coefficients: NDArray[np.floating] | list[list[float]]) -> None:
        coeffs = np.array(coefficients, dtype=float)
        if coeffs.ndim != 2:
            raise ValueError(_STAGES_TYPE_MSG.format(name="coefficients", got=coeffs.shape))
        coeffs.setflags(write=False)
        self.coefficients = coeffs

    @property
    def n_stages(self) -> int:
        """Number of stages the interpolant expects."""
        return int(self.coefficients.shape[0])

    def weights(self, theta: float) -> NDArray[np.floating]:
        """
        Return the stage weights b_i(theta).

        Args:
            theta: Normalized position inside the step.

        Returns:
            Weight vector of length n_stages.
        """
        powers = float(theta) ** np.arange(1, self.coefficients.shape[1] + 1)
        return self.coefficients @ powers

    def evaluate(
        self,
        y0: NDArray[np.floating],  # noqa: ARG002
        y1: NDArray[np.floating],  # noqa: ARG002
        theta: float,
        dt: float,
        stage_values: object,
    ) -> NDArray[np.floating]:
        """
        Evaluate the increment from the stage derivatives.

        Args:
            y0: State at the start of the step (unused).
            y1: State at the end of the step (unused).
            theta: Normalized position inside the step.
            dt: Step size.
            stage_values: Stage derivatives, shape (n_stages, n).

        Raises:
            ValueError: if stage_values does not match the number of stages.

        Returns:
            Increment y(t0 + theta*dt) - y0.
        """
        k = np.asarray(stage_values, dtype=float)
        weights = self.weights(theta)
        if k.ndim != 2 or k.shape[0] != weights.size:
            raise ValueError(
                _STAGES_TYPE_MSG.format(name=type(self).__name__, got=getattr(k, "shape", k))
            )
        return float(dt) * (weights @ k)


class DormandPrinceInterpolant(PolynomialInterpolant):
    """Fourth-order continuous extension of Dormand-Prince 5(4)."""

    _B = np.array(
        [35.0 / 384.0, 0.0, 500.0 / 1113.0, 125.0 / 192.0, -2187.0 / 6784.0, 11.0 / 84.0, 0.0]
    )

    def __init__(self) -> None:
        super().__init__(np.zeros((7, 1)))

    def weights(self, theta: float) -> NDArray[np.floating]:
        """
        Return the Dormand-Prince (Shampine) dense-output weights.

        Args:
            theta: Normalized position inside the step.

        Returns:
            Weight vector of length 7.
        """
        th = float(theta)
        th1 = th * th * (3.0 - 2.0 * th)
        th2 = th * th * (th - 1.0) * (th - 1.0)
        b = self._B
        return np.array([
            th1 * b[0]
            + th * (th - 1.0) * (th - 1.0)
            - th2 * 5.0 * (2558722523.0 - 31403016.0 * th) / 11282082432.0,
            0.0,
            th1 * b[2] + th2 * 100.0 * (882725551.0 - 15701508.0 * th) / 32700410799.0,
            th1 * b[3] - th2 * 25.0 * (443332067.0 - 31403016.0 * th) / 1880347072.0,
            th1 * b[4] + th2 * 32805.0 * (23143187.0 - 3489224.0 * th) / 199316789632.0,
            th1 * b[5] - th2 * 55.0 * (29972135.0 - 7076736.0 * th) / 822651844.0,
            th * th * (th - 1.0) + th2 * 10.0 * (7414447.0 - 829305.0 * th) / 29380423.0,
        ])


class AdditiveInterpolant:
    """Sum of one polynomial extension per additive part."""

    def __init__(self, explicit: PolynomialInterpolant, implicit: PolynomialInterpolant) -> None:
        self.explicit = explicit
        self.implicit = implicit

    def evaluate(
        self,
        y0: NDArray[np.floating],
        y1: NDArray[np.floating],
        theta: float,
        dt: float,
        stage_values: object,
    ) -> NDArray[np.floating]:
        """
        Evaluate the increment as explicit-part plus implicit-part contributions.

        Args:
            y0: State at the start of the step.
            y1: State at the end of the step.
            theta: Normalized position inside the step.
            dt: Step size.
            stage_values: AdditiveStages of the step.

        Raises:
            TypeError: if stage_values is not AdditiveStages.

        Returns:
            Increment y(t0 + theta*dt) - y0.
        """
        if not isinstance(stage_values, AdditiveStages):
            raise TypeError(_ADDITIVE_STAGES_MSG.format(typ=type(stage_values).__name__))
        return self.explicit.evaluate(
            y0, y1, theta, dt, stage_values.explicit
        ) + self.implicit.evaluate(y0, y1, theta, dt, stage_values.implicit)
