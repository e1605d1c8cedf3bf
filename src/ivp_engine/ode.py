# src/ivp_engine/ode.py
"""Right-hand sides, Jacobians and initial value problems.

An :class:`ODE` wraps user callables of the form ``f(t, y) -> dy/dt`` on 1D
float64 state vectors. It can be given either as a single right-hand side or
as an additive split ``f = f1 + f2`` where ``f1`` (``explicit_part``) is
treated explicitly and ``f2`` (``implicit_part``) implicitly by IMEX kernels.

Jacobians are optional. When absent they are approximated column by column
with forward differences (:func:`finite_difference_jacobian`).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeAlias

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import csr_matrix

from .errors import ConfigurationError

RHSFunction = Callable[[float, NDArray[np.floating]], NDArray[np.floating]]
JacobianMatrix: TypeAlias = NDArray[np.floating] | csr_matrix
JacobianFunction = Callable[[float, NDArray[np.floating]], JacobianMatrix]

_EPS = float(np.finfo(float).eps)
_SQRT_EPS = float(np.sqrt(_EPS))

_SIZE_MSG = "ODE size must be a positive integer, got {size!r}"
_RHS_MISSING_MSG = "ODE needs rhs, or both explicit_part and implicit_part"
_PARTIAL_SPLIT_MSG = "explicit_part and implicit_part must be given together"
_RHS_SHAPE_MSG = "{what} returned shape {actual}, expected ({size},)"
_JAC_SHAPE_MSG = "{what} returned shape {actual}, expected ({size}, {size})"
_Y0_SHAPE_MSG = "initial_values must have shape ({size},), got {actual}"
_Y0_FINITE_MSG = "initial_values must be finite"
_T0_FINITE_MSG = "initial_time must be finite, got {t0!r}"


def finite_difference_jacobian(
    f: RHSFunction,
    t: float,
    y: NDArray[np.floating],
    f0: NDArray[np.floating] | None = None,
) -> NDArray[np.floating]:
    """
    Approximate df/dy with one-sided differences.

    Increments follow the RADAU5/RODAS codes:
    ``delta_i = max(sqrt(eps * max(|y_i|, sqrt(eps))), sqrt(eps))``.

    Args:
        f: Right-hand side f(t, y).
        t: Time.
        y: State, shape (n,).
        f0: f(t, y) if already available.

    Returns:
        Dense Jacobian, shape (n, n).
    """
    y = np.asarray(y, dtype=float)
    base = np.asarray(f(t, y), dtype=float) if f0 is None else np.asarray(f0, dtype=float)
    n = y.shape[0]
    jac = np.empty((n, n), dtype=float)

    shifted = y.copy()
    for i in range(n):
        delta = max(np.sqrt(_EPS * max(abs(y[i]), _SQRT_EPS)), _SQRT_EPS)
        shifted[i] = y[i] + delta
        jac[:, i] = (np.asarray(f(t, shifted), dtype=float) - base) / delta
        shifted[i] = y[i]
    return jac


# =============================================================================
# ODE
# =============================================================================


@dataclass(frozen=True, slots=True)
class ODE:
    """Right-hand side of y' = f(t, y) with optional Jacobian and additive split.

    Attributes:
        size: Length of the state vector.
        rhs: Full right-hand side f(t, y). Derived as f1 + f2 when omitted and
            a split is given.
        jacobian: Optional df/dy(t, y), dense ndarray or CSR matrix.
        explicit_part: Non-stiff term f1 of an additive split.
        implicit_part: Stiff term f2 of an additive split.
        implicit_jacobian: Optional df2/dy(t, y).
    """

    size: int
    rhs: RHSFunction | None = None
    jacobian: JacobianFunction | None = None
    explicit_part: RHSFunction | None = None
    implicit_part: RHSFunction | None = None
    implicit_jacobian: JacobianFunction | None = None

    def __post_init__(self) -> None:
        if isinstance(self.size, bool) or int(self.size) != self.size or self.size < 1:
            raise ConfigurationError(_SIZE_MSG.format(size=self.size))
        if (self.explicit_part is None) != (self.implicit_part is None):
            raise ConfigurationError(_PARTIAL_SPLIT_MSG)
        if self.rhs is None and self.explicit_part is None:
            raise ConfigurationError(_RHS_MISSING_MSG)

    @property
    def is_additive(self) -> bool:
        """True when an explicit/implicit split is available."""
        return self.explicit_part is not None

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _checked(self, what: str, value: object) -> NDArray[np.floating]:
        arr = np.asarray(value, dtype=float)
        if arr.shape != (self.size,):
            raise ValueError(_RHS_SHAPE_MSG.format(what=what, actual=arr.shape, size=self.size))
        return arr

    def f(self, t: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
        """Evaluate f(t, y)."""
        if self.rhs is not None:
            return self._checked("rhs", self.rhs(t, y))
        return self.f1(t, y) + self.f2(t, y)

    def f1(self, t: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
        """Evaluate the explicit term f1(t, y) of the split."""
        if self.explicit_part is None:
            raise ConfigurationError(_PARTIAL_SPLIT_MSG)
        return self._checked("explicit_part", self.explicit_part(t, y))

    def f2(self, t: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
        """Evaluate the implicit term f2(t, y) of the split."""
        if self.implicit_part is None:
            raise ConfigurationError(_PARTIAL_SPLIT_MSG)
        return self._checked("implicit_part", self.implicit_part(t, y))

    def _checked_jac(self, what: str, value: JacobianMatrix) -> JacobianMatrix:
        shape = getattr(value, "shape", None)
        if shape != (self.size, self.size):
            raise ValueError(
                _JAC_SHAPE_MSG.format(what=what, actual=shape, size=self.size)
            )
        if isinstance(value, np.ndarray):
            return value.astype(float, copy=False)
        return value

    def jac(
        self,
        t: float,
        y: NDArray[np.floating],
        f0: NDArray[np.floating] | None = None,
    ) -> JacobianMatrix:
        """
        Evaluate df/dy(t, y).

        Args:
            t: Time.
            y: State.
            f0: f(t, y) if already available (used by the finite-difference
                fallback).

        Returns:
            Dense ndarray or CSR matrix of shape (size, size).
        """
        if self.jacobian is not None:
            return self._checked_jac("jacobian", self.jacobian(t, y))
        return finite_difference_jacobian(self.f, t, y, f0)

    def implicit_jac(
        self,
        t: float,
        y: NDArray[np.floating],
        f0: NDArray[np.floating] | None = None,
    ) -> JacobianMatrix:
        """
        Evaluate the Jacobian of the implicitly treated term.

        For an additive split this is df2/dy; otherwise the full df/dy.

        Args:
            t: Time.
            y: State.
            f0: Value of the implicitly treated term at (t, y), if available.

        Returns:
            Dense ndarray or CSR matrix of shape (size, size).
        """
        if not self.is_additive:
            return self.jac(t, y, f0)
        if self.implicit_jacobian is not None:
            return self._checked_jac("implicit_jacobian", self.implicit_jacobian(t, y))
        return finite_difference_jacobian(self.f2, t, y, f0)


@dataclass(frozen=True, slots=True)
class IVP:
    """Initial value problem: an ODE plus its starting point.

    Attributes:
        ode: Right-hand side.
        initial_time: t0.
        initial_values: y(t0), shape (ode.size,).
    """

    ode: ODE
    initial_time: float
    initial_values: NDArray[np.floating]

    def __post_init__(self) -> None:
        t0 = float(self.initial_time)
        if not np.isfinite(t0):
            raise ConfigurationError(_T0_FINITE_MSG.format(t0=self.initial_time))
        y0 = np.array(self.initial_values, dtype=float)
        if y0.shape != (self.ode.size,):
            raise ConfigurationError(_Y0_SHAPE_MSG.format(size=self.ode.size, actual=y0.shape))
        if not np.all(np.isfinite(y0)):
            raise ConfigurationError(_Y0_FINITE_MSG)
        y0.setflags(write=False)
        object.__setattr__(self, "initial_time", t0)
        object.__setattr__(self, "initial_values", y0)
