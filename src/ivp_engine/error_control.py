# src/ivp_engine/error_control.py
"""Local error estimation, step-size control and initial step selection.

Estimators turn the trial solutions published by a kernel into a
component-wise error estimate. Controllers turn that estimate into an
accept/reject decision and the next step size.

All controllers share the normalized error

    tol_i = rtol_i * max(|y0_i|, |y1_i|) + atol_i
    eps   = sqrt(mean((err_i / tol_i) ** 2))

and the non-finite guard: a trial state with NaN/Inf entries is rejected
unconditionally and the step shrinks by ``amin``.

Controller decisions are pure functions of a :class:`ControllerHistory`
(previous outcome, previous normalized error, previous step). The controller
modules keep that history in the property bag under ``CONTROLLER_HISTORY``
and thread it through :meth:`StepController.decide` on every attempt.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .errors import ConfigurationError, raise_invalid_parameter
from .pipeline import Module
from .properties import PropertyKey

if TYPE_CHECKING:
    from .ode import RHSFunction
    from .properties import PropertyBag
    from .solver import Solver

_MACHINE_EPS = float(np.finfo(float).eps)
_TINY = float(np.finfo(float).tiny)

DEFAULT_AMAX_NORMAL = 5.0
DEFAULT_AMAX_REJECTED = 1.0
DEFAULT_AMIN = 0.2
DEFAULT_SAFETY = 0.85
DEFAULT_THRESHOLD = 3.0
DEFAULT_ATOL = 1e-6
DEFAULT_RTOL = 1e-3

_TOL_SIZE_MSG = "tolerance vectors must be the same size as the ODE"
_TOL_VALUE_MSG = "tolerances must be finite and non-negative"
_AMAX_NORMAL_MSG = "amax_normal must be greater than one"
_AMAX_REJECTED_MSG = "amax_rejected must not be less than one"
_AMIN_MSG = "amin must be between zero and one"
_POSITIVE_MSG = "{name} must be positive"
_ORDER_MSG = "controller order must be a positive integer, got {order!r}"
_STEP_BOUNDS_MSG = "min_step_size must not exceed max_step_size"


def _positive(name: str, value: float) -> float:
    value = float(value)
    if not np.isfinite(value) or value <= 0:
        raise ConfigurationError(_POSITIVE_MSG.format(name=name))
    return value


def _as_tolerance(value: ArrayLike) -> NDArray[np.floating]:
    arr = np.array(value, dtype=float)
    if arr.ndim > 1 or not np.all(np.isfinite(arr)) or np.any(arr < 0):
        raise ConfigurationError(_TOL_VALUE_MSG)
    return arr


def broadcast_tolerance(value: ArrayLike, size: int) -> NDArray[np.floating]:
    """
    Expand a scalar tolerance to ``size`` components, or check a vector's size.

    Args:
        value: Scalar or 1D per-component tolerance.
        size: ODE size.

    Raises:
        ConfigurationError: If a vector has the wrong size, or any entry is
            negative or non-finite.

    Returns:
        Read-only 1D tolerance vector of length ``size``.
    """
    arr = _as_tolerance(value)
    if arr.ndim == 0:
        arr = np.full(size, float(arr))
    elif arr.shape != (size,):
        raise ConfigurationError(_TOL_SIZE_MSG)
    arr.setflags(write=False)
    return arr


def error_norm(
    error_estimate: NDArray[np.floating],
    y0: NDArray[np.floating],
    y1: NDArray[np.floating],
    atol: NDArray[np.floating],
    rtol: NDArray[np.floating],
) -> float:
    """
    RMS of the error estimate scaled by the mixed tolerance.

    A component with zero tolerance contributes nothing when its error is
    exactly zero, and makes the norm infinite otherwise.

    Returns:
        Normalized error; ``inf`` when any ratio is not finite.
    """
    err = np.asarray(error_estimate, dtype=float)
    tol = rtol * np.maximum(np.abs(y0), np.abs(y1)) + atol
    positive = np.isfinite(tol) & (tol > 0)
    if np.any(~positive & (err != 0)):
        return float(np.inf)
    with np.errstate(over="ignore", invalid="ignore"):
        ratios = np.divide(err, tol, out=np.zeros_like(err), where=positive)
        if not np.all(np.isfinite(ratios)):
            return float(np.inf)
        return float(np.sqrt(np.mean(ratios * ratios)))


# =============================================================================
# Error estimators
# =============================================================================


class EmbeddedErrorEstimator(Module):
    """ERROR_ESTIMATE = FINAL_VALUES - FINAL_VALUES_EMBEDDED."""

    def __init__(self, *, name: str | None = None) -> None:
        super().__init__(
            required=(PropertyKey.FINAL_VALUES, PropertyKey.FINAL_VALUES_EMBEDDED),
            supplied=(PropertyKey.ERROR_ESTIMATE,),
            name=name,
        )

    def step(self, bag: PropertyBag) -> None:
        y1 = bag.vector(PropertyKey.FINAL_VALUES)
        y_emb = bag.vector(PropertyKey.FINAL_VALUES_EMBEDDED)
        bag[PropertyKey.ERROR_ESTIMATE] = y1 - y_emb


class StepDoublingErrorEstimator(Module):
    """Richardson estimate from one full step and two half steps.

    ERROR_ESTIMATE = (fine - coarse) / (2**q - 1), where fine is
    FINAL_VALUES after the two half steps, coarse is FINAL_VALUES_COARSE and
    q is the scheme order.
    """

    def __init__(self, *, name: str | None = None) -> None:
        super().__init__(
            required=(
                PropertyKey.SCHEME_ORDER,
                PropertyKey.FINAL_VALUES,
                PropertyKey.FINAL_VALUES_COARSE,
            ),
            supplied=(PropertyKey.ERROR_ESTIMATE,),
            name=name,
        )
        self.order = 0

    def begin_stepping(self, solver: Solver, bag: PropertyBag) -> None:  # noqa: ARG002
        order = bag.integer(PropertyKey.SCHEME_ORDER)
        if order < 1:
            raise ConfigurationError(_ORDER_MSG.format(order=order))
        self.order = order

    def step(self, bag: PropertyBag) -> None:
        fine = bag.vector(PropertyKey.FINAL_VALUES)
        coarse = bag.vector(PropertyKey.FINAL_VALUES_COARSE)
        bag[PropertyKey.ERROR_ESTIMATE] = richardson_error(fine, coarse, self.order)


def richardson_error(
    fine: NDArray[np.floating],
    coarse: NDArray[np.floating],
    order: int,
) -> NDArray[np.floating]:
    """Return (fine - coarse) / (2**order - 1)."""
    return (fine - coarse) / (2.0**order - 1.0)


# =============================================================================
# Controller history and decisions
# =============================================================================


@dataclass(slots=True, frozen=True)
class ControllerHistory:
    """What a controller remembers between step attempts.

    Attributes:
        previous_accepted: Outcome of the previous attempt. True before the
            first step, so the first step may grow by ``amax_normal``.
        previous_error: Normalized error of the last accepted step.
        previous_step: Step size recorded at the last accepted step.
    """

    previous_accepted: bool = True
    previous_error: float | None = None
    previous_step: float | None = None


@dataclass(slots=True, frozen=True)
class StepDecision:
    """Outcome of one controller decision.

    Attributes:
        accepted: Whether the trial step is accepted.
        next_step: Step size for the next attempt.
        error: Normalized error of the trial step (``inf`` when non-finite).
        history: History to use for the next decision.
    """

    accepted: bool
    next_step: float
    error: float
    history: ControllerHistory


# =============================================================================
# Step controllers
# =============================================================================


class StepController(Module):
    """Base class for step-size controllers.

    Subclasses implement :meth:`_decide` on a finite trial state; the base
    class applies the non-finite guard and keeps the bag protocol.

    Args:
        atol: Absolute tolerance, scalar or per component.
        rtol: Relative tolerance, scalar or per component.
        amax_normal: Largest growth after an accepted step (> 1).
        amax_rejected: Largest growth after a rejected step (>= 1).
        amin: Smallest shrink factor, in (0, 1).
        safety: Safety factor (> 0).
        name: Optional module name.
    """

    def __init__(
        self,
        atol: ArrayLike = DEFAULT_ATOL,
        rtol: ArrayLike = DEFAULT_RTOL,
        *,
        amax_normal: float = DEFAULT_AMAX_NORMAL,
        amax_rejected: float = DEFAULT_AMAX_REJECTED,
        amin: float = DEFAULT_AMIN,
        safety: float = DEFAULT_SAFETY,
        required: tuple[PropertyKey, ...] = (),
        name: str | None = None,
    ) -> None:
        super().__init__(
            required=(
                PropertyKey.INITIAL_TIME,
                PropertyKey.INITIAL_VALUES,
                PropertyKey.FINAL_TIME,
                PropertyKey.FINAL_VALUES,
                PropertyKey.ERROR_ESTIMATE,
                PropertyKey.SCHEME_ORDER,
                *required,
            ),
            supplied=(
                PropertyKey.STEP_ACCEPTED,
                PropertyKey.NEXT_STEP_SIZE,
                PropertyKey.CONTROLLER_HISTORY,
                PropertyKey.ABSOLUTE_TOLERANCES,
                PropertyKey.RELATIVE_TOLERANCES,
                PropertyKey.AMAX,
                PropertyKey.AMIN,
            ),
            name=name,
        )
        amax_normal = float(amax_normal)
        if not np.isfinite(amax_normal) or amax_normal <= 1.0:
            raise ConfigurationError(_AMAX_NORMAL_MSG)
        amax_rejected = float(amax_rejected)
        if not np.isfinite(amax_rejected) or amax_rejected < 1.0:
            raise ConfigurationError(_AMAX_REJECTED_MSG)
        amin = float(amin)
        if not 0.0 < amin < 1.0:
            raise ConfigurationError(_AMIN_MSG)

        self.amax_normal = amax_normal
        self.amax_rejected = amax_rejected
        self.amin = amin
        self.safety = _positive("safety", safety)
        self._atol_spec = _as_tolerance(atol)
        self._rtol_spec = _as_tolerance(rtol)
        self.atol: NDArray[np.floating] = self._atol_spec
        self.rtol: NDArray[np.floating] = self._rtol_spec
        self.order = 0

    # ------------------------------------------------------------------
    # Module protocol
    # ------------------------------------------------------------------

    def controller_order(self, bag: PropertyBag) -> int:
        """Order q used in the step-size formulas."""
        return bag.integer(PropertyKey.SCHEME_ORDER)

    def begin_stepping(self, solver: Solver, bag: PropertyBag) -> None:
        size = solver.ode.size
        self.atol = broadcast_tolerance(self._atol_spec, size)
        self.rtol = broadcast_tolerance(self._rtol_spec, size)
        order = self.controller_order(bag)
        if order < 1:
            raise ConfigurationError(_ORDER_MSG.format(order=order))
        self.order = order

        bag[PropertyKey.ABSOLUTE_TOLERANCES] = self.atol
        bag[PropertyKey.RELATIVE_TOLERANCES] = self.rtol
        bag[PropertyKey.AMAX] = self.amax_normal
        bag[PropertyKey.AMIN] = self.amin
        bag[PropertyKey.CONTROLLER_HISTORY] = ControllerHistory()

    def step(self, bag: PropertyBag) -> None:
        dt = bag.time(PropertyKey.FINAL_TIME) - bag.time(PropertyKey.INITIAL_TIME)
        decision = self.decide(
            bag.history(),
            dt=dt,
            y0=bag.vector(PropertyKey.INITIAL_VALUES),
            y1=bag.vector(PropertyKey.FINAL_VALUES),
            error_estimate=bag.vector(PropertyKey.ERROR_ESTIMATE),
        )
        bag[PropertyKey.STEP_ACCEPTED] = decision.accepted
        bag[PropertyKey.NEXT_STEP_SIZE] = decision.next_step
        bag[PropertyKey.CONTROLLER_HISTORY] = decision.history

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def amax(self, history: ControllerHistory) -> float:
        """Growth limit: amax_normal after an accepted step, else amax_rejected."""
        return self.amax_normal if history.previous_accepted else self.amax_rejected

    def decide(
        self,
        history: ControllerHistory,
        *,
        dt: float,
        y0: NDArray[np.floating],
        y1: NDArray[np.floating],
        error_estimate: NDArray[np.floating],
    ) -> StepDecision:
        """
        Decide acceptance and the next step size for one trial step.

        Tolerances and order are the ones fixed by :meth:`begin_stepping`.

        Args:
            history: History produced by the previous decision.
            dt: Step size of the trial step.
            y0: State at the start of the step.
            y1: Trial state at the end of the step.
            error_estimate: Component-wise local error estimate.

        Returns:
            The decision, carrying the history for the next attempt.
        """
        if not np.all(np.isfinite(y1)):
            return StepDecision(
                accepted=False,
                next_step=self.amin * dt,
                error=float(np.inf),
                history=ControllerHistory(
                    previous_accepted=False,
                    previous_error=history.previous_error,
                    previous_step=history.previous_step,
                ),
            )
        epsilon = error_norm(error_estimate, y0, y1, self.atol, self.rtol)
        return self._decide(history, dt, epsilon)

    def _decide(self, history: ControllerHistory, dt: float, epsilon: float) -> StepDecision:
        raise NotImplementedError


class EmbeddedController(StepController):
    """Elementary controller for embedded error estimates.

    factor = eps ** (1 / (q + 1)) / safety, limited to at most 1 / amin and
    at least 1 / amax (accepted) or 1 / amax_rejected (rejected); the next
    step is dt / factor. q = min(scheme order, embedded order).
    """

    def __init__(
        self,
        atol: ArrayLike = DEFAULT_ATOL,
        rtol: ArrayLike = DEFAULT_RTOL,
        *,
        amax_normal: float = DEFAULT_AMAX_NORMAL,
        amax_rejected: float = DEFAULT_AMAX_REJECTED,
        amin: float = DEFAULT_AMIN,
        safety: float = DEFAULT_SAFETY,
        name: str | None = None,
    ) -> None:
        super().__init__(
            atol,
            rtol,
            amax_normal=amax_normal,
            amax_rejected=amax_rejected,
            amin=amin,
            safety=safety,
            required=(PropertyKey.EMBEDDED_ORDER,),
            name=name,
        )

    def controller_order(self, bag: PropertyBag) -> int:
        return min(
            bag.integer(PropertyKey.SCHEME_ORDER),
            bag.integer(PropertyKey.EMBEDDED_ORDER),
        )

    def _raw_factor(
        self,
        history: ControllerHistory,  # noqa: ARG002
        dt: float,  # noqa: ARG002
        epsilon: float,
    ) -> float:
        return epsilon ** (1.0 / (self.order + 1))

    def _record(
        self,
        history: ControllerHistory,
        dt: float,  # noqa: ARG002
        epsilon: float,
        next_step: float,  # noqa: ARG002
    ) -> ControllerHistory:
        return ControllerHistory(
            previous_accepted=True,
            previous_error=epsilon,
            previous_step=history.previous_step,
        )

    def _decide(self, history: ControllerHistory, dt: float, epsilon: float) -> StepDecision:
        factor = min(1.0 / self.amin, self._raw_factor(history, dt, epsilon) / self.safety)
        if epsilon <= 1.0:
            factor = max(1.0 / self.amax(history), factor)
            next_step = dt / factor
            new_history = self._record(history, dt, epsilon, next_step)
            return StepDecision(True, next_step, epsilon, new_history)

        factor = max(1.0 / self.amax_rejected, factor)
        new_history = ControllerHistory(
            previous_accepted=False,
            previous_error=history.previous_error,
            previous_step=history.previous_step,
        )
        return StepDecision(False, dt / factor, epsilon, new_history)


class PIController(EmbeddedController):
    """Explicit PI controller (Gustafsson).

    After an accepted step with a recorded error,

        factor = eps ** alpha * (eps / eps_prev) ** beta

    with alpha = 0.7 / q and beta = 0.4 / q unless given; otherwise the
    elementary formula. eps_prev is updated on acceptance only.
    """

    def __init__(
        self,
        atol: ArrayLike = DEFAULT_ATOL,
        rtol: ArrayLike = DEFAULT_RTOL,
        *,
        alpha: float | None = None,
        beta: float | None = None,
        amax_normal: float = DEFAULT_AMAX_NORMAL,
        amax_rejected: float = DEFAULT_AMAX_REJECTED,
        amin: float = DEFAULT_AMIN,
        safety: float = DEFAULT_SAFETY,
        name: str | None = None,
    ) -> None:
        super().__init__(
            atol,
            rtol,
            amax_normal=amax_normal,
            amax_rejected=amax_rejected,
            amin=amin,
            safety=safety,
            name=name,
        )
        self._alpha = None if alpha is None else _positive("alpha", alpha)
        self._beta = None if beta is None else _positive("beta", beta)
        self.alpha = 0.0
        self.beta = 0.0

    def begin_stepping(self, solver: Solver, bag: PropertyBag) -> None:
        super().begin_stepping(solver, bag)
        self.alpha = self._alpha if self._alpha is not None else 0.7 / self.order
        self.beta = self._beta if self._beta is not None else 0.4 / self.order

    def _raw_factor(self, history: ControllerHistory, dt: float, epsilon: float) -> float:
        if not history.previous_accepted or history.previous_error is None:
            return super()._raw_factor(history, dt, epsilon)
        eps = max(epsilon, _TINY)
        eps_prev = max(history.previous_error, _TINY)
        return eps**self.alpha * (eps / eps_prev) ** self.beta


class PredictiveController(EmbeddedController):
    """Predictive controller for implicit schemes (Gustafsson).

    After an accepted step with a recorded error and step,

        factor = (dt_prev / dt) * (eps**2 / eps_prev) ** (1 / (q + 1))

    otherwise the elementary formula. On acceptance it records eps and the
    proposed next step as eps_prev and dt_prev.
    """

    def _raw_factor(self, history: ControllerHistory, dt: float, epsilon: float) -> float:
        if (
            not history.previous_accepted
            or history.previous_error is None
            or history.previous_step is None
        ):
            return super()._raw_factor(history, dt, epsilon)
        eps = max(epsilon, _TINY)
        eps_prev = max(history.previous_error, _TINY)
        return (history.previous_step / dt) * (eps * eps / eps_prev) ** (1.0 / (self.order + 1))

    def _record(
        self,
        history: ControllerHistory,  # noqa: ARG002
        dt: float,  # noqa: ARG002
        epsilon: float,
        next_step: float,
    ) -> ControllerHistory:
        return ControllerHistory(
            previous_accepted=True,
            previous_error=epsilon,
            previous_step=next_step,
        )


class StepDoublingController(StepController):
    """Controller for step-doubling (Richardson) error estimates.

    hopt = dt / (eps * 2**q) ** (1 / (q + 1))
    hnew = min(amax * dt, max(amin * dt, 2 * safety * hopt))

    The step is accepted when dt / hopt <= threshold. The acceptance test is
    looser than the embedded one since each attempt already costs three
    kernel steps.
    """

    def __init__(
        self,
        atol: ArrayLike = DEFAULT_ATOL,
        rtol: ArrayLike = DEFAULT_RTOL,
        *,
        threshold: float = DEFAULT_THRESHOLD,
        amax_normal: float = DEFAULT_AMAX_NORMAL,
        amax_rejected: float = DEFAULT_AMAX_REJECTED,
        amin: float = DEFAULT_AMIN,
        safety: float = DEFAULT_SAFETY,
        name: str | None = None,
    ) -> None:
        super().__init__(
            atol,
            rtol,
            amax_normal=amax_normal,
            amax_rejected=amax_rejected,
            amin=amin,
            safety=safety,
            name=name,
        )
        self.threshold = _positive("threshold", threshold)

    def _decide(self, history: ControllerHistory, dt: float, epsilon: float) -> StepDecision:
        q = self.order
        with np.errstate(divide="ignore", over="ignore"):
            hopt = float(dt / np.power(epsilon * 2.0**q, 1.0 / (q + 1)))
        hnew = min(self.amax(history) * dt, max(self.amin * dt, 2.0 * self.safety * hopt))
        accepted = bool(hopt > 0.0 and dt / hopt <= self.threshold)
        new_history = ControllerHistory(
            previous_accepted=accepted,
            previous_error=epsilon if accepted else history.previous_error,
            previous_step=history.previous_step,
        )
        return StepDecision(accepted, hnew, epsilon, new_history)


# =============================================================================
# Initial step size
# =============================================================================


def select_initial_step(
    f: RHSFunction,
    t0: float,
    tf: float,
    y0: NDArray[np.floating],
    atol: NDArray[np.floating],
    rtol: NDArray[np.floating],
    order: int,
    *,
    safety: float = 0.8,
    max_step_size: float = np.inf,
    min_step_size: float = 0.0,
) -> float:
    """
    Estimate a starting step size from the initial slope.

    With scale = max(|y0|, atol / rtol) the step is

        h = ||safety * rtol**(1/order)|| / ||f(t0, y0) / scale||

    limited to [max(16 eps, min_step_size), min(|tf - t0|, max_step_size)].

    Args:
        f: Right-hand side.
        t0: Initial time.
        tf: Final time.
        y0: Initial state.
        atol: Absolute tolerances.
        rtol: Relative tolerances.
        order: Scheme order.
        safety: Safety factor.
        max_step_size: Upper bound on the step.
        min_step_size: Lower bound on the step.

    Returns:
        Initial step size.
    """
    upper = min(abs(tf - t0), max_step_size)
    lower = max(16.0 * _MACHINE_EPS, min_step_size)

    with np.errstate(divide="ignore", invalid="ignore"):
        threshold = np.where(rtol > 0, atol / rtol, np.inf)
        scale = np.maximum(np.abs(y0), threshold)
        f0 = np.asarray(f(t0, y0), dtype=float)
        slope = np.linalg.norm(f0 / scale)
    rtol_pow = safety * np.power(rtol, 1.0 / order)
    target = float(np.linalg.norm(rtol_pow))

    h = upper if not np.isfinite(slope) or slope == 0.0 else min(upper, target / float(slope))
    return max(lower, h)


class InitialStepSizeSelector(Module):
    """Publishes INITIAL_STEP_SIZE once per run from :func:`select_initial_step`.

    Reads the tolerances and scheme order published by the controller and the
    kernel, so it runs after both in ``begin_stepping``. Costs one RHS call.
    """

    def __init__(
        self,
        *,
        safety: float = 0.8,
        max_step_size: float = np.inf,
        min_step_size: float = 0.0,
        name: str | None = None,
    ) -> None:
        super().__init__(
            required=(
                PropertyKey.ABSOLUTE_TOLERANCES,
                PropertyKey.RELATIVE_TOLERANCES,
                PropertyKey.SCHEME_ORDER,
            ),
            supplied=(PropertyKey.INITIAL_STEP_SIZE,),
            name=name,
        )
        self.safety = _positive("safety", safety)
        max_step_size = float(max_step_size)
        if max_step_size != np.inf:
            max_step_size = _positive("max_step_size", max_step_size)
        min_step_size = float(min_step_size)
        if not np.isfinite(min_step_size) or min_step_size < 0:
            raise_invalid_parameter(
                "min_step_size", expected="non-negative and finite", got=min_step_size
            )
        if min_step_size > max_step_size:
            raise ConfigurationError(_STEP_BOUNDS_MSG)
        self.max_step_size = max_step_size
        self.min_step_size = min_step_size
        self.initial_step_size: float | None = None

    def begin_stepping(self, solver: Solver, bag: PropertyBag) -> None:
        h = select_initial_step(
            solver.ode.f,
            solver.initial_time,
            solver.final_time,
            solver.initial_values,
            bag.vector(PropertyKey.ABSOLUTE_TOLERANCES),
            bag.vector(PropertyKey.RELATIVE_TOLERANCES),
            bag.integer(PropertyKey.SCHEME_ORDER),
            safety=self.safety,
            max_step_size=self.max_step_size,
            min_step_size=self.min_step_size,
        )
        self.initial_step_size = h
        bag[PropertyKey.INITIAL_STEP_SIZE] = h
