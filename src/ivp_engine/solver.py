# src/ivp_engine/solver.py
"""Solvers: the root of the module pipeline and owner of the stepping loop.

A solver holds the registered modules, assembles them once per run, and then
repeats step attempts until the final time is reached or a module asks it to
stop. Before every attempt it writes the interval keys into the property bag

    INITIAL_TIME, INITIAL_VALUES, FINAL_TIME

runs the assembled modules in order, and reads the outcome back:

    ConstantStepSolver:            FINAL_TIME, FINAL_VALUES
    EmbeddedErrorSolver and
    StepDoublingSolver:            + STEP_ACCEPTED, NEXT_STEP_SIZE
    SymmetricVariableStepSolver:   same keys; every attempt advances

Variable-step solvers stretch the last step onto the final time when
``t + 1.1 * h >= tf`` and the previous attempt was accepted, and advance only
on acceptance. A module may stop the run early by setting STOP_SOLVER (and
optionally STOP_REASON).

A solver is not re-entrant: ``solve`` raises while a run is in progress and
modules cannot be added once a run has started.
"""

from __future__ import annotations

import logging
import warnings
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .errors import (
    ConfigurationError,
    SolverRunningError,
    StepLimitError,
    raise_invalid_parameter,
)
from .ode import IVP
from .pipeline import Module, ModuleDecorator, assemble
from .properties import PropertyBag, PropertyKey

if TYPE_CHECKING:
    from .kernels import SteppingKernel
    from .ode import ODE
    from .pipeline import Assembly

logger = logging.getLogger(__name__)

FINAL_TIME_REACHED = "final time reached"
DEFAULT_MAX_STEPS = 1_000_000
DEFAULT_CONSTANT_STEP = 0.01
FALLBACK_INITIAL_STEP = 1e-4
STRETCH_FACTOR = 1.1

# Relative slack for landing a constant step exactly on the final time.
_CONSTANT_STEP_SLACK = 1e-8

_ALREADY_RUNNING_MSG = "Solver already running."
_ADD_WHILE_RUNNING_MSG = "Cannot add modules to a solver once it has been started."
_TIME_ORDER_MSG = "final time must be greater than initial time, got t0={t0!r}, tf={tf!r}"
_NOT_RUN_MSG = "{name} has not completed a run; nothing to continue from"
_NO_ODE_MSG = "{name} has no ODE; it is only available during and after a run"
_MAX_STEPS_MSG = "Exceeded max_steps ({max_steps}) step attempts before reaching t={tf!r}"
_BAD_NEXT_STEP_MSG = "Module published an invalid next step size {h!r} at t={t!r}"
_UNDERFLOW_MSG = "Step size {h!r} is too small to advance from t={t!r}"
_NO_PROGRESS_MSG = "Step from t={t!r} did not advance time (reached {t1!r})"
_FALLBACK_STEP_WARNING = (
    "No initial step size configured and none published by a module; "
    "using {h!r}. Add an InitialStepSizeSelector or pass initial_step_size."
)


# =============================================================================
# Base solver
# =============================================================================


class Solver(Module):
    """Root module: owns the registered modules, the run state and the loop.

    Subclasses declare the keys they supply to and require from the pipeline
    and implement :meth:`_attempt`.

    Attributes after a run:
        final_time: Time reached.
        final_values: State at ``final_time``.
        final_step_size: Step size the loop would have used next.
        stop_reason: Why the run ended.
        accepted_steps / rejected_steps: Attempt counts.
        assembly: Ordered modules and key bindings of the run.

    Args:
        initial_step_size: First step size; chosen per solver when omitted.
        max_steps: Upper bound on step attempts per run.
        name: Optional module name.
    """

    def __init__(
        self,
        *,
        initial_step_size: float | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        required: tuple[PropertyKey, ...] = (),
        supplied: tuple[PropertyKey, ...] = (),
        required_if_present: tuple[PropertyKey, ...] = (),
        name: str | None = None,
    ) -> None:
        super().__init__(
            required=required,
            supplied=supplied,
            required_if_present=(
                PropertyKey.STOP_SOLVER,
                PropertyKey.STOP_REASON,
                *required_if_present,
            ),
            name=name,
        )
        if initial_step_size is not None:
            h = float(initial_step_size)
            if not np.isfinite(h) or h <= 0:
                raise_invalid_parameter(
                    "initial_step_size", expected="positive and finite", got=initial_step_size
                )
            initial_step_size = h
        if isinstance(max_steps, bool) or int(max_steps) != max_steps or max_steps < 1:
            raise_invalid_parameter("max_steps", expected="a positive integer", got=max_steps)

        self.initial_step_size = initial_step_size
        self.max_steps = int(max_steps)
        self.bag = PropertyBag()
        self._modules: list[Module] = []
        self._running = False
        self._ode: ODE | None = None

        self.initial_time = 0.0
        self.final_time = 0.0
        self.initial_values: NDArray[np.floating] | None = None
        self.final_values: NDArray[np.floating] | None = None
        self.final_step_size = 0.0
        self.stop_reason = FINAL_TIME_REACHED
        self.accepted_steps = 0
        self.rejected_steps = 0
        self.assembly: Assembly | None = None

        self._t = 0.0
        self._y: NDArray[np.floating] = np.zeros(0)
        self._h = 0.0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def ode(self) -> ODE:
        """ODE of the current or last run."""
        if self._ode is None:
            raise RuntimeError(_NO_ODE_MSG.format(name=self.name))
        return self._ode

    @property
    def running(self) -> bool:
        """True while :meth:`solve` is in progress."""
        return self._running

    @property
    def modules(self) -> tuple[Module, ...]:
        """Registered modules, in registration order."""
        return tuple(self._modules)

    def add_module(self, module: Module) -> None:
        """
        Register a module for subsequent runs.

        Raises:
            SolverRunningError: If a run is in progress.
        """
        if self._running:
            raise SolverRunningError(_ADD_WHILE_RUNNING_MSG)
        self._modules.append(module)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def solve(self, ode: ODE, t0: float, tf: float, y0: ArrayLike) -> str:
        """
        Integrate ``ode`` from (t0, y0) to tf.

        Args:
            ode: Right-hand side.
            t0: Initial time.
            tf: Final time, greater than t0.
            y0: Initial state, shape (ode.size,).

        Raises:
            SolverRunningError: If this solver is already running.
            ConfigurationError: On invalid times or initial state.
            AssemblyError: If the modules cannot be ordered or satisfied.
            StepLimitError: If the loop cannot make progress.

        Returns:
            The stop reason, :data:`FINAL_TIME_REACHED` unless a module
            stopped the run.
        """
        if self._running:
            raise SolverRunningError(_ALREADY_RUNNING_MSG)

        ivp = IVP(ode, t0, np.asarray(y0, dtype=float))
        tf = float(tf)
        if not np.isfinite(tf) or tf <= ivp.initial_time:
            raise ConfigurationError(_TIME_ORDER_MSG.format(t0=ivp.initial_time, tf=tf))

        self._running = True
        self._ode = ode
        self.initial_time = ivp.initial_time
        self.initial_values = ivp.initial_values
        self.final_time = tf
        self.final_values = None
        self.final_step_size = 0.0
        self.stop_reason = FINAL_TIME_REACHED
        self.accepted_steps = 0
        self.rejected_steps = 0
        self.assembly = None
        self._t = ivp.initial_time
        self._y = np.array(ivp.initial_values, dtype=float)
        self._h = 0.0

        started: tuple[Module, ...] = ()
        try:
            self.assembly = assemble(self, self._modules)
            self.bag.clear()
            for module in self.assembly.modules:
                module.begin_stepping(self, self.bag)
                started = (*started, module)

            self._h = self._first_step_size(tf)
            self._begin(self.bag)
            logger.debug(
                "%s: solving on [%g, %g] with h0=%g", self.name, self._t, tf, self._h
            )

            attempts = 0
            done = False
            while not done:
                if attempts >= self.max_steps:
                    raise StepLimitError(_MAX_STEPS_MSG.format(max_steps=self.max_steps, tf=tf))
                attempts += 1
                done = self._attempt(self.bag, tf)
        finally:
            self.final_time = self._t
            self.final_values = self._y
            self.final_step_size = self._h
            for module in started:
                module.end_stepping()
            self._running = False

        logger.debug(
            "%s: stopped at t=%g (%s); %d accepted, %d rejected",
            self.name,
            self.final_time,
            self.stop_reason,
            self.accepted_steps,
            self.rejected_steps,
        )
        return self.stop_reason

    def solve_from(self, previous: Solver, tf: float) -> str:
        """
        Continue from where another (or this) solver stopped.

        Args:
            previous: Solver that has completed a run.
            tf: New final time.

        Returns:
            The stop reason of the new run.
        """
        if previous.final_values is None:
            raise ConfigurationError(_NOT_RUN_MSG.format(name=previous.name))
        return self.solve(previous.ode, previous.final_time, tf, previous.final_values)

    # ------------------------------------------------------------------
    # Loop hooks
    # ------------------------------------------------------------------

    def _first_step_size(self, tf: float) -> float:  # noqa: ARG002
        if self.initial_step_size is not None:
            return self.initial_step_size
        return DEFAULT_CONSTANT_STEP

    def _begin(self, bag: PropertyBag) -> None:
        """Write the solver's own run constants after the modules have begun."""

    def _attempt(self, bag: PropertyBag, tf: float) -> bool:
        """Run one step attempt; return True when the run is finished."""
        raise NotImplementedError

    def _run_modules(self, bag: PropertyBag, t1: float) -> None:
        bag[PropertyKey.INITIAL_TIME] = self._t
        bag[PropertyKey.INITIAL_VALUES] = self._y
        bag[PropertyKey.FINAL_TIME] = t1
        assembly = self.assembly
        if assembly is None:
            return
        for module in assembly.modules:
            module.step(bag)

    def _stop_requested(self, bag: PropertyBag) -> bool:
        if PropertyKey.STOP_SOLVER not in bag or not bag.flag(PropertyKey.STOP_SOLVER):
            return False
        if PropertyKey.STOP_REASON in bag:
            self.stop_reason = bag.text(PropertyKey.STOP_REASON)
        return True

    def _check_progress(self, t1: float) -> None:
        if not t1 > self._t:
            raise StepLimitError(_UNDERFLOW_MSG.format(h=t1 - self._t, t=self._t))


# =============================================================================
# Constant step
# =============================================================================


class ConstantStepSolver(Solver):
    """Fixed step size; every attempt is accepted.

    The last step is shortened to land exactly on the final time. Without a
    configured step size the solver uses 0.01.
    """

    def __init__(
        self,
        step_size: float | None = None,
        *,
        max_steps: int = DEFAULT_MAX_STEPS,
        name: str | None = None,
    ) -> None:
        super().__init__(
            initial_step_size=step_size,
            max_steps=max_steps,
            required=(PropertyKey.FINAL_VALUES, PropertyKey.FINAL_TIME),
            supplied=(
                PropertyKey.INITIAL_TIME,
                PropertyKey.INITIAL_VALUES,
                PropertyKey.FINAL_TIME,
                PropertyKey.STEP_ACCEPTED,
            ),
            name=name,
        )

    def _attempt(self, bag: PropertyBag, tf: float) -> bool:
        h = self._h
        remaining = tf - self._t
        t1 = tf if remaining <= h * (1.0 + _CONSTANT_STEP_SLACK) else self._t + h
        self._check_progress(t1)

        bag[PropertyKey.STEP_ACCEPTED] = True
        self._run_modules(bag, t1)

        self._t = bag.time(PropertyKey.FINAL_TIME)
        self._y = bag.vector(PropertyKey.FINAL_VALUES)
        self.accepted_steps += 1
        done = self._t >= tf
        return self._stop_requested(bag) or done


# =============================================================================
# Variable step
# =============================================================================


class VariableStepSolver(Solver):
    """Adaptive loop driven by STEP_ACCEPTED and NEXT_STEP_SIZE.

    The initial step size is, in order of preference: the configured one,
    INITIAL_STEP_SIZE published by a module, or 1e-4 with a warning.
    """

    def __init__(
        self,
        *,
        initial_step_size: float | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        name: str | None = None,
    ) -> None:
        super().__init__(
            initial_step_size=initial_step_size,
            max_steps=max_steps,
            required=(
                PropertyKey.STEP_ACCEPTED,
                PropertyKey.NEXT_STEP_SIZE,
                PropertyKey.FINAL_VALUES,
                PropertyKey.FINAL_TIME,
            ),
            supplied=(
                PropertyKey.INITIAL_TIME,
                PropertyKey.INITIAL_VALUES,
                PropertyKey.FINAL_TIME,
            ),
            required_if_present=(PropertyKey.INITIAL_STEP_SIZE,),
            name=name,
        )
        self._previous_accepted = True

    def _first_step_size(self, tf: float) -> float:  # noqa: ARG002
        if self.initial_step_size is not None:
            return self.initial_step_size
        if PropertyKey.INITIAL_STEP_SIZE in self.bag:
            return self.bag.time(PropertyKey.INITIAL_STEP_SIZE)
        warnings.warn(
            _FALLBACK_STEP_WARNING.format(h=FALLBACK_INITIAL_STEP),
            RuntimeWarning,
            stacklevel=3,
        )
        return FALLBACK_INITIAL_STEP

    def _begin(self, bag: PropertyBag) -> None:
        bag[PropertyKey.STEP_ACCEPTED] = False
        # The first step may be stretched onto the final time.
        self._previous_accepted = True

    def _next_step_size(self, bag: PropertyBag) -> float:
        h = bag.time(PropertyKey.NEXT_STEP_SIZE)
        if not np.isfinite(h) or h <= 0:
            raise StepLimitError(_BAD_NEXT_STEP_MSG.format(h=h, t=self._t))
        return h

    def _attempt(self, bag: PropertyBag, tf: float) -> bool:
        if self._previous_accepted and self._t + STRETCH_FACTOR * self._h >= tf:
            self._h = tf - self._t
            t1 = tf
        else:
            t1 = self._t + self._h
        self._check_progress(t1)

        self._run_modules(bag, t1)

        accepted = bag.flag(PropertyKey.STEP_ACCEPTED)
        done = False
        if accepted:
            self._t = bag.time(PropertyKey.FINAL_TIME)
            self._y = bag.vector(PropertyKey.FINAL_VALUES)
            self.accepted_steps += 1
            done = self._t >= tf
        else:
            self.rejected_steps += 1
        self._previous_accepted = accepted

        self._h = self._next_step_size(bag)
        return self._stop_requested(bag) or done


class EmbeddedErrorSolver(VariableStepSolver):
    """Variable-step solver for kernels with an embedded error estimate.

    Typical pipeline: an embedded kernel, :class:`EmbeddedErrorEstimator`,
    an embedded controller and optionally an
    :class:`InitialStepSizeSelector` and output writers.
    """


class SymmetricVariableStepSolver(VariableStepSolver):
    """Variable-step loop for kernels that choose their own step.

    Every attempt advances to the FINAL_TIME the modules leave in the bag, so
    the run may end past the requested final time. Intended for
    :class:`~ivp_engine.symplectic.AdaptiveArenstorfStormerVerlet`.
    """

    def _begin(self, bag: PropertyBag) -> None:
        bag[PropertyKey.STEP_ACCEPTED] = True

    def _attempt(self, bag: PropertyBag, tf: float) -> bool:
        t1 = self._t + self._h
        self._check_progress(t1)

        self._run_modules(bag, t1)

        reached = bag.time(PropertyKey.FINAL_TIME)
        if not reached > self._t:
            raise StepLimitError(_NO_PROGRESS_MSG.format(t=self._t, t1=reached))
        self._t = reached
        self._y = bag.vector(PropertyKey.FINAL_VALUES)
        self.accepted_steps += 1
        self._h = self._next_step_size(bag)
        done = self._t >= tf
        return self._stop_requested(bag) or done


# =============================================================================
# Step doubling
# =============================================================================


class CoarseStep(ModuleDecorator):
    """Runs the kernel over the full step and saves FINAL_VALUES_COARSE."""

    def __init__(self, inner: Module) -> None:
        super().__init__(inner, supplied=(PropertyKey.FINAL_VALUES_COARSE,))

    def step(self, bag: PropertyBag) -> None:
        super().step(bag)
        bag[PropertyKey.FINAL_VALUES_COARSE] = bag.vector(PropertyKey.FINAL_VALUES)


class FirstHalfStep(ModuleDecorator):
    """Saves the interval, then runs the kernel over the first half step."""

    def __init__(self, inner: Module) -> None:
        super().__init__(
            inner,
            required=(PropertyKey.FINAL_VALUES_COARSE,),
            supplied=(
                PropertyKey.FINAL_VALUES_HALF,
                PropertyKey.SAVED_INITIAL_TIME,
                PropertyKey.SAVED_FINAL_TIME,
                PropertyKey.SAVED_INITIAL_VALUES,
                PropertyKey.SAVED_STAGE_VALUES,
            ),
        )

    def step(self, bag: PropertyBag) -> None:
        t0 = bag.time(PropertyKey.INITIAL_TIME)
        t1 = bag.time(PropertyKey.FINAL_TIME)
        bag[PropertyKey.SAVED_INITIAL_TIME] = t0
        bag[PropertyKey.SAVED_FINAL_TIME] = t1
        bag[PropertyKey.SAVED_INITIAL_VALUES] = bag.vector(PropertyKey.INITIAL_VALUES)
        bag[PropertyKey.SAVED_STAGE_VALUES] = bag[PropertyKey.STAGE_VALUES]

        bag[PropertyKey.FINAL_TIME] = t0 + 0.5 * (t1 - t0)
        super().step(bag)
        bag[PropertyKey.FINAL_VALUES_HALF] = bag.vector(PropertyKey.FINAL_VALUES)


class SecondHalfStep(ModuleDecorator):
    """Runs the kernel over the second half step, then restores the interval.

    After it runs, FINAL_VALUES holds the two-half-step solution and the
    interval keys and STAGE_VALUES describe the full step again.
    """

    def __init__(self, inner: Module) -> None:
        super().__init__(
            inner,
            required=(
                PropertyKey.FINAL_VALUES_HALF,
                PropertyKey.SAVED_INITIAL_TIME,
                PropertyKey.SAVED_FINAL_TIME,
                PropertyKey.SAVED_INITIAL_VALUES,
                PropertyKey.SAVED_STAGE_VALUES,
            ),
        )

    def step(self, bag: PropertyBag) -> None:
        t_mid = bag.time(PropertyKey.FINAL_TIME)
        bag[PropertyKey.INITIAL_TIME] = t_mid
        bag[PropertyKey.INITIAL_VALUES] = bag.vector(PropertyKey.FINAL_VALUES_HALF)
        bag[PropertyKey.FINAL_TIME] = bag.time(PropertyKey.SAVED_FINAL_TIME)
        super().step(bag)

        bag[PropertyKey.INITIAL_TIME] = bag.time(PropertyKey.SAVED_INITIAL_TIME)
        bag[PropertyKey.INITIAL_VALUES] = bag.vector(PropertyKey.SAVED_INITIAL_VALUES)
        bag[PropertyKey.FINAL_TIME] = bag.time(PropertyKey.SAVED_FINAL_TIME)
        bag[PropertyKey.STAGE_VALUES] = bag[PropertyKey.SAVED_STAGE_VALUES]


class StepDoublingSolver(VariableStepSolver):
    """Variable-step solver with step-doubling error control.

    Register the kernel with :meth:`add_kernel`; it is then run three times
    per attempt: one full step, then two half steps. Pair it with
    :class:`StepDoublingErrorEstimator` and :class:`StepDoublingController`.
    """

    def add_kernel(self, kernel: SteppingKernel) -> None:
        """Register ``kernel`` wrapped in the full and half step decorators."""
        self.add_module(CoarseStep(kernel))
        self.add_module(FirstHalfStep(kernel))
        self.add_module(SecondHalfStep(kernel))
