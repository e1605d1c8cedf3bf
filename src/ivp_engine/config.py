# src/ivp_engine/config.py
"""Configuration facade: presets that build assembled solvers.

:class:`SolverConfig` is a pydantic model holding the knobs a typical run
needs (scheme, error-control family, tolerances, controller limits, initial
step, output cadence). :meth:`SolverConfig.build_solver` validates the
configuration against the ODE and the time span, then creates the kernel,
estimator, controller, initial step selector and output writer and registers
them with a solver.

Error-control families:
    - none: constant step, requires ``initial_step_size``.
    - custom: a caller-supplied solver; only the output writer and extra
      modules are added.
    - embedded: elementary controller on the embedded estimate.
    - embedded-special: PI controller for explicit tableaux, predictive
      controller for IMEX tableaux.
    - step-doubling: Richardson estimate from one full and two half steps.

Output modes:
    - all-points: every accepted step.
    - fixed-points: ``num_points`` equally spaced times over [t0, tf].
    - interval: every ``interval`` time units from t0.
    - times: the given times.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import numpy as np
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from .error_control import (
    DEFAULT_AMAX_NORMAL,
    DEFAULT_AMAX_REJECTED,
    DEFAULT_AMIN,
    DEFAULT_ATOL,
    DEFAULT_RTOL,
    DEFAULT_SAFETY,
    DEFAULT_THRESHOLD,
    EmbeddedController,
    EmbeddedErrorEstimator,
    InitialStepSizeSelector,
    PIController,
    PredictiveController,
    StepController,
    StepDoublingController,
    StepDoublingErrorEstimator,
    broadcast_tolerance,
)
from .errors import ConfigurationError
from .kernels import ExplicitRungeKutta, ForwardEuler, IMEXRungeKutta
from .output import (
    AllPointsWriter,
    CompoundSink,
    InterpolatingWriter,
    MemorySink,
    TextFileSink,
)
from .schemes import AdditiveTableau, ButcherTableau, Scheme
from .solver import (
    DEFAULT_MAX_STEPS,
    ConstantStepSolver,
    EmbeddedErrorSolver,
    StepDoublingSolver,
)
from .symplectic import StormerVerlet
from .tableaux import EXPLICIT_TABLEAUX, FORWARD_EULER, IMEX_TABLEAUX, STORMER_VERLET

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .kernels import SteppingKernel
    from .ode import IVP, ODE
    from .output import SolutionSink
    from .pipeline import Module
    from .solver import Solver

_UNKNOWN_SCHEME_MSG = "Unknown scheme {name!r}; expected one of {known}"
_SCHEME_TYPE_MSG = "scheme must be a preset name or a Scheme, got {typ}"
_NO_EMBEDDING_MSG = (
    "error control {mode!r} needs a scheme with an embedded solution; {name!r} has none"
)
_NO_SPECIAL_MSG = "error control 'embedded-special' has no controller for {typ}"
_UNSUPPORTED_KERNEL_MSG = "No stepping kernel for scheme {name!r} ({typ})"
_NEEDS_STEP_MSG = (
    "error control 'none' needs initial_step_size; "
    "automatic selection needs error control"
)
_NEEDS_CUSTOM_MSG = "error control 'custom' needs custom_solver"
_CUSTOM_UNUSED_MSG = "custom_solver is only used with error control 'custom'"
_INTERVAL_MISSING_MSG = "output 'interval' needs interval"
_TIMES_MISSING_MSG = "output 'times' needs times"
_TIMES_ORDER_MSG = "output times must be strictly increasing"
_TIMES_RANGE_MSG = "output times must lie in [{t0!r}, {tf!r}]"
_TIME_SPAN_MSG = "final time must be greater than initial time, got t0={t0!r}, tf={tf!r}"
_TOL_MSG = "{name} entries must be finite and non-negative"
_IGNORED_WARNING = "{option} is ignored with error control {mode!r}"
_CONTROLLER_OPTIONS = ("atol", "rtol", "amax_normal", "amax_rejected", "amin", "safety")

STORMER_VERLET_NAME = "stormer-verlet"


class ErrorControl(str, Enum):
    """Error-control family of a :class:`SolverConfig`."""

    NONE = "none"
    CUSTOM = "custom"
    EMBEDDED = "embedded"
    EMBEDDED_SPECIAL = "embedded-special"
    STEP_DOUBLING = "step-doubling"


class OutputMode(str, Enum):
    """Output cadence of a :class:`SolverConfig`."""

    ALL_POINTS = "all-points"
    FIXED_POINTS = "fixed-points"
    INTERVAL = "interval"
    TIMES = "times"


def resolve_scheme(value: str | Scheme) -> Scheme:
    """
    Look up a preset scheme by name, or pass a Scheme through.

    Args:
        value: A key of ``EXPLICIT_TABLEAUX`` or ``IMEX_TABLEAUX``,
            ``"stormer-verlet"``, or a :class:`~ivp_engine.schemes.Scheme`.

    Raises:
        ConfigurationError: If the name is unknown.
        TypeError: If value is neither a string nor a Scheme.

    Returns:
        The scheme.
    """
    if isinstance(value, Scheme):
        return value
    if not isinstance(value, str):
        raise TypeError(_SCHEME_TYPE_MSG.format(typ=type(value).__name__))
    key = value.strip().lower()
    if key == STORMER_VERLET_NAME:
        return STORMER_VERLET
    if key in EXPLICIT_TABLEAUX:
        return EXPLICIT_TABLEAUX[key]
    if key in IMEX_TABLEAUX:
        return IMEX_TABLEAUX[key]
    known = ", ".join(sorted([*EXPLICIT_TABLEAUX, *IMEX_TABLEAUX, STORMER_VERLET_NAME]))
    raise ConfigurationError(_UNKNOWN_SCHEME_MSG.format(name=value, known=known))


def kernel_for(
    scheme: Scheme,
    *,
    on_singular: Literal["reject", "raise"] = "reject",
) -> SteppingKernel:
    """
    Create the stepping kernel that executes ``scheme``.

    Raises:
        ConfigurationError: If no kernel handles the scheme.

    Returns:
        A fresh kernel.
    """
    if scheme is FORWARD_EULER:
        return ForwardEuler()
    if scheme is STORMER_VERLET:
        return StormerVerlet()
    if isinstance(scheme, AdditiveTableau):
        return IMEXRungeKutta(scheme, on_singular=on_singular)
    if isinstance(scheme, ButcherTableau) and scheme.is_explicit:
        return ExplicitRungeKutta(scheme)
    raise ConfigurationError(
        _UNSUPPORTED_KERNEL_MSG.format(name=scheme.name, typ=type(scheme).__name__)
    )


class SolverConfig(BaseModel):
    """Presets for building a solver around one scheme.

    Defaults: Dormand-Prince 5(4) with embedded error control, automatic
    initial step selection, and 1000 equally spaced output points.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    scheme: Any = Field(
        default="dormand-prince54",
        validate_default=True,
        description="Preset scheme name or a Scheme instance",
    )
    error_control: ErrorControl = Field(default=ErrorControl.EMBEDDED)

    # Tolerances, scalar or per component
    atol: float | list[float] = Field(default=DEFAULT_ATOL)
    rtol: float | list[float] = Field(default=DEFAULT_RTOL)

    # Controller limits
    amax_normal: float = Field(default=DEFAULT_AMAX_NORMAL, gt=1.0)
    amax_rejected: float = Field(default=DEFAULT_AMAX_REJECTED, ge=1.0)
    amin: float = Field(default=DEFAULT_AMIN, gt=0.0, lt=1.0)
    safety: float = Field(default=DEFAULT_SAFETY, gt=0.0)
    threshold: float = Field(default=DEFAULT_THRESHOLD, gt=0.0)

    # None selects the initial step automatically
    initial_step_size: float | None = Field(default=None, gt=0.0)
    max_steps: int = Field(default=DEFAULT_MAX_STEPS, ge=1)

    on_singular: Literal["reject", "raise"] = Field(
        default="reject",
        description="IMEX kernels: reject the step or raise when the stage solve fails",
    )

    # Output
    output: OutputMode = Field(default=OutputMode.FIXED_POINTS)
    num_points: int = Field(default=1000, ge=2)
    interval: float | None = Field(default=None, gt=0.0)
    times: list[float] | None = None
    output_path: Path | None = Field(
        default=None,
        description="Also write the output points to this text file",
    )

    @field_validator("scheme")
    @classmethod
    def _resolve_scheme(cls, value: object) -> Scheme:
        try:
            return resolve_scheme(value)  # type: ignore[arg-type]
        except (ConfigurationError, TypeError) as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("atol", "rtol")
    @classmethod
    def _check_tolerance(
        cls, value: float | list[float], info: ValidationInfo
    ) -> float | list[float]:
        arr = np.asarray(value, dtype=float)
        if not np.all(np.isfinite(arr)) or np.any(arr < 0):
            raise ValueError(_TOL_MSG.format(name=info.field_name))
        return value

    @model_validator(mode="after")
    def _validate_combinations(self) -> SolverConfig:
        if self.output is OutputMode.INTERVAL and self.interval is None:
            raise ValueError(_INTERVAL_MISSING_MSG)
        if self.output is OutputMode.TIMES:
            if self.times is None:
                raise ValueError(_TIMES_MISSING_MSG)
            if np.any(np.diff(np.asarray(self.times, dtype=float)) <= 0):
                raise ValueError(_TIMES_ORDER_MSG)
        if self.error_control is ErrorControl.NONE and self.initial_step_size is None:
            raise ValueError(_NEEDS_STEP_MSG)
        return self

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def _warn_ignored(self) -> None:
        mode = self.error_control.value
        ignored: list[str] = []
        options = self.model_fields_set
        if self.error_control is not ErrorControl.STEP_DOUBLING and "threshold" in options:
            ignored.append("threshold")
        if self.error_control in {ErrorControl.NONE, ErrorControl.CUSTOM}:
            ignored += [name for name in _CONTROLLER_OPTIONS if name in options]
        for option in ignored:
            warnings.warn(
                _IGNORED_WARNING.format(option=option, mode=mode),
                RuntimeWarning,
                stacklevel=3,
            )

    def _check_against(self, ode: ODE, t0: float, tf: float) -> None:
        if not tf > t0:
            raise ConfigurationError(_TIME_SPAN_MSG.format(t0=t0, tf=tf))
        if self.error_control in {
            ErrorControl.EMBEDDED,
            ErrorControl.EMBEDDED_SPECIAL,
            ErrorControl.STEP_DOUBLING,
        }:
            broadcast_tolerance(self.atol, ode.size)
            broadcast_tolerance(self.rtol, ode.size)
        if (
            self.error_control in {ErrorControl.EMBEDDED, ErrorControl.EMBEDDED_SPECIAL}
            and not self.scheme.has_embedded
        ):
            raise ConfigurationError(
                _NO_EMBEDDING_MSG.format(mode=self.error_control.value, name=self.scheme.name)
            )
        if self.output is OutputMode.TIMES and self.times:
            if self.times[0] < t0 or self.times[-1] > tf:
                raise ConfigurationError(_TIMES_RANGE_MSG.format(t0=t0, tf=tf))

    def _controller(self) -> StepController:
        limits = {
            "amax_normal": self.amax_normal,
            "amax_rejected": self.amax_rejected,
            "amin": self.amin,
            "safety": self.safety,
        }
        if self.error_control is ErrorControl.EMBEDDED:
            return EmbeddedController(self.atol, self.rtol, **limits)
        if self.error_control is ErrorControl.STEP_DOUBLING:
            return StepDoublingController(self.atol, self.rtol, threshold=self.threshold, **limits)
        if isinstance(self.scheme, AdditiveTableau):
            return PredictiveController(self.atol, self.rtol, **limits)
        if isinstance(self.scheme, ButcherTableau):
            return PIController(self.atol, self.rtol, **limits)
        raise ConfigurationError(_NO_SPECIAL_MSG.format(typ=type(self.scheme).__name__))

    def _writer(self, sink: SolutionSink, t0: float, tf: float) -> Module:
        if self.output is OutputMode.ALL_POINTS:
            return AllPointsWriter(sink)
        if self.output is OutputMode.INTERVAL:
            return InterpolatingWriter(sink, interval=self.interval)
        if self.output is OutputMode.TIMES:
            return InterpolatingWriter(sink, times=self.times)
        return InterpolatingWriter(sink, times=np.linspace(t0, tf, self.num_points))

    def build_solver(
        self,
        ode: ODE,
        *,
        t0: float,
        tf: float,
        sinks: Sequence[SolutionSink] = (),
        modules: Sequence[Module] = (),
        custom_solver: Solver | None = None,
    ) -> Solver:
        """
        Create a solver with every module this configuration calls for.

        All checks run before any module is created.

        Args:
            ode: Right-hand side to be solved.
            t0: Initial time of the run.
            tf: Final time of the run.
            sinks: Destinations of the output points.
            modules: Extra modules, registered after the built-in ones.
            custom_solver: Solver to use with error control "custom".

        Raises:
            ConfigurationError: If the configuration does not fit the ODE,
                the time span or the scheme.

        Returns:
            The solver, ready for ``solve(ode, t0, tf, y0)``.
        """
        t0 = float(t0)
        tf = float(tf)
        self._check_against(ode, t0, tf)
        if self.error_control is ErrorControl.CUSTOM and custom_solver is None:
            raise ConfigurationError(_NEEDS_CUSTOM_MSG)
        if self.error_control is not ErrorControl.CUSTOM and custom_solver is not None:
            raise ConfigurationError(_CUSTOM_UNUSED_MSG)
        self._warn_ignored()

        all_sinks: list[SolutionSink] = list(sinks)
        if self.output_path is not None:
            all_sinks.append(TextFileSink(self.output_path))
        sink: SolutionSink = all_sinks[0] if len(all_sinks) == 1 else CompoundSink(*all_sinks)

        solver: Solver
        if self.error_control is ErrorControl.CUSTOM:
            solver = custom_solver  # type: ignore[assignment]
            if self.initial_step_size is not None:
                solver.initial_step_size = self.initial_step_size
        elif self.error_control is ErrorControl.NONE:
            solver = ConstantStepSolver(self.initial_step_size, max_steps=self.max_steps)
            solver.add_module(kernel_for(self.scheme, on_singular=self.on_singular))
        elif self.error_control is ErrorControl.STEP_DOUBLING:
            doubling = StepDoublingSolver(
                initial_step_size=self.initial_step_size, max_steps=self.max_steps
            )
            doubling.add_kernel(kernel_for(self.scheme, on_singular=self.on_singular))
            doubling.add_module(StepDoublingErrorEstimator())
            doubling.add_module(self._controller())
            solver = doubling
        else:
            solver = EmbeddedErrorSolver(
                initial_step_size=self.initial_step_size, max_steps=self.max_steps
            )
            solver.add_module(kernel_for(self.scheme, on_singular=self.on_singular))
            solver.add_module(EmbeddedErrorEstimator())
            solver.add_module(self._controller())

        if (
            self.error_control not in {ErrorControl.NONE, ErrorControl.CUSTOM}
            and self.initial_step_size is None
        ):
            solver.add_module(InitialStepSizeSelector())

        solver.add_module(self._writer(sink, t0, tf))
        for module in modules:
            solver.add_module(module)
        return solver


# =============================================================================
# One-call entry point
# =============================================================================


@dataclass(slots=True, frozen=True)
class SolveResult:
    """Outcome of :func:`solve_ivp`.

    Attributes:
        stop_reason: Why the run ended.
        solver: The solver, for post-run queries.
        sink: In-memory record of the output points.
    """

    stop_reason: str
    solver: Solver
    sink: MemorySink

    @property
    def t(self) -> np.ndarray:
        """Output times."""
        return self.sink.t

    @property
    def y(self) -> np.ndarray:
        """Output values, one row per output time."""
        return self.sink.y


def solve_ivp(
    ivp: IVP,
    tf: float,
    config: SolverConfig | None = None,
    sinks: Sequence[SolutionSink] = (),
) -> SolveResult:
    """
    Build a solver from ``config`` and integrate ``ivp`` up to ``tf``.

    Args:
        ivp: Problem to solve.
        tf: Final time.
        config: Presets; :class:`SolverConfig` defaults when omitted.
        sinks: Extra destinations; the points are always kept in memory too.

    Returns:
        Stop reason, solver and the in-memory output.
    """
    config = config if config is not None else SolverConfig()
    memory = MemorySink()
    solver = config.build_solver(
        ivp.ode,
        t0=ivp.initial_time,
        tf=tf,
        sinks=(memory, *sinks),
    )
    reason = solver.solve(ivp.ode, ivp.initial_time, tf, ivp.initial_values)
    return SolveResult(stop_reason=reason, solver=solver, sink=memory)
