# src/ivp_engine/output.py
"""Solution sinks and the pipeline modules that feed them.

Sinks are push consumers with a three-call lifecycle::

    sink.begin()
    sink.emit(t, y)   # any number of times, t non-decreasing
    sink.end()

Writer modules own one sink each, open it in ``begin_stepping`` and close it
in ``end_stepping``. They emit the initial point on their first run only, so a
run continued with :meth:`~ivp_engine.solver.Solver.solve_from` appends to the
same record without repeating the shared point.

Writers:
    - AllPointsWriter: every accepted step end point.
    - InterpolatingWriter: dense output at a fixed interval or at given times,
      from the scheme's interpolant over each accepted step.
    - ProgressReporter: logs the completed fraction of the run.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, TextIO

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .errors import ConfigurationError, raise_invalid_parameter
from .pipeline import Module
from .properties import PropertyKey

if TYPE_CHECKING:
    from .properties import PropertyBag
    from .schemes import Scheme
    from .solver import Solver

logger = logging.getLogger(__name__)

_THETA_MSG = "theta must lie in [0, 1], got {theta!r}"
_CADENCE_MSG = "InterpolatingWriter needs exactly one of interval or times"
_TIMES_MSG = "output times must be a finite, non-decreasing 1D sequence"
_SINK_CLOSED_MSG = "TextFileSink {path!s} is not open; call begin first"

# Relative slack for output times that land on a step end point up to rounding.
_TIME_SLACK = 1e-12


# =============================================================================
# Sinks
# =============================================================================


class SolutionSink(Protocol):
    """Push consumer of solution points."""

    def begin(self) -> None:
        """Called once per run before the first point."""
        ...

    def emit(self, t: float, y: NDArray[np.floating]) -> None:
        """Receive one solution point."""
        ...

    def end(self) -> None:
        """Called once per run after the last point, also on failure."""
        ...


class MemorySink:
    """Collects points in memory.

    Points accumulate across runs; call :meth:`clear` to start over.
    """

    def __init__(self) -> None:
        self.times: list[float] = []
        self.values: list[NDArray[np.floating]] = []

    def begin(self) -> None:
        pass

    def emit(self, t: float, y: NDArray[np.floating]) -> None:
        self.times.append(float(t))
        self.values.append(np.array(y, dtype=float))

    def end(self) -> None:
        pass

    def clear(self) -> None:
        """Drop every stored point."""
        self.times.clear()
        self.values.clear()

    @property
    def t(self) -> NDArray[np.floating]:
        """Times as an array of shape (n_points,)."""
        return np.asarray(self.times, dtype=float)

    @property
    def y(self) -> NDArray[np.floating]:
        """Values as an array of shape (n_points, n)."""
        if not self.values:
            return np.empty((0, 0), dtype=float)
        return np.vstack(self.values)

    def __len__(self) -> int:
        return len(self.times)


class CompoundSink:
    """Fans every call out to several sinks, in order."""

    def __init__(self, *sinks: SolutionSink) -> None:
        self.sinks = tuple(sinks)

    def begin(self) -> None:
        for sink in self.sinks:
            sink.begin()

    def emit(self, t: float, y: NDArray[np.floating]) -> None:
        for sink in self.sinks:
            sink.emit(t, y)

    def end(self) -> None:
        for sink in self.sinks:
            sink.end()


class TextFileSink:
    """Plain-text sink: one line per point, a blank line at the end of a run.

    Each line holds the time followed by the state components, separated by
    single spaces and written with full precision. The file is truncated on
    the first run and appended to on later runs.

    Args:
        path: Output file.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._stream: TextIO | None = None
        self._opened_before = False

    def begin(self) -> None:
        mode = "a" if self._opened_before else "w"
        self._stream = self.path.open(mode, encoding="utf-8")
        self._opened_before = True

    def emit(self, t: float, y: NDArray[np.floating]) -> None:
        if self._stream is None:
            raise RuntimeError(_SINK_CLOSED_MSG.format(path=self.path))
        fields = [repr(float(t)), *(repr(float(v)) for v in np.asarray(y).ravel())]
        self._stream.write(" ".join(fields) + "\n")

    def end(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.write("\n")
        finally:
            self._stream.close()
            self._stream = None


# =============================================================================
# Dense output
# =============================================================================


def interpolate_step(
    scheme: Scheme,
    y0: NDArray[np.floating],
    y1: NDArray[np.floating],
    theta: float,
    dt: float,
    stage_values: object,
) -> NDArray[np.floating]:
    """
    Evaluate the solution inside one step with the scheme's interpolant.

    Args:
        scheme: Scheme that produced the step.
        y0: State at the start of the step.
        y1: State at the end of the step.
        theta: Fraction of the step, in [0, 1].
        dt: Step size.
        stage_values: Stage derivatives published by the kernel.

    Raises:
        ValueError: If theta lies outside [0, 1].

    Returns:
        y(t0 + theta * dt).
    """
    if not 0.0 <= theta <= 1.0:
        raise ValueError(_THETA_MSG.format(theta=theta))
    if theta == 1.0:
        return np.array(y1, dtype=float)
    return y0 + scheme.interpolant.evaluate(y0, y1, theta, dt, stage_values)


# =============================================================================
# Writer modules
# =============================================================================


class _SinkWriter(Module):
    def __init__(
        self,
        sink: SolutionSink,
        *,
        required: tuple[PropertyKey, ...],
        name: str | None = None,
    ) -> None:
        super().__init__(required=required, name=name)
        self.sink = sink
        self.started = False

    def reset(self) -> None:
        """Emit the initial point again on the next run."""
        self.started = False

    def begin_stepping(self, solver: Solver, bag: PropertyBag) -> None:  # noqa: ARG002
        self.sink.begin()
        if not self.started:
            self._emit_initial(solver.initial_time, np.asarray(solver.initial_values))
            self.started = True

    def _emit_initial(self, t0: float, y0: NDArray[np.floating]) -> None:
        self.sink.emit(t0, y0)

    def end_stepping(self) -> None:
        self.sink.end()


class AllPointsWriter(_SinkWriter):
    """Emits the initial point and the end point of every accepted step."""

    def __init__(self, sink: SolutionSink, *, name: str | None = None) -> None:
        super().__init__(
            sink,
            required=(
                PropertyKey.FINAL_TIME,
                PropertyKey.FINAL_VALUES,
                PropertyKey.STEP_ACCEPTED,
            ),
            name=name,
        )

    def step(self, bag: PropertyBag) -> None:
        if bag.flag(PropertyKey.STEP_ACCEPTED):
            self.sink.emit(bag.time(PropertyKey.FINAL_TIME), bag.vector(PropertyKey.FINAL_VALUES))


class InterpolatingWriter(_SinkWriter):
    """Dense output at a fixed interval or at explicit times.

    Interval mode emits ``t0 + k * interval`` for k = 0, 1, ... where t0 is the
    initial time of the first run. Times mode emits the given times that fall
    inside the integrated range; a time equal to the initial time receives the
    initial state, earlier times are skipped.

    Args:
        sink: Destination of the points.
        interval: Spacing of output times.
        times: Non-decreasing output times.
        name: Optional module name.
    """

    def __init__(
        self,
        sink: SolutionSink,
        *,
        interval: float | None = None,
        times: ArrayLike | None = None,
        name: str | None = None,
    ) -> None:
        if (interval is None) == (times is None):
            raise ConfigurationError(_CADENCE_MSG)
        super().__init__(
            sink,
            required=(
                PropertyKey.SCHEME,
                PropertyKey.INITIAL_TIME,
                PropertyKey.INITIAL_VALUES,
                PropertyKey.FINAL_TIME,
                PropertyKey.FINAL_VALUES,
                PropertyKey.STAGE_VALUES,
                PropertyKey.STEP_ACCEPTED,
            ),
            name=name,
        )
        self.interval: float | None = None
        self.times: NDArray[np.floating] | None = None
        if interval is not None:
            value = float(interval)
            if not np.isfinite(value) or value <= 0:
                raise_invalid_parameter("interval", expected="positive and finite", got=interval)
            self.interval = value
        else:
            arr = np.asarray(times, dtype=float)
            if arr.ndim != 1 or not np.all(np.isfinite(arr)) or np.any(np.diff(arr) < 0):
                raise ConfigurationError(_TIMES_MSG)
            self.times = arr
        self._origin = 0.0
        self._cursor = 0

    def reset(self) -> None:
        super().reset()
        self._cursor = 0

    def _emit_initial(self, t0: float, y0: NDArray[np.floating]) -> None:
        self._origin = t0
        self._cursor = 0
        if self.times is None:
            self.sink.emit(t0, y0)
            self._cursor = 1
            return
        while self._cursor < self.times.shape[0] and self.times[self._cursor] <= t0:
            if self.times[self._cursor] == t0:
                self.sink.emit(t0, y0)
            self._cursor += 1

    def _next_time(self) -> float | None:
        if self.times is None:
            return self._origin + self._cursor * float(self.interval or 0.0)
        if self._cursor < self.times.shape[0]:
            return float(self.times[self._cursor])
        return None

    def step(self, bag: PropertyBag) -> None:
        if not bag.flag(PropertyKey.STEP_ACCEPTED):
            return
        t0 = bag.time(PropertyKey.INITIAL_TIME)
        t1 = bag.time(PropertyKey.FINAL_TIME)
        dt = t1 - t0
        y0 = bag.vector(PropertyKey.INITIAL_VALUES)
        y1 = bag.vector(PropertyKey.FINAL_VALUES)
        scheme = bag.scheme()
        stage_values = bag[PropertyKey.STAGE_VALUES]
        slack = _TIME_SLACK * max(abs(t1), abs(dt), 1.0)

        t_out = self._next_time()
        while t_out is not None and t_out <= t1 + slack:
            theta = min(max((t_out - t0) / dt, 0.0), 1.0)
            self.sink.emit(t_out, interpolate_step(scheme, y0, y1, theta, dt, stage_values))
            self._cursor += 1
            t_out = self._next_time()


class ProgressReporter(Module):
    """Logs the completed fraction of the run at INFO level.

    A record is written whenever the fraction has grown by more than
    ``precision`` since the last record.

    Args:
        precision: Fraction of the run between two records, in (0, 1].
        name: Optional module name.
    """

    def __init__(self, precision: float = 0.01, *, name: str | None = None) -> None:
        super().__init__(
            required=(
                PropertyKey.INITIAL_TIME,
                PropertyKey.FINAL_TIME,
                PropertyKey.STEP_ACCEPTED,
            ),
            name=name,
        )
        value = float(precision)
        if not 0.0 < value <= 1.0:
            raise_invalid_parameter("precision", expected="in (0, 1]", got=precision)
        self.precision = value
        self.fraction = 0.0
        self._t0 = 0.0
        self._span = 1.0

    def begin_stepping(self, solver: Solver, bag: PropertyBag) -> None:  # noqa: ARG002
        self._t0 = solver.initial_time
        self._span = solver.final_time - solver.initial_time
        self.fraction = 0.0

    def step(self, bag: PropertyBag) -> None:
        if not bag.flag(PropertyKey.STEP_ACCEPTED):
            return
        t1 = bag.time(PropertyKey.FINAL_TIME)
        fraction = (t1 - self._t0) / self._span
        if fraction > self.fraction + self.precision or fraction >= 1.0 > self.fraction:
            logger.info("%s: %.1f%% done (t=%g)", self.name, 100.0 * min(fraction, 1.0), t1)
            self.fraction = fraction
