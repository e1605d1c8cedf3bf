# tests/test_output.py
"""Unit tests for solution sinks and writer modules.

This module contains tests that verify:
- MemorySink, CompoundSink and TextFileSink record points as documented.
- interpolate_step validates theta and returns the step end point exactly.
- AllPointsWriter emits the initial point and every accepted step only.
- InterpolatingWriter emits at a fixed interval or at given times using the
  scheme's dense output.
- Writers do not repeat the initial point when a run is continued.
- ProgressReporter logs the completed fraction.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
import pytest

from ivp_engine.error_control import (
    EmbeddedController,
    EmbeddedErrorEstimator,
)
from ivp_engine.errors import ConfigurationError
from ivp_engine.kernels import ExplicitRungeKutta, ForwardEuler
from ivp_engine.output import (
    AllPointsWriter,
    CompoundSink,
    InterpolatingWriter,
    MemorySink,
    ProgressReporter,
    TextFileSink,
    interpolate_step,
)
from ivp_engine.solver import ConstantStepSolver, EmbeddedErrorSolver
from ivp_engine.tableaux import DORMAND_PRINCE54, RK4

if TYPE_CHECKING:
    from pathlib import Path

    from ivp_engine.ode import ODE
    from ivp_engine.pipeline import Module


def _make_dp_solver(writer: Module, *, initial_step_size: float = 0.05) -> EmbeddedErrorSolver:
    """Tight-tolerance Dormand-Prince solver with one writer."""
    solver = EmbeddedErrorSolver(initial_step_size=initial_step_size)
    solver.add_module(ExplicitRungeKutta(DORMAND_PRINCE54))
    solver.add_module(EmbeddedErrorEstimator())
    solver.add_module(EmbeddedController(atol=1e-10, rtol=1e-8))
    solver.add_module(writer)
    return solver


class _ListSink:
    """Sink that records every call."""

    def __init__(self, label: str, log: list[str]) -> None:
        self.label = label
        self.log = log

    def begin(self) -> None:
        self.log.append(f"{self.label}.begin")

    def emit(self, t: float, y: np.ndarray) -> None:  # noqa: ARG002
        self.log.append(f"{self.label}.emit({t:g})")

    def end(self) -> None:
        self.log.append(f"{self.label}.end")


# -------------------------------------------------------------------
# Sinks
# -------------------------------------------------------------------


def test_memory_sink_collects_points() -> None:
    """Test MemorySink storage, array views and clear."""
    sink = MemorySink()
    assert sink.y.shape == (0, 0)

    y = np.array([1.0, 2.0])
    sink.emit(0.0, y)
    y[0] = 99.0
    sink.emit(0.5, np.array([3.0, 4.0]))

    assert len(sink) == 2
    assert np.array_equal(sink.t, [0.0, 0.5])
    assert np.array_equal(sink.y, [[1.0, 2.0], [3.0, 4.0]])

    sink.clear()
    assert len(sink) == 0


def test_compound_sink_fans_out_in_order() -> None:
    """Test that every call reaches every sink, in order."""
    log: list[str] = []
    sink = CompoundSink(_ListSink("a", log), _ListSink("b", log))
    sink.begin()
    sink.emit(1.0, np.zeros(1))
    sink.end()
    assert log == ["a.begin", "b.begin", "a.emit(1)", "b.emit(1)", "a.end", "b.end"]


def test_text_file_sink_truncates_then_appends(tmp_path: Path) -> None:
    """Test the line format and the per-run file mode."""
    path = tmp_path / "solution.txt"
    path.write_text("stale\n", encoding="utf-8")
    sink = TextFileSink(path)

    sink.begin()
    sink.emit(0.0, np.array([1.0, 0.5]))
    sink.emit(0.25, np.array([0.1, 2.0]))
    sink.end()
    assert path.read_text(encoding="utf-8") == "0.0 1.0 0.5\n0.25 0.1 2.0\n\n"

    sink.begin()
    sink.emit(1.0, np.array([3.0, 4.0]))
    sink.end()
    assert path.read_text(encoding="utf-8").endswith("\n\n1.0 3.0 4.0\n\n")


def test_text_file_sink_requires_begin(tmp_path: Path) -> None:
    """Test that emitting to a closed sink raises."""
    sink = TextFileSink(tmp_path / "closed.txt")
    with pytest.raises(RuntimeError, match="is not open"):
        sink.emit(0.0, np.zeros(1))
    sink.end()


# -------------------------------------------------------------------
# Dense output helper
# -------------------------------------------------------------------


def test_interpolate_step_bounds_and_end_point() -> None:
    """Test theta checks, the exact end point and linear interpolation."""
    y0 = np.array([0.0, 2.0])
    y1 = np.array([1.0, 4.0])
    with pytest.raises(ValueError, match="theta"):
        interpolate_step(RK4, y0, y1, 1.5, 0.1, None)

    end = interpolate_step(RK4, y0, y1, 1.0, 0.1, None)
    assert np.array_equal(end, y1)
    assert end is not y1
    assert np.allclose(interpolate_step(RK4, y0, y1, 0.5, 0.1, None), [0.5, 3.0])


# -------------------------------------------------------------------
# Writers
# -------------------------------------------------------------------


def test_all_points_writer_emits_every_step(decay_ode: ODE) -> None:
    """Test the initial point plus every step end point."""
    sink = MemorySink()
    solver = ConstantStepSolver(0.25)
    solver.add_module(ForwardEuler())
    solver.add_module(AllPointsWriter(sink))

    solver.solve(decay_ode, 0.0, 1.0, [1.0])

    assert np.allclose(sink.t, [0.0, 0.25, 0.5, 0.75, 1.0])
    assert np.allclose(sink.y[:, 0], 0.75 ** np.arange(5))


def test_all_points_writer_skips_rejected_steps(decay_ode: ODE) -> None:
    """Test that only accepted steps are written."""
    sink = MemorySink()
    solver = _make_dp_solver(AllPointsWriter(sink), initial_step_size=2.0)
    solver.solve(decay_ode, 0.0, 4.0, [1.0])

    assert solver.rejected_steps >= 1
    assert len(sink) == solver.accepted_steps + 1
    assert np.all(np.diff(sink.t) > 0)
    assert sink.t[-1] == 4.0


def test_writer_does_not_repeat_initial_point_on_continuation(decay_ode: ODE) -> None:
    """Test solve_from with the same writer."""
    sink = MemorySink()
    solver = ConstantStepSolver(0.5)
    solver.add_module(ForwardEuler())
    solver.add_module(AllPointsWriter(sink))

    solver.solve(decay_ode, 0.0, 1.0, [1.0])
    solver.solve_from(solver, 2.0)

    assert np.allclose(sink.t, [0.0, 0.5, 1.0, 1.5, 2.0])


def test_interpolating_writer_at_interval(decay_ode: ODE) -> None:
    """Test dense output every 0.1 time units."""
    sink = MemorySink()
    solver = _make_dp_solver(InterpolatingWriter(sink, interval=0.1), initial_step_size=0.3)
    solver.solve(decay_ode, 0.0, 1.0, [1.0])

    assert np.allclose(sink.t, np.arange(11) * 0.1)
    assert np.allclose(sink.y[:, 0], np.exp(-sink.t), atol=1e-7)


def test_interpolating_writer_at_times(oscillator_ode: ODE) -> None:
    """Test explicit times, including ones outside the integrated range."""
    sink = MemorySink()
    times = [-1.0, 0.0, 0.3, 1.7, 2.0, 5.0]
    solver = _make_dp_solver(InterpolatingWriter(sink, times=times), initial_step_size=0.5)
    solver.solve(oscillator_ode, 0.0, 2.0, [1.0, 0.0])

    assert np.array_equal(sink.t, [0.0, 0.3, 1.7, 2.0])
    assert np.array_equal(sink.y[0], [1.0, 0.0])
    expected = np.column_stack([np.cos(sink.t), -np.sin(sink.t)])
    assert np.allclose(sink.y, expected, atol=1e-7)


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"interval": 0.1, "times": [0.0, 1.0]},
        {"interval": 0.0},
        {"times": [0.0, 1.0, 0.5]},
        {"times": [[0.0, 1.0]]},
    ],
)
def test_interpolating_writer_validation(kwargs: dict[str, object]) -> None:
    """Test cadence and output time checks."""
    with pytest.raises(ConfigurationError):
        InterpolatingWriter(MemorySink(), **kwargs)  # type: ignore[arg-type]


def test_writer_closes_sink_when_run_fails(decay_ode: ODE) -> None:
    """Test that the sink sees end() even when the run raises."""
    log: list[str] = []
    solver = ConstantStepSolver(0.1, max_steps=2)
    solver.add_module(ForwardEuler())
    solver.add_module(AllPointsWriter(_ListSink("s", log)))
    with pytest.raises(RuntimeError):
        solver.solve(decay_ode, 0.0, 1.0, [1.0])
    assert log == ["s.begin", "s.emit(0)", "s.emit(0.1)", "s.emit(0.2)", "s.end"]


# -------------------------------------------------------------------
# Progress
# -------------------------------------------------------------------


def test_progress_reporter_logs_fraction(
    decay_ode: ODE, caplog: pytest.LogCaptureFixture
) -> None:
    """Test that records are spaced by the precision and end at 100%."""
    solver = ConstantStepSolver(0.25)
    solver.add_module(ForwardEuler())
    solver.add_module(ProgressReporter(0.3))

    with caplog.at_level(logging.INFO, logger="ivp_engine.output"):
        solver.solve(decay_ode, 0.0, 1.0, [1.0])

    messages = [r.getMessage() for r in caplog.records if r.name == "ivp_engine.output"]
    assert len(messages) == 2
    assert "50.0% done" in messages[0]
    assert "100.0% done" in messages[1]


def test_progress_reporter_validates_precision() -> None:
    """Test the precision range check."""
    with pytest.raises(ConfigurationError, match="precision"):
        ProgressReporter(0.0)
