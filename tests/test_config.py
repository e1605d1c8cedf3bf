# tests/test_config.py
"""Unit tests for SolverConfig, build_solver and solve_ivp.

This module contains tests that verify:
- Preset scheme names resolve case-insensitively, and unknown names fail.
- SolverConfig rejects inconsistent option combinations at construction.
- build_solver checks the configuration against the ODE and the time span
  before building anything, and warns about options it ignores.
- Each error control mode produces the expected solver and controller.
- solve_ivp returns accurate output at the configured points, optionally
  mirrored to a text file.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pytest
from pydantic import ValidationError

from ivp_engine.config import (
    ErrorControl,
    OutputMode,
    SolverConfig,
    kernel_for,
    resolve_scheme,
    solve_ivp,
)
from ivp_engine.error_control import (
    EmbeddedController,
    PIController,
    PredictiveController,
    StepDoublingController,
)
from ivp_engine.errors import ConfigurationError
from ivp_engine.kernels import ExplicitRungeKutta, ForwardEuler, IMEXRungeKutta
from ivp_engine.ode import IVP, ODE
from ivp_engine.output import AllPointsWriter, MemorySink
from ivp_engine.solver import (
    ConstantStepSolver,
    EmbeddedErrorSolver,
    StepDoublingSolver,
)
from ivp_engine.symplectic import StormerVerlet
from ivp_engine.tableaux import (
    DORMAND_PRINCE54,
    FORWARD_EULER,
    KC32,
    RK4,
    STORMER_VERLET,
)

if TYPE_CHECKING:
    from pathlib import Path


# -------------------------------------------------------------------
# Scheme lookup
# -------------------------------------------------------------------


def test_resolve_scheme_by_name() -> None:
    """Test case-insensitive preset lookup and pass-through."""
    assert resolve_scheme(" RK4 ") is RK4
    assert resolve_scheme("kc32") is KC32
    assert resolve_scheme("Stormer-Verlet") is STORMER_VERLET
    assert resolve_scheme(DORMAND_PRINCE54) is DORMAND_PRINCE54


def test_resolve_scheme_errors() -> None:
    """Test unknown names and wrong types."""
    with pytest.raises(ConfigurationError, match="Unknown scheme"):
        resolve_scheme("rk5")
    with pytest.raises(TypeError, match="preset name or a Scheme"):
        resolve_scheme(4)  # type: ignore[arg-type]


def test_kernel_for_picks_matching_kernel() -> None:
    """Test the scheme to kernel mapping."""
    assert isinstance(kernel_for(FORWARD_EULER), ForwardEuler)
    assert isinstance(kernel_for(STORMER_VERLET), StormerVerlet)
    assert isinstance(kernel_for(RK4), ExplicitRungeKutta)
    imex = kernel_for(KC32, on_singular="raise")
    assert isinstance(imex, IMEXRungeKutta)
    assert imex.on_singular == "raise"
    with pytest.raises(ConfigurationError, match="No stepping kernel"):
        kernel_for(KC32.implicit)


# -------------------------------------------------------------------
# SolverConfig validation
# -------------------------------------------------------------------


def test_solver_config_defaults() -> None:
    """Test the documented defaults."""
    config = SolverConfig()
    assert config.scheme is DORMAND_PRINCE54
    assert config.error_control is ErrorControl.EMBEDDED
    assert config.output is OutputMode.FIXED_POINTS
    assert config.num_points == 1000
    assert config.initial_step_size is None
    assert config.on_singular == "reject"


def test_solver_config_accepts_strings_for_enums() -> None:
    """Test enum coercion from their string values."""
    config = SolverConfig(scheme="ars222", error_control="embedded-special", output="all-points")
    assert config.error_control is ErrorControl.EMBEDDED_SPECIAL
    assert config.output is OutputMode.ALL_POINTS


@pytest.mark.parametrize(
    ("kwargs", "match"),
    [
        ({"scheme": "nope"}, "Unknown scheme"),
        ({"error_control": "none"}, "needs initial_step_size"),
        ({"output": "interval"}, "output 'interval' needs interval"),
        ({"output": "times"}, "output 'times' needs times"),
        ({"output": "times", "times": [0.0, 0.5, 0.5]}, "strictly increasing"),
        ({"atol": -1.0}, "atol entries must be finite and non-negative"),
        ({"rtol": [1e-3, float("nan")]}, "rtol entries must be finite and non-negative"),
        ({"num_points": 1}, "num_points"),
        ({"amin": 1.5}, "amin"),
        ({"on_singular": "ignore"}, "on_singular"),
        ({"stepsize": 0.1}, "stepsize"),
    ],
)
def test_solver_config_rejects_bad_options(kwargs: dict[str, object], match: str) -> None:
    """Test field and combination checks."""
    with pytest.raises(ValidationError, match=match):
        SolverConfig(**kwargs)  # type: ignore[arg-type]


# -------------------------------------------------------------------
# build_solver
# -------------------------------------------------------------------


def test_build_solver_embedded_layout(decay_ode: ODE) -> None:
    """Test the default solver and its modules."""
    solver = SolverConfig().build_solver(decay_ode, t0=0.0, tf=1.0, sinks=(MemorySink(),))
    assert isinstance(solver, EmbeddedErrorSolver)
    kinds = [type(m).__name__ for m in solver.modules]
    assert kinds == [
        "ExplicitRungeKutta",
        "EmbeddedErrorEstimator",
        "EmbeddedController",
        "InitialStepSizeSelector",
        "InterpolatingWriter",
    ]


def test_build_solver_without_error_control(decay_ode: ODE) -> None:
    """Test error control 'none' with every accepted point written."""
    config = SolverConfig(
        scheme="rk4", error_control="none", initial_step_size=0.01, output="all-points"
    )
    solver = config.build_solver(decay_ode, t0=0.0, tf=1.0, sinks=(MemorySink(),))
    assert isinstance(solver, ConstantStepSolver)
    assert isinstance(solver.modules[-1], AllPointsWriter)
    assert not any(type(m).__name__ == "InitialStepSizeSelector" for m in solver.modules)


def test_build_solver_step_doubling(decay_ode: ODE) -> None:
    """Test error control 'step-doubling'."""
    config = SolverConfig(scheme="rk4", error_control="step-doubling", threshold=2.0)
    solver = config.build_solver(decay_ode, t0=0.0, tf=1.0, sinks=(MemorySink(),))
    assert isinstance(solver, StepDoublingSolver)
    controllers = [m for m in solver.modules if isinstance(m, StepDoublingController)]
    assert len(controllers) == 1
    assert controllers[0].threshold == 2.0


@pytest.mark.parametrize(
    ("scheme", "controller"),
    [("dormand-prince54", PIController), ("kc32", PredictiveController)],
)
def test_build_solver_embedded_special(decay_ode: ODE, scheme: str, controller: type) -> None:
    """Test the controller choice by scheme family."""
    config = SolverConfig(scheme=scheme, error_control="embedded-special")
    solver = config.build_solver(decay_ode, t0=0.0, tf=1.0, sinks=(MemorySink(),))
    assert any(type(m) is controller for m in solver.modules)
    assert not any(type(m) is EmbeddedController for m in solver.modules)


def test_build_solver_custom(decay_ode: ODE) -> None:
    """Test that a custom solver receives the step size and writer."""
    custom = ConstantStepSolver(1.0)
    custom.add_module(ForwardEuler())
    config = SolverConfig(error_control="custom", initial_step_size=0.1, output="all-points")
    solver = config.build_solver(
        decay_ode, t0=0.0, tf=1.0, sinks=(MemorySink(),), custom_solver=custom
    )
    assert solver is custom
    assert solver.initial_step_size == 0.1
    assert isinstance(solver.modules[-1], AllPointsWriter)


def test_build_solver_custom_solver_mismatch(decay_ode: ODE) -> None:
    """Test custom_solver presence checks."""
    with pytest.raises(ConfigurationError, match="needs custom_solver"):
        SolverConfig(error_control="custom").build_solver(decay_ode, t0=0.0, tf=1.0)
    with pytest.raises(ConfigurationError, match="only used with error control 'custom'"):
        SolverConfig().build_solver(
            decay_ode, t0=0.0, tf=1.0, custom_solver=ConstantStepSolver(0.1)
        )


def test_build_solver_checks_problem(decay_ode: ODE, oscillator_ode: ODE) -> None:
    """Test time span, tolerance size, embedding and output time checks."""
    with pytest.raises(ConfigurationError, match="final time must be greater"):
        SolverConfig().build_solver(decay_ode, t0=1.0, tf=1.0)
    with pytest.raises(ConfigurationError, match="same size as the ODE"):
        SolverConfig(atol=[1e-6, 1e-6, 1e-6]).build_solver(oscillator_ode, t0=0.0, tf=1.0)
    with pytest.raises(ConfigurationError, match="needs a scheme with an embedded solution"):
        SolverConfig(scheme="rk4").build_solver(decay_ode, t0=0.0, tf=1.0)
    with pytest.raises(ConfigurationError, match="output times must lie in"):
        SolverConfig(output="times", times=[0.0, 2.0]).build_solver(decay_ode, t0=0.0, tf=1.0)


def test_build_solver_warns_about_ignored_options(decay_ode: ODE) -> None:
    """Test RuntimeWarnings for options the chosen mode does not use."""
    with pytest.warns(RuntimeWarning, match="threshold is ignored"):
        SolverConfig(threshold=3.0).build_solver(decay_ode, t0=0.0, tf=1.0)
    with pytest.warns(RuntimeWarning, match="atol is ignored with error control 'none'"):
        SolverConfig(
            scheme="rk4", error_control="none", initial_step_size=0.1, atol=1e-9
        ).build_solver(decay_ode, t0=0.0, tf=1.0)


# -------------------------------------------------------------------
# solve_ivp
# -------------------------------------------------------------------


def test_solve_ivp_defaults(decay_ode: ODE) -> None:
    """Test the default 1000 equally spaced output points."""
    result = solve_ivp(IVP(decay_ode, 0.0, np.array([1.0])), 1.0)
    assert result.stop_reason == "final time reached"
    assert result.t.shape == (1000,)
    assert np.allclose(result.t, np.linspace(0.0, 1.0, 1000))
    assert result.y.shape == (1000, 1)
    assert np.allclose(result.y[:, 0], np.exp(-result.t), atol=1e-3)


def test_solve_ivp_all_points_constant_step(decay_ode: ODE) -> None:
    """Test 100 RK4 steps written at every step."""
    config = SolverConfig(
        scheme="rk4", error_control="none", initial_step_size=0.01, output="all-points"
    )
    result = solve_ivp(IVP(decay_ode, 0.0, np.array([1.0])), 1.0, config)
    assert len(result.t) == 101
    assert result.t[-1] == 1.0
    assert result.y[-1, 0] == pytest.approx(np.exp(-1.0), rel=1e-9)


def test_solve_ivp_with_imex_scheme(decay_ode: ODE) -> None:
    """Test an additive scheme under the predictive controller.

    Step end points carry the full order; interval output comes from the
    third-order dense output over steps that can be long.
    """
    options = {"scheme": "kc54", "error_control": "embedded-special", "atol": 1e-8, "rtol": 1e-6}
    ivp = IVP(decay_ode, 0.0, np.array([1.0]))

    steps = solve_ivp(ivp, 1.0, SolverConfig(output="all-points", **options))
    assert steps.t[-1] == 1.0
    assert np.allclose(steps.y[:, 0], np.exp(-steps.t), atol=1e-5)

    dense = solve_ivp(ivp, 1.0, SolverConfig(output="interval", interval=0.25, **options))
    assert np.allclose(dense.t, [0.0, 0.25, 0.5, 0.75, 1.0])
    assert np.allclose(dense.y[:, 0], np.exp(-dense.t), atol=5e-4)


def test_solve_ivp_with_zero_absolute_tolerance() -> None:
    """Test atol = 0 on a component that stays exactly zero."""
    ode = ODE(size=2, rhs=lambda t, y: np.array([-y[0], 0.0]))  # noqa: ARG005
    config = SolverConfig(atol=0.0, rtol=1e-6, initial_step_size=0.1, output="all-points")
    result = solve_ivp(IVP(ode, 0.0, np.array([1.0, 0.0])), 1.0, config)

    assert result.stop_reason == "final time reached"
    assert result.t[-1] == 1.0
    assert np.all(result.y[:, 1] == 0.0)
    assert result.y[-1, 0] == pytest.approx(np.exp(-1.0), rel=1e-5)


def test_solve_ivp_stormer_verlet(oscillator_ode: ODE) -> None:
    """Test the symplectic preset at fixed step."""
    config = SolverConfig(
        scheme="stormer-verlet",
        error_control="none",
        initial_step_size=0.01,
        output="times",
        times=[0.0, 1.0],
    )
    result = solve_ivp(IVP(oscillator_ode, 0.0, np.array([1.0, 0.0])), 1.0, config)
    assert np.allclose(result.y[-1], [np.cos(1.0), -np.sin(1.0)], atol=1e-4)


def test_solve_ivp_writes_output_file(decay_ode: ODE, tmp_path: Path) -> None:
    """Test output_path mirrors the in-memory points."""
    path = tmp_path / "decay.txt"
    config = SolverConfig(
        scheme="forward-euler",
        error_control="none",
        initial_step_size=0.25,
        output="all-points",
        output_path=path,
    )
    result = solve_ivp(IVP(decay_ode, 0.0, np.array([1.0])), 1.0, config)

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[-1] == ""
    rows = np.array([[float(v) for v in line.split()] for line in lines[:-1]])
    assert rows.shape == (5, 2)
    assert np.array_equal(rows[:, 0], result.t)
    assert np.array_equal(rows[:, 1], result.y[:, 0])
