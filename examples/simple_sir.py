# examples/simple_sir.py
"""Single-location SIR solved three ways with ivp_engine.

This example demonstrates the configuration surface:

- error control "none": one RK4 step of fixed size between equally spaced
  output times.
- error control "embedded": Dormand-Prince 5(4) chooses its own steps and the
  output is interpolated at the same times.
- error control "step-doubling": RK4 with step-doubling error estimates.

We model a normalized SIR system with state y = (S, I, R) and S + I + R = 1.
Every run is checked against scipy's DOP853 at tight tolerance.

This script saves plots to disk (no interactive windows).
"""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
from scipy.integrate import solve_ivp as scipy_solve_ivp

from ivp_engine import IVP, ODE, SolverConfig, solve_ivp

_OUTPUT_DIR = Path(__file__).resolve().parent / "output" / "sir"


def sir_rhs(
    t: float,  # noqa: ARG001 (no explicit time dependence here)
    y: np.ndarray,
    *,
    beta: float,
    gamma: float,
) -> np.ndarray:
    """RHS for a normalized SIR model.

    Args:
        t: Current time (unused; included for API compatibility).
        y: State of shape (3,) with entries (S, I, R).
        beta: Transmission rate.
        gamma: Recovery rate.

    Returns:
        (dS/dt, dI/dt, dR/dt).
    """
    new_inf = beta * y[0] * y[1]
    recov = gamma * y[1]
    return np.array([-new_inf, new_inf - recov, recov])


def compute_conservation_drift(states: np.ndarray) -> float:
    """Compute max |S+I+R-1| over output times.

    Args:
        states: Output values, shape (n_points, 3).

    Returns:
        Maximum absolute conservation drift.
    """
    return float(np.max(np.abs(states.sum(axis=1) - 1.0)))


def save_sir_plot(
    time: np.ndarray,
    states: np.ndarray,
    *,
    title: str,
    out_path: Path,
    error: float,
) -> None:
    """Save S, I, R trajectories to an image file.

    Args:
        time: Output times, shape (n_points,).
        states: Output values, shape (n_points, 3).
        title: Plot title.
        out_path: Output path for the saved figure.
        error: Max deviation from the reference solution, shown in the title.
    """
    plt.figure(figsize=(8, 5))
    for col, label in enumerate(("S", "I", "R")):
        plt.plot(time, states[:, col], label=label)
    plt.grid(visible=True)
    plt.legend()
    plt.title(f"{title}\nmax |y - y_ref| = {error:.3e}")
    plt.xlabel("Time")
    plt.ylabel("Proportion")
    plt.tight_layout()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(out_path, dpi=150)
    plt.close()


def main() -> None:
    """Run the three configurations and save one plot each.

    Files are written to: examples/output/sir/
    """
    # ---------------------------------------------------------------------
    # Model parameters
    # ---------------------------------------------------------------------
    beta = 0.30
    gamma = 1.0 / 7.0
    initial_infected = 0.01
    total_time = 160.0

    ode = ODE(size=3, rhs=lambda t, y: sir_rhs(t, y, beta=beta, gamma=gamma))
    ivp = IVP(ode, 0.0, np.array([1.0 - initial_infected, initial_infected, 0.0]))
    times = np.linspace(0.0, total_time, 321)

    reference = scipy_solve_ivp(
        lambda t, y: sir_rhs(t, y, beta=beta, gamma=gamma),
        (0.0, total_time),
        ivp.initial_values,
        method="DOP853",
        t_eval=times,
        rtol=1e-12,
        atol=1e-12,
    ).y.T

    configs = {
        "rk4_fixed": SolverConfig(
            scheme="rk4",
            error_control="none",
            initial_step_size=0.5,
            output="times",
            times=list(times),
        ),
        "dopri_embedded": SolverConfig(
            atol=1e-9,
            rtol=1e-7,
            output="times",
            times=list(times),
        ),
        "rk4_step_doubling": SolverConfig(
            scheme="rk4",
            error_control="step-doubling",
            atol=1e-9,
            rtol=1e-7,
            output="times",
            times=list(times),
        ),
    }

    for name, config in configs.items():
        result = solve_ivp(ivp, total_time, config)
        error = float(np.max(np.abs(result.y - reference)))
        print(  # noqa: T201
            f"{name}: {result.solver.accepted_steps} accepted, "
            f"{result.solver.rejected_steps} rejected, max error {error:.2e}, "
            f"drift {compute_conservation_drift(result.y):.2e}"
        )
        save_sir_plot(
            result.t,
            result.y,
            title=f"SIR via ivp_engine ({config.scheme.name}, {config.error_control.value})",
            out_path=_OUTPUT_DIR / f"simple_sir_{name}.png",
            error=error,
        )


if __name__ == "__main__":
    main()
