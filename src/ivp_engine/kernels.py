# src/ivp_engine/kernels.py
"""Stepping kernels: one Runge-Kutta step per step attempt.

A kernel reads the step interval and starting state from the property bag,
computes a trial solution, and publishes it together with its stage
derivatives and scheme metadata. Kernels never decide acceptance; degenerate
numerics surface as non-finite trial values for the controller to reject.

Common declarations:
    required:  INITIAL_TIME, INITIAL_VALUES, FINAL_TIME
    requested: STEP_ACCEPTED (outcome of the previous attempt)
    supplied:  FINAL_VALUES, STAGE_VALUES, SCHEME, SCHEME_ORDER, and
               FINAL_VALUES_EMBEDDED, EMBEDDED_ORDER when the scheme embeds.

Kernels:
    - ForwardEuler
    - ExplicitRungeKutta: any strictly lower triangular tableau, with
      first-same-as-last reuse of the last stage derivative.
    - IMEXRungeKutta: linearly implicit additive ESDIRK. The stiff term is
      either the user's implicit part or, without a split, the linearization
      J y. One Jacobian and one factorization of I - h*gamma*J per step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, cast

import numpy as np
from numpy.typing import NDArray

from .errors import ConfigurationError, LinearSolveFailure
from .interpolants import AdditiveStages
from .linalg import factorize, iteration_matrix
from .pipeline import Module
from .properties import PropertyKey
from .schemes import AdditiveTableau, ButcherTableau, Scheme
from .tableaux import FORWARD_EULER

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .linalg import Matrix
    from .ode import ODE
    from .properties import PropertyBag
    from .solver import Solver

logger = logging.getLogger(__name__)

OnSingular = Literal["reject", "raise"]

_NOT_STARTED_MSG = "{name} has not been started; call begin_stepping first"
_NOT_EXPLICIT_MSG = "ExplicitRungeKutta needs a strictly lower triangular tableau; got {name!r}"
_NOT_ADDITIVE_MSG = "IMEXRungeKutta needs an AdditiveTableau; got {typ}"
_ON_SINGULAR_MSG = "on_singular must be 'reject' or 'raise', got {value!r}"
_SINGULAR_WARNING = "Implicit stage solve failed at t=%.17g, h=%.6g: %s; rejecting step"

_KERNEL_REQUIRED = (
    PropertyKey.INITIAL_TIME,
    PropertyKey.INITIAL_VALUES,
    PropertyKey.FINAL_TIME,
)


@dataclass(frozen=True, slots=True)
class StepResult:
    """Outcome of one kernel step.

    Attributes:
        y1: Trial solution at t0 + h.
        y_embedded: Embedded solution, or None when the scheme has none.
        stage_values: Stage derivatives in the layout the scheme's interpolant
            expects.
    """

    y1: NDArray[np.floating]
    y_embedded: NDArray[np.floating] | None
    stage_values: object


class SteppingKernel(Module):
    """Base class for kernels; subclasses implement :meth:`advance`."""

    def __init__(
        self,
        scheme: Scheme,
        *,
        supplied: Iterable[PropertyKey] = (),
        name: str | None = None,
    ) -> None:
        own = [
            PropertyKey.FINAL_VALUES,
            PropertyKey.STAGE_VALUES,
            PropertyKey.SCHEME,
            PropertyKey.SCHEME_ORDER,
        ]
        if scheme.has_embedded:
            own += [PropertyKey.FINAL_VALUES_EMBEDDED, PropertyKey.EMBEDDED_ORDER]
        super().__init__(
            required=_KERNEL_REQUIRED,
            supplied=(*own, *supplied),
            requested=(PropertyKey.STEP_ACCEPTED,),
            name=name,
        )
        self.scheme = scheme
        self._ode: ODE | None = None

    @property
    def ode(self) -> ODE:
        """ODE of the current run."""
        if self._ode is None:
            raise RuntimeError(_NOT_STARTED_MSG.format(name=self.name))
        return self._ode

    def begin_stepping(self, solver: Solver, bag: PropertyBag) -> None:
        self._ode = solver.ode
        bag[PropertyKey.SCHEME] = self.scheme
        bag[PropertyKey.SCHEME_ORDER] = self.scheme.order
        if self.scheme.has_embedded:
            bag[PropertyKey.EMBEDDED_ORDER] = self.scheme.embedded_order
        self.reset()

    def reset(self) -> None:
        """Drop any state carried between steps."""

    def step(self, bag: PropertyBag) -> None:
        t0 = bag.time(PropertyKey.INITIAL_TIME)
        t1 = bag.time(PropertyKey.FINAL_TIME)
        y0 = bag.vector(PropertyKey.INITIAL_VALUES)
        previous_accepted = bool(bag.get(PropertyKey.STEP_ACCEPTED, False))

        result = self.advance(t0, y0, t1, previous_accepted=previous_accepted)

        bag[PropertyKey.FINAL_VALUES] = result.y1
        bag[PropertyKey.STAGE_VALUES] = result.stage_values
        if self.scheme.has_embedded:
            bag[PropertyKey.FINAL_VALUES_EMBEDDED] = result.y_embedded

    def advance(
        self,
        t0: float,
        y0: NDArray[np.floating],
        t1: float,
        *,
        previous_accepted: bool = False,
    ) -> StepResult:
        """
        Take one step from (t0, y0) to t1.

        Args:
            t0: Start of the step.
            y0: State at t0.
            t1: End of the step.
            previous_accepted: Whether the previous attempt was accepted.

        Returns:
            The trial solution and its stage derivatives.
        """
        raise NotImplementedError


# =============================================================================
# Explicit kernels
# =============================================================================


class ForwardEuler(SteppingKernel):
    """y1 = y0 + h f(t0, y0)."""

    def __init__(self, *, name: str | None = None) -> None:
        super().__init__(FORWARD_EULER, name=name)

    def advance(
        self,
        t0: float,
        y0: NDArray[np.floating],
        t1: float,
        *,
        previous_accepted: bool = False,  # noqa: ARG002
    ) -> StepResult:
        h = t1 - t0
        k = self.ode.f(t0, y0)
        return StepResult(y1=y0 + h * k, y_embedded=None, stage_values=k[np.newaxis, :])


class ExplicitRungeKutta(SteppingKernel):
    """Explicit Runge-Kutta kernel for any explicit Butcher tableau.

    For FSAL tableaux the last stage derivative of an accepted step is reused
    as the first stage of the next one. The cached derivative is keyed by the
    step end point, so it is only reused when the new step starts exactly
    there.
    """

    def __init__(self, tableau: ButcherTableau, *, name: str | None = None) -> None:
        if not isinstance(tableau, ButcherTableau) or not tableau.is_explicit:
            raise ConfigurationError(
                _NOT_EXPLICIT_MSG.format(name=getattr(tableau, "name", tableau))
            )
        super().__init__(tableau, name=name or f"ExplicitRungeKutta({tableau.name})")
        self.tableau = tableau
        self._fsal_cache: tuple[float, NDArray[np.floating], NDArray[np.floating]] | None = None

    def reset(self) -> None:
        self._fsal_cache = None

    def _first_stage(
        self,
        t0: float,
        y0: NDArray[np.floating],
        *,
        previous_accepted: bool,
    ) -> NDArray[np.floating]:
        cache = self._fsal_cache
        if (
            previous_accepted
            and cache is not None
            and cache[0] == t0
            and np.array_equal(cache[1], y0)
        ):
            return cache[2]
        return self.ode.f(t0, y0)

    def advance(
        self,
        t0: float,
        y0: NDArray[np.floating],
        t1: float,
        *,
        previous_accepted: bool = False,
    ) -> StepResult:
        tab = self.tableau
        h = t1 - t0
        s = tab.stages
        a, b, c = tab.a, tab.b, tab.c_array

        k = np.empty((s, y0.shape[0]), dtype=float)
        k[0] = self._first_stage(t0, y0, previous_accepted=previous_accepted)
        for i in range(1, s):
            y_stage = y0 + h * (a[i, :i] @ k[:i])
            k[i] = self.ode.f(t0 + c[i] * h, y_stage)

        y1 = y0 + h * (b @ k)
        y_emb = None
        if tab.b_embedded is not None:
            y_emb = y0 + h * (tab.b_embedded @ k)

        if tab.fsal:
            self._fsal_cache = (t1, y1.copy(), k[-1].copy())

        return StepResult(y1=y1, y_embedded=y_emb, stage_values=k)


# =============================================================================
# IMEX kernel
# =============================================================================


class IMEXRungeKutta(SteppingKernel):
    """Linearly implicit IMEX ESDIRK kernel.

    Stage i (i >= 1) with increment z_i = h * sum_{j<i} (a_ij k^I_j + â_ij k^E_j):

        (I - h*gamma*J) k^I_i = f_lin(t0 + c_i h, y0 + z_i)
        k^E_i = f_nonlin(t0 + c_i h, y0 + z_i + h*gamma*k^I_i)

    where f_lin / f_nonlin are the implicit / explicit parts of an additive
    ODE, or J y / f - J y otherwise.

    Args:
        tableau: Additive ESDIRK tableau.
        on_singular: "reject" publishes NaN trial values (and logs a warning)
            when the iteration matrix cannot be factorized, so an adaptive
            controller rejects and shrinks the step; "raise" propagates
            :class:`~ivp_engine.errors.LinearSolveFailure`.
        name: Optional module name.
    """

    def __init__(
        self,
        tableau: AdditiveTableau,
        *,
        on_singular: OnSingular = "reject",
        name: str | None = None,
    ) -> None:
        if not isinstance(tableau, AdditiveTableau):
            raise ConfigurationError(_NOT_ADDITIVE_MSG.format(typ=type(tableau).__name__))
        if on_singular not in {"reject", "raise"}:
            raise ConfigurationError(_ON_SINGULAR_MSG.format(value=on_singular))
        super().__init__(tableau, name=name or f"IMEXRungeKutta({tableau.name})")
        self.tableau = tableau
        self.on_singular = on_singular

    def _failed(self, n: int, t0: float, h: float, exc: LinearSolveFailure) -> StepResult:
        if self.on_singular == "raise":
            raise exc
        logger.warning(_SINGULAR_WARNING, t0, h, exc)
        s = self.tableau.stages
        nan_stages = np.full((s, n), np.nan)
        return StepResult(
            y1=np.full(n, np.nan),
            y_embedded=np.full(n, np.nan) if self.scheme.has_embedded else None,
            stage_values=AdditiveStages(explicit=nan_stages, implicit=nan_stages.copy()),
        )

    def advance(
        self,
        t0: float,
        y0: NDArray[np.floating],
        t1: float,
        *,
        previous_accepted: bool = False,  # noqa: ARG002
    ) -> StepResult:
        ode = self.ode
        tab = self.tableau
        exp, imp = tab.explicit, tab.implicit
        h = t1 - t0
        n = y0.shape[0]
        s = tab.stages
        c = tab.c
        gamma = tab.gamma

        k_exp = np.empty((s, n), dtype=float)
        k_imp = np.empty((s, n), dtype=float)

        jac: Matrix
        if ode.is_additive:
            k_imp[0] = ode.f2(t0, y0)
            jac = ode.implicit_jac(t0, y0, k_imp[0])
            k_exp[0] = ode.f1(t0, y0)

            def f_lin(t: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
                return ode.f2(t, y)

            def f_nonlin(t: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
                return ode.f1(t, y)

        else:
            f0 = ode.f(t0, y0)
            jac = ode.jac(t0, y0, f0)
            k_imp[0] = np.asarray(jac @ y0, dtype=float)
            k_exp[0] = f0 - k_imp[0]

            def f_lin(t: float, y: NDArray[np.floating]) -> NDArray[np.floating]:  # noqa: ARG001
                return np.asarray(jac @ y, dtype=float)

            def f_nonlin(t: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
                return ode.f(t, y) - np.asarray(jac @ y, dtype=float)

        try:
            solve = factorize(iteration_matrix(jac, h * gamma))
        except LinearSolveFailure as exc:
            return self._failed(n, t0, h, exc)

        for i in range(1, s):
            incr = h * (imp.a[i, :i] @ k_imp[:i] + exp.a[i, :i] @ k_exp[:i])
            t_stage = t0 + c[i] * h
            k_imp[i] = solve(f_lin(t_stage, y0 + incr))
            incr += (h * gamma) * k_imp[i]
            k_exp[i] = f_nonlin(t_stage, y0 + incr)

        y1 = y0 + h * (imp.b @ k_imp + exp.b @ k_exp)
        y_emb = None
        if tab.has_embedded:
            b_imp_emb = cast("NDArray[np.floating]", imp.b_embedded)
            b_exp_emb = cast("NDArray[np.floating]", exp.b_embedded)
            y_emb = y0 + h * (b_imp_emb @ k_imp + b_exp_emb @ k_exp)

        return StepResult(
            y1=y1,
            y_embedded=y_emb,
            stage_values=AdditiveStages(explicit=k_exp, implicit=k_imp),
        )
