# src/ivp_engine/schemes.py
"""Scheme descriptions: Butcher tableaux and additive (IMEX) tableau pairs.

Schemes are immutable value objects. Coefficient arrays are stored as read-only
float64 ndarrays so a scheme can be shared freely between kernels, runs, and
threads.

Conventions:
    - ``a`` is the (s, s) stage-coupling matrix, ``b`` the (s,) weights, ``c``
      the (s,) abscissae. When ``c`` is omitted it is taken as the row sums of
      ``a``.
    - ``order`` is the order of the propagated solution (weights ``b``).
      ``embedded_order`` is the order of the companion solution built from
      ``b_embedded``; zero means the scheme has no embedding.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from .errors import ConfigurationError
from .interpolants import Interpolant, LinearInterpolant

_ORDER_MSG = "Scheme '{name}': order must be a positive integer, got {order!r}"
_EMB_ORDER_MSG = "Scheme '{name}': embedded_order must be >= 0, got {order!r}"
_A_SHAPE_MSG = "Tableau '{name}': a must be square, got shape {shape}"
_VEC_SHAPE_MSG = "Tableau '{name}': {field} must have shape ({s},), got {shape}"
_EMB_MISMATCH_MSG = (
    "Tableau '{name}': b_embedded and embedded_order must be given together"
)
_ADDITIVE_STAGES_MSG = (
    "Additive tableau '{name}': explicit and implicit parts need the same number "
    "of stages ({n_exp} != {n_imp})"
)
_ADDITIVE_EXPLICIT_MSG = (
    "Additive tableau '{name}': explicit part must be strictly lower triangular"
)
_ESDIRK_MSG = (
    "Additive tableau '{name}': implicit part must be an ESDIRK tableau "
    "(explicit first stage, constant nonzero diagonal afterwards, zero above the "
    "diagonal)"
)


def _readonly(values: object, *, name: str) -> NDArray[np.floating]:
    arr = np.array(values, dtype=float)
    if not np.all(np.isfinite(arr)):
        msg = f"Tableau '{name}': coefficients must be finite"
        raise ConfigurationError(msg)
    arr.setflags(write=False)
    return arr


# =============================================================================
# Scheme
# =============================================================================


@dataclass(slots=True, frozen=True, kw_only=True, eq=False)
class Scheme:
    """Description of a one-step method that a kernel can execute.

    Attributes:
        name: Human-readable name.
        order: Order of the propagated solution.
        embedded_order: Order of the embedded solution, 0 when absent.
        fsal: Whether the last stage derivative equals the first derivative of
            the next step (first-same-as-last).
        interpolant: Dense-output rule; linear between endpoints by default.
    """

    name: str
    order: int
    embedded_order: int = 0
    fsal: bool = False
    interpolant: Interpolant = field(default_factory=LinearInterpolant)

    def __post_init__(self) -> None:
        if isinstance(self.order, bool) or int(self.order) != self.order or self.order < 1:
            raise ConfigurationError(_ORDER_MSG.format(name=self.name, order=self.order))
        if int(self.embedded_order) != self.embedded_order or self.embedded_order < 0:
            raise ConfigurationError(
                _EMB_ORDER_MSG.format(name=self.name, order=self.embedded_order)
            )

    @property
    def has_embedded(self) -> bool:
        """True when the scheme carries an embedded solution."""
        return self.embedded_order > 0

    @property
    def controller_order(self) -> int:
        """Order used by step-size controllers: min(order, embedded_order) if embedded."""
        if self.has_embedded:
            return min(self.order, self.embedded_order)
        return self.order


# =============================================================================
# Butcher tableau
# =============================================================================


@dataclass(slots=True, frozen=True, kw_only=True, eq=False)
class ButcherTableau(Scheme):
    """Runge-Kutta Butcher tableau, optionally with an embedded weight row.

    Attributes:
        a: Stage coefficients, shape (s, s).
        b: Weights of the propagated solution, shape (s,).
        c: Abscissae, shape (s,). Row sums of ``a`` when omitted.
        b_embedded: Weights of the embedded solution, shape (s,), or None.
    """

    a: NDArray[np.floating]
    b: NDArray[np.floating]
    c: NDArray[np.floating] | None = None
    b_embedded: NDArray[np.floating] | None = None

    def __post_init__(self) -> None:
        super(ButcherTableau, self).__post_init__()
        a = _readonly(self.a, name=self.name)
        if a.ndim != 2 or a.shape[0] != a.shape[1]:
            raise ConfigurationError(_A_SHAPE_MSG.format(name=self.name, shape=a.shape))
        s = a.shape[0]

        b = _readonly(self.b, name=self.name)
        if b.shape != (s,):
            raise ConfigurationError(
                _VEC_SHAPE_MSG.format(name=self.name, field="b", s=s, shape=b.shape)
            )

        c = _readonly(a.sum(axis=1) if self.c is None else self.c, name=self.name)
        if c.shape != (s,):
            raise ConfigurationError(
                _VEC_SHAPE_MSG.format(name=self.name, field="c", s=s, shape=c.shape)
            )

        b_emb: NDArray[np.floating] | None = None
        if (self.b_embedded is None) != (self.embedded_order == 0):
            raise ConfigurationError(_EMB_MISMATCH_MSG.format(name=self.name))
        if self.b_embedded is not None:
            b_emb = _readonly(self.b_embedded, name=self.name)
            if b_emb.shape != (s,):
                raise ConfigurationError(
                    _VEC_SHAPE_MSG.format(
                        name=self.name, field="b_embedded", s=s, shape=b_emb.shape
                    )
                )

        object.__setattr__(self, "a", a)
        object.__setattr__(self, "b", b)
        object.__setattr__(self, "c", c)
        object.__setattr__(self, "b_embedded", b_emb)

    @property
    def stages(self) -> int:
        """Number of stages s."""
        return int(self.b.shape[0])

    @property
    def is_explicit(self) -> bool:
        """True when ``a`` is strictly lower triangular."""
        return bool(np.all(np.triu(self.a) == 0.0))

    @property
    def c_array(self) -> NDArray[np.floating]:
        """Abscissae as a non-optional array."""
        return self.c if self.c is not None else self.a.sum(axis=1)

    def __repr__(self) -> str:
        return (
            f"ButcherTableau(name={self.name!r}, stages={self.stages}, "
            f"order={self.order}, embedded_order={self.embedded_order}, fsal={self.fsal})"
        )


# =============================================================================
# Additive tableau (IMEX ESDIRK)
# =============================================================================


@dataclass(slots=True, frozen=True, kw_only=True, eq=False)
class AdditiveTableau(Scheme):
    """Pair of tableaux for an additive (implicit-explicit) Runge-Kutta method.

    The explicit part integrates the non-stiff term f1 and the implicit part the
    stiff term f2. Both share the abscissae of the implicit tableau.

    ``has_embedded`` holds only when both parts embed, and ``fsal`` only when both
    parts are FSAL. The ``embedded_order`` and ``fsal`` fields are derived from
    the parts and need not be passed.

    Attributes:
        explicit: Strictly lower triangular tableau.
        implicit: ESDIRK tableau (a[0, 0] == 0, a[i, i] == gamma for i >= 1).
    """

    explicit: ButcherTableau
    implicit: ButcherTableau

    def __post_init__(self) -> None:
        embedded_order = 0
        if self.explicit.has_embedded and self.implicit.has_embedded:
            embedded_order = self.embedded_order or self.implicit.embedded_order
        object.__setattr__(self, "embedded_order", embedded_order)
        object.__setattr__(self, "fsal", self.explicit.fsal and self.implicit.fsal)
        super(AdditiveTableau, self).__post_init__()

        if self.explicit.stages != self.implicit.stages:
            raise ConfigurationError(
                _ADDITIVE_STAGES_MSG.format(
                    name=self.name,
                    n_exp=self.explicit.stages,
                    n_imp=self.implicit.stages,
                )
            )
        if not self.explicit.is_explicit:
            raise ConfigurationError(_ADDITIVE_EXPLICIT_MSG.format(name=self.name))

        a = self.implicit.a
        diag = np.diag(a)
        upper = np.triu(a, k=1)
        if (
            diag[0] != 0.0
            or np.any(upper != 0.0)
            or (a.shape[0] > 1 and (diag[1] == 0.0 or np.any(diag[1:] != diag[1])))
        ):
            raise ConfigurationError(_ESDIRK_MSG.format(name=self.name))

    @property
    def stages(self) -> int:
        """Number of stages s (shared by both parts)."""
        return self.implicit.stages

    @property
    def c(self) -> NDArray[np.floating]:
        """Abscissae, taken from the implicit tableau."""
        return self.implicit.c_array

    @property
    def gamma(self) -> float:
        """Constant diagonal coefficient of the implicit part."""
        if self.stages < 2:
            return 0.0
        return float(self.implicit.a[1, 1])

    def __repr__(self) -> str:
        return (
            f"AdditiveTableau(name={self.name!r}, stages={self.stages}, "
            f"order={self.order}, embedded_order={self.embedded_order}, "
            f"gamma={self.gamma:.6g})"
        )
