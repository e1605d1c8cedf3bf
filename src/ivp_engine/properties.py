# src/ivp_engine/properties.py
"""Typed keys and the per-run property bag shared by pipeline modules.

Every value exchanged between modules during a run lives in one
:class:`PropertyBag`, keyed by a :class:`PropertyKey`. Modules declare which keys
they require, supply, or request (see :mod:`ivp_engine.pipeline`); the bag only
stores values and checks their shape on the way out through typed accessors.

Two kinds of entries coexist in one bag:
    - run constants written once from ``begin_stepping`` (scheme, orders,
      tolerances, step limits, initial step size), and
    - interval values rewritten on every step attempt (initial/final time and
      state, trial solutions, error estimate, accept flag, next step size).
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, TypeVar, cast

import numpy as np
from numpy.typing import NDArray

from .errors import PropertyNotFoundError, PropertyTypeError
from .schemes import Scheme

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .error_control import ControllerHistory

_T = TypeVar("_T")

_MISSING_MSG = "Property '{key}' is not present"
_TYPE_MSG = "Property '{key}' holds {actual}, expected {expected}"


class PropertyKey(str, Enum):
    """Semantic keys understood by the built-in modules."""

    INITIAL_TIME = "initial_time"
    FINAL_TIME = "final_time"
    INITIAL_VALUES = "initial_values"
    FINAL_VALUES = "final_values"
    FINAL_VALUES_EMBEDDED = "final_values_embedded"
    FINAL_VALUES_COARSE = "final_values_coarse"
    FINAL_VALUES_HALF = "final_values_half"
    SAVED_INITIAL_TIME = "saved_initial_time"
    SAVED_FINAL_TIME = "saved_final_time"
    SAVED_INITIAL_VALUES = "saved_initial_values"
    SAVED_STAGE_VALUES = "saved_stage_values"
    STAGE_VALUES = "stage_values"
    SCHEME = "scheme"
    SCHEME_ORDER = "scheme_order"
    EMBEDDED_ORDER = "embedded_order"
    ERROR_ESTIMATE = "error_estimate"
    STEP_ACCEPTED = "step_accepted"
    NEXT_STEP_SIZE = "next_step_size"
    CONTROLLER_HISTORY = "controller_history"
    STOP_SOLVER = "stop_solver"
    STOP_REASON = "stop_reason"
    INITIAL_STEP_SIZE = "initial_step_size"
    ABSOLUTE_TOLERANCES = "absolute_tolerances"
    RELATIVE_TOLERANCES = "relative_tolerances"
    AMAX = "amax"
    AMIN = "amin"

    def __str__(self) -> str:
        return self.value


class PropertyBag:
    """Heterogeneous key/value store for one solver run.

    Raw access (``bag[key]``) returns whatever was stored. The typed accessors
    validate the stored value and raise :class:`PropertyTypeError` on mismatch,
    so a module reading a key gets either a correctly typed value or a clear
    error naming the key.
    """

    __slots__ = ("_values",)

    def __init__(self) -> None:
        self._values: dict[PropertyKey, object] = {}

    # ------------------------------------------------------------------
    # Mapping interface
    # ------------------------------------------------------------------

    def __getitem__(self, key: PropertyKey) -> object:
        try:
            return self._values[key]
        except KeyError as exc:
            raise PropertyNotFoundError(_MISSING_MSG.format(key=key)) from exc

    def __setitem__(self, key: PropertyKey, value: object) -> None:
        self._values[PropertyKey(key)] = value

    def __delitem__(self, key: PropertyKey) -> None:
        self._values.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[PropertyKey]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def get(self, key: PropertyKey, default: _T | None = None) -> object | _T | None:
        """Return the stored value for key, or default when absent."""
        return self._values.get(key, default)

    def clear(self) -> None:
        """Remove every entry."""
        self._values.clear()

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    def _typed(
        self,
        key: PropertyKey,
        kinds: type | tuple[type, ...],
        expected: str,
        *,
        allow_bool: bool = False,
    ) -> object:
        value = self[key]
        if not isinstance(value, kinds) or (isinstance(value, bool) and not allow_bool):
            raise PropertyTypeError(
                _TYPE_MSG.format(key=key, actual=type(value).__name__, expected=expected)
            )
        return value

    def time(self, key: PropertyKey) -> float:
        """
        Return a real scalar (time or step size).

        Args:
            key: Key to read.

        Returns:
            Stored value as a Python float.
        """
        value = self._typed(key, (float, int, np.floating, np.integer), "a real scalar")
        return float(cast("float", value))

    def vector(self, key: PropertyKey) -> NDArray[np.floating]:
        """
        Return a 1D floating array.

        Args:
            key: Key to read.

        Raises:
            PropertyTypeError: if the stored value is not a 1D array.

        Returns:
            The stored array (not copied).
        """
        value = self._typed(key, np.ndarray, "a 1D array")
        arr = cast("NDArray[np.floating]", value)
        if arr.ndim != 1:
            raise PropertyTypeError(
                _TYPE_MSG.format(key=key, actual=f"{arr.ndim}D array", expected="a 1D array")
            )
        return arr

    def flag(self, key: PropertyKey) -> bool:
        """Return a boolean flag."""
        value = self._typed(key, (bool, np.bool_), "a boolean", allow_bool=True)
        return bool(value)

    def integer(self, key: PropertyKey) -> int:
        """Return an integer (scheme orders)."""
        value = self._typed(key, (int, np.integer), "an integer")
        return int(cast("int", value))

    def text(self, key: PropertyKey) -> str:
        """Return a string."""
        return cast("str", self._typed(key, str, "a string"))

    def scheme(self, key: PropertyKey = PropertyKey.SCHEME) -> Scheme:
        """Return the scheme published by the stepping kernel."""
        return cast("Scheme", self._typed(key, Scheme, "a Scheme"))

    def history(self, key: PropertyKey = PropertyKey.CONTROLLER_HISTORY) -> ControllerHistory:
        """Return the step controller's history."""
        from .error_control import ControllerHistory  # noqa: PLC0415

        value = self._typed(key, ControllerHistory, "a ControllerHistory")
        return cast("ControllerHistory", value)
