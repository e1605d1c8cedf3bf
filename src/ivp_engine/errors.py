# src/ivp_engine/errors.py
"""Error types and message helpers for ivp_engine.

This module centralizes:
- explicit error classes with actionable messages, and
- small helpers that raise them with a consistent layout.

Error classes mix in the matching builtin so callers can catch either the
package-specific type or the generic one (e.g. ``ValueError`` for bad
configuration).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

if TYPE_CHECKING:
    from collections.abc import Iterable


class IVPEngineError(Exception):
    """Base exception for ivp_engine errors."""


class ConfigurationError(IVPEngineError, ValueError):
    """Raised when solver, module, or controller parameters are invalid."""


class AssemblyError(IVPEngineError, RuntimeError):
    """Raised when a module pipeline cannot be assembled."""


class CircularDependencyError(AssemblyError):
    """Raised when no remaining module can be placed by the dependency orderer."""


class UnsatisfiedRequirementError(AssemblyError):
    """Raised when a required key is never supplied earlier in the pipeline."""


class PropertyNotFoundError(IVPEngineError, KeyError):
    """Raised when a key is read from a property bag that does not hold it."""


class PropertyTypeError(IVPEngineError, TypeError):
    """Raised when a property bag value does not have the requested type."""


class SolverRunningError(IVPEngineError, RuntimeError):
    """Raised when a running solver is started again or reconfigured."""


class LinearSolveFailure(IVPEngineError, ArithmeticError):
    """Raised when an implicit-stage iteration matrix cannot be factorized."""


class StepLimitError(IVPEngineError, RuntimeError):
    """Raised when the stepping loop cannot make further progress."""


def _describe(obj: object) -> str:
    name = getattr(obj, "name", None)
    if isinstance(name, str) and name:
        return name
    return type(obj).__name__


def raise_circular_dependency(pending: Iterable[tuple[object, Iterable[str]]]) -> NoReturn:
    """Raise a standardized CircularDependencyError.

    Args:
        pending: Pairs of (unplaced module, keys it still waits for).

    Raises:
        CircularDependencyError: Always.
    """
    parts: list[str] = ["Circular module requirements; cannot order remaining modules."]
    for module, keys in pending:
        waiting = sorted(set(keys))
        if waiting:
            parts.append(f"{_describe(module)} waits for {waiting}.")
        else:
            parts.append(f"{_describe(module)} is blocked by another supplier.")
    raise CircularDependencyError(" ".join(parts))


def raise_unsatisfied_requirement(consumer: object, key: str) -> NoReturn:
    """Raise a standardized UnsatisfiedRequirementError.

    Args:
        consumer: Module whose requirement could not be bound.
        key: Name of the missing key.

    Raises:
        UnsatisfiedRequirementError: Always.
    """
    msg = (
        "Cannot satisfy all module requirements: "
        f"{_describe(consumer)} requires '{key}', which no earlier module supplies."
    )
    raise UnsatisfiedRequirementError(msg)


def raise_invalid_parameter(name: str, *, expected: str, got: object) -> NoReturn:
    """Raise a standardized ConfigurationError for a single parameter.

    Args:
        name: Parameter name.
        expected: Human-readable constraint description.
        got: Observed value.

    Raises:
        ConfigurationError: Always.
    """
    msg = f"{name} must be {expected}. Got: {got!r}."
    raise ConfigurationError(msg)
