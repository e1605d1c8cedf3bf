# src/ivp_engine/pipeline.py
"""Module pipeline: declarations, decorators, ordering and satisfaction.

A solver run is a pipeline of :class:`Module` objects that exchange values
through a shared :class:`~ivp_engine.properties.PropertyBag`. Each module
declares four key lists:

- required: keys that must be supplied by an earlier module (or the root),
- supplied: keys it writes,
- requested: keys it reads when some earlier module supplies them,
- required_if_present: keys that become required as soon as any module or the
  root supplies them.

A module that both requires and supplies a key *chains* it: it reads the value
written by its predecessor and overwrites it for its successors.

Assembly runs three passes once per solve:
    1) :func:`resolve_key_sets` promotes required-if-present keys,
    2) :func:`order_modules` places modules so that every requirement is
       supplied first and chains stay behind plain suppliers,
    3) :func:`satisfy_requirements` binds each (consumer, key) pair to its most
       recent supplier.

The root (the solver) takes part in all three passes: its supplies seed the
available keys, and its own requirements are bound last, against everything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import raise_circular_dependency, raise_unsatisfied_requirement
from .properties import PropertyKey

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from .properties import PropertyBag
    from .solver import Solver

logger = logging.getLogger(__name__)


def _keys(values: Iterable[PropertyKey | str]) -> tuple[PropertyKey, ...]:
    """Coerce to PropertyKey, drop duplicates, keep first-seen order."""
    out: list[PropertyKey] = []
    for value in values:
        key = PropertyKey(value)
        if key not in out:
            out.append(key)
    return tuple(out)


# =============================================================================
# Module
# =============================================================================


class Module:
    """Pipeline participant with declared key lists and lifecycle hooks.

    Subclasses pass their declarations to ``__init__`` and override the hooks
    they need. The default hooks do nothing.
    """

    def __init__(
        self,
        *,
        required: Iterable[PropertyKey | str] = (),
        supplied: Iterable[PropertyKey | str] = (),
        requested: Iterable[PropertyKey | str] = (),
        required_if_present: Iterable[PropertyKey | str] = (),
        name: str | None = None,
    ) -> None:
        self._required = _keys(required)
        self._supplied = _keys(supplied)
        self._requested = _keys(requested)
        self._required_if_present = _keys(required_if_present)
        self.name = name or type(self).__name__

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    @property
    def required(self) -> tuple[PropertyKey, ...]:
        """Keys this module requires."""
        return self._required

    @property
    def supplied(self) -> tuple[PropertyKey, ...]:
        """Keys this module supplies."""
        return self._supplied

    @property
    def requested(self) -> tuple[PropertyKey, ...]:
        """Keys this module reads when available."""
        return self._requested

    @property
    def required_if_present(self) -> tuple[PropertyKey, ...]:
        """Keys that become required when any participant supplies them."""
        return self._required_if_present

    def chains(self, key: PropertyKey) -> bool:
        """Return True when this module both requires and supplies ``key``."""
        return key in self.required and key in self.supplied

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def begin_stepping(self, solver: Solver, bag: PropertyBag) -> None:
        """Called once per run before the first step attempt."""

    def step(self, bag: PropertyBag) -> None:
        """Called once per step attempt, in assembled order."""

    def end_stepping(self) -> None:
        """Called once per run after the last step attempt, also on failure."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class ModuleDecorator(Module):
    """Module that wraps an inner module and extends its declarations.

    Declared lists are the inner module's lists followed by the decorator's
    own, order preserved and duplicates dropped. Lifecycle hooks forward to the
    inner module; subclasses override :meth:`step` and call ``super().step`` at
    the point the inner module should run.
    """

    def __init__(
        self,
        inner: Module,
        *,
        required: Iterable[PropertyKey | str] = (),
        supplied: Iterable[PropertyKey | str] = (),
        requested: Iterable[PropertyKey | str] = (),
        required_if_present: Iterable[PropertyKey | str] = (),
        name: str | None = None,
    ) -> None:
        super().__init__(
            required=(*inner.required, *_keys(required)),
            supplied=(*inner.supplied, *_keys(supplied)),
            requested=(*inner.requested, *_keys(requested)),
            required_if_present=(*inner.required_if_present, *_keys(required_if_present)),
            name=name or f"{type(self).__name__}({inner.name})",
        )
        self.inner = inner

    def begin_stepping(self, solver: Solver, bag: PropertyBag) -> None:
        self.inner.begin_stepping(solver, bag)

    def step(self, bag: PropertyBag) -> None:
        self.inner.step(bag)

    def end_stepping(self) -> None:
        self.inner.end_stepping()


# =============================================================================
# Assembly passes
# =============================================================================


@dataclass(frozen=True, slots=True)
class KeySet:
    """Effective declarations of one module for one run.

    Attributes:
        required: Declared required keys plus promoted required-if-present keys.
        supplied: Supplied keys.
        requested: Requested keys.
    """

    required: tuple[PropertyKey, ...]
    supplied: tuple[PropertyKey, ...]
    requested: tuple[PropertyKey, ...]

    def chains(self, key: PropertyKey) -> bool:
        """Return True when ``key`` is both required and supplied."""
        return key in self.required and key in self.supplied


def resolve_key_sets(root: Module, modules: Sequence[Module]) -> dict[Module, KeySet]:
    """Promote required-if-present keys that some participant supplies.

    Args:
        root: Root module (the solver).
        modules: Non-root modules.

    Returns:
        Effective key sets for the root and every module. Modules themselves are
        not modified.
    """
    participants = [*modules, root]
    all_supplied = {key for module in participants for key in module.supplied}

    key_sets: dict[Module, KeySet] = {}
    for module in participants:
        promoted = [key for key in module.required_if_present if key in all_supplied]
        key_sets[module] = KeySet(
            required=_keys((*module.required, *promoted)),
            supplied=module.supplied,
            requested=module.requested,
        )
    return key_sets


def _is_permitted(
    candidate: Module,
    pending: Sequence[Module],
    key_sets: Mapping[Module, KeySet],
) -> bool:
    cand = key_sets[candidate]
    for key in cand.required:
        chained = cand.chains(key)
        for other in pending:
            if other is candidate or key not in key_sets[other].supplied:
                continue
            # A plain supplier must run before any module that chains the key,
            # and every supplier must run before a module that only reads it.
            if not chained or not key_sets[other].chains(key):
                return False
    return True


def order_modules(
    root: Module,
    modules: Sequence[Module],
    key_sets: Mapping[Module, KeySet] | None = None,
) -> list[Module]:
    """Order modules so every requirement is supplied before it is read.

    Worklist algorithm: repeatedly place the first module (in input order) whose
    required keys are all available so far and which is permitted to run
    before every other unplaced module.

    Args:
        root: Root module; its supplies are available from the start.
        modules: Non-root modules in registration order.
        key_sets: Effective key sets; computed with :func:`resolve_key_sets`
            when omitted.

    Raises:
        UnsatisfiedRequirementError: If a required key has no supplier at all.
        CircularDependencyError: If every remaining module waits on another.

    Returns:
        Modules in execution order.
    """
    sets = key_sets if key_sets is not None else resolve_key_sets(root, modules)
    available: set[PropertyKey] = set(sets[root].supplied)
    pending = list(modules)
    ordered: list[Module] = []

    while pending:
        for idx, candidate in enumerate(pending):
            if all(key in available for key in sets[candidate].required) and _is_permitted(
                candidate, pending, sets
            ):
                break
        else:
            pending_supplied = {key for module in pending for key in sets[module].supplied}
            for module in pending:
                for key in sets[module].required:
                    if key not in available and key not in pending_supplied:
                        raise_unsatisfied_requirement(module, key)
            raise_circular_dependency(
                (module, [key for key in sets[module].required if key not in available])
                for module in pending
            )
        placed = pending.pop(idx)
        ordered.append(placed)
        available.update(sets[placed].supplied)

    return ordered


def satisfy_requirements(
    root: Module,
    ordered: Sequence[Module],
    key_sets: Mapping[Module, KeySet] | None = None,
) -> dict[tuple[Module, PropertyKey], Module]:
    """Bind each required and available requested key to its supplier.

    Args:
        root: Root module. Its supplies seed the available keys and its own
            requirements are bound after every module has been processed.
        ordered: Modules in execution order.
        key_sets: Effective key sets; computed with :func:`resolve_key_sets`
            when omitted.

    Returns:
        Mapping (consumer, key) -> supplier. Later suppliers shadow earlier
        ones. Requested keys appear only when some earlier module supplies them.
    """
    sets = key_sets if key_sets is not None else resolve_key_sets(root, ordered)
    latest: dict[PropertyKey, Module] = dict.fromkeys(sets[root].supplied, root)
    bindings: dict[tuple[Module, PropertyKey], Module] = {}

    def bind(consumer: Module) -> None:
        for key in sets[consumer].requested:
            if key in latest:
                bindings[consumer, key] = latest[key]
        for key in sets[consumer].required:
            if key not in latest:
                raise_unsatisfied_requirement(consumer, key)
            bindings[consumer, key] = latest[key]

    for module in ordered:
        bind(module)
        for key in sets[module].supplied:
            latest[key] = module
    bind(root)

    return bindings


@dataclass(frozen=True, slots=True)
class Assembly:
    """Result of assembling a pipeline for one run.

    Attributes:
        modules: Modules in execution order.
        bindings: (consumer, key) -> supplier.
        key_sets: Effective declarations per participant.
    """

    modules: tuple[Module, ...]
    bindings: dict[tuple[Module, PropertyKey], Module]
    key_sets: dict[Module, KeySet]

    def supplier_of(self, consumer: Module, key: PropertyKey) -> Module | None:
        """Return the module bound to ``consumer``'s ``key``, if any."""
        return self.bindings.get((consumer, key))

    def is_present(self, consumer: Module, key: PropertyKey) -> bool:
        """Return True when ``key`` is bound for ``consumer``."""
        return (consumer, key) in self.bindings


def assemble(root: Module, modules: Sequence[Module]) -> Assembly:
    """
    Run the finder, orderer and satisfier once.

    Args:
        root: Root module (the solver).
        modules: Non-root modules in registration order.

    Returns:
        The assembled pipeline.
    """
    key_sets = resolve_key_sets(root, modules)
    ordered = order_modules(root, modules, key_sets)
    bindings = satisfy_requirements(root, ordered, key_sets)
    logger.debug("Assembled pipeline: %s", " -> ".join(m.name for m in ordered))
    return Assembly(modules=tuple(ordered), bindings=bindings, key_sets=key_sets)
