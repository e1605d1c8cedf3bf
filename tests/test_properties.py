# tests/test_properties.py
"""Unit tests for PropertyKey and PropertyBag.

This module contains tests that verify:
- Raw access stores and returns values unchanged and reports missing keys.
- Typed accessors return correctly typed values and reject mismatches.
- String keys are coerced to PropertyKey on assignment.
"""

from __future__ import annotations

import numpy as np
import pytest

from ivp_engine.error_control import ControllerHistory
from ivp_engine.errors import PropertyNotFoundError, PropertyTypeError
from ivp_engine.properties import PropertyBag, PropertyKey
from ivp_engine.tableaux import RK4

# -------------------------------------------------------------------
# Mapping interface
# -------------------------------------------------------------------


def test_bag_stores_and_returns_values() -> None:
    """Test raw set/get, membership, length and deletion."""
    bag = PropertyBag()
    bag[PropertyKey.INITIAL_TIME] = 0.5
    bag[PropertyKey.STOP_REASON] = "done"

    assert PropertyKey.INITIAL_TIME in bag
    assert bag[PropertyKey.INITIAL_TIME] == 0.5
    assert len(bag) == 2
    assert set(bag) == {PropertyKey.INITIAL_TIME, PropertyKey.STOP_REASON}

    del bag[PropertyKey.STOP_REASON]
    assert PropertyKey.STOP_REASON not in bag
    assert bag.get(PropertyKey.STOP_REASON, "fallback") == "fallback"

    bag.clear()
    assert len(bag) == 0


def test_missing_key_raises_property_not_found() -> None:
    """Test that reading an absent key names the key and is a KeyError."""
    bag = PropertyBag()
    with pytest.raises(PropertyNotFoundError, match="final_values"):
        bag[PropertyKey.FINAL_VALUES]
    with pytest.raises(KeyError):
        bag.vector(PropertyKey.FINAL_VALUES)


def test_string_keys_are_coerced() -> None:
    """Test that assigning with the key's string value stores a PropertyKey."""
    bag = PropertyBag()
    bag["next_step_size"] = 0.25  # type: ignore[index]
    assert bag.time(PropertyKey.NEXT_STEP_SIZE) == 0.25
    assert str(PropertyKey.NEXT_STEP_SIZE) == "next_step_size"


# -------------------------------------------------------------------
# Typed accessors
# -------------------------------------------------------------------


def test_typed_accessors_return_expected_types() -> None:
    """Test time/vector/flag/integer/text/scheme/history accessors."""
    bag = PropertyBag()
    bag[PropertyKey.FINAL_TIME] = np.float64(2.0)
    bag[PropertyKey.FINAL_VALUES] = np.array([1.0, 2.0])
    bag[PropertyKey.STEP_ACCEPTED] = np.bool_(True)
    bag[PropertyKey.SCHEME_ORDER] = np.int64(4)
    bag[PropertyKey.STOP_REASON] = "stop"
    bag[PropertyKey.SCHEME] = RK4
    bag[PropertyKey.CONTROLLER_HISTORY] = ControllerHistory()

    t = bag.time(PropertyKey.FINAL_TIME)
    assert isinstance(t, float)
    assert t == 2.0
    assert np.array_equal(bag.vector(PropertyKey.FINAL_VALUES), [1.0, 2.0])
    assert bag.flag(PropertyKey.STEP_ACCEPTED) is True
    assert bag.integer(PropertyKey.SCHEME_ORDER) == 4
    assert bag.text(PropertyKey.STOP_REASON) == "stop"
    assert bag.scheme() is RK4
    assert bag.history().previous_accepted is True


def test_vector_returns_stored_array_without_copy() -> None:
    """Test that vector() hands back the stored array object."""
    bag = PropertyBag()
    arr = np.zeros(3)
    bag[PropertyKey.INITIAL_VALUES] = arr
    assert bag.vector(PropertyKey.INITIAL_VALUES) is arr


@pytest.mark.parametrize(
    ("key", "value", "accessor"),
    [
        (PropertyKey.FINAL_TIME, "1.0", "time"),
        (PropertyKey.FINAL_TIME, True, "time"),
        (PropertyKey.FINAL_VALUES, [1.0, 2.0], "vector"),
        (PropertyKey.FINAL_VALUES, np.zeros((2, 2)), "vector"),
        (PropertyKey.STEP_ACCEPTED, 1, "flag"),
        (PropertyKey.SCHEME_ORDER, 4.0, "integer"),
        (PropertyKey.SCHEME_ORDER, False, "integer"),
        (PropertyKey.STOP_REASON, 3, "text"),
        (PropertyKey.SCHEME, "rk4", "scheme"),
        (PropertyKey.CONTROLLER_HISTORY, {}, "history"),
    ],
)
def test_typed_accessors_reject_mismatches(
    key: PropertyKey, value: object, accessor: str
) -> None:
    """Test that typed accessors raise PropertyTypeError naming the key."""
    bag = PropertyBag()
    bag[key] = value
    read = getattr(bag, accessor)
    with pytest.raises(PropertyTypeError, match=key.value):
        read(key)
    with pytest.raises(TypeError):
        read(key)
