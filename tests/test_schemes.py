# tests/test_schemes.py
"""Unit tests for schemes, tableaux and interpolants.

This module contains tests that verify:
- Every registered explicit tableau satisfies the Runge-Kutta order
  conditions up to min(order, 4), and so does its embedded weight row.
- Every registered additive tableau has ESDIRK structure and both parts
  satisfy the order conditions up to min(order, 3).
- Abscissae match the row sums of the coupling matrix.
- Scheme and tableau validation rejects malformed coefficients.
- Dense-output weights reduce to the step weights at theta = 1 and sum to
  theta everywhere.
"""

from __future__ import annotations

import numpy as np
import pytest

from ivp_engine.errors import ConfigurationError
from ivp_engine.interpolants import (
    AdditiveInterpolant,
    AdditiveStages,
    DormandPrinceInterpolant,
    LinearInterpolant,
    PolynomialInterpolant,
)
from ivp_engine.schemes import AdditiveTableau, ButcherTableau, Scheme
from ivp_engine.tableaux import (
    ARS121,
    DORMAND_PRINCE54,
    EXPLICIT_TABLEAUX,
    IMEX_TABLEAUX,
    KC54,
    RK4,
    STORMER_VERLET,
)


def _order_residuals(
    a: np.ndarray, b: np.ndarray, c: np.ndarray, order: int
) -> list[float]:
    """Return residuals of the rooted-tree order conditions up to ``order`` (<= 4)."""
    res = [float(b.sum() - 1.0)]
    if order >= 2:
        res.append(float(b @ c - 1.0 / 2.0))
    if order >= 3:
        res.append(float(b @ c**2 - 1.0 / 3.0))
        res.append(float(b @ (a @ c) - 1.0 / 6.0))
    if order >= 4:
        res.append(float(b @ c**3 - 1.0 / 4.0))
        res.append(float(b @ (c * (a @ c)) - 1.0 / 8.0))
        res.append(float(b @ (a @ c**2) - 1.0 / 12.0))
        res.append(float(b @ (a @ (a @ c)) - 1.0 / 24.0))
    return res


# -------------------------------------------------------------------
# Explicit tableaux
# -------------------------------------------------------------------


@pytest.mark.parametrize("key", sorted(EXPLICIT_TABLEAUX))
def test_explicit_tableau_order_conditions(key: str) -> None:
    """Test the propagated and embedded weights against the order conditions."""
    tab = EXPLICIT_TABLEAUX[key]
    assert tab.is_explicit
    c = tab.c_array
    assert np.allclose(c, tab.a.sum(axis=1), atol=1e-12)

    res = _order_residuals(tab.a, tab.b, c, min(tab.order, 4))
    assert np.allclose(res, 0.0, atol=1e-10), res

    if tab.b_embedded is not None:
        res_emb = _order_residuals(tab.a, tab.b_embedded, c, min(tab.embedded_order, 4))
        assert np.allclose(res_emb, 0.0, atol=1e-10), res_emb


def test_only_dormand_prince_is_fsal() -> None:
    """Test that the FSAL flag is set exactly where the last row equals b."""
    for tab in EXPLICIT_TABLEAUX.values():
        last_row_is_b = tab.stages > 1 and np.array_equal(tab.a[-1], tab.b)
        assert tab.fsal == (tab is DORMAND_PRINCE54)
        if tab.fsal:
            assert last_row_is_b
            assert tab.c_array[-1] == 1.0


def test_controller_order_uses_lower_of_the_pair() -> None:
    """Test has_embedded and controller_order for embedded and plain schemes."""
    assert not RK4.has_embedded
    assert RK4.controller_order == 4
    assert DORMAND_PRINCE54.has_embedded
    assert DORMAND_PRINCE54.controller_order == 4
    assert STORMER_VERLET.order == 2


# -------------------------------------------------------------------
# Additive tableaux
# -------------------------------------------------------------------


@pytest.mark.parametrize("key", sorted(IMEX_TABLEAUX))
def test_additive_tableau_structure_and_order(key: str) -> None:
    """Test ESDIRK structure and per-part order conditions."""
    tab = IMEX_TABLEAUX[key]
    imp, exp = tab.implicit, tab.explicit

    assert exp.is_explicit
    assert imp.a[0, 0] == 0.0
    assert np.all(np.diag(imp.a)[1:] == tab.gamma)
    assert tab.gamma > 0.0
    assert np.allclose(exp.c_array, imp.c_array, atol=1e-9)

    order = min(tab.order, 3)
    for part in (exp, imp):
        res = _order_residuals(part.a, part.b, tab.c, order)
        assert np.allclose(res, 0.0, atol=1e-7), (part.name, res)
        if tab.has_embedded:
            assert part.b_embedded is not None
            res_emb = _order_residuals(
                part.a, part.b_embedded, tab.c, min(tab.embedded_order, 3)
            )
            assert np.allclose(res_emb, 0.0, atol=1e-7), (part.name, res_emb)


def test_additive_embedding_requires_both_parts() -> None:
    """Test that an additive tableau embeds only when both parts embed."""
    assert KC54.has_embedded
    assert KC54.embedded_order == 4
    assert not ARS121.has_embedded
    assert not ARS121.fsal


def test_additive_tableau_rejects_non_esdirk_implicit_part() -> None:
    """Test that a varying diagonal is rejected."""
    explicit = ButcherTableau(
        name="e", order=1, a=[[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.5, 0.5, 0.0]], b=[0.0, 0.5, 0.5]
    )
    implicit = ButcherTableau(
        name="i", order=1, a=[[0.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.5, 0.5]], b=[0.0, 0.5, 0.5]
    )
    with pytest.raises(ConfigurationError, match="ESDIRK"):
        AdditiveTableau(name="bad", order=1, explicit=explicit, implicit=implicit)


def test_additive_tableau_rejects_stage_mismatch_and_implicit_explicit_part() -> None:
    """Test stage count and explicit-part checks."""
    with pytest.raises(ConfigurationError, match="same number of stages"):
        AdditiveTableau(
            name="bad",
            order=1,
            explicit=ButcherTableau(name="e", order=1, a=[[0.0]], b=[1.0]),
            implicit=ARS121.implicit,
        )
    with pytest.raises(ConfigurationError, match="strictly lower triangular"):
        AdditiveTableau(
            name="bad", order=1, explicit=ARS121.implicit, implicit=ARS121.implicit
        )


# -------------------------------------------------------------------
# Validation
# -------------------------------------------------------------------


@pytest.mark.parametrize(
    ("kwargs", "match"),
    [
        ({"a": [[0.0, 0.0]], "b": [1.0]}, "a must be square"),
        ({"a": [[0.0]], "b": [0.5, 0.5]}, "b must have shape"),
        ({"a": [[0.0]], "b": [1.0], "c": [0.0, 1.0]}, "c must have shape"),
        ({"a": [[np.nan]], "b": [1.0]}, "finite"),
        ({"a": [[0.0]], "b": [1.0], "b_embedded": [1.0]}, "given together"),
        ({"a": [[0.0]], "b": [1.0], "embedded_order": 1}, "given together"),
        ({"a": [[0.0]], "b": [1.0], "order": 0}, "positive integer"),
    ],
)
def test_butcher_tableau_validation(kwargs: dict[str, object], match: str) -> None:
    """Test that malformed tableaux raise ConfigurationError."""
    params: dict[str, object] = {"name": "t", "order": 1}
    params.update(kwargs)
    with pytest.raises(ConfigurationError, match=match):
        ButcherTableau(**params)  # type: ignore[arg-type]


def test_tableau_arrays_are_read_only() -> None:
    """Test that coefficient arrays cannot be modified in place."""
    with pytest.raises(ValueError, match="read-only"):
        RK4.b[0] = 0.0


def test_scheme_rejects_negative_embedded_order() -> None:
    """Test Scheme validation of embedded_order."""
    with pytest.raises(ConfigurationError, match="embedded_order"):
        Scheme(name="s", order=2, embedded_order=-1)


# -------------------------------------------------------------------
# Interpolants
# -------------------------------------------------------------------


def test_linear_interpolant_is_proportional_to_theta() -> None:
    """Test the linear increment between endpoints."""
    y0 = np.array([1.0, 2.0])
    y1 = np.array([3.0, 0.0])
    out = LinearInterpolant().evaluate(y0, y1, 0.25, 0.1, None)
    assert np.allclose(out, [0.5, -0.5])


@pytest.mark.parametrize(
    "interpolant",
    [DormandPrinceInterpolant(), KC54.interpolant.explicit],  # type: ignore[attr-defined]
)
def test_polynomial_weights_are_consistent(interpolant: PolynomialInterpolant) -> None:
    """Test b(0) = 0 and sum b(theta) = theta for continuous extensions."""
    assert np.allclose(interpolant.weights(0.0), 0.0)
    for theta in (0.2, 0.5, 0.9, 1.0):
        assert interpolant.weights(theta).sum() == pytest.approx(theta, abs=1e-9)


def test_dense_weights_at_one_match_step_weights() -> None:
    """Test that continuous extensions reproduce the step at theta = 1."""
    assert np.allclose(DormandPrinceInterpolant().weights(1.0), DORMAND_PRINCE54.b, atol=1e-14)
    kc = KC54.interpolant.explicit  # type: ignore[attr-defined]
    assert np.allclose(kc.weights(1.0), KC54.explicit.b, atol=1e-9)


def test_polynomial_interpolant_checks_stage_count() -> None:
    """Test that stage values with the wrong number of rows are rejected."""
    interp = PolynomialInterpolant([[1.0], [0.0]])
    with pytest.raises(ValueError, match="n_stages"):
        interp.evaluate(np.zeros(2), np.zeros(2), 0.5, 1.0, np.zeros((3, 2)))
    with pytest.raises(ValueError, match="coefficients"):
        PolynomialInterpolant([1.0, 2.0])


def test_additive_interpolant_sums_parts_and_checks_type() -> None:
    """Test that both parts contribute and plain arrays are rejected."""
    interp = AdditiveInterpolant(
        PolynomialInterpolant([[1.0], [0.0]]), PolynomialInterpolant([[0.0], [1.0]])
    )
    stages = AdditiveStages(
        explicit=np.array([[1.0], [5.0]]), implicit=np.array([[7.0], [2.0]])
    )
    out = interp.evaluate(np.zeros(1), np.zeros(1), 0.5, 2.0, stages)
    # 2.0 * (0.5 * 1.0) + 2.0 * (0.5 * 2.0)
    assert np.allclose(out, [3.0])
    with pytest.raises(TypeError, match="AdditiveStages"):
        interp.evaluate(np.zeros(1), np.zeros(1), 0.5, 2.0, np.zeros((2, 1)))
