# tests/test_linalg.py
"""Unit tests for ivp_engine.linalg.

This module verifies:
- iteration_matrix builds I - scale * J for dense and sparse Jacobians.
- iteration_matrix rejects non-square inputs and non-finite scales.
- factorize solves dense and sparse systems and reuses one factorization.
- factorize raises LinearSolveFailure on singular or non-finite matrices.
"""

from __future__ import annotations

import numpy as np
import pytest
from scipy.sparse import csr_matrix, issparse

from ivp_engine.errors import LinearSolveFailure
from ivp_engine.linalg import factorize, iteration_matrix


def _as_dense(mat: object) -> np.ndarray:
    if hasattr(mat, "toarray"):
        return np.asarray(mat.toarray())
    return np.asarray(mat)


# -------------------------------------------------------------------
# Iteration matrix
# -------------------------------------------------------------------


@pytest.mark.parametrize("sparse", [False, True])
def test_iteration_matrix_values(*, sparse: bool) -> None:
    """Test I - scale * J on both storage kinds."""
    jac = np.array([[1.0, 2.0], [0.0, -3.0]])
    mat = iteration_matrix(csr_matrix(jac) if sparse else jac, 0.5)
    assert issparse(mat) == sparse
    assert np.allclose(_as_dense(mat), [[0.5, -1.0], [0.0, 2.5]])


def test_iteration_matrix_validation() -> None:
    """Test shape and scale checks."""
    with pytest.raises(ValueError, match="square"):
        iteration_matrix(np.ones((2, 3)), 1.0)
    with pytest.raises(ValueError, match="finite"):
        iteration_matrix(np.eye(2), np.nan)


# -------------------------------------------------------------------
# Factorized solves
# -------------------------------------------------------------------


@pytest.mark.parametrize("sparse", [False, True])
def test_factorize_solves_repeatedly(*, sparse: bool) -> None:
    """Test one factorization against several right-hand sides."""
    rng = np.random.default_rng(7)
    dense = np.eye(5) * 4.0 + rng.uniform(-1.0, 1.0, size=(5, 5))
    solve = factorize(csr_matrix(dense) if sparse else dense)
    for _ in range(3):
        rhs = rng.normal(size=5)
        assert np.allclose(dense @ solve(rhs), rhs, atol=1e-12)


@pytest.mark.parametrize("sparse", [False, True])
def test_factorize_singular_matrix(*, sparse: bool) -> None:
    """Test that an exactly singular matrix raises LinearSolveFailure."""
    dense = np.array([[1.0, 2.0], [2.0, 4.0]])
    with pytest.raises(LinearSolveFailure, match="singular"):
        factorize(csr_matrix(dense) if sparse else dense)


@pytest.mark.parametrize("sparse", [False, True])
def test_factorize_non_finite_matrix(*, sparse: bool) -> None:
    """Test that NaN entries are reported before factorization."""
    dense = np.array([[1.0, np.nan], [0.0, 1.0]])
    with pytest.raises(LinearSolveFailure, match="non-finite"):
        factorize(csr_matrix(dense) if sparse else dense)
