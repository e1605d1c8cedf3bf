# src/ivp_engine/linalg.py
"""Iteration matrices and factorized linear solves for implicit stages.

Implicit Runge-Kutta stages solve systems of the form

    (I - scale * J) x = r,    scale = h * gamma,

with one factorization per step reused for every stage. Dense Jacobians use
LAPACK LU (``scipy.linalg.lu_factor``); sparse Jacobians use SuperLU
(``scipy.sparse.linalg.splu``). The public surface only deals in ndarrays,
sparse matrices and plain callables.
"""

from __future__ import annotations

import warnings
from collections.abc import Callable
from typing import TypeAlias, cast

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import LinAlgWarning, lu_factor, lu_solve
from scipy.sparse import csc_matrix, csr_matrix, identity, issparse
from scipy.sparse.linalg import splu

from .errors import LinearSolveFailure

DenseMatrix: TypeAlias = NDArray[np.floating]
Matrix: TypeAlias = DenseMatrix | csr_matrix | csc_matrix
SolveFunction = Callable[[NDArray[np.floating]], NDArray[np.floating]]

_SCALE_ERROR = "scale must be finite, got {scale!r}"
_SQUARE_ERROR = "matrix must be square, got shape {shape}"
_NON_FINITE_ERROR = "iteration matrix contains non-finite entries"
_SINGULAR_ERROR = "iteration matrix is singular (zero pivot at index {index})"
_SPARSE_SINGULAR_ERROR = "sparse iteration matrix is singular: {reason}"


def iteration_matrix(jacobian: Matrix, scale: float) -> Matrix:
    """
    Build I - scale * J.

    Args:
        jacobian: Square Jacobian J, dense or sparse.
        scale: Scalar multiplier (typically h * gamma).

    Raises:
        ValueError: If scale is not finite or J is not square.

    Returns:
        Iteration matrix of the same kind as J (CSC when sparse).
    """
    if not np.isfinite(scale):
        raise ValueError(_SCALE_ERROR.format(scale=scale))
    shape = cast("tuple[int, int]", jacobian.shape)
    if len(shape) != 2 or shape[0] != shape[1]:
        raise ValueError(_SQUARE_ERROR.format(shape=shape))

    n = shape[0]
    if issparse(jacobian):
        jac_csc = jacobian.tocsc()
        eye = identity(n, format="csc", dtype=float)
        return (eye - float(scale) * jac_csc).tocsc()

    jac_arr = np.asarray(jacobian, dtype=float)
    return np.eye(n, dtype=float) - float(scale) * jac_arr


def factorize(matrix: Matrix) -> SolveFunction:
    """
    Factorize a square matrix once and return a solver for it.

    Args:
        matrix: Dense ndarray or sparse matrix.

    Raises:
        LinearSolveFailure: On non-finite entries or an exactly singular
            matrix.

    Returns:
        Callable mapping a right-hand side r to x with matrix @ x = r.
    """
    if issparse(matrix):
        mat_csc = matrix.tocsc()
        if not np.all(np.isfinite(mat_csc.data)):
            raise LinearSolveFailure(_NON_FINITE_ERROR)
        try:
            lu_sparse = splu(mat_csc)
        except RuntimeError as exc:
            raise LinearSolveFailure(_SPARSE_SINGULAR_ERROR.format(reason=exc)) from exc

        def sparse_solver(rhs: NDArray[np.floating]) -> NDArray[np.floating]:
            return np.asarray(lu_sparse.solve(np.asarray(rhs, dtype=float)), dtype=float)

        return sparse_solver

    mat = np.asarray(matrix, dtype=float)
    if not np.all(np.isfinite(mat)):
        raise LinearSolveFailure(_NON_FINITE_ERROR)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", LinAlgWarning)
        lu, piv = lu_factor(mat, check_finite=False)
    pivots = np.diag(lu)
    zero = np.flatnonzero((pivots == 0.0) | ~np.isfinite(pivots))
    if zero.size:
        raise LinearSolveFailure(_SINGULAR_ERROR.format(index=int(zero[0])))

    def dense_solver(rhs: NDArray[np.floating]) -> NDArray[np.floating]:
        return np.asarray(lu_solve((lu, piv), np.asarray(rhs, dtype=float)), dtype=float)

    return dense_solver
