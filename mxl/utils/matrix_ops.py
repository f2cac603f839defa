# mxl/utils/matrix_ops.py
"""
Matrix Operations Module

Triangular-matrix utilities for the MXL Toolbox. The mixing factor of the
Gaussian distribution is upper triangular and its distinct entries are
packed row by row (row r holds columns r..n-1) behind the mean in a flat
parameter vector. This module owns that packing: the precomputed index
tables mapping a flat parameter to its factor position, the assembly of the
dense factor, and the back substitution used to recover noise from a sample.

The index-table and assembly loops are compiled with Numba.

Functions:
    upper_triangular_layout: Row and row-start tables for packed factor entries
    assemble_upper_factor: Dense upper triangular factor from a flat vector
    triu2vec: Row-major packing of the upper triangle of a square matrix
    vec2triu: Inverse of triu2vec
    is_upper_triangular: Check that no entry below the diagonal is nonzero
    solve_upper_triangular: Back substitution with a degenerate-diagonal check
"""

import logging
from typing import Tuple

import numpy as np
from numba import jit
from scipy import linalg

from mxl.core.exceptions import (
    DegenerateFactorError, raise_dimension_error, raise_numeric_error, warn_numeric
)
from mxl.core.types import IndexTable, Matrix, TriangularMatrix, Vector

# Set up module-level logger
logger = logging.getLogger("mxl.utils.matrix_ops")


@jit(nopython=True, cache=True)
def _upper_triangular_layout_numba(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Numba-accelerated construction of the packed upper-triangle index tables.

    Args:
        n: Dimension of the factor matrix

    Returns:
        Tuple of (row index, row start) tables of length n + n(n+1)/2
    """
    num_entries = n * (n + 1) // 2
    num_parameters = n + num_entries
    rows = np.zeros(num_parameters, dtype=np.int64)
    starts = np.zeros(num_parameters, dtype=np.int64)

    # Row r holds n - r entries; limit is the packed offset where row r + 1 begins
    limit = n
    add = n - 1
    row = 0
    start = 0
    for i in range(num_entries):
        if i == limit:
            limit += add
            add -= 1
            row += 1
            start = i
        rows[n + i] = row
        starts[n + i] = n + start

    return rows, starts


@jit(nopython=True, cache=True)
def _assemble_upper_factor_numba(parameters: np.ndarray, rows: np.ndarray,
                                 starts: np.ndarray, n: int) -> np.ndarray:
    """
    Numba-accelerated assembly of the dense upper triangular factor.

    Args:
        parameters: Flat parameter vector of length n + n(n+1)/2
        rows: Row index table
        starts: Row start table
        n: Dimension of the factor matrix

    Returns:
        Dense n x n upper triangular matrix
    """
    factor = np.zeros((n, n), dtype=np.float64)
    for p in range(n, parameters.shape[0]):
        row = rows[p]
        factor[row, row + p - starts[p]] = parameters[p]
    return factor


def upper_triangular_layout(n: int) -> Tuple[IndexTable, IndexTable]:
    """
    Build the lookup tables for a packed upper triangular factor.

    The flat vector has ``n`` leading entries (the mean) followed by the
    ``n(n+1)/2`` upper-triangle entries in row-major order. For each packed
    index ``p >= n`` the first table holds the factor row and the second the
    flat index where that row begins, so the column is
    ``rows[p] + (p - starts[p])``. Entries below ``n`` are zero.

    Args:
        n: Dimension of the factor matrix (must be >= 1)

    Returns:
        Tuple of (rows, starts) integer arrays of length n(n+3)/2

    Examples:
        >>> from mxl.utils.matrix_ops import upper_triangular_layout
        >>> rows, starts = upper_triangular_layout(2)
        >>> rows
        array([0, 0, 0, 0, 1])
        >>> starts
        array([0, 0, 2, 2, 4])
    """
    if n < 1:
        raise ValueError(f"Factor dimension must be at least 1, got {n}")
    rows, starts = _upper_triangular_layout_numba(int(n))
    logger.debug(f"Built packed upper-triangle layout for n={n}")
    return rows, starts


def assemble_upper_factor(parameters: Vector, rows: IndexTable,
                          starts: IndexTable, n: int) -> TriangularMatrix:
    """
    Assemble the dense upper triangular factor from a flat parameter vector.

    Args:
        parameters: Flat parameter vector of length n(n+3)/2
        rows: Row index table from :func:`upper_triangular_layout`
        starts: Row start table from :func:`upper_triangular_layout`
        n: Dimension of the factor matrix

    Returns:
        Dense n x n matrix with zeros below the diagonal

    Raises:
        DimensionError: If the parameter vector length does not match the tables
    """
    parameters = np.ascontiguousarray(parameters, dtype=np.float64)
    if parameters.ndim != 1 or parameters.shape[0] != rows.shape[0]:
        raise_dimension_error(
            f"Parameter vector must have length {rows.shape[0]} for n = {n}",
            array_name="parameters",
            expected_shape=(rows.shape[0],),
            actual_shape=parameters.shape
        )
    return _assemble_upper_factor_numba(parameters, rows, starts, int(n))


def triu2vec(matrix: Matrix) -> Vector:
    """
    Pack the upper triangle of a square matrix row by row.

    Args:
        matrix: Square matrix

    Returns:
        Vector of length n(n+1)/2 holding rows 0..n-1, columns r..n-1

    Raises:
        DimensionError: If the input matrix is not square

    Examples:
        >>> import numpy as np
        >>> from mxl.utils.matrix_ops import triu2vec
        >>> triu2vec(np.array([[1, 2, 3], [0, 4, 5], [0, 0, 6]]))
        array([1, 2, 3, 4, 5, 6])
    """
    matrix = np.asarray(matrix)

    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise_dimension_error(
            "Input must be a square matrix",
            array_name="matrix",
            expected_shape="(n, n)",
            actual_shape=matrix.shape
        )

    # np.triu_indices enumerates row-major, matching the packed layout
    return matrix[np.triu_indices(matrix.shape[0])]


def vec2triu(vector: Vector, n: int) -> TriangularMatrix:
    """
    Unpack a row-major upper-triangle vector into an n x n matrix.

    Args:
        vector: Vector of length n(n+1)/2
        n: Dimension of the resulting matrix

    Returns:
        Upper triangular matrix

    Raises:
        DimensionError: If the vector length doesn't match n(n+1)/2
    """
    vector = np.asarray(vector)

    if vector.ndim != 1:
        raise_dimension_error(
            "Input must be a 1D vector",
            array_name="vector",
            expected_shape="(n(n+1)/2,)",
            actual_shape=vector.shape
        )

    expected_length = n * (n + 1) // 2
    if vector.shape[0] != expected_length:
        raise_dimension_error(
            f"Vector length must be n(n+1)/2 = {expected_length} for n = {n}",
            array_name="vector",
            expected_shape=(expected_length,),
            actual_shape=vector.shape
        )

    result = np.zeros((n, n), dtype=np.result_type(vector.dtype, np.float64))
    result[np.triu_indices(n)] = vector
    return result


def is_upper_triangular(matrix: Matrix, tol: float = 0.0) -> bool:
    """
    Check whether every entry below the diagonal is within ``tol`` of zero.

    Args:
        matrix: Square matrix to check
        tol: Absolute tolerance for sub-diagonal entries

    Returns:
        True if the matrix is upper triangular
    """
    matrix = np.asarray(matrix)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        return False
    return bool(np.all(np.abs(np.tril(matrix, k=-1)) <= tol))


def solve_upper_triangular(matrix: TriangularMatrix, rhs: Vector,
                           tolerance: float = 0.0,
                           ill_conditioning_ratio: float = 0.0) -> Vector:
    """
    Solve ``matrix @ x = rhs`` for an upper triangular matrix.

    Args:
        matrix: Upper triangular n x n matrix
        rhs: Right-hand side vector of length n
        tolerance: A diagonal entry with absolute value at or below this is
            treated as zero
        ill_conditioning_ratio: Issue a NumericWarning when the ratio of the
            smallest to the largest absolute diagonal entry falls below this

    Returns:
        Solution vector of length n

    Raises:
        DimensionError: If shapes are incompatible
        DegenerateFactorError: If the matrix has a (near) zero diagonal entry
        NumericError: If the solution is not finite
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    rhs = np.asarray(rhs, dtype=np.float64)

    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise_dimension_error(
            "Input must be a square matrix",
            array_name="matrix",
            expected_shape="(n, n)",
            actual_shape=matrix.shape
        )
    if rhs.shape != (matrix.shape[0],):
        raise_dimension_error(
            f"Right-hand side must have length {matrix.shape[0]}",
            array_name="rhs",
            expected_shape=(matrix.shape[0],),
            actual_shape=rhs.shape
        )

    diagonal = np.abs(np.diag(matrix))
    degenerate = np.flatnonzero(~(diagonal > tolerance))
    if degenerate.size:
        index = int(degenerate[0])
        raise DegenerateFactorError(
            f"Triangular factor is singular: |diagonal[{index}]| = {diagonal[index]} "
            f"is not above tolerance {tolerance}",
            diagonal=np.diag(matrix).copy(),
            tolerance=tolerance,
            index=index
        )

    ratio = diagonal.min() / diagonal.max()
    if ratio < ill_conditioning_ratio:
        warn_numeric(
            f"Triangular factor is ill-conditioned (diagonal ratio {ratio:.3e})",
            operation="triangular_solve",
            issue="ill_conditioned_factor",
            value=ratio
        )

    try:
        # Non-finite inputs are reported below as a NumericError
        solution = linalg.solve_triangular(matrix, rhs, lower=False, check_finite=False)
    except linalg.LinAlgError as e:
        raise DegenerateFactorError(
            f"Triangular solve failed: {e}",
            diagonal=np.diag(matrix).copy(),
            tolerance=tolerance
        ) from e

    if not np.all(np.isfinite(solution)):
        raise_numeric_error(
            "Triangular solve produced non-finite values",
            operation="triangular_solve",
            values=solution,
            error_type="non_finite"
        )

    return solution
