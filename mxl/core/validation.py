# mxl/core/validation.py

"""
Validation utilities for the MXL Toolbox.

Shape and value checks shared by the distribution and matrix modules. Each
validator returns the (converted) input on success and raises one of the
toolbox exceptions with the offending array name and shapes on failure, so
no caller ever receives a silently truncated or padded array.
"""

import numbers
from typing import Any, Optional

import numpy as np

from mxl.core.exceptions import (
    ConfigurationError, raise_dimension_error, raise_parameter_error
)
from mxl.core.types import Matrix, Vector


def validate_vector(
    vector: Any,
    expected_length: Optional[int] = None,
    vector_name: str = "vector",
    allow_none: bool = False
) -> Vector:
    """Validate that an array is a float vector with the expected length.

    Column and row vectors are flattened to 1D.

    Args:
        vector: Array-like to validate
        expected_length: Expected length, or None for any
        vector_name: Name of the vector for error messages
        allow_none: Whether to allow None as a valid input

    Returns:
        np.ndarray: The validated vector as a float64 array

    Raises:
        TypeError: If vector is None and allow_none is False
        DimensionError: If vector is not 1-dimensional or has wrong length
    """
    if vector is None:
        if allow_none:
            return None
        raise TypeError(f"{vector_name} cannot be None")

    vector = np.asarray(vector, dtype=np.float64)

    # Handle both 1D arrays and column/row vectors
    if vector.ndim == 2:
        if vector.shape[0] == 1 or vector.shape[1] == 1:
            vector = vector.ravel()
        else:
            raise_dimension_error(
                f"{vector_name} must be 1-dimensional or a column/row vector, got shape {vector.shape}",
                array_name=vector_name,
                expected_shape="1D vector",
                actual_shape=vector.shape
            )
    elif vector.ndim != 1:
        raise_dimension_error(
            f"{vector_name} must be 1-dimensional, got {vector.ndim} dimensions",
            array_name=vector_name,
            expected_shape="1D vector",
            actual_shape=vector.shape
        )

    if expected_length is not None and len(vector) != expected_length:
        raise_dimension_error(
            f"{vector_name} has length {len(vector)}, expected {expected_length}",
            array_name=vector_name,
            expected_shape=f"({expected_length},)",
            actual_shape=vector.shape
        )

    return vector


def validate_square_matrix(
    matrix: Any,
    expected_size: Optional[int] = None,
    matrix_name: str = "matrix"
) -> Matrix:
    """Validate that a matrix is square, optionally of a given size.

    Args:
        matrix: Array-like to validate
        expected_size: Expected number of rows and columns, or None for any
        matrix_name: Name of the matrix for error messages

    Returns:
        np.ndarray: The validated matrix as a float64 array

    Raises:
        DimensionError: If matrix is not square or has the wrong size
    """
    matrix = np.asarray(matrix, dtype=np.float64)

    if matrix.ndim != 2:
        raise_dimension_error(
            f"{matrix_name} must be 2-dimensional, got {matrix.ndim} dimensions",
            array_name=matrix_name,
            expected_shape="square matrix",
            actual_shape=matrix.shape
        )

    if matrix.shape[0] != matrix.shape[1]:
        raise_dimension_error(
            f"{matrix_name} must be square, got shape {matrix.shape}",
            array_name=matrix_name,
            expected_shape=f"({matrix.shape[0]}, {matrix.shape[0]})",
            actual_shape=matrix.shape
        )

    if expected_size is not None and matrix.shape[0] != expected_size:
        raise_dimension_error(
            f"{matrix_name} has shape {matrix.shape}, expected ({expected_size}, {expected_size})",
            array_name=matrix_name,
            expected_shape=(expected_size, expected_size),
            actual_shape=matrix.shape
        )

    return matrix


def validate_attribute_count(value: Any, setting: str = "num_attributes") -> int:
    """Validate the attribute dimensionality of a distribution.

    Args:
        value: Candidate attribute count
        setting: Name of the setting for error messages

    Returns:
        int: The attribute count

    Raises:
        ConfigurationError: If value is not an integer >= 1
    """
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, numbers.Integral):
        raise ConfigurationError(
            f"{setting} must be an integer, got {type(value).__name__}",
            setting=setting,
            value=value,
            issue="not an integer"
        )
    if value < 1:
        raise ConfigurationError(
            f"{setting} must be at least 1, got {value}",
            setting=setting,
            value=value,
            issue="dimension must be positive"
        )
    return int(value)


def validate_index(value: Any, upper: int, param_name: str) -> int:
    """Validate that an index lies in ``[0, upper)``.

    Raises:
        ParameterError: If value is not an integer in range
    """
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, numbers.Integral):
        raise_parameter_error(
            f"{param_name} must be an integer, got {type(value).__name__}",
            param_name=param_name,
            param_value=value,
            constraint="integer index"
        )
    if not 0 <= value < upper:
        raise_parameter_error(
            f"{param_name} {value} is out of range",
            param_name=param_name,
            param_value=value,
            constraint=f"0 <= {param_name} < {upper}"
        )
    return int(value)
