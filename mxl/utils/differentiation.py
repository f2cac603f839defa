"""
Numerical Differentiation Module

Finite-difference Jacobians used to cross-check the closed-form attribute
gradients of the mixing distributions. An analytic derivative that disagrees
with a central difference usually means an index-table error.

Functions:
    jacobian: Two-sided finite-difference Jacobian of a vector-valued function
"""

import logging
from typing import Optional, Tuple

import numpy as np

from mxl.core.config import get_config
from mxl.core.exceptions import (
    DimensionError, raise_dimension_error, raise_numeric_error, warn_numeric
)
from mxl.core.types import Matrix, Vector, VectorFunction

# Set up module-level logger
logger = logging.getLogger("mxl.utils.differentiation")


def _default_step(x: Vector) -> float:
    """Step size from the configuration, or scaled from machine precision."""
    configured = get_config("numerical", "finite_difference_step")
    if configured is not None:
        return float(configured)

    eps = np.finfo(float).eps
    # Central differences balance truncation and rounding error at eps**(1/3)
    scale = max(float(np.max(np.abs(x))) if x.size else 1.0, 1.0)
    return scale * eps ** (1.0 / 3.0)


def jacobian(func: VectorFunction,
             x: Vector,
             epsilon: Optional[float] = None,
             args: Tuple = ()) -> Matrix:
    """
    Compute the Jacobian matrix of a vector-valued function.

    For a function f(x) returning a vector of length m, the Jacobian is the
    m x n matrix whose (i, j) element is the partial derivative of f_i with
    respect to x_j, approximated by two-sided finite differences.

    Args:
        func: Function to differentiate, should take a vector and return a vector
        x: Point at which to compute the Jacobian
        epsilon: Step size. If None, the configured
            ``numerical.finite_difference_step`` is used, falling back to a
            value scaled from machine precision
        args: Additional arguments to pass to the function

    Returns:
        Jacobian matrix of shape (m, n)

    Raises:
        DimensionError: If x is not a 1D array or if func(x) is not a 1D array
        NumericError: If the function evaluation fails

    Examples:
        >>> import numpy as np
        >>> from mxl.utils.differentiation import jacobian
        >>> def f(x): return np.array([x[0]**2, x[0]*x[1], x[1]**2])
        >>> np.round(jacobian(f, np.array([1.0, 2.0])), 6)
        array([[2., 0.],
               [2., 1.],
               [0., 4.]])
    """
    x = np.asarray(x, dtype=float)

    if x.ndim != 1:
        raise_dimension_error(
            "Input must be a 1D vector",
            array_name="x",
            expected_shape="(n,)",
            actual_shape=x.shape
        )

    def func_wrapper(x_vec: Vector) -> Vector:
        try:
            result = np.asarray(func(x_vec, *args), dtype=float)
        except DimensionError:
            raise
        except Exception as e:
            raise_numeric_error(
                f"Function evaluation failed in jacobian: {str(e)}",
                operation="jacobian",
                values=x_vec.copy(),
                error_type="function_evaluation_error"
            )
        if result.ndim != 1:
            raise_dimension_error(
                "Function must return a 1D vector",
                array_name="func(x)",
                expected_shape="(m,)",
                actual_shape=result.shape
            )
        return result

    if epsilon is None:
        epsilon = _default_step(x)

    m = func_wrapper(x).shape[0]
    n = x.shape[0]
    jac = np.zeros((m, n), dtype=float)

    x_plus = x.copy()
    x_minus = x.copy()

    for j in range(n):
        x_plus[j] = x[j] + epsilon
        x_minus[j] = x[j] - epsilon

        jac[:, j] = (func_wrapper(x_plus) - func_wrapper(x_minus)) / (2.0 * epsilon)

        if not np.all(np.isfinite(jac[:, j])):
            warn_numeric(
                f"Non-finite Jacobian elements detected in column {j}",
                operation="jacobian",
                issue="non_finite_jacobian",
                value=jac[:, j]
            )

        x_plus[j] = x[j]
        x_minus[j] = x[j]

    logger.debug(f"Computed {m}x{n} finite-difference Jacobian with step {epsilon:.3e}")
    return jac
