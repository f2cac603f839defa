'''
Custom exception classes for the MXL Toolbox.

This module defines the exception hierarchy used throughout the MXL Toolbox.
Every exception carries a primary message plus optional details and a context
dictionary, so a caller inside an estimation loop can see which parameter,
array or matrix entry triggered the failure without re-running the draw.

The module performs no recovery. Errors propagate to the caller, which owns
the retry or abort policy for the estimation run.
'''

from typing import Any, Dict, Optional, Tuple, Union
import inspect
import warnings
import numpy as np
from pathlib import Path


class MXLError(Exception):
    """Base exception class for all MXL Toolbox errors.

    Attributes:
        message: The error message
        details: Additional details about the error
        context: Dictionary containing contextual information about the error
    """

    def __init__(self,
                 message: str,
                 details: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the MXLError.

        Args:
            message: The primary error message
            details: Additional details about the error
            context: Dictionary containing contextual information about the error
        """
        self.message = message
        self.details = details
        self.context = context or {}

        full_message = message
        if details:
            full_message += f"\n\nDetails: {details}"

        if context:
            context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
            full_message += f"\n\nContext:\n{context_str}"

        # Caller information, skipping the helper frames in this module
        frame = inspect.currentframe()
        if frame:
            try:
                frame = frame.f_back
                while frame and frame.f_code.co_filename == __file__:
                    frame = frame.f_back
                if frame:
                    caller_info = inspect.getframeinfo(frame)
                    full_message += f"\n\nLocation: {Path(caller_info.filename).name}:{caller_info.lineno}"
            finally:
                del frame  # Avoid reference cycles

        super().__init__(full_message)


class ParameterError(MXLError):
    """Exception raised for errors related to distribution parameters.

    Attributes:
        param_name: The name of the parameter that caused the error
        param_value: The invalid parameter value
        constraint: Description of the constraint that was violated
    """

    def __init__(self,
                 message: str,
                 param_name: Optional[str] = None,
                 param_value: Optional[Any] = None,
                 constraint: Optional[str] = None,
                 details: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None) -> None:
        self.param_name = param_name
        self.param_value = param_value
        self.constraint = constraint

        context_dict = context or {}
        if param_name:
            context_dict["Parameter"] = param_name
        if param_value is not None:
            context_dict["Value"] = param_value
        if constraint:
            context_dict["Constraint"] = constraint

        super().__init__(message, details, context_dict)


class DimensionError(MXLError):
    """Exception raised when an array does not have the expected shape.

    Attributes:
        array_name: The name of the array that caused the error
        expected_shape: The expected shape of the array
        actual_shape: The actual shape of the array
    """

    def __init__(self,
                 message: str,
                 array_name: Optional[str] = None,
                 expected_shape: Optional[Union[Tuple[int, ...], str]] = None,
                 actual_shape: Optional[Tuple[int, ...]] = None,
                 details: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None) -> None:
        self.array_name = array_name
        self.expected_shape = expected_shape
        self.actual_shape = actual_shape

        context_dict = context or {}
        if array_name:
            context_dict["Array"] = array_name
        if expected_shape is not None:
            context_dict["Expected Shape"] = expected_shape
        if actual_shape is not None:
            context_dict["Actual Shape"] = actual_shape

        super().__init__(message, details, context_dict)


class NumericError(MXLError):
    """Exception raised for numerical computation errors.

    Attributes:
        operation: The operation that caused the error
        values: The values that caused the error
        error_type: The type of numerical error (e.g., "singular", "non_finite")
    """

    def __init__(self,
                 message: str,
                 operation: Optional[str] = None,
                 values: Optional[Any] = None,
                 error_type: Optional[str] = None,
                 details: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None) -> None:
        self.operation = operation
        self.values = values
        self.error_type = error_type

        context_dict = context or {}
        if operation:
            context_dict["Operation"] = operation
        if values is not None:
            if isinstance(values, np.ndarray) and values.size > 10:
                # Truncate large arrays for readability
                context_dict["Values"] = f"Array with shape {values.shape}"
            else:
                context_dict["Values"] = values
        if error_type:
            context_dict["Error Type"] = error_type

        super().__init__(message, details, context_dict)


class DegenerateFactorError(NumericError):
    """Exception raised when a mixing factor has a (near) zero diagonal entry.

    The triangular system used to recover the standard-normal noise behind a
    sample has no unique solution in that case. The caller decides whether to
    retry with different parameters or abort the estimation run.

    Attributes:
        diagonal: The diagonal of the offending factor matrix
        tolerance: The tolerance the diagonal was compared against
        index: Position of the first offending diagonal entry
    """

    def __init__(self,
                 message: str,
                 diagonal: Optional[np.ndarray] = None,
                 tolerance: Optional[float] = None,
                 index: Optional[int] = None,
                 details: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None) -> None:
        self.diagonal = diagonal
        self.tolerance = tolerance
        self.index = index

        context_dict = context or {}
        if tolerance is not None:
            context_dict["Tolerance"] = tolerance
        if index is not None:
            context_dict["Diagonal Index"] = index

        super().__init__(message,
                         operation="triangular_solve",
                         values=diagonal,
                         error_type="singular_factor",
                         details=details,
                         context=context_dict)


class ConfigurationError(MXLError):
    """Exception raised for errors in configuration.

    Used both for the toolbox settings and for invalid distribution
    configuration such as a non-positive attribute count.

    Attributes:
        config_file: The configuration file path
        setting: The setting that caused the error
        value: The invalid setting value
        issue: Description of the issue with the configuration
    """

    def __init__(self,
                 message: str,
                 config_file: Optional[Union[str, Path]] = None,
                 setting: Optional[str] = None,
                 value: Optional[Any] = None,
                 issue: Optional[str] = None,
                 details: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None) -> None:
        self.config_file = config_file
        self.setting = setting
        self.value = value
        self.issue = issue

        context_dict = context or {}
        if config_file:
            context_dict["Config File"] = str(config_file)
        if setting:
            context_dict["Setting"] = setting
        if value is not None:
            context_dict["Value"] = value
        if issue:
            context_dict["Issue"] = issue

        super().__init__(message, details, context_dict)


class StaleCacheError(MXLError):
    """Exception raised when the draw pipeline is used out of order.

    Raised when a gradient query is made before the noise for the current
    sample has been recovered, or when a draw is attempted before the factor
    has been assembled for the current parameters.

    Attributes:
        operation: The operation that was attempted
        state: Description of the missing or stale state
    """

    def __init__(self,
                 message: str,
                 operation: Optional[str] = None,
                 state: Optional[str] = None,
                 details: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None) -> None:
        self.operation = operation
        self.state = state

        context_dict = context or {}
        if operation:
            context_dict["Operation"] = operation
        if state:
            context_dict["State"] = state

        super().__init__(message, details, context_dict)


class MXLWarning(Warning):
    """Base warning class for all MXL Toolbox warnings.

    Attributes:
        message: The warning message
        details: Additional details about the warning
        context: Dictionary containing contextual information about the warning
    """

    def __init__(self,
                 message: str,
                 details: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details
        self.context = context or {}

        full_message = message
        if details:
            full_message += f"\n\nDetails: {details}"

        if context:
            context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
            full_message += f"\n\nContext:\n{context_str}"

        super().__init__(full_message)


class NumericWarning(MXLWarning):
    """Warning raised for numerical issues that do not stop the computation.

    Attributes:
        operation: The operation that triggered the warning
        issue: Description of the numerical issue
        value: The value that triggered the warning
    """

    def __init__(self,
                 message: str,
                 operation: Optional[str] = None,
                 issue: Optional[str] = None,
                 value: Optional[Any] = None,
                 details: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None) -> None:
        self.operation = operation
        self.issue = issue
        self.value = value

        context_dict = context or {}
        if operation:
            context_dict["Operation"] = operation
        if issue:
            context_dict["Issue"] = issue
        if value is not None:
            context_dict["Value"] = value

        super().__init__(message, details, context_dict)


# Helper functions for raising exceptions with consistent formatting

def raise_parameter_error(message: str,
                          param_name: Optional[str] = None,
                          param_value: Optional[Any] = None,
                          constraint: Optional[str] = None,
                          details: Optional[str] = None,
                          context: Optional[Dict[str, Any]] = None) -> None:
    """Raise a ParameterError with consistent formatting.

    Raises:
        ParameterError: The formatted parameter error
    """
    raise ParameterError(message, param_name, param_value, constraint, details, context)


def raise_dimension_error(message: str,
                          array_name: Optional[str] = None,
                          expected_shape: Optional[Union[Tuple[int, ...], str]] = None,
                          actual_shape: Optional[Tuple[int, ...]] = None,
                          details: Optional[str] = None,
                          context: Optional[Dict[str, Any]] = None) -> None:
    """Raise a DimensionError with consistent formatting.

    Raises:
        DimensionError: The formatted dimension error
    """
    raise DimensionError(message, array_name, expected_shape, actual_shape, details, context)


def raise_numeric_error(message: str,
                        operation: Optional[str] = None,
                        values: Optional[Any] = None,
                        error_type: Optional[str] = None,
                        details: Optional[str] = None,
                        context: Optional[Dict[str, Any]] = None) -> None:
    """Raise a NumericError with consistent formatting.

    Raises:
        NumericError: The formatted numeric error
    """
    raise NumericError(message, operation, values, error_type, details, context)


def warn_numeric(message: str,
                 operation: Optional[str] = None,
                 issue: Optional[str] = None,
                 value: Optional[Any] = None,
                 details: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None) -> None:
    """Issue a NumericWarning with consistent formatting."""
    warnings.warn(
        NumericWarning(message, operation, issue, value, details, context),
        stacklevel=2
    )
