# mxl/core/types.py

"""
Core type annotations for the MXL Toolbox.

Type aliases used across the toolbox to document what an ``np.ndarray``
argument is expected to hold. They carry no runtime checks; shape checks are
done by :mod:`mxl.core.validation`.
"""

from typing import Any, Callable, Dict, Literal, Optional, Sequence, Tuple, Union

import numpy as np

# NumPy array type aliases
Vector = np.ndarray  # 1D array
Matrix = np.ndarray  # 2D array

# Specialized array types
ParameterVector = np.ndarray  # Flat parameter vector: mean followed by factor entries
TriangularMatrix = np.ndarray  # Upper triangular matrix
CovarianceMatrix = np.ndarray  # Symmetric positive semi-definite matrix
IndexTable = np.ndarray  # Read-only integer lookup table

# Random number sources
NoiseSource = Callable[[], float]  # Returns one standard-normal scalar per call
RandomState = Optional[Union[int, np.random.Generator]]

# Dimension specification: a single attribute count or a sequence whose
# first entry is the attribute count
AttributeDimensions = Union[int, Sequence[int]]

# Function types for numerical differentiation
VectorFunction = Callable[..., np.ndarray]

# Configuration types
ConfigDict = Dict[str, Dict[str, Any]]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# (row, column) position inside a factor matrix
MatrixPosition = Tuple[int, int]
