"""
MXL Toolbox Utilities Module

Triangular-matrix operations and numerical differentiation used by the
mixing distributions.
"""

import logging

# Set up module-level logger
logger = logging.getLogger("mxl.utils")

from .matrix_ops import (
    upper_triangular_layout,
    assemble_upper_factor,
    triu2vec,
    vec2triu,
    is_upper_triangular,
    solve_upper_triangular
)

from .differentiation import jacobian

__all__ = [
    # Matrix operations
    'upper_triangular_layout',
    'assemble_upper_factor',
    'triu2vec',
    'vec2triu',
    'is_upper_triangular',
    'solve_upper_triangular',

    # Numerical differentiation
    'jacobian'
]
