# mxl/models/distributions/__init__.py
"""
MXL Toolbox Mixing Distributions Module

Distributions of the random coefficients in a mixed logit discrete choice
model. Each distribution maps a flat parameter vector to draws of the
coefficient vector and supplies the analytic derivative of a draw with
respect to the parameters, holding the underlying noise fixed.

Key components:
- Gaussian mixing distribution with an upper triangular mixing factor
"""

import logging

# Set up module-level logger
logger = logging.getLogger("mxl.models.distributions")

from .gaussian import (
    GaussianDistribution,
    GaussianLayout,
    GaussianWorkingState,
    build_layout,
    assemble_factor,
    draw_sample,
    draw_sample_from_noise,
    precompute_for_sample,
    jacobian_entry,
    attribute_gradient,
    pack_parameters,
    unpack_parameters
)

__all__ = [
    'GaussianDistribution',
    'GaussianLayout',
    'GaussianWorkingState',
    'build_layout',
    'assemble_factor',
    'draw_sample',
    'draw_sample_from_noise',
    'precompute_for_sample',
    'jacobian_entry',
    'attribute_gradient',
    'pack_parameters',
    'unpack_parameters'
]
