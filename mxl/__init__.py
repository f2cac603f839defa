# mxl/__init__.py
"""
MXL Toolbox - mixing distributions for simulated mixed logit estimation

Building blocks for simulation-based estimation of mixed logit discrete
choice models. The estimation loop owns the parameter vector and, for each
simulation draw, asks a mixing distribution for a random coefficient vector
and for the derivative of that vector with respect to the distribution
parameters.

The toolbox provides:
- A Gaussian mixing distribution parameterised by a mean and an upper
  triangular mixing factor packed into one flat parameter vector
- Closed-form attribute gradients and a finite-difference cross-check
- Configuration of numerical tolerances and logging
"""

import logging
from typing import Union

from .version import __version__, __author__, __license__

# Set up package-wide logger; handlers are attached by the configuration manager
logger = logging.getLogger("mxl")
logger.addHandler(logging.NullHandler())

from . import core
from . import models
from . import utils

from .core.config import get_config, set_config, reset_config
from .core.exceptions import (
    MXLError,
    ParameterError,
    DimensionError,
    NumericError,
    DegenerateFactorError,
    ConfigurationError,
    StaleCacheError,
    NumericWarning
)
from .models.distributions import (
    GaussianDistribution,
    GaussianLayout,
    build_layout,
    assemble_factor,
    draw_sample,
    precompute_for_sample,
    jacobian_entry,
    attribute_gradient,
    pack_parameters,
    unpack_parameters
)


def get_version() -> str:
    """
    Return the version of the MXL Toolbox.

    Returns:
        str: Version string in format MAJOR.MINOR.PATCH
    """
    return __version__


def set_log_level(level: Union[str, int]) -> None:
    """
    Set the logging level for the MXL Toolbox.

    Args:
        level: Logging level, either as string ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
              or as an integer constant from the logging module
    """
    if isinstance(level, int):
        level = logging.getLevelName(level)
    set_config("logging", "log_level", str(level).upper())
    logger.info(f"Log level set to {level}")


__all__ = [
    # Subpackages
    'core',
    'models',
    'utils',

    # Distribution
    'GaussianDistribution',
    'GaussianLayout',
    'build_layout',
    'assemble_factor',
    'draw_sample',
    'precompute_for_sample',
    'jacobian_entry',
    'attribute_gradient',
    'pack_parameters',
    'unpack_parameters',

    # Exceptions
    'MXLError',
    'ParameterError',
    'DimensionError',
    'NumericError',
    'DegenerateFactorError',
    'ConfigurationError',
    'StaleCacheError',
    'NumericWarning',

    # Configuration
    'get_config',
    'set_config',
    'reset_config',

    # Public functions
    'get_version',
    'set_log_level',

    # Version info
    '__version__',
    '__author__',
    '__license__'
]
