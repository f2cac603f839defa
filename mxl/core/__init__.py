"""
MXL Toolbox Core Module

Foundation shared by the rest of the toolbox: the exception hierarchy,
configuration management, type aliases and input validation.
"""

import logging

# Set up module-level logger
logger = logging.getLogger("mxl.core")

from .exceptions import (
    MXLError,
    ParameterError,
    DimensionError,
    NumericError,
    DegenerateFactorError,
    ConfigurationError,
    StaleCacheError,
    MXLWarning,
    NumericWarning
)

from .config import (
    ConfigManager,
    get_config,
    set_config,
    reset_config,
    get_config_manager,
    get_core_config,
    get_numerical_config,
    get_logging_config
)

from .validation import (
    validate_vector,
    validate_square_matrix,
    validate_attribute_count,
    validate_index
)

__all__ = [
    # Exceptions
    'MXLError',
    'ParameterError',
    'DimensionError',
    'NumericError',
    'DegenerateFactorError',
    'ConfigurationError',
    'StaleCacheError',
    'MXLWarning',
    'NumericWarning',

    # Configuration
    'ConfigManager',
    'get_config',
    'set_config',
    'reset_config',
    'get_config_manager',
    'get_core_config',
    'get_numerical_config',
    'get_logging_config',

    # Validation
    'validate_vector',
    'validate_square_matrix',
    'validate_attribute_count',
    'validate_index'
]
