'''
Configuration management system for the MXL Toolbox.

Settings are organised in dataclass sections and resolved in layers:
1. Default configurations built into the package
2. An optional user configuration file (JSON)
3. Environment variables of the form ``MXL_<SECTION>_<OPTION>``
4. Runtime modifications through :func:`set_config`

The numerical section holds the tolerances used by the Gaussian mixing
distribution (singular-factor tolerance, ill-conditioning warning ratio,
finite-difference step). The logging section configures the ``mxl`` logger.
'''

import os
import json
import logging
import typing
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, get_type_hints

from .exceptions import ConfigurationError
from .types import ConfigDict, LogLevel

# Set up module-level logger
logger = logging.getLogger("mxl.core.config")

# Constants for configuration paths and environment variables
CONFIG_ENV_PREFIX = "MXL_"
DEFAULT_CONFIG_FILENAME = "mxl_config.json"
USER_CONFIG_DIR_ENV = "MXL_CONFIG_DIR"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigSection(Enum):
    """Enumeration of configuration sections."""
    CORE = "core"
    NUMERICAL = "numerical"
    LOGGING = "logging"


@dataclass
class CoreConfig:
    """
    Core configuration settings for the MXL Toolbox.

    Attributes:
        user_config_dir: Directory searched for the user configuration file
        random_seed: Seed for the default noise source (None for a random seed)
    """
    user_config_dir: Path = field(default_factory=lambda: Path.home() / ".mxl")
    random_seed: Optional[int] = None


@dataclass
class NumericalConfig:
    """
    Numerical configuration settings for the MXL Toolbox.

    Attributes:
        singular_tolerance: A factor diagonal entry with absolute value at or
            below this tolerance makes the factor degenerate
        ill_conditioning_ratio: Ratio of smallest to largest absolute diagonal
            entry below which a NumericWarning is issued
        finite_difference_step: Step for numerical Jacobians (None selects a
            step from machine precision)
    """
    singular_tolerance: float = 1e-12
    ill_conditioning_ratio: float = 1e-10
    finite_difference_step: Optional[float] = None


@dataclass
class LoggingConfig:
    """
    Logging configuration settings for the MXL Toolbox.

    Attributes:
        log_level: Level of the ``mxl`` logger
        log_file: Path to log file (None for no file logging)
        log_format: Format string for log messages
        log_date_format: Format string for log message timestamps
        console_logging: Whether to log to console
        file_logging: Whether to log to file
    """
    log_level: LogLevel = "WARNING"
    log_file: Optional[Path] = None
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"
    console_logging: bool = True
    file_logging: bool = False


@dataclass
class MXLConfig:
    """
    Complete configuration for the MXL Toolbox.

    Attributes:
        core: Core configuration settings
        numerical: Numerical configuration settings
        logging: Logging configuration settings
    """
    core: CoreConfig = field(default_factory=CoreConfig)
    numerical: NumericalConfig = field(default_factory=NumericalConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _option_type(section_obj: Any, option: str) -> Any:
    """Return the concrete type of a section option, unwrapping Optional."""
    hint = get_type_hints(type(section_obj)).get(option, Any)
    if typing.get_origin(hint) is typing.Union:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        hint = args[0] if len(args) == 1 else Any
    if typing.get_origin(hint) is typing.Literal:
        return str
    return hint


def _coerce(value: Any, value_type: Any) -> Any:
    """Convert a raw (often string) value to the type of a config option."""
    if value is None or value_type is Any:
        return value
    if value_type is bool and isinstance(value, str):
        return value.lower() in ('true', 'yes', '1', 'y')
    if value_type is Path:
        return Path(value)
    if isinstance(value, value_type):
        return value
    return value_type(value)


def _is_optional(section_obj: Any, option: str) -> bool:
    hint = get_type_hints(type(section_obj)).get(option, Any)
    return typing.get_origin(hint) is typing.Union and type(None) in typing.get_args(hint)


def _option_issue(section_obj: Any, option: str, value: Any) -> Optional[str]:
    """Describe why ``value`` is invalid for an option, or return None if it is valid."""
    if value is None:
        return None if _is_optional(section_obj, option) else "value cannot be None"

    if isinstance(section_obj, NumericalConfig):
        if option == "singular_tolerance" and not value >= 0:
            return "must be non-negative"
        if option == "ill_conditioning_ratio" and not 0 <= value < 1:
            return "must be between 0 and 1"
        if option == "finite_difference_step" and not 0 < value < 1:
            return "must be between 0 and 1"

    if isinstance(section_obj, LoggingConfig) and option == "log_level":
        if str(value).upper() not in _LOG_LEVELS:
            return f"must be one of {', '.join(_LOG_LEVELS)}"

    return None


class ConfigManager:
    """
    Configuration manager for the MXL Toolbox.

    Attributes:
        _config: The current configuration object
        _initialized: Whether the configuration manager has been initialized
        _config_file: Path to the user configuration file
    """

    def __init__(self):
        """Initialize the configuration manager with default settings."""
        self._config = MXLConfig()
        self._initialized = False
        self._config_file: Optional[Path] = None
        self._modified_keys = set()

    def initialize(self) -> None:
        """
        Initialize the configuration manager.

        This method:
        1. Locates the user configuration file
        2. Loads user configuration from file if available
        3. Applies environment variable overrides
        4. Validates the configuration
        5. Sets up logging based on configuration
        """
        if self._initialized:
            return

        self._locate_user_config()
        self._load_user_config()
        self._apply_env_overrides()
        self._validate_config()
        self._setup_logging()

        self._initialized = True
        logger.debug("Configuration manager initialized")

    def _locate_user_config(self) -> None:
        """Resolve the user configuration file path without creating it."""
        env_config_dir = os.environ.get(USER_CONFIG_DIR_ENV)
        if env_config_dir:
            self._config.core.user_config_dir = Path(env_config_dir)
        self._config_file = self._config.core.user_config_dir / DEFAULT_CONFIG_FILENAME

    def _load_user_config(self) -> None:
        """Load user configuration from file, if one exists."""
        if not self._config_file or not self._config_file.exists():
            logger.debug("No user configuration file found")
            return

        try:
            with open(self._config_file, 'r') as f:
                user_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                "Failed to load user configuration",
                config_file=self._config_file,
                issue=str(e)
            ) from e

        self._update_from_dict(user_config)
        logger.debug(f"Loaded user configuration from {self._config_file}")

    def _apply_env_overrides(self, only_section: Optional[str] = None,
                             only_option: Optional[str] = None) -> None:
        """Apply ``MXL_<SECTION>_<OPTION>`` environment variable overrides.

        Args:
            only_section: Restrict the overrides to this section
            only_option: Restrict the overrides to this option of ``only_section``
        """
        for env_var, value in os.environ.items():
            if not env_var.startswith(CONFIG_ENV_PREFIX):
                continue

            # Remove prefix and split into section and option
            key = env_var[len(CONFIG_ENV_PREFIX):]
            parts = key.lower().split('_', 1)
            if len(parts) != 2:
                continue

            section, option = parts
            if only_section is not None and section != only_section:
                continue
            if only_option is not None and option != only_option:
                continue
            try:
                ConfigSection(section)
            except ValueError:
                continue

            section_obj = getattr(self._config, section)
            if not hasattr(section_obj, option):
                continue

            try:
                typed_value = _coerce(value, _option_type(section_obj, option))
            except (TypeError, ValueError) as e:
                logger.warning(f"Failed to apply environment override {env_var}: {e}")
                continue

            setattr(section_obj, option, typed_value)
            logger.debug(f"Applied environment override: {env_var}={value}")

    def _setup_logging(self) -> None:
        """Configure the ``mxl`` package logger from the logging section."""
        package_logger = logging.getLogger("mxl")

        for handler in package_logger.handlers[:]:
            package_logger.removeHandler(handler)

        level = str(self._config.logging.log_level).upper()
        if level not in _LOG_LEVELS:
            logger.warning(f"Invalid log level: {self._config.logging.log_level}, using WARNING")
            level = "WARNING"
        package_logger.setLevel(getattr(logging, level))

        formatter = logging.Formatter(
            fmt=self._config.logging.log_format,
            datefmt=self._config.logging.log_date_format
        )

        if self._config.logging.console_logging:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            package_logger.addHandler(console_handler)

        if self._config.logging.file_logging and self._config.logging.log_file:
            try:
                log_dir = self._config.logging.log_file.parent
                log_dir.mkdir(parents=True, exist_ok=True)

                file_handler = logging.FileHandler(self._config.logging.log_file)
                file_handler.setFormatter(formatter)
                package_logger.addHandler(file_handler)
            except OSError as e:
                logger.warning(f"Failed to set up file logging: {e}")

    def _validate_config(self) -> None:
        """Check every option against its constraints.

        Invalid values, including None for a required option, are logged and
        replaced by their defaults.
        """
        defaults = MXLConfig()

        for section_field in fields(self._config):
            section_obj = getattr(self._config, section_field.name)
            for option_field in fields(section_obj):
                option = option_field.name
                value = getattr(section_obj, option)
                issue = _option_issue(section_obj, option, value)
                if issue is None:
                    continue
                default = getattr(getattr(defaults, section_field.name), option)
                logger.warning(
                    f"Invalid {section_field.name}.{option}: {value!r}, {issue}; using {default!r}"
                )
                setattr(section_obj, option, default)

        self._config.logging.log_level = str(self._config.logging.log_level).upper()

    def _update_from_dict(self, config_dict: ConfigDict) -> None:
        """Update the configuration from a nested ``{section: {option: value}}`` dict."""
        for section_name, section_dict in config_dict.items():
            if not hasattr(self._config, section_name):
                logger.warning(f"Unknown configuration section: {section_name}")
                continue

            section = getattr(self._config, section_name)

            for option_name, option_value in section_dict.items():
                if not hasattr(section, option_name):
                    logger.warning(f"Unknown configuration option: {section_name}.{option_name}")
                    continue

                try:
                    option_value = _coerce(option_value, _option_type(section, option_name))
                except (TypeError, ValueError) as e:
                    logger.warning(f"Failed to set {section_name}.{option_name}: {e}")
                    continue
                setattr(section, option_name, option_value)

    def save_user_config(self) -> None:
        """Save the current configuration to the user configuration file."""
        if not self._config_file:
            self._locate_user_config()

        self._config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self._config_file, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.debug(f"Saved user configuration to {self._config_file}")

    def to_dict(self) -> ConfigDict:
        """
        Convert the configuration to a dictionary.

        Returns:
            Dictionary representation of the configuration with paths as strings
        """
        result = {}
        for section_field in fields(self._config):
            section = getattr(self._config, section_field.name)
            section_dict = {}
            for option_field in fields(section):
                value = getattr(section, option_field.name)
                if isinstance(value, Path):
                    value = str(value)
                section_dict[option_field.name] = value
            result[section_field.name] = section_dict
        return result

    def get(self, section: str, option: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            section: The configuration section
            option: The configuration option
            default: Default value if the option is not found

        Returns:
            The configuration value, or the default if not found
        """
        if not self.has_option(section, option):
            return default
        return getattr(getattr(self._config, section), option)

    def set(self, section: str, option: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            section: The configuration section
            option: The configuration option
            value: The value to set

        Raises:
            ConfigurationError: If the section or option is not found, or the
                value cannot be converted to the option's type or violates its
                constraints
        """
        if not self.has_section(section):
            raise ConfigurationError(
                f"Unknown configuration section: {section}",
                setting=f"{section}.{option}",
                value=value,
                issue="Section not found"
            )

        section_obj = getattr(self._config, section)

        if not hasattr(section_obj, option):
            raise ConfigurationError(
                f"Unknown configuration option: {section}.{option}",
                setting=f"{section}.{option}",
                value=value,
                issue="Option not found"
            )

        try:
            typed_value = _coerce(value, _option_type(section_obj, option))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Failed to set configuration option: {section}.{option}",
                setting=f"{section}.{option}",
                value=value,
                issue=str(e)
            ) from e

        issue = _option_issue(section_obj, option, typed_value)
        if issue is not None:
            raise ConfigurationError(
                f"Invalid value for configuration option: {section}.{option}",
                setting=f"{section}.{option}",
                value=value,
                issue=issue
            )
        if option == "log_level":
            typed_value = typed_value.upper()

        setattr(section_obj, option, typed_value)
        self._modified_keys.add(f"{section}.{option}")

        if section == ConfigSection.LOGGING.value:
            self._setup_logging()

        logger.debug(f"Set configuration option: {section}.{option}={value}")

    def reset(self, section: Optional[str] = None, option: Optional[str] = None) -> None:
        """
        Reset configuration to default values.

        Built-in defaults are restored and the environment overrides for the
        reset options are applied again, as on initialization. The user
        configuration file is not re-read.

        Args:
            section: The configuration section to reset, or None to reset all
            option: The configuration option to reset, or None to reset the entire section

        Raises:
            ConfigurationError: If the section or option is not found
        """
        if section is None:
            self._config = MXLConfig()
            self._modified_keys.clear()
            self._locate_user_config()
            self._apply_env_overrides()
            self._validate_config()
            self._setup_logging()
            logger.debug("Reset all configuration to defaults")
            return

        if not self.has_section(section):
            raise ConfigurationError(
                f"Unknown configuration section: {section}",
                setting=section,
                issue="Section not found"
            )

        default_config = MXLConfig()

        if option is None:
            setattr(self._config, section, getattr(default_config, section))
            self._modified_keys = {k for k in self._modified_keys if not k.startswith(f"{section}.")}
            self._restore_environment(section)
            logger.debug(f"Reset configuration section: {section}")
            return

        if not self.has_option(section, option):
            raise ConfigurationError(
                f"Unknown configuration option: {section}.{option}",
                setting=f"{section}.{option}",
                issue="Option not found"
            )

        default_value = getattr(getattr(default_config, section), option)
        setattr(getattr(self._config, section), option, default_value)
        self._modified_keys.discard(f"{section}.{option}")
        self._restore_environment(section, option)

        logger.debug(f"Reset configuration option: {section}.{option}")

    def _restore_environment(self, section: str, option: Optional[str] = None) -> None:
        """Re-apply the environment layer after a partial reset."""
        if section == ConfigSection.CORE.value and option in (None, "user_config_dir"):
            self._locate_user_config()
        self._apply_env_overrides(section, option)
        self._validate_config()
        if section == ConfigSection.LOGGING.value:
            self._setup_logging()

    def is_modified(self, section: str, option: str) -> bool:
        """Check if a configuration option has been modified at runtime."""
        return f"{section}.{option}" in self._modified_keys

    def has_section(self, section: str) -> bool:
        """Check if a configuration section exists."""
        return section in {f.name for f in fields(self._config)}

    def has_option(self, section: str, option: str) -> bool:
        """Check if a configuration option exists."""
        if not self.has_section(section):
            return False
        return option in {f.name for f in fields(getattr(self._config, section))}

    def get_sections(self) -> List[str]:
        """Get a list of all configuration section names."""
        return [f.name for f in fields(self._config)]

    def get_section(self, section: str) -> Any:
        """
        Get a configuration section object.

        Raises:
            ConfigurationError: If the section is not found
        """
        if not self.has_section(section):
            raise ConfigurationError(
                f"Unknown configuration section: {section}",
                setting=section,
                issue="Section not found"
            )
        return getattr(self._config, section)

    def get_config_file(self) -> Optional[Path]:
        """Get the path to the user configuration file."""
        return self._config_file


# Create a singleton instance of the configuration manager
_config_manager = ConfigManager()


def initialize_config() -> None:
    """Initialize the configuration system."""
    _config_manager.initialize()


def get_config_manager() -> ConfigManager:
    """Get the (initialized) configuration manager instance."""
    if not _config_manager._initialized:
        initialize_config()
    return _config_manager


def get_config(section: str, option: str, default: Any = None) -> Any:
    """Get a configuration value."""
    return get_config_manager().get(section, option, default)


def set_config(section: str, option: str, value: Any) -> None:
    """
    Set a configuration value.

    Raises:
        ConfigurationError: If the section or option is not found
    """
    get_config_manager().set(section, option, value)


def reset_config(section: Optional[str] = None, option: Optional[str] = None) -> None:
    """
    Reset configuration to default values.

    Raises:
        ConfigurationError: If the section or option is not found
    """
    get_config_manager().reset(section, option)


def get_core_config() -> CoreConfig:
    """Get the core configuration."""
    return get_config_manager().get_section("core")


def get_numerical_config() -> NumericalConfig:
    """Get the numerical configuration."""
    return get_config_manager().get_section("numerical")


def get_logging_config() -> LoggingConfig:
    """Get the logging configuration."""
    return get_config_manager().get_section("logging")
