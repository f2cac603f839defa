# tests/test_config.py
"""
Tests for the configuration system.

Covers defaults, the JSON user configuration file, environment overrides,
runtime get/set/reset and the effect of the numerical settings on the
Gaussian mixing distribution.
"""

import json
import logging

import numpy as np
import pytest

import mxl
from mxl.core.config import (
    ConfigManager, NumericalConfig, get_config, get_config_manager,
    get_numerical_config, reset_config, set_config
)
from mxl.core.exceptions import ConfigurationError, DegenerateFactorError
from mxl.models.distributions.gaussian import (
    GaussianDistribution, assemble_factor, build_layout, precompute_for_sample
)


class TestConfigManager:
    """Tests for an isolated ConfigManager."""

    def test_defaults(self, config_manager):
        """Test the built-in default values."""
        config_manager.initialize()
        assert config_manager.get("numerical", "singular_tolerance") == 1e-12
        assert config_manager.get("numerical", "ill_conditioning_ratio") == 1e-10
        assert config_manager.get("numerical", "finite_difference_step") is None
        assert config_manager.get("core", "random_seed") is None
        assert config_manager.get("logging", "log_level") == "WARNING"
        assert config_manager.get("numerical", "missing", "fallback") == "fallback"
        assert config_manager.get_sections() == ["core", "numerical", "logging"]

    def test_config_file_location(self, config_manager, config_dir):
        """The configuration file is resolved but never created implicitly."""
        config_manager.initialize()
        assert config_manager.get_config_file() == config_dir / "mxl_config.json"
        assert not config_manager.get_config_file().exists()

    def test_load_user_file(self, config_manager, config_dir):
        """Values in the user file override the defaults."""
        (config_dir / "mxl_config.json").write_text(json.dumps({
            "numerical": {"ill_conditioning_ratio": 1e-6},
            "core": {"random_seed": 7},
            "unknown": {"option": 1}
        }))

        config_manager.initialize()

        assert config_manager.get("numerical", "ill_conditioning_ratio") == 1e-6
        assert config_manager.get("core", "random_seed") == 7

    def test_invalid_user_file(self, config_manager, config_dir):
        """A malformed file raises ConfigurationError."""
        (config_dir / "mxl_config.json").write_text("{not json")
        with pytest.raises(ConfigurationError) as exc_info:
            config_manager.initialize()
        assert exc_info.value.config_file == config_dir / "mxl_config.json"

    def test_invalid_values_reset(self, config_manager, config_dir):
        """Out-of-range values fall back to their defaults."""
        (config_dir / "mxl_config.json").write_text(json.dumps({
            "numerical": {
                "singular_tolerance": -1.0,
                "ill_conditioning_ratio": 2.0,
                "finite_difference_step": 5.0
            },
            "logging": {"log_level": "LOUD"}
        }))

        config_manager.initialize()

        defaults = NumericalConfig()
        assert config_manager.get("numerical", "singular_tolerance") == defaults.singular_tolerance
        assert config_manager.get("numerical", "ill_conditioning_ratio") == defaults.ill_conditioning_ratio
        assert config_manager.get("numerical", "finite_difference_step") is None
        assert config_manager.get("logging", "log_level") == "WARNING"

    def test_env_overrides(self, config_manager, config_dir, monkeypatch):
        """MXL_<SECTION>_<OPTION> variables override the file."""
        (config_dir / "mxl_config.json").write_text(json.dumps({
            "numerical": {"singular_tolerance": 1e-9}
        }))
        monkeypatch.setenv("MXL_NUMERICAL_SINGULAR_TOLERANCE", "1e-8")
        monkeypatch.setenv("MXL_CORE_RANDOM_SEED", "123")
        monkeypatch.setenv("MXL_LOGGING_CONSOLE_LOGGING", "false")
        monkeypatch.setenv("MXL_NUMERICAL_NO_SUCH_OPTION", "1")

        config_manager.initialize()

        assert config_manager.get("numerical", "singular_tolerance") == 1e-8
        assert config_manager.get("core", "random_seed") == 123
        assert config_manager.get("logging", "console_logging") is False

    def test_invalid_env_override(self, config_manager, monkeypatch):
        """An override that cannot be converted is skipped."""
        monkeypatch.setenv("MXL_CORE_RANDOM_SEED", "abc")
        config_manager.initialize()
        assert config_manager.get("core", "random_seed") is None

    def test_set_and_reset(self, config_manager):
        """Test runtime modification and reset."""
        config_manager.set("numerical", "singular_tolerance", "1e-6")
        assert config_manager.get("numerical", "singular_tolerance") == 1e-6
        assert config_manager.is_modified("numerical", "singular_tolerance")

        config_manager.set("core", "random_seed", 5.0)
        assert config_manager.get("core", "random_seed") == 5

        config_manager.reset("numerical", "singular_tolerance")
        assert config_manager.get("numerical", "singular_tolerance") == 1e-12
        assert not config_manager.is_modified("numerical", "singular_tolerance")

        config_manager.reset("core")
        assert config_manager.get("core", "random_seed") is None

        config_manager.set("numerical", "ill_conditioning_ratio", 1e-3)
        config_manager.reset()
        assert config_manager.get("numerical", "ill_conditioning_ratio") == 1e-10

    def test_set_errors(self, config_manager):
        """Unknown settings and failed conversions raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            config_manager.set("plotting", "style", "dark")
        with pytest.raises(ConfigurationError):
            config_manager.set("numerical", "no_such_option", 1)
        with pytest.raises(ConfigurationError):
            config_manager.set("core", "random_seed", "abc")
        with pytest.raises(ConfigurationError):
            config_manager.reset("plotting")
        with pytest.raises(ConfigurationError):
            config_manager.reset("numerical", "no_such_option")
        with pytest.raises(ConfigurationError):
            config_manager.get_section("plotting")

    def test_save_user_config(self, config_manager, config_dir):
        """Saved configuration can be read back."""
        config_manager.initialize()
        config_manager.set("numerical", "singular_tolerance", 1e-7)
        config_manager.save_user_config()

        saved = json.loads((config_dir / "mxl_config.json").read_text())
        assert saved["numerical"]["singular_tolerance"] == 1e-7
        assert saved["core"]["user_config_dir"] == str(config_dir)

        reloaded = ConfigManager()
        reloaded.initialize()
        assert reloaded.get("numerical", "singular_tolerance") == 1e-7

    def test_to_dict(self, config_manager):
        """Paths are converted to strings."""
        result = config_manager.to_dict()
        assert set(result) == {"core", "numerical", "logging"}
        assert isinstance(result["core"]["user_config_dir"], str)

    def test_logging_setup(self, config_manager):
        """Setting the log level reconfigures the package logger."""
        package_logger = logging.getLogger("mxl")
        try:
            config_manager.set("logging", "log_level", "debug")
            assert package_logger.level == logging.DEBUG

            config_manager.set("logging", "console_logging", False)
            assert not any(isinstance(h, logging.StreamHandler) for h in package_logger.handlers)
        finally:
            config_manager.reset("logging")
            config_manager.set("logging", "log_level", "WARNING")

    def test_file_logging(self, config_manager, tmp_path):
        """File logging writes to the configured path."""
        log_file = tmp_path / "logs" / "mxl.log"
        package_logger = logging.getLogger("mxl")
        try:
            config_manager.set("logging", "log_file", str(log_file))
            config_manager.set("logging", "file_logging", True)
            assert config_manager.get("logging", "log_file") == log_file
            assert any(isinstance(h, logging.FileHandler) for h in package_logger.handlers)
            assert log_file.parent.exists()
        finally:
            for handler in package_logger.handlers[:]:
                handler.close()
            config_manager.reset("logging")
            config_manager.set("logging", "log_level", "WARNING")

    @pytest.mark.parametrize("option, value", [
        ("singular_tolerance", -1.0),
        ("singular_tolerance", None),
        ("singular_tolerance", float("nan")),
        ("ill_conditioning_ratio", 1.5),
        ("finite_difference_step", 0.0),
    ])
    def test_set_rejects_invalid_numerical(self, config_manager, option, value):
        """Out-of-range and None values are rejected and the old value is kept."""
        before = config_manager.get("numerical", option)
        with pytest.raises(ConfigurationError) as exc_info:
            config_manager.set("numerical", option, value)
        assert exc_info.value.setting == f"numerical.{option}"
        assert config_manager.get("numerical", option) == before
        assert not config_manager.is_modified("numerical", option)

    def test_set_optional_none(self, config_manager):
        """Optional options accept None."""
        config_manager.set("numerical", "finite_difference_step", 1e-4)
        config_manager.set("numerical", "finite_difference_step", None)
        assert config_manager.get("numerical", "finite_difference_step") is None

    def test_set_rejects_invalid_log_level(self, config_manager):
        """Unknown log levels and None are rejected."""
        with pytest.raises(ConfigurationError):
            config_manager.set("logging", "log_level", "LOUD")
        with pytest.raises(ConfigurationError):
            config_manager.set("logging", "console_logging", None)
        assert config_manager.get("logging", "log_level") == "WARNING"

    def test_null_in_user_file(self, config_manager, config_dir):
        """A null for a required option falls back to the default."""
        (config_dir / "mxl_config.json").write_text(json.dumps({
            "numerical": {"singular_tolerance": None, "finite_difference_step": None}
        }))
        config_manager.initialize()
        assert config_manager.get("numerical", "singular_tolerance") == 1e-12
        assert config_manager.get("numerical", "finite_difference_step") is None

    def test_numerical_options(self, config_manager):
        """The numerical section holds only the options the toolbox reads."""
        assert set(config_manager.to_dict()["numerical"]) == {
            "singular_tolerance", "ill_conditioning_ratio", "finite_difference_step"
        }
        assert not config_manager.has_option("numerical", "default_float_type")

    def test_reset_reconfigures_logging(self, config_manager):
        """Resetting the logging section restores the package logger level."""
        package_logger = logging.getLogger("mxl")
        try:
            config_manager.set("logging", "log_level", "DEBUG")
            assert package_logger.level == logging.DEBUG

            config_manager.reset("logging")
            assert package_logger.level == logging.WARNING

            config_manager.set("logging", "log_level", "ERROR")
            config_manager.reset("logging", "log_level")
            assert package_logger.level == logging.WARNING

            config_manager.set("logging", "log_level", "INFO")
            config_manager.reset()
            assert package_logger.level == logging.WARNING
        finally:
            config_manager.set("logging", "log_level", "WARNING")

    def test_reset_keeps_environment(self, config_manager, config_dir, monkeypatch):
        """Environment overrides and the config directory survive a reset."""
        monkeypatch.setenv("MXL_NUMERICAL_SINGULAR_TOLERANCE", "1e-8")
        config_manager.initialize()

        config_manager.set("numerical", "singular_tolerance", 1e-6)
        config_manager.reset("numerical", "singular_tolerance")
        assert config_manager.get("numerical", "singular_tolerance") == 1e-8

        config_manager.set("numerical", "singular_tolerance", 1e-6)
        config_manager.reset("numerical")
        assert config_manager.get("numerical", "singular_tolerance") == 1e-8

        config_manager.set("numerical", "singular_tolerance", 1e-6)
        config_manager.reset()
        assert config_manager.get("numerical", "singular_tolerance") == 1e-8
        assert config_manager.get("core", "user_config_dir") == config_dir
        assert config_manager.get_config_file() == config_dir / "mxl_config.json"

        config_manager.reset("core")
        assert config_manager.get("core", "user_config_dir") == config_dir


class TestGlobalConfig:
    """Tests for the package-wide configuration functions."""

    def test_get_set(self, restore_global_config):
        """Module functions share one manager."""
        set_config("numerical", "ill_conditioning_ratio", 1e-4)
        assert get_config("numerical", "ill_conditioning_ratio") == 1e-4
        assert get_numerical_config().ill_conditioning_ratio == 1e-4
        assert get_config_manager().is_modified("numerical", "ill_conditioning_ratio")

        reset_config("numerical")
        assert get_config("numerical", "ill_conditioning_ratio") == 1e-10

    def test_singular_tolerance_applies(self, restore_global_config):
        """The configured tolerance decides whether a factor is degenerate."""
        params = np.array([0.0, 0.0, 1.0, 0.0, 0.05])
        factor = assemble_factor(params, build_layout(2))
        sample = np.array([1.0, 0.05])

        np.testing.assert_allclose(precompute_for_sample(params, sample, factor), [1.0, 1.0])

        set_config("numerical", "singular_tolerance", 0.1)
        with pytest.raises(DegenerateFactorError):
            precompute_for_sample(params, sample, factor)

    def test_rejected_tolerance_leaves_pipeline_working(self, restore_global_config):
        """A rejected tolerance does not reach the triangular solve."""
        for value in (-1.0, None):
            with pytest.raises(ConfigurationError):
                set_config("numerical", "singular_tolerance", value)
        assert get_config("numerical", "singular_tolerance") == 1e-12

        dist = GaussianDistribution(2, random_state=0)
        dist.setup_distribution(np.array([0.0, 0.0, 1.0, 0.0, 1.0]))
        noise = dist.precompute_for_sample(dist.draw_sample())
        assert noise.shape == (2,)

    def test_random_seed_applies(self, restore_global_config):
        """core.random_seed seeds the default noise source."""
        set_config("core", "random_seed", 2024)
        params = np.array([0.0, 0.0, 1.0, 0.0, 1.0])

        first = GaussianDistribution(2)
        second = GaussianDistribution(2)
        first.setup_distribution(params)
        second.setup_distribution(params)

        np.testing.assert_array_equal(first.draw_sample(), second.draw_sample())

    def test_set_log_level(self, restore_global_config):
        """mxl.set_log_level accepts names and logging constants."""
        try:
            mxl.set_log_level(logging.INFO)
            assert get_config("logging", "log_level") == "INFO"
            assert logging.getLogger("mxl").level == logging.INFO

            mxl.set_log_level("error")
            assert logging.getLogger("mxl").level == logging.ERROR
        finally:
            mxl.set_log_level("WARNING")

    def test_version(self):
        """The package reports its version."""
        assert mxl.get_version() == mxl.__version__

    def test_version_info(self):
        """Version metadata agrees with the version string."""
        from mxl.version import get_version_components, get_version_info

        info = get_version_info()
        assert info["version"] == mxl.__version__
        assert ".".join(str(c) for c in get_version_components()) == mxl.__version__
        assert set(info["dependencies"]) == {"numpy", "scipy", "numba"}
