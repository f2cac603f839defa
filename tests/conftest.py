'''
Pytest configuration and fixtures for the MXL Toolbox test suite.

Provides seeded generators, well-conditioned Gaussian parameter vectors,
isolated configuration managers and the hypothesis strategies shared by the
test modules.
'''

from typing import Callable, Iterator, List

import numpy as np
import pytest
from hypothesis import strategies as st

from mxl.core.config import ConfigManager, reset_config


# ---- Basic Data Generation Fixtures ----

@pytest.fixture
def rng() -> np.random.Generator:
    """Provide a seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture(params=[1, 2, 3, 5])
def num_attributes(request) -> int:
    """Attribute counts covering the scalar case and small multivariate cases."""
    return request.param


def make_gaussian_parameters(rng: np.random.Generator, k: int) -> np.ndarray:
    """Random flat parameter vector whose factor diagonal is bounded away from zero."""
    mean = rng.normal(0.0, 2.0, size=k)
    factor = np.triu(rng.normal(0.0, 1.0, size=(k, k)), k=1)
    signs = rng.choice([-1.0, 1.0], size=k)
    factor[np.diag_indices(k)] = signs * rng.uniform(0.5, 2.0, size=k)
    return np.concatenate([mean, factor[np.triu_indices(k)]])


@pytest.fixture
def gaussian_parameters(rng: np.random.Generator, num_attributes: int) -> np.ndarray:
    """Well-conditioned parameter vector of length K(K+3)/2."""
    return make_gaussian_parameters(rng, num_attributes)


@pytest.fixture
def two_attribute_parameters() -> np.ndarray:
    """Parameters [m0, m1, a, b, c] for mean [0.5, -1] and factor [[1, 0.3], [0, 2]]."""
    return np.array([0.5, -1.0, 1.0, 0.3, 2.0])


def make_noise_source(values: List[float]) -> Callable[[], float]:
    """Noise source returning ``values`` in order, recording each call."""
    iterator = iter(values)

    def source() -> float:
        source.calls += 1
        return next(iterator)

    source.calls = 0
    return source


# ---- Configuration Fixtures ----

@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Point the user configuration directory at a temporary path."""
    monkeypatch.setenv("MXL_CONFIG_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def config_manager(config_dir) -> ConfigManager:
    """Fresh, uninitialized configuration manager isolated from the user's files."""
    return ConfigManager()


@pytest.fixture
def restore_global_config() -> Iterator[None]:
    """Reset the package-wide configuration after the test."""
    yield
    reset_config()


# ---- Hypothesis Strategies ----

attribute_count_strategy = st.integers(min_value=1, max_value=6)


@st.composite
def gaussian_parameter_strategy(draw, k: int) -> np.ndarray:
    """Parameter vectors with entries in [-3, 3] and |diagonal| in [0.5, 3]."""
    finite = st.floats(min_value=-3.0, max_value=3.0, allow_nan=False, allow_infinity=False)
    magnitude = st.floats(min_value=0.5, max_value=3.0, allow_nan=False, allow_infinity=False)

    mean = [draw(finite) for _ in range(k)]
    factor = np.zeros((k, k))
    for row in range(k):
        for column in range(row, k):
            if row == column:
                factor[row, column] = draw(magnitude) * draw(st.sampled_from([-1.0, 1.0]))
            else:
                factor[row, column] = draw(finite)
    return np.concatenate([np.asarray(mean, dtype=float), factor[np.triu_indices(k)]])


@st.composite
def distribution_case_strategy(draw):
    """(K, parameters, noise) triples for property-based pipeline tests."""
    k = draw(attribute_count_strategy)
    parameters = draw(gaussian_parameter_strategy(k))
    noise_element = st.floats(min_value=-4.0, max_value=4.0, allow_nan=False, allow_infinity=False)
    noise = np.asarray([draw(noise_element) for _ in range(k)], dtype=float)
    return k, parameters, noise
