# mxl/models/distributions/gaussian.py
"""
Gaussian mixing distribution for mixed logit discrete choice models.

The random coefficient vector beta of a mixed logit model is drawn from a
multivariate normal distribution parameterised by a mean vector and an
upper triangular mixing factor C, so that ``beta = C @ z + mean`` with
``z ~ N(0, I)`` and ``Cov(beta) = C @ C.T``. The factor is applied directly
(it is not transposed), and the analytic gradients below are derived for
that convention.

All distribution parameters live in one flat vector of length
``P = K(K+3)/2`` for ``K`` attributes::

    [mean_0, ..., mean_{K-1}, C[0,0], C[0,1], ..., C[0,K-1], C[1,1], ..., C[K-1,K-1]]

The factor block is the upper triangle in row-major order: row r holds the
``K - r`` entries for columns r..K-1.

Per draw, the estimation loop runs a fixed pipeline:

1. :func:`build_layout` once per model configuration.
2. :func:`assemble_factor` whenever the parameter vector changes.
3. :func:`draw_sample` once per draw.
4. :func:`precompute_for_sample` once per draw, recovering the noise ``z``
   behind the sample by back substitution.
5. :func:`jacobian_entry` (or :func:`attribute_gradient`) as often as needed.

:class:`GaussianDistribution` owns the layout and the working state for one
pipeline and rejects out-of-order use with :class:`StaleCacheError`. Each
concurrent worker needs its own instance.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from mxl.core.config import get_config
from mxl.core.exceptions import (
    StaleCacheError, raise_dimension_error, raise_parameter_error
)
from mxl.core.types import (
    AttributeDimensions, CovarianceMatrix, IndexTable, Matrix, MatrixPosition,
    NoiseSource, ParameterVector, RandomState, TriangularMatrix, Vector
)
from mxl.core.validation import (
    validate_attribute_count, validate_index, validate_square_matrix, validate_vector
)
from mxl.utils.differentiation import jacobian
from mxl.utils.matrix_ops import (
    assemble_upper_factor, is_upper_triangular, solve_upper_triangular,
    triu2vec, upper_triangular_layout
)

# Set up module-level logger
logger = logging.getLogger("mxl.models.distributions.gaussian")


@dataclass(frozen=True)
class GaussianLayout:
    """Read-only index tables for a K-attribute Gaussian mixing distribution.

    Attributes:
        num_attributes: Number of attributes K
        num_parameters: Length of the flat parameter vector, K(K+3)/2
        nonzero_output_index: For factor parameter p (K <= p < P), the factor
            row, which is also the only output component p influences
        factor_row_start: For factor parameter p, the flat index at which its
            row's segment begins
    """

    num_attributes: int
    num_parameters: int
    nonzero_output_index: IndexTable = field(repr=False, compare=False)
    factor_row_start: IndexTable = field(repr=False, compare=False)

    @property
    def num_factor_entries(self) -> int:
        return self.num_parameters - self.num_attributes

    @property
    def mean_slice(self) -> slice:
        return slice(0, self.num_attributes)

    @property
    def factor_slice(self) -> slice:
        return slice(self.num_attributes, self.num_parameters)

    def factor_position(self, parameter_index: int) -> MatrixPosition:
        """Return the (row, column) factor entry held by a factor parameter.

        Raises:
            ParameterError: If the index is not a factor parameter
        """
        p = validate_index(parameter_index, self.num_parameters, "parameter_index")
        if p < self.num_attributes:
            raise_parameter_error(
                f"Parameter {p} is a mean parameter and has no factor position",
                param_name="parameter_index",
                param_value=p,
                constraint=f"{self.num_attributes} <= parameter_index < {self.num_parameters}"
            )
        row = int(self.nonzero_output_index[p])
        return row, row + (p - int(self.factor_row_start[p]))

    def parameter_index(self, row: int, column: int) -> int:
        """Return the flat index of factor entry (row, column).

        Raises:
            ParameterError: If the position is outside the upper triangle
        """
        k = self.num_attributes
        row = validate_index(row, k, "row")
        column = validate_index(column, k, "column")
        if column < row:
            raise_parameter_error(
                f"Factor entry ({row}, {column}) lies below the diagonal",
                param_name="column",
                param_value=column,
                constraint="row <= column"
            )
        # Rows 0..row-1 hold K + (K-1) + ... + (K-row+1) entries
        row_offset = row * k - row * (row - 1) // 2
        return k + row_offset + (column - row)


@dataclass
class GaussianWorkingState:
    """Mutable per-pipeline state of a :class:`GaussianDistribution`.

    Attributes:
        parameters: Copy of the parameter vector the factor was assembled from
        factor_matrix: Dense upper triangular mixing factor
        recovered_noise: Noise recovered for the sample in ``noise_sample``
        noise_sample: Sample the recovered noise belongs to
        num_draws: Number of samples drawn so far
        noise_draw: Value of ``num_draws`` when the noise was recovered
    """

    parameters: Optional[ParameterVector] = None
    factor_matrix: Optional[TriangularMatrix] = None
    recovered_noise: Optional[Vector] = None
    noise_sample: Optional[Vector] = None
    num_draws: int = 0
    noise_draw: Optional[int] = None

    @property
    def noise_is_current(self) -> bool:
        return self.recovered_noise is not None and self.noise_draw == self.num_draws

    def invalidate_noise(self) -> None:
        self.recovered_noise = None
        self.noise_sample = None
        self.noise_draw = None


def build_layout(attribute_dimensions: AttributeDimensions) -> GaussianLayout:
    """
    Build the parameter layout for a Gaussian mixing distribution.

    Args:
        attribute_dimensions: Number of attributes K, or a sequence whose
            first entry is K

    Returns:
        GaussianLayout with P = K(K+3)/2 and the factor index tables

    Raises:
        ConfigurationError: If K is not an integer >= 1

    Examples:
        >>> from mxl.models.distributions.gaussian import build_layout
        >>> layout = build_layout(2)
        >>> layout.num_parameters
        5
        >>> layout.factor_position(3)
        (0, 1)
    """
    if isinstance(attribute_dimensions, (list, tuple, np.ndarray)):
        if len(attribute_dimensions) == 0:
            validate_attribute_count(0, "attribute_dimensions[0]")
        num_attributes = validate_attribute_count(
            attribute_dimensions[0], "attribute_dimensions[0]")
    else:
        num_attributes = validate_attribute_count(attribute_dimensions)

    rows, starts = upper_triangular_layout(num_attributes)
    rows.flags.writeable = False
    starts.flags.writeable = False

    layout = GaussianLayout(
        num_attributes=num_attributes,
        num_parameters=num_attributes * (num_attributes + 3) // 2,
        nonzero_output_index=rows,
        factor_row_start=starts,
    )
    logger.debug(f"Built Gaussian layout: K={layout.num_attributes}, P={layout.num_parameters}")
    return layout


def assemble_factor(parameters: ParameterVector, layout: GaussianLayout) -> TriangularMatrix:
    """
    Reconstruct the dense upper triangular mixing factor.

    Args:
        parameters: Flat parameter vector of length P
        layout: Layout from :func:`build_layout`

    Returns:
        K x K matrix with the factor entries on and above the diagonal and
        zeros below it

    Raises:
        DimensionError: If the parameter vector does not have length P
    """
    parameters = validate_vector(parameters, layout.num_parameters, "parameters")
    return assemble_upper_factor(
        parameters, layout.nonzero_output_index, layout.factor_row_start,
        layout.num_attributes
    )


def _validate_draw_inputs(parameters: ParameterVector,
                          factor_matrix: TriangularMatrix) -> Tuple[Vector, Matrix]:
    factor_matrix = validate_square_matrix(factor_matrix, matrix_name="factor_matrix")
    k = factor_matrix.shape[0]
    parameters = validate_vector(parameters, k * (k + 3) // 2, "parameters")
    return parameters, factor_matrix


def draw_sample_from_noise(parameters: ParameterVector,
                           factor_matrix: TriangularMatrix,
                           noise: Vector) -> Vector:
    """
    Map a standard-normal vector to a sample: ``factor_matrix @ noise + mean``.

    Raises:
        DimensionError: If the shapes of the inputs do not agree
    """
    parameters, factor_matrix = _validate_draw_inputs(parameters, factor_matrix)
    k = factor_matrix.shape[0]
    noise = validate_vector(noise, k, "noise")
    return factor_matrix @ noise + parameters[:k]


def draw_sample(parameters: ParameterVector,
                factor_matrix: TriangularMatrix,
                noise_source: NoiseSource) -> Vector:
    """
    Draw one sample from N(mean, C @ C.T).

    The noise source is called exactly once per attribute, in index order.

    Args:
        parameters: Flat parameter vector of length P (the mean is its head)
        factor_matrix: Assembled mixing factor C
        noise_source: Zero-argument callable returning one standard-normal scalar

    Returns:
        Sample vector of length K

    Raises:
        DimensionError: If the shapes of the inputs do not agree
    """
    parameters, factor_matrix = _validate_draw_inputs(parameters, factor_matrix)
    k = factor_matrix.shape[0]
    noise = np.array([float(noise_source()) for _ in range(k)], dtype=np.float64)
    return factor_matrix @ noise + parameters[:k]


def precompute_for_sample(parameters: ParameterVector,
                          sample: Vector,
                          factor_matrix: TriangularMatrix,
                          tolerance: Optional[float] = None) -> Vector:
    """
    Recover the standard-normal noise implied by a sample.

    Solves ``factor_matrix @ z = sample - mean`` by back substitution. For a
    sample produced by :func:`draw_sample` this returns the noise that was
    drawn; for an external sample it returns the unique consistent noise.

    Args:
        parameters: Flat parameter vector of length P
        sample: Sample vector of length K
        factor_matrix: Assembled mixing factor C
        tolerance: Diagonal entries with absolute value at or below this make
            the factor degenerate. Defaults to ``numerical.singular_tolerance``

    Returns:
        Recovered noise vector of length K

    Raises:
        DimensionError: If the shapes of the inputs do not agree
        DegenerateFactorError: If the factor has a (near) zero diagonal entry
        NumericError: If the recovered noise is not finite
    """
    parameters, factor_matrix = _validate_draw_inputs(parameters, factor_matrix)
    k = factor_matrix.shape[0]
    sample = validate_vector(sample, k, "sample")

    if tolerance is None:
        tolerance = get_config("numerical", "singular_tolerance", 0.0)
    ratio = get_config("numerical", "ill_conditioning_ratio", 0.0)

    return solve_upper_triangular(factor_matrix, sample - parameters[:k],
                                  tolerance=tolerance, ill_conditioning_ratio=ratio)


def jacobian_entry(layout: GaussianLayout,
                   recovered_noise: Optional[Vector],
                   parameter_index: int,
                   output_index: int) -> float:
    """
    Partial derivative of ``sample[output_index]`` w.r.t. a distribution parameter.

    The noise is held fixed. A mean parameter moves only its own component,
    one for one. Factor entry (r, c) moves only ``sample[r]``, by ``z[c]``.

    Args:
        layout: Layout from :func:`build_layout`
        recovered_noise: Noise from :func:`precompute_for_sample` for the
            current sample, or None if it has not been computed
        parameter_index: Index into the flat parameter vector, in [0, P)
        output_index: Sample component, in [0, K)

    Returns:
        The Jacobian entry

    Raises:
        StaleCacheError: If ``recovered_noise`` is None
        DimensionError: If ``recovered_noise`` does not have length K
        ParameterError: If an index is out of range
    """
    if recovered_noise is None:
        raise StaleCacheError(
            "Recovered noise has not been computed for the current sample",
            operation="jacobian_entry",
            state="recovered_noise is None"
        )

    k = layout.num_attributes
    if np.shape(recovered_noise) != (k,):
        raise_dimension_error(
            f"recovered_noise must have length {k}",
            array_name="recovered_noise",
            expected_shape=(k,),
            actual_shape=np.shape(recovered_noise)
        )
    p = validate_index(parameter_index, layout.num_parameters, "parameter_index")
    j = validate_index(output_index, k, "output_index")

    # Upper K x K block is the identity
    if p < k:
        return 1.0 if p == j else 0.0

    row = layout.nonzero_output_index[p]
    if j != row:
        return 0.0
    return float(recovered_noise[row + (p - layout.factor_row_start[p])])


def attribute_gradient(layout: GaussianLayout,
                       recovered_noise: Optional[Vector]) -> Matrix:
    """
    Full P x K Jacobian of the sample with respect to the parameters.

    Entry (p, j) equals ``jacobian_entry(layout, recovered_noise, p, j)``.

    Raises:
        StaleCacheError: If ``recovered_noise`` is None
        DimensionError: If ``recovered_noise`` does not have length K
    """
    if recovered_noise is None:
        raise StaleCacheError(
            "Recovered noise has not been computed for the current sample",
            operation="attribute_gradient",
            state="recovered_noise is None"
        )

    k = layout.num_attributes
    recovered_noise = validate_vector(recovered_noise, k, "recovered_noise")

    gradient = np.zeros((layout.num_parameters, k), dtype=np.float64)
    gradient[np.arange(k), np.arange(k)] = 1.0

    factor_params = np.arange(k, layout.num_parameters)
    rows = layout.nonzero_output_index[k:]
    columns = rows + (factor_params - layout.factor_row_start[k:])
    gradient[factor_params, rows] = recovered_noise[columns]
    return gradient


def pack_parameters(mean: Vector, factor_matrix: TriangularMatrix) -> ParameterVector:
    """
    Pack a mean vector and an upper triangular factor into a flat vector.

    Raises:
        DimensionError: If the mean and factor sizes disagree
        ParameterError: If the factor has nonzero entries below the diagonal
    """
    factor_matrix = validate_square_matrix(factor_matrix, matrix_name="factor_matrix")
    mean = validate_vector(mean, factor_matrix.shape[0], "mean")
    if not is_upper_triangular(factor_matrix):
        raise_parameter_error(
            "Mixing factor must be upper triangular",
            param_name="factor_matrix",
            constraint="all entries below the diagonal are zero"
        )
    return np.concatenate([mean, triu2vec(factor_matrix)])


def unpack_parameters(parameters: ParameterVector,
                      layout: GaussianLayout) -> Tuple[Vector, TriangularMatrix]:
    """Split a flat parameter vector into (mean, factor matrix)."""
    parameters = validate_vector(parameters, layout.num_parameters, "parameters")
    return parameters[layout.mean_slice].copy(), assemble_factor(parameters, layout)


class GaussianDistribution:
    """Gaussian mixing distribution with an upper triangular mixing factor.

    The instance owns the read-only layout and the working state of a single
    draw pipeline: ``setup_distribution`` -> ``draw_sample`` ->
    ``precompute_for_sample`` -> ``jacobian_entry``. Drawing a new sample
    marks the recovered noise stale, and gradient queries on stale or missing
    noise raise :class:`StaleCacheError` instead of returning numbers for a
    different sample.

    Args:
        attribute_dimensions: Number of attributes K, or a sequence whose
            first entry is K
        noise_source: Zero-argument callable returning one standard-normal
            scalar. Defaults to a NumPy generator built from ``random_state``
        random_state: Random number generator or seed for the default noise
            source. None uses ``core.random_seed`` from the configuration

    Examples:
        >>> import numpy as np
        >>> from mxl import GaussianDistribution
        >>> dist = GaussianDistribution(2, random_state=0)
        >>> dist.setup_distribution(np.array([0.5, -1.0, 1.0, 0.3, 2.0]))
        >>> beta = dist.draw_sample()
        >>> _ = dist.precompute_for_sample(beta)
        >>> dist.jacobian_entry(0, 0)
        1.0
    """

    def __init__(self,
                 attribute_dimensions: AttributeDimensions,
                 noise_source: Optional[NoiseSource] = None,
                 random_state: RandomState = None) -> None:
        self._layout = build_layout(attribute_dimensions)
        self._state = GaussianWorkingState()

        if noise_source is None:
            if random_state is None:
                random_state = get_config("core", "random_seed")
            if isinstance(random_state, np.random.Generator):
                rng = random_state
            else:
                rng = np.random.default_rng(random_state)
            noise_source = rng.standard_normal
        self._noise_source = noise_source

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(num_attributes={self.num_attributes}, "
                f"num_parameters={self.num_parameters})")

    @property
    def layout(self) -> GaussianLayout:
        return self._layout

    @property
    def num_attributes(self) -> int:
        return self._layout.num_attributes

    @property
    def num_parameters(self) -> int:
        return self._layout.num_parameters

    @property
    def factor_matrix(self) -> Optional[TriangularMatrix]:
        """Copy of the current mixing factor, or None before setup."""
        if self._state.factor_matrix is None:
            return None
        return self._state.factor_matrix.copy()

    @property
    def recovered_noise(self) -> Optional[Vector]:
        """Copy of the recovered noise if it is current, else None."""
        if not self._state.noise_is_current:
            return None
        return self._state.recovered_noise.copy()

    @property
    def mean(self) -> Vector:
        return self._require_setup("mean")[self._layout.mean_slice].copy()

    def _require_setup(self, operation: str) -> ParameterVector:
        if self._state.factor_matrix is None:
            raise StaleCacheError(
                "setup_distribution must be called before this operation",
                operation=operation,
                state="factor matrix not assembled"
            )
        return self._state.parameters

    def _resolve_parameters(self, parameters: Optional[ParameterVector],
                            operation: str) -> ParameterVector:
        current = self._require_setup(operation)
        if parameters is None:
            return current
        parameters = validate_vector(parameters, self.num_parameters, "parameters")
        if not np.array_equal(parameters, current):
            raise StaleCacheError(
                "Parameters differ from those the factor was assembled for; "
                "call setup_distribution first",
                operation=operation,
                state="factor matrix stale"
            )
        return current

    def _require_noise(self, operation: str) -> Vector:
        if not self._state.noise_is_current:
            state = ("recovered noise not computed" if self._state.recovered_noise is None
                     else "a new sample was drawn after the noise was recovered")
            raise StaleCacheError(
                "precompute_for_sample must run for the current sample first",
                operation=operation,
                state=state
            )
        return self._state.recovered_noise

    def setup_distribution(self, parameters: ParameterVector) -> None:
        """Assemble the mixing factor for a new parameter vector.

        Must be called whenever the parameters change. Invalidates any
        recovered noise.

        Raises:
            DimensionError: If the parameter vector does not have length P
        """
        parameters = validate_vector(parameters, self.num_parameters, "parameters").copy()
        self._state.factor_matrix = assemble_factor(parameters, self._layout)
        self._state.parameters = parameters
        self._state.invalidate_noise()
        logger.debug(f"Assembled {self.num_attributes}x{self.num_attributes} mixing factor")

    def draw_sample(self, parameters: Optional[ParameterVector] = None) -> Vector:
        """Draw one sample using the assembled factor.

        Args:
            parameters: Optional parameter vector; if given it must equal the
                vector passed to ``setup_distribution``

        Returns:
            Sample vector of length K

        Raises:
            StaleCacheError: If the factor has not been assembled for these
                parameters
        """
        parameters = self._resolve_parameters(parameters, "draw_sample")
        sample = draw_sample(parameters, self._state.factor_matrix, self._noise_source)
        self._state.num_draws += 1
        return sample

    draw_beta = draw_sample

    def draw_samples(self, num_samples: int) -> Matrix:
        """Draw ``num_samples`` independent samples as a (num_samples, K) array."""
        if num_samples < 0:
            raise_parameter_error(
                f"num_samples must be non-negative, got {num_samples}",
                param_name="num_samples",
                param_value=num_samples,
                constraint="num_samples >= 0"
            )
        samples = np.empty((num_samples, self.num_attributes), dtype=np.float64)
        for i in range(num_samples):
            samples[i] = self.draw_sample()
        return samples

    def precompute_for_sample(self, sample: Vector,
                              parameters: Optional[ParameterVector] = None) -> Vector:
        """Recover and cache the noise behind ``sample``.

        Returns:
            Copy of the recovered noise vector

        Raises:
            StaleCacheError: If the factor has not been assembled for these
                parameters
            DegenerateFactorError: If the factor is singular
        """
        parameters = self._resolve_parameters(parameters, "precompute_for_sample")
        sample = validate_vector(sample, self.num_attributes, "sample").copy()

        noise = precompute_for_sample(parameters, sample, self._state.factor_matrix)

        self._state.recovered_noise = noise
        self._state.noise_sample = sample
        self._state.noise_draw = self._state.num_draws
        logger.debug(f"Recovered noise for draw {self._state.num_draws}")
        return noise.copy()

    sampling_accumulate_precompute = precompute_for_sample

    def jacobian_entry(self, parameter_index: int, output_index: int) -> float:
        """Derivative of ``sample[output_index]`` w.r.t. ``parameters[parameter_index]``.

        Raises:
            StaleCacheError: If the noise has not been recovered for the
                current sample
            ParameterError: If an index is out of range
        """
        noise = self._require_noise("jacobian_entry")
        return jacobian_entry(self._layout, noise, parameter_index, output_index)

    def attribute_gradient(self) -> Matrix:
        """Full P x K Jacobian for the current sample."""
        return attribute_gradient(self._layout, self._require_noise("attribute_gradient"))

    def covariance(self) -> CovarianceMatrix:
        """Covariance of the distribution, ``C @ C.T``."""
        self._require_setup("covariance")
        factor = self._state.factor_matrix
        return factor @ factor.T

    def numerical_attribute_gradient(self, noise: Optional[Vector] = None,
                                     epsilon: Optional[float] = None) -> Matrix:
        """Finite-difference counterpart of :meth:`attribute_gradient`.

        Each parameter is perturbed with the noise held fixed and the factor
        reassembled, so the result checks the layout tables independently.

        Args:
            noise: Noise vector to hold fixed. Defaults to the recovered noise
                for the current sample
            epsilon: Finite-difference step

        Returns:
            P x K matrix of central differences
        """
        parameters = self._require_setup("numerical_attribute_gradient")
        if noise is None:
            noise = self._require_noise("numerical_attribute_gradient")
        noise = validate_vector(noise, self.num_attributes, "noise")

        def sample_at(theta: Vector) -> Vector:
            return draw_sample_from_noise(theta, assemble_factor(theta, self._layout), noise)

        return jacobian(sample_at, parameters, epsilon=epsilon).T
