"""
Laplace Mechanism for published counts.

A count that has cleared the suppression cascade is perturbed with
Laplace(scale = sensitivity / epsilon) noise before publication:

    u     ~ Uniform(-0.5, 0.5)
    noise = -scale * sign(u) * ln(1 - 2|u|)
    out   = max(0, count + noise)

The clamp at zero is a deliberate deviation from the unbiased textbook
mechanism (it biases small counts upward) and is stated in the methodology
disclosure.

The noise must differ on every call: reusing a draw for repeated queries of
one cell lets an attacker average it away. The default randomness source is
therefore cryptographically secure, and tests inject a seeded generator.

Reference:
    Dwork, McSherry, Nissim & Smith (2006), "Calibrating Noise to
    Sensitivity in Private Data Analysis"
"""

import math
import secrets
import logging
import warnings
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

import numpy as np

from disclosure.config import PrivacyConfig
from disclosure.errors import InvalidInputError, NoiseSanityWarning
from disclosure.cells import validate_count


logger = logging.getLogger(__name__)


MECHANISM_NAME = "Laplace"


# ============================================================================
# Random Number Generation
# ============================================================================

class UniformSource(Protocol):
    """Anything that draws uniform floats, e.g. numpy.random.Generator."""

    def uniform(self, low: float = 0.0, high: float = 1.0, size: Any = None) -> Any:
        ...


class SecureRNG:
    """
    Cryptographically secure random number generator.
    Uses secrets module for production security.
    """

    _BITS = 53  # Full double precision mantissa

    def _unit(self) -> float:
        """Uniform float in [0, 1)."""
        return secrets.randbits(self._BITS) / (1 << self._BITS)

    def uniform(
        self,
        low: float = 0.0,
        high: float = 1.0,
        size: Optional[int] = None
    ) -> Union[float, np.ndarray]:
        """
        Generate uniform floats in [low, high).

        Args:
            low: Lower bound (inclusive)
            high: Upper bound (exclusive)
            size: Number of samples. None returns a single float.

        Returns:
            Random float, or array of floats when size is given
        """
        if high <= low:
            raise ValueError(f"high ({high}) must be greater than low ({low})")
        span = high - low
        if size is None:
            return low + span * self._unit()
        return np.array([low + span * self._unit() for _ in range(int(size))], dtype=np.float64)


# Default RNG factory - use secure RNG for production
_rng_factory = SecureRNG


def get_rng() -> SecureRNG:
    """Get a new RNG instance."""
    return _rng_factory()


# ============================================================================
# Result Types
# ============================================================================

@dataclass(frozen=True)
class MethodologyRecord:
    """Parameters of the mechanism as actually applied."""
    epsilon: float
    sensitivity: float
    mechanism: str = MECHANISM_NAME
    clamped_at_zero: bool = True

    @property
    def scale(self) -> float:
        return self.sensitivity / self.epsilon


@dataclass(frozen=True)
class DPNoiseResult:
    """A published noisy count. The true count is deliberately not kept."""
    noisy_count: float
    methodology: MethodologyRecord


@dataclass(frozen=True)
class NoiseSanityResult:
    """Outcome of the operational noise check."""
    is_valid: bool
    deviation: float
    tail_probability: float  # P(|Laplace noise| > deviation) under the configured scale
    warning: Optional[str] = None


# ============================================================================
# Helpers
# ============================================================================

def _check_parameters(epsilon: float, sensitivity: float) -> None:
    if isinstance(epsilon, bool) or not isinstance(epsilon, (int, float)) \
            or not math.isfinite(epsilon) or epsilon <= 0:
        raise InvalidInputError(f"epsilon must be a finite value > 0, got {epsilon!r}")
    if isinstance(sensitivity, bool) or not isinstance(sensitivity, (int, float)) \
            or not math.isfinite(sensitivity) or sensitivity <= 0:
        raise InvalidInputError(f"sensitivity must be a finite value > 0, got {sensitivity!r}")


def _sign(u: float) -> float:
    if u > 0:
        return 1.0
    if u < 0:
        return -1.0
    return 0.0


def laplace_from_uniform(u: float, scale: float) -> float:
    """Inverse-CDF transform of u in (-0.5, 0.5) to Laplace(0, scale)."""
    return -scale * _sign(u) * math.log(1 - 2 * abs(u))


# ============================================================================
# Noiser
# ============================================================================

class LaplaceNoiser:
    """
    Applies calibrated Laplace noise to published counts.

    The disclosed methodology is generated from the same parameters the
    noiser applies, so the two cannot drift apart.
    """

    def __init__(
        self,
        config: Optional[PrivacyConfig] = None,
        rng: Optional[UniformSource] = None
    ):
        """
        Initialize the noiser.

        Args:
            config: Privacy configuration with epsilon, sensitivity and the
                    sanity-check deviation bound.
            rng: Uniform randomness source. Defaults to SecureRNG; inject a
                 seeded numpy Generator for tests.
        """
        self.config = config or PrivacyConfig()
        _check_parameters(self.config.epsilon, self.config.sensitivity)
        self.rng = rng if rng is not None else get_rng()

        logger.debug(
            f"LaplaceNoiser initialized: epsilon={self.epsilon}, sensitivity={self.sensitivity}, "
            f"rng={type(self.rng).__name__}"
        )

    @property
    def epsilon(self) -> float:
        return self.config.epsilon

    @property
    def sensitivity(self) -> float:
        return self.config.sensitivity

    def _draw_uniform(self) -> float:
        # ln(0) at u = -0.5 is undefined, so that draw is redrawn
        while True:
            u = float(self.rng.uniform(-0.5, 0.5))
            if 1 - 2 * abs(u) > 0:
                return u

    def add_noise(
        self,
        count: int,
        epsilon: Optional[float] = None,
        sensitivity: Optional[float] = None
    ) -> float:
        """
        Add Laplace noise to a count.

        Args:
            count: True count (non-negative integer)
            epsilon: Privacy parameter. Defaults to the configured epsilon.
            sensitivity: Query sensitivity. Defaults to the configured value.

        Returns:
            Noisy count, clamped to be non-negative
        """
        count = validate_count(count)
        epsilon = self.epsilon if epsilon is None else epsilon
        sensitivity = self.sensitivity if sensitivity is None else sensitivity
        _check_parameters(epsilon, sensitivity)

        scale = sensitivity / epsilon
        noise = laplace_from_uniform(self._draw_uniform(), scale)
        return max(0.0, count + noise)

    def add_noise_array(self, counts: Any) -> np.ndarray:
        """
        Add independent Laplace noise to every count of an array.

        Args:
            counts: Array-like of non-negative integer counts

        Returns:
            Float array of noisy counts with the same shape, clamped at zero
        """
        counts = np.asarray(counts)
        if counts.size and not np.issubdtype(counts.dtype, np.integer):
            raise InvalidInputError(f"Counts must be integers, got dtype {counts.dtype}")
        if counts.size and counts.min() < 0:
            raise InvalidInputError("Counts must be non-negative")

        scale = self.sensitivity / self.epsilon
        u = np.asarray(self.rng.uniform(-0.5, 0.5, size=counts.size), dtype=np.float64)

        # Redraw any u = -0.5 (ln(0))
        bad = (1 - 2 * np.abs(u)) <= 0
        while bad.any():
            u[bad] = np.asarray(self.rng.uniform(-0.5, 0.5, size=int(bad.sum())), dtype=np.float64)
            bad = (1 - 2 * np.abs(u)) <= 0

        noise = -scale * np.sign(u) * np.log(1 - 2 * np.abs(u))
        noisy = counts.reshape(-1).astype(np.float64) + noise
        return np.maximum(0.0, noisy).reshape(counts.shape)

    def perturb(self, count: int) -> DPNoiseResult:
        """Noise a count with the configured parameters and record them."""
        return DPNoiseResult(
            noisy_count=self.add_noise(count),
            methodology=self.methodology(),
        )

    def sanity_check(
        self,
        true_count: float,
        noisy_count: float,
        epsilon: Optional[float] = None,
        max_deviation: Optional[float] = None
    ) -> NoiseSanityResult:
        """
        Flag implausibly large noise as a possible pipeline bug.

        This is an operational guard, not a privacy proof. A failed check
        emits a NoiseSanityWarning and a log warning; it never blocks
        publication.
        """
        epsilon = self.epsilon if epsilon is None else epsilon
        max_deviation = self.config.max_noise_deviation if max_deviation is None else max_deviation
        _check_parameters(epsilon, self.sensitivity)

        deviation = abs(noisy_count - true_count)
        tail_probability = math.exp(-deviation * epsilon / self.sensitivity)

        if deviation > max_deviation:
            warning = (f"Large DP noise detected: {deviation:.1f} count difference "
                       f"(bound {max_deviation}, epsilon={epsilon}, "
                       f"probability {tail_probability:.2e})")
            logger.warning(warning)
            warnings.warn(warning, NoiseSanityWarning, stacklevel=2)
            return NoiseSanityResult(
                is_valid=False,
                deviation=deviation,
                tail_probability=tail_probability,
                warning=warning,
            )

        return NoiseSanityResult(is_valid=True, deviation=deviation, tail_probability=tail_probability)

    def methodology(self) -> MethodologyRecord:
        """Record of the configured mechanism parameters."""
        return MethodologyRecord(epsilon=float(self.epsilon), sensitivity=float(self.sensitivity))

    def methodology_text(
        self,
        epsilon: Optional[float] = None,
        sensitivity: Optional[float] = None
    ) -> str:
        """Human-readable disclosure of the mechanism, built from live parameters."""
        epsilon = self.epsilon if epsilon is None else epsilon
        sensitivity = self.sensitivity if sensitivity is None else sensitivity
        _check_parameters(epsilon, sensitivity)
        return methodology_text(MethodologyRecord(epsilon=float(epsilon), sensitivity=float(sensitivity)))


def _fmt(value: float) -> str:
    return f"{value:g}"


def methodology_text(record: MethodologyRecord) -> str:
    """Render the methodology disclosure for a record."""
    return "\n".join([
        f"Differential Privacy (ε={_fmt(record.epsilon)}) is applied to published counts.",
        "",
        f"Method: {record.mechanism} mechanism",
        f"Privacy parameter (ε): {_fmt(record.epsilon)}",
        f"Sensitivity (Δf): {_fmt(record.sensitivity)}",
        f"Noise scale: Lap(Δf/ε) = Lap({_fmt(record.scale)})",
        f"Expected absolute noise: {_fmt(record.scale)} count(s)",
        "",
        "Post-processing: noisy counts are clamped at zero. This keeps published "
        "counts non-negative but biases small counts upward, so published values "
        "are not unbiased estimates of the true counts.",
        "",
        "Each query receives fresh noise; repeated queries on one cell compose "
        "and consume additional privacy budget.",
        "",
        "Cells with fewer respondents than the minimum cell size are suppressed "
        "before noise is applied.",
    ])


_default_noiser = LaplaceNoiser()


def add_noise(count: int, epsilon: Optional[float] = None, sensitivity: Optional[float] = None) -> float:
    """Add Laplace noise to a count using the default configuration and secure source."""
    return _default_noiser.add_noise(count, epsilon=epsilon, sensitivity=sensitivity)
