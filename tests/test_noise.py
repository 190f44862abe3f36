"""
Laplace Mechanism Correctness Tests.

1. STATISTICAL TESTS
   - Mean absolute deviation matches the Laplace scale
   - Kolmogorov-Smirnov test against Laplace(0, sensitivity/epsilon)
2. CORRECTNESS TESTS
   - Non-negativity enforcement (clamp at zero)
   - Fresh noise on every call with the secure default source
   - Methodology disclosure generated from the applied parameters
"""

import warnings

import numpy as np
import pytest
from scipy import stats as scipy_stats

from disclosure.config import PrivacyConfig
from disclosure.errors import InvalidInputError, NoiseSanityWarning
from disclosure.noise import (
    LaplaceNoiser,
    MethodologyRecord,
    SecureRNG,
    add_noise,
    laplace_from_uniform,
)


class FixedUniform:
    """Replays a fixed sequence of uniform draws."""

    def __init__(self, values):
        self.values = list(values)

    def uniform(self, low=0.0, high=1.0, size=None):
        if size is None:
            return self.values.pop(0)
        out = [self.values.pop(0) for _ in range(size)]
        return np.array(out, dtype=np.float64)


def seeded_noiser(seed=12345, **config):
    return LaplaceNoiser(PrivacyConfig(**config), rng=np.random.default_rng(seed))


def test_noisy_count_is_non_negative():
    noiser = seeded_noiser()
    for count in (0, 1, 2, 100):
        for _ in range(2000):
            assert noiser.add_noise(count) >= 0


def test_mean_absolute_deviation_matches_scale():
    noiser = seeded_noiser()
    draws = np.array([noiser.add_noise(100, epsilon=1.0) for _ in range(10_000)])

    assert draws.min() >= 0
    mad = np.mean(np.abs(draws - 100))
    # E|Laplace(b)| = b = 1, std of |noise| = 1 -> standard error 0.01
    assert abs(mad - 1.0) < 0.1


def test_scale_follows_epsilon():
    noiser = seeded_noiser(seed=7)
    draws = np.array([noiser.add_noise(1000, epsilon=0.5) for _ in range(10_000)])
    assert abs(np.mean(np.abs(draws - 1000)) - 2.0) < 0.2


def test_distribution_is_laplace():
    noiser = seeded_noiser(seed=2024)
    noise = np.array([noiser.add_noise(10_000) for _ in range(5_000)]) - 10_000
    statistic, p_value = scipy_stats.kstest(noise, "laplace", args=(0, 1.0))
    assert p_value > 0.001, f"KS statistic {statistic:.4f}"


def test_inverse_cdf_transform():
    assert laplace_from_uniform(0.0, 1.0) == 0.0
    assert laplace_from_uniform(0.25, 1.0) == pytest.approx(np.log(2))
    assert laplace_from_uniform(-0.25, 2.0) == pytest.approx(-2 * np.log(2))


def test_clamp_at_zero_with_fixed_draw():
    noiser = LaplaceNoiser(rng=FixedUniform([-0.49]))
    assert noiser.add_noise(0) == 0.0


def test_undefined_draw_is_redrawn():
    noiser = LaplaceNoiser(rng=FixedUniform([-0.5, 0.25]))
    assert noiser.add_noise(10) == pytest.approx(10 + np.log(2))


def test_default_source_gives_fresh_noise():
    noiser = LaplaceNoiser()
    assert isinstance(noiser.rng, SecureRNG)
    draws = {noiser.add_noise(50) for _ in range(20)}
    assert len(draws) > 1
    assert len({add_noise(50) for _ in range(20)}) > 1


def test_secure_rng_range():
    rng = SecureRNG()
    values = rng.uniform(-0.5, 0.5, size=1000)
    assert values.shape == (1000,)
    assert values.min() >= -0.5 and values.max() < 0.5
    with pytest.raises(ValueError):
        rng.uniform(1.0, 1.0)


def test_add_noise_array():
    noiser = seeded_noiser(seed=99)
    counts = np.array([[0, 5], [100, 20]])
    noisy = noiser.add_noise_array(counts)

    assert noisy.shape == counts.shape
    assert (noisy >= 0).all()
    assert not np.array_equal(noisy, counts.astype(float))


def test_add_noise_array_rejects_invalid_counts():
    noiser = seeded_noiser()
    with pytest.raises(InvalidInputError):
        noiser.add_noise_array(np.array([1, -1]))
    with pytest.raises(InvalidInputError):
        noiser.add_noise_array(np.array([1.5, 2.0]))


@pytest.mark.parametrize("kwargs", [
    {"epsilon": 0},
    {"epsilon": -1.0},
    {"epsilon": float("inf")},
    {"sensitivity": 0},
])
def test_invalid_parameters_raise(kwargs):
    with pytest.raises(InvalidInputError):
        seeded_noiser().add_noise(10, **kwargs)


def test_invalid_count_raises():
    with pytest.raises(InvalidInputError):
        seeded_noiser().add_noise(-3)


def test_perturb_records_applied_parameters():
    noiser = seeded_noiser(epsilon=0.5, sensitivity=2)
    result = noiser.perturb(40)

    assert result.methodology == MethodologyRecord(epsilon=0.5, sensitivity=2.0)
    assert result.methodology.scale == 4.0
    assert result.methodology.clamped_at_zero is True
    assert result.noisy_count >= 0


def test_sanity_check_passes_small_deviation():
    noiser = seeded_noiser()
    check = noiser.sanity_check(100, 102.5)
    assert check.is_valid is True
    assert check.deviation == pytest.approx(2.5)
    assert check.warning is None


def test_sanity_check_warns_but_does_not_raise():
    noiser = seeded_noiser()
    with pytest.warns(NoiseSanityWarning):
        check = noiser.sanity_check(100, 120)
    assert check.is_valid is False
    assert check.deviation == 20
    assert "Large DP noise" in check.warning
    assert check.tail_probability == pytest.approx(np.exp(-20))


def test_sanity_check_custom_bound():
    noiser = seeded_noiser()
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert noiser.sanity_check(100, 120, max_deviation=25).is_valid is True


def test_methodology_text_tracks_configuration():
    default_text = seeded_noiser().methodology_text()
    assert "ε=1" in default_text
    assert "Lap(1)" in default_text
    assert "clamped at zero" in default_text

    custom = seeded_noiser(epsilon=0.25, sensitivity=1)
    text = custom.methodology_text()
    assert "ε=0.25" in text
    assert "Lap(4)" in text
    assert "ε=1)" not in text


def test_methodology_text_with_explicit_parameters():
    text = seeded_noiser().methodology_text(epsilon=2.0, sensitivity=1)
    assert "Privacy parameter (ε): 2" in text
    assert "Lap(0.5)" in text
