"""
Tests for configuration defaults, validation and INI round trips.
"""

import pytest

from disclosure.config import (
    DEFAULT_EPSILON,
    DEFAULT_SENSITIVITY,
    MIN_CELL_SIZE,
    Config,
    PrivacyConfig,
)


def test_defaults():
    config = Config()
    assert config.privacy.min_cell_size == MIN_CELL_SIZE == 20
    assert config.privacy.epsilon == DEFAULT_EPSILON == 1.0
    assert config.privacy.sensitivity == DEFAULT_SENSITIVITY == 1
    assert config.privacy.noise_scale == 1.0
    assert config.privacy.apply_dp_noise is True
    assert config.audit.enabled is True
    config.validate()


@pytest.mark.parametrize("overrides", [
    {"min_cell_size": 0},
    {"min_cell_size": 2.5},
    {"epsilon": 0},
    {"epsilon": float("nan")},
    {"sensitivity": -1},
    {"max_noise_deviation": 0},
    {"open_bucket_midpoint": 10.0},
    {"methodology_version": ""},
])
def test_validation_rejects_bad_values(overrides):
    with pytest.raises(ValueError):
        PrivacyConfig(**overrides).validate()


def test_ini_roundtrip(tmp_path):
    """Methodology parameters survive a save/load cycle."""
    config1 = Config()
    config1.privacy.min_cell_size = 25
    config1.privacy.epsilon = 0.5
    config1.privacy.sensitivity = 2.0
    config1.privacy.max_noise_deviation = 12.0
    config1.privacy.apply_dp_noise = False
    config1.audit.record_published = False

    path = tmp_path / "config.ini"
    config1.to_ini(str(path))
    config2 = Config.from_ini(str(path))

    assert config2.privacy.min_cell_size == 25
    assert config2.privacy.epsilon == 0.5
    assert config2.privacy.sensitivity == 2.0
    assert config2.privacy.max_noise_deviation == 12.0
    assert config2.privacy.apply_dp_noise is False
    assert config2.audit.record_published is False
    assert config2.privacy.methodology_fingerprint() == config1.privacy.methodology_fingerprint()


def test_from_ini_partial_file(tmp_path):
    path = tmp_path / "partial.ini"
    path.write_text("[privacy]\nepsilon = 2.0\n", encoding="utf-8")

    config = Config.from_ini(str(path))
    assert config.privacy.epsilon == 2.0
    assert config.privacy.min_cell_size == MIN_CELL_SIZE


def test_from_ini_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config.from_ini(str(tmp_path / "missing.ini"))


def test_fingerprint_changes_with_methodology_constants():
    base = PrivacyConfig().methodology_fingerprint()
    assert PrivacyConfig().methodology_fingerprint() == base
    assert PrivacyConfig(min_cell_size=10).methodology_fingerprint() != base
    assert PrivacyConfig(epsilon=0.5).methodology_fingerprint() != base
    assert PrivacyConfig(methodology_version="2.0").methodology_fingerprint() != base
    # Integer and float sensitivity describe the same methodology
    assert PrivacyConfig(sensitivity=1.0).methodology_fingerprint() == base
