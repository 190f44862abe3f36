"""
Configuration management for the Survey Disclosure Control engine.
Handles loading, validation, and access to methodology parameters.

The module-level constants are the single source of truth for the published
methodology. Changing any of them changes the methodology fingerprint and
requires a METHODOLOGY_VERSION bump.
"""

import configparser
import hashlib
import json
import logging
import math
import os
from dataclasses import dataclass, field

from disclosure.tenure import TENURE_BUCKETS, OPEN_BUCKET_MIDPOINT


logger = logging.getLogger(__name__)


# Minimum cell size for publication (k-anonymity threshold)
MIN_CELL_SIZE = 20

# Laplace mechanism defaults for published counts
DEFAULT_EPSILON = 1.0
DEFAULT_SENSITIVITY = 1

# Operational guard for the noise sanity check (counts, not a privacy bound)
DEFAULT_MAX_NOISE_DEVIATION = 5.0

METHODOLOGY_VERSION = "1.0"


@dataclass
class PrivacyConfig:
    """Statistical Disclosure Control configuration."""

    # k-anonymity threshold shared by the rule cascade and gating
    min_cell_size: int = MIN_CELL_SIZE

    # Differential privacy on published counts
    apply_dp_noise: bool = True
    epsilon: float = DEFAULT_EPSILON
    sensitivity: float = DEFAULT_SENSITIVITY
    max_noise_deviation: float = DEFAULT_MAX_NOISE_DEVIATION

    # Reported midpoint of the open-ended top tenure bucket (methodology choice)
    open_bucket_midpoint: float = OPEN_BUCKET_MIDPOINT

    methodology_version: str = METHODOLOGY_VERSION

    @property
    def noise_scale(self) -> float:
        """Laplace scale b = sensitivity / epsilon."""
        return self.sensitivity / self.epsilon

    def validate(self) -> None:
        """Validate SDC configuration."""
        if isinstance(self.min_cell_size, bool) or not isinstance(self.min_cell_size, int):
            raise ValueError(f"min_cell_size must be an integer, got {self.min_cell_size!r}")
        if self.min_cell_size < 1:
            raise ValueError(f"min_cell_size must be >= 1, got {self.min_cell_size}")

        if not math.isfinite(self.epsilon) or self.epsilon <= 0:
            raise ValueError(f"epsilon must be a finite value > 0, got {self.epsilon}")

        if not math.isfinite(self.sensitivity) or self.sensitivity <= 0:
            raise ValueError(f"sensitivity must be a finite value > 0, got {self.sensitivity}")

        if self.max_noise_deviation <= 0:
            raise ValueError(f"max_noise_deviation must be > 0, got {self.max_noise_deviation}")

        upper_closed = max(c.max_years for c in TENURE_BUCKETS if c.max_years is not None)
        if self.open_bucket_midpoint <= upper_closed:
            raise ValueError(
                f"open_bucket_midpoint must lie inside the open bucket (> {upper_closed}), "
                f"got {self.open_bucket_midpoint}"
            )

        if not self.methodology_version:
            raise ValueError("methodology_version must be specified")

    def methodology_fingerprint(self) -> str:
        """
        Hash of every constant a published snapshot depends on.

        Snapshots store this value so they are never silently reinterpreted
        under different constants.
        """
        payload = {
            "version": self.methodology_version,
            "min_cell_size": self.min_cell_size,
            "apply_dp_noise": self.apply_dp_noise,
            "epsilon": float(self.epsilon),
            "sensitivity": float(self.sensitivity),
            "tenure_buckets": [
                [c.bucket.value, c.min_years, c.max_years] for c in TENURE_BUCKETS
            ],
        }
        encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass
class AuditConfig:
    """Audit record configuration."""
    enabled: bool = True
    record_published: bool = True  # Also record decisions that published data

    def validate(self) -> None:
        """Validate audit configuration."""
        if self.record_published and not self.enabled:
            logger.warning("audit.record_published is set but auditing is disabled")


@dataclass
class Config:
    """Main configuration container."""
    privacy: PrivacyConfig = field(default_factory=PrivacyConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)

    def validate(self) -> None:
        """Validate entire configuration."""
        self.privacy.validate()
        self.audit.validate()
        logger.info("Configuration validated successfully")

    @classmethod
    def from_ini(cls, config_path: str) -> "Config":
        """Load configuration from INI file."""
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Config file not found: {config_path}")

        parser = configparser.ConfigParser()
        parser.read(config_path, encoding='utf-8')

        config = cls()

        # Load privacy section
        if 'privacy' in parser:
            sec = parser['privacy']

            if 'min_cell_size' in sec:
                config.privacy.min_cell_size = int(sec['min_cell_size'])

            # Parse differential privacy parameters
            if 'apply_dp_noise' in sec:
                config.privacy.apply_dp_noise = sec.getboolean('apply_dp_noise')
            if 'epsilon' in sec:
                config.privacy.epsilon = float(sec['epsilon'])
            if 'sensitivity' in sec:
                config.privacy.sensitivity = float(sec['sensitivity'])
            if 'max_noise_deviation' in sec:
                config.privacy.max_noise_deviation = float(sec['max_noise_deviation'])

            if 'open_bucket_midpoint' in sec:
                config.privacy.open_bucket_midpoint = float(sec['open_bucket_midpoint'])
            if 'methodology_version' in sec:
                config.privacy.methodology_version = sec['methodology_version'].strip()

        # Load audit section
        if 'audit' in parser:
            sec = parser['audit']
            config.audit.enabled = sec.getboolean('enabled', True)
            config.audit.record_published = sec.getboolean('record_published', True)

        logger.info(f"Configuration loaded from {config_path}")
        return config

    def to_ini(self, config_path: str) -> None:
        """Save configuration to INI file."""
        parser = configparser.ConfigParser()

        parser['privacy'] = {
            'min_cell_size': str(self.privacy.min_cell_size),
            'apply_dp_noise': str(self.privacy.apply_dp_noise).lower(),
            'epsilon': str(self.privacy.epsilon),
            'sensitivity': str(self.privacy.sensitivity),
            'max_noise_deviation': str(self.privacy.max_noise_deviation),
            'open_bucket_midpoint': str(self.privacy.open_bucket_midpoint),
            'methodology_version': self.privacy.methodology_version,
        }

        parser['audit'] = {
            'enabled': str(self.audit.enabled).lower(),
            'record_published': str(self.audit.record_published).lower(),
        }

        with open(config_path, 'w', encoding='utf-8') as f:
            parser.write(f)

        logger.info(f"Configuration saved to {config_path}")
