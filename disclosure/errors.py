"""
Error taxonomy for the disclosure control engine.

Suppressed and locked slices are ordinary results, not errors. Only
programmer-error input and methodology drift raise.
"""


class SDCError(Exception):
    """Base class for disclosure control errors."""


class InvalidInputError(SDCError, ValueError):
    """Negative counts, malformed identifiers or out-of-range values."""


class ConfigurationDriftError(SDCError, RuntimeError):
    """Two components disagree on a shared methodology constant."""


class NoiseSanityWarning(UserWarning):
    """Noise deviation is implausibly large for the configured epsilon."""
