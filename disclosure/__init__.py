"""
Survey Disclosure Control
=========================
Statistical Disclosure Control engine for self-reported teacher survey data.

Decides for every requested slice whether it may be published, must be
rolled up to a coarser slice, or must be withheld:
- Tenure bucketing: exact years of experience -> 3 coarse categories
- k-anonymity cascade: district + tenure + subject -> district + tenure -> district
- Laplace noise on published counts, with a generated methodology disclosure
- Immutable audit entries for every suppression decision

Shared constants (minimum cell size 20, epsilon 1.0, sensitivity 1) live in
disclosure.config and are injected into every component.
"""

__version__ = "1.0.0"
__author__ = "Survey SDC Team"

from .config import Config, PrivacyConfig, AuditConfig, MIN_CELL_SIZE, METHODOLOGY_VERSION
from .errors import SDCError, InvalidInputError, ConfigurationDriftError, NoiseSanityWarning
from .tenure import TenureBucket, bucket_of, apply_bucketing
from .cells import AggregationCell, Granularity, LadderCounts
from .suppression import (
    AggregationLevel, SuppressionResult, SuppressionRuleEngine, AggregationLadder, explain, public_reason,
)
from .noise import LaplaceNoiser, DPNoiseResult, MethodologyRecord, NoiseSanityResult
from .gating import GatingThreshold
from .audit import SuppressionAuditEntry, AuditRepository, InMemoryAuditRepository
from .pipeline import DisclosurePipeline, PipelineResult, PublicationResult

__all__ = [
    # Config
    "Config", "PrivacyConfig", "AuditConfig", "MIN_CELL_SIZE", "METHODOLOGY_VERSION",
    # Errors
    "SDCError", "InvalidInputError", "ConfigurationDriftError", "NoiseSanityWarning",
    # Tenure
    "TenureBucket", "bucket_of", "apply_bucketing",
    # Cells
    "AggregationCell", "Granularity", "LadderCounts",
    # Suppression
    "AggregationLevel", "SuppressionResult", "SuppressionRuleEngine", "AggregationLadder", "explain",
    "public_reason",
    # Noise
    "LaplaceNoiser", "DPNoiseResult", "MethodologyRecord", "NoiseSanityResult",
    # Gating
    "GatingThreshold",
    # Audit
    "SuppressionAuditEntry", "AuditRepository", "InMemoryAuditRepository",
    # Pipeline
    "DisclosurePipeline", "PipelineResult", "PublicationResult",
]
