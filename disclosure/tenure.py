"""
Tenure bucketing.

Exact years of experience are replaced by one of three coarse categories
before a submission is stored. The transform is one-way: once a bucket is
assigned the exact value is erased and nothing in this package derives it
back from a bucket.

Bucket table (single source of the boundaries):
    0-5 years   : 0  .. 5
    6-15 years  : 6  .. 15
    16+ years   : 16 .. (open ended)
"""

import math
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from disclosure.errors import InvalidInputError


logger = logging.getLogger(__name__)


EXACT_YEARS_FIELD = "tenure_exact_years"
BUCKET_FIELD = "tenure_bucket"
APPLIED_FIELD = "tenure_bucket_applied"

# The open top bucket has no true midpoint. This value is a disclosed
# methodology choice, not a property of the data.
OPEN_BUCKET_MIDPOINT = 20.0


class TenureBucket(Enum):
    """Coarse years-of-experience categories."""
    EARLY_CAREER = "0-5 years"
    MID_CAREER = "6-15 years"
    SENIOR = "16+ years"

    @classmethod
    def from_label(cls, label: Any) -> "TenureBucket":
        """Parse a canonical bucket literal (or pass a bucket through)."""
        if isinstance(label, cls):
            return label
        for bucket in cls:
            if bucket.value == label:
                return bucket
        raise InvalidInputError(f"Invalid tenure bucket: {label!r}")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TenureBucketConfig:
    """Boundaries of one tenure bucket."""
    bucket: TenureBucket
    min_years: int
    max_years: Optional[int]  # None for the open-ended top bucket

    @property
    def is_open_ended(self) -> bool:
        return self.max_years is None

    def contains(self, years: int) -> bool:
        if years < self.min_years:
            return False
        return self.max_years is None or years <= self.max_years


TENURE_BUCKETS: List[TenureBucketConfig] = [
    TenureBucketConfig(TenureBucket.EARLY_CAREER, 0, 5),
    TenureBucketConfig(TenureBucket.MID_CAREER, 6, 15),
    TenureBucketConfig(TenureBucket.SENIOR, 16, None),
]


@dataclass(frozen=True)
class TenureInformationLoss:
    """Precision lost by reporting a bucket instead of exact years."""
    bucket: TenureBucket
    width: float
    precision_loss: float  # Percentage (0-100)


def _coerce_years(years: Any) -> int:
    """Accept integers and integral floats, reject everything else."""
    if isinstance(years, bool):
        raise InvalidInputError(f"Years of experience must be a number, got {years!r}")
    if isinstance(years, int):
        value = years
    elif isinstance(years, float):
        if not math.isfinite(years) or not years.is_integer():
            raise InvalidInputError(f"Years of experience must be a whole number, got {years!r}")
        value = int(years)
    else:
        # numpy integers and similar expose __index__
        try:
            value = years.__index__()
        except (AttributeError, TypeError):
            raise InvalidInputError(
                f"Years of experience must be a number, got {type(years).__name__}"
            ) from None
    if value < 0:
        raise InvalidInputError(f"Years of experience must be non-negative, got {value}")
    return value


def bucket_of(years: Any) -> TenureBucket:
    """
    Convert exact years of experience to a tenure bucket.

    Args:
        years: Exact years of experience (non-negative whole number)

    Returns:
        The bucket whose range contains ``years``

    Raises:
        InvalidInputError: On negative, fractional or non-numeric input
    """
    value = _coerce_years(years)
    for config in TENURE_BUCKETS:
        if config.contains(value):
            return config.bucket
    # The table is contiguous from 0 with an open top, so this is unreachable
    raise InvalidInputError(f"No tenure bucket covers {value} years")


def get_bucket_config(bucket: Any) -> TenureBucketConfig:
    """Get the boundary configuration for a bucket (or bucket literal)."""
    bucket = TenureBucket.from_label(bucket)
    for config in TENURE_BUCKETS:
        if config.bucket is bucket:
            return config
    raise InvalidInputError(f"Invalid tenure bucket: {bucket!r}")


def all_buckets() -> List[TenureBucket]:
    """All buckets in ascending order."""
    return [config.bucket for config in TENURE_BUCKETS]


def midpoint(bucket: Any, open_ended_midpoint: float = OPEN_BUCKET_MIDPOINT) -> float:
    """
    Midpoint years of a bucket.

    For the open-ended bucket there is no midpoint; ``open_ended_midpoint``
    is returned instead and must be disclosed as a methodology choice.
    """
    config = get_bucket_config(bucket)
    if config.is_open_ended:
        return float(open_ended_midpoint)
    return (config.min_years + config.max_years) / 2


def width(bucket: Any) -> float:
    """Width of a bucket in years; ``math.inf`` for the open-ended bucket."""
    config = get_bucket_config(bucket)
    if config.is_open_ended:
        return math.inf
    return float(config.max_years - config.min_years + 1)


def information_loss(years: Any) -> TenureInformationLoss:
    """
    Precision lost when ``years`` is reported as its bucket.

    Loss is (width - 1) / width as a percentage. The open bucket has
    unbounded width, so the loss is its limit, 100%.
    """
    bucket = bucket_of(years)
    bucket_width = width(bucket)
    if math.isinf(bucket_width):
        return TenureInformationLoss(bucket=bucket, width=bucket_width, precision_loss=100.0)
    loss = (bucket_width - 1) / bucket_width * 100
    return TenureInformationLoss(bucket=bucket, width=bucket_width, precision_loss=loss)


def apply_bucketing(submission: Mapping[str, Any], exact_years: Any = None) -> Dict[str, Any]:
    """
    Replace exact years in a submission with a tenure bucket.

    Precedence: ``exact_years`` argument, then the submission's own exact
    years, then an already present bucket. The returned mapping always has
    the exact-years field set to None. The input is not modified.

    Raises:
        InvalidInputError: On invalid years or an invalid existing bucket
    """
    result = dict(submission)

    if exact_years is None:
        exact_years = submission.get(EXACT_YEARS_FIELD)

    if exact_years is not None:
        result[BUCKET_FIELD] = bucket_of(exact_years).value
        result[APPLIED_FIELD] = True
    elif submission.get(BUCKET_FIELD) is not None:
        result[BUCKET_FIELD] = TenureBucket.from_label(submission[BUCKET_FIELD]).value
        result[APPLIED_FIELD] = True
    else:
        result[APPLIED_FIELD] = False

    result[EXACT_YEARS_FIELD] = None
    return result


def validate(submission: Mapping[str, Any]) -> List[str]:
    """
    Check that a submission carries no exact tenure.

    Returns:
        List of violations (empty when the submission is compliant)
    """
    violations: List[str] = []
    exact = submission.get(EXACT_YEARS_FIELD)
    bucket = submission.get(BUCKET_FIELD)

    if exact is not None and bucket is not None:
        violations.append("Submission carries both exact tenure years and a tenure bucket")
    elif exact is not None:
        violations.append("Exact tenure years should not be stored")

    if bucket is not None:
        try:
            TenureBucket.from_label(bucket)
        except InvalidInputError:
            violations.append(f"Invalid tenure bucket: {bucket!r}")

    if violations:
        logger.debug(f"Tenure validation found {len(violations)} violation(s)")
    return violations


def privacy_explanation() -> str:
    """Explain the privacy gain from tenure bucketing."""
    lines = []
    for config in TENURE_BUCKETS:
        if config.is_open_ended:
            lines.append(f"- {config.bucket.value}: {config.min_years} years and above")
        else:
            lines.append(f"- {config.bucket.value}: {config.min_years} to {config.max_years} years")

    return (
        "Tenure bucketing protects teacher identity by replacing exact years of "
        "experience with coarse categories. Exact years combined with district "
        "and subject could single out individuals in small schools; buckets make "
        "each category shared by many respondents.\n\n"
        "Buckets:\n" + "\n".join(lines) + "\n\n"
        "Exact years are discarded when the bucket is assigned and are never stored."
    )
