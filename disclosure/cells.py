"""
Aggregation Cell Model.

A cell is one (district x tenure x subject) slice with an observed
respondent count. Tenure and subject are optional; which of them are present
decides the cell's granularity.

Hierarchy (finest -> coarsest):
    District + Tenure + Subject
    District + Tenure        District + Subject
    District
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from disclosure.errors import InvalidInputError
from disclosure.tenure import TenureBucket


logger = logging.getLogger(__name__)


class Granularity(Enum):
    """Which identifying dimensions a slice carries (district is always present)."""
    DISTRICT_ONLY = "district_only"
    DISTRICT_TENURE = "district_tenure"
    DISTRICT_SUBJECT = "district_subject"
    DISTRICT_TENURE_SUBJECT = "district_tenure_subject"

    @classmethod
    def from_dimensions(cls, has_tenure: bool, has_subject: bool) -> "Granularity":
        if has_tenure and has_subject:
            return cls.DISTRICT_TENURE_SUBJECT
        if has_tenure:
            return cls.DISTRICT_TENURE
        if has_subject:
            return cls.DISTRICT_SUBJECT
        return cls.DISTRICT_ONLY


def validate_count(n: Any) -> int:
    """Respondent counts must be non-negative integers."""
    if isinstance(n, bool):
        raise InvalidInputError(f"Count must be an integer, got {n!r}")
    try:
        value = n.__index__()
    except (AttributeError, TypeError):
        raise InvalidInputError(f"Count must be an integer, got {type(n).__name__}") from None
    if value < 0:
        raise InvalidInputError(f"Count must be non-negative, got {value}")
    return value


def validate_identifier(value: Any, name: str) -> str:
    """District and subject identifiers must be non-empty strings."""
    if not isinstance(value, str):
        raise InvalidInputError(f"{name} must be a string, got {type(value).__name__}")
    stripped = value.strip()
    if not stripped:
        raise InvalidInputError(f"{name} must not be empty")
    return stripped


def normalize_dimensions(
    district: Any,
    tenure: Any = None,
    subject: Any = None
) -> Tuple[str, Optional[TenureBucket], Optional[str]]:
    """
    Validate and canonicalize slice dimensions.

    Tenure may be a TenureBucket or its literal; subject may be None.
    """
    district = validate_identifier(district, "district")
    bucket = TenureBucket.from_label(tenure) if tenure is not None else None
    subject = validate_identifier(subject, "subject") if subject is not None else None
    return district, bucket, subject


@dataclass(frozen=True)
class AggregationCell:
    """One slice and its observed respondent count."""
    district: str
    tenure: Optional[TenureBucket] = None
    subject: Optional[str] = None
    n: int = 0

    def __post_init__(self):
        district, tenure, subject = normalize_dimensions(self.district, self.tenure, self.subject)
        object.__setattr__(self, "district", district)
        object.__setattr__(self, "tenure", tenure)
        object.__setattr__(self, "subject", subject)
        object.__setattr__(self, "n", validate_count(self.n))

    @property
    def granularity(self) -> Granularity:
        return Granularity.from_dimensions(self.tenure is not None, self.subject is not None)

    @property
    def key(self) -> Tuple[str, Optional[str], Optional[str]]:
        """Hashable identity of the slice (without its count)."""
        return (self.district, self.tenure.value if self.tenure else None, self.subject)

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "AggregationCell":
        """Build a cell from a record with district/tenure_bucket/subject/n keys."""
        return cls(
            district=row.get("district"),
            tenure=row.get("tenure_bucket"),
            subject=row.get("subject"),
            n=row.get("n"),
        )


@dataclass(frozen=True)
class LadderCounts:
    """
    Counts for the three rungs of one district's aggregation ladder.

    Dropping a dimension can only add respondents, so each rung must be at
    least as large as the rung below it.
    """
    district_only: int
    district_tenure: int
    district_tenure_subject: int

    def __post_init__(self):
        for name in ("district_only", "district_tenure", "district_tenure_subject"):
            object.__setattr__(self, name, validate_count(getattr(self, name)))
        if self.district_tenure_subject > self.district_tenure:
            raise InvalidInputError(
                f"district_tenure_subject count ({self.district_tenure_subject}) exceeds "
                f"district_tenure count ({self.district_tenure})"
            )
        if self.district_tenure > self.district_only:
            raise InvalidInputError(
                f"district_tenure count ({self.district_tenure}) exceeds "
                f"district_only count ({self.district_only})"
            )

    @classmethod
    def from_mapping(cls, counts: Mapping[str, Any]) -> "LadderCounts":
        missing = [k for k in ("district_only", "district_tenure", "district_tenure_subject")
                   if k not in counts]
        if missing:
            raise InvalidInputError(f"Ladder counts missing keys: {missing}")
        return cls(
            district_only=counts["district_only"],
            district_tenure=counts["district_tenure"],
            district_tenure_subject=counts["district_tenure_subject"],
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "district_only": self.district_only,
            "district_tenure": self.district_tenure,
            "district_tenure_subject": self.district_tenure_subject,
        }
