"""
Suppression audit records.

Every cascade decision can be captured as an immutable entry that shows the
rule cascade ran and what it decided. Entries are never a source for
reconstructing suppressed values.

Persistence is an external concern: the engine only builds entries, and
writers depend on the AuditRepository interface below.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from disclosure.errors import InvalidInputError
from disclosure.suppression import SuppressionResult
from disclosure.tenure import TenureBucket
from disclosure.cells import normalize_dimensions, validate_count


logger = logging.getLogger(__name__)


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SuppressionAuditEntry:
    """Immutable record of one suppression decision."""
    timestamp: datetime
    district: str
    tenure: Optional[str]
    subject: Optional[str]
    n: int
    suppressed: bool
    rule_applied: Optional[str]
    aggregation_level: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "district": self.district,
            "tenure": self.tenure,
            "subject": self.subject,
            "n": self.n,
            "suppressed": self.suppressed,
            "rule_applied": self.rule_applied,
            "aggregation_level": self.aggregation_level,
        }


def record(
    district: str,
    tenure: Union[TenureBucket, str, None],
    subject: Optional[str],
    n: int,
    result: SuppressionResult,
    clock: Optional[Clock] = None
) -> SuppressionAuditEntry:
    """
    Build the audit entry for a cascade decision.

    No side effects; persisting the entry is the caller's job.

    Args:
        district: District of the evaluated slice
        tenure: Tenure bucket of the slice, None when absent
        subject: Subject of the slice, None when absent
        n: Respondent count that was evaluated
        result: Decision returned by the engine for this slice
        clock: Timestamp source, UTC now by default

    Raises:
        InvalidInputError: If n does not match the decision's n
    """
    district, bucket, subject = normalize_dimensions(district, tenure, subject)
    n = validate_count(n)
    if n != result.n:
        raise InvalidInputError(f"Audit count n={n} does not match decision n={result.n}")

    return SuppressionAuditEntry(
        timestamp=(clock or utc_now)(),
        district=district,
        tenure=bucket.value if bucket else None,
        subject=subject,
        n=n,
        suppressed=result.is_suppressed,
        rule_applied=result.rule_applied,
        aggregation_level=result.aggregation_level.value,
    )


class AuditRepository(ABC):
    """Append-only store for suppression audit entries."""

    @abstractmethod
    def append(self, entry: SuppressionAuditEntry) -> None:
        """Persist one entry. Entries are never updated or deleted."""

    @abstractmethod
    def entries(self) -> Tuple[SuppressionAuditEntry, ...]:
        """All stored entries in insertion order."""


class InMemoryAuditRepository(AuditRepository):
    """Process-local repository for tests and development."""

    def __init__(self):
        self._entries: List[SuppressionAuditEntry] = []

    def append(self, entry: SuppressionAuditEntry) -> None:
        if not isinstance(entry, SuppressionAuditEntry):
            raise InvalidInputError(f"Expected SuppressionAuditEntry, got {type(entry).__name__}")
        self._entries.append(entry)
        logger.debug(
            f"Audit entry stored: {entry.district} rule={entry.rule_applied} "
            f"suppressed={entry.suppressed}"
        )

    def entries(self) -> Tuple[SuppressionAuditEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
