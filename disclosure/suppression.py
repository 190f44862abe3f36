"""
Rare Combination Suppression for survey slices.

Implements the k-anonymity cascade: a slice whose respondent count is below
the minimum cell size is never published. Instead it is rolled up to a
coarser slice or, at district level, locked entirely.

Rule table (evaluated in order, first match wins):
    rule2: district + tenure + subject, n < k -> aggregate to district + tenure
    rule3: district + tenure,           n < k -> aggregate to district only
    rule4: district only,               n < k -> lock district
    rule1: any other slice,             n < k -> suppress
Slices with n >= k are published as requested.

Suppressed and locked slices are ordinary results, not errors.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence, Union

from disclosure.config import PrivacyConfig
from disclosure.errors import InvalidInputError
from disclosure.tenure import TenureBucket
from disclosure.cells import Granularity, LadderCounts, normalize_dimensions, validate_count


logger = logging.getLogger(__name__)


class AggregationLevel(Enum):
    """Level at which a slice may be shown."""
    FULL = "full"
    DISTRICT_TENURE = "district_tenure"
    DISTRICT_ONLY = "district_only"
    NONE = "none"


class SuppressionAction(Enum):
    """What a matching rule does with the slice."""
    SUPPRESS = "suppress"
    AGGREGATE_DISTRICT_TENURE = "aggregate_district_tenure"
    AGGREGATE_DISTRICT_ONLY = "aggregate_district_only"

    @property
    def aggregation_level(self) -> AggregationLevel:
        return _ACTION_LEVELS[self]


_ACTION_LEVELS = {
    SuppressionAction.SUPPRESS: AggregationLevel.NONE,
    SuppressionAction.AGGREGATE_DISTRICT_TENURE: AggregationLevel.DISTRICT_TENURE,
    SuppressionAction.AGGREGATE_DISTRICT_ONLY: AggregationLevel.DISTRICT_ONLY,
}


@dataclass(frozen=True)
class SliceQuery:
    """Validated input to the rule cascade."""
    district: str
    granularity: Granularity
    n: int
    tenure: Optional[TenureBucket] = None
    subject: Optional[str] = None


def _below_threshold(query: SliceQuery, threshold: int) -> bool:
    return query.n < threshold


@dataclass(frozen=True)
class SuppressionRule:
    """One entry of the ordered rule table."""
    rule_id: str
    description: str
    applies_to: FrozenSet[Granularity]
    action: SuppressionAction
    predicate: Callable[[SliceQuery, int], bool] = _below_threshold

    def matches(self, query: SliceQuery, threshold: int) -> bool:
        return query.granularity in self.applies_to and self.predicate(query, threshold)


SUPPRESSION_RULES: List[SuppressionRule] = [
    SuppressionRule(
        rule_id="rule2",
        description="If (district + tenure + subject) n < k, aggregate to (district + tenure)",
        applies_to=frozenset({Granularity.DISTRICT_TENURE_SUBJECT}),
        action=SuppressionAction.AGGREGATE_DISTRICT_TENURE,
    ),
    SuppressionRule(
        rule_id="rule3",
        description="If (district + tenure) n < k, aggregate to (district only)",
        applies_to=frozenset({Granularity.DISTRICT_TENURE}),
        action=SuppressionAction.AGGREGATE_DISTRICT_ONLY,
    ),
    SuppressionRule(
        rule_id="rule4",
        description="If district n < k, show the locked district state",
        applies_to=frozenset({Granularity.DISTRICT_ONLY}),
        action=SuppressionAction.SUPPRESS,
    ),
    SuppressionRule(
        rule_id="rule1",
        description="Never publish any slice where n < k",
        applies_to=frozenset(Granularity),
        action=SuppressionAction.SUPPRESS,
    ),
]


@dataclass(frozen=True)
class SuppressionResult:
    """Decision for one slice. Never mutated after creation."""
    is_suppressed: bool
    aggregation_level: AggregationLevel
    n: int
    min_required: int
    rule_applied: Optional[str] = None
    message: str = ""

    @property
    def remaining(self) -> int:
        """Responses still needed before this slice could be published."""
        return max(0, self.min_required - self.n)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "is_suppressed": self.is_suppressed,
            "aggregation_level": self.aggregation_level.value,
            "rule_applied": self.rule_applied,
            "n": self.n,
            "min_required": self.min_required,
            "message": self.message,
        }


@dataclass(frozen=True)
class AggregationLadder:
    """Cascade results for every rung of one district."""
    district: str
    district_only: SuppressionResult
    district_tenure: SuppressionResult
    district_tenure_subject: SuppressionResult

    def richest_publishable(self) -> Optional[Granularity]:
        """Finest granularity that may be shown, or None for a locked district."""
        if not self.district_tenure_subject.is_suppressed:
            return Granularity.DISTRICT_TENURE_SUBJECT
        if not self.district_tenure.is_suppressed:
            return Granularity.DISTRICT_TENURE
        if not self.district_only.is_suppressed:
            return Granularity.DISTRICT_ONLY
        return None

    def to_dict(self) -> Dict[str, Any]:
        richest = self.richest_publishable()
        return {
            "district": self.district,
            "district_only": self.district_only.to_dict(),
            "district_tenure": self.district_tenure.to_dict(),
            "district_tenure_subject": self.district_tenure_subject.to_dict(),
            "richest_publishable": richest.value if richest else None,
        }


class SuppressionRuleEngine:
    """
    Evaluates the suppression cascade for survey slices.

    The engine holds only its configuration and the rule table, so a single
    instance may be shared across threads.
    """

    def __init__(
        self,
        config: Optional[PrivacyConfig] = None,
        rules: Optional[Sequence[SuppressionRule]] = None
    ):
        """
        Initialize the engine.

        Args:
            config: Privacy configuration providing the minimum cell size.
            rules: Ordered rule table. Defaults to SUPPRESSION_RULES.
        """
        self.config = config or PrivacyConfig()
        self.rules: List[SuppressionRule] = list(rules if rules is not None else SUPPRESSION_RULES)

        uncovered = [g for g in Granularity if not any(g in r.applies_to for r in self.rules)]
        if uncovered:
            raise ValueError(
                f"Rule table does not cover granularities: {[g.value for g in uncovered]}"
            )

        logger.debug(
            f"SuppressionRuleEngine initialized: threshold={self.threshold}, rules={len(self.rules)}"
        )

    @property
    def threshold(self) -> int:
        return self.config.min_cell_size

    def evaluate(
        self,
        district: str,
        tenure: Union[TenureBucket, str, None],
        subject: Optional[str],
        n: int
    ) -> SuppressionResult:
        """
        Decide whether a slice may be published.

        Args:
            district: District identifier (required)
            tenure: Tenure bucket or its literal, None when absent
            subject: Subject identifier, None when absent
            n: Respondent count of the slice

        Returns:
            SuppressionResult for the slice

        Raises:
            InvalidInputError: On negative counts or malformed identifiers
        """
        district, tenure, subject = normalize_dimensions(district, tenure, subject)
        query = SliceQuery(
            district=district,
            granularity=Granularity.from_dimensions(tenure is not None, subject is not None),
            n=validate_count(n),
            tenure=tenure,
            subject=subject,
        )
        return self._decide(query)

    def evaluate_granularity(self, district: str, granularity: Granularity, n: int) -> SuppressionResult:
        """Evaluate a slice described by its granularity rather than its dimension values."""
        if not isinstance(granularity, Granularity):
            raise InvalidInputError(f"Unknown granularity: {granularity!r}")
        query = SliceQuery(
            district=normalize_dimensions(district)[0],
            granularity=granularity,
            n=validate_count(n),
        )
        return self._decide(query)

    def _decide(self, query: SliceQuery) -> SuppressionResult:
        for rule in self.rules:
            if rule.matches(query, self.threshold):
                logger.debug(
                    f"Slice {query.district} ({query.granularity.value}) n={query.n} "
                    f"suppressed by {rule.rule_id}"
                )
                return self._suppressed(query.n, rule)
        return self._published(query.n)

    def _suppressed(self, n: int, rule: SuppressionRule) -> SuppressionResult:
        return SuppressionResult(
            is_suppressed=True,
            aggregation_level=rule.action.aggregation_level,
            rule_applied=rule.rule_id,
            n=n,
            min_required=self.threshold,
            message=f"Insufficient data (n={n}, need ≥{self.threshold})",
        )

    def _published(self, n: int) -> SuppressionResult:
        return SuppressionResult(
            is_suppressed=False,
            aggregation_level=AggregationLevel.FULL,
            rule_applied=None,
            n=n,
            min_required=self.threshold,
            message=f"Data published (n={n})",
        )

    def check_all_aggregation_levels(
        self,
        district: str,
        counts: Union[LadderCounts, Mapping[str, int]]
    ) -> AggregationLadder:
        """
        Evaluate every rung of a district's aggregation ladder at once.

        Args:
            district: District identifier
            counts: LadderCounts or mapping with district_only, district_tenure
                    and district_tenure_subject keys

        Returns:
            AggregationLadder with one result per rung
        """
        if not isinstance(counts, LadderCounts):
            counts = LadderCounts.from_mapping(counts)

        return AggregationLadder(
            district=normalize_dimensions(district)[0],
            district_only=self.evaluate_granularity(
                district, Granularity.DISTRICT_ONLY, counts.district_only
            ),
            district_tenure=self.evaluate_granularity(
                district, Granularity.DISTRICT_TENURE, counts.district_tenure
            ),
            district_tenure_subject=self.evaluate_granularity(
                district, Granularity.DISTRICT_TENURE_SUBJECT, counts.district_tenure_subject
            ),
        )


def explain(result: SuppressionResult, shown_n: Optional[float] = None) -> str:
    """
    Explain a suppression decision in user-facing terms.

    Suppressed results state how many more responses unlock the next level
    of detail. Published results state the n shown: pass ``shown_n`` when
    the displayed count is the noisy one, otherwise the true n is quoted.
    """
    if not result.is_suppressed:
        if shown_n is None:
            return f"Data is published with n={result.n} responses."
        return f"Data is published with n≈{round(shown_n)} responses (includes privacy noise)."

    remaining = result.min_required - result.n

    if result.aggregation_level is AggregationLevel.DISTRICT_TENURE:
        return (f"Showing district + tenure aggregate. "
                f"Need {remaining} more responses for subject-level detail.")
    if result.aggregation_level is AggregationLevel.DISTRICT_ONLY:
        return (f"Showing district aggregate only. "
                f"Need {remaining} more responses for tenure-level detail.")
    if result.rule_applied == "rule4":
        return (f"District is locked. "
                f"Need {remaining} more responses to unlock district-level data.")
    return (f"Insufficient data for privacy (n={result.n}, need ≥{result.min_required}). "
            f"Need {remaining} more responses to show this slice.")


def public_reason(result: SuppressionResult) -> Optional[str]:
    """
    Reason for withholding a slice, safe to export alongside published data.

    Unlike ``message`` and ``explain`` it never states n or the shortfall,
    either of which gives away the suppressed count.
    """
    if not result.is_suppressed:
        return None

    k = result.min_required
    if result.aggregation_level is AggregationLevel.DISTRICT_TENURE:
        return f"Insufficient data for subject-level detail (need ≥{k}); see district + tenure aggregate."
    if result.aggregation_level is AggregationLevel.DISTRICT_ONLY:
        return f"Insufficient data for tenure-level detail (need ≥{k}); see district aggregate."
    if result.rule_applied == "rule4":
        return f"District locked: insufficient data for privacy (need ≥{k})."
    return f"Insufficient data for privacy (need ≥{k})."


_default_engine = SuppressionRuleEngine()


def evaluate(
    district: str,
    tenure: Union[TenureBucket, str, None],
    subject: Optional[str],
    n: int
) -> SuppressionResult:
    """Evaluate a slice with the default configuration."""
    return _default_engine.evaluate(district, tenure, subject, n)


def check_all_aggregation_levels(
    district: str,
    counts: Union[LadderCounts, Mapping[str, int]]
) -> AggregationLadder:
    """Evaluate a district's aggregation ladder with the default configuration."""
    return _default_engine.check_all_aggregation_levels(district, counts)
