"""
Disclosure Pipeline Orchestration.

This module coordinates the disclosure control flow for aggregated cells:
1. Normalize the tenure dimension to canonical buckets
2. Evaluate the suppression cascade
3. Apply Laplace noise to publishable counts
4. Build (and optionally persist) an audit entry for every decision
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from disclosure import audit
from disclosure.audit import AuditRepository, Clock, SuppressionAuditEntry
from disclosure.config import Config
from disclosure.errors import ConfigurationDriftError, InvalidInputError
from disclosure.noise import DPNoiseResult, LaplaceNoiser, NoiseSanityResult
from disclosure.suppression import SuppressionResult, SuppressionRuleEngine, explain, public_reason
from disclosure.cells import AggregationCell


logger = logging.getLogger(__name__)


FRAME_INPUT_COLUMNS = ["district", "tenure_bucket", "subject", "n"]
FRAME_OUTPUT_COLUMNS = ["is_suppressed", "aggregation_level", "rule_applied",
                        "suppression_reason", "published_n", "dp_epsilon"]


@dataclass(frozen=True)
class PublicationResult:
    """Outcome for one cell. Suppressed cells carry no publishable count."""
    district: str
    tenure: Optional[str]
    subject: Optional[str]
    decision: SuppressionResult
    noise: Optional[DPNoiseResult] = None
    sanity: Optional[NoiseSanityResult] = None
    audit_entry: Optional[SuppressionAuditEntry] = None

    @property
    def published_count(self) -> Optional[float]:
        """Count to show, or None when the cell is withheld."""
        if self.decision.is_suppressed:
            return None
        if self.noise is not None:
            return self.noise.noisy_count
        return float(self.decision.n)

    @property
    def explanation(self) -> str:
        """User-facing explanation quoting the count actually shown."""
        shown_n = self.noise.noisy_count if self.noise is not None else None
        return explain(self.decision, shown_n=shown_n)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (without the true count of the cell)."""
        return {
            "district": self.district,
            "tenure": self.tenure,
            "subject": self.subject,
            "is_suppressed": self.decision.is_suppressed,
            "aggregation_level": self.decision.aggregation_level.value,
            "rule_applied": self.decision.rule_applied,
            "suppression_reason": public_reason(self.decision),
            "published_n": self.published_count,
            "dp_epsilon": self.noise.methodology.epsilon if self.noise else None,
        }


@dataclass
class PipelineResult:
    """Result of a batch execution."""
    success: bool
    results: List[PublicationResult] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    errors: list = field(default_factory=list)

    @property
    def total_cells(self) -> int:
        return len(self.results)

    @property
    def suppressed_cells(self) -> int:
        return sum(1 for r in self.results if r.decision.is_suppressed)

    @property
    def published_cells(self) -> int:
        return self.total_cells - self.suppressed_cells

    @property
    def suppression_rate(self) -> float:
        return self.suppressed_cells / self.total_cells if self.total_cells else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "total_cells": self.total_cells,
            "suppressed_cells": self.suppressed_cells,
            "published_cells": self.published_cells,
            "suppression_rate": self.suppression_rate,
            "duration_seconds": (
                (self.end_time - self.start_time).total_seconds()
                if self.start_time and self.end_time else None
            ),
            "errors": self.errors
        }


class DisclosurePipeline:
    """
    Runs cells through suppression, noise and audit.

    The pipeline follows these steps per cell:
    1. Validate and normalize the cell (tenure literal -> bucket)
    2. Evaluate the suppression cascade
    3. If publishable and DP is enabled, noise the count and sanity-check it
    4. Build the audit entry and append it to the repository, if any
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        noiser: Optional[LaplaceNoiser] = None,
        repository: Optional[AuditRepository] = None,
        clock: Optional[Clock] = None
    ):
        """
        Initialize pipeline.

        Args:
            config: Configuration object
            noiser: Laplace noiser. Built from config when omitted.
            repository: Audit repository receiving entries. Entries are only
                        built, not stored, when omitted.
            clock: Timestamp source for audit entries
        """
        self.config = config or Config()
        self.config.validate()

        self.engine = SuppressionRuleEngine(self.config.privacy)
        self.noiser = noiser or LaplaceNoiser(self.config.privacy)
        self.repository = repository
        self.clock = clock

        if (self.noiser.epsilon != self.config.privacy.epsilon
                or self.noiser.sensitivity != self.config.privacy.sensitivity):
            raise ConfigurationDriftError(
                f"Noiser applies epsilon={self.noiser.epsilon}, sensitivity={self.noiser.sensitivity} "
                f"but configuration discloses epsilon={self.config.privacy.epsilon}, "
                f"sensitivity={self.config.privacy.sensitivity}"
            )

    def publish(self, cell: AggregationCell) -> PublicationResult:
        """
        Run one cell through the pipeline.

        Raises:
            InvalidInputError: If the cell is malformed
        """
        if not isinstance(cell, AggregationCell):
            raise InvalidInputError(f"Expected AggregationCell, got {type(cell).__name__}")

        decision = self.engine.evaluate(cell.district, cell.tenure, cell.subject, cell.n)

        noise = None
        sanity = None
        if not decision.is_suppressed and self.config.privacy.apply_dp_noise:
            noise = self.noiser.perturb(cell.n)
            sanity = self.noiser.sanity_check(cell.n, noise.noisy_count)

        entry = None
        if self.config.audit.enabled and (decision.is_suppressed or self.config.audit.record_published):
            entry = audit.record(
                cell.district, cell.tenure, cell.subject, cell.n, decision, clock=self.clock
            )
            if self.repository is not None:
                self.repository.append(entry)

        return PublicationResult(
            district=cell.district,
            tenure=cell.tenure.value if cell.tenure else None,
            subject=cell.subject,
            decision=decision,
            noise=noise,
            sanity=sanity,
            audit_entry=entry,
        )

    def publish_many(self, cells: Iterable[Any]) -> PipelineResult:
        """
        Run a batch of cells through the pipeline.

        Cells may be AggregationCell instances or mappings with district,
        tenure_bucket, subject and n keys. Invalid cells are reported in
        ``errors`` and left out of the results; they are never published.
        """
        result = PipelineResult(success=True, start_time=datetime.now())

        for index, cell in enumerate(cells):
            try:
                if not isinstance(cell, AggregationCell):
                    cell = AggregationCell.from_dict(cell)
                result.results.append(self.publish(cell))
            except InvalidInputError as e:
                logger.error(f"Cell {index} rejected: {e}")
                result.errors.append(f"cell {index}: {e}")
                result.success = False

        result.end_time = datetime.now()

        logger.info(
            f"Disclosure control complete: {result.suppressed_cells}/{result.total_cells} "
            f"cells suppressed ({result.suppression_rate * 100:.2f}%)"
        )
        if result.errors:
            logger.warning(f"{len(result.errors)} cell(s) rejected as invalid input")

        return result

    def publish_frame(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Apply disclosure control to a DataFrame of cells.

        Args:
            df: DataFrame with district, tenure_bucket, subject and n columns.
                Missing tenure/subject are expressed as null.

        Returns:
            DataFrame with the raw ``n`` column replaced by ``published_n`` and
            suppression columns added. Suppressed rows have a null
            ``published_n`` and an explicit ``suppression_reason``.

        Raises:
            InvalidInputError: On missing columns or any invalid row
        """
        missing = [c for c in FRAME_INPUT_COLUMNS if c not in df.columns]
        if missing:
            raise InvalidInputError(f"Missing required columns: {missing}")

        records = []
        for row in df[FRAME_INPUT_COLUMNS].itertuples(index=False):
            cell = AggregationCell(
                district=row.district,
                tenure=_none_if_null(row.tenure_bucket),
                subject=_none_if_null(row.subject),
                n=_as_count(row.n),
            )
            records.append(self.publish(cell).to_dict())

        decisions = pd.DataFrame(
            records,
            columns=FRAME_OUTPUT_COLUMNS,
            index=df.index,
        )
        out = pd.concat([df.drop(columns=["n"]), decisions], axis=1)

        if len(out):
            rate = out["is_suppressed"].mean() * 100
            logger.info(f"Suppression complete: {int(out['is_suppressed'].sum())}/{len(out)} "
                        f"cells suppressed ({rate:.2f}%)")
        else:
            logger.warning("No cells found for disclosure control")

        return out


def _none_if_null(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    if value is pd.NA or value is pd.NaT:
        return None
    return value


def _as_count(value: Any) -> Any:
    # pandas stores integer columns with nulls as float; only integral floats are counts
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
