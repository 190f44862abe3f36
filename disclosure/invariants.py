"""
Methodology invariants.

Checks that every component applies the same published methodology:
- Suppression cascade and gating share one minimum cell size
- Disclosed DP parameters equal the applied ones
- The rule table covers every slice granularity
- A published snapshot's fingerprint matches the live constants

These run at build/test time. A failure is a ConfigurationDriftError and is
not recoverable until the configuration is fixed.
"""

import logging
from typing import Dict, Optional, Sequence

from disclosure.config import Config, PrivacyConfig
from disclosure.errors import ConfigurationDriftError
from disclosure.gating import GatingThreshold
from disclosure.noise import LaplaceNoiser, MECHANISM_NAME
from disclosure.suppression import SUPPRESSION_RULES, SuppressionRule, SuppressionRuleEngine
from disclosure.cells import Granularity


logger = logging.getLogger(__name__)


def verify_threshold_consistency(engine: SuppressionRuleEngine, gating: GatingThreshold) -> None:
    """Raise if the cascade and gating disagree on the minimum cell size."""
    if engine.threshold != gating.threshold:
        raise ConfigurationDriftError(
            f"Suppression threshold ({engine.threshold}) differs from "
            f"gating threshold ({gating.threshold})"
        )


def verify_methodology_disclosure(noiser: LaplaceNoiser) -> None:
    """Raise if the disclosed mechanism parameters differ from the applied ones."""
    record = noiser.methodology()
    if record.mechanism != MECHANISM_NAME:
        raise ConfigurationDriftError(f"Disclosed mechanism {record.mechanism!r} is not {MECHANISM_NAME!r}")
    if record.epsilon != float(noiser.epsilon) or record.sensitivity != float(noiser.sensitivity):
        raise ConfigurationDriftError(
            f"Disclosed parameters (epsilon={record.epsilon}, sensitivity={record.sensitivity}) "
            f"differ from applied (epsilon={noiser.epsilon}, sensitivity={noiser.sensitivity})"
        )

    text = noiser.methodology_text()
    expected = noiser.methodology_text(epsilon=record.epsilon, sensitivity=record.sensitivity)
    if text != expected:
        raise ConfigurationDriftError("Methodology text is not generated from the applied parameters")


def verify_rule_coverage(rules: Sequence[SuppressionRule] = SUPPRESSION_RULES) -> None:
    """Raise if some granularity has no rule that can suppress it."""
    uncovered = [g.value for g in Granularity if not any(g in r.applies_to for r in rules)]
    if uncovered:
        raise ConfigurationDriftError(f"No suppression rule covers granularities: {uncovered}")

    rule_ids = [r.rule_id for r in rules]
    if len(set(rule_ids)) != len(rule_ids):
        raise ConfigurationDriftError(f"Duplicate rule ids in suppression table: {rule_ids}")


def verify_published_fingerprint(config: PrivacyConfig, fingerprint: str) -> None:
    """
    Raise if a snapshot was computed under different methodology constants.

    Args:
        config: Live privacy configuration
        fingerprint: Fingerprint stored with the published snapshot
    """
    live = config.methodology_fingerprint()
    if live != fingerprint:
        raise ConfigurationDriftError(
            f"Snapshot methodology fingerprint {fingerprint[:12]}... does not match "
            f"live methodology {live[:12]}... (version {config.methodology_version}); "
            f"published snapshots cannot be reinterpreted under new constants"
        )


def run_methodology_checks(
    config: Optional[Config] = None,
    published_fingerprint: Optional[str] = None
) -> Dict[str, bool]:
    """
    Build every component from one configuration and run all checks.

    Returns:
        Dict mapping check name to True (any failure raises)
    """
    config = config or Config()
    config.privacy.validate()

    engine = SuppressionRuleEngine(config.privacy)
    gating = GatingThreshold(config.privacy)
    noiser = LaplaceNoiser(config.privacy)

    results = {}
    verify_threshold_consistency(engine, gating)
    results["threshold_consistency"] = True

    verify_methodology_disclosure(noiser)
    results["methodology_disclosure"] = True

    verify_rule_coverage(engine.rules)
    results["rule_coverage"] = True

    if published_fingerprint is not None:
        verify_published_fingerprint(config.privacy, published_fingerprint)
        results["published_fingerprint"] = True

    logger.info(f"Methodology checks passed: {sorted(results)}")
    return results
