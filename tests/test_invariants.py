"""
Methodology invariant tests.

These are the build-time guard against configuration drift: the cascade and
gating must share one threshold, and the disclosed DP parameters must equal
the applied ones.
"""

import pytest

from disclosure.cells import Granularity
from disclosure.config import Config, PrivacyConfig
from disclosure.errors import ConfigurationDriftError
from disclosure.gating import GatingThreshold
from disclosure.invariants import (
    run_methodology_checks,
    verify_methodology_disclosure,
    verify_published_fingerprint,
    verify_rule_coverage,
    verify_threshold_consistency,
)
from disclosure.noise import LaplaceNoiser
from disclosure.suppression import (
    SUPPRESSION_RULES,
    SuppressionAction,
    SuppressionRule,
    SuppressionRuleEngine,
)


def test_default_methodology_is_consistent():
    results = run_methodology_checks()
    assert results == {
        "threshold_consistency": True,
        "methodology_disclosure": True,
        "rule_coverage": True,
    }


def test_shared_config_keeps_thresholds_in_sync():
    privacy = PrivacyConfig(min_cell_size=15)
    verify_threshold_consistency(SuppressionRuleEngine(privacy), GatingThreshold(privacy))


def test_threshold_drift_is_detected():
    engine = SuppressionRuleEngine(PrivacyConfig(min_cell_size=20))
    gating = GatingThreshold(PrivacyConfig(min_cell_size=10))
    with pytest.raises(ConfigurationDriftError):
        verify_threshold_consistency(engine, gating)


def test_methodology_disclosure_matches_applied_parameters():
    verify_methodology_disclosure(LaplaceNoiser(PrivacyConfig(epsilon=0.3, sensitivity=2)))


def test_rule_coverage():
    verify_rule_coverage(SUPPRESSION_RULES)

    partial = [SuppressionRule(
        rule_id="rule2",
        description="subject slices only",
        applies_to=frozenset({Granularity.DISTRICT_TENURE_SUBJECT}),
        action=SuppressionAction.AGGREGATE_DISTRICT_TENURE,
    )]
    with pytest.raises(ConfigurationDriftError):
        verify_rule_coverage(partial)

    with pytest.raises(ConfigurationDriftError):
        verify_rule_coverage(list(SUPPRESSION_RULES) + [SUPPRESSION_RULES[0]])


def test_published_fingerprint():
    config = Config()
    fingerprint = config.privacy.methodology_fingerprint()
    assert run_methodology_checks(config, published_fingerprint=fingerprint)["published_fingerprint"]

    changed = Config()
    changed.privacy.min_cell_size = 10
    with pytest.raises(ConfigurationDriftError):
        verify_published_fingerprint(changed.privacy, fingerprint)
