"""
End-to-end tests for the disclosure pipeline.

raw n -> tenure normalization -> cascade -> Laplace noise -> audit entry
"""

import numpy as np
import pandas as pd
import pytest

from disclosure.audit import InMemoryAuditRepository
from disclosure.cells import AggregationCell, Granularity
from disclosure.config import Config, PrivacyConfig
from disclosure.errors import ConfigurationDriftError, InvalidInputError
from disclosure.noise import LaplaceNoiser
from disclosure.pipeline import DisclosurePipeline
from disclosure.suppression import AggregationLevel
from disclosure.tenure import TenureBucket


def make_pipeline(config=None, seed=42, repository=None):
    config = config or Config()
    noiser = LaplaceNoiser(config.privacy, rng=np.random.default_rng(seed))
    return DisclosurePipeline(config, noiser=noiser, repository=repository)


def test_cell_normalizes_dimensions():
    cell = AggregationCell(" Calgary ", "6-15 years", "Math", 30)
    assert cell.district == "Calgary"
    assert cell.tenure is TenureBucket.MID_CAREER
    assert cell.granularity is Granularity.DISTRICT_TENURE_SUBJECT
    assert cell.key == ("Calgary", "6-15 years", "Math")

    with pytest.raises(InvalidInputError):
        AggregationCell("Calgary", n=-2)


def test_suppressed_cell_is_never_published():
    repo = InMemoryAuditRepository()
    pipeline = make_pipeline(repository=repo)

    result = pipeline.publish(AggregationCell("Edmonton", "0-5 years", "Math", 12))

    assert result.decision.is_suppressed is True
    assert result.decision.aggregation_level is AggregationLevel.DISTRICT_TENURE
    assert result.noise is None
    assert result.published_count is None
    assert result.to_dict()["suppression_reason"].startswith("Insufficient data")
    assert repo.entries() == (result.audit_entry,)
    assert result.audit_entry.rule_applied == "rule2"


def test_published_cell_gets_noise_and_audit():
    repo = InMemoryAuditRepository()
    pipeline = make_pipeline(repository=repo)

    result = pipeline.publish(AggregationCell("Red Deer", None, None, 20))

    assert result.decision.is_suppressed is False
    assert result.noise is not None
    assert result.published_count >= 0
    assert result.noise.methodology.epsilon == 1.0
    assert result.sanity is not None
    assert result.audit_entry.suppressed is False
    assert len(repo) == 1


def test_dp_can_be_disabled():
    config = Config()
    config.privacy.apply_dp_noise = False
    result = make_pipeline(config).publish(AggregationCell("Red Deer", None, None, 25))
    assert result.noise is None
    assert result.published_count == 25.0


def test_published_decisions_can_be_left_out_of_the_audit():
    config = Config()
    config.audit.record_published = False
    repo = InMemoryAuditRepository()
    pipeline = make_pipeline(config, repository=repo)

    pipeline.publish(AggregationCell("Calgary", None, None, 50))
    pipeline.publish(AggregationCell("Calgary", None, None, 5))

    assert [e.suppressed for e in repo.entries()] == [True]


def test_mismatched_noiser_is_configuration_drift():
    noiser = LaplaceNoiser(PrivacyConfig(epsilon=0.5))
    with pytest.raises(ConfigurationDriftError):
        DisclosurePipeline(Config(), noiser=noiser)


def test_publish_many_reports_invalid_cells():
    pipeline = make_pipeline()
    result = pipeline.publish_many([
        AggregationCell("Calgary", None, None, 25),
        {"district": "Calgary", "tenure_bucket": "0-5 years", "subject": None, "n": 15},
        {"district": "Calgary", "tenure_bucket": None, "subject": None, "n": -4},
        {"district": "", "tenure_bucket": None, "subject": None, "n": 40},
    ])

    assert result.success is False
    assert len(result.errors) == 2
    assert result.total_cells == 2
    assert result.suppressed_cells == 1
    assert result.published_cells == 1
    assert result.suppression_rate == 0.5
    assert result.to_dict()["total_cells"] == 2


def test_publish_frame():
    df = pd.DataFrame({
        "district": ["Calgary", "Calgary", "Calgary", "Lethbridge"],
        "tenure_bucket": [None, "0-5 years", "0-5 years", None],
        "subject": [None, None, "Math", "Art"],
        "n": [25, 15, 5, 19],
    })

    out = make_pipeline().publish_frame(df)

    assert "n" not in out.columns
    assert list(out["is_suppressed"]) == [False, True, True, True]
    assert list(out["aggregation_level"]) == ["full", "district_only", "district_tenure", "none"]
    assert list(out["rule_applied"][1:]) == ["rule3", "rule2", "rule1"]
    assert out["published_n"][0] >= 0
    assert out["published_n"][1:].isna().all()
    assert out["suppression_reason"][1:].notna().all()
    assert list(out["district"]) == list(df["district"])


def test_publish_frame_missing_columns():
    with pytest.raises(InvalidInputError):
        make_pipeline().publish_frame(pd.DataFrame({"district": ["Calgary"]}))


def test_publish_frame_rejects_invalid_row():
    df = pd.DataFrame({
        "district": ["Calgary"],
        "tenure_bucket": ["three years"],
        "subject": [None],
        "n": [40],
    })
    with pytest.raises(InvalidInputError):
        make_pipeline().publish_frame(df)


def test_suppressed_rows_never_carry_true_count():
    df = pd.DataFrame({
        "district": ["Calgary", "Calgary", "Banff", "Canmore"],
        "tenure_bucket": ["0-5 years", "0-5 years", None, None],
        "subject": ["Math", None, None, "Art"],
        "n": [7, 9, 8, 6],
    })

    out = make_pipeline().publish_frame(df)

    assert out["is_suppressed"].all()
    assert list(out["rule_applied"]) == ["rule2", "rule3", "rule4", "rule1"]
    for (_, row), n in zip(out.iterrows(), df["n"]):
        assert pd.isna(row["published_n"])
        for value in row:
            text = str(value)
            assert "n=" not in text
            assert str(n) not in text
            assert str(20 - n) not in text
        assert "need ≥20" in row["suppression_reason"]


def test_single_respondent_cell_reason_is_count_free():
    result = make_pipeline().publish(AggregationCell("Calgary", "0-5 years", "Math", 1))
    exported = result.to_dict()
    assert exported["published_n"] is None
    assert "n=1" not in exported["suppression_reason"]
    assert "19" not in exported["suppression_reason"]
    # The exact count stays in the decision and the audit entry
    assert result.decision.n == 1
    assert result.audit_entry.n == 1


def test_explanation_quotes_the_shown_count():
    noised = make_pipeline().publish(AggregationCell("Red Deer", None, None, 40))
    shown = round(noised.published_count)
    assert f"n≈{shown}" in noised.explanation
    assert "privacy noise" in noised.explanation

    config = Config()
    config.privacy.apply_dp_noise = False
    exact = make_pipeline(config).publish(AggregationCell("Red Deer", None, None, 40))
    assert exact.explanation == "Data is published with n=40 responses."
