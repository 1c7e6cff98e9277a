"""
Tests for Accuracy Tracker
==========================

Per-analysis component accuracy, calibration and pattern-accuracy notes.
"""

from datetime import datetime, timezone

import pytest

from conftest import outcome_payload
from detective_core.accuracy import (
    AccuracyTracker,
    annotate_pattern_accuracy,
    calculate_pattern_accuracy,
)
from detective_core.feedback import FeedbackSystem
from detective_core.schemas import (
    Anomaly,
    AnomalyType,
    CaseAnalysis,
    CaseOutcome,
    Hypothesis,
    Severity,
    SimilarityScore,
)


def _outcome(**overrides):
    return CaseOutcome.model_validate(outcome_payload("case-1", **overrides))


def _matches(*scores):
    return [
        SimilarityScore(case_id=f"m{i}", case_title=f"Match {i}", score=score)
        for i, score in enumerate(scores)
    ]


@pytest.fixture
def analysis():
    return CaseAnalysis(
        case_id="case-1",
        timestamp=datetime.now(timezone.utc),
        insights=["i1", "i2"],
        hypotheses=[
            Hypothesis(id="h1", title="Local offender", description="", confidence=80),
            Hypothesis(id="h2", title="Staged scene", description="", confidence=40),
        ],
        anomalies=[
            Anomaly(id="a1", type=AnomalyType.EVIDENCE_CONFLICT, severity=Severity.HIGH, description="conflict"),
        ],
        matches=_matches(0.9, 0.6),
    )


class TestCalculateAccuracy:

    def test_weighted_components(self, analysis):
        outcome = _outcome(
            correct_insights=["i1"], incorrect_insights=["i2"],
            correct_hypotheses=["h1"], incorrect_hypotheses=["h2"],
        )
        metrics = AccuracyTracker().calculate_accuracy(analysis, outcome)

        assert metrics.component_accuracy.insights == 50
        assert metrics.component_accuracy.hypotheses == 50
        assert metrics.component_accuracy.anomalies == 90
        assert metrics.component_accuracy.patterns == 50
        # 50*0.25 + 50*0.30 + 90*0.25 + 50*0.20
        assert metrics.overall_accuracy == 60

    def test_estimates_without_feedback(self, analysis):
        metrics = AccuracyTracker().calculate_accuracy(analysis, _outcome())
        assert metrics.component_accuracy.insights == 50
        # mean confidence 60, discounted
        assert metrics.component_accuracy.hypotheses == 48

    def test_empty_analysis(self):
        empty = CaseAnalysis(case_id="case-1", timestamp=datetime.now(timezone.utc))
        metrics = AccuracyTracker().calculate_accuracy(empty, _outcome())
        assert metrics.overall_accuracy == 0

    def test_calibration_buckets(self, analysis):
        outcome = _outcome(correct_hypotheses=["h1"], incorrect_hypotheses=["h2"])
        calibration = AccuracyTracker().calculate_accuracy(analysis, outcome).confidence_calibration

        assert (calibration["high"].predicted, calibration["high"].actual) == (80, 100)
        assert (calibration["medium"].predicted, calibration["medium"].actual) == (0, 0)
        assert (calibration["low"].predicted, calibration["low"].actual) == (40, 0)

    def test_history(self, analysis):
        tracker = AccuracyTracker()
        tracker.calculate_accuracy(analysis, _outcome(correct_insights=["i1", "i2"]))
        tracker.calculate_accuracy(analysis, _outcome(incorrect_insights=["i1", "i2"]))

        trend = tracker.accuracy_trend()
        assert len(trend) == 2
        assert trend[0] > trend[1]
        assert tracker.average_accuracy() == round(sum(trend) / 2)
        assert len(tracker.history()) == 2


class TestPatternAccuracy:

    def test_banded_estimate(self):
        metrics = calculate_pattern_accuracy(_matches(0.9, 0.8, 0.55, 0.2), _outcome())
        # round(2*0.8 + 1*0.6) = 2
        assert metrics.total_pattern_matches == 4
        assert metrics.correct_pattern_matches == 2
        assert metrics.incorrect_pattern_matches == 2
        assert metrics.accuracy == 50

    def test_verified_from_notes(self):
        outcome = _outcome(notes="Linked to m1 by detectives")
        metrics = calculate_pattern_accuracy(_matches(0.9, 0.9), outcome)
        assert metrics.verified_pattern_matches == 1

    def test_annotation_returns_new_outcome(self):
        outcome = _outcome(notes="Confirmed by lab")
        annotated = annotate_pattern_accuracy(_matches(0.9, 0.6), outcome)

        assert annotated is not outcome
        assert outcome.notes == "Confirmed by lab"
        assert annotated.notes.endswith("Pattern Accuracy: 50% (1/2 correct)")
        assert annotate_pattern_accuracy(_matches(0.9), annotated) is annotated

    def test_no_matches_no_annotation(self):
        outcome = _outcome()
        assert annotate_pattern_accuracy([], outcome) is outcome

    def test_annotation_feeds_metrics(self):
        feedback = FeedbackSystem()
        feedback.record_outcome(annotate_pattern_accuracy(_matches(0.9, 0.6), _outcome()))
        assert feedback.calculate_metrics().accuracy_by_category.patterns == 50
