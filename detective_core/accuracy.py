"""
Accuracy Tracker
================

Per-analysis accuracy measured against a verified outcome.

Component weights: insights 25%, hypotheses 30%, anomalies 25%, patterns 20%.
"""

import logging
import threading
from datetime import datetime, timezone
from statistics import mean
from typing import Dict, List

from .feedback import NO_FEEDBACK_ACCURACY, severity_estimate
from .schemas import (
    AccuracyMetrics,
    CalibrationBucket,
    CaseAnalysis,
    CaseOutcome,
    CategoryAccuracy,
    Hypothesis,
    PatternAccuracyMetrics,
    SimilarityScore,
)

logger = logging.getLogger(__name__)


COMPONENT_WEIGHTS = {
    "insights": 0.25,
    "hypotheses": 0.30,
    "anomalies": 0.25,
    "patterns": 0.20,
}

# Estimated share of matches that turn out correct, by similarity band
HIGH_SIMILARITY = 0.7
MEDIUM_SIMILARITY = 0.5
HIGH_SIMILARITY_HIT_RATE = 0.8
MEDIUM_SIMILARITY_HIT_RATE = 0.6

MAX_HISTORY = 1000


def calculate_pattern_accuracy(matches: List[SimilarityScore], outcome: CaseOutcome) -> PatternAccuracyMetrics:
    """
    Estimate how many similarity matches are correct.

    A match counts as verified when its id or title is mentioned in the
    outcome notes. Correctness is estimated from similarity bands.
    """
    notes = (outcome.notes or "").lower()
    total = len(matches)
    verified = sum(
        1 for m in matches
        if m.case_id.lower() in notes or (m.case_title and m.case_title.lower() in notes)
    )

    high = sum(1 for m in matches if m.score >= HIGH_SIMILARITY)
    medium = sum(1 for m in matches if MEDIUM_SIMILARITY <= m.score < HIGH_SIMILARITY)
    correct = round(high * HIGH_SIMILARITY_HIT_RATE + medium * MEDIUM_SIMILARITY_HIT_RATE)

    return PatternAccuracyMetrics(
        total_pattern_matches=total,
        verified_pattern_matches=verified,
        correct_pattern_matches=correct,
        incorrect_pattern_matches=total - correct,
        accuracy=round(correct / total * 100) if total else 0,
    )


def annotate_pattern_accuracy(matches: List[SimilarityScore], outcome: CaseOutcome) -> CaseOutcome:
    """
    Return a copy of the outcome with a "Pattern Accuracy" note appended.

    The outcome itself is never modified. Outcomes already carrying the
    note, or analyses without matches, are returned unchanged.
    """
    if not matches or "Pattern Accuracy:" in (outcome.notes or ""):
        return outcome

    metrics = calculate_pattern_accuracy(matches, outcome)
    line = (
        f"Pattern Accuracy: {metrics.accuracy}% "
        f"({metrics.correct_pattern_matches}/{metrics.total_pattern_matches} correct)"
    )
    notes = f"{outcome.notes or ''}\n{line}".strip()
    return outcome.model_copy(update={"notes": notes})


def _component(correct: int, incorrect: int, has_items: bool) -> int:
    if not has_items:
        return 0
    total = correct + incorrect
    if total == 0:
        return NO_FEEDBACK_ACCURACY
    return round(correct / total * 100)


class AccuracyTracker:
    """
    Computes and keeps AccuracyMetrics per analysed case.

    Usage:
        tracker = AccuracyTracker()
        metrics = tracker.calculate_accuracy(analysis, outcome)
    """

    def __init__(self):
        self._history: List[AccuracyMetrics] = []
        self._lock = threading.Lock()

    def _hypothesis_accuracy(self, hypotheses: List[Hypothesis], outcome: CaseOutcome) -> int:
        if not hypotheses:
            return 0
        total = len(outcome.correct_hypotheses) + len(outcome.incorrect_hypotheses)
        if total == 0:
            # Conservative estimate from stated confidence
            return round(mean(h.confidence for h in hypotheses) * 0.8)
        return round(len(outcome.correct_hypotheses) / total * 100)

    def _anomaly_accuracy(self, analysis: CaseAnalysis, outcome: CaseOutcome) -> int:
        if not analysis.anomalies:
            return 0
        total = len(outcome.correct_anomalies) + len(outcome.incorrect_anomalies)
        if total == 0:
            return severity_estimate([a.severity for a in analysis.anomalies])
        return round(len(outcome.correct_anomalies) / total * 100)

    @staticmethod
    def _calibration(hypotheses: List[Hypothesis], outcome: CaseOutcome) -> Dict[str, CalibrationBucket]:
        bands = {
            "high": [h for h in hypotheses if h.confidence >= 70],
            "medium": [h for h in hypotheses if 50 <= h.confidence < 70],
            "low": [h for h in hypotheses if h.confidence < 50],
        }
        correct_ids = set(outcome.correct_hypotheses)

        calibration = {}
        for band, members in bands.items():
            if not members:
                calibration[band] = CalibrationBucket()
                continue
            hits = sum(1 for h in members if h.id in correct_ids)
            calibration[band] = CalibrationBucket(
                predicted=round(mean(h.confidence for h in members)),
                actual=round(hits / len(members) * 100),
            )
        return calibration

    def calculate_accuracy(self, analysis: CaseAnalysis, outcome: CaseOutcome) -> AccuracyMetrics:
        components = CategoryAccuracy(
            insights=_component(
                len(outcome.correct_insights), len(outcome.incorrect_insights), bool(analysis.insights)
            ),
            hypotheses=self._hypothesis_accuracy(analysis.hypotheses, outcome),
            anomalies=self._anomaly_accuracy(analysis, outcome),
            patterns=calculate_pattern_accuracy(analysis.matches, outcome).accuracy if analysis.matches else 0,
        )
        overall = round(sum(
            getattr(components, name) * weight for name, weight in COMPONENT_WEIGHTS.items()
        ))

        metrics = AccuracyMetrics(
            case_id=analysis.case_id,
            timestamp=datetime.now(timezone.utc),
            overall_accuracy=overall,
            component_accuracy=components,
            confidence_calibration=self._calibration(analysis.hypotheses, outcome),
        )

        with self._lock:
            self._history.append(metrics)
            del self._history[:-MAX_HISTORY]

        logger.info(f"Accuracy for {analysis.case_id}: overall={overall}")
        return metrics

    def average_accuracy(self) -> int:
        with self._lock:
            if not self._history:
                return 0
            return round(mean(m.overall_accuracy for m in self._history))

    def accuracy_trend(self) -> List[int]:
        with self._lock:
            return [m.overall_accuracy for m in self._history]

    def history(self) -> List[AccuracyMetrics]:
        with self._lock:
            return list(self._history)
