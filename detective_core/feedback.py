"""
Feedback System
===============

Intake of human-verified case outcomes and the learning metrics derived
from them.

Metrics are a pure function of the stored outcome set (plus any anomaly
severities recorded from analyses), so recomputing them without new
submissions yields identical results.
"""

import logging
import re
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from .exceptions import FeedbackValidationError, OutcomeNotFoundError
from .outcomes import InMemoryOutcomeStore, OutcomeStore
from .schemas import (
    CaseAnalysis,
    CaseOutcome,
    CaseRecord,
    CategoryAccuracy,
    LearningMetrics,
    MistakeSummary,
    Severity,
    TrainingExample,
)

logger = logging.getLogger(__name__)


NO_FEEDBACK_ACCURACY = 50
TREND_LENGTH = 10
TOP_MISTAKES = 5
MAX_TRAINING_EXAMPLES = 100

PATTERN_ACCURACY_NOTE = re.compile(r"Pattern Accuracy: (\d+)% \((\d+)/(\d+)")

# (keywords, bucket) checked in order
MISTAKE_BUCKETS = (
    (("pattern", "similar"), "Pattern Matching Error"),
    (("timeline", "date"), "Timeline Error"),
    (("evidence", "forensic"), "Evidence Interpretation Error"),
    (("witness", "statement"), "Witness Analysis Error"),
)
GENERAL_MISTAKE = "General Analysis Error"
HYPOTHESIS_MISTAKE = "Incorrect Hypothesis"

HIGH_SEVERITIES = (Severity.HIGH, Severity.CRITICAL)


def categorize_mistake(text: str) -> str:
    lower = text.lower()
    for keywords, bucket in MISTAKE_BUCKETS:
        if any(k in lower for k in keywords):
            return bucket
    return GENERAL_MISTAKE


def severity_estimate(severities: List[Severity]) -> int:
    """Anomaly accuracy estimate: higher-severity findings are more often right."""
    if not severities:
        return NO_FEEDBACK_ACCURACY
    high = sum(1 for s in severities if s in HIGH_SEVERITIES)
    return round(60 + (high / len(severities)) * 30)


def _ratio(correct: int, incorrect: int) -> Optional[int]:
    total = correct + incorrect
    if total == 0:
        return None
    return round(correct / total * 100)


class FeedbackSystem:
    """
    Records outcomes and computes LearningMetrics.

    Usage:
        feedback = FeedbackSystem()
        feedback.record_outcome({...})
        metrics = feedback.calculate_metrics()
    """

    def __init__(self, store: Optional[OutcomeStore] = None, max_training_examples: int = MAX_TRAINING_EXAMPLES):
        self.store = store if store is not None else InMemoryOutcomeStore()
        self._training_examples = deque(maxlen=max_training_examples)
        self._anomaly_severities: Dict[str, List[Severity]] = {}
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Intake
    # -------------------------------------------------------------------------

    @staticmethod
    def parse_outcome(payload: Union[CaseOutcome, Mapping[str, Any]]) -> CaseOutcome:
        """
        Validate a raw outcome payload.

        Raises:
            FeedbackValidationError: missing/invalid fields
        """
        if isinstance(payload, CaseOutcome):
            return payload
        try:
            return CaseOutcome.model_validate(dict(payload))
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc']) or 'outcome'}: {err['msg']}"
                for err in e.errors()
            ]
            logger.warning(f"Rejected feedback: {errors}")
            raise FeedbackValidationError("Invalid case outcome: " + "; ".join(errors), errors) from e
        except (TypeError, ValueError) as e:
            raise FeedbackValidationError(f"Invalid case outcome payload: {e}") from e

    def record_outcome(self, payload: Union[CaseOutcome, Mapping[str, Any]]) -> CaseOutcome:
        """
        Validate and store an outcome. Last write wins per case id.

        Raises:
            FeedbackValidationError: missing/invalid fields; nothing is stored
        """
        outcome = self.parse_outcome(payload)
        self.store.set(outcome)
        logger.info(f"Recorded outcome: case={outcome.case_id} accuracy={outcome.accuracy}")
        return outcome

    def get_outcome(self, case_id: str) -> CaseOutcome:
        outcome = self.store.get(case_id)
        if outcome is None:
            raise OutcomeNotFoundError(case_id)
        return outcome

    def all_outcomes(self) -> List[CaseOutcome]:
        return self.store.all()

    def record_analysis(self, analysis: CaseAnalysis) -> None:
        """Remember anomaly severities of an analysis for the anomaly estimate."""
        with self._lock:
            self._anomaly_severities[analysis.case_id] = [a.severity for a in analysis.anomalies]

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def _category_accuracy(self, outcomes: List[CaseOutcome], category: str) -> Optional[int]:
        correct = sum(len(getattr(o, f"correct_{category}")) for o in outcomes)
        incorrect = sum(len(getattr(o, f"incorrect_{category}")) for o in outcomes)
        return _ratio(correct, incorrect)

    def _anomaly_accuracy(self, outcomes: List[CaseOutcome]) -> int:
        explicit = self._category_accuracy(outcomes, "anomalies")
        if explicit is not None:
            return explicit
        with self._lock:
            severities = [
                s for o in outcomes for s in self._anomaly_severities.get(o.case_id, [])
            ]
        return severity_estimate(severities)

    @staticmethod
    def _pattern_accuracy(outcomes: List[CaseOutcome]) -> int:
        correct = 0
        total = 0
        for outcome in outcomes:
            match = PATTERN_ACCURACY_NOTE.search(outcome.notes or "")
            if match:
                correct += int(match.group(2))
                total += int(match.group(3))
        if total == 0:
            return NO_FEEDBACK_ACCURACY
        return round(correct / total * 100)

    @staticmethod
    def _common_mistakes(outcomes: List[CaseOutcome]) -> List[MistakeSummary]:
        counts: Dict[str, int] = {}
        for outcome in outcomes:
            for insight in outcome.incorrect_insights:
                bucket = categorize_mistake(insight)
                counts[bucket] = counts.get(bucket, 0) + 1
            for _ in outcome.incorrect_hypotheses:
                counts[HYPOTHESIS_MISTAKE] = counts.get(HYPOTHESIS_MISTAKE, 0) + 1

        # dicts keep first-seen order, sorted() is stable
        ranked = sorted(counts.items(), key=lambda item: -item[1])[:TOP_MISTAKES]
        return [MistakeSummary(type=name, count=count, description=name) for name, count in ranked]

    def calculate_metrics(self) -> LearningMetrics:
        outcomes = self.all_outcomes()
        verified = [o for o in outcomes if o.verified]

        if not verified:
            return LearningMetrics(
                total_cases=len(outcomes),
                verified_cases=0,
                average_accuracy=0,
                accuracy_by_category=CategoryAccuracy(
                    insights=NO_FEEDBACK_ACCURACY,
                    hypotheses=NO_FEEDBACK_ACCURACY,
                    anomalies=NO_FEEDBACK_ACCURACY,
                    patterns=self._pattern_accuracy(outcomes),
                ),
            )

        insights = self._category_accuracy(verified, "insights")
        hypotheses = self._category_accuracy(verified, "hypotheses")

        return LearningMetrics(
            total_cases=len(outcomes),
            verified_cases=len(verified),
            average_accuracy=round(sum(o.accuracy for o in verified) / len(verified)),
            accuracy_by_category=CategoryAccuracy(
                insights=NO_FEEDBACK_ACCURACY if insights is None else insights,
                hypotheses=NO_FEEDBACK_ACCURACY if hypotheses is None else hypotheses,
                anomalies=self._anomaly_accuracy(verified),
                patterns=self._pattern_accuracy(outcomes),
            ),
            improvement_trend=[o.accuracy for o in verified[-TREND_LENGTH:]],
            common_mistakes=self._common_mistakes(verified),
        )

    # -------------------------------------------------------------------------
    # Learning artifacts
    # -------------------------------------------------------------------------

    def generate_learning_prompt(self, metrics: LearningMetrics) -> str:
        """Guidance text appended to reasoning system prompts."""
        mistakes = "\n".join(
            f"- {m.description}: {m.count} occurrences" for m in metrics.common_mistakes
        ) or "- none recorded"
        trend = ", ".join(f"{a}%" for a in metrics.improvement_trend) or "n/a"
        by_category = metrics.accuracy_by_category

        return f"""You are an AI detective learning from past cases. Here's your performance:

Overall Accuracy: {metrics.average_accuracy}%
Insight Accuracy: {by_category.insights}%
Hypothesis Accuracy: {by_category.hypotheses}%
Anomaly Accuracy: {by_category.anomalies}%
Pattern Accuracy: {by_category.patterns}%

Common Mistakes:
{mistakes}

Recent Accuracy Trend: {trend}

Based on this feedback, adjust your analysis approach to improve accuracy. Focus on:
1. Avoiding the common mistakes identified
2. Being more conservative with low-confidence findings
3. Cross-referencing patterns more carefully
4. Validating anomalies before flagging them"""

    def create_training_example(
        self,
        case: CaseRecord,
        analysis: CaseAnalysis,
        outcome: CaseOutcome,
    ) -> TrainingExample:
        """Pair an analysis with its verified corrections and keep it (last 100)."""
        when = case.date.isoformat() if case.date else "unknown date"
        example = TrainingExample(
            case_id=case.id,
            context=f"Case from {when} in {case.jurisdiction or 'unknown jurisdiction'}",
            insights=list(analysis.insights),
            hypotheses=list(analysis.hypotheses),
            anomalies=list(analysis.anomalies),
            accuracy=outcome.accuracy,
            corrections=(
                [f"Incorrect: {i}" for i in outcome.incorrect_insights]
                + [f"Correct: {i}" for i in outcome.correct_insights]
            ),
            timestamp=datetime.now(timezone.utc),
        )
        with self._lock:
            self._training_examples.append(example)
        return example

    def training_examples(self) -> List[TrainingExample]:
        with self._lock:
            return list(self._training_examples)
