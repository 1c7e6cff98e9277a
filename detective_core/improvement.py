"""
Self-Improvement Controller
===========================

Turns LearningMetrics into an ImprovementStrategy that the analysis
service consumes (similarity minimum, hypothesis threshold, anomaly
sensitivity).
"""

import logging
import threading
from typing import List, Optional

from .schemas import ImprovementStrategy, LearningMetrics

logger = logging.getLogger(__name__)


TARGET_ACCURACY = 95

# Matches ImprovementStrategy.pattern_matching_weight default
DEFAULT_PATTERN_WEIGHT = 0.3

THRESHOLD_STEP = 5
THRESHOLD_FLOOR = 50
THRESHOLD_CEILING = 80
TREND_WINDOW = 3
TREND_DELTA = 5
RULE_MIN_COUNT = 3
PATTERN_FOCUS_WEIGHT = 0.2

FOCUS_PATTERN = "Pattern Recognition"
FOCUS_TIMELINE = "Timeline Analysis"
FOCUS_EVIDENCE = "Evidence Interpretation"


def progress_to_target(metrics: LearningMetrics) -> int:
    """Percent of the way to TARGET_ACCURACY, capped at 100"""
    return min(100, round(metrics.average_accuracy / TARGET_ACCURACY * 100))


def _is_pattern_mistake(description: str) -> bool:
    return "pattern" in description.lower()


class SelfImprovementController:
    """
    Holds the current strategy and refines it from metrics.

    Usage:
        controller = SelfImprovementController()
        strategy = controller.refine(feedback.calculate_metrics())
    """

    def __init__(self):
        self._current: Optional[ImprovementStrategy] = None
        self._history: List[ImprovementStrategy] = []
        self._lock = threading.Lock()

    @property
    def current(self) -> Optional[ImprovementStrategy]:
        with self._lock:
            return self._current

    def strategy(self) -> ImprovementStrategy:
        """Current strategy, or the defaults before the first refinement"""
        return self.current or ImprovementStrategy()

    def history(self) -> List[ImprovementStrategy]:
        with self._lock:
            return list(self._history)

    def _initial(self, metrics: LearningMetrics) -> ImprovementStrategy:
        strategy = ImprovementStrategy()
        top = metrics.common_mistakes[0] if metrics.common_mistakes else None

        if top is not None:
            lower = top.description.lower()
            if _is_pattern_mistake(lower):
                strategy.focus_areas.append(FOCUS_PATTERN)
                strategy.pattern_matching_weight = PATTERN_FOCUS_WEIGHT
            if "timeline" in lower:
                strategy.focus_areas.append(FOCUS_TIMELINE)
            if "evidence" in lower:
                strategy.focus_areas.append(FOCUS_EVIDENCE)

        # Without verified outcomes the average carries no signal
        if metrics.verified_cases > 0:
            if metrics.average_accuracy < 80:
                strategy.confidence_threshold = 70
            elif metrics.average_accuracy > 90:
                strategy.confidence_threshold = 50

        return strategy

    @staticmethod
    def _next(previous: ImprovementStrategy, metrics: LearningMetrics) -> ImprovementStrategy:
        strategy = previous.model_copy(deep=True)

        recent = metrics.improvement_trend[-TREND_WINDOW:]
        if len(recent) >= TREND_WINDOW:
            delta = recent[-1] - recent[0]
            if delta > TREND_DELTA:
                strategy.confidence_threshold = max(
                    THRESHOLD_FLOOR, strategy.confidence_threshold - THRESHOLD_STEP
                )
            elif delta < -TREND_DELTA:
                strategy.confidence_threshold = min(
                    THRESHOLD_CEILING, strategy.confidence_threshold + THRESHOLD_STEP
                )

        for mistake in metrics.common_mistakes:
            rule = f"Avoid: {mistake.description}"
            if mistake.count >= RULE_MIN_COUNT and rule not in strategy.learned_rules:
                strategy.learned_rules.append(rule)

        if metrics.common_mistakes and _is_pattern_mistake(metrics.common_mistakes[0].description):
            strategy.pattern_matching_weight = PATTERN_FOCUS_WEIGHT
            if FOCUS_PATTERN not in strategy.focus_areas:
                strategy.focus_areas.append(FOCUS_PATTERN)

        return strategy

    def refine(self, metrics: LearningMetrics) -> ImprovementStrategy:
        with self._lock:
            if self._current is None:
                strategy = self._initial(metrics)
            else:
                strategy = self._next(self._current, metrics)
            self._current = strategy
            self._history.append(strategy)

        logger.info(
            f"Strategy refined: threshold={strategy.confidence_threshold} "
            f"pattern_weight={strategy.pattern_matching_weight} rules={len(strategy.learned_rules)}"
        )
        return strategy

    def reset(self) -> None:
        with self._lock:
            self._current = None
            self._history.clear()
