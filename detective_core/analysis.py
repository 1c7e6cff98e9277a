"""
Case Analysis Service
=====================

Runs the full pipeline for one case:

    matches → patterns → anomalies → hypotheses → reasoning chain

and applies the current ImprovementStrategy on the way. Also owns the
feedback loop: a submitted outcome is annotated with pattern accuracy,
scored against the last analysis of its case, and used to refine the
strategy.
"""

import asyncio
import logging
from collections import Counter, OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .accuracy import AccuracyTracker, annotate_pattern_accuracy
from .anomalies import detect_anomalies, filter_by_sensitivity
from .config import Settings, get_settings
from .feedback import FeedbackSystem
from .hypotheses import generate_hypotheses
from .improvement import DEFAULT_PATTERN_WEIGHT, SelfImprovementController
from .llm import build_generate_fn
from .outcomes import create_outcome_store
from .patterns import PatternClassifier
from .reasoning import ChainStore, GenerateFn, LRUChainStore, ReasoningEngine
from .schemas import (
    AccuracyMetrics,
    AuditEntry,
    CaseAnalysis,
    CaseOutcome,
    CaseRecord,
    ConfidenceScores,
    EvidenceCategory,
    ImprovementStrategy,
    LearningMetrics,
    PatternAnalysis,
    ReasoningChain,
    Severity,
    SimilarityScore,
)
from .similarity import SimilarityEngine

logger = logging.getLogger(__name__)


MAX_RECENT_ANALYSES = 200
MAX_INSIGHTS = 10
MAX_RECOMMENDATIONS = 15


@dataclass
class FeedbackResult:
    """What one feedback submission produced"""
    outcome: CaseOutcome
    metrics: LearningMetrics
    strategy: ImprovementStrategy
    accuracy: Optional[AccuracyMetrics] = None


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(i for i in items if i))


def evidence_quality(case: CaseRecord) -> int:
    return min(100, round(len(case.evidence) * 15 + len(case.description) / 10))


def forensic_strength(case: CaseRecord) -> int:
    if any(e.category == EvidenceCategory.FORENSIC for e in case.evidence):
        return 70
    return 30


class CaseAnalysisService:
    """
    Ties similarity, patterns, anomalies, hypotheses, reasoning and
    feedback together behind two calls: analyze() and submit_feedback().

    Usage:
        service = CaseAnalysisService()
        analysis = await service.analyze(case, corpus)
        result = service.submit_feedback(outcome_payload)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        generate: Optional[GenerateFn] = None,
        similarity: Optional[SimilarityEngine] = None,
        reasoning: Optional[ReasoningEngine] = None,
        chain_store: Optional[ChainStore] = None,
        feedback: Optional[FeedbackSystem] = None,
        improvement: Optional[SelfImprovementController] = None,
        tracker: Optional[AccuracyTracker] = None,
    ):
        self.settings = settings or get_settings()
        self.generate = generate if generate is not None else build_generate_fn(self.settings)
        self.similarity = similarity or SimilarityEngine(settings=self.settings)
        self.reasoning = reasoning or ReasoningEngine(settings=self.settings)
        self.chain_store = chain_store if chain_store is not None else LRUChainStore(
            max_entries=self.settings.reasoning_cache_size
        )
        self.feedback = feedback or FeedbackSystem(store=create_outcome_store(self.settings))
        self.improvement = improvement or SelfImprovementController()
        self.tracker = tracker or AccuracyTracker()

        self._case_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Counter = Counter()
        self._recent: "OrderedDict[str, Tuple[CaseRecord, CaseAnalysis]]" = OrderedDict()

    # -------------------------------------------------------------------------
    # Strategy
    # -------------------------------------------------------------------------

    def strategy(self) -> ImprovementStrategy:
        return self.improvement.strategy()

    def effective_min_score(self, strategy: ImprovementStrategy) -> float:
        """Lower pattern weight makes matching stricter"""
        adjusted = self.settings.similarity_min_score + (DEFAULT_PATTERN_WEIGHT - strategy.pattern_matching_weight)
        return max(0.0, min(1.0, adjusted))

    def _guidance(self, strategy: ImprovementStrategy) -> Optional[str]:
        metrics = self.feedback.calculate_metrics()
        if metrics.verified_cases == 0 and not strategy.learned_rules:
            return None
        guidance = self.feedback.generate_learning_prompt(metrics)
        if strategy.learned_rules:
            rules = "\n".join(f"- {rule}" for rule in strategy.learned_rules)
            guidance = f"{guidance}\n\nLearned rules:\n{rules}"
        return guidance

    # -------------------------------------------------------------------------
    # Rule-based components
    # -------------------------------------------------------------------------

    def find_matches(
        self,
        target: CaseRecord,
        corpus: List[CaseRecord],
        min_score: Optional[float] = None,
    ) -> List[SimilarityScore]:
        if min_score is None:
            min_score = self.effective_min_score(self.strategy())
        return self.similarity.find_matches(target, corpus, min_score=min_score)

    def find_patterns(self, target: CaseRecord, corpus: List[CaseRecord]) -> PatternAnalysis:
        return PatternClassifier(self.similarity).analyze(target, corpus)

    # -------------------------------------------------------------------------
    # Reasoning
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _case_lock(self, case_id: str):
        """Per-case lock, dropped once no task holds or waits on it"""
        lock = self._case_locks.setdefault(case_id, asyncio.Lock())
        self._lock_users[case_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[case_id] -= 1
            if not self._lock_users[case_id]:
                del self._lock_users[case_id]
                del self._case_locks[case_id]

    async def reasoning_chain(
        self,
        case: CaseRecord,
        corpus: List[CaseRecord],
        insights: Optional[List[str]] = None,
        guidance: Optional[str] = None,
    ) -> Optional[ReasoningChain]:
        """
        Cached chain for the case, building it at most once concurrently.

        Returns None when no generate function is configured.
        """
        cached = self.chain_store.get(case.id)
        if cached is not None:
            return cached
        if self.generate is None:
            return None

        async with self._case_lock(case.id):
            # Another task may have finished while we waited
            cached = self.chain_store.get(case.id)
            if cached is not None:
                return cached

            chain = await self.reasoning.reason_through_case(
                case, corpus, self.generate, insights=insights, guidance=guidance
            )
            self.chain_store.set(case.id, chain)
            return chain

    def get_chain(self, case_id: str) -> Optional[ReasoningChain]:
        return self.chain_store.get(case_id)

    # -------------------------------------------------------------------------
    # Full analysis
    # -------------------------------------------------------------------------

    async def analyze(
        self,
        case: CaseRecord,
        corpus: List[CaseRecord],
        use_reasoning: bool = True,
    ) -> CaseAnalysis:
        strategy = self.strategy()
        corpus = self.similarity.bound_corpus(corpus)

        matches = self.find_matches(case, corpus)
        pattern_analysis = self.find_patterns(case, corpus)

        all_anomalies = detect_anomalies(case)
        anomalies = filter_by_sensitivity(all_anomalies, strategy.anomaly_sensitivity)

        hypotheses = [
            h for h in generate_hypotheses(case, corpus)
            if h.confidence >= strategy.confidence_threshold
        ]

        rule_insights = [p.description for p in pattern_analysis.patterns if p.description]
        rule_insights.extend(
            f"Similar to {m.case_title or m.case_id} ({round(m.score * 100)}% similarity)"
            for m in matches[:5]
        )

        chain = None
        if use_reasoning and self.settings.reasoning_enabled:
            chain = await self.reasoning_chain(
                case, corpus, insights=rule_insights, guidance=self._guidance(strategy)
            )

        insights = list(chain.conclusions) if chain and chain.conclusions else rule_insights

        quality = evidence_quality(case)
        if chain is not None:
            overall = chain.overall_confidence
        else:
            low_anomalies = sum(1 for a in anomalies if a.severity == Severity.LOW)
            overall = min(100, round(quality * 0.4 + (30 if matches else 10) + low_anomalies * 5))

        recommendations = list(pattern_analysis.recommendations)
        for hypothesis in hypotheses:
            recommendations.extend(hypothesis.recommended_actions)
        for anomaly in anomalies:
            recommendations.extend(anomaly.suggested_investigation)

        sources = _dedupe(
            [e.source for e in case.evidence if e.source]
            + [f"case:{m.case_id}" for m in matches]
        )

        now = datetime.now(timezone.utc)
        analysis = CaseAnalysis(
            case_id=case.id,
            timestamp=now,
            insights=_dedupe(insights)[:MAX_INSIGHTS],
            hypotheses=hypotheses,
            matches=matches,
            intelligent_patterns=pattern_analysis.patterns,
            anomalies=anomalies,
            confidence_scores=ConfidenceScores(
                overall=overall,
                evidence_quality=quality,
                forensic_strength=forensic_strength(case),
                serial_offender_probability=pattern_analysis.serial_offender_probability,
            ),
            recommendations=_dedupe(recommendations)[:MAX_RECOMMENDATIONS],
            sources=sources,
            audit_trail=[
                AuditEntry(
                    timestamp=now,
                    action="case_analyzed",
                    details={
                        "corpus_size": len(corpus),
                        "matches": len(matches),
                        "patterns": len(pattern_analysis.patterns),
                        "anomalies_suppressed": len(all_anomalies) - len(anomalies),
                        "confidence_threshold": strategy.confidence_threshold,
                        "reasoning": chain is not None,
                    },
                )
            ],
            reasoning_chain=chain,
        )

        self.feedback.record_analysis(analysis)
        self._remember(case, analysis)

        logger.info(
            f"Analyzed {case.id}: {len(matches)} matches, {len(pattern_analysis.patterns)} patterns, "
            f"{len(anomalies)} anomalies, {len(hypotheses)} hypotheses, overall={overall}"
        )
        return analysis

    def _remember(self, case: CaseRecord, analysis: CaseAnalysis) -> None:
        self._recent.pop(case.id, None)
        self._recent[case.id] = (case, analysis)
        while len(self._recent) > MAX_RECENT_ANALYSES:
            self._recent.popitem(last=False)

    def last_analysis(self, case_id: str) -> Optional[CaseAnalysis]:
        entry = self._recent.get(case_id)
        return entry[1] if entry else None

    # -------------------------------------------------------------------------
    # Feedback loop
    # -------------------------------------------------------------------------

    def submit_feedback(self, payload: Union[CaseOutcome, Mapping[str, Any]]) -> FeedbackResult:
        """
        Validate, store and learn from one verified outcome.

        Raises:
            FeedbackValidationError: nothing is stored and the strategy is unchanged
        """
        outcome = self.feedback.parse_outcome(payload)

        accuracy = None
        entry = self._recent.get(outcome.case_id)
        if entry is not None:
            case, analysis = entry
            outcome = annotate_pattern_accuracy(analysis.matches, outcome)
            accuracy = self.tracker.calculate_accuracy(analysis, outcome)
            self.feedback.create_training_example(case, analysis, outcome)

        self.feedback.record_outcome(outcome)
        metrics = self.feedback.calculate_metrics()
        strategy = self.improvement.refine(metrics)

        return FeedbackResult(outcome=outcome, metrics=metrics, strategy=strategy, accuracy=accuracy)
