"""
Cluster Builder & Pattern Classifier
====================================

Derives higher-order cross-case patterns from pairwise similarity.

Pattern types (closed set, see PatternType):
- serial_offender: several highly similar cases close in time and place
- geographic_cluster: greedy jurisdiction clusters
- temporal_series: weekly / monthly / seasonal rhythm among nearby dates
- evidence_chain: cases sharing most of the target's evidence types
- suspect_link: similar suspect descriptions

All confidences are integers in [0, 100].
"""

import logging
import math
from statistics import mean
from typing import List, Optional, Tuple

from .schemas import (
    CaseRecord,
    IntelligentPattern,
    PatternAnalysis,
    PatternType,
    RiskLevel,
)
from .similarity import (
    SimilarityEngine,
    geographic_proximity,
    jurisdiction_proximity,
    time_proximity,
    word_similarity,
)

logger = logging.getLogger(__name__)


# Serial offender thresholds
SERIAL_MIN_SIMILARITY = 0.6
SERIAL_MIN_TEMPORAL = 0.5
SERIAL_MIN_GEOGRAPHIC = 0.4
SERIAL_MIN_EVIDENCE = 3
SERIAL_MIN_CONFIDENCE = 60

CLUSTER_PROXIMITY = 0.7

TEMPORAL_WINDOW_DAYS = 365
TEMPORAL_NEIGHBOURS = 5

# (label, min mean gap, max mean gap, description)
DATE_BANDS = (
    ("weekly", 5, 9, "Cases occur approximately weekly"),
    ("monthly", 28, 31, "Cases occur approximately monthly"),
    ("seasonal", 90, 120, "Cases occur seasonally"),
)

EVIDENCE_CHAIN_OVERLAP = 0.6
SUSPECT_KEYWORDS = ("suspect", "perpetrator", "description", "witness saw")
SUSPECT_MIN_SIMILARITY = 0.4

PATTERN_RECOMMENDATIONS = {
    PatternType.SERIAL_OFFENDER: [
        "Coordinate investigation across jurisdictions",
        "Create task force if not already established",
        "Cross-reference all cases for suspect overlap",
        "Review unsolved cases in same timeframe",
        "Check for similar cases in adjacent jurisdictions",
    ],
    PatternType.GEOGRAPHIC_CLUSTER: [
        "Map all locations to identify patterns",
        "Check for surveillance footage in area",
        "Review local police reports for similar incidents",
    ],
    PatternType.TEMPORAL_SERIES: [
        "Investigate what was happening during pattern periods",
        "Check for events that might explain timing",
        "Review cases before/after pattern for context",
    ],
    PatternType.EVIDENCE_CHAIN: [
        "Cross-reference evidence collection methods",
        "Check if same lab processed evidence",
        "Review chain of custody for all cases",
    ],
    PatternType.SUSPECT_LINK: [
        "Create composite sketch from all descriptions",
        "Cross-reference with known offender databases",
        "Review mugshot databases for matches",
    ],
}

ESCALATION_THRESHOLD = 70
ESCALATION_RECOMMENDATIONS = [
    "HIGH PRIORITY: Strong indicators of serial offender - escalate to task force",
    "Coordinate with all jurisdictions involved in pattern",
]
FALLBACK_RECOMMENDATIONS = [
    "Continue standard investigation procedures",
    "Monitor for similar cases",
]


# =============================================================================
# Helpers
# =============================================================================

def _others(target: CaseRecord, corpus: List[CaseRecord]) -> List[CaseRecord]:
    return [c for c in corpus if c.id != target.id]


def _has_suspect_mention(case: CaseRecord) -> bool:
    text = case.full_text()
    return any(keyword in text for keyword in SUSPECT_KEYWORDS)


def temporal_consistency(cases: List[CaseRecord]) -> int:
    """
    100 for perfectly regular intervals, lower as interval variance grows.

    Cases without a date are ignored; fewer than two dates yields 0.
    """
    dates = sorted(c.date for c in cases if c.date is not None)
    if len(dates) < 2:
        return 0
    intervals = [(dates[i] - dates[i - 1]).days for i in range(1, len(dates))]
    avg = mean(intervals)
    variance = sum((i - avg) ** 2 for i in intervals) / len(intervals)
    if avg == 0:
        return 100 if variance == 0 else 0
    return round(max(0.0, 100 - (variance / avg) * 100))


def geographic_concentration(cases: List[CaseRecord]) -> int:
    """
    How concentrated the cases are geographically.

    50 when no jurisdictions are known, 100 when every known jurisdiction is
    the same, otherwise (1 - unique/total) * 100.
    """
    jurisdictions = [c.jurisdiction.strip().lower() for c in cases if c.jurisdiction and c.jurisdiction.strip()]
    if not jurisdictions:
        return 50
    unique = len(set(jurisdictions))
    if unique == 1:
        return 100
    return round((1 - unique / len(jurisdictions)) * 100)


def _date_band(cases: List[CaseRecord]) -> Optional[Tuple[str, str]]:
    dates = sorted(c.date for c in cases if c.date is not None)
    if len(dates) < 3:
        return None
    intervals = [(dates[i] - dates[i - 1]).days for i in range(1, len(dates))]
    avg = mean(intervals)
    for label, low, high, description in DATE_BANDS:
        if low <= avg <= high:
            return label, description
    return None


# =============================================================================
# Cluster Builder
# =============================================================================

def build_geographic_clusters(target: CaseRecord, corpus: List[CaseRecord]) -> List[List[CaseRecord]]:
    """
    Greedy single-pass jurisdiction clustering.

    Each candidate joins the first cluster with any member at proximity >= 0.7,
    otherwise it starts a new cluster. The target is considered first. Only
    clusters with more than one member are kept.
    """
    clusters: List[List[CaseRecord]] = []
    for candidate in [target] + _others(target, corpus):
        if not candidate.jurisdiction:
            continue
        home = None
        for cluster in clusters:
            if any(
                (jurisdiction_proximity(member.jurisdiction, candidate.jurisdiction) or 0.0) >= CLUSTER_PROXIMITY
                for member in cluster
            ):
                home = cluster
                break
        if home is None:
            clusters.append([candidate])
        else:
            home.append(candidate)

    return [c for c in clusters if len(c) > 1]


# =============================================================================
# Pattern Classifier
# =============================================================================

class PatternClassifier:
    """
    Derives IntelligentPattern objects for one target case.

    Usage:
        classifier = PatternClassifier(SimilarityEngine())
        analysis = classifier.analyze(target, corpus)
    """

    def __init__(self, engine: Optional[SimilarityEngine] = None):
        self.engine = engine or SimilarityEngine()

    # -------------------------------------------------------------------------
    # Individual detectors
    # -------------------------------------------------------------------------

    def mo_consistency(self, cases: List[CaseRecord]) -> int:
        """Mean pairwise composite similarity across the set, scaled to 0-100."""
        scores = [
            self.engine.score(cases[i], cases[j]).score
            for i in range(len(cases))
            for j in range(i + 1, len(cases))
        ]
        if not scores:
            return 0
        return round(mean(scores) * 100)

    def detect_serial_offender(self, target: CaseRecord, corpus: List[CaseRecord]) -> Optional[IntelligentPattern]:
        if len(target.evidence) < SERIAL_MIN_EVIDENCE:
            return None

        candidates = []
        for other in _others(target, corpus):
            if len(other.evidence) < SERIAL_MIN_EVIDENCE:
                continue
            similarity = self.engine.score(target, other).score
            if (
                similarity >= SERIAL_MIN_SIMILARITY
                and time_proximity(target, other) >= SERIAL_MIN_TEMPORAL
                and geographic_proximity(target, other) >= SERIAL_MIN_GEOGRAPHIC
            ):
                candidates.append((similarity, other))

        if len(candidates) < 2:
            return None

        candidates.sort(key=lambda item: (-item[0], item[1].id))
        members = [target] + [c for _, c in candidates]

        mo = self.mo_consistency(members)
        temporal = temporal_consistency(members)
        geographic = geographic_concentration(members)
        confidence = round(mo * 0.4 + temporal * 0.3 + geographic * 0.3)

        if confidence < SERIAL_MIN_CONFIDENCE:
            logger.debug(f"Serial candidate set for {target.id} below confidence ({confidence})")
            return None

        if confidence >= 80:
            risk = RiskLevel.CRITICAL
        elif confidence >= 65:
            risk = RiskLevel.HIGH
        else:
            risk = RiskLevel.MEDIUM

        return IntelligentPattern(
            id="serial-offender-pattern",
            name="Potential Serial Offender Pattern",
            type=PatternType.SERIAL_OFFENDER,
            confidence=min(100, confidence),
            risk_level=risk,
            cases=[c.id for c in members],
            description=f"Strong indicators of serial offender activity across {len(members)} cases",
            indicators=[
                f"MO similarity: {mo}%",
                f"Temporal pattern: {'Strong' if temporal > 70 else 'Moderate'}",
                f"Geographic pattern: {'Concentrated' if geographic > 70 else 'Scattered'}",
            ],
            recommendations=list(PATTERN_RECOMMENDATIONS[PatternType.SERIAL_OFFENDER]),
        )

    def geographic_patterns(self, clusters: List[List[CaseRecord]]) -> List[IntelligentPattern]:
        patterns = []
        for idx, cluster in enumerate(clusters):
            size = len(cluster)
            consistency = geographic_concentration(cluster)
            confidence = round(min(100, size * 15) * 0.5 + consistency * 0.5)

            jurisdictions = {c.jurisdiction for c in cluster if c.jurisdiction}
            if len(jurisdictions) == 1:
                indicator = f"All cases in: {cluster[0].jurisdiction}"
            else:
                indicator = f"{len(jurisdictions)} different jurisdictions"

            if size >= 5:
                risk = RiskLevel.HIGH
            elif size >= 3:
                risk = RiskLevel.MEDIUM
            else:
                risk = RiskLevel.LOW

            patterns.append(IntelligentPattern(
                id=f"geo-cluster-{idx}",
                name=f"Geographic Cluster {idx + 1}",
                type=PatternType.GEOGRAPHIC_CLUSTER,
                confidence=confidence,
                risk_level=risk,
                cases=[c.id for c in cluster],
                description=f"{size} cases in similar geographic area",
                indicators=[indicator],
                recommendations=list(PATTERN_RECOMMENDATIONS[PatternType.GEOGRAPHIC_CLUSTER]),
            ))
        return patterns

    def detect_temporal_series(self, target: CaseRecord, corpus: List[CaseRecord]) -> Optional[IntelligentPattern]:
        if target.date is None:
            return None

        nearby = []
        for other in _others(target, corpus):
            if other.date is None:
                continue
            gap = abs((other.date - target.date).days)
            if gap <= TEMPORAL_WINDOW_DAYS:
                nearby.append((gap, other))
        nearby.sort(key=lambda item: (item[0], item[1].id))
        nearby = nearby[:TEMPORAL_NEIGHBOURS]

        if len(nearby) < 2:
            return None

        members = [target] + [c for _, c in nearby]
        band = _date_band(members)
        if band is None:
            return None
        label, description = band

        return IntelligentPattern(
            id="temporal-series",
            name="Temporal Pattern Detected",
            type=PatternType.TEMPORAL_SERIES,
            confidence=75,
            risk_level=RiskLevel.HIGH if len(members) >= 5 else RiskLevel.MEDIUM,
            cases=[c.id for c in members],
            description=f"Cases show temporal clustering: {description}",
            indicators=[
                f"{len(nearby)} cases within 1 year",
                f"Pattern: {label}",
            ],
            recommendations=list(PATTERN_RECOMMENDATIONS[PatternType.TEMPORAL_SERIES]),
        )

    def detect_evidence_chain(self, target: CaseRecord, corpus: List[CaseRecord]) -> Optional[IntelligentPattern]:
        target_types = target.evidence_categories()
        if not target_types:
            return None
        required = math.ceil(len(target_types) * EVIDENCE_CHAIN_OVERLAP)

        similar = [
            other for other in _others(target, corpus)
            if len(target_types & other.evidence_categories()) >= required
        ]
        if len(similar) < 2:
            return None

        common = ", ".join(sorted(t.value for t in target_types))
        return IntelligentPattern(
            id="evidence-chain",
            name="Evidence Type Chain",
            type=PatternType.EVIDENCE_CHAIN,
            confidence=70,
            risk_level=RiskLevel.MEDIUM,
            cases=[target.id] + [c.id for c in similar],
            description=f"{len(similar) + 1} cases share similar evidence types",
            indicators=[
                f"Common evidence types: {common}",
                f"{len(similar)} matching cases",
            ],
            recommendations=list(PATTERN_RECOMMENDATIONS[PatternType.EVIDENCE_CHAIN]),
        )

    def detect_suspect_link(self, target: CaseRecord, corpus: List[CaseRecord]) -> Optional[IntelligentPattern]:
        if not _has_suspect_mention(target):
            return None

        similar = [
            other for other in _others(target, corpus)
            if _has_suspect_mention(other)
            and word_similarity(target.description, other.description) > SUSPECT_MIN_SIMILARITY
        ]
        if len(similar) < 2:
            return None

        return IntelligentPattern(
            id="suspect-link",
            name="Suspect Description Link",
            type=PatternType.SUSPECT_LINK,
            confidence=65,
            risk_level=RiskLevel.HIGH,
            cases=[target.id] + [c.id for c in similar],
            description=f"{len(similar) + 1} cases have similar suspect descriptions",
            indicators=[
                "Similar witness descriptions",
                "Potential same perpetrator",
            ],
            recommendations=list(PATTERN_RECOMMENDATIONS[PatternType.SUSPECT_LINK]),
        )

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    def analyze(self, target: CaseRecord, corpus: List[CaseRecord]) -> PatternAnalysis:
        """Run every detector and aggregate the results for one target."""
        corpus = self.engine.bound_corpus(corpus)
        clusters = build_geographic_clusters(target, corpus)

        patterns: List[IntelligentPattern] = []
        serial = self.detect_serial_offender(target, corpus)
        if serial:
            patterns.append(serial)
        patterns.extend(self.geographic_patterns(clusters))
        for detector in (self.detect_temporal_series, self.detect_evidence_chain, self.detect_suspect_link):
            pattern = detector(target, corpus)
            if pattern:
                patterns.append(pattern)

        patterns.sort(key=lambda p: (-p.confidence, p.type.value, p.id))
        probability = serial_offender_probability(patterns)

        logger.info(
            f"Patterns for {target.id}: {len(patterns)} found, serial probability {probability}"
        )

        return PatternAnalysis(
            patterns=patterns,
            serial_offender_probability=probability,
            recommendations=aggregate_recommendations(patterns, probability),
            clusters=[[c.id for c in cluster] for cluster in clusters],
        )


def serial_offender_probability(patterns: List[IntelligentPattern]) -> int:
    """
    Serial-offender confidence boosted by corroborating patterns, capped at 100.

    0 when no serial_offender pattern exists.
    """
    serial = next((p for p in patterns if p.type == PatternType.SERIAL_OFFENDER), None)
    if serial is None:
        return 0

    probability = serial.confidence
    if len(serial.cases) >= 5:
        probability += 10
    if len(serial.cases) >= 10:
        probability += 10
    if any(p.type == PatternType.TEMPORAL_SERIES for p in patterns):
        probability += 5
    if any(p.type == PatternType.GEOGRAPHIC_CLUSTER and len(p.cases) >= 3 for p in patterns):
        probability += 5

    return int(min(100, probability))


def aggregate_recommendations(patterns: List[IntelligentPattern], probability: int) -> List[str]:
    recommendations: List[str] = []

    if probability >= ESCALATION_THRESHOLD:
        recommendations.extend(ESCALATION_RECOMMENDATIONS)

    serial = next((p for p in patterns if p.type == PatternType.SERIAL_OFFENDER), None)
    if serial:
        recommendations.extend(serial.recommendations)

    if any(p.type == PatternType.GEOGRAPHIC_CLUSTER for p in patterns):
        recommendations.append("Map all locations to identify geographic pattern")
        recommendations.append("Check for surveillance cameras in identified area")

    if any(p.type == PatternType.TEMPORAL_SERIES for p in patterns):
        recommendations.append("Investigate what occurs during pattern periods")
        recommendations.append("Check for events that might explain timing")

    if not recommendations:
        recommendations.extend(FALLBACK_RECOMMENDATIONS)

    return recommendations
