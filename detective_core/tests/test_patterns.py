"""
Tests for Cluster Builder & Pattern Classifier
==============================================

Tests:
1. Serial offender detection on a monthly burglary series
2. Geographic clusters and consistency measures
3. Serial-offender probability aggregation
"""

from datetime import date, timedelta

import pytest

from conftest import make_case
from detective_core.patterns import (
    FALLBACK_RECOMMENDATIONS,
    PatternClassifier,
    build_geographic_clusters,
    geographic_concentration,
    serial_offender_probability,
    temporal_consistency,
)
from detective_core.schemas import EvidenceCategory, IntelligentPattern, PatternType, RiskLevel
from detective_core.similarity import DEFAULT_WEIGHTS, SimilarityEngine


@pytest.fixture
def classifier():
    return PatternClassifier(SimilarityEngine(weights=dict(DEFAULT_WEIGHTS), min_score=0.35, max_corpus_size=5000))


def _pattern(pattern_type, confidence=70, cases=3):
    return IntelligentPattern(
        id=f"{pattern_type.value}-test",
        name=pattern_type.value,
        type=pattern_type,
        confidence=confidence,
        risk_level=RiskLevel.MEDIUM,
        cases=[f"c{i}" for i in range(cases)],
    )


# =============================================================================
# Serial offender
# =============================================================================

class TestSerialOffender:
    """Serial offender detection"""

    def test_monthly_series_detected(self, classifier, burglary_series):
        target, *corpus = burglary_series
        analysis = classifier.analyze(target, corpus)

        types = [p.type for p in analysis.patterns]
        assert PatternType.SERIAL_OFFENDER in types

        serial = next(p for p in analysis.patterns if p.type == PatternType.SERIAL_OFFENDER)
        assert serial.confidence >= 60
        assert serial.cases[0] == target.id
        assert set(serial.cases) == {c.id for c in burglary_series}

        assert PatternType.GEOGRAPHIC_CLUSTER in types or PatternType.TEMPORAL_SERIES in types

    def test_series_also_temporal_and_geographic(self, classifier, burglary_series):
        target, *corpus = burglary_series
        analysis = classifier.analyze(target, corpus)
        types = {p.type for p in analysis.patterns}

        assert PatternType.GEOGRAPHIC_CLUSTER in types
        assert PatternType.TEMPORAL_SERIES in types
        temporal = next(p for p in analysis.patterns if p.type == PatternType.TEMPORAL_SERIES)
        assert "Pattern: monthly" in temporal.indicators

    def test_probability_includes_corroboration(self, classifier, burglary_series):
        target, *corpus = burglary_series
        analysis = classifier.analyze(target, corpus)
        serial = next(p for p in analysis.patterns if p.type == PatternType.SERIAL_OFFENDER)
        assert serial.confidence <= analysis.serial_offender_probability <= 100

    def test_needs_two_candidates(self, classifier, burglary_series):
        target, other, _ = burglary_series
        assert classifier.detect_serial_offender(target, [other]) is None

    def test_target_with_little_evidence(self, classifier, burglary_series):
        target = make_case("thin", incident_date=date(2021, 3, 15), categories=(EvidenceCategory.PHYSICAL,))
        assert classifier.detect_serial_offender(target, burglary_series) is None

    def test_patterns_sorted_by_confidence(self, classifier, burglary_series):
        target, *corpus = burglary_series
        patterns = classifier.analyze(target, corpus).patterns
        keys = [(-p.confidence, p.type.value, p.id) for p in patterns]
        assert keys == sorted(keys)

    def test_empty_corpus(self, classifier):
        analysis = classifier.analyze(make_case("alone"), [])
        assert analysis.patterns == []
        assert analysis.serial_offender_probability == 0
        assert analysis.recommendations == FALLBACK_RECOMMENDATIONS


# =============================================================================
# Clusters and consistency
# =============================================================================

class TestClusters:
    """Geographic clustering and consistency measures"""

    def test_greedy_clusters(self):
        target = make_case("t", jurisdiction="Riverside, California")
        corpus = [
            make_case("oak", jurisdiction="Oakland, California"),
            make_case("aus", jurisdiction="Austin, Texas"),
            make_case("none", jurisdiction=None),
        ]
        clusters = build_geographic_clusters(target, corpus)
        assert [[c.id for c in cluster] for cluster in clusters] == [["t", "oak"]]

    def test_cluster_ids_in_analysis(self, classifier, burglary_series):
        target, *corpus = burglary_series
        analysis = classifier.analyze(target, corpus)
        assert analysis.clusters == [[c.id for c in burglary_series]]

    def test_temporal_consistency_regular(self):
        start = date(2020, 1, 1)
        cases = [make_case(f"c{i}", incident_date=start + timedelta(days=7 * i)) for i in range(4)]
        assert temporal_consistency(cases) == 100

    def test_temporal_consistency_needs_two_dates(self):
        assert temporal_consistency([make_case("a", incident_date=date(2020, 1, 1)), make_case("b")]) == 0

    def test_geographic_concentration(self):
        assert geographic_concentration([make_case("a", jurisdiction=None)]) == 50
        assert geographic_concentration([make_case("a"), make_case("b")]) == 100
        mixed = [
            make_case("a", jurisdiction="X"),
            make_case("b", jurisdiction="Y"),
            make_case("c", jurisdiction="X"),
            make_case("d", jurisdiction="Y"),
        ]
        assert geographic_concentration(mixed) == 50


# =============================================================================
# Probability
# =============================================================================

class TestSerialProbability:
    """Serial-offender probability aggregation"""

    def test_zero_without_serial_pattern(self):
        assert serial_offender_probability([_pattern(PatternType.TEMPORAL_SERIES)]) == 0

    def test_corroboration_never_lowers(self):
        serial = _pattern(PatternType.SERIAL_OFFENDER, confidence=65)
        base = serial_offender_probability([serial])
        with_temporal = serial_offender_probability([serial, _pattern(PatternType.TEMPORAL_SERIES)])
        with_both = serial_offender_probability([
            serial,
            _pattern(PatternType.TEMPORAL_SERIES),
            _pattern(PatternType.GEOGRAPHIC_CLUSTER, cases=3),
        ])
        assert base == 65
        assert base <= with_temporal <= with_both

    def test_capped_at_100(self):
        patterns = [
            _pattern(PatternType.SERIAL_OFFENDER, confidence=95, cases=10),
            _pattern(PatternType.TEMPORAL_SERIES),
            _pattern(PatternType.GEOGRAPHIC_CLUSTER, cases=4),
        ]
        assert serial_offender_probability(patterns) == 100
