"""
Tests for Case Similarity Engine
================================

Tests:
1. Factor primitives (trigram, keyword, jurisdiction, temporal)
2. Composite score bounds, symmetry and skipped factors
3. Match ordering, threshold and corpus bound
"""

import logging
from datetime import date, timedelta

import pytest

from conftest import make_case
from detective_core.schemas import CaseRecord, EvidenceCategory
from detective_core.similarity import (
    DEFAULT_WEIGHTS,
    SimilarityEngine,
    jurisdiction_proximity,
    keyword_similarity,
    matching_factors,
    temporal_proximity,
    trigram_similarity,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def engine():
    """Engine with default weights and the default 0.35 threshold"""
    return SimilarityEngine(weights=dict(DEFAULT_WEIGHTS), min_score=0.35, max_corpus_size=5000)


# =============================================================================
# Factor primitives
# =============================================================================

class TestFactorPrimitives:
    """Individual similarity factors"""

    def test_trigram_identical_text(self):
        assert trigram_similarity("Forced entry via window", "forced ENTRY via window") == 1.0

    def test_trigram_disjoint_text(self):
        assert trigram_similarity("aaaa", "zzzz") == 0.0

    def test_keyword_similarity_none_without_keywords(self):
        assert keyword_similarity("quiet afternoon", "sunny morning") is None

    def test_keyword_similarity_share(self):
        # weapon in both, ransom only in a
        assert keyword_similarity("weapon and ransom", "weapon only") == pytest.approx(0.5)

    @pytest.mark.parametrize("a,b,expected", [
        ("Riverside, California", "riverside, california", 1.0),
        ("Oakland, California", "San Diego, California", 0.7),
        ("Fresno County California", "Western District", 0.4),
        ("Austin, Texas", "Portland, Oregon", 0.1),
    ])
    def test_jurisdiction_proximity(self, a, b, expected):
        assert jurisdiction_proximity(a, b) == expected

    def test_jurisdiction_missing(self):
        assert jurisdiction_proximity(None, "Austin, Texas") is None
        assert jurisdiction_proximity("  ", "Austin, Texas") is None

    @pytest.mark.parametrize("gap,expected", [
        (0, 1.0),
        (10, 1.0),
        (60, 0.8),
        (150, 0.6),
        (300, 0.4),
        (700, 0.2),
        (1000, 0.1),
    ])
    def test_temporal_steps(self, gap, expected):
        start = date(2020, 1, 1)
        assert temporal_proximity(start, start + timedelta(days=gap)) == expected

    def test_temporal_missing_date(self):
        assert temporal_proximity(None, date(2020, 1, 1)) is None


# =============================================================================
# Composite score
# =============================================================================

class TestCompositeScore:
    """Composite similarity behaviour"""

    def test_near_duplicate_cases_score_high(self, engine):
        """Identical narrative and evidence types, same place, ten days apart"""
        a = make_case("a", incident_date=date(2021, 5, 1))
        b = make_case("b", incident_date=date(2021, 5, 11))

        result = engine.score(a, b)
        assert result.score > 0.8

        matches = engine.find_matches(a, [a, b])
        assert [m.case_id for m in matches] == ["b"]

    def test_score_is_symmetric(self, engine):
        a = make_case("a", incident_date=date(2021, 5, 1), jurisdiction="Oakland, California")
        b = make_case(
            "b",
            description="Armed robbery at a gas station, weapon shown, getaway by car",
            incident_date=date(2021, 9, 1),
            categories=(EvidenceCategory.VIDEO, EvidenceCategory.FORENSIC),
        )
        assert engine.score(a, b).score == pytest.approx(engine.score(b, a).score)

    def test_score_bounds(self, engine):
        a = make_case("a")
        b = make_case("b", description="Unrelated paperwork dispute", jurisdiction="Austin, Texas",
                      categories=(EvidenceCategory.DOCUMENT,))
        score = engine.score(a, b).score
        assert 0.0 <= score <= 1.0

    def test_missing_data_skips_factors(self, engine):
        a = make_case("a", jurisdiction=None, evidence=[])
        b = make_case("b", jurisdiction="Austin, Texas", incident_date=date(2020, 1, 1))

        factors = engine.factors(a, b)
        assert factors.evidence_type is None
        assert factors.jurisdiction is None
        assert factors.temporal is None
        assert factors.narrative is not None
        # Skipped factors do not drag the score down
        assert engine.score(a, b).score == pytest.approx(
            engine.composite(factors)
        )
        assert engine.score(a, b).score > 0.8

    def test_nothing_comparable_scores_zero(self, engine):
        a = CaseRecord(id="a")
        b = CaseRecord(id="b")
        result = engine.score(a, b)
        assert result.score == 0.0
        assert result.factors.applicable() == {}

    def test_matching_factors_labels(self):
        a = make_case("a")
        b = make_case("b")
        factors = matching_factors(a, b)
        assert "Similar weapon" in factors
        assert "Similar evidence types" in factors
        assert "Same jurisdiction" in factors

    def test_matching_factors_fallback(self):
        a = CaseRecord(id="a", description="quiet")
        b = CaseRecord(id="b", description="calm")
        assert matching_factors(a, b) == ["General similarity"]


# =============================================================================
# Matching
# =============================================================================

class TestFindMatches:
    """Ordering, threshold and corpus bound"""

    def test_excludes_target(self, engine):
        a = make_case("a")
        assert engine.find_matches(a, [a]) == []

    def test_ties_broken_by_case_id(self, engine):
        target = make_case("target")
        corpus = [make_case("zeta"), make_case("alpha"), make_case("mid")]
        matches = engine.find_matches(target, corpus)
        assert [m.case_id for m in matches] == ["alpha", "mid", "zeta"]

    def test_sorted_by_score_descending(self, engine):
        target = make_case("target", incident_date=date(2021, 1, 1))
        close = make_case("close", incident_date=date(2021, 1, 5))
        far = make_case("far", incident_date=date(2024, 1, 5), jurisdiction="Austin, Texas")
        matches = engine.find_matches(target, [far, close], min_score=0.0)
        assert [m.case_id for m in matches] == ["close", "far"]
        assert matches[0].score >= matches[1].score

    def test_threshold_filters(self, engine):
        target = make_case("target")
        other = make_case(
            "other",
            description="Noise complaint",
            jurisdiction="Austin, Texas",
            categories=(EvidenceCategory.AUDIO,),
        )
        assert engine.find_matches(target, [other], min_score=0.99) == []
        assert len(engine.find_matches(target, [other], min_score=0.0)) == 1

    def test_corpus_truncated_with_warning(self, caplog):
        engine = SimilarityEngine(weights=dict(DEFAULT_WEIGHTS), min_score=0.0, max_corpus_size=2)
        target = make_case("target")
        corpus = [make_case(f"c{i}") for i in range(4)]

        with caplog.at_level(logging.WARNING):
            matches = engine.find_matches(target, corpus)

        assert [m.case_id for m in matches] == ["c0", "c1"]
        assert "max_corpus_size" in caplog.text
