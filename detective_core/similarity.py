"""
Case Similarity Engine
======================

Deterministic pairwise similarity between two case records.

Factors (each skipped, not zeroed, when the data behind it is missing):
- narrative: character-trigram Jaccard over the lower-cased description
- evidence_type: Jaccard over evidence categories blended 70/30 with item-count ratio
- keyword: share of MO indicator words present in both cases
- jurisdiction: exact / same state / same region / elsewhere
- temporal: step function on the day gap between incident dates

Composite = weighted mean of the applicable factors.
"""

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Set

from .config import Settings, get_settings
from .schemas import CaseRecord, FactorBreakdown, SimilarityScore

logger = logging.getLogger(__name__)


MO_KEYWORDS = (
    "weapon", "method", "entry", "escape", "victim", "location", "time",
    "threat", "demand", "ransom", "note", "letter", "call", "witness",
    "forced", "bound", "gagged", "stabbed", "shot", "strangled",
)

# Keyword -> human label for matching_factors
MO_FACTOR_LABELS = {
    "weapon": "Similar weapon",
    "method": "Similar method",
    "threat": "Similar threats",
    "note": "Similar notes/letters",
    "forced": "Similar force used",
}

# Coarse region lookup, first match wins
REGION_HINTS = (
    (("california", "west"), "west"),
    (("new york", "east"), "east"),
    (("texas", "south"), "south"),
    (("illinois", "midwest"), "midwest"),
)

# (max day gap, proximity)
TEMPORAL_STEPS = (
    (30, 1.0),
    (90, 0.8),
    (180, 0.6),
    (365, 0.4),
    (730, 0.2),
)

DEFAULT_WEIGHTS = {
    "narrative": 0.30,
    "evidence_type": 0.25,
    "keyword": 0.25,
    "jurisdiction": 0.20,
    "temporal": 0.15,
}


# =============================================================================
# Factor primitives
# =============================================================================

def _ngrams(text: str, n: int = 3) -> Set[str]:
    return {text[i:i + n] for i in range(len(text) - n + 1)}


def jaccard(a: Set, b: Set) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def trigram_similarity(text_a: str, text_b: str) -> float:
    """Jaccard similarity over character trigrams of lower-cased text."""
    return jaccard(_ngrams(text_a.lower()), _ngrams(text_b.lower()))


def word_similarity(text_a: str, text_b: str) -> float:
    """Jaccard similarity over whitespace-separated lower-cased words."""
    return jaccard(set(text_a.lower().split()), set(text_b.lower().split()))


def evidence_type_similarity(case_a: CaseRecord, case_b: CaseRecord) -> Optional[float]:
    if not case_a.evidence or not case_b.evidence:
        return None
    base = jaccard(case_a.evidence_categories(), case_b.evidence_categories())
    count_a, count_b = len(case_a.evidence), len(case_b.evidence)
    count_ratio = min(count_a, count_b) / max(count_a, count_b)
    return base * 0.7 + count_ratio * 0.3


def keyword_similarity(text_a: str, text_b: str, keywords: Iterable[str] = MO_KEYWORDS) -> Optional[float]:
    """
    Share of keywords present in both texts among those present in either.

    Returns None when no keyword appears in either text.
    """
    matches = 0
    total = 0
    for keyword in keywords:
        in_a = keyword in text_a
        in_b = keyword in text_b
        if in_a or in_b:
            total += 1
            if in_a and in_b:
                matches += 1
    if total == 0:
        return None
    return matches / total


def _region(jurisdiction: str) -> Optional[str]:
    lower = jurisdiction.lower()
    for hints, region in REGION_HINTS:
        if any(h in lower for h in hints):
            return region
    return None


def _state(jurisdiction: str) -> Optional[str]:
    parts = jurisdiction.split(",")
    if len(parts) < 2:
        return None
    state = parts[1].strip().lower()
    return state or None


def jurisdiction_proximity(jurisdiction_a: Optional[str], jurisdiction_b: Optional[str]) -> Optional[float]:
    """0-1 geographic closeness of two jurisdiction strings, None if either is missing."""
    if not jurisdiction_a or not jurisdiction_b:
        return None
    a, b = jurisdiction_a.strip(), jurisdiction_b.strip()
    if not a or not b:
        return None
    if a.lower() == b.lower():
        return 1.0

    state_a, state_b = _state(a), _state(b)
    if state_a and state_b and state_a == state_b:
        return 0.7

    region_a, region_b = _region(a), _region(b)
    if region_a and region_b and region_a == region_b:
        return 0.4

    return 0.1


def temporal_proximity(date_a: Optional[date], date_b: Optional[date]) -> Optional[float]:
    if date_a is None or date_b is None:
        return None
    gap = abs((date_a - date_b).days)
    for max_days, value in TEMPORAL_STEPS:
        if gap <= max_days:
            return value
    return 0.1


def geographic_proximity(case_a: CaseRecord, case_b: CaseRecord) -> float:
    """Jurisdiction proximity with a neutral 0.5 when either side is unknown."""
    value = jurisdiction_proximity(case_a.jurisdiction, case_b.jurisdiction)
    return 0.5 if value is None else value


def time_proximity(case_a: CaseRecord, case_b: CaseRecord) -> float:
    """Temporal proximity with a neutral 0.5 when either date is unknown."""
    value = temporal_proximity(case_a.date, case_b.date)
    return 0.5 if value is None else value


def matching_factors(case_a: CaseRecord, case_b: CaseRecord) -> List[str]:
    """Human-readable reasons two cases look alike."""
    text_a, text_b = case_a.full_text(), case_b.full_text()
    factors = [
        label for keyword, label in MO_FACTOR_LABELS.items()
        if keyword in text_a and keyword in text_b
    ]

    if len(case_a.evidence_categories() & case_b.evidence_categories()) >= 2:
        factors.append("Similar evidence types")

    proximity = jurisdiction_proximity(case_a.jurisdiction, case_b.jurisdiction)
    if proximity is not None:
        if proximity >= 0.7:
            factors.append("Same jurisdiction")
        elif proximity >= 0.4:
            factors.append("Nearby jurisdiction")

    return factors or ["General similarity"]


# =============================================================================
# Engine
# =============================================================================

class SimilarityEngine:
    """
    Weighted multi-factor case similarity.

    Usage:
        engine = SimilarityEngine()
        matches = engine.find_matches(target, corpus)
    """

    def __init__(
        self,
        weights: Optional[Dict[str, float]] = None,
        min_score: Optional[float] = None,
        max_corpus_size: Optional[int] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.weights = dict(DEFAULT_WEIGHTS)
        self.weights.update(weights or settings.similarity_weights())
        self.min_score = settings.similarity_min_score if min_score is None else min_score
        self.max_corpus_size = max_corpus_size or settings.max_corpus_size

    def factors(self, case_a: CaseRecord, case_b: CaseRecord) -> FactorBreakdown:
        narrative = None
        if case_a.description.strip() and case_b.description.strip():
            narrative = trigram_similarity(case_a.description, case_b.description)

        return FactorBreakdown(
            narrative=narrative,
            evidence_type=evidence_type_similarity(case_a, case_b),
            keyword=keyword_similarity(case_a.full_text(), case_b.full_text()),
            jurisdiction=jurisdiction_proximity(case_a.jurisdiction, case_b.jurisdiction),
            temporal=temporal_proximity(case_a.date, case_b.date),
        )

    def composite(self, breakdown: FactorBreakdown) -> float:
        weighted = 0.0
        total_weight = 0.0
        for name, value in breakdown.applicable().items():
            weight = self.weights.get(name, 0.0)
            weighted += weight * value
            total_weight += weight
        if total_weight <= 0:
            return 0.0
        return max(0.0, min(1.0, weighted / total_weight))

    def score(self, case_a: CaseRecord, case_b: CaseRecord) -> SimilarityScore:
        """Score case_b against case_a."""
        breakdown = self.factors(case_a, case_b)
        return SimilarityScore(
            case_id=case_b.id,
            case_title=case_b.title,
            score=self.composite(breakdown),
            factors=breakdown,
            matching_factors=matching_factors(case_a, case_b),
        )

    def bound_corpus(self, corpus: List[CaseRecord]) -> List[CaseRecord]:
        if len(corpus) > self.max_corpus_size:
            logger.warning(
                f"Corpus of {len(corpus)} cases exceeds max_corpus_size={self.max_corpus_size}, truncating"
            )
            return list(corpus[:self.max_corpus_size])
        return list(corpus)

    def find_matches(
        self,
        target: CaseRecord,
        corpus: List[CaseRecord],
        min_score: Optional[float] = None,
    ) -> List[SimilarityScore]:
        """
        Score every corpus case against the target.

        Excludes the target itself and scores below min_score. Sorted by score
        descending, ties by case id ascending.
        """
        threshold = self.min_score if min_score is None else min_score
        matches = []
        for other in self.bound_corpus(corpus):
            if other.id == target.id:
                continue
            result = self.score(target, other)
            if result.score >= threshold:
                matches.append(result)

        matches.sort(key=lambda m: (-m.score, m.case_id))
        logger.debug(f"find_matches: target={target.id} corpus={len(corpus)} matches={len(matches)}")
        return matches
