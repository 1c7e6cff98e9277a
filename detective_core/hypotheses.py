"""
Hypothesis Generation
=====================

Rule-based investigative hypotheses with fixed confidences.
Returns at most MAX_HYPOTHESES, highest confidence first.
"""

import re
from typing import List

from .schemas import CaseRecord, EvidenceCategory, Hypothesis, HypothesisCategory

MAX_HYPOTHESES = 10

SUSPECT_PATTERN = re.compile(r"suspect|perpetrator|person|individual|\bman\b|woman", re.IGNORECASE)
LOCATION_PATTERN = re.compile(r"location|scene|address|place|area", re.IGNORECASE)


def _suspect_hypotheses(case: CaseRecord) -> List[Hypothesis]:
    hypotheses = []

    statements = [e for e in case.evidence if e.category == EvidenceCategory.WITNESS_STATEMENT]
    if any(SUSPECT_PATTERN.search(e.description) for e in statements):
        hypotheses.append(Hypothesis(
            id="suspect-profile-1",
            title="Suspect Profile Development",
            description=(
                "Witness statements contain potential suspect descriptions. "
                "Recommend developing a composite profile."
            ),
            confidence=65,
            supporting_evidence=[e.id for e in statements],
            recommended_actions=[
                "Create composite sketch from witness descriptions",
                "Cross-reference with known offender databases",
                "Review similar cases for suspect patterns",
            ],
            category=HypothesisCategory.SUSPECT,
        ))

    forensic = [e for e in case.evidence if e.category == EvidenceCategory.FORENSIC]
    if forensic:
        hypotheses.append(Hypothesis(
            id="suspect-forensic-1",
            title="Forensic DNA/Evidence Analysis",
            description=(
                "Forensic evidence available for suspect identification. "
                "Recommend database comparison."
            ),
            confidence=75,
            supporting_evidence=[e.id for e in forensic],
            recommended_actions=[
                "Submit evidence for DNA analysis if not already done",
                "Compare with CODIS database",
                "Consider genealogical DNA analysis for cold cases",
            ],
            category=HypothesisCategory.SUSPECT,
        ))

    return hypotheses


def _timeline_hypotheses(case: CaseRecord) -> List[Hypothesis]:
    dated = sorted((e for e in case.evidence if e.date is not None), key=lambda e: e.date)
    if not dated or case.date is None or dated[0].date >= case.date:
        return []

    return [Hypothesis(
        id="timeline-pre-incident",
        title="Pre-Incident Activity Investigation",
        description=(
            "Timeline suggests activity before the reported incident. "
            "Investigate pre-incident events."
        ),
        confidence=60,
        supporting_evidence=[dated[0].id],
        recommended_actions=[
            "Review surveillance footage from before incident",
            "Interview individuals present before the incident",
            "Check for related incidents in the area",
        ],
        category=HypothesisCategory.TIMELINE,
    )]


def _connection_hypotheses(case: CaseRecord, corpus: List[CaseRecord]) -> List[Hypothesis]:
    if not case.jurisdiction or case.date is None:
        return []

    jurisdiction = case.jurisdiction.strip().lower()
    similar = [
        c for c in corpus
        if c.id != case.id
        and c.jurisdiction and c.jurisdiction.strip().lower() == jurisdiction
        and c.date is not None and abs((c.date - case.date).days) < 365
    ]
    if not similar:
        return []

    return [Hypothesis(
        id="connection-similar-cases",
        title="Potential Serial Offender Connection",
        description=(
            f"Found {len(similar)} similar case(s) in the same jurisdiction/timeframe. "
            "Possible serial offender pattern."
        ),
        confidence=70,
        supporting_evidence=[c.id for c in similar],
        recommended_actions=[
            "Compare MO across similar cases",
            "Review geographic patterns",
            "Check for suspect overlap",
            "Consider task force coordination",
        ],
        category=HypothesisCategory.CONNECTION,
    )]


def _location_hypotheses(case: CaseRecord) -> List[Hypothesis]:
    located = [e for e in case.evidence if LOCATION_PATTERN.search(e.description)]
    if len(located) <= 1:
        return []

    return [Hypothesis(
        id="location-multiple",
        title="Multiple Location Analysis",
        description="Evidence suggests multiple locations. Investigate connections between locations.",
        confidence=55,
        supporting_evidence=[e.id for e in located],
        recommended_actions=[
            "Map all locations on timeline",
            "Check for surveillance footage at each location",
            "Investigate routes between locations",
            "Review traffic camera footage",
        ],
        category=HypothesisCategory.LOCATION,
    )]


def generate_hypotheses(case: CaseRecord, corpus: List[CaseRecord]) -> List[Hypothesis]:
    hypotheses = (
        _suspect_hypotheses(case)
        + _timeline_hypotheses(case)
        + _connection_hypotheses(case, corpus)
        + _location_hypotheses(case)
    )
    hypotheses.sort(key=lambda h: -h.confidence)
    return hypotheses[:MAX_HYPOTHESES]
