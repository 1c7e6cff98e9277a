"""
Case Anomaly Detection
======================

Rule-based detection of inconsistencies and data-quality issues inside a
single case record. Output is sorted by severity, most severe first.
"""

import logging
import re
from typing import List, Optional

from .schemas import Anomaly, AnomalyType, CaseRecord, EvidenceCategory, Severity

logger = logging.getLogger(__name__)


SEVERITY_ORDER = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}

# Used by strategy sensitivity filtering
SEVERITY_WEIGHT = {
    Severity.CRITICAL: 1.0,
    Severity.HIGH: 0.8,
    Severity.MEDIUM: 0.6,
    Severity.LOW: 0.4,
}

CONFLICT_KEYWORDS = ("weapon", "location", "time", "suspect", "vehicle")
WITNESS_DETAILS = ("time", "location", "description", "suspect")

MIN_DESCRIPTION_LENGTH = 50
MIN_EVIDENCE_ITEMS = 3
UNDATED_EVIDENCE_SHARE = 0.3


def _detail_value(text: str, keyword: str, limit: Optional[int] = None) -> Optional[str]:
    """Text following '<keyword>:' or '<keyword> ' up to the next delimiter."""
    match = re.search(rf"{re.escape(keyword)}[\s:]+([^,;.]+)", text, re.IGNORECASE)
    if not match:
        return None
    value = match.group(1).strip()
    return value[:limit] if limit else value


def _timeline_anomalies(case: CaseRecord) -> List[Anomaly]:
    anomalies = []

    dated = sorted((e for e in case.evidence if e.date is not None), key=lambda e: e.date)
    for i in range(1, len(dated)):
        gap = (dated[i].date - dated[i - 1].date).days
        if 30 < gap < 365:
            anomalies.append(Anomaly(
                id=f"timeline-gap-{i}",
                type=AnomalyType.TIMELINE_GAP,
                severity=Severity.MEDIUM,
                description=f"Significant gap of {gap} days between events",
                affected_elements=[dated[i - 1].id, dated[i].id],
                suggested_investigation=[
                    "Review records for missing events during this period",
                    "Check for additional witness statements",
                    "Verify evidence collection dates",
                ],
            ))

    if case.date is not None:
        before = [e.id for e in dated if e.date < case.date]
        if before:
            anomalies.append(Anomaly(
                id="timeline-impossible",
                type=AnomalyType.TIMELINE_GAP,
                severity=Severity.HIGH,
                description="Evidence dated before the incident date",
                affected_elements=before,
                suggested_investigation=[
                    "Verify evidence collection dates",
                    "Check for data entry errors",
                    "Review chain of custody documentation",
                ],
            ))

    return anomalies


def _evidence_conflicts(case: CaseRecord) -> List[Anomaly]:
    anomalies = []

    for keyword in CONFLICT_KEYWORDS:
        mentions = [e for e in case.evidence if keyword in e.description.lower()]
        if len(mentions) < 2:
            continue
        values = {_detail_value(e.description.lower(), keyword) for e in mentions}
        if len(values) > 1 and len(values) == len(mentions):
            anomalies.append(Anomaly(
                id=f"evidence-conflict-{keyword}",
                type=AnomalyType.EVIDENCE_CONFLICT,
                severity=Severity.HIGH,
                description=f"Conflicting information about {keyword} across evidence items",
                affected_elements=[e.id for e in mentions],
                suggested_investigation=[
                    "Review original evidence sources",
                    "Verify evidence authenticity",
                    "Check for transcription errors",
                    "Re-interview witnesses if applicable",
                ],
            ))

    return anomalies


def _witness_discrepancies(case: CaseRecord) -> List[Anomaly]:
    statements = [e for e in case.evidence if e.category == EvidenceCategory.WITNESS_STATEMENT]
    if len(statements) < 2:
        return []

    texts = [e.description.lower() for e in statements]
    inconsistent = 0
    for detail in WITNESS_DETAILS:
        mentions = [t for t in texts if detail in t]
        if len(mentions) >= 2:
            phrases = {_detail_value(t, detail, limit=20) for t in mentions}
            if len(phrases) > 1:
                inconsistent += 1

    if inconsistent < 2:
        return []

    return [Anomaly(
        id="witness-inconsistency",
        type=AnomalyType.WITNESS_DISCREPANCY,
        severity=Severity.MEDIUM,
        description="Significant inconsistencies detected across witness statements",
        affected_elements=[e.id for e in statements],
        suggested_investigation=[
            "Re-interview witnesses separately",
            "Review original statement recordings",
            "Check for memory contamination",
            "Consider witness credibility assessment",
        ],
    )]


def _data_quality(case: CaseRecord) -> List[Anomaly]:
    anomalies = []

    if len(case.description) < MIN_DESCRIPTION_LENGTH:
        anomalies.append(Anomaly(
            id="data-quality-description",
            type=AnomalyType.DATA_QUALITY,
            severity=Severity.LOW,
            description="Case description is brief or missing",
            affected_elements=["description"],
            suggested_investigation=["Gather additional case details"],
        ))

    if len(case.evidence) < MIN_EVIDENCE_ITEMS:
        anomalies.append(Anomaly(
            id="data-quality-evidence",
            type=AnomalyType.DATA_QUALITY,
            severity=Severity.MEDIUM,
            description="Limited evidence available for analysis",
            affected_elements=[e.id for e in case.evidence],
            suggested_investigation=[
                "Review case files for additional evidence",
                "Check for archived materials",
                "Verify all evidence has been catalogued",
            ],
        ))

    undated = [e.id for e in case.evidence if e.date is None]
    if undated and len(undated) > len(case.evidence) * UNDATED_EVIDENCE_SHARE:
        anomalies.append(Anomaly(
            id="data-quality-dates",
            type=AnomalyType.DATA_QUALITY,
            severity=Severity.LOW,
            description="Many evidence items missing dates",
            affected_elements=undated,
            suggested_investigation=["Update evidence records with collection dates"],
        ))

    return anomalies


def detect_anomalies(case: CaseRecord) -> List[Anomaly]:
    """Run all anomaly rules against one case, most severe first."""
    anomalies = (
        _timeline_anomalies(case)
        + _evidence_conflicts(case)
        + _witness_discrepancies(case)
        + _data_quality(case)
    )
    # Stable sort keeps rule order within a severity
    anomalies.sort(key=lambda a: -SEVERITY_ORDER[a.severity])
    logger.debug(f"detect_anomalies: case={case.id} found={len(anomalies)}")
    return anomalies


def filter_by_sensitivity(anomalies: List[Anomaly], sensitivity: float) -> List[Anomaly]:
    """Drop anomalies whose severity weight falls below 1 - sensitivity."""
    floor = 1.0 - sensitivity
    return [a for a in anomalies if SEVERITY_WEIGHT[a.severity] >= floor - 1e-9]
