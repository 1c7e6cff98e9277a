"""
Tests for rule-based anomalies and hypotheses
"""

from datetime import date

from conftest import make_case
from detective_core.anomalies import detect_anomalies, filter_by_sensitivity
from detective_core.hypotheses import generate_hypotheses
from detective_core.schemas import AnomalyType, CaseRecord, EvidenceCategory, EvidenceItem, Severity


def _evidence(evidence_id, category=EvidenceCategory.PHYSICAL, description="item", on=None):
    return EvidenceItem(id=evidence_id, category=category, description=description, date=on)


class TestAnomalies:

    def test_evidence_dated_before_incident(self):
        case = make_case(
            "c1",
            incident_date=date(2021, 3, 10),
            evidence=[
                _evidence("e1", on=date(2021, 3, 1)),
                _evidence("e2", on=date(2021, 3, 12)),
                _evidence("e3", on=date(2021, 3, 12)),
            ],
        )
        anomalies = detect_anomalies(case)
        impossible = next(a for a in anomalies if a.id == "timeline-impossible")
        assert impossible.severity == Severity.HIGH
        assert impossible.affected_elements == ["e1"]

    def test_timeline_gap(self):
        case = make_case(
            "c1",
            evidence=[
                _evidence("e1", on=date(2021, 1, 1)),
                _evidence("e2", on=date(2021, 4, 1)),
                _evidence("e3", on=date(2021, 4, 2)),
            ],
        )
        gaps = [a for a in detect_anomalies(case) if a.id.startswith("timeline-gap")]
        assert len(gaps) == 1
        assert gaps[0].affected_elements == ["e1", "e2"]

    def test_evidence_conflict(self):
        case = make_case(
            "c1",
            evidence=[
                _evidence("e1", description="Weapon: kitchen knife"),
                _evidence("e2", description="Weapon: baseball bat"),
                _evidence("e3", description="Fingerprints on door"),
            ],
        )
        conflict = next(a for a in detect_anomalies(case) if a.type == AnomalyType.EVIDENCE_CONFLICT)
        assert conflict.id == "evidence-conflict-weapon"

    def test_witness_discrepancy(self):
        statements = [
            _evidence("w1", EvidenceCategory.WITNESS_STATEMENT, "Time: 10pm, location: the alley behind the bar"),
            _evidence("w2", EvidenceCategory.WITNESS_STATEMENT, "Time: midnight, location: the front parking lot"),
            _evidence("e3"),
        ]
        anomalies = detect_anomalies(make_case("c1", evidence=statements))
        assert any(a.type == AnomalyType.WITNESS_DISCREPANCY for a in anomalies)

    def test_data_quality_and_ordering(self):
        anomalies = detect_anomalies(CaseRecord(id="thin", description="Short"))
        ids = [a.id for a in anomalies]
        assert ids == ["data-quality-evidence", "data-quality-description"]

    def test_sensitivity_filter(self):
        anomalies = detect_anomalies(CaseRecord(id="thin", description="Short"))
        assert len(filter_by_sensitivity(anomalies, 0.7)) == 2
        # only medium and above survive
        assert [a.severity for a in filter_by_sensitivity(anomalies, 0.4)] == [Severity.MEDIUM]


class TestHypotheses:

    def test_forensic_and_connection(self, burglary_series):
        target, *corpus = burglary_series
        hypotheses = generate_hypotheses(target, corpus)
        ids = [h.id for h in hypotheses]

        assert ids[:2] == ["suspect-forensic-1", "connection-similar-cases"]
        connection = hypotheses[1]
        assert connection.supporting_evidence == [c.id for c in corpus]

    def test_sorted_and_bounded(self, burglary_series):
        target, *corpus = burglary_series
        confidences = [h.confidence for h in generate_hypotheses(target, corpus)]
        assert confidences == sorted(confidences, reverse=True)
        assert len(confidences) <= 10

    def test_suspect_profile_from_witness(self):
        case = make_case(
            "c1",
            evidence=[
                _evidence("w1", EvidenceCategory.WITNESS_STATEMENT, "Saw a tall man running away"),
            ],
        )
        assert "suspect-profile-1" in [h.id for h in generate_hypotheses(case, [])]

    def test_nothing_to_say(self):
        assert generate_hypotheses(CaseRecord(id="bare"), []) == []
