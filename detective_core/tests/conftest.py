"""
Shared fixtures for detective_core tests
"""

import os
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from detective_core.schemas import CaseRecord, EvidenceCategory, EvidenceItem


BURGLARY_MO = (
    "Residential burglary with forced entry through the rear window at night. "
    "Victim bound and gagged, weapon displayed, threat note left at the scene"
)


def make_case(
    case_id,
    description=BURGLARY_MO,
    incident_date=None,
    jurisdiction="Riverside, California",
    categories=(EvidenceCategory.PHYSICAL, EvidenceCategory.FORENSIC, EvidenceCategory.DOCUMENT),
    **kwargs,
):
    """Case with one evidence item per category, ids '<case>-ev-<n>'"""
    evidence = [
        EvidenceItem(
            id=f"{case_id}-ev-{i + 1}",
            category=category,
            description=f"{category.value} evidence collected at the scene",
            source="crime scene unit",
        )
        for i, category in enumerate(categories)
    ]
    return CaseRecord(
        id=case_id,
        title=kwargs.pop("title", f"Case {case_id}"),
        description=description,
        date=incident_date,
        jurisdiction=jurisdiction,
        evidence=kwargs.pop("evidence", evidence),
        **kwargs,
    )


def outcome_payload(case_id, **overrides):
    payload = {
        "case_id": case_id,
        "verified": True,
        "accuracy": 80,
        "verified_at": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc).isoformat(),
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def burglary_series():
    """Three burglaries a month apart in the same jurisdiction"""
    start = date(2021, 3, 1)
    return [
        make_case(f"case-{i + 1}", incident_date=start + timedelta(days=30 * i))
        for i in range(3)
    ]


@pytest.fixture
def sqlalchemy_db(tmp_path):
    from detective_core.db.session import reset_engine, init_db

    old_db_url = os.environ.get("DATABASE_URL")
    db_path = tmp_path / "outcomes.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    reset_engine()
    init_db()

    yield

    if old_db_url is not None:
        os.environ["DATABASE_URL"] = old_db_url
    else:
        os.environ.pop("DATABASE_URL", None)
    reset_engine()
