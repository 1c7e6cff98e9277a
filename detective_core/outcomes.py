"""
Outcome Stores
==============

Keyed storage for verified CaseOutcome records.

Policy (both backends): one outcome per case id, last write wins, and a
resubmission moves the case to the end of submission order.
"""

import logging
import threading
from collections import OrderedDict
from datetime import datetime, timezone
from typing import List, Optional, Protocol

from sqlalchemy import func

from .config import Settings, get_settings
from .db.models import CaseOutcomeRecord
from .db.session import get_db_session, init_db
from .schemas import CaseOutcome

logger = logging.getLogger(__name__)


def _naive_utc(moment: datetime) -> datetime:
    """Naive UTC datetime for the verified_at column"""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class OutcomeStore(Protocol):
    """Storage contract for case outcomes"""

    def get(self, case_id: str) -> Optional[CaseOutcome]:
        ...

    def set(self, outcome: CaseOutcome) -> None:
        ...

    def all(self) -> List[CaseOutcome]:
        """All outcomes in submission order"""
        ...

    def clear(self) -> None:
        ...


class InMemoryOutcomeStore:
    """Thread-safe, insertion-ordered in-memory store"""

    def __init__(self):
        self._outcomes: "OrderedDict[str, CaseOutcome]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, case_id: str) -> Optional[CaseOutcome]:
        with self._lock:
            return self._outcomes.get(case_id)

    def set(self, outcome: CaseOutcome) -> None:
        with self._lock:
            self._outcomes.pop(outcome.case_id, None)
            self._outcomes[outcome.case_id] = outcome

    def all(self) -> List[CaseOutcome]:
        with self._lock:
            return list(self._outcomes.values())

    def clear(self) -> None:
        with self._lock:
            self._outcomes.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._outcomes)


class SqlOutcomeStore:
    """
    SQLAlchemy-backed store (table case_outcomes).

    The full outcome is kept as JSON; scalar columns mirror the fields
    useful for querying.
    """

    def __init__(self, create_tables: bool = True):
        if create_tables:
            init_db()
        self._lock = threading.Lock()

    @staticmethod
    def _to_outcome(record: CaseOutcomeRecord) -> CaseOutcome:
        return CaseOutcome.model_validate(record.payload)

    def get(self, case_id: str) -> Optional[CaseOutcome]:
        with get_db_session() as db:
            record = db.get(CaseOutcomeRecord, case_id)
            return self._to_outcome(record) if record else None

    def set(self, outcome: CaseOutcome) -> None:
        payload = outcome.model_dump(mode="json")
        with self._lock, get_db_session() as db:
            next_sequence = (db.query(func.max(CaseOutcomeRecord.sequence)).scalar() or 0) + 1
            record = db.get(CaseOutcomeRecord, outcome.case_id)
            if record is None:
                record = CaseOutcomeRecord(case_id=outcome.case_id)
                db.add(record)
            else:
                logger.info(f"Overwriting outcome for case {outcome.case_id}")

            record.sequence = next_sequence
            record.verified = outcome.verified
            record.accuracy = outcome.accuracy
            record.actual_outcome = outcome.actual_outcome.value if outcome.actual_outcome else None
            record.notes = outcome.notes
            record.verified_by = outcome.verified_by
            record.verified_at = _naive_utc(outcome.verified_at)
            record.payload = payload

    def all(self) -> List[CaseOutcome]:
        with get_db_session() as db:
            records = db.query(CaseOutcomeRecord).order_by(CaseOutcomeRecord.sequence).all()
            return [self._to_outcome(r) for r in records]

    def clear(self) -> None:
        with self._lock, get_db_session() as db:
            db.query(CaseOutcomeRecord).delete()


def create_outcome_store(settings: Optional[Settings] = None) -> OutcomeStore:
    """Outcome store for OUTCOME_STORE=memory|sql"""
    settings = settings or get_settings()
    backend = settings.outcome_store.lower()
    if backend == "sql":
        logger.info("Outcome store: SQL")
        return SqlOutcomeStore()
    if backend != "memory":
        logger.warning(f"Unknown OUTCOME_STORE={settings.outcome_store}, using memory")
    return InMemoryOutcomeStore()
