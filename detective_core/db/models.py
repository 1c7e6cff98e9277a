"""
SQLAlchemy Models for Database
==============================

Persistent schema for verified case outcomes.

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, JSON, Index
from sqlalchemy.orm import declarative_base

# Use JSON for cross-database compatibility (works with both PostgreSQL and SQLite)
JSONB = JSON

Base = declarative_base()


class CaseOutcomeRecord(Base):
    """
    Human-verified outcome for one case.

    One row per case id; resubmission replaces the payload and bumps the
    submission sequence so ordering follows the latest write.
    """
    __tablename__ = "case_outcomes"

    case_id = Column(String(255), primary_key=True)
    sequence = Column(Integer, nullable=False, default=0)
    verified = Column(Boolean, default=True, nullable=False)
    accuracy = Column(Integer, nullable=False)
    actual_outcome = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    verified_by = Column(String(255), nullable=True)
    verified_at = Column(DateTime, nullable=False)
    payload = Column(JSONB, nullable=False, default=dict)  # full CaseOutcome as JSON
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_case_outcomes_sequence", "sequence"),
    )

    def __repr__(self):
        return f"<CaseOutcomeRecord {self.case_id} accuracy={self.accuracy}>"
