"""
Database Package - SQLAlchemy
=============================

Persistence for verified case outcomes.
"""

from .models import Base, CaseOutcomeRecord
from .session import get_db_session, init_db, get_engine, reset_engine

__all__ = [
    "Base",
    "CaseOutcomeRecord",
    "get_db_session",
    "init_db",
    "get_engine",
    "reset_engine",
]
