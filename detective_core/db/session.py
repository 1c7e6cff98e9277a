"""
Database Session Management
===========================

Engine and session handling for the SQL outcome store.
SQLite by default; any SQLAlchemy URL (e.g. PostgreSQL) via DATABASE_URL.
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from ..config import get_settings
from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_engine_url: Optional[str] = None

# Bound lazily, tests point DATABASE_URL at a temp file at runtime
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def _outcome_database_url() -> str:
    return os.environ.get("DATABASE_URL") or get_settings().database_url


def _build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_size=5, max_overflow=10, pool_pre_ping=True)


def get_engine() -> Engine:
    """Engine for the current DATABASE_URL, rebuilt when the URL changes"""
    global _engine, _engine_url
    database_url = _outcome_database_url()
    if _engine is None or _engine_url != database_url:
        if _engine is not None:
            _engine.dispose()
        logger.info(f"Outcome store engine bound to {database_url.split('://', 1)[0]}")
        _engine = _build_engine(database_url)
        _engine_url = database_url
        SessionLocal.configure(bind=_engine)
    return _engine


def reset_engine():
    """Drop the cached engine (used by tests)."""
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None
    SessionLocal.configure(bind=None)


def init_db():
    """Create the outcome tables if missing"""
    Base.metadata.create_all(bind=get_engine())


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Transactional session scope.

    Usage:
        with get_db_session() as db:
            db.query(CaseOutcomeRecord).all()
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
