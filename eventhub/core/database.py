"""
Database engine and session management using SQLAlchemy.
Uses synchronous SQLite by default; swap DATABASE_URL for PostgreSQL.
"""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError

from eventhub.core.config import get_settings
from eventhub.core.exceptions import ConcurrentModificationError

settings = get_settings()


def build_engine(url: str, **kwargs):
    """Create an engine, adding the SQLite threading flag where needed."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **kwargs)


engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy models."""
    pass


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.
    Ensures proper cleanup after each request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create all database tables from model metadata."""
    # Model modules register themselves on Base.metadata at import time
    from eventhub.models import user, membership, transaction, event  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def commit_or_conflict(db: Session) -> None:
    """
    Commit the unit of work, translating an optimistic-lock miss into a
    ConcurrentModificationError. The session is rolled back on failure.
    """
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise ConcurrentModificationError()
