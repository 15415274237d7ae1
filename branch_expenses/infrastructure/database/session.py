"""Database session management with connection pooling"""

from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from branch_expenses.config import get_settings

_session_factory: Optional[sessionmaker] = None


def build_engine(database_url: str) -> Engine:
    """Create an engine; pooled for server databases, default pool for SQLite"""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})

    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


def get_session_factory() -> sessionmaker:
    """Session factory bound to the configured database, created on first use"""
    global _session_factory
    if _session_factory is None:
        engine = build_engine(get_settings().database_url)
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return _session_factory


def get_db() -> Iterator[Session]:
    """Dependency injection for database sessions"""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
