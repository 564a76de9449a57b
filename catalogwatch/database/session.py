"""
Database engine and session factories.

DATABASE_URL selects the database. Outside production a missing URL falls
back to a local SQLite file so the API and the cron job can run without a
Postgres instance; in production it is a configuration error.

Pool sizing for Postgres is read from DB_POOL_SIZE and DB_MAX_OVERFLOW.

Usage:
    from catalogwatch.database.session import get_db_session

    @router.get("/drifts")
    def list_drifts(db: Session = Depends(get_db_session)):
        ...
"""

import os
import logging
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool
from fastapi import HTTPException, status

from catalogwatch.config.settings import is_production

logger = logging.getLogger(__name__)

DEV_DATABASE_URL = "sqlite:///./catalogwatch.db"

_engine = None
_SessionLocal = None


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        logger.warning("Invalid integer setting, using default", extra={"setting": name, "value": raw})
        return default


def get_database_url() -> str:
    """
    Resolve the database URL.

    Raises:
        ValueError: If DATABASE_URL is unset in production
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        if is_production():
            raise ValueError("DATABASE_URL environment variable is not set")
        logger.warning("DATABASE_URL not set, using local SQLite database", extra={"url": DEV_DATABASE_URL})
        return DEV_DATABASE_URL

    # SQLAlchemy only accepts the postgresql:// scheme
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def _engine_options(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "poolclass": QueuePool,
        "pool_size": _int_env("DB_POOL_SIZE", 5),
        "max_overflow": _int_env("DB_MAX_OVERFLOW", 10),
        "pool_pre_ping": True,
        "pool_recycle": 1800,
    }


def get_engine():
    """Engine singleton, created on first use."""
    global _engine
    if _engine is None:
        database_url = get_database_url()
        _engine = create_engine(database_url, **_engine_options(database_url))
        logger.info("Database engine created", extra={"dialect": _engine.dialect.name})
    return _engine


def dispose_engine() -> None:
    """Close pooled connections and forget the engine and session factory."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _SessionLocal = None


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


def get_db_session() -> Generator[Session, None, None]:
    """
    FastAPI dependency yielding one session per request.

    Raises HTTP 503 if the database is not configured.
    """
    try:
        SessionLocal = get_session_factory()
    except ValueError as e:
        logger.error("Database not configured", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_report_session_factory() -> sessionmaker:
    """
    FastAPI dependency for the factory that scheduled report builds open
    their own sessions from.

    Raises HTTP 503 if the database is not configured.
    """
    try:
        return get_session_factory()
    except ValueError as e:
        logger.error("Database not configured", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )


def get_db_session_sync() -> Generator[Session, None, None]:
    """
    Session generator for the cron job and other non-request callers.

    Usage:
        for session in get_db_session_sync():
            ...
    """
    try:
        SessionLocal = get_session_factory()
    except ValueError as e:
        raise RuntimeError(f"Database not configured: {e}")

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
