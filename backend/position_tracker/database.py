# backend/position_tracker/database.py
"""
Engine, session factory and request-scoped sessions.

Two modes, chosen by DATABASE_URL:
- SQLite (tests): one shared in-memory connection via StaticPool
- PostgreSQL: QueuePool sized for request sessions plus backfill workers

The backfill coordinator opens one session per fetch task from
``SessionLocal`` while the request still holds its own, so the pool
always keeps BACKFILL_MAX_WORKERS + 1 connections available.
"""

import logging
from collections.abc import Generator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .config import settings

logger = logging.getLogger(__name__)

# Seconds a backfill task waits for a pooled connection
POOL_TIMEOUT_SECONDS = 30


def _pool_size() -> int:
    """Configured pool size, raised to cover one request plus every backfill worker."""
    required = settings.backfill_max_workers + 1
    if settings.db_pool_size < required:
        logger.warning(
            f"DB_POOL_SIZE={settings.db_pool_size} is below {required} "
            f"(BACKFILL_MAX_WORKERS + 1), using {required}"
        )
        return required
    return settings.db_pool_size


def _sqlite_engine() -> Engine:
    # Backfill tasks use the connection from worker threads
    return create_engine(
        settings.database_url,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=settings.debug,
    )


def _postgres_engine() -> Engine:
    pool_size = _pool_size()
    logger.info(
        f"PostgreSQL pool: size={pool_size}, overflow={settings.db_pool_max_overflow}, "
        f"recycle={settings.db_pool_recycle}s"
    )
    return create_engine(
        settings.database_url,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_timeout=POOL_TIMEOUT_SECONDS,
        echo=settings.debug,
    )


engine = _sqlite_engine() if settings.is_sqlite else _postgres_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session, closed when the response is sent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_database_health() -> dict:
    """
    Run ``SELECT 1`` against the engine.

    Returns:
        {"status": "healthy", "dialect": ...} or
        {"status": "unhealthy", "error": ...}
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}

    return {"status": "healthy", "dialect": engine.dialect.name}
