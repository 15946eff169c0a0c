# backend/lineup_analytics/database.py
"""
Database connection and session management.

This module configures SQLAlchemy with:
- Connection pooling for production performance
- A per-statement timeout on every connection, so a stuck query cannot
  stall a worker cycle indefinitely
- Health check capabilities

Pool Configuration (configurable via environment variables):
- DB_POOL_SIZE: Persistent connections (default: 5)
- DB_POOL_MAX_OVERFLOW: Burst capacity (default: 10)
- DB_POOL_RECYCLE: Connection lifetime (default: 3600s)
- DB_POOL_PRE_PING: Health checks (default: True)
- DB_POOL_TIMEOUT: Wait for a free connection (default: 30s)
- DB_STATEMENT_TIMEOUT_MS: Per-statement timeout (default: 30000ms)
"""

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool, QueuePool

from .config import settings
from .models import Base

logger = logging.getLogger(__name__)


def _create_engine() -> Engine:
    """
    Create SQLAlchemy engine with environment-appropriate configuration.

    - SQLite: StaticPool so an in-memory database is shared across threads;
      the driver's busy timeout stands in for a statement timeout
    - PostgreSQL: QueuePool with configurable pooling and statement_timeout
    """
    if settings.is_sqlite:
        logger.info("Configuring SQLite database")
        return create_engine(
            settings.database_url,
            poolclass=StaticPool,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.db_statement_timeout_ms / 1000,
            },
            echo=settings.debug,
        )

    logger.info(
        f"Configuring PostgreSQL database pool: "
        f"size={settings.db_pool_size}, "
        f"max_overflow={settings.db_pool_max_overflow}, "
        f"recycle={settings.db_pool_recycle}s, "
        f"pre_ping={settings.db_pool_pre_ping}, "
        f"statement_timeout={settings.db_statement_timeout_ms}ms"
    )

    return create_engine(
        settings.database_url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_timeout=settings.db_pool_timeout,
        connect_args={"options": f"-c statement_timeout={settings.db_statement_timeout_ms}"},
        echo=settings.debug,
    )


# Create engine and session factory
engine = _create_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine | None = None) -> None:
    """Create any missing analytics tables."""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured")


def check_database_health(bind: Engine | None = None) -> dict:
    """
    Check database connectivity and pool status.

    Returns:
        dict: Health status with connection info
    """
    target = bind or engine
    try:
        with target.connect() as conn:
            conn.execute(text("SELECT 1"))

        pool = target.pool
        pool_status = {"status": pool.status()}

        return {
            "status": "healthy",
            "database": target.dialect.name,
            "pool": pool_status,
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e),
        }
