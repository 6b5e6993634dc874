"""
Shared Database Engine - Singleton Pattern.

This module provides a SINGLE shared database engine for all repositories.
Repositories receive the session factory, so tests can hand them an
in-memory engine instead.
"""

import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)

# =============================================================================
# SINGLETON DATABASE ENGINE
# =============================================================================

_shared_engine: Optional[Engine] = None
_shared_session_factory: Optional[sessionmaker] = None


def get_shared_engine() -> Engine:
    """
    Get the shared SQLAlchemy engine (Singleton).

    Connection Pool Settings (server databases only):
    - pool_size / max_overflow from settings
    - pool_timeout=30: Fail if no connection available
    - pool_recycle=1800: Recycle connections every 30 minutes
    - pool_pre_ping=True: Check connection health before use

    Returns:
        SQLAlchemy Engine instance
    """
    global _shared_engine

    if _shared_engine is None:
        url = settings.database_url_resolved
        try:
            if url.startswith("sqlite"):
                _shared_engine = create_engine(
                    url,
                    echo=False,
                    connect_args={"check_same_thread": False},
                )
            else:
                _shared_engine = create_engine(
                    url,
                    echo=False,
                    pool_pre_ping=True,
                    pool_size=settings.db_pool_size,
                    max_overflow=settings.db_max_overflow,
                    pool_timeout=30,
                    pool_recycle=1800,
                )
            logger.info(f"Shared database engine created ({_shared_engine.dialect.name})")
        except Exception as e:
            logger.error(f"Failed to create shared database engine: {e}")
            raise

    return _shared_engine


def get_shared_session_factory() -> sessionmaker:
    """
    Get the shared SQLAlchemy session factory (Singleton).

    Returns:
        SQLAlchemy sessionmaker bound to shared engine
    """
    global _shared_session_factory

    if _shared_session_factory is None:
        engine = get_shared_engine()
        _shared_session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        logger.info("Shared session factory created")

    return _shared_session_factory


def init_db(engine: Optional[Engine] = None) -> None:
    """Create tables if they don't exist."""
    from app.models.database import Base

    Base.metadata.create_all(engine or get_shared_engine())
    logger.info("Archive tables created/verified")


def test_connection() -> bool:
    """
    Test database connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        session_factory = get_shared_session_factory()
        with session_factory() as session:
            session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection test failed: {e}")
        return False


def close_shared_engine() -> None:
    """
    Close the shared engine and release all connections.

    Call this during application shutdown.
    """
    global _shared_engine, _shared_session_factory

    if _shared_engine is not None:
        _shared_engine.dispose()
        _shared_engine = None
        _shared_session_factory = None
        logger.info("Shared database engine closed")
