"""
SQL connection via SQLAlchemy.

PostgreSQL goes through the psycopg3 dialect; any other SQLAlchemy URL
(sqlite for local runs) is used as given.
"""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, scoped_session, declarative_base

from rxflow.config import config

logger = logging.getLogger(__name__)

# SQLAlchemy base for model declarations
Base = declarative_base()

# Engine and session factory (initialized lazily)
_engine = None
_session_factory = None


def _resolve_url(url: str) -> str:
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def get_engine():
    """Get or create the SQLAlchemy engine."""
    global _engine
    if _engine is None:
        db_url = _resolve_url(config.get_database_url())
        if db_url.startswith("sqlite"):
            _engine = create_engine(db_url, echo=config.DEBUG)
        else:
            _engine = create_engine(
                db_url,
                echo=config.DEBUG,  # Log SQL in debug mode
                pool_pre_ping=True,  # Verify connections before use
                pool_recycle=300,  # Recycle connections every 5 minutes
                pool_reset_on_return="rollback",
            )

            @event.listens_for(_engine, "checkout")
            def checkout_listener(dbapi_conn, connection_record, connection_proxy):
                """Clear any transaction a previous user left open."""
                dbapi_conn.rollback()

        logger.info("SQL engine created for %s", _engine.url.get_backend_name())

    return _engine


def set_engine(engine):
    """Use an existing engine (tests, scripts) and drop the cached session factory."""
    global _engine, _session_factory
    if _session_factory is not None:
        _session_factory.remove()
    _engine = engine
    _session_factory = None


def get_session_factory():
    """Get the thread-local scoped session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = scoped_session(
            sessionmaker(bind=get_engine(), autocommit=False, autoflush=False)
        )
    return _session_factory


def init_db():
    """Create tables (for development/testing)."""
    # Import models so they register with Base.metadata
    from rxflow import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())


def close_db_session(exception=None):
    """Roll back and remove the current session (call at end of request)."""
    if _session_factory is not None:
        try:
            _session_factory.rollback()
        finally:
            _session_factory.remove()
