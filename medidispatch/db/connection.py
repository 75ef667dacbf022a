"""
Database connection and session management for MediDispatch.

Uses SQLAlchemy with SQLite for development and PostgreSQL for production.
"""
import logging
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool

from medidispatch.core.config import Config

logger = logging.getLogger(__name__)

# Create declarative base for ORM models
Base = declarative_base()


def create_db_engine(db_url: str) -> Engine:
    """Create an engine with the right settings for the backend in use."""
    if db_url.startswith("sqlite"):
        db_engine = create_engine(
            db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=Config.DEBUG
        )

        # Enable foreign keys for SQLite
        @event.listens_for(db_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    else:
        # PostgreSQL or other databases
        db_engine = create_engine(
            db_url,
            pool_pre_ping=True,
            echo=Config.DEBUG
        )
    return db_engine


def init_db(database_url: Optional[str] = None) -> sessionmaker:
    """
    Initialize database connection and create tables.

    Returns:
        The session factory bound to the new engine
    """
    # Register the table models on Base before create_all
    from medidispatch.db import tables  # noqa: F401

    db_url = database_url or Config.DATABASE_URL or "sqlite:///./medidispatch.db"

    logger.info(f"Initializing database: {db_url}")

    db_engine = create_db_engine(db_url)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    # Create all tables
    Base.metadata.create_all(bind=db_engine)

    logger.info("Database initialized successfully")
    return session_factory


@contextmanager
def session_scope(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    """
    One session committed on success, rolled back on any error.

    Usage:
        with session_scope(factory) as session:
            session.merge(row)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
