"""SQLAlchemy engine, session factory and declarative base.

The engine is built from ``DATABASE_URL``; tests build their own in-memory
engine and hand sessions to the services directly.
"""

from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from clinicdesk.config import DATABASE_ECHO, DATABASE_URL

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(url: str = DATABASE_URL):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite") and ":memory:" in url:
        return create_engine(
            url,
            echo=DATABASE_ECHO,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return create_engine(url, echo=DATABASE_ECHO, connect_args={"check_same_thread": False})
    return create_engine(url, echo=DATABASE_ECHO, pool_pre_ping=True)


engine = make_engine()

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def init_db(bind=None) -> None:
    """Create every table that does not exist yet."""
    from clinicdesk import models  # noqa: F401, PLC0415 (registers the tables)

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info("Database schema ready (%s)", target.url.render_as_string(hide_password=True))


def get_db():
    """FastAPI dependency yielding a session that is always closed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
