from contextlib import contextmanager
from typing import Generator, Iterator
import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger("rentalcore.db")

# DATABASE_URL defaults to a local SQLite file at ./data.db (relative to the working directory).
# Server databases (Postgres) are migrated with Alembic; see rentalcore/alembic.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data.db")
IS_SQLITE = DATABASE_URL.startswith("sqlite")

# - SQLite: allow cross-thread access and wait on a locked file instead of failing immediately,
#   since concurrent contract writes on one property queue behind the property lock.
# - Server DBs: pooled connections, checked before use.
if IS_SQLITE:
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False, "timeout": 15})
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        pool_recycle=280,
        pool_size=10,
        max_overflow=20,
    )

# One session per request; autocommit and autoflush disabled for explicit transaction control
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Create missing tables on SQLite dev databases. Server databases rely on migrations."""
    if IS_SQLITE:
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("SQLite schema ensured at %s", DATABASE_URL)


def get_db() -> Generator:
    """
    FastAPI dependency.

    Yields a database session for the lifetime of the request and guarantees it
    is closed afterwards, even if an exception is raised.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for work outside a request: commits on success, rolls back on error, always closes."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
