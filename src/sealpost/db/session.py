"""Database session configuration."""

from __future__ import annotations

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import DisconnectionError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from sealpost.core.errors import ConflictError, StorageUnavailableError
from sealpost.core.settings import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Ensure model modules are imported so that metadata is populated when create_all runs.
import sealpost.models  # noqa: E402,F401


def _connect_args(url: str) -> dict[str, object]:
    # The sqlite driver refuses cross-thread use unless told otherwise; FastAPI
    # hands sessions to worker threads.
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.effective_database_url,
    pool_pre_ping=True,
    echo=settings.sql_debug,
    connect_args=_connect_args(settings.effective_database_url),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def storage_errors(db: Session, operation: str) -> Iterator[None]:
    """Roll back and classify SQLAlchemy failures raised inside the block.

    Args:
        db: Session whose transaction is abandoned on failure
        operation: Short label used in log output

    Raises:
        ConflictError: If a uniqueness or integrity constraint rejected the write
        StorageUnavailableError: If the database could not be reached
    """
    try:
        yield
    except IntegrityError as err:
        db.rollback()
        logger.error("Integrity violation during %s: %s", operation, err.orig)
        raise ConflictError(f"Storage conflict during {operation}") from err
    except (OperationalError, InterfaceError, DisconnectionError) as err:
        db.rollback()
        logger.error("Storage unavailable during %s: %s", operation, err)
        raise StorageUnavailableError(f"Storage unavailable during {operation}") from err


def create_tables() -> None:
    """Create all database tables."""
    Base.metadata.create_all(bind=engine)


def drop_tables() -> None:
    """Drop all database tables."""
    Base.metadata.drop_all(bind=engine)
