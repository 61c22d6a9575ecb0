"""
Engine and sessions for the airline/airport reference store.

The store is written only by the CSV loaders and read per request by
airline enrichment and the airport listing. Live flight states never
touch it; they stay in the in-memory region cache.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from flightfeed.config import config


class Base(DeclarativeBase):
    """Declarative base for the reference tables."""


def _build_engine():
    options = {'echo': config.debug}
    if config.database.is_sqlite:
        # Flask request threads look up airlines on a shared engine
        options['connect_args'] = {'check_same_thread': False}
    return create_engine(config.database.url, **options)


engine = _build_engine()


if config.database.is_sqlite:
    @event.listens_for(engine, 'connect')
    def _tune_sqlite(dbapi_connection, connection_record):
        """Let enrichment reads proceed while a CSV load is upserting."""
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA journal_mode=WAL')
        cursor.execute('PRAGMA synchronous=NORMAL')
        cursor.close()


# Loaded rows are plain lookup values; keep them readable after commit
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Transactional session for reference writes.

    Commits when the block exits cleanly, rolls back a partial batch
    otherwise.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Create the airlines and airports tables if missing."""
    Base.metadata.create_all(bind=engine)
