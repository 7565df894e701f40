"""
Database configuration and session management for the wirecam backend.

This module defines a SQLModel engine targeting a SQLite database stored
in the storage directory returned by :func:`wirecam.config.storage_dir`
(``<repo>/storage`` unless ``WIRECAM_STORAGE_DIR`` is set).  It exposes
helper functions to initialise the schema and to obtain session objects
for interacting with the database.
"""

from __future__ import annotations

from sqlmodel import SQLModel, create_engine, Session

from ..config import storage_dir

STORAGE_DIR = storage_dir()

# check_same_thread is disabled because background tasks write from a
# worker thread while request handlers read from the event loop thread.
engine = create_engine(
    f"sqlite:///{(STORAGE_DIR / 'wirecam.db').as_posix()}",
    echo=False,
    connect_args={"check_same_thread": False},
)


def create_db_and_tables() -> None:
    """Create all tables in the database.

    This should be called once on application startup.  If the
    database file does not exist it will be created automatically.
    """
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    """Return a new SQLModel session bound to the engine.

    Use as a context manager (``with get_session() as session: ...``)
    so that connections are properly closed.
    """
    return Session(engine)
